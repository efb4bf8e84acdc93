from __future__ import annotations

import unittest
from unittest.mock import patch

from attendance_engine.errors import ApiError
from attendance_engine.security import (
    can_manage_attendance,
    can_read_attendance,
    create_access_token,
    decode_token,
    normalize_permissions,
)
from attendance_engine.settings import Settings

TEST_SETTINGS = Settings(jwt_secret="unit-test-secret")


class PermissionTests(unittest.TestCase):
    def test_write_implies_read(self) -> None:
        permissions = normalize_permissions({"attendance": {"write": True}, "unknown": True})

        self.assertEqual(permissions["attendance"], {"read": True, "write": True})
        self.assertNotIn("unknown", permissions)

    def test_payroll_can_read_attendance_but_not_manage(self) -> None:
        claims = {"permissions": {"payroll": {"read": True}}}

        self.assertTrue(can_read_attendance(claims))
        self.assertFalse(can_manage_attendance(claims))

    def test_super_admin_can_do_everything(self) -> None:
        claims = {"is_super_admin": True, "permissions": {}}

        self.assertTrue(can_manage_attendance(claims))
        self.assertTrue(can_read_attendance(claims))


class TokenTests(unittest.TestCase):
    def test_token_round_trip(self) -> None:
        with patch("attendance_engine.security.get_settings", return_value=TEST_SETTINGS):
            token = create_access_token(sub="7", username="hr_admin", permissions={"attendance": True})
            claims = decode_token(token)

        self.assertEqual(claims["username"], "hr_admin")
        self.assertTrue(can_manage_attendance(claims))

    def test_tampered_token_is_rejected(self) -> None:
        with patch("attendance_engine.security.get_settings", return_value=TEST_SETTINGS):
            token = create_access_token(sub="7")
            with self.assertRaises(ApiError) as ctx:
                decode_token(token[:-2] + ("AA" if not token.endswith("AA") else "BB"))

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.code, "INVALID_TOKEN")


if __name__ == "__main__":
    unittest.main()
