from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import uuid4

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from attendance_engine.errors import ApiError
from attendance_engine.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

JWT_ALGORITHM = "HS256"
TOKEN_TYPE = "access"

# "attendance" covers periods, days and overrides; "payroll" may only read them.
PERMISSION_KEYS: tuple[str, ...] = ("attendance", "payroll")


def _grant(value: Any) -> dict[str, bool]:
    if isinstance(value, Mapping):
        write = bool(value.get("write"))
        return {"read": write or bool(value.get("read")), "write": write}
    return {"read": bool(value), "write": bool(value)}


def normalize_permissions(raw: Mapping[str, Any] | None) -> dict[str, dict[str, bool]]:
    """Expand a claims ``permissions`` object to read/write flags per known key.

    A bare truthy value grants both, write always implies read and unknown
    keys are dropped.
    """
    supplied = raw if isinstance(raw, Mapping) else {}
    return {key: _grant(supplied.get(key)) for key in PERMISSION_KEYS}


def has_permission(claims: Mapping[str, Any], permission: str, *, write: bool = False) -> bool:
    if permission not in PERMISSION_KEYS:
        return False
    if claims.get("is_super_admin"):
        return True
    grant = normalize_permissions(claims.get("permissions"))[permission]
    return grant["write"] if write else grant["read"]


def can_manage_attendance(claims: Mapping[str, Any]) -> bool:
    return has_permission(claims, "attendance", write=True)


def can_read_attendance(claims: Mapping[str, Any]) -> bool:
    return any(has_permission(claims, key) for key in PERMISSION_KEYS)


def create_access_token(
    *,
    sub: str,
    username: str | None = None,
    is_super_admin: bool = False,
    permissions: Mapping[str, Any] | None = None,
    expires_minutes: int = 30,
) -> str:
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=expires_minutes)
    return jwt.encode(
        {
            "sub": sub,
            "username": username or sub,
            "is_super_admin": is_super_admin,
            "permissions": normalize_permissions(permissions),
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid4().hex,
            "typ": TOKEN_TYPE,
        },
        settings.jwt_secret,
        algorithm=JWT_ALGORITHM,
    )


def _invalid_token(message: str) -> ApiError:
    return ApiError(status_code=401, code="INVALID_TOKEN", message=message)


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise _invalid_token("Token is invalid.") from exc

    if claims.get("typ") != TOKEN_TYPE:
        raise _invalid_token("Token type is invalid.")
    if not isinstance(claims.get("sub"), str) or not claims["sub"]:
        raise _invalid_token("Token subject is invalid.")
    return claims


def require_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None:
        raise _invalid_token("Missing bearer token.")
    return decode_token(credentials.credentials)


def require_attendance_manager(claims: dict[str, Any] = Depends(require_actor)) -> dict[str, Any]:
    if not can_manage_attendance(claims):
        raise ApiError(status_code=403, code="FORBIDDEN", message="Attendance write permission required.")
    return claims


def require_attendance_reader(claims: dict[str, Any] = Depends(require_actor)) -> dict[str, Any]:
    if not can_read_attendance(claims):
        raise ApiError(status_code=403, code="FORBIDDEN", message="Attendance or payroll read permission required.")
    return claims
