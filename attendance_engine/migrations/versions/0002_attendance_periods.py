"""Attendance periods, day rows and month overrides

Revision ID: 0002_attendance_periods
Revises: 0001_reference_schema
Create Date: 2026-10-06 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_attendance_periods"
down_revision: Union[str, None] = "0001_reference_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

attendance_period_status = postgresql.ENUM(
    "not_generated",
    "open",
    "frozen",
    name="attendance_period_status",
    create_type=False,
)
attendance_day_status = postgresql.ENUM(
    "unmarked",
    "present",
    "absent",
    "leave",
    "holiday",
    "weekly_off",
    name="attendance_day_status",
    create_type=False,
)
attendance_day_source = postgresql.ENUM(
    "system",
    "manual",
    "leave",
    "holiday_calendar",
    "weekly_off_rule",
    name="attendance_day_source",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    attendance_period_status.create(bind, checkfirst=True)
    attendance_day_status.create(bind, checkfirst=True)
    attendance_day_source.create(bind, checkfirst=True)

    op.create_table(
        "attendance_periods",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("status", attendance_period_status, nullable=False, server_default=sa.text("'open'")),
        sa.Column("frozen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("frozen_by", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("company_id", "year", "month", name="uq_attendance_periods_company_month"),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_attendance_periods_month"),
    )
    op.create_index("ix_attendance_periods_company_id", "attendance_periods", ["company_id"], unique=False)

    op.create_table(
        "attendance_days",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("day_date", sa.Date(), nullable=False),
        sa.Column("status", attendance_day_status, nullable=False, server_default=sa.text("'unmarked'")),
        sa.Column("source", attendance_day_source, nullable=False, server_default=sa.text("'system'")),
        sa.Column("check_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("work_minutes", sa.Integer(), nullable=True),
        sa.Column("late_minutes", sa.Integer(), nullable=True),
        sa.Column("early_leave_minutes", sa.Integer(), nullable=True),
        sa.Column("ot_minutes", sa.Integer(), nullable=True),
        sa.Column("day_fraction", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("leave_type_id", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.String(length=255), nullable=False, server_default=sa.text("'system'")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["leave_type_id"], ["leave_types.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("employee_id", "day_date", name="uq_attendance_days_employee_day"),
    )
    op.create_index("ix_attendance_days_employee_id", "attendance_days", ["employee_id"], unique=False)
    op.create_index("ix_attendance_days_company_day", "attendance_days", ["company_id", "day_date"], unique=False)

    op.create_table(
        "month_overrides",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("present_days", sa.Float(), nullable=True),
        sa.Column("absent_days", sa.Float(), nullable=True),
        sa.Column("paid_leave_days", sa.Float(), nullable=True),
        sa.Column("ot_minutes", sa.Integer(), nullable=True),
        sa.Column("use_override", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("updated_by", sa.String(length=255), nullable=False, server_default=sa.text("'admin'")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "year", "month", name="uq_month_overrides_employee_month"),
    )
    op.create_index("ix_month_overrides_employee_id", "month_overrides", ["employee_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_month_overrides_employee_id", table_name="month_overrides")
    op.drop_table("month_overrides")
    op.drop_index("ix_attendance_days_company_day", table_name="attendance_days")
    op.drop_index("ix_attendance_days_employee_id", table_name="attendance_days")
    op.drop_table("attendance_days")
    op.drop_index("ix_attendance_periods_company_id", table_name="attendance_periods")
    op.drop_table("attendance_periods")

    bind = op.get_bind()
    attendance_day_source.drop(bind, checkfirst=True)
    attendance_day_status.drop(bind, checkfirst=True)
    attendance_period_status.drop(bind, checkfirst=True)
