"""Reference schema: companies, locations, employees, shifts, calendars

Revision ID: 0001_reference_schema
Revises:
Create Date: 2026-10-05 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_reference_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

weekly_off_scope = postgresql.ENUM(
    "location",
    "employee",
    name="weekly_off_scope",
    create_type=False,
)
holiday_type = postgresql.ENUM(
    "public",
    "company",
    name="holiday_type",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "ADMIN",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    weekly_off_scope.create(bind, checkfirst=True)
    holiday_type.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("name", name="uq_companies_name"),
    )

    op.create_table(
        "work_locations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_work_locations_company_id", "work_locations", ["company_id"], unique=False)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("employee_code", sa.String(length=64), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["work_locations.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_employees_company_id", "employees", ["company_id"], unique=False)
    op.create_index("ix_employees_location_id", "employees", ["location_id"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_time_local", sa.Time(timezone=False), nullable=False),
        sa.Column("end_time_local", sa.Time(timezone=False), nullable=False),
        sa.Column("break_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("grace_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_half_day_minutes", sa.Integer(), nullable=False, server_default=sa.text("240")),
        sa.Column("min_full_day_minutes", sa.Integer(), nullable=False, server_default=sa.text("480")),
        sa.Column("ot_after_minutes", sa.Integer(), nullable=True),
        sa.Column("is_night_shift", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("company_id", "code", name="uq_shifts_company_code"),
    )
    op.create_index("ix_shifts_company_id", "shifts", ["company_id"], unique=False)

    op.create_table(
        "location_shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(["location_id"], ["work_locations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "location_id",
            "shift_id",
            "effective_from",
            name="uq_location_shifts_location_shift_from",
        ),
    )
    op.create_index("ix_location_shifts_location_id", "location_shifts", ["location_id"], unique=False)
    op.create_index("ix_location_shifts_shift_id", "location_shifts", ["shift_id"], unique=False)

    op.create_table(
        "employee_shift_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_employee_shift_assignments_employee_id",
        "employee_shift_assignments",
        ["employee_id"],
        unique=False,
    )

    op.create_table(
        "weekly_off_rules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("scope_type", weekly_off_scope, nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("employee_id", sa.Integer(), nullable=True),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("week_of_month", sa.Integer(), nullable=True),
        sa.Column("is_off", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_to", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["work_locations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_weekly_off_rules_weekday"),
        sa.CheckConstraint(
            "week_of_month IS NULL OR (week_of_month >= 1 AND week_of_month <= 5)",
            name="ck_weekly_off_rules_week_of_month",
        ),
    )
    op.create_index("ix_weekly_off_rules_company_id", "weekly_off_rules", ["company_id"], unique=False)
    op.create_index("ix_weekly_off_rules_location_id", "weekly_off_rules", ["location_id"], unique=False)
    op.create_index("ix_weekly_off_rules_employee_id", "weekly_off_rules", ["employee_id"], unique=False)

    op.create_table(
        "holiday_calendars",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_holiday_calendars_company_id", "holiday_calendars", ["company_id"], unique=False)

    op.create_table(
        "calendar_holidays",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("calendar_id", sa.Integer(), nullable=False),
        sa.Column("holiday_date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("holiday_type", holiday_type, nullable=False),
        sa.Column("is_optional", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(["calendar_id"], ["holiday_calendars.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("calendar_id", "holiday_date", name="uq_calendar_holidays_calendar_date"),
    )
    op.create_index("ix_calendar_holidays_calendar_id", "calendar_holidays", ["calendar_id"], unique=False)

    op.create_table(
        "calendar_locations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("calendar_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["calendar_id"], ["holiday_calendars.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["work_locations.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("location_id", name="uq_calendar_locations_location"),
    )
    op.create_index("ix_calendar_locations_calendar_id", "calendar_locations", ["calendar_id"], unique=False)

    op.create_table(
        "leave_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("company_id", "code", name="uq_leave_types_company_code"),
    )
    op.create_index("ix_leave_types_company_id", "leave_types", ["company_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_leave_types_company_id", table_name="leave_types")
    op.drop_table("leave_types")
    op.drop_index("ix_calendar_locations_calendar_id", table_name="calendar_locations")
    op.drop_table("calendar_locations")
    op.drop_index("ix_calendar_holidays_calendar_id", table_name="calendar_holidays")
    op.drop_table("calendar_holidays")
    op.drop_index("ix_holiday_calendars_company_id", table_name="holiday_calendars")
    op.drop_table("holiday_calendars")
    op.drop_index("ix_weekly_off_rules_employee_id", table_name="weekly_off_rules")
    op.drop_index("ix_weekly_off_rules_location_id", table_name="weekly_off_rules")
    op.drop_index("ix_weekly_off_rules_company_id", table_name="weekly_off_rules")
    op.drop_table("weekly_off_rules")
    op.drop_index("ix_employee_shift_assignments_employee_id", table_name="employee_shift_assignments")
    op.drop_table("employee_shift_assignments")
    op.drop_index("ix_location_shifts_shift_id", table_name="location_shifts")
    op.drop_index("ix_location_shifts_location_id", table_name="location_shifts")
    op.drop_table("location_shifts")
    op.drop_index("ix_shifts_company_id", table_name="shifts")
    op.drop_table("shifts")
    op.drop_index("ix_employees_location_id", table_name="employees")
    op.drop_index("ix_employees_company_id", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_work_locations_company_id", table_name="work_locations")
    op.drop_table("work_locations")
    op.drop_table("companies")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    holiday_type.drop(bind, checkfirst=True)
    weekly_off_scope.drop(bind, checkfirst=True)
