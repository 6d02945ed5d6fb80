"""create auth, session, licensing and roster tables

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c2e3f4b5d6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum("user", "admin", "superadministrator", name="user_role")
user_status = sa.Enum("active", "disabled", "deactivated", name="user_status")
session_platform = sa.Enum("web", "mobile", "desktop", name="session_platform")
login_action = sa.Enum("login", "refresh", "logout", name="login_action")
license_status = sa.Enum("trial", "active", "expired", name="license_status")
license_duration = sa.Enum("month", "quarter", "year", name="license_duration")
license_request_type = sa.Enum("new", "renew", "add", name="license_request_type")
license_request_status = sa.Enum(
    "pending", "approved", "rejected", "cancelled", name="license_request_status"
)
member_status = sa.Enum("active", "removed", name="member_status")

ENUMS = (
    user_role,
    user_status,
    session_platform,
    login_action,
    license_status,
    license_duration,
    license_request_type,
    license_request_status,
    member_status,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create every kernel table with its partial unique indexes."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=256), nullable=True),
        sa.Column("password_hash", sa.String(length=512), nullable=True),
        sa.Column("full_name", sa.String(length=256), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("status", user_status, nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("federated_id", sa.String(length=256), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_email", sa.String(length=256), nullable=True),
        sa.Column("deleted_reason", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("federated_id"),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index(
        "uq_users_live_email",
        "users",
        ["email"],
        unique=True,
        postgresql_where=sa.text("email IS NOT NULL"),
    )

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("platform", session_platform, nullable=False),
        sa.Column("device_info", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("access_token_hash", sa.String(length=128), nullable=False),
        sa.Column("refresh_token_hash", sa.String(length=128), nullable=False),
        sa.Column("access_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("refresh_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])
    op.create_index("ix_user_sessions_is_active", "user_sessions", ["is_active"])
    op.create_index("ix_user_sessions_refresh_token_hash", "user_sessions", ["refresh_token_hash"])
    op.create_index("ix_user_sessions_user_active", "user_sessions", ["user_id", "is_active"])
    op.create_index(
        "uq_user_sessions_active_platform",
        "user_sessions",
        ["user_id", "platform"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "user_login_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("session_id", sa.Uuid(), nullable=True),
        sa.Column("email", sa.String(length=256), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("device_info", sa.String(length=512), nullable=True),
        sa.Column("platform", sa.String(length=16), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.String(length=128), nullable=True),
        sa.Column("action", login_action, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_login_logs_user_id", "user_login_logs", ["user_id"])
    op.create_index("ix_user_login_logs_created_at", "user_login_logs", ["created_at"])

    op.create_table(
        "user_licenses",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=False),
        sa.Column("max_members", sa.Integer(), nullable=False),
        sa.Column("current_members", sa.Integer(), nullable=False),
        sa.Column("status", license_status, nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "current_members >= 0 AND current_members <= max_members",
            name="ck_user_licenses_seat_bounds",
        ),
        sa.ForeignKeyConstraint(["subscriber_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subscriber_id"),
    )

    op.create_table(
        "license_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("requested_members", sa.Integer(), nullable=False),
        sa.Column("duration", license_duration, nullable=False),
        sa.Column("request_type", license_request_type, nullable=False),
        sa.Column("status", license_request_status, nullable=False),
        sa.Column("processed_by", sa.Uuid(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["processed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_license_requests_user_id", "license_requests", ["user_id"])
    op.create_index(
        "uq_license_requests_one_pending",
        "license_requests",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "user_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=False),
        sa.Column("member_id", sa.Uuid(), nullable=True),
        sa.Column("email", sa.String(length=256), nullable=False),
        sa.Column("status", member_status, nullable=False),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["subscriber_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["member_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_members_subscriber_id", "user_members", ["subscriber_id"])
    op.create_index("ix_user_members_member_id", "user_members", ["member_id"])
    op.create_index(
        "uq_user_members_active_member",
        "user_members",
        ["member_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "uq_user_members_active_email",
        "user_members",
        ["email"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "permissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), nullable=False),
        sa.Column("member_id", sa.Uuid(), nullable=False),
        sa.Column("permission", sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["subscriber_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["member_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subscriber_id", "member_id", "permission", name="uq_permissions_grant"),
    )
    op.create_index("ix_permissions_subscriber_id", "permissions", ["subscriber_id"])

    op.create_table(
        "password_reset_codes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("code_hash", sa.String(length=128), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_password_reset_codes_user_id", "password_reset_codes", ["user_id"])


def downgrade() -> None:
    """Drop every kernel table and enum type."""
    op.drop_table("password_reset_codes")
    op.drop_table("permissions")
    op.drop_table("user_members")
    op.drop_table("license_requests")
    op.drop_table("user_licenses")
    op.drop_table("user_login_logs")
    op.drop_table("user_sessions")
    op.drop_table("users")
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.drop(bind, checkfirst=True)
