"""profiles, otp tokens and auth logs

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    auth_action_enum = sa.Enum(
        "OTP_REQUEST",
        "OTP_RESEND",
        "OTP_VERIFICATION",
        "OTP_VERIFICATION_FAILED",
        "PASSWORD_RESET_REQUEST",
        "PASSWORD_RESET",
        "PASSWORD_RESET_FAILED",
        name="auth_action",
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=150), nullable=True),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    op.create_table(
        "otp_tokens",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("code", sa.String(length=10), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ip", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_otp_tokens_user_id", "otp_tokens", ["user_id"])
    op.create_index("ix_otp_tokens_email", "otp_tokens", ["email"])
    op.create_index("ix_otp_tokens_expires_at", "otp_tokens", ["expires_at"])
    op.create_index("ix_otp_tokens_ip", "otp_tokens", ["ip"])
    op.create_index("ix_otp_tokens_email_purpose_created", "otp_tokens", ["email", "purpose", "created_at"])

    op.create_table(
        "auth_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("action", auth_action_enum, nullable=False),
        sa.Column("ip", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_auth_logs_actor_id", "auth_logs", ["actor_id"])
    op.create_index("ix_auth_logs_email", "auth_logs", ["email"])


def downgrade() -> None:
    op.drop_index("ix_auth_logs_email", table_name="auth_logs")
    op.drop_index("ix_auth_logs_actor_id", table_name="auth_logs")
    op.drop_table("auth_logs")
    op.drop_index("ix_otp_tokens_email_purpose_created", table_name="otp_tokens")
    op.drop_index("ix_otp_tokens_ip", table_name="otp_tokens")
    op.drop_index("ix_otp_tokens_expires_at", table_name="otp_tokens")
    op.drop_index("ix_otp_tokens_email", table_name="otp_tokens")
    op.drop_index("ix_otp_tokens_user_id", table_name="otp_tokens")
    op.drop_table("otp_tokens")
    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
    sa.Enum(name="auth_action").drop(op.get_bind(), checkfirst=True)
