"""Create user, login attempt and password history tables

Revision ID: 3f0c9a1d7b21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

from authguard.models import GUID


# revision identifiers, used by Alembic.
revision = "3f0c9a1d7b21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "failed_login_attempts", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "is_soft_locked", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "is_hard_locked", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("locked_until", sa.DateTime(), nullable=True),
        sa.Column(
            "two_factor_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("two_factor_secret", sa.Text(), nullable=True),
        sa.Column(
            "force_password_reset",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        sa.Column("last_login_ip", sa.String(length=45), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)
    op.create_index("ix_user_lock_flags", "user", ["is_soft_locked", "is_hard_locked"])

    op.create_table(
        "login_attempt",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("user_id", GUID(), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=False),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["user.id"],
            name="fk_login_attempt_user",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_login_attempt_email", "login_attempt", ["email"])
    op.create_index("ix_login_attempt_ip_address", "login_attempt", ["ip_address"])
    op.create_index("ix_login_attempt_success", "login_attempt", ["success"])
    op.create_index("ix_login_attempt_created_at", "login_attempt", ["created_at"])

    op.create_table(
        "password_history",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("user_id", GUID(), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["user.id"],
            name="fk_password_history_user",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_password_history_user_id", "password_history", ["user_id"]
    )


def downgrade():
    op.drop_index("ix_password_history_user_id", table_name="password_history")
    op.drop_table("password_history")
    op.drop_index("ix_login_attempt_created_at", table_name="login_attempt")
    op.drop_index("ix_login_attempt_success", table_name="login_attempt")
    op.drop_index("ix_login_attempt_ip_address", table_name="login_attempt")
    op.drop_index("ix_login_attempt_email", table_name="login_attempt")
    op.drop_table("login_attempt")
    op.drop_index("ix_user_lock_flags", table_name="user")
    op.drop_index("ix_user_email", table_name="user")
    op.drop_table("user")
