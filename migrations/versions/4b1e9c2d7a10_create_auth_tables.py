"""create auth tables

Revision ID: 4b1e9c2d7a10
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4b1e9c2d7a10"
down_revision = None
branch_labels = None
depends_on = None


def _account_columns():
    return [
        sa.Column("password", sa.String(length=255), nullable=True),
        sa.Column("salt", sa.String(length=255), nullable=True),
        sa.Column("totp_secret", sa.String(length=255), nullable=True),
        sa.Column("is_totp_confirmed", sa.Boolean(), nullable=False),
        sa.Column("failed_totp_attempts", sa.Integer(), nullable=False),
        sa.Column("is_email_confirmed", sa.Boolean(), nullable=False),
        sa.Column("avatar_url", sa.String(length=255), nullable=True),
        sa.Column("mc_username", sa.String(length=255), nullable=True),
        sa.Column("gh_username", sa.String(length=255), nullable=True),
        sa.Column("irc_nick", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    ]


def _token_columns():
    return [
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expiration", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("google_id", sa.String(length=255), nullable=True),
        *_account_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("google_id"),
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_users_email"), ["email"], unique=True)
    op.create_index("ix_users_username_lower", "users", [sa.text("lower(username)")], unique=True)

    op.create_table(
        "deleted_users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("google_id", sa.String(length=255), nullable=True),
        *_account_columns(),
        sa.Column("deleted_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("deleted_users", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_deleted_users_user_id"), ["user_id"], unique=False)

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("is_authenticated", sa.Boolean(), nullable=False),
        *_token_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    for table, owner in (("email_confirmations", "email"), ("password_resets", "email")):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column(owner, sa.String(length=255), nullable=False),
            *_token_columns(),
            sa.PrimaryKeyConstraint("id"),
        )
    for table, owner in (("sessions", "username"), ("email_confirmations", "email"), ("password_resets", "email")):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(batch_op.f(f"ix_{table}_token"), ["token"], unique=True)
            batch_op.create_index(batch_op.f(f"ix_{table}_{owner}"), [owner], unique=False)

    op.create_table(
        "one_time_passwords",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "code", name="uq_one_time_passwords_user_code"),
    )
    with op.batch_alter_table("one_time_passwords", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_one_time_passwords_user_id"), ["user_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity", sa.String(length=80), nullable=True),
        sa.Column("entity_id", sa.String(length=80), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade():
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("one_time_passwords")
    for table in ("password_resets", "email_confirmations", "sessions"):
        op.drop_table(table)
    op.drop_table("deleted_users")
    op.drop_index("ix_users_username_lower", table_name="users")
    op.drop_table("users")
