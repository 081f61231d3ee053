"""Create auth, profile, message, recipient, delivery log and push token tables.

Revision ID: 0001
Revises: -
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "auth_users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("verification_code", sa.String(6), nullable=True),
        _timestamp("verification_expires_at", nullable=True),
        sa.Column("verification_phone", sa.String(32), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("email", name="uq_auth_users_email"),
    )

    op.create_table(
        "profiles",
        sa.Column(
            "id",
            sa.Uuid,
            sa.ForeignKey("auth_users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column(
            "role", sa.String(16), nullable=False, server_default="parent"
        ),
        sa.Column("phone_e164", sa.String(32), nullable=True),
        sa.Column(
            "phone_verified",
            sa.Boolean,
            nullable=False,
            server_default=sa.text("false"),
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_profiles_role", "profiles", ["role"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "sender_id", sa.Uuid, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("link", sa.Text, nullable=True),
        sa.Column("audience_type", sa.String(16), nullable=False),
        sa.Column("audience_filter", JSONB, nullable=True),
        sa.Column("channels", JSONB, nullable=False),
        _timestamp("scheduled_at", nullable=True),
        sa.Column("recurrence", JSONB, nullable=True),
        _timestamp("created_at"),
        _timestamp("sent_at", nullable=True),
    )
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])

    op.create_table(
        "message_recipients",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "message_id",
            sa.Uuid,
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Uuid,
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "channels_attempted",
            JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "status", sa.String(16), nullable=False, server_default="pending"
        ),
        _timestamp("read_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint(
            "message_id", "user_id", name="uq_recipient_message_user"
        ),
    )
    op.create_index(
        "ix_message_recipients_message_id", "message_recipients", ["message_id"]
    )
    op.create_index(
        "ix_message_recipients_user_id", "message_recipients", ["user_id"]
    )
    op.create_index(
        "ix_message_recipients_status", "message_recipients", ["status"]
    )

    op.create_table(
        "delivery_logs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "message_id",
            sa.Uuid,
            sa.ForeignKey("messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "recipient_id",
            sa.Uuid,
            sa.ForeignKey("message_recipients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("channel", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_delivery_logs_message_id", "delivery_logs", ["message_id"]
    )
    op.create_index(
        "ix_delivery_logs_recipient_id", "delivery_logs", ["recipient_id"]
    )

    op.create_table(
        "push_tokens",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid,
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token", sa.Text, nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint("user_id", "token", name="uq_push_token_user_token"),
    )
    op.create_index("ix_push_tokens_user_id", "push_tokens", ["user_id"])
    op.create_index("ix_push_tokens_token", "push_tokens", ["token"])


def downgrade() -> None:
    op.drop_index("ix_push_tokens_token", table_name="push_tokens")
    op.drop_index("ix_push_tokens_user_id", table_name="push_tokens")
    op.drop_table("push_tokens")
    op.drop_index("ix_delivery_logs_recipient_id", table_name="delivery_logs")
    op.drop_index("ix_delivery_logs_message_id", table_name="delivery_logs")
    op.drop_table("delivery_logs")
    op.drop_index("ix_message_recipients_status", table_name="message_recipients")
    op.drop_index("ix_message_recipients_user_id", table_name="message_recipients")
    op.drop_index(
        "ix_message_recipients_message_id", table_name="message_recipients"
    )
    op.drop_table("message_recipients")
    op.drop_index("ix_messages_sender_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_profiles_role", table_name="profiles")
    op.drop_table("profiles")
    op.drop_table("auth_users")
