"""Initial schema with all tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

This migration creates the complete Antimat database schema:
- Extensions: uuid-ossp
- Tables: users, banned_words, groups, group_members, penalties, chat_messages, app_updates
- Indexes: lookup and ordering indexes for ledger, chat and releases
- Triggers: updated_at auto-update function and trigger on users
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # EXTENSIONS
    # ==========================================================================
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ==========================================================================
    # USERS TABLE
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("uuid_generate_v4()"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("avatar", sa.Text(), nullable=True),
        sa.Column("penalty_amount", sa.Integer(), server_default=sa.text("100"), nullable=False),
        sa.Column("penalty_amount_updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("total_debt", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("premium_expires_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("continuous_recording", sa.Boolean(), server_default=sa.text("FALSE"), nullable=False),
        sa.Column("settings", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("fcm_token", sa.String(512), nullable=True),
        sa.Column("last_seen", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_recording", sa.Boolean(), server_default=sa.text("FALSE"), nullable=False),
        sa.Column("last_active_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("penalty_amount BETWEEN 1 AND 100000", name="valid_penalty_amount"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # ==========================================================================
    # BANNED_WORDS TABLE
    # ==========================================================================
    op.create_table(
        "banned_words",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("uuid_generate_v4()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("word", sa.String(100), nullable=False),
        sa.Column("added_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "word", name="unique_user_word"),
    )
    op.create_index("ix_banned_words_user_id", "banned_words", ["user_id"])

    # ==========================================================================
    # GROUPS TABLE
    # ==========================================================================
    op.create_table(
        "groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("uuid_generate_v4()"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("invite_code", sa.String(5), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("settings", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        # Authoritative guard; code generation only pre-checks
        sa.UniqueConstraint("invite_code"),
        sa.CheckConstraint("invite_code ~ '^[A-Z0-9]{5}$'", name="valid_invite_code"),
    )
    op.create_index("ix_groups_invite_code", "groups", ["invite_code"])
    op.create_index("ix_groups_owner_id", "groups", ["owner_id"])

    # ==========================================================================
    # GROUP_MEMBERS TABLE
    # ==========================================================================
    op.create_table(
        "group_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("uuid_generate_v4()"), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(20), server_default="member", nullable=False),
        sa.Column("joined_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("group_id", "user_id", name="unique_group_member"),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member')", name="valid_member_role"),
    )
    op.create_index("idx_group_members_user", "group_members", ["user_id"])

    # ==========================================================================
    # PENALTIES TABLE
    # ==========================================================================
    op.create_table(
        "penalties",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("uuid_generate_v4()"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("word", sa.String(100), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("is_forgiven", sa.Boolean(), server_default=sa.text("FALSE"), nullable=False),
        sa.Column("forgiven_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("forgiven_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("ai_punishment", sa.String(255), nullable=True),
        sa.Column("detected_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["forgiven_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("amount > 0", name="valid_amount"),
    )
    op.create_index("idx_penalties_user_detected", "penalties", ["user_id", "detected_at"])
    op.create_index("idx_penalties_group_detected", "penalties", ["group_id", "detected_at"])
    op.create_index("idx_penalties_word", "penalties", ["word"])

    # ==========================================================================
    # CHAT_MESSAGES TABLE
    # ==========================================================================
    op.create_table(
        "chat_messages",
        sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("type", sa.String(20), server_default="message", nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "type IN ('message', 'penalty', 'system', 'join', 'leave')",
            name="valid_message_type",
        ),
    )
    # Poll cursor scans: WHERE group_id = ? AND id > ? ORDER BY id
    op.create_index("idx_chat_messages_group_id", "chat_messages", ["group_id", "id"])
    op.create_index("ix_chat_messages_sender_id", "chat_messages", ["sender_id"])

    # ==========================================================================
    # APP_UPDATES TABLE
    # ==========================================================================
    op.create_table(
        "app_updates",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("uuid_generate_v4()"), nullable=False),
        sa.Column("version", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), server_default="", nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("file_path", sa.String(512), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("version"),
    )
    op.create_index("idx_app_updates_created_at", "app_updates", [sa.text("created_at DESC")])

    # ==========================================================================
    # UPDATED_AT TRIGGER FUNCTION
    # ==========================================================================
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER update_users_updated_at
            BEFORE UPDATE ON users
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS update_users_updated_at ON users")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    # Drop tables in reverse dependency order
    op.drop_table("app_updates")
    op.drop_table("chat_messages")
    op.drop_table("penalties")
    op.drop_table("group_members")
    op.drop_table("groups")
    op.drop_table("banned_words")
    op.drop_table("users")
