"""
SQLAlchemy 2.0 Models for Antimat.

Uses modern declarative syntax with Mapped[] type annotations.
Column types are portable (PostgreSQL in production, SQLite in tests):
JSON upgrades to JSONB on PostgreSQL and timestamps are always UTC-aware.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum as PyEnum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from antimat.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY columns
MessageSeq = BigInteger().with_variant(Integer(), "sqlite")


# =============================================================================
# ENUMS / CONSTANTS
# =============================================================================


class MemberRole(str, PyEnum):
    """Role of a user inside a group."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class MessageType(str, PyEnum):
    """Kind of chat message."""

    MESSAGE = "message"
    PENALTY = "penalty"
    SYSTEM = "system"
    JOIN = "join"
    LEAVE = "leave"


FREE_WORD_LIMIT = 10
PREMIUM_WORD_LIMIT = 30
FREE_GROUP_LIMIT = 2
PREMIUM_GROUP_LIMIT = 30

DEFAULT_PENALTY_AMOUNT = 100
MIN_PENALTY_AMOUNT = 1
MAX_PENALTY_AMOUNT = 100_000
PENALTY_AMOUNT_COOLDOWN = timedelta(days=7)

DEFAULT_USER_SETTINGS = {
    "theme": "dark",
    "soundEnabled": True,
    "notificationsEnabled": True,
}

DEFAULT_GROUP_SETTINGS = {
    "canMembersAddWords": False,
    "canMembersSeeAllStats": True,
    "canMembersForgiveDebt": False,
}


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """
    Application account.

    total_debt is maintained incrementally by the penalty ledger and must
    always equal the sum of the user's unforgiven penalty amounts.
    Premium is derived from premium_expires_at; there is no stored flag.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    penalty_amount: Mapped[int] = mapped_column(Integer, default=DEFAULT_PENALTY_AMOUNT, nullable=False)
    penalty_amount_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    total_debt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    premium_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    continuous_recording: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONType, default=lambda: dict(DEFAULT_USER_SETTINGS), nullable=False
    )
    fcm_token: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Presence inputs
    last_seen: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    is_recording: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    banned_words: Mapped[list["BannedWord"]] = relationship(
        "BannedWord",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="BannedWord.added_at",
        lazy="selectin",
    )
    memberships: Mapped[list["GroupMember"]] = relationship(
        "GroupMember", back_populates="user", passive_deletes=True
    )

    def premium_active(self, now: datetime | None = None) -> bool:
        """Premium iff an expiry is set and still in the future."""
        if self.premium_expires_at is None:
            return False
        return self.premium_expires_at > (now or utcnow())

    @property
    def is_premium(self) -> bool:
        return self.premium_active()

    @property
    def word_limit(self) -> int:
        return PREMIUM_WORD_LIMIT if self.is_premium else FREE_WORD_LIMIT

    @property
    def group_limit(self) -> int:
        return PREMIUM_GROUP_LIMIT if self.is_premium else FREE_GROUP_LIMIT

    def next_penalty_change_at(self) -> datetime:
        return self.penalty_amount_updated_at + PENALTY_AMOUNT_COOLDOWN

    def can_update_penalty_amount(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.next_penalty_change_at()


class BannedWord(Base):
    """A word the user wants to be fined for."""

    __tablename__ = "banned_words"
    __table_args__ = (UniqueConstraint("user_id", "word", name="unique_user_word"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    word: Mapped[str] = mapped_column(String(100), nullable=False)
    added_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="banned_words")


class Group(Base):
    """
    Group of users sharing a chat and a leaderboard.

    The owner is always a member with role 'owner'. The invite code is unique
    at the storage level; generation only pre-checks for collisions.
    """

    __tablename__ = "groups"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    invite_code: Mapped[str] = mapped_column(String(5), unique=True, index=True, nullable=False)
    owner_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONType, default=lambda: dict(DEFAULT_GROUP_SETTINGS), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    members: Mapped[list["GroupMember"]] = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupMember.joined_at",
        lazy="selectin",
    )

    def member(self, user_id: UUID) -> Optional["GroupMember"]:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def is_member(self, user_id: UUID) -> bool:
        return self.member(user_id) is not None

    def is_admin(self, user_id: UUID) -> bool:
        """Owner counts as admin."""
        m = self.member(user_id)
        return m is not None and m.role in (MemberRole.OWNER.value, MemberRole.ADMIN.value)

    @property
    def admin_ids(self) -> list[UUID]:
        return [
            m.user_id
            for m in self.members
            if m.role in (MemberRole.OWNER.value, MemberRole.ADMIN.value)
        ]

    def setting(self, key: str) -> bool:
        return bool((self.settings or {}).get(key, DEFAULT_GROUP_SETTINGS.get(key, False)))


class GroupMember(Base):
    """Membership row; a user's groups are the set of these rows."""

    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="unique_group_member"),
        Index("idx_group_members_user", "user_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    group_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), default=MemberRole.MEMBER.value, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    group: Mapped["Group"] = relationship("Group", back_populates="members")
    user: Mapped["User"] = relationship("User", back_populates="memberships", lazy="selectin")


class Penalty(Base):
    """
    A recorded violation.

    amount is a snapshot of the user's penalty_amount at creation time.
    Only the forgiveness fields ever change after insert.
    """

    __tablename__ = "penalties"
    __table_args__ = (
        Index("idx_penalties_user_detected", "user_id", "detected_at"),
        Index("idx_penalties_group_detected", "group_id", "detected_at"),
        Index("idx_penalties_word", "word"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True
    )
    word: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    is_forgiven: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    forgiven_by_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    forgiven_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    ai_punishment: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    detected_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    # Detection metadata
    context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    group: Mapped[Optional["Group"]] = relationship("Group", lazy="selectin")


class ChatMessage(Base):
    """
    Append-only group chat row.

    id is a monotonically increasing sequence and is the ordering key for
    history and long-poll cursors, so rows sharing a timestamp are still
    totally ordered.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (Index("idx_chat_messages_group_id", "group_id", "id"),)

    id: Mapped[int] = mapped_column(MessageSeq, primary_key=True, autoincrement=True)
    group_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String(20), default=MessageType.MESSAGE.value, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    sender: Mapped[Optional["User"]] = relationship("User", lazy="selectin")


class AppUpdate(Base):
    """Uploaded APK release. The newest row is the current release."""

    __tablename__ = "app_updates"
    __table_args__ = (Index("idx_app_updates_created_at", "created_at"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    version: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)  # storage key
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
