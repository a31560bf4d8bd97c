"""
Accounts: registration, credentials, banned words, settings and the admin
operations on users (premium, stats, full account deletion).
"""

import logging
from datetime import timedelta
from uuid import UUID

from passlib.context import CryptContext
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from antimat.db.models import (
    DEFAULT_USER_SETTINGS,
    MAX_PENALTY_AMOUNT,
    MIN_PENALTY_AMOUNT,
    BannedWord,
    ChatMessage,
    Group,
    GroupMember,
    Penalty,
    User,
    utcnow,
)
from antimat.errors import (
    AuthError,
    ConflictError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from antimat.services.groups import destroy_group

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6
MIN_WORD_LENGTH = 2

DEFAULT_BANNED_WORDS = ["сука", "блять", "хуй", "пизда", "ебать"]

PREMIUM_PERIODS = {
    "7d": timedelta(days=7),
    "14d": timedelta(days=14),
    "1m": timedelta(days=30),
    "3m": timedelta(days=90),
    "6m": timedelta(days=180),
    "12m": timedelta(days=365),
}

INVALID_CREDENTIALS = "Invalid email or password"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


async def get_user_or_404(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# =============================================================================
# REGISTRATION / LOGIN
# =============================================================================


async def register(db: AsyncSession, email: str, password: str, name: str) -> User:
    """Create an account seeded with the default banned words."""
    email = (email or "").strip().lower()
    name = (name or "").strip()
    if not email or not password or not name:
        raise ValidationError("Email, password and name are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("A user with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        settings=dict(DEFAULT_USER_SETTINGS),
        banned_words=[BannedWord(word=word) for word in DEFAULT_BANNED_WORDS],
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError("A user with this email already exists")
    logger.info("Registered user %s", user.id)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """Same error for an unknown email and a wrong password."""
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("Email and password are required")

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        # Keep timing close to the wrong-password path
        pwd_context.dummy_verify()
        raise AuthError(INVALID_CREDENTIALS)
    if not verify_password(password, user.password_hash):
        raise AuthError(INVALID_CREDENTIALS)

    user.last_active_at = utcnow()
    return user


# =============================================================================
# BANNED WORDS
# =============================================================================


def word_summary(user: User) -> dict:
    return {
        "words": [w.word for w in user.banned_words],
        "limit": user.word_limit,
        "count": len(user.banned_words),
        "is_premium": user.is_premium,
    }


async def add_word(db: AsyncSession, user: User, word: str) -> User:
    word = (word or "").strip().lower()
    if len(word) < MIN_WORD_LENGTH:
        raise ValidationError(f"Word must be at least {MIN_WORD_LENGTH} characters")
    if any(w.word == word for w in user.banned_words):
        raise ConflictError("This word is already in your list")

    limit = user.word_limit
    if len(user.banned_words) >= limit:
        hint = "" if user.is_premium else " Upgrade to Premium to track up to 30 words."
        raise LimitExceededError(f"Word limit reached ({limit}).{hint}")

    user.banned_words.append(BannedWord(word=word))
    await db.flush()
    return user


async def remove_word(db: AsyncSession, user: User, word: str) -> User:
    word = (word or "").strip().lower()
    for banned in user.banned_words:
        if banned.word == word:
            user.banned_words.remove(banned)
            await db.flush()
            return user
    raise NotFoundError("Word not found")


# =============================================================================
# PROFILE & SETTINGS
# =============================================================================


async def update_profile(db: AsyncSession, user: User, name: str | None = None, avatar: str | None = None) -> User:
    if name is not None and name.strip():
        user.name = name.strip()
    if avatar is not None:
        user.avatar = avatar
    await db.flush()
    return user


async def update_settings(
    db: AsyncSession,
    user: User,
    penalty_amount: int | None = None,
    theme: str | None = None,
    sound_enabled: bool | None = None,
    notifications_enabled: bool | None = None,
) -> User:
    """
    Update the per-violation fine and app preferences.

    The fine may change at most once per cooldown period; submitting the
    current value is not a change.
    """
    if penalty_amount is not None and penalty_amount != user.penalty_amount:
        now = utcnow()
        if not user.can_update_penalty_amount(now):
            next_change = user.next_penalty_change_at().strftime("%d.%m.%Y")
            raise ValidationError(f"The penalty amount can be changed after {next_change}")
        user.penalty_amount = max(MIN_PENALTY_AMOUNT, min(penalty_amount, MAX_PENALTY_AMOUNT))
        user.penalty_amount_updated_at = now

    # Reassign so the JSON column is marked dirty
    prefs = {**DEFAULT_USER_SETTINGS, **(user.settings or {})}
    if theme:
        prefs["theme"] = theme
    if sound_enabled is not None:
        prefs["soundEnabled"] = sound_enabled
    if notifications_enabled is not None:
        prefs["notificationsEnabled"] = notifications_enabled
    user.settings = prefs

    await db.flush()
    return user


async def set_push_token(db: AsyncSession, user: User, token: str) -> None:
    token = (token or "").strip()
    if not token:
        raise ValidationError("FCM token is required")
    user.fcm_token = token
    await db.flush()


# =============================================================================
# ADMIN
# =============================================================================


async def grant_premium(db: AsyncSession, user_id: UUID, period: str) -> User:
    """Extend an active subscription from its expiry, otherwise start now."""
    duration = PREMIUM_PERIODS.get(period)
    if duration is None:
        raise ValidationError(f"Invalid period. Available: {', '.join(PREMIUM_PERIODS)}")

    user = await get_user_or_404(db, user_id)
    now = utcnow()
    if user.premium_active(now):
        user.premium_expires_at = user.premium_expires_at + duration
    else:
        user.premium_expires_at = now + duration
    await db.flush()
    logger.info("Premium %s granted to %s until %s", period, user.id, user.premium_expires_at)
    return user


async def revoke_premium(db: AsyncSession, user_id: UUID) -> User:
    user = await get_user_or_404(db, user_id)
    user.premium_expires_at = None
    await db.flush()
    return user


async def admin_stats(db: AsyncSession) -> dict:
    now = utcnow()
    total_users = (await db.execute(select(func.count(User.id)))).scalar() or 0
    total_groups = (await db.execute(select(func.count(Group.id)))).scalar() or 0
    active_premium = (
        await db.execute(select(func.count(User.id)).where(User.premium_expires_at > now))
    ).scalar() or 0
    penalties_count, penalties_amount = (
        await db.execute(select(func.count(Penalty.id), func.coalesce(func.sum(Penalty.amount), 0)))
    ).one()
    return {
        "total_users": total_users,
        "total_groups": total_groups,
        "active_premium": active_premium,
        "total_penalties": int(penalties_count or 0),
        "total_penalties_amount": int(penalties_amount or 0),
    }


async def list_users(
    db: AsyncSession, page: int = 1, limit: int = 50, search: str | None = None
) -> tuple[list[User], int]:
    """Newest accounts first; search is a case-insensitive substring of email or name."""
    page = max(page, 1)
    limit = max(min(limit, 200), 1)

    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(User.email.ilike(pattern), User.name.ilike(pattern)))

    total = (await db.execute(select(func.count(User.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(User)
        .where(*filters)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars()), total


async def push_tokens(db: AsyncSession) -> list[str]:
    result = await db.execute(select(User.fcm_token).where(User.fcm_token.is_not(None)))
    return [token for token in result.scalars() if token]


async def delete_account(db: AsyncSession, user_id: UUID) -> None:
    """
    Remove a user and everything hanging off them.

    Groups they own are destroyed outright; other memberships are dropped.
    Then their penalties, authored messages and the user row go. Runs inside
    the caller's transaction, so a failure leaves nothing half-deleted.
    """
    user = await get_user_or_404(db, user_id)
    try:
        owned = await db.execute(select(Group).where(Group.owner_id == user_id))
        owned_groups = list(owned.scalars())
        for group in owned_groups:
            await destroy_group(db, group)
        logger.info("Account %s: %d owned groups destroyed", user_id, len(owned_groups))

        await db.execute(delete(GroupMember).where(GroupMember.user_id == user_id))
        await db.execute(delete(Penalty).where(Penalty.user_id == user_id))
        await db.execute(
            update(Penalty).where(Penalty.forgiven_by_id == user_id).values(forgiven_by_id=None)
        )
        await db.execute(delete(ChatMessage).where(ChatMessage.sender_id == user_id))
        logger.info("Account %s: memberships, penalties and messages removed", user_id)

        await db.delete(user)
        await db.flush()
    except Exception:
        logger.exception("Account deletion failed for %s", user_id)
        raise
    logger.info("Account %s deleted", user_id)
