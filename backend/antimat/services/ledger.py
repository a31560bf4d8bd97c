"""
Penalty ledger: violations, forgiveness, debt and statistics.

Invariant maintained by every mutation here and by the cascades in
groups/accounts: users.total_debt == sum(amount) of the user's unforgiven
penalties. It is kept incrementally; reconcile_debt() re-derives it.
"""

import logging
import random
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Literal
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from antimat.config import get_settings
from antimat.db.models import ChatMessage, GroupMember, MessageType, Penalty, User, utcnow
from antimat.errors import (
    AlreadyForgivenError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from antimat.services.groups import get_group_or_404

logger = logging.getLogger(__name__)

Period = Literal["all", "day", "week", "month"]

MASK_CHAR = "*"

# Informational only; nothing acts on it.
AI_PUNISHMENTS = [
    "Do 10 squats",
    "Drink a glass of water",
    "Call your mom and tell her you love her",
    "Do 5 push-ups",
    "Smile and think of something good",
    "Pay a compliment to the next person you meet",
    "Put one thing back where it belongs",
    "Write a thank-you note to someone",
    "March in place for 20 steps",
    "Hold your breath for 30 seconds",
]


def mask_word(word: str) -> str:
    """First character kept, the rest masked: 'тест' -> 'т***'."""
    if not word:
        return word
    return word[0] + MASK_CHAR * (len(word) - 1)


def random_punishment() -> str:
    return random.choice(AI_PUNISHMENTS)


def _add_months(d: datetime, months: int) -> datetime:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    # Clamp to the last day of the target month
    next_month = date(year + (month // 12), month % 12 + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return d.replace(year=year, month=month, day=min(d.day, last_day))


def period_start(period: str, now: datetime | None = None, tz: tzinfo | None = None) -> datetime | None:
    """
    Calendar-relative cutoff for a stats period, in UTC.

    day: since local midnight in tz (settings.stats_timezone by default);
    week: same time 7 days ago; month: same time one calendar month ago;
    all: no cutoff.
    """
    now = now or utcnow()
    if period == "day":
        local = now.astimezone(tz or ZoneInfo(get_settings().stats_timezone))
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(timezone.utc)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return _add_months(now, -1)
    if period == "all":
        return None
    raise ValidationError("Period must be one of: all, day, week, month")


# =============================================================================
# MUTATIONS
# =============================================================================


async def record_violation(
    db: AsyncSession,
    user_id: UUID,
    word: str,
    group_id: UUID | None = None,
    context: str | None = None,
    confidence: float | None = None,
) -> tuple[Penalty, User]:
    """
    Record a detected word.

    Snapshots the user's current penalty_amount into a new Penalty, adds it
    to total_debt, and announces it (word masked) in every group the user
    belongs to, not only group_id.
    """
    word = (word or "").strip()
    if not word:
        raise ValidationError("Word is required")

    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    # Assigned through the relationship so penalty.group is loaded for serialization
    group = await get_group_or_404(db, group_id) if group_id is not None else None

    amount = user.penalty_amount
    penalty = Penalty(
        user_id=user.id,
        group=group,
        word=word.lower(),
        amount=amount,
        context=context,
        confidence=confidence,
        ai_punishment=random_punishment(),
    )
    db.add(penalty)
    await db.flush()
    # Incremented in SQL so concurrent reports for one user cannot lose an update
    await db.execute(
        update(User)
        .where(User.id == user.id)
        .values(total_debt=User.total_debt + amount)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(user, attribute_names=["total_debt"])

    masked = mask_word(word)
    result = await db.execute(select(GroupMember.group_id).where(GroupMember.user_id == user.id))
    for gid in result.scalars():
        db.add(
            ChatMessage(
                group_id=gid,
                sender_id=user.id,
                type=MessageType.PENALTY.value,
                text=f'{user.name} was fined +{amount}₸ for the word "{masked}"',
                meta={
                    "penaltyId": str(penalty.id),
                    "penaltyAmount": amount,
                    "word": masked,
                },
            )
        )
    await db.flush()
    logger.info("Penalty %s recorded for user %s (+%d)", penalty.id, user.id, amount)
    return penalty, user


async def forgive_penalty(db: AsyncSession, penalty_id: UUID, actor_id: UUID) -> Penalty:
    """
    Mark a penalty forgiven and take its amount off the user's debt.

    Allowed for the penalised user, or for a group penalty: group owner or
    admins, or anyone when the group enables canMembersForgiveDebt.
    """
    penalty = await db.get(Penalty, penalty_id)
    if penalty is None:
        raise NotFoundError("Penalty not found")
    if penalty.is_forgiven:
        raise AlreadyForgivenError()

    if penalty.user_id != actor_id:
        if penalty.group_id is None:
            raise ForbiddenError("Not allowed to forgive this penalty")
        group = await get_group_or_404(db, penalty.group_id)
        if not (group.is_admin(actor_id) or group.setting("canMembersForgiveDebt")):
            raise ForbiddenError("Not allowed to forgive this penalty")

    # Conditional update so two concurrent forgives cannot both succeed
    result = await db.execute(
        update(Penalty)
        .where(Penalty.id == penalty.id, Penalty.is_forgiven.is_(False))
        .values(is_forgiven=True, forgiven_by_id=actor_id, forgiven_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyForgivenError()

    # "evaluate" applies the decrement to a User already loaded in this session
    await db.execute(
        update(User)
        .where(User.id == penalty.user_id)
        .values(total_debt=User.total_debt - penalty.amount)
        .execution_options(synchronize_session="evaluate")
    )
    await db.refresh(penalty)
    return penalty


async def clear_user_penalties(db: AsyncSession, user_id: UUID) -> None:
    """Admin debt clear: drop the user's ledger and zero their debt."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    await db.execute(delete(Penalty).where(Penalty.user_id == user_id))
    user.total_debt = 0
    await db.flush()


async def unforgiven_total(db: AsyncSession, user_id: UUID) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(Penalty.amount), 0)).where(
            Penalty.user_id == user_id, Penalty.is_forgiven.is_(False)
        )
    )
    return int(result.scalar() or 0)


async def reconcile_debt(db: AsyncSession, user_id: UUID) -> tuple[int, int]:
    """
    Re-derive total_debt from the ledger.

    Returns (previous value, corrected value).
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    previous = user.total_debt
    user.total_debt = await unforgiven_total(db, user_id)
    await db.flush()
    if previous != user.total_debt:
        logger.warning("Debt for user %s reconciled: %d -> %d", user_id, previous, user.total_debt)
    return previous, user.total_debt


# =============================================================================
# QUERIES
# =============================================================================


async def get_user_stats(db: AsyncSession, user_id: UUID, period: str = "all") -> dict:
    """Count/amount totals, zeroed when there are no rows."""
    query = select(
        func.count(Penalty.id),
        func.coalesce(func.sum(Penalty.amount), 0),
        func.coalesce(func.sum(case((Penalty.is_forgiven.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Penalty.is_forgiven.is_(True), Penalty.amount), else_=0)), 0),
    ).where(Penalty.user_id == user_id)

    start = period_start(period)
    if start is not None:
        query = query.where(Penalty.detected_at >= start)

    total_count, total_amount, forgiven_count, forgiven_amount = (await db.execute(query)).one()
    return {
        "total_count": int(total_count or 0),
        "total_amount": int(total_amount or 0),
        "forgiven_count": int(forgiven_count or 0),
        "forgiven_amount": int(forgiven_amount or 0),
    }


async def get_top_words(
    db: AsyncSession, user_id: UUID, limit: int = 5, group_id: UUID | None = None
) -> list[dict]:
    """Words ranked by violation count, descending."""
    count = func.count(Penalty.id).label("count")
    query = (
        select(Penalty.word, count, func.sum(Penalty.amount).label("total_amount"))
        .where(Penalty.user_id == user_id)
        .group_by(Penalty.word)
        .order_by(count.desc(), Penalty.word)
        .limit(limit)
    )
    if group_id is not None:
        query = query.where(Penalty.group_id == group_id)
    result = await db.execute(query)
    return [
        {"word": row.word, "count": int(row.count), "total_amount": int(row.total_amount or 0)}
        for row in result
    ]


async def get_daily_stats(db: AsyncSession, user_id: UUID, days: int = 7) -> list[dict]:
    """Per-day count/amount for the last `days` days, oldest first."""
    since = utcnow() - timedelta(days=days)
    result = await db.execute(
        select(Penalty.detected_at, Penalty.amount).where(
            Penalty.user_id == user_id, Penalty.detected_at >= since
        )
    )
    buckets: dict[str, dict] = {}
    for detected_at, amount in result:
        key = detected_at.date().isoformat()
        bucket = buckets.setdefault(key, {"date": key, "count": 0, "amount": 0})
        bucket["count"] += 1
        bucket["amount"] += amount
    return [buckets[k] for k in sorted(buckets)]


async def get_group_stats(db: AsyncSession, group_id: UUID) -> dict:
    """
    Group leaderboard: members ranked by total fined amount, each with
    their top 3 words in this group, plus the group's totals.
    """
    total_amount = func.sum(Penalty.amount).label("total_amount")
    result = await db.execute(
        select(
            Penalty.user_id,
            func.count(Penalty.id).label("total_count"),
            total_amount,
            User.name,
            User.total_debt,
            User.premium_expires_at,
        )
        .join(User, User.id == Penalty.user_id)
        .where(Penalty.group_id == group_id)
        .group_by(Penalty.user_id, User.name, User.total_debt, User.premium_expires_at)
        .order_by(total_amount.desc())
    )
    rows = result.all()

    now = utcnow()
    member_stats = []
    for row in rows:
        member_stats.append(
            {
                "user_id": row.user_id,
                "name": row.name,
                "total_debt": row.total_debt,
                "is_premium": row.premium_expires_at is not None and row.premium_expires_at > now,
                "total_count": int(row.total_count),
                "total_amount": int(row.total_amount or 0),
                "top_words": await get_top_words(db, row.user_id, limit=3, group_id=group_id),
            }
        )

    totals = (
        await db.execute(
            select(func.count(Penalty.id), func.coalesce(func.sum(Penalty.amount), 0)).where(
                Penalty.group_id == group_id
            )
        )
    ).one()
    return {
        "member_stats": member_stats,
        "total_stats": {"total_count": int(totals[0] or 0), "total_amount": int(totals[1] or 0)},
    }


async def list_history(
    db: AsyncSession,
    user_id: UUID,
    page: int = 1,
    limit: int = 20,
    group_id: UUID | None = None,
) -> tuple[list[Penalty], int]:
    """Newest first, paginated."""
    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    filters = [Penalty.user_id == user_id]
    if group_id is not None:
        filters.append(Penalty.group_id == group_id)

    total = (await db.execute(select(func.count(Penalty.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(Penalty)
        .where(*filters)
        .order_by(Penalty.detected_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars()), total
