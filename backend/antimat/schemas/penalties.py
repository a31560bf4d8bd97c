"""Penalty ledger schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from antimat.schemas.base import BaseSchema, Pagination


class PenaltyCreate(BaseSchema):
    """A detected word reported by the client."""

    word: str
    group_id: UUID | None = None
    context: str | None = None
    confidence: float | None = Field(None, ge=0, le=1)


class GroupRef(BaseSchema):
    id: UUID
    name: str


class PenaltyRead(BaseSchema):
    id: UUID
    user_id: UUID
    group_id: UUID | None = None
    group: GroupRef | None = None
    word: str
    amount: int
    is_forgiven: bool
    forgiven_by_id: UUID | None = None
    forgiven_at: datetime | None = None
    ai_punishment: str | None = None
    detected_at: datetime
    context: str | None = None
    confidence: float | None = None


class PenaltyRecorded(BaseSchema):
    penalty: PenaltyRead
    total_debt: int


class PenaltyHistory(BaseSchema):
    penalties: list[PenaltyRead]
    pagination: Pagination


class TopWord(BaseSchema):
    word: str
    count: int
    total_amount: int


class DailyStat(BaseSchema):
    date: str
    count: int
    amount: int


class UserStats(BaseSchema):
    total_count: int
    total_amount: int
    forgiven_count: int
    forgiven_amount: int
    current_debt: int
    penalty_amount: int
    top_words: list[TopWord]
    daily_stats: list[DailyStat]


class MemberStat(BaseSchema):
    user_id: UUID
    name: str
    total_debt: int
    is_premium: bool
    total_count: int
    total_amount: int
    top_words: list[TopWord]


class GroupTotals(BaseSchema):
    total_count: int
    total_amount: int


class GroupStats(BaseSchema):
    member_stats: list[MemberStat]
    total_stats: GroupTotals
