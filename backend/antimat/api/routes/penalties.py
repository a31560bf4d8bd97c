"""Penalty ledger routes: report, stats, history, forgive."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from antimat.api.deps import CurrentUser, DbSession
from antimat.schemas.base import Envelope, Pagination
from antimat.schemas.penalties import (
    PenaltyCreate,
    PenaltyHistory,
    PenaltyRead,
    PenaltyRecorded,
    UserStats,
)
from antimat.services import ledger
from antimat.services.chat import chat_notifier
from antimat.services.groups import user_group_ids

router = APIRouter(prefix="/penalties", tags=["penalties"])


@router.post("/add", response_model=Envelope[PenaltyRecorded], status_code=status.HTTP_201_CREATED)
async def add_penalty(data: PenaltyCreate, current_user: CurrentUser, db: DbSession) -> Envelope[PenaltyRecorded]:
    """
    Report a detected word.

    Adds the user's current fine to their debt and posts a masked notice to
    every group they belong to.
    """
    penalty, user = await ledger.record_violation(
        db,
        current_user.id,
        data.word,
        group_id=data.group_id,
        context=data.context,
        confidence=data.confidence,
    )
    group_ids = await user_group_ids(db, user.id)
    await db.commit()
    chat_notifier.notify(*group_ids)

    return Envelope(
        message="Penalty added",
        data=PenaltyRecorded(penalty=PenaltyRead.model_validate(penalty), total_debt=user.total_debt),
    )


@router.get("/stats", response_model=Envelope[UserStats])
async def get_stats(
    current_user: CurrentUser,
    db: DbSession,
    period: ledger.Period = "all",
) -> Envelope[UserStats]:
    totals = await ledger.get_user_stats(db, current_user.id, period)
    return Envelope(
        data=UserStats(
            **totals,
            current_debt=current_user.total_debt,
            penalty_amount=current_user.penalty_amount,
            top_words=await ledger.get_top_words(db, current_user.id, limit=5),
            daily_stats=await ledger.get_daily_stats(db, current_user.id, days=7),
        )
    )


@router.get("/history", response_model=Envelope[PenaltyHistory])
async def get_history(
    current_user: CurrentUser,
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    group_id: Annotated[UUID | None, Query(alias="groupId")] = None,
) -> Envelope[PenaltyHistory]:
    penalties, total = await ledger.list_history(db, current_user.id, page=page, limit=limit, group_id=group_id)
    return Envelope(
        data=PenaltyHistory(
            penalties=[PenaltyRead.model_validate(p) for p in penalties],
            pagination=Pagination.build(page, limit, total),
        )
    )


@router.post("/{penalty_id}/forgive", response_model=Envelope)
async def forgive_penalty(penalty_id: UUID, current_user: CurrentUser, db: DbSession) -> Envelope:
    await ledger.forgive_penalty(db, penalty_id, current_user.id)
    return Envelope(message="Penalty forgiven")
