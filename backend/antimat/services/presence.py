"""Presence: online / recording / offline derived from heartbeats."""

import logging
from datetime import datetime, timedelta
from typing import Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from antimat.db.models import User, utcnow
from antimat.services.groups import member_tokens, user_group_ids
from antimat.services.push import push_service

logger = logging.getLogger(__name__)

ONLINE_THRESHOLD = timedelta(milliseconds=120_000)

Status = Literal["recording", "online", "offline"]


def compute_status(
    user: User,
    recording_override: bool | None = None,
    last_seen_override: datetime | None = None,
    now: datetime | None = None,
) -> Status:
    """
    Status from the last heartbeat.

    A user is recent when now - last_seen < 120s (the boundary itself is
    offline). Recording only counts while recent.
    """
    now = now or utcnow()
    last_seen = last_seen_override or user.last_seen
    is_recent = last_seen is not None and now - last_seen < ONLINE_THRESHOLD
    recording = user.is_recording if recording_override is None else recording_override

    if recording and is_recent:
        return "recording"
    if is_recent:
        return "online"
    return "offline"


async def heartbeat(db: AsyncSession, user: User, recording: bool | None = None) -> tuple[Status, Status]:
    """
    Record a heartbeat. Returns (status before, status after).
    """
    now = utcnow()
    before = compute_status(user, now=now)
    user.last_seen = now
    if recording is not None:
        user.is_recording = recording
    await db.flush()
    return before, compute_status(user, now=now)


async def broadcast_presence(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: UUID,
    status: Status,
) -> int:
    """
    Push the user's status to every other member of each of their groups.

    Opens its own session; meant to run detached from the request.
    Returns the number of groups notified.
    """
    notified = 0
    async with session_factory() as db:
        for group_id in await user_group_ids(db, user_id):
            tokens = await member_tokens(db, group_id, exclude_user_id=user_id)
            if not tokens:
                continue
            try:
                await push_service.send_to_tokens(
                    tokens,
                    data={
                        "type": "presence",
                        "groupId": str(group_id),
                        "userId": str(user_id),
                        "status": status,
                    },
                )
                notified += 1
                logger.info("Sent presence push: user=%s status=%s group=%s", user_id, status, group_id)
            except Exception as e:
                logger.warning("Presence push to group %s failed: %s", group_id, e)
    return notified
