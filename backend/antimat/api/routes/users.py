"""Profile, settings, push token and presence heartbeat routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Body

from antimat.api.deps import CurrentUser, DbSession, SessionFactory
from antimat.schemas.base import Envelope
from antimat.schemas.user import (
    PingRead,
    PingRequest,
    ProfileUpdate,
    PushTokenUpdate,
    SettingsRead,
    SettingsUpdate,
    UserPayload,
    UserRead,
)
from antimat.services import accounts, presence
from antimat.services.push import push_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


@router.put("/push-token", response_model=Envelope)
async def save_push_token(data: PushTokenUpdate, current_user: CurrentUser, db: DbSession) -> Envelope:
    await accounts.set_push_token(db, current_user, data.fcm_token)
    return Envelope()


@router.put("/ping", response_model=Envelope[PingRead])
async def ping(
    current_user: CurrentUser,
    db: DbSession,
    session_factory: SessionFactory,
    data: Annotated[PingRequest | None, Body()] = None,
) -> Envelope[PingRead]:
    """
    Presence heartbeat.

    When the heartbeat starts or stops recording, the other members of the
    user's groups are notified from a detached task; the heartbeat never
    waits for it. Plain online/offline transitions are not pushed.
    """
    before, after = await presence.heartbeat(db, current_user, data.recording if data else None)
    if (before == "recording") != (after == "recording"):
        push_service.schedule(
            presence.broadcast_presence(session_factory, current_user.id, after),
            label=f"presence:{current_user.id}",
        )
    return Envelope(data=PingRead(status=after))


@router.get("/profile", response_model=Envelope[UserPayload])
async def get_profile(current_user: CurrentUser) -> Envelope[UserPayload]:
    return Envelope(data=UserPayload(user=UserRead.model_validate(current_user)))


@router.put("/profile", response_model=Envelope[UserPayload])
async def update_profile(data: ProfileUpdate, current_user: CurrentUser, db: DbSession) -> Envelope[UserPayload]:
    user = await accounts.update_profile(db, current_user, name=data.name, avatar=data.avatar)
    return Envelope(message="Profile updated", data=UserPayload(user=UserRead.model_validate(user)))


@router.put("/settings", response_model=Envelope[SettingsRead])
async def update_settings(data: SettingsUpdate, current_user: CurrentUser, db: DbSession) -> Envelope[SettingsRead]:
    """Penalty amount (weekly cooldown) and app preferences."""
    user = await accounts.update_settings(
        db,
        current_user,
        penalty_amount=data.penalty_amount,
        theme=data.theme,
        sound_enabled=data.sound_enabled,
        notifications_enabled=data.notifications_enabled,
    )
    return Envelope(message="Settings updated", data=SettingsRead.model_validate(user))
