"""
Group routes: membership, leaderboard, chat and long-poll.

Routes that post chat rows commit before waking long-poll waiters, so a
woken poller always finds the new row.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from antimat.api.deps import CurrentUser, DbSession, SessionFactory
from antimat.config import get_settings
from antimat.db.models import Group, GroupMember
from antimat.schemas.base import Envelope, Pagination
from antimat.schemas.chat import (
    ChatHistory,
    ChatMessagePayload,
    ChatMessageRead,
    ChatMessageRequest,
    ChatPoll,
)
from antimat.schemas.groups import (
    GroupCreate,
    GroupJoin,
    GroupList,
    GroupPayload,
    GroupRead,
    GroupSettings,
    GroupSettingsUpdate,
    MemberRead,
    MemberUser,
    OwnershipTransfer,
    RoleUpdate,
)
from antimat.schemas.penalties import GroupStats
from antimat.services import chat, groups, ledger
from antimat.services.chat import chat_notifier
from antimat.services.presence import compute_status
from antimat.services.push import push_service

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/groups", tags=["groups"])


# =============================================================================
# HELPERS
# =============================================================================


def invite_link(code: str) -> str:
    return f"{settings.site_url.rstrip('/')}/invite/{code}"


def _member_read(member: GroupMember) -> MemberRead:
    user = MemberUser.model_validate(member.user)
    user.status = compute_status(member.user)
    return MemberRead(user=user, role=member.role, joined_at=member.joined_at)


def _group_read(group: Group) -> GroupRead:
    return GroupRead(
        id=group.id,
        name=group.name,
        description=group.description,
        invite_code=group.invite_code,
        invite_link=invite_link(group.invite_code),
        owner_id=group.owner_id,
        admin_ids=group.admin_ids,
        settings=GroupSettings.model_validate(group.settings or {}),
        members=[_member_read(m) for m in group.members],
        created_at=group.created_at,
    )


# =============================================================================
# MEMBERSHIP
# =============================================================================


@router.get("", response_model=Envelope[GroupList])
async def list_groups(current_user: CurrentUser, db: DbSession) -> Envelope[GroupList]:
    """Groups of the current user, members annotated with presence."""
    user_groups = await groups.list_user_groups(db, current_user.id)
    return Envelope(data=GroupList(groups=[_group_read(g) for g in user_groups]))


@router.post("/create", response_model=Envelope[GroupPayload], status_code=status.HTTP_201_CREATED)
async def create_group(data: GroupCreate, current_user: CurrentUser, db: DbSession) -> Envelope[GroupPayload]:
    group = await groups.create_group(db, current_user, data.name, data.description)
    return Envelope(message="Group created", data=GroupPayload(group=_group_read(group)))


@router.post("/join", response_model=Envelope[GroupPayload])
async def join_group(data: GroupJoin, current_user: CurrentUser, db: DbSession) -> Envelope[GroupPayload]:
    group = await groups.join_group(db, current_user, data.code)
    await db.commit()
    chat_notifier.notify(group.id)
    return Envelope(message="You joined the group", data=GroupPayload(group=_group_read(group)))


@router.get("/{group_id}", response_model=Envelope[GroupPayload])
async def get_group(group_id: UUID, current_user: CurrentUser, db: DbSession) -> Envelope[GroupPayload]:
    group = await groups.require_member(db, group_id, current_user.id)
    return Envelope(data=GroupPayload(group=_group_read(group)))


@router.delete("/{group_id}/leave", response_model=Envelope)
async def leave_group(group_id: UUID, current_user: CurrentUser, db: DbSession) -> Envelope:
    await groups.leave_group(db, current_user, group_id)
    await db.commit()
    chat_notifier.notify(group_id)
    return Envelope(message="You left the group")


@router.delete("/{group_id}", response_model=Envelope)
async def delete_group(group_id: UUID, current_user: CurrentUser, db: DbSession) -> Envelope:
    """Owner only. Messages and penalties of the group go with it."""
    await groups.delete_group(db, current_user, group_id)
    return Envelope(message="Group deleted")


@router.put("/{group_id}/settings", response_model=Envelope[GroupPayload])
async def update_group_settings(
    group_id: UUID,
    data: GroupSettingsUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> Envelope[GroupPayload]:
    changes = data.model_dump(by_alias=True, exclude_none=True)
    group = await groups.update_settings(db, current_user, group_id, changes)
    return Envelope(message="Settings updated", data=GroupPayload(group=_group_read(group)))


@router.put("/{group_id}/members/{user_id}/role", response_model=Envelope[GroupPayload])
async def set_member_role(
    group_id: UUID,
    user_id: UUID,
    data: RoleUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> Envelope[GroupPayload]:
    group = await groups.set_member_role(db, current_user, group_id, user_id, data.role)
    return Envelope(message="Role updated", data=GroupPayload(group=_group_read(group)))


@router.post("/{group_id}/transfer", response_model=Envelope[GroupPayload])
async def transfer_ownership(
    group_id: UUID,
    data: OwnershipTransfer,
    current_user: CurrentUser,
    db: DbSession,
) -> Envelope[GroupPayload]:
    group = await groups.transfer_ownership(db, current_user, group_id, data.user_id)
    await db.commit()
    chat_notifier.notify(group.id)
    return Envelope(message="Ownership transferred", data=GroupPayload(group=_group_read(group)))


# =============================================================================
# LEADERBOARD
# =============================================================================


@router.get("/{group_id}/stats", response_model=Envelope[GroupStats])
async def get_group_stats(group_id: UUID, current_user: CurrentUser, db: DbSession) -> Envelope[GroupStats]:
    """
    Members ranked by total fined amount. When the group hides stats from
    members, non-admins only see their own row.
    """
    group = await groups.require_member(db, group_id, current_user.id)
    stats = await ledger.get_group_stats(db, group.id)
    if not group.setting("canMembersSeeAllStats") and not group.is_admin(current_user.id):
        stats["member_stats"] = [m for m in stats["member_stats"] if m["user_id"] == current_user.id]
    return Envelope(data=GroupStats.model_validate(stats))


# =============================================================================
# CHAT
# =============================================================================


@router.get("/{group_id}/chat", response_model=Envelope[ChatHistory])
async def list_chat(
    group_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> Envelope[ChatHistory]:
    await groups.require_member(db, group_id, current_user.id)
    messages, total = await chat.list_messages(db, group_id, page=page, limit=limit)
    return Envelope(
        data=ChatHistory(
            messages=[ChatMessageRead.model_validate(m) for m in messages],
            pagination=Pagination.build(page, limit, total),
        )
    )


@router.get("/{group_id}/chat/poll", response_model=Envelope[ChatPoll])
async def poll_chat(
    group_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    session_factory: SessionFactory,
    last_message_id: Annotated[int | None, Query(alias="lastMessageId")] = None,
    timeout_ms: Annotated[int | None, Query(alias="timeoutMs", ge=0)] = None,
) -> Envelope[ChatPoll]:
    """
    Long-poll for messages after lastMessageId.

    Answers as soon as something is there; otherwise after the timeout with
    an empty list. Clients re-issue the call with the last id they received.
    """
    await groups.require_member(db, group_id, current_user.id)
    # Return the request's connection to the pool for the duration of the wait
    await db.commit()

    timeout = settings.chat_poll_timeout_ms
    if timeout_ms is not None:
        timeout = min(timeout_ms, settings.chat_poll_timeout_ms)

    messages, has_new = await chat.poll_messages(session_factory, group_id, last_message_id, timeout_ms=timeout)
    return Envelope(
        data=ChatPoll(
            messages=[ChatMessageRead.model_validate(m) for m in messages],
            has_new_messages=has_new,
        )
    )


@router.post("/{group_id}/chat", response_model=Envelope[ChatMessagePayload], status_code=status.HTTP_201_CREATED)
async def send_chat_message(
    group_id: UUID,
    data: ChatMessageRequest,
    current_user: CurrentUser,
    db: DbSession,
    session_factory: SessionFactory,
) -> Envelope[ChatMessagePayload]:
    message, group = await chat.send_message(db, group_id, current_user, data.text)
    await db.commit()
    chat_notifier.notify(group.id)

    if push_service.is_ready():
        push_service.schedule(
            chat.push_chat_message(session_factory, message, group.name),
            label=f"chat:{message.id}",
        )
    return Envelope(data=ChatMessagePayload(message=ChatMessageRead.model_validate(message)))
