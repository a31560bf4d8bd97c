"""Group chat: append-only history, long-poll delivery and push fan-out."""

import asyncio
import logging
from collections import defaultdict
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from antimat.config import get_settings
from antimat.db.models import ChatMessage, Group, MessageType, User
from antimat.errors import ValidationError
from antimat.services.groups import member_tokens, require_member
from antimat.services.push import PushResult, push_service

logger = logging.getLogger(__name__)
settings = get_settings()


class ChatNotifier:
    """
    In-process wake-ups for long-poll waiters, keyed by group.

    Only an optimisation: waiters still re-query on their interval, so rows
    written by another worker process are picked up one interval later.
    """

    def __init__(self):
        self._waiters: dict[UUID, set[asyncio.Future]] = defaultdict(set)

    async def wait(self, group_id: UUID, timeout: float) -> bool:
        """Sleep until notify(group_id) or timeout. True if woken."""
        future = asyncio.get_running_loop().create_future()
        self._waiters[group_id].add(future)
        try:
            await asyncio.wait_for(future, timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            waiters = self._waiters.get(group_id)
            if waiters is not None:
                waiters.discard(future)
                if not waiters:
                    del self._waiters[group_id]

    def notify(self, *group_ids: UUID) -> None:
        for group_id in group_ids:
            for future in self._waiters.pop(group_id, set()):
                if not future.done():
                    future.set_result(None)


chat_notifier = ChatNotifier()


# =============================================================================
# HISTORY
# =============================================================================


async def send_message(db: AsyncSession, group_id: UUID, sender: User, text: str) -> tuple[ChatMessage, Group]:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")

    group = await require_member(db, group_id, sender.id)
    message = ChatMessage(group_id=group.id, sender=sender, type=MessageType.MESSAGE.value, text=text)
    db.add(message)
    await db.flush()
    return message, group


async def list_messages(
    db: AsyncSession, group_id: UUID, page: int = 1, limit: int = 50
) -> tuple[list[ChatMessage], int]:
    """
    One page of history counted from the newest message, returned oldest
    first so clients can append it directly.
    """
    page = max(page, 1)
    limit = max(min(limit, 100), 1)

    total = (
        await db.execute(select(func.count(ChatMessage.id)).where(ChatMessage.group_id == group_id))
    ).scalar() or 0
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.group_id == group_id)
        .order_by(ChatMessage.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    messages = list(result.scalars())
    messages.reverse()
    return messages, total


async def fetch_after(
    db: AsyncSession, group_id: UUID, last_message_id: int | None, batch: int
) -> list[ChatMessage]:
    """
    Messages after the cursor in ascending sequence order.

    Without a cursor, the most recent `batch` messages.
    """
    query = select(ChatMessage).where(ChatMessage.group_id == group_id)
    if last_message_id is None:
        result = await db.execute(query.order_by(ChatMessage.id.desc()).limit(batch))
        messages = list(result.scalars())
        messages.reverse()
        return messages

    result = await db.execute(
        query.where(ChatMessage.id > last_message_id).order_by(ChatMessage.id).limit(batch)
    )
    return list(result.scalars())


# =============================================================================
# LONG-POLL
# =============================================================================


async def poll_messages(
    session_factory: async_sessionmaker[AsyncSession],
    group_id: UUID,
    last_message_id: int | None = None,
    timeout_ms: int | None = None,
    interval_ms: int | None = None,
    batch: int | None = None,
    notifier: ChatNotifier = chat_notifier,
) -> tuple[list[ChatMessage], bool]:
    """
    Wait for messages after last_message_id.

    Returns as soon as at least one exists, or ([], False) once timeout_ms
    has fully elapsed. Each check runs in its own short session so the wait
    does not hold a pooled connection.
    """
    timeout = (timeout_ms if timeout_ms is not None else settings.chat_poll_timeout_ms) / 1000
    interval = (interval_ms if interval_ms is not None else settings.chat_poll_interval_ms) / 1000
    batch = batch or settings.chat_poll_batch

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        async with session_factory() as db:
            messages = await fetch_after(db, group_id, last_message_id, batch)
        if messages:
            return messages, True

        remaining = deadline - loop.time()
        if remaining <= 0:
            return [], False
        await notifier.wait(group_id, min(interval, remaining))


# =============================================================================
# PUSH
# =============================================================================


async def push_chat_message(
    session_factory: async_sessionmaker[AsyncSession],
    message: ChatMessage,
    group_name: str,
) -> PushResult | None:
    """Notify every other member holding a delivery token."""
    async with session_factory() as db:
        tokens = await member_tokens(db, message.group_id, exclude_user_id=message.sender_id)
    if not tokens:
        return None

    sender_name = message.sender.name if message.sender else ""
    result = await push_service.send_to_tokens(
        tokens,
        notification={"title": group_name, "body": f"{sender_name or 'Member'}: {message.text}"},
        data={
            "type": "chat_message",
            "groupId": str(message.group_id),
            "groupName": group_name,
            "senderName": sender_name,
            "messageId": str(message.id),
            "text": message.text,
            "createdAt": message.created_at.isoformat(),
        },
    )
    if result is not None and result.failure_count:
        logger.warning(
            "Chat push for message %s: %d of %d deliveries failed",
            message.id,
            result.failure_count,
            len(tokens),
        )
    return result
