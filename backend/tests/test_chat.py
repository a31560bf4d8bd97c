"""
Tests for group chat history, the long-poll endpoint and chat push fan-out.
"""

import asyncio
import time
from uuid import UUID, uuid4

from antimat.services.chat import ChatNotifier, poll_messages
from antimat.services.push import push_service


async def send(client, user, group, text):
    response = await client.post(f"/api/groups/{group['id']}/chat", json={"text": text}, headers=user["headers"])
    assert response.status_code == 201, response.text
    return response.json()["data"]["message"]


class TestHistory:
    async def test_send_message(self, client, register, make_group):
        user = await register(name="Sender")
        group = await make_group(user)

        message = await send(client, user, group, "  hello  ")

        assert message["text"] == "hello"
        assert message["type"] == "message"
        assert message["sender"]["name"] == "Sender"
        assert isinstance(message["id"], int)

    async def test_empty_message(self, client, register, make_group):
        user = await register()
        group = await make_group(user)

        response = await client.post(f"/api/groups/{group['id']}/chat", json={"text": "   "}, headers=user["headers"])

        assert response.status_code == 400
        assert response.json()["message"] == "Message cannot be empty"

    async def test_non_member_cannot_post(self, client, register, make_group):
        owner = await register()
        stranger = await register()
        group = await make_group(owner)

        response = await client.post(
            f"/api/groups/{group['id']}/chat", json={"text": "hi"}, headers=stranger["headers"]
        )

        assert response.status_code == 403

    async def test_history_pages_from_newest_in_ascending_order(self, client, register, make_group):
        user = await register()
        group = await make_group(user)
        for i in range(5):
            await send(client, user, group, f"m{i}")

        first = await client.get(f"/api/groups/{group['id']}/chat?limit=2", headers=user["headers"])
        second = await client.get(f"/api/groups/{group['id']}/chat?page=2&limit=2", headers=user["headers"])

        assert [m["text"] for m in first.json()["data"]["messages"]] == ["m3", "m4"]
        assert [m["text"] for m in second.json()["data"]["messages"]] == ["m1", "m2"]
        # Five messages plus "Group created"
        assert first.json()["data"]["pagination"]["total"] == 6


class TestLongPoll:
    async def test_returns_messages_after_cursor(self, client, register, make_group):
        user = await register()
        group = await make_group(user)
        first = await send(client, user, group, "one")
        await send(client, user, group, "two")
        await send(client, user, group, "three")

        response = await client.get(
            f"/api/groups/{group['id']}/chat/poll?lastMessageId={first['id']}", headers=user["headers"]
        )

        data = response.json()["data"]
        assert data["hasNewMessages"] is True
        assert [m["text"] for m in data["messages"]] == ["two", "three"]

    async def test_times_out_empty_after_full_wait(self, client, register, make_group):
        user = await register()
        group = await make_group(user)
        last = await send(client, user, group, "latest")

        started = time.monotonic()
        response = await client.get(
            f"/api/groups/{group['id']}/chat/poll?lastMessageId={last['id']}&timeoutMs=300",
            headers=user["headers"],
        )
        elapsed = time.monotonic() - started

        assert response.json()["data"] == {"messages": [], "hasNewMessages": False}
        assert elapsed >= 0.3

    async def test_wakes_on_new_message(self, client, register, make_group):
        owner = await register()
        member = await register()
        group = await make_group(owner, member)
        last = await send(client, owner, group, "before")

        started = time.monotonic()
        poll = asyncio.create_task(
            client.get(
                f"/api/groups/{group['id']}/chat/poll?lastMessageId={last['id']}&timeoutMs=2000",
                headers=owner["headers"],
            )
        )
        await asyncio.sleep(0.2)
        await send(client, member, group, "after")
        response = await poll
        elapsed = time.monotonic() - started

        data = response.json()["data"]
        assert data["hasNewMessages"] is True
        assert [m["text"] for m in data["messages"]] == ["after"]
        assert elapsed < 1.5

    async def test_penalty_wakes_group_pollers(self, client, register, make_group):
        owner = await register()
        offender = await register()
        group = await make_group(owner, offender)
        last = await send(client, owner, group, "quiet")

        poll = asyncio.create_task(
            client.get(
                f"/api/groups/{group['id']}/chat/poll?lastMessageId={last['id']}&timeoutMs=2000",
                headers=owner["headers"],
            )
        )
        await asyncio.sleep(0.2)
        await client.post("/api/penalties/add", json={"word": "сука"}, headers=offender["headers"])
        response = await poll

        messages = response.json()["data"]["messages"]
        assert [m["type"] for m in messages] == ["penalty"]

    async def test_non_member_cannot_poll(self, client, register, make_group):
        owner = await register()
        stranger = await register()
        group = await make_group(owner)

        response = await client.get(f"/api/groups/{group['id']}/chat/poll", headers=stranger["headers"])

        assert response.status_code == 403

    async def test_without_cursor_returns_recent(self, session_factory, client, register, make_group):
        user = await register()
        group = await make_group(user)
        for i in range(3):
            await send(client, user, group, f"m{i}")

        messages, has_new = await poll_messages(session_factory, group_id=UUID(group["id"]), batch=2, timeout_ms=0)

        assert has_new is True
        assert [m.text for m in messages] == ["m1", "m2"]

    async def test_empty_group_without_cursor_waits_for_timeout(self, session_factory):
        started = time.monotonic()

        messages, has_new = await poll_messages(session_factory, uuid4(), timeout_ms=300, interval_ms=50)

        assert (messages, has_new) == ([], False)
        assert time.monotonic() - started >= 0.3


class TestNotifier:
    async def test_wait_times_out(self):
        notifier = ChatNotifier()

        assert await notifier.wait(uuid4(), 0.05) is False

    async def test_notify_wakes_only_that_group(self):
        notifier = ChatNotifier()
        group_id, other_id = uuid4(), uuid4()
        woken = asyncio.create_task(notifier.wait(group_id, 1))
        untouched = asyncio.create_task(notifier.wait(other_id, 0.2))
        await asyncio.sleep(0)

        notifier.notify(group_id)

        assert await woken is True
        assert await untouched is False


class TestChatPush:
    async def test_push_to_other_members(self, client, register, make_group, push_calls):
        owner = await register(name="Owner")
        member = await register(name="Member")
        group = await make_group(owner, member, name="Crew")
        await client.put("/api/user/push-token", json={"fcmToken": "owner-token"}, headers=owner["headers"])
        await client.put("/api/user/push-token", json={"fcmToken": "member-token"}, headers=member["headers"])

        message = await send(client, member, group, "ping")
        await push_service.drain()

        chat_pushes = [c for c in push_calls if c["data"]["type"] == "chat_message"]
        assert len(chat_pushes) == 1
        push = chat_pushes[0]
        assert push["tokens"] == ["owner-token"]
        assert push["notification"] == {"title": "Crew", "body": "Member: ping"}
        assert push["data"]["messageId"] == str(message["id"])
        assert push["data"]["groupId"] == group["id"]
        assert push["data"]["senderName"] == "Member"