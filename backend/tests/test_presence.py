"""Tests for presence derivation, the heartbeat and profile settings."""

from datetime import datetime, timedelta, timezone

from antimat.db.models import User
from antimat.services.presence import compute_status
from antimat.services.push import push_service

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_user(last_seen=None, is_recording=False) -> User:
    return User(email="p@example.com", password_hash="x", name="P", last_seen=last_seen, is_recording=is_recording)


class TestComputeStatus:
    def test_never_seen_is_offline(self):
        assert compute_status(make_user(), now=NOW) == "offline"

    def test_recent_heartbeat_is_online(self):
        user = make_user(last_seen=NOW - timedelta(seconds=30))

        assert compute_status(user, now=NOW) == "online"

    def test_recording_while_recent(self):
        user = make_user(last_seen=NOW - timedelta(seconds=119), is_recording=True)

        assert compute_status(user, now=NOW) == "recording"

    def test_boundary_is_offline(self):
        user = make_user(last_seen=NOW - timedelta(seconds=120), is_recording=True)

        assert compute_status(user, now=NOW) == "offline"

    def test_just_inside_boundary(self):
        user = make_user(last_seen=NOW - timedelta(seconds=119, microseconds=999_000))

        assert compute_status(user, now=NOW) == "online"

    def test_stale_recording_flag_is_ignored(self):
        user = make_user(last_seen=NOW - timedelta(minutes=10), is_recording=True)

        assert compute_status(user, now=NOW) == "offline"

    def test_overrides(self):
        user = make_user()

        status = compute_status(user, recording_override=True, last_seen_override=NOW, now=NOW)

        assert status == "recording"


class TestPing:
    async def test_ping_marks_online(self, client, register):
        user = await register()

        response = await client.put("/api/user/ping", headers=user["headers"])

        assert response.status_code == 200
        assert response.json()["data"] == {"status": "online"}

    async def test_ping_with_recording(self, client, register):
        user = await register()

        response = await client.put("/api/user/ping", json={"recording": True}, headers=user["headers"])

        assert response.json()["data"] == {"status": "recording"}
        me = await client.get("/api/auth/me", headers=user["headers"])
        assert me.json()["data"]["user"]["isRecording"] is True

    async def test_members_see_status(self, client, register, make_group):
        owner = await register()
        member = await register()
        group = await make_group(owner, member)
        await client.put("/api/user/ping", json={"recording": True}, headers=member["headers"])

        response = await client.get(f"/api/groups/{group['id']}", headers=owner["headers"])

        statuses = {m["user"]["id"]: m["user"]["status"] for m in response.json()["data"]["group"]["members"]}
        assert statuses == {owner["id"]: "offline", member["id"]: "recording"}

    async def test_recording_changes_are_pushed_to_group(self, client, register, make_group, push_calls):
        owner = await register()
        member = await register()
        group = await make_group(owner, member)
        await client.put("/api/user/push-token", json={"fcmToken": "owner-token"}, headers=owner["headers"])
        ping = "/api/user/ping"

        await client.put(ping, json={"recording": True}, headers=member["headers"])
        await client.put(ping, json={"recording": True}, headers=member["headers"])
        await client.put(ping, json={"recording": False}, headers=member["headers"])
        await push_service.drain()

        presence = [c for c in push_calls if c["data"]["type"] == "presence"]
        # The repeated recording heartbeat changes nothing
        assert sorted(p["data"]["status"] for p in presence) == ["online", "recording"]
        started = next(p for p in presence if p["data"]["status"] == "recording")
        assert started["tokens"] == ["owner-token"]
        assert started["data"] == {
            "type": "presence",
            "groupId": group["id"],
            "userId": member["id"],
            "status": "recording",
        }

    async def test_coming_online_is_not_pushed(self, client, register, make_group, push_calls):
        owner = await register()
        member = await register()
        await make_group(owner, member)
        await client.put("/api/user/push-token", json={"fcmToken": "owner-token"}, headers=owner["headers"])

        response = await client.put("/api/user/ping", headers=member["headers"])
        await push_service.drain()

        assert response.json()["data"] == {"status": "online"}
        assert [c for c in push_calls if c["data"]["type"] == "presence"] == []


class TestProfileAndSettings:
    async def test_update_profile(self, client, register):
        user = await register(name="Old")

        response = await client.put(
            "/api/user/profile", json={"name": "New", "avatar": "https://img.test/a.png"}, headers=user["headers"]
        )

        data = response.json()["data"]["user"]
        assert data["name"] == "New"
        assert data["avatar"] == "https://img.test/a.png"

    async def test_fine_change_within_cooldown(self, client, register):
        user = await register()

        response = await client.put("/api/user/settings", json={"penaltyAmount": 500}, headers=user["headers"])

        assert response.status_code == 400
        assert response.json()["message"].startswith("The penalty amount can be changed after ")

    async def test_same_fine_is_not_a_change(self, client, register):
        user = await register()

        response = await client.put(
            "/api/user/settings", json={"penaltyAmount": 100, "theme": "light"}, headers=user["headers"]
        )

        assert response.status_code == 200
        assert response.json()["data"]["settings"]["theme"] == "light"

    async def test_fine_is_clamped(self, client, register, backdate_fine_change):
        user = await register()
        await backdate_fine_change(user["id"])

        response = await client.put(
            "/api/user/settings", json={"penaltyAmount": 5_000_000}, headers=user["headers"]
        )

        assert response.status_code == 200
        assert response.json()["data"]["penaltyAmount"] == 100_000

    async def test_empty_push_token_rejected(self, client, register):
        user = await register()

        response = await client.put("/api/user/push-token", json={"fcmToken": ""}, headers=user["headers"])

        assert response.status_code == 400
