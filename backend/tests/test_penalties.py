"""
Tests for the penalty ledger.

The running debt must always equal the sum of the user's unforgiven
penalties, so most tests end by checking it against the ledger.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from antimat.errors import ValidationError
from antimat.services import ledger


async def add_penalty(client, user, word="сука", **extra):
    response = await client.post("/api/penalties/add", json={"word": word, **extra}, headers=user["headers"])
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def current_debt(client, user) -> int:
    response = await client.get("/api/auth/me", headers=user["headers"])
    return response.json()["data"]["user"]["totalDebt"]


class TestHelpers:
    def test_mask_word(self):
        assert ledger.mask_word("тест") == "т***"
        assert ledger.mask_word("a") == "a"
        assert ledger.mask_word("") == ""

    def test_random_punishment_comes_from_the_list(self):
        assert ledger.random_punishment() in ledger.AI_PUNISHMENTS

    def test_period_start(self):
        now = datetime(2025, 3, 31, 15, 30, tzinfo=timezone.utc)

        assert ledger.period_start("all", now) is None
        assert ledger.period_start("day", now) == datetime(2025, 3, 31, tzinfo=timezone.utc)
        assert ledger.period_start("week", now) == now - timedelta(days=7)
        # One calendar month back, clamped to the end of February
        assert ledger.period_start("month", now) == datetime(2025, 2, 28, 15, 30, tzinfo=timezone.utc)

    def test_day_starts_at_local_midnight(self):
        almaty = timezone(timedelta(hours=5))

        early = datetime(2025, 3, 31, 2, 0, tzinfo=timezone.utc)
        late = datetime(2025, 3, 31, 21, 0, tzinfo=timezone.utc)

        assert ledger.period_start("day", early, almaty) == datetime(2025, 3, 30, 19, 0, tzinfo=timezone.utc)
        # 02:00 on April 1st locally
        assert ledger.period_start("day", late, almaty) == datetime(2025, 3, 31, 19, 0, tzinfo=timezone.utc)

    def test_period_start_january_wraps_year(self):
        now = datetime(2025, 1, 15, tzinfo=timezone.utc)

        assert ledger.period_start("month", now) == datetime(2024, 12, 15, tzinfo=timezone.utc)

    def test_unknown_period(self):
        with pytest.raises(ValidationError):
            ledger.period_start("year")


class TestRecordViolation:
    async def test_adds_snapshot_amount_to_debt(self, client, register):
        user = await register()

        data = await add_penalty(client, user, word="Сука", confidence=0.9)

        assert data["totalDebt"] == 100
        penalty = data["penalty"]
        assert penalty["word"] == "сука"
        assert penalty["amount"] == 100
        assert penalty["isForgiven"] is False
        assert penalty["aiPunishment"] in ledger.AI_PUNISHMENTS
        assert penalty["confidence"] == 0.9

    async def test_concurrent_reports_keep_debt_in_step(self, client, register):
        user = await register()

        results = await asyncio.gather(*(add_penalty(client, user) for _ in range(5)))

        assert len(results) == 5
        history = await client.get("/api/penalties/history", headers=user["headers"])
        amounts = [p["amount"] for p in history.json()["data"]["penalties"]]
        assert amounts == [100] * 5
        assert await current_debt(client, user) == sum(amounts) == 500

    async def test_amount_is_a_snapshot(self, client, register, backdate_fine_change):
        user = await register()
        await add_penalty(client, user)
        await backdate_fine_change(user["id"])
        changed = await client.put("/api/user/settings", json={"penaltyAmount": 250}, headers=user["headers"])
        assert changed.status_code == 200

        data = await add_penalty(client, user)

        assert data["penalty"]["amount"] == 250
        assert data["totalDebt"] == 350
        history = await client.get("/api/penalties/history", headers=user["headers"])
        assert sorted(p["amount"] for p in history.json()["data"]["penalties"]) == [100, 250]

    async def test_announced_masked_in_every_group(self, client, register, make_group):
        user = await register(name="Ivan")
        first = await make_group(user, name="First")
        second = await make_group(user, name="Second")

        await add_penalty(client, user, word="блять", group_id=first["id"])

        for group in (first, second):
            response = await client.get(f"/api/groups/{group['id']}/chat", headers=user["headers"])
            penalties = [m for m in response.json()["data"]["messages"] if m["type"] == "penalty"]
            assert len(penalties) == 1
            assert penalties[0]["text"] == 'Ivan was fined +100₸ for the word "б****"'
            assert penalties[0]["metadata"]["penaltyAmount"] == 100
            assert penalties[0]["metadata"]["word"] == "б****"

    async def test_penalty_carries_group(self, client, register, make_group):
        user = await register()
        group = await make_group(user, name="Office")

        data = await add_penalty(client, user, group_id=group["id"])

        assert data["penalty"]["groupId"] == group["id"]
        assert data["penalty"]["group"] == {"id": group["id"], "name": "Office"}

    async def test_unknown_group(self, client, register):
        user = await register()

        response = await client.post(
            "/api/penalties/add",
            json={"word": "сука", "groupId": "00000000-0000-0000-0000-000000000000"},
            headers=user["headers"],
        )

        assert response.status_code == 404

    async def test_empty_word(self, client, register):
        user = await register()

        response = await client.post("/api/penalties/add", json={"word": "   "}, headers=user["headers"])

        assert response.status_code == 400


class TestForgive:
    async def test_owner_of_penalty_can_forgive(self, client, register):
        user = await register()
        first = await add_penalty(client, user)
        await add_penalty(client, user)

        response = await client.post(
            f"/api/penalties/{first['penalty']['id']}/forgive", headers=user["headers"]
        )

        assert response.status_code == 200
        assert await current_debt(client, user) == 100

    async def test_second_forgive_fails(self, client, register):
        user = await register()
        data = await add_penalty(client, user)
        url = f"/api/penalties/{data['penalty']['id']}/forgive"
        await client.post(url, headers=user["headers"])

        response = await client.post(url, headers=user["headers"])

        assert response.status_code == 400
        assert response.json()["message"] == "Penalty is already forgiven"
        assert await current_debt(client, user) == 0

    async def test_stranger_cannot_forgive_personal_penalty(self, client, register):
        user = await register()
        stranger = await register()
        data = await add_penalty(client, user)

        response = await client.post(
            f"/api/penalties/{data['penalty']['id']}/forgive", headers=stranger["headers"]
        )

        assert response.status_code == 403
        assert await current_debt(client, user) == 100

    async def test_group_admin_can_forgive(self, client, register, make_group):
        owner = await register()
        member = await register()
        group = await make_group(owner, member)
        data = await add_penalty(client, member, group_id=group["id"])

        response = await client.post(f"/api/penalties/{data['penalty']['id']}/forgive", headers=owner["headers"])

        assert response.status_code == 200
        assert await current_debt(client, member) == 0

    async def test_plain_member_needs_group_setting(self, client, register, make_group):
        owner = await register()
        offender = await register()
        peer = await register()
        group = await make_group(owner, offender, peer)
        data = await add_penalty(client, offender, group_id=group["id"])
        url = f"/api/penalties/{data['penalty']['id']}/forgive"

        denied = await client.post(url, headers=peer["headers"])
        await client.put(
            f"/api/groups/{group['id']}/settings",
            json={"canMembersForgiveDebt": True},
            headers=owner["headers"],
        )
        allowed = await client.post(url, headers=peer["headers"])

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert await current_debt(client, offender) == 0

    async def test_missing_penalty(self, client, register):
        user = await register()

        response = await client.post(
            "/api/penalties/00000000-0000-0000-0000-000000000000/forgive", headers=user["headers"]
        )

        assert response.status_code == 404


class TestStats:
    async def test_stats_totals(self, client, register):
        user = await register()
        first = await add_penalty(client, user, word="сука")
        await add_penalty(client, user, word="сука")
        await add_penalty(client, user, word="хуй")
        await client.post(f"/api/penalties/{first['penalty']['id']}/forgive", headers=user["headers"])

        response = await client.get("/api/penalties/stats", headers=user["headers"])

        stats = response.json()["data"]
        assert stats["totalCount"] == 3
        assert stats["totalAmount"] == 300
        assert stats["forgivenCount"] == 1
        assert stats["forgivenAmount"] == 100
        assert stats["currentDebt"] == 200
        assert stats["topWords"][0] == {"word": "сука", "count": 2, "totalAmount": 200}
        assert sum(day["count"] for day in stats["dailyStats"]) == 3

    async def test_stats_without_penalties_are_zero(self, client, register):
        user = await register()

        response = await client.get("/api/penalties/stats?period=day", headers=user["headers"])

        stats = response.json()["data"]
        assert stats["totalCount"] == 0
        assert stats["totalAmount"] == 0
        assert stats["topWords"] == []

    async def test_invalid_period(self, client, register):
        user = await register()

        response = await client.get("/api/penalties/stats?period=decade", headers=user["headers"])

        assert response.status_code == 400

    async def test_history_is_paginated_newest_first(self, client, register):
        user = await register()
        for word in ("сука", "хуй", "пизда"):
            await add_penalty(client, user, word=word)

        response = await client.get("/api/penalties/history?page=1&limit=2", headers=user["headers"])

        data = response.json()["data"]
        assert [p["word"] for p in data["penalties"]] == ["пизда", "хуй"]
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}


class TestDebtInvariant:
    async def test_reconcile_matches_ledger(self, db, client, register, make_group):
        owner = await register()
        member = await register()
        group = await make_group(owner, member)
        await add_penalty(client, member, group_id=group["id"])
        forgiven = await add_penalty(client, member)
        await add_penalty(client, member)
        await client.post(f"/api/penalties/{forgiven['penalty']['id']}/forgive", headers=member["headers"])

        previous, current = await ledger.reconcile_debt(db, UUID(member["id"]))

        assert previous == current == 200
        assert await ledger.unforgiven_total(db, UUID(member["id"])) == 200
