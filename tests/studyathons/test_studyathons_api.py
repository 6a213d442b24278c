"""Integration tests for the study-a-thon roster."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus.db.models import Conversation, Studyathon, StudyathonParticipant
from campus.studyathons.service import create_studyathon, list_live
from campus.users.service import create_user

API = "/api/v1/studyathons"


def _in(hours: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


async def _create(client: AsyncClient, owner: dict, title: str = "Finals prep", **extra) -> dict:
    payload = {"title": title, "starts_at": _in(1), **extra}
    response = await client.post(API, json=payload, headers=owner["headers"])
    assert response.status_code == 201, response.text
    return response.json()


class TestCreate:
    async def test_create_with_backing_chat(self, client: AsyncClient, alice: dict):
        event = await _create(client, alice, description="Past papers", location="Library")
        assert event["created_by"] == alice["user_id"]
        assert event["ends_at"] is None

        conv = await client.get(f"/api/v1/conversations/{event['conversation_id']}", headers=alice["headers"])
        assert conv.status_code == 200
        assert conv.json()["kind"] == "group"
        assert conv.json()["title"] == "Study-a-thon · Finals prep"

        members = await client.get(
            f"/api/v1/conversations/{event['conversation_id']}/members", headers=alice["headers"]
        )
        assert [(m["user_id"], m["role"]) for m in members.json()["members"]] == [(alice["user_id"], "admin")]

    async def test_naive_start_taken_as_utc(self, client: AsyncClient, alice: dict):
        event = await _create(client, alice, starts_at="2030-05-01T10:00:00")
        assert datetime.fromisoformat(event["starts_at"].replace("Z", "+00:00")) == datetime(
            2030, 5, 1, 10, 0, tzinfo=timezone.utc
        )

    async def test_end_before_start_rejected(self, client: AsyncClient, alice: dict):
        response = await client.post(
            API, json={"title": "Backwards", "starts_at": _in(3), "ends_at": _in(2)}, headers=alice["headers"]
        )
        assert response.status_code == 400

    async def test_missing_start_rejected(self, client: AsyncClient, alice: dict):
        response = await client.post(API, json={"title": "No start"}, headers=alice["headers"])
        assert response.status_code == 422

    async def test_nothing_persists_without_commit(self, db_session: AsyncSession):
        user = await create_user(db_session, "solo@campus.edu", password_hash="x")
        await db_session.commit()

        await create_studyathon(db_session, user.id, "Draft", datetime.now(timezone.utc))
        await db_session.rollback()

        assert await db_session.scalar(select(func.count()).select_from(Studyathon)) == 0
        assert await db_session.scalar(select(func.count()).select_from(Conversation)) == 0
        assert await db_session.scalar(select(func.count()).select_from(StudyathonParticipant)) == 0


class TestJoin:
    async def test_join_adds_to_chat(self, client: AsyncClient, alice: dict, bob: dict):
        event = await _create(client, alice)
        response = await client.post(f"{API}/{event['id']}/join", headers=bob["headers"])
        assert response.status_code == 200
        assert response.json() == {
            "status": "joined",
            "conversation_id": event["conversation_id"],
            "participant_count": 2,
        }

        send = await client.post(
            f"/api/v1/conversations/{event['conversation_id']}/messages",
            json={"body": "count me in"},
            headers=bob["headers"],
        )
        assert send.status_code == 201

    async def test_double_join_is_idempotent(self, client: AsyncClient, alice: dict, bob: dict):
        event = await _create(client, alice)
        for _ in range(2):
            response = await client.post(f"{API}/{event['id']}/join", headers=bob["headers"])
            assert response.status_code == 200
            assert response.json()["participant_count"] == 2

        members = await client.get(
            f"/api/v1/conversations/{event['conversation_id']}/members", headers=bob["headers"]
        )
        assert len(members.json()["members"]) == 2

    async def test_creator_join_keeps_single_row(self, client: AsyncClient, alice: dict):
        event = await _create(client, alice)
        response = await client.post(f"{API}/{event['id']}/join", headers=alice["headers"])
        assert response.json()["participant_count"] == 1

    async def test_join_unknown_not_found(self, client: AsyncClient, bob: dict):
        response = await client.post(f"{API}/31337/join", headers=bob["headers"])
        assert response.status_code == 404

    async def test_leaving_chat_leaves_roster(self, client: AsyncClient, alice: dict, bob: dict, carol: dict):
        event = await _create(client, alice)
        await client.post(f"{API}/{event['id']}/join", headers=bob["headers"])
        await client.post(f"/api/v1/conversations/{event['conversation_id']}/leave", headers=bob["headers"])
        response = await client.post(f"{API}/{event['id']}/join", headers=carol["headers"])
        assert response.json()["participant_count"] == 2

    async def test_last_leave_removes_event(self, client: AsyncClient, alice: dict):
        event = await _create(client, alice)
        response = await client.post(
            f"/api/v1/conversations/{event['conversation_id']}/leave", headers=alice["headers"]
        )
        assert response.json()["deleted"] is True
        assert (await client.get(f"{API}/{event['id']}/calendar.ics")).status_code == 404


class TestLiveFeed:
    @pytest.fixture
    def now(self) -> datetime:
        return datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)

    async def test_live_window(self, db_session: AsyncSession, now: datetime):
        user = await create_user(db_session, "host@campus.edu", password_hash="x")
        h = timedelta(hours=1)
        fixtures = {
            "ended": (now - 5 * h, now - h),
            "running": (now - 2 * h, now + h),
            "open_recent": (now - 5 * h, None),
            "open_stale": (now - 7 * h, None),
            "upcoming": (now + 3 * h, None),
            "later": (now + 24 * h, now + 26 * h),
        }
        for title, (starts_at, ends_at) in fixtures.items():
            await create_studyathon(db_session, user.id, title, starts_at, ends_at=ends_at)
        await db_session.commit()

        live = await list_live(db_session, now=now)
        assert [item.studyathon.title for item in live] == ["open_recent", "running", "upcoming", "later"]
        assert all(item.participant_count == 1 for item in live)
        assert all(item.creator.id == user.id for item in live)

    async def test_limit_is_capped(self, db_session: AsyncSession, now: datetime):
        user = await create_user(db_session, "busy@campus.edu", password_hash="x")
        for i in range(55):
            await create_studyathon(db_session, user.id, f"Session {i}", now + timedelta(minutes=i))
        await db_session.commit()

        assert len(await list_live(db_session, now=now)) == 20
        assert len(await list_live(db_session, limit=500, now=now)) == 50

    async def test_live_endpoint(self, client: AsyncClient, alice: dict, bob: dict):
        event = await _create(client, alice)
        await client.post(f"{API}/{event['id']}/join", headers=bob["headers"])

        response = await client.get(f"{API}/live", headers=bob["headers"])
        assert response.status_code == 200
        [item] = response.json()["studyathons"]
        assert item["id"] == event["id"]
        assert item["participant_count"] == 2
        assert item["creator"]["email"] == alice["email"]

    async def test_live_endpoint_limit_bounds(self, client: AsyncClient, alice: dict):
        response = await client.get(f"{API}/live", params={"limit": 51}, headers=alice["headers"])
        assert response.status_code == 422


class TestCalendarExport:
    async def test_download_without_auth(self, client: AsyncClient, alice: dict):
        event = await _create(client, alice, title="Exam, prep; round 2")
        response = await client.get(f"{API}/{event['id']}/calendar.ics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/calendar")
        assert response.headers["content-disposition"] == f'attachment; filename="studyathon-{event["id"]}.ics"'
        body = response.text
        assert body.startswith("BEGIN:VCALENDAR\r\n")
        assert f"UID:{event['id']}@campus\r\n" in body
        assert "SUMMARY:Exam\\, prep\\; round 2\r\n" in body

    async def test_unknown_not_found(self, client: AsyncClient):
        response = await client.get(f"{API}/999/calendar.ics")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
