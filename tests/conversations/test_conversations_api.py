"""Integration tests for groups, DMs and membership changes."""

import asyncio
from contextlib import aclosing

from httpx import AsyncClient
from sqlalchemy import func, select

from campus.conversations.service import dm_key_for, open_or_create_dm
from campus.database import get_session
from campus.db.models import Conversation, ConversationMember

API = "/api/v1/conversations"


async def _create_group(client: AsyncClient, owner: dict, title: str = "Algo study", emails: list[str] | None = None) -> int:
    response = await client.post(f"{API}/group", json={"title": title, "member_emails": emails or []}, headers=owner["headers"])
    assert response.status_code == 201, response.text
    return response.json()["id"]


async def _roles(client: AsyncClient, viewer: dict, conversation_id: int) -> dict[int, str]:
    response = await client.get(f"{API}/{conversation_id}/members", headers=viewer["headers"])
    assert response.status_code == 200, response.text
    return {m["user_id"]: m["role"] for m in response.json()["members"]}


def test_dm_key_is_order_independent():
    assert dm_key_for(7, 3) == dm_key_for(3, 7) == "3:7"


class TestDirectMessages:
    async def test_open_creates_then_returns_existing(self, client: AsyncClient, alice: dict, bob: dict):
        first = await client.post(f"{API}/dm", json={"email": bob["email"]}, headers=alice["headers"])
        assert first.status_code == 201
        assert first.json()["kind"] == "dm"

        again = await client.post(f"{API}/dm", json={"email": bob["email"]}, headers=alice["headers"])
        reverse = await client.post(f"{API}/dm", json={"email": "ALICE@campus.edu"}, headers=bob["headers"])
        assert again.status_code == 200
        assert reverse.status_code == 200
        assert first.json()["id"] == again.json()["id"] == reverse.json()["id"]

    async def test_dm_members_and_roles(self, client: AsyncClient, alice: dict, bob: dict):
        dm = await client.post(f"{API}/dm", json={"email": bob["email"]}, headers=alice["headers"])
        roles = await _roles(client, bob, dm.json()["id"])
        assert roles == {alice["user_id"]: "admin", bob["user_id"]: "member"}

    async def test_self_dm_rejected(self, client: AsyncClient, alice: dict):
        response = await client.post(f"{API}/dm", json={"email": alice["email"]}, headers=alice["headers"])
        assert response.status_code == 400

    async def test_unknown_email_not_found(self, client: AsyncClient, alice: dict):
        response = await client.post(f"{API}/dm", json={"email": "nobody@campus.edu"}, headers=alice["headers"])
        assert response.status_code == 404

    async def test_concurrent_opens_from_both_sides(self, alice: dict, bob: dict, db_session):
        async def open_dm(user_id: int, email: str) -> tuple[int, bool]:
            async with aclosing(get_session()) as sessions:
                async for db in sessions:
                    conv, created = await open_or_create_dm(db, user_id, email)
                    await db.commit()
                    return conv.id, created
            raise AssertionError("no session")

        results = await asyncio.gather(
            open_dm(alice["user_id"], bob["email"]),
            open_dm(bob["user_id"], alice["email"]),
        )
        ids = {conv_id for conv_id, _ in results}
        assert len(ids) == 1
        assert sorted(created for _, created in results) == [False, True]

        count = await db_session.scalar(select(func.count()).select_from(Conversation).where(Conversation.kind == "dm"))
        assert count == 1
        members = await db_session.scalar(
            select(func.count()).select_from(ConversationMember).where(ConversationMember.conversation_id == ids.pop())
        )
        assert members == 2

    async def test_dm_takes_no_invites(self, client: AsyncClient, alice: dict, bob: dict, carol: dict):
        dm = await client.post(f"{API}/dm", json={"email": bob["email"]}, headers=alice["headers"])
        response = await client.post(
            f"{API}/{dm.json()['id']}/members", json={"email": carol["email"]}, headers=alice["headers"]
        )
        assert response.status_code == 400

    async def test_dm_cannot_be_left(self, client: AsyncClient, alice: dict, bob: dict):
        dm = await client.post(f"{API}/dm", json={"email": bob["email"]}, headers=alice["headers"])
        response = await client.post(f"{API}/{dm.json()['id']}/leave", headers=alice["headers"])
        assert response.status_code == 400


class TestGroups:
    async def test_create_group_drops_unknown_and_self(self, client: AsyncClient, alice: dict, bob: dict):
        conv_id = await _create_group(
            client, alice, emails=[bob["email"], "ghost@campus.edu", alice["email"], "BOB@campus.edu"]
        )
        roles = await _roles(client, alice, conv_id)
        assert roles == {alice["user_id"]: "admin", bob["user_id"]: "member"}

    async def test_blank_title_rejected(self, client: AsyncClient, alice: dict):
        response = await client.post(f"{API}/group", json={"title": "   "}, headers=alice["headers"])
        assert response.status_code == 400

    async def test_title_too_long_rejected(self, client: AsyncClient, alice: dict):
        response = await client.post(f"{API}/group", json={"title": "x" * 81}, headers=alice["headers"])
        assert response.status_code == 422

    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post(f"{API}/group", json={"title": "x"})
        assert response.status_code == 401

    async def test_get_conversation(self, client: AsyncClient, alice: dict, bob: dict):
        conv_id = await _create_group(client, alice)
        response = await client.get(f"{API}/{conv_id}", headers=alice["headers"])
        assert response.status_code == 200
        assert response.json()["title"] == "Algo study"

        response = await client.get(f"{API}/{conv_id}", headers=bob["headers"])
        assert response.status_code == 403

        response = await client.get(f"{API}/999999", headers=alice["headers"])
        assert response.status_code == 404

    async def test_members_listed_by_join_order(self, client: AsyncClient, alice: dict, bob: dict, carol: dict):
        conv_id = await _create_group(client, alice)
        await client.post(f"{API}/{conv_id}/members", json={"email": carol["email"]}, headers=alice["headers"])
        await client.post(f"{API}/{conv_id}/members", json={"email": bob["email"]}, headers=alice["headers"])

        response = await client.get(f"{API}/{conv_id}/members", headers=alice["headers"])
        assert [m["user_id"] for m in response.json()["members"]] == [
            alice["user_id"], carol["user_id"], bob["user_id"],
        ]

    async def test_non_member_cannot_list_members(self, client: AsyncClient, alice: dict, bob: dict):
        conv_id = await _create_group(client, alice)
        response = await client.get(f"{API}/{conv_id}/members", headers=bob["headers"])
        assert response.status_code == 403


class TestInvite:
    async def test_admin_invites(self, client: AsyncClient, alice: dict, bob: dict):
        conv_id = await _create_group(client, alice)
        response = await client.post(f"{API}/{conv_id}/members", json={"email": bob["email"]}, headers=alice["headers"])
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "added": True}

    async def test_invite_is_idempotent(self, client: AsyncClient, alice: dict, bob: dict, db_session):
        conv_id = await _create_group(client, alice, emails=[bob["email"]])
        response = await client.post(f"{API}/{conv_id}/members", json={"email": bob["email"]}, headers=alice["headers"])
        assert response.status_code == 200
        assert response.json()["added"] is False

        count = await db_session.scalar(
            select(func.count()).select_from(ConversationMember).where(ConversationMember.conversation_id == conv_id)
        )
        assert count == 2

    async def test_non_admin_forbidden(self, client: AsyncClient, alice: dict, bob: dict, carol: dict):
        conv_id = await _create_group(client, alice, emails=[bob["email"]])
        response = await client.post(f"{API}/{conv_id}/members", json={"email": carol["email"]}, headers=bob["headers"])
        assert response.status_code == 403

    async def test_non_member_forbidden(self, client: AsyncClient, alice: dict, bob: dict, carol: dict):
        conv_id = await _create_group(client, alice)
        response = await client.post(f"{API}/{conv_id}/members", json={"email": carol["email"]}, headers=bob["headers"])
        assert response.status_code == 403

    async def test_unknown_email_not_found(self, client: AsyncClient, alice: dict):
        conv_id = await _create_group(client, alice)
        response = await client.post(
            f"{API}/{conv_id}/members", json={"email": "ghost@campus.edu"}, headers=alice["headers"]
        )
        assert response.status_code == 404

    async def test_unknown_conversation_not_found(self, client: AsyncClient, alice: dict, bob: dict):
        response = await client.post(f"{API}/424242/members", json={"email": bob["email"]}, headers=alice["headers"])
        assert response.status_code == 404


class TestLeave:
    async def test_admin_leaving_promotes_earliest_member(
        self, client: AsyncClient, alice: dict, bob: dict, carol: dict
    ):
        conv_id = await _create_group(client, alice)
        await client.post(f"{API}/{conv_id}/members", json={"email": bob["email"]}, headers=alice["headers"])
        await client.post(f"{API}/{conv_id}/members", json={"email": carol["email"]}, headers=alice["headers"])

        response = await client.post(f"{API}/{conv_id}/leave", headers=alice["headers"])
        assert response.json() == {"status": "left", "deleted": False}
        assert await _roles(client, bob, conv_id) == {bob["user_id"]: "admin", carol["user_id"]: "member"}

    async def test_member_leaving_keeps_admin(self, client: AsyncClient, alice: dict, bob: dict, carol: dict):
        conv_id = await _create_group(client, alice, emails=[bob["email"], carol["email"]])
        await client.post(f"{API}/{conv_id}/leave", headers=bob["headers"])
        assert await _roles(client, alice, conv_id) == {alice["user_id"]: "admin", carol["user_id"]: "member"}

    async def test_admin_invariant_over_leave_sequence(
        self, client: AsyncClient, make_user, alice: dict
    ):
        others = [await make_user(f"member{i}@campus.edu") for i in range(4)]
        conv_id = await _create_group(client, alice, emails=[u["email"] for u in others])

        remaining = [alice, *others]
        for leaver_index in (0, 2, 0):
            leaver = remaining.pop(leaver_index)
            response = await client.post(f"{API}/{conv_id}/leave", headers=leaver["headers"])
            assert response.json()["deleted"] is False
            roles = await _roles(client, remaining[0], conv_id)
            assert set(roles) == {u["user_id"] for u in remaining}
            assert "admin" in roles.values()

    async def test_last_member_leaving_deletes_conversation(self, client: AsyncClient, alice: dict, bob: dict):
        conv_id = await _create_group(client, alice, emails=[bob["email"]])
        await client.post(f"{API}/{conv_id}/messages", json={"body": "hello"}, headers=alice["headers"])

        assert (await client.post(f"{API}/{conv_id}/leave", headers=alice["headers"])).json()["deleted"] is False
        response = await client.post(f"{API}/{conv_id}/leave", headers=bob["headers"])
        assert response.json() == {"status": "left", "deleted": True}

        assert (await client.get(f"{API}/{conv_id}", headers=bob["headers"])).status_code == 404
        assert (await client.post(f"{API}/{conv_id}/leave", headers=bob["headers"])).status_code == 404

    async def test_non_member_leave_invalid(self, client: AsyncClient, alice: dict, bob: dict):
        conv_id = await _create_group(client, alice)
        response = await client.post(f"{API}/{conv_id}/leave", headers=bob["headers"])
        assert response.status_code == 400

    async def test_left_member_loses_access(self, client: AsyncClient, alice: dict, bob: dict):
        conv_id = await _create_group(client, alice, emails=[bob["email"]])
        await client.post(f"{API}/{conv_id}/leave", headers=bob["headers"])
        response = await client.get(f"{API}/{conv_id}/messages", headers=bob["headers"])
        assert response.status_code == 403


class TestListConversations:
    async def test_lists_groups_and_dms(self, client: AsyncClient, alice: dict, bob: dict, carol: dict):
        group_id = await _create_group(client, alice, emails=[bob["email"], carol["email"]])
        dm = await client.post(f"{API}/dm", json={"email": bob["email"]}, headers=alice["headers"])

        response = await client.get(API, headers=alice["headers"])
        assert response.status_code == 200
        items = {c["id"]: c for c in response.json()["conversations"]}
        assert items[group_id]["member_count"] == 3
        assert items[group_id]["dm_with"] is None
        assert items[dm.json()["id"]]["dm_with"]["email"] == bob["email"]
        assert [c["id"] for c in response.json()["conversations"]] == [dm.json()["id"], group_id]

    async def test_only_own_conversations(self, client: AsyncClient, alice: dict, carol: dict):
        await _create_group(client, alice)
        response = await client.get(API, headers=carol["headers"])
        assert response.json()["conversations"] == []
