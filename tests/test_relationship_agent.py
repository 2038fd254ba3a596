"""
Tests for Relationship Agent

EXPLANATION:
============
Follow and block are toggles over JSON lists stored on user rows.

Properties checked here:
- Toggling a follow twice restores both users' lists
- "A follows B" is always recorded on both rows, or on neither
- A user can follow, unfollow or block anyone but themselves
- Remove-follower only ever removes a follow
- A block changes the blocker's list and nothing else
- Lists holding legacy email refs are matched like object ids
"""

import pytest

from core.agent_base import MessageType
from core.event_bus import EventType
from models.database import session_scope
from stores.identity_store import IdentityStore

RELATIONSHIP_AGENT = "relationship_agent"


async def load_user(user_id):
    async with session_scope() as session:
        return await IdentityStore(session).get_by_id(user_id)


async def set_lists(user_id, **lists):
    """Write relationship lists directly, to simulate legacy rows."""
    async with session_scope() as session:
        async with session.begin():
            user = await IdentityStore(session).get_by_id(user_id, for_update=True)
            for key, value in lists.items():
                setattr(user, key, value)


# ==============================================================================
# FOLLOW TESTS
# ==============================================================================

class TestFollowToggle:

    @pytest.mark.asyncio
    async def test_follow_is_recorded_on_both_rows(self, relationship_agent, send, make_user):
        """
        SCENARIO: Ana follows Ben
        THEN: Ben is in Ana.following and Ana is in Ben.followers
        """
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")

        response = await send(MessageType.FOLLOW_TOGGLE, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": ben["id"]
        })

        assert response.payload["success"] is True
        assert response.payload["isFollowing"] is True
        assert response.payload["followerCount"] == 1

        ana_row = await load_user(ana["id"])
        ben_row = await load_user(ben["id"])
        assert ana_row.following == [ben["id"]]
        assert ben_row.followers == [ana["id"]]

    @pytest.mark.asyncio
    async def test_toggle_twice_restores_original_lists(self, relationship_agent, make_user):
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")

        first = await relationship_agent.toggle_follow("ana@example.com", ben["id"])
        second = await relationship_agent.toggle_follow("ana@example.com", ben["id"])

        assert first["isFollowing"] is True
        assert second == {"isFollowing": False, "followerCount": 0}

        ana_row = await load_user(ana["id"])
        ben_row = await load_user(ben["id"])
        assert ana_row.following == []
        assert ben_row.followers == []

    @pytest.mark.asyncio
    async def test_target_can_be_named_by_email(self, relationship_agent, make_user):
        await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")

        result = await relationship_agent.toggle_follow("ana@example.com", "BEN@example.com")

        assert result["isFollowing"] is True
        ben_row = await load_user(ben["id"])
        assert len(ben_row.followers) == 1

    @pytest.mark.asyncio
    async def test_cannot_follow_yourself(self, relationship_agent, send, make_user):
        ana = await make_user(email="ana@example.com")

        by_id = await send(MessageType.FOLLOW_TOGGLE, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": ana["id"]
        })
        by_email = await send(MessageType.FOLLOW_TOGGLE, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": "ana@example.com"
        })

        for response in (by_id, by_email):
            assert response.payload["error_code"] == "invalid_operation"
            assert response.payload["error"] == "Cannot follow yourself"

        ana_row = await load_user(ana["id"])
        assert ana_row.following == []
        assert ana_row.followers == []

    @pytest.mark.asyncio
    async def test_follow_unknown_user_is_not_found(self, relationship_agent, send, make_user):
        await make_user(email="ana@example.com")

        response = await send(MessageType.FOLLOW_TOGGLE, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": "does-not-exist"
        })

        assert response.payload["error_code"] == "not_found"

    @pytest.mark.asyncio
    async def test_legacy_email_entries_count_as_following(self, relationship_agent, make_user):
        """
        GIVEN: Ana's row lists Ben by his email (a legacy entry)
        WHEN: Ana toggles follow on Ben's object id
        THEN: It is an unfollow, and both the email and id forms are gone
        """
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")
        await set_lists(ana["id"], following=["ben@example.com"])
        await set_lists(ben["id"], followers=["ana@example.com"])

        status = await relationship_agent.get_follow_status("ana@example.com", ben["id"])
        assert status["isFollowing"] is True

        result = await relationship_agent.toggle_follow("ana@example.com", ben["id"])

        assert result == {"isFollowing": False, "followerCount": 0}
        assert (await load_user(ana["id"])).following == []
        assert (await load_user(ben["id"])).followers == []

    @pytest.mark.asyncio
    async def test_null_lists_are_treated_as_empty(self, relationship_agent, make_user):
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")
        await set_lists(ana["id"], following=None)
        await set_lists(ben["id"], followers=None)

        result = await relationship_agent.toggle_follow("ana@example.com", ben["id"])

        assert result == {"isFollowing": True, "followerCount": 1}

    @pytest.mark.asyncio
    async def test_follow_publishes_events(self, relationship_agent, make_user, event_bus):
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")

        await relationship_agent.toggle_follow("ana@example.com", ben["id"])
        await relationship_agent.toggle_follow("ana@example.com", ben["id"])

        assert len(event_bus.get_history(event_type=EventType.USER_FOLLOWED, user_id=ana["id"])) == 1
        assert len(event_bus.get_history(event_type=EventType.USER_UNFOLLOWED, user_id=ana["id"])) == 1


class TestFollowStatus:

    @pytest.mark.asyncio
    async def test_anonymous_status_has_public_count(self, relationship_agent, send, make_user):
        await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")
        await relationship_agent.toggle_follow("ana@example.com", ben["id"])

        response = await send(MessageType.FOLLOW_STATUS, RELATIONSHIP_AGENT, {
            "actor_email": None, "target_id": ben["id"]
        })

        assert response.payload["isFollowing"] is False
        assert response.payload["followerCount"] == 1


# ==============================================================================
# REMOVE FOLLOWER TESTS
# ==============================================================================

class TestRemoveFollower:

    @pytest.mark.asyncio
    async def test_removing_a_follower_unfollows_them(self, relationship_agent, send, make_user):
        """
        SCENARIO: Ben removes Ana from his followers
        THEN: Ana no longer follows Ben, on both rows
        """
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")
        await relationship_agent.toggle_follow("ana@example.com", ben["id"])

        response = await send(MessageType.FOLLOWER_REMOVE, RELATIONSHIP_AGENT, {
            "actor_email": "ben@example.com", "follower_id": ana["id"]
        })

        assert response.payload["removed"] is True
        assert response.payload["followerCount"] == 0
        assert (await load_user(ana["id"])).following == []
        assert (await load_user(ben["id"])).followers == []

    @pytest.mark.asyncio
    async def test_removing_a_non_follower_never_creates_a_follow(self, relationship_agent, make_user):
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")

        result = await relationship_agent.remove_follower("ben@example.com", ana["id"])

        assert result == {"removed": False, "followerCount": 0}
        assert (await load_user(ana["id"])).following == []
        assert (await load_user(ben["id"])).followers == []


# ==============================================================================
# CONNECTION LIST TESTS
# ==============================================================================

class TestConnectionLists:

    @pytest.mark.asyncio
    async def test_followers_and_following_return_public_summaries(self, relationship_agent, make_user):
        ana = await make_user(email="ana@example.com", name="Ana")
        ben = await make_user(email="ben@example.com", name="Ben")
        await relationship_agent.toggle_follow("ana@example.com", ben["id"])

        followers = await relationship_agent.list_connections(ben["id"], "followers")
        following = await relationship_agent.list_connections(ana["id"], "following")

        assert [u["name"] for u in followers["users"]] == ["Ana"]
        assert [u["name"] for u in following["users"]] == ["Ben"]
        assert "followers" not in followers["users"][0]

    @pytest.mark.asyncio
    async def test_unknown_kind_is_invalid_input(self, relationship_agent, send, make_user):
        ana = await make_user(email="ana@example.com")

        response = await send(MessageType.CONNECTIONS_LIST, RELATIONSHIP_AGENT, {
            "target_id": ana["id"], "kind": "friends"
        })

        assert response.payload["error_code"] == "invalid_input"


# ==============================================================================
# BLOCK TESTS
# ==============================================================================

class TestBlock:

    @pytest.mark.asyncio
    async def test_block_is_one_sided(self, relationship_agent, send, make_user):
        """
        SCENARIO: Ana blocks Ben
        THEN: Only Ana's blocked list changes; Ben's row is untouched
        """
        ana = await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")
        ben_before = (await load_user(ben["id"])).to_dict()

        response = await send(MessageType.BLOCK_TOGGLE, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": ben["id"]
        })

        assert response.payload["message"] == "User blocked"
        assert response.payload["isBlocked"] is True
        assert (await load_user(ana["id"])).blocked_users == [ben["id"]]

        ben_after = (await load_user(ben["id"])).to_dict()
        assert ben_after == ben_before

        reverse = await relationship_agent.is_blocked("ben@example.com", ana["id"])
        assert reverse["isBlocked"] is False

    @pytest.mark.asyncio
    async def test_block_toggles_back(self, relationship_agent, make_user):
        await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")

        await relationship_agent.toggle_block("ana@example.com", ben["id"])
        result = await relationship_agent.toggle_block("ana@example.com", ben["id"])

        assert result == {"message": "User unblocked", "isBlocked": False}
        status = await relationship_agent.is_blocked("ana@example.com", ben["id"])
        assert status["isBlocked"] is False

    @pytest.mark.asyncio
    async def test_block_by_email_is_seen_by_id(self, relationship_agent, make_user):
        await make_user(email="ana@example.com")
        ben = await make_user(email="ben@example.com")

        await relationship_agent.toggle_block("ana@example.com", "ben@example.com")

        status = await relationship_agent.is_blocked("ana@example.com", ben["id"])
        assert status["isBlocked"] is True

    @pytest.mark.asyncio
    async def test_cannot_block_yourself(self, relationship_agent, send, make_user):
        ana = await make_user(email="ana@example.com")

        response = await send(MessageType.BLOCK_TOGGLE, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": ana["id"]
        })

        assert response.payload["error_code"] == "invalid_operation"
        assert response.payload["error"] == "Cannot block yourself"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message_type,error", [
        (MessageType.FOLLOW_TOGGLE, "Cannot follow yourself"),
        (MessageType.BLOCK_TOGGLE, "Cannot block yourself"),
    ])
    async def test_self_target_rejected_even_with_corrupt_lists(
        self, relationship_agent, send, make_user, message_type, error
    ):
        """
        GIVEN: A row that already lists its own user as followed and blocked
        WHEN: The user follows or blocks themselves
        THEN: The request is rejected and the lists are left as they were
        """
        ana = await make_user(email="ana@example.com")
        await set_lists(ana["id"], following=[ana["id"]], blocked_users=[ana["id"]])

        response = await send(message_type, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": ana["id"]
        })

        assert response.payload["error_code"] == "invalid_operation"
        assert response.payload["error"] == error
        ana_row = await load_user(ana["id"])
        assert ana_row.following == [ana["id"]]
        assert ana_row.blocked_users == [ana["id"]]

    @pytest.mark.asyncio
    async def test_block_requires_a_target(self, relationship_agent, send, make_user):
        await make_user(email="ana@example.com")

        response = await send(MessageType.BLOCK_TOGGLE, RELATIONSHIP_AGENT, {
            "actor_email": "ana@example.com", "target_id": ""
        })

        assert response.payload["error_code"] == "invalid_input"
