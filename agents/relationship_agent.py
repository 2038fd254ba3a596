"""
Relationship Agent - Follow, Unfollow and Block

EXPLANATION:
============
This agent owns the social graph stored on user rows.

Follow is a TOGGLE, not a set-to-true: each call flips the state, so two
calls in a row restore the original lists. "A follows B" lives on both
rows (B in A.following, A in B.followers); both rows are locked, changed
and committed in one transaction, so a follow can never be half-written.

Block is one-sided and private: it only changes the blocker's
blocked_users list. The blocked user's record is never touched and nobody
else can observe the block.

Every membership test goes through models.user_ref, so a list entry stored
as a legacy email matches the same user as an entry stored as an object id.

Concurrency: a toggle is read-modify-write on JSON lists. Row locks
(SELECT ... FOR UPDATE) serialize concurrent toggles on PostgreSQL and
SQLite serializes writers, but a backend without either would be exposed
to lost updates. That window is an accepted limitation.
"""

from typing import Any, Dict, List, Optional
import logging

from core.agent_base import Agent, AgentMessage, MessageType
from core.errors import InvalidInput, InvalidOperation
from core.event_bus import Event, EventBus, EventType
from models.database import session_scope
from models.user_ref import UserRef, contains_ref, contains_user, refers_to, without_ref, without_user
from stores.identity_store import IdentityStore

logger = logging.getLogger(__name__)

CONNECTION_KINDS = ("followers", "following")


class RelationshipAgent(Agent):

    def __init__(self):
        super().__init__(
            agent_id="relationship_agent",
            name="Relationship Agent"
        )
        self.event_bus = EventBus()

        self.register_handler(MessageType.FOLLOW_TOGGLE, self._handle_toggle_follow)
        self.register_handler(MessageType.FOLLOW_STATUS, self._handle_follow_status)
        self.register_handler(MessageType.FOLLOWER_REMOVE, self._handle_remove_follower)
        self.register_handler(MessageType.CONNECTIONS_LIST, self._handle_list_connections)
        self.register_handler(MessageType.BLOCK_TOGGLE, self._handle_toggle_block)
        self.register_handler(MessageType.BLOCK_STATUS, self._handle_block_status)

    def get_capabilities(self) -> List[MessageType]:
        return [
            MessageType.FOLLOW_TOGGLE,
            MessageType.FOLLOW_STATUS,
            MessageType.FOLLOWER_REMOVE,
            MessageType.CONNECTIONS_LIST,
            MessageType.BLOCK_TOGGLE,
            MessageType.BLOCK_STATUS
        ]

    # ==================== FOLLOW ====================

    async def toggle_follow(self, actor_email: str, target_ref: str) -> Dict[str, Any]:
        """
        Follow the target if the actor does not follow them yet, otherwise
        unfollow. The target may be named by object id or by email.
        """
        async with session_scope() as session:
            async with session.begin():
                identities = IdentityStore(session)
                actor = await identities.require_by_email(actor_email)
                target = await identities.require(target_ref)

                if actor.id == target.id:
                    raise InvalidOperation("Cannot follow yourself")

                await identities.lock_pair(actor, target)

                was_following = contains_user(actor.following, target)
                if was_following:
                    actor.following = without_user(actor.following, target)
                    target.followers = without_user(target.followers, actor)
                else:
                    actor.following = actor.following_list + [target.id]
                    # Drop any one-sided leftover before adding, so the pair stays unique
                    target.followers = without_user(target.followers, actor) + [actor.id]

                follower_count = len(target.followers_list)

        is_following = not was_following
        logger.info(f"{actor.id} {'followed' if is_following else 'unfollowed'} {target.id}")

        await self.event_bus.publish(Event(
            event_type=EventType.USER_FOLLOWED if is_following else EventType.USER_UNFOLLOWED,
            data={"target_id": target.id, "followerCount": follower_count},
            user_id=actor.id
        ))

        return {"isFollowing": is_following, "followerCount": follower_count}

    async def get_follow_status(
        self,
        actor_email: Optional[str],
        target_ref: str
    ) -> Dict[str, Any]:
        """Anonymous callers always get isFollowing=False; the count is public."""
        async with session_scope() as session:
            identities = IdentityStore(session)
            target = await identities.require(target_ref)

            is_following = False
            if actor_email:
                actor = await identities.get_by_email(actor_email)
                if actor is not None:
                    is_following = contains_user(actor.following, target)

        return {"isFollowing": is_following, "followerCount": len(target.followers_list)}

    async def remove_follower(self, actor_email: str, follower_ref: str) -> Dict[str, Any]:
        """
        Make `follower` stop following the actor.

        This is the unfollow half of toggle_follow performed from the
        follower's side. It never creates a follow: when the follower does
        not follow the actor nothing changes.
        """
        async with session_scope() as session:
            async with session.begin():
                identities = IdentityStore(session)
                actor = await identities.require_by_email(actor_email)
                follower = await identities.require(follower_ref)

                if actor.id == follower.id:
                    raise InvalidOperation("Cannot remove yourself as a follower")

                await identities.lock_pair(actor, follower)

                removed = (
                    contains_user(actor.followers, follower)
                    or contains_user(follower.following, actor)
                )
                if removed:
                    actor.followers = without_user(actor.followers, follower)
                    follower.following = without_user(follower.following, actor)

                follower_count = len(actor.followers_list)

        if removed:
            logger.info(f"{actor.id} removed follower {follower.id}")
            await self.event_bus.publish(Event(
                event_type=EventType.FOLLOWER_REMOVED,
                data={"follower_id": follower.id, "followerCount": follower_count},
                user_id=actor.id
            ))

        return {"removed": removed, "followerCount": follower_count}

    async def list_connections(self, target_ref: str, kind: str) -> Dict[str, Any]:
        """Public summaries of a user's followers or followings."""
        if kind not in CONNECTION_KINDS:
            raise InvalidInput(f"kind must be one of {', '.join(CONNECTION_KINDS)}")

        async with session_scope() as session:
            identities = IdentityStore(session)
            target = await identities.require(target_ref)
            refs = target.followers_list if kind == "followers" else target.following_list
            users = await identities.get_many(refs)

        return {"users": [user.to_public_dict() for user in users]}

    # ==================== BLOCK ====================

    async def toggle_block(self, actor_email: str, target_id: str) -> Dict[str, Any]:
        """
        Block or unblock `target_id` for the actor only.

        When the target resolves to a user the membership test covers both
        of their aliases and a new block is stored under their object id.
        A reference that resolves to nobody is stored and matched as given.
        """
        target_id = (target_id or "").strip()
        if not target_id:
            raise InvalidInput("User ID required")

        async with session_scope() as session:
            async with session.begin():
                identities = IdentityStore(session)
                actor = await identities.require_by_email(actor_email, for_update=True)

                if refers_to(target_id, actor):
                    raise InvalidOperation("Cannot block yourself")

                target = await identities.resolve(target_id)
                if target is not None:
                    was_blocked = contains_user(actor.blocked_users, target)
                    if was_blocked:
                        actor.blocked_users = without_user(actor.blocked_users, target)
                    else:
                        actor.blocked_users = actor.blocked_list + [target.id]
                else:
                    was_blocked = contains_ref(actor.blocked_users, target_id)
                    if was_blocked:
                        actor.blocked_users = without_ref(actor.blocked_users, target_id)
                    else:
                        actor.blocked_users = actor.blocked_list + [UserRef.parse(target_id).value]

        is_blocked = not was_blocked
        logger.info(f"{actor.id} {'blocked' if is_blocked else 'unblocked'} {target_id}")

        await self.event_bus.publish(Event(
            event_type=EventType.USER_BLOCKED if is_blocked else EventType.USER_UNBLOCKED,
            data={"target_id": target.id if target is not None else target_id},
            user_id=actor.id
        ))

        return {
            "message": "User blocked" if is_blocked else "User unblocked",
            "isBlocked": is_blocked
        }

    async def is_blocked(self, actor_email: str, candidate_id: str) -> Dict[str, Any]:
        candidate_id = (candidate_id or "").strip()
        if not candidate_id:
            raise InvalidInput("User ID required")

        async with session_scope() as session:
            identities = IdentityStore(session)
            actor = await identities.require_by_email(actor_email)
            candidate = await identities.resolve(candidate_id)

            if candidate is not None:
                blocked = contains_user(actor.blocked_users, candidate)
            else:
                blocked = contains_ref(actor.blocked_users, candidate_id)

        return {"isBlocked": blocked}

    # ==================== MESSAGE HANDLERS ====================

    async def _handle_toggle_follow(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.toggle_follow(
            payload.get("actor_email"), payload.get("target_id")
        ))

    async def _handle_follow_status(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.get_follow_status(
            payload.get("actor_email"), payload.get("target_id")
        ))

    async def _handle_remove_follower(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.remove_follower(
            payload.get("actor_email"), payload.get("follower_id")
        ))

    async def _handle_list_connections(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.list_connections(
            payload.get("target_id"), payload.get("kind")
        ))

    async def _handle_toggle_block(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.toggle_block(
            payload.get("actor_email"), payload.get("target_id")
        ))

    async def _handle_block_status(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.is_blocked(
            payload.get("actor_email"), payload.get("target_id")
        ))
