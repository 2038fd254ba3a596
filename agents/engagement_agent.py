"""
Engagement Agent - Likes and Comments

EXPLANATION:
============
Likes and comments are stored on the video row:

- likes is a list of user keys. A like is a TOGGLE: the caller's key is
  removed if present and appended otherwise, so the like count is always
  len(likes). Anyone signed in may like any video, their own included.

- comments is an append-only list kept in insertion order. A comment is
  never edited; it can only be deleted, by its author or by the owner of
  the video, and deleting one keeps the order of the rest.

User keys are emails, but older rows may hold object ids; membership
tests accept both aliases of the caller.
"""

from typing import Any, Dict, List, Optional
import logging

from core.agent_base import Agent, AgentMessage, MessageType
from core.errors import Forbidden, InvalidInput, NotFound
from core.event_bus import Event, EventBus, EventType
from models.database import session_scope
from models.user_ref import contains_ref, contains_user, refers_to, without_ref, without_user
from models.video import new_comment
from stores.identity_store import IdentityStore
from stores.video_store import VideoStore

logger = logging.getLogger(__name__)


def _is_actor(raw_ref: Optional[str], actor_email: str, actor) -> bool:
    """Does a stored reference name the caller (by email, or any alias if known)?"""
    if actor is not None:
        return refers_to(raw_ref, actor)
    return bool(raw_ref) and raw_ref.strip().lower() == (actor_email or "").strip().lower()


class EngagementAgent(Agent):

    def __init__(self):
        super().__init__(
            agent_id="engagement_agent",
            name="Engagement Agent"
        )
        self.event_bus = EventBus()

        self.register_handler(MessageType.LIKE_TOGGLE, self._handle_toggle_like)
        self.register_handler(MessageType.LIKE_STATUS, self._handle_like_status)
        self.register_handler(MessageType.COMMENT_ADD, self._handle_add_comment)
        self.register_handler(MessageType.COMMENT_LIST, self._handle_list_comments)
        self.register_handler(MessageType.COMMENT_DELETE, self._handle_delete_comment)

    def get_capabilities(self) -> List[MessageType]:
        return [
            MessageType.LIKE_TOGGLE,
            MessageType.LIKE_STATUS,
            MessageType.COMMENT_ADD,
            MessageType.COMMENT_LIST,
            MessageType.COMMENT_DELETE
        ]

    # ==================== LIKES ====================

    async def toggle_like(self, actor_email: str, video_id: str) -> Dict[str, Any]:
        actor_key = (actor_email or "").strip().lower()
        if not actor_key:
            raise InvalidInput("User email required")

        async with session_scope() as session:
            async with session.begin():
                actor = await IdentityStore(session).get_by_email(actor_key)
                video = await VideoStore(session).require(video_id, for_update=True)

                if actor is not None:
                    was_liked = contains_user(video.likes, actor)
                    remaining = without_user(video.likes, actor)
                else:
                    was_liked = contains_ref(video.likes, actor_key)
                    remaining = without_ref(video.likes, actor_key)

                video.likes = remaining if was_liked else remaining + [actor_key]
                like_count = len(video.likes_list)

        is_liked = not was_liked
        logger.info(f"{actor_key} {'liked' if is_liked else 'unliked'} video {video_id}")

        await self.event_bus.publish(Event(
            event_type=EventType.VIDEO_LIKED if is_liked else EventType.VIDEO_UNLIKED,
            data={"likes": like_count},
            user_id=actor.id if actor is not None else actor_key,
            video_id=video_id
        ))

        return {"likes": like_count, "isLiked": is_liked}

    async def get_like_status(self, actor_email: Optional[str], video_id: str) -> Dict[str, Any]:
        """Anonymous callers get isLiked=False; the count is public."""
        async with session_scope() as session:
            video = await VideoStore(session).require(video_id)

            is_liked = False
            if actor_email:
                actor = await IdentityStore(session).get_by_email(actor_email)
                if actor is not None:
                    is_liked = contains_user(video.likes, actor)
                else:
                    is_liked = contains_ref(video.likes, actor_email)

        return {"likes": len(video.likes_list), "isLiked": is_liked}

    # ==================== COMMENTS ====================

    async def add_comment(
        self,
        actor_email: str,
        video_id: str,
        text: Optional[str],
        actor_name: Optional[str] = None
    ) -> Dict[str, Any]:
        body = (text or "").strip()
        if not body:
            raise InvalidInput("Comment text is required")

        actor_key = (actor_email or "").strip().lower()

        async with session_scope() as session:
            async with session.begin():
                actor = await IdentityStore(session).get_by_email(actor_key)
                video = await VideoStore(session).require(video_id, for_update=True)

                name = (actor.name if actor is not None else None) or actor_name or actor_key
                comment = new_comment(user_id=actor_key, user_name=name, text=body)
                video.comments = video.comments_list + [comment]
                total = len(video.comments_list)

        logger.info(f"Comment {comment['id']} added to video {video_id} by {actor_key}")

        await self.event_bus.publish(Event(
            event_type=EventType.COMMENT_ADDED,
            data={"comment_id": comment["id"], "totalComments": total},
            user_id=actor.id if actor is not None else actor_key,
            video_id=video_id
        ))

        return {"comment": comment, "totalComments": total}

    async def list_comments(self, video_id: str) -> Dict[str, Any]:
        async with session_scope() as session:
            video = await VideoStore(session).require(video_id)
            comments = video.comments_list

        return {"comments": comments, "totalComments": len(comments)}

    async def delete_comment(
        self,
        actor_email: str,
        video_id: str,
        comment_id: Optional[str]
    ) -> Dict[str, Any]:
        """
        Remove a comment.

        Allowed for the comment's author and for the video's owner; any
        other caller gets Forbidden and the comment stays.
        """
        if not comment_id:
            raise InvalidInput("Comment ID required")

        async with session_scope() as session:
            async with session.begin():
                actor = await IdentityStore(session).get_by_email(actor_email)
                video = await VideoStore(session).require(video_id, for_update=True)

                comment = video.find_comment(comment_id)
                if comment is None:
                    raise NotFound("Comment not found")

                is_author = _is_actor(comment.get("userId"), actor_email, actor)
                is_owner = _is_actor(video.user_id, actor_email, actor)
                if not (is_author or is_owner):
                    raise Forbidden("Not allowed to delete this comment")

                video.comments = [c for c in video.comments_list if c.get("id") != comment_id]

        logger.info(f"Comment {comment_id} deleted from video {video_id} by {actor_email}")

        await self.event_bus.publish(Event(
            event_type=EventType.COMMENT_DELETED,
            data={"comment_id": comment_id, "by_owner": is_owner and not is_author},
            user_id=actor.id if actor is not None else actor_email,
            video_id=video_id
        ))

        return {"message": "Comment deleted"}

    # ==================== MESSAGE HANDLERS ====================

    async def _handle_toggle_like(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.toggle_like(
            payload.get("actor_email"), payload.get("video_id")
        ))

    async def _handle_like_status(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.get_like_status(
            payload.get("actor_email"), payload.get("video_id")
        ))

    async def _handle_add_comment(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.add_comment(
            payload.get("actor_email"),
            payload.get("video_id"),
            payload.get("text"),
            actor_name=payload.get("actor_name")
        ))

    async def _handle_list_comments(self, message: AgentMessage) -> AgentMessage:
        return await self.respond(message, lambda: self.list_comments(
            message.payload.get("video_id")
        ))

    async def _handle_delete_comment(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.delete_comment(
            payload.get("actor_email"),
            payload.get("video_id"),
            payload.get("comment_id")
        ))
