"""
Video Agent - Upload Metadata, Feed and Owner Edits

EXPLANATION:
============
The media files themselves are uploaded straight to an external CDN; this
agent only stores what the client reports back (URLs, title, description).

Operations:
1. create_video - new upload, owned by the caller's object id
2. list_videos  - newest first; hides owners the viewer has blocked
3. get_video    - single video, counting a view atomically in SQL
4. update_video - owner-only title/description edit
5. delete_video - owner-only removal

Ownership checks accept either alias of the caller, because older videos
store the owner's email in user_id.
"""

from typing import Any, Dict, List, Optional
import logging

from core.agent_base import Agent, AgentMessage, MessageType
from core.errors import Forbidden, InvalidInput
from core.event_bus import Event, EventBus, EventType
from models.database import session_scope
from models.user_ref import aliases, refers_to
from models.video import DEFAULT_TRANSFORMATION
from stores.identity_store import IdentityStore
from stores.video_store import VideoStore

logger = logging.getLogger(__name__)


class VideoAgent(Agent):

    def __init__(self):
        super().__init__(
            agent_id="video_agent",
            name="Video Agent"
        )
        self.event_bus = EventBus()

        self.register_handler(MessageType.VIDEO_CREATE, self._handle_create)
        self.register_handler(MessageType.VIDEO_LIST, self._handle_list)
        self.register_handler(MessageType.VIDEO_READ, self._handle_read)
        self.register_handler(MessageType.VIDEO_UPDATE, self._handle_update)
        self.register_handler(MessageType.VIDEO_DELETE, self._handle_delete)

    def get_capabilities(self) -> List[MessageType]:
        return [
            MessageType.VIDEO_CREATE,
            MessageType.VIDEO_LIST,
            MessageType.VIDEO_READ,
            MessageType.VIDEO_UPDATE,
            MessageType.VIDEO_DELETE
        ]

    # ==================== OPERATIONS ====================

    async def create_video(self, actor_email: str, data: Dict[str, Any]) -> Dict[str, Any]:
        title = (data.get("title") or "").strip()
        description = (data.get("description") or "").strip()
        video_url = (data.get("videoUrl") or "").strip()

        if not title or not description or not video_url:
            raise InvalidInput("Missing required fields")

        transformation = dict(DEFAULT_TRANSFORMATION)
        if data.get("quality"):
            transformation["quality"] = str(data["quality"])

        async with session_scope() as session:
            async with session.begin():
                owner = await IdentityStore(session).require_by_email(actor_email)
                video = await VideoStore(session).create(
                    user_id=owner.id,
                    user_name=owner.name or owner.email.split("@")[0],
                    title=title,
                    description=description,
                    video_url=video_url,
                    thumbnail_url=data.get("thumbnailUrl"),
                    controls=data.get("controls", True),
                    transformation=transformation
                )

        logger.info(f"Video created: {video.id} by {owner.id}")

        await self.event_bus.publish(Event(
            event_type=EventType.VIDEO_CREATED,
            data={"title": video.title},
            user_id=owner.id,
            video_id=video.id
        ))

        return {"video": video.to_dict()}

    async def list_videos(self, viewer_email: Optional[str] = None) -> Dict[str, Any]:
        """
        The feed, newest first.

        A signed-in viewer does not see videos from users they blocked.
        Blocked refs are resolved so that videos stored under the blocked
        user's legacy email are hidden too.
        """
        async with session_scope() as session:
            identities = IdentityStore(session)
            hidden: set = set()

            viewer = await identities.get_by_email(viewer_email) if viewer_email else None
            if viewer is not None and viewer.blocked_list:
                hidden.update(viewer.blocked_list)
                for blocked in await identities.get_many(viewer.blocked_list):
                    hidden.update(aliases(blocked))

            videos = await VideoStore(session).list_recent(exclude_owner_aliases=hidden)

        return {"videos": [video.to_dict() for video in videos]}

    async def get_video(self, video_id: str) -> Dict[str, Any]:
        async with session_scope() as session:
            async with session.begin():
                videos = VideoStore(session)
                await videos.increment_views(video_id)
                video = await videos.require(video_id)

        return {"video": video.to_dict()}

    async def _require_owned(self, session, actor_email: str, video_id: str):
        user = await IdentityStore(session).require_by_email(actor_email)
        video = await VideoStore(session).require(video_id, for_update=True)
        if not refers_to(video.user_id, user):
            raise Forbidden("You are not authorized to modify this video")
        return user, video

    async def update_video(
        self,
        actor_email: str,
        video_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        async with session_scope() as session:
            async with session.begin():
                user, video = await self._require_owned(session, actor_email, video_id)
                await VideoStore(session).update(
                    video,
                    title=(title or "").strip() or None,
                    description=(description or "").strip() or None
                )

        logger.info(f"Video updated: {video_id}")

        await self.event_bus.publish(Event(
            event_type=EventType.VIDEO_UPDATED,
            data={"title": video.title},
            user_id=user.id,
            video_id=video_id
        ))

        return {"message": "Video updated successfully", "video": video.to_dict()}

    async def delete_video(self, actor_email: str, video_id: str) -> Dict[str, Any]:
        async with session_scope() as session:
            async with session.begin():
                user, video = await self._require_owned(session, actor_email, video_id)
                await VideoStore(session).delete(video)

        logger.info(f"Video deleted: {video_id}")

        await self.event_bus.publish(Event(
            event_type=EventType.VIDEO_DELETED,
            data={},
            user_id=user.id,
            video_id=video_id
        ))

        return {"message": "Video deleted successfully"}

    # ==================== MESSAGE HANDLERS ====================

    async def _handle_create(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.create_video(
            payload.get("actor_email"), payload.get("video", {})
        ))

    async def _handle_list(self, message: AgentMessage) -> AgentMessage:
        return await self.respond(message, lambda: self.list_videos(
            message.payload.get("viewer_email")
        ))

    async def _handle_read(self, message: AgentMessage) -> AgentMessage:
        return await self.respond(message, lambda: self.get_video(
            message.payload.get("video_id")
        ))

    async def _handle_update(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.update_video(
            payload.get("actor_email"),
            payload.get("video_id"),
            title=payload.get("title"),
            description=payload.get("description")
        ))

    async def _handle_delete(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.delete_video(
            payload.get("actor_email"), payload.get("video_id")
        ))
