"""
Profile Agent - Read-Only Profile Views

Composes user rows, their videos and their relationship lists into the
payloads behind the profile pages. Nothing here writes to the database.

Videos are matched to their owner under both aliases (object id and legacy
email) and the union is returned. A video whose owner reference is
missing or still in the email form gets the owner's object id filled in
on the way out; the stored row is left untouched.
"""

from typing import Any, Dict, List, Optional
import logging

from core.agent_base import Agent, AgentMessage, MessageType
from models.database import session_scope
from models.user_ref import UserRef, contains_user
from stores.identity_store import IdentityStore
from stores.video_store import VideoStore

logger = logging.getLogger(__name__)


def compute_stats(videos: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "totalVideos": len(videos),
        "totalViews": sum(int(video.get("views") or 0) for video in videos),
        "totalLikes": sum(len(video.get("likes") or []) for video in videos),
    }


class ProfileAgent(Agent):

    def __init__(self):
        super().__init__(
            agent_id="profile_agent",
            name="Profile Agent"
        )

        self.register_handler(MessageType.PROFILE_GET, self._handle_get_profile)
        self.register_handler(MessageType.PROFILE_GET_PUBLIC, self._handle_get_public_profile)

    def get_capabilities(self) -> List[MessageType]:
        return [MessageType.PROFILE_GET, MessageType.PROFILE_GET_PUBLIC]

    async def _owned_videos(self, session, user) -> List[Dict[str, Any]]:
        videos = []
        for video in await VideoStore(session).list_by_owner(user):
            data = video.to_dict()
            if not data["userId"] or UserRef.parse(data["userId"]).is_email:
                data["userId"] = user.id
            videos.append(data)
        return videos

    async def get_profile(self, actor_email: str) -> Dict[str, Any]:
        """The caller's own profile: full record, videos and stats."""
        async with session_scope() as session:
            user = await IdentityStore(session).require_by_email(actor_email)
            videos = await self._owned_videos(session, user)

        return {
            "user": user.to_dict(),
            "videos": videos,
            "stats": compute_stats(videos)
        }

    async def get_public_profile(
        self,
        target_ref: str,
        viewer_email: Optional[str] = None
    ) -> Dict[str, Any]:
        """Another user's profile as seen by `viewer_email` (or anonymously)."""
        async with session_scope() as session:
            identities = IdentityStore(session)
            user = await identities.require(target_ref)
            videos = await self._owned_videos(session, user)

            is_following = False
            if viewer_email:
                viewer = await identities.get_by_email(viewer_email)
                if viewer is not None:
                    is_following = contains_user(viewer.following, user)

        return {
            "user": {
                **user.to_public_dict(),
                "followersCount": len(user.followers_list),
                "followingCount": len(user.following_list),
            },
            "videos": videos,
            "stats": compute_stats(videos),
            "isFollowing": is_following
        }

    async def _handle_get_profile(self, message: AgentMessage) -> AgentMessage:
        return await self.respond(message, lambda: self.get_profile(
            message.payload.get("actor_email")
        ))

    async def _handle_get_public_profile(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.get_public_profile(
            payload.get("target_id"), payload.get("viewer_email")
        ))
