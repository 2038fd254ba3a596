"""
Video Store - Persistence for Video Records and the Account Cascade

Like the identity store, it never commits; callers own the transaction.

Owner matching: a video's `user_id` may hold either alias of its owner, so
every owner query matches the (lower-cased) column against both.
"""

from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFound
from models.user import User
from models.user_ref import aliases
from models.video import Video
from .identity_store import IdentityStore

logger = logging.getLogger(__name__)


def _owned_by(owner_aliases: Iterable[str]):
    return func.lower(Video.user_id).in_([alias.lower() for alias in owner_aliases])


class VideoStore:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields) -> Video:
        video = Video(likes=[], comments=[], views=0, **fields)
        self.session.add(video)
        await self.session.flush()
        return video

    async def get(self, video_id: str, for_update: bool = False) -> Optional[Video]:
        statement = select(Video).where(Video.id == video_id)
        if for_update:
            statement = statement.with_for_update()
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def require(self, video_id: str, for_update: bool = False) -> Video:
        video = await self.get(video_id, for_update)
        if video is None:
            raise NotFound("Video not found")
        return video

    async def update(self, video: Video, **fields) -> Video:
        """Set the given columns; None values leave a column unchanged."""
        for key, value in fields.items():
            if value is not None:
                setattr(video, key, value)
        await self.session.flush()
        return video

    async def list_recent(
        self,
        exclude_owner_aliases: Iterable[str] = (),
        limit: Optional[int] = None
    ) -> List[Video]:
        """Newest first, optionally hiding videos owned by the given refs."""
        statement = select(Video).order_by(Video.created_at.desc())

        excluded = [alias.lower() for alias in exclude_owner_aliases]
        if excluded:
            statement = statement.where(
                or_(Video.user_id.is_(None), func.lower(Video.user_id).notin_(excluded))
            )
        if limit:
            statement = statement.limit(limit)

        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_by_owner(self, user: User) -> List[Video]:
        """Videos owned by the user under either alias (union), newest first."""
        result = await self.session.execute(
            select(Video)
            .where(_owned_by(aliases(user)))
            .order_by(Video.created_at.desc())
        )
        return list(result.scalars().all())

    async def increment_views(self, video_id: str) -> bool:
        """Atomic `views = views + 1`; False when the video does not exist."""
        result = await self.session.execute(
            update(Video)
            .where(Video.id == video_id)
            .values(views=func.coalesce(Video.views, 0) + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete(self, video: Video):
        await self.session.delete(video)
        await self.session.flush()

    async def delete_by_owner(self, user: User) -> int:
        result = await self.session.execute(
            delete(Video)
            .where(_owned_by(aliases(user)))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_account_cascade(self, user: User) -> Dict[str, int]:
        """
        Delete a user together with everything that points at them.

        Must run inside one transaction. The steps are ordered so that,
        on a backend without transactions, a crash part-way leaves only
        orphaned videos (fixed by running the cascade again) and never a
        deleted user still listed in someone's followers/following:

            1. videos owned by the user (id or legacy email)
            2. the user's aliases in other users' relationship lists
            3. the user row itself
        """
        identities = IdentityStore(self.session)

        videos_deleted = await self.delete_by_owner(user)
        relationships_cleaned = await identities.remove_from_relationships(user)
        await identities.delete(user)

        logger.info(
            f"Account cascade for {user.id}: {videos_deleted} videos deleted, "
            f"{relationships_cleaned} users updated"
        )
        return {
            "videosDeleted": videos_deleted,
            "relationshipsCleaned": relationships_cleaned
        }
