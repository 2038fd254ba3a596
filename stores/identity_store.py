"""
Identity Store - Persistence for User Records

A thin layer over the users table. It never commits: callers open the
transaction (`async with session.begin()`) so that multi-row changes such
as a follow, which touches two users, succeed or fail together.
"""

from typing import Iterable, List, Optional
import logging

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import Conflict, NotFound
from models.user import User
from models.user_ref import UserRef, aliases, contains_user, without_user

logger = logging.getLogger(__name__)


class IdentityStore:
    """Lookups, uniqueness checks and relationship cleanup for users."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _first(self, statement, for_update: bool) -> Optional[User]:
        if for_update:
            # Row lock on PostgreSQL; SQLite omits the clause and serializes writers.
            # populate_existing so a row already in the session is re-read under the lock.
            statement = statement.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def lock_pair(self, first: User, second: User):
        """
        Lock two user rows for a paired update.

        Rows are always locked in id order, so two users acting on each
        other at the same moment cannot deadlock.
        """
        for user_id in sorted({first.id, second.id}):
            await self.get_by_id(user_id, for_update=True)

    async def get_by_id(self, user_id: str, for_update: bool = False) -> Optional[User]:
        return await self._first(select(User).where(User.id == user_id), for_update)

    async def get_by_email(self, email: str, for_update: bool = False) -> Optional[User]:
        if not email:
            return None
        return await self._first(
            select(User).where(func.lower(User.email) == email.strip().lower()),
            for_update
        )

    async def get_by_username(self, username: str) -> Optional[User]:
        return await self._first(select(User).where(User.username == username), False)

    async def resolve(self, raw_ref: Optional[str], for_update: bool = False) -> Optional[User]:
        """
        Resolve a user reference to its User row.

        Object ids are looked up by id first; anything that is not found
        that way (including every email-form reference) is then looked up
        by email.
        """
        ref = UserRef.parse(raw_ref or "")
        if not ref.value:
            return None

        user = None
        if not ref.is_email:
            user = await self.get_by_id(ref.value, for_update)
        if user is None:
            user = await self.get_by_email(ref.value, for_update)
        return user

    async def require(self, raw_ref: Optional[str], for_update: bool = False) -> User:
        user = await self.resolve(raw_ref, for_update)
        if user is None:
            raise NotFound("User not found")
        return user

    async def require_by_email(self, email: str, for_update: bool = False) -> User:
        user = await self.get_by_email(email, for_update)
        if user is None:
            raise NotFound("User not found")
        return user

    async def get_many(self, raw_refs: Iterable[str]) -> List[User]:
        """
        Fetch several users at once, in the order first requested.

        Refs that resolve to nothing are skipped; a user named twice (by id
        and by email) is returned once.
        """
        refs = [UserRef.parse(raw) for raw in raw_refs if raw]
        ids = [ref.value for ref in refs if not ref.is_email]
        emails = [ref.value for ref in refs if ref.is_email]
        if not refs:
            return []

        conditions = []
        if ids:
            conditions.append(User.id.in_(ids))
        # Non-email refs may still be legacy values; match them as emails too
        conditions.append(func.lower(User.email).in_(emails + [value.lower() for value in ids]))

        result = await self.session.execute(select(User).where(or_(*conditions)))
        found = list(result.scalars().all())

        ordered: List[User] = []
        for ref in refs:
            for user in found:
                if ref.value in aliases(user) and user not in ordered:
                    ordered.append(user)
        return ordered

    async def create(
        self,
        email: str,
        password_hash: str,
        name: Optional[str] = None,
        username: Optional[str] = None
    ) -> User:
        """Insert a new user; Conflict on a taken email or username."""
        if await self.get_by_email(email):
            raise Conflict("User already exists")
        if username and await self.get_by_username(username):
            raise Conflict("Username already taken")

        user = User(
            email=email.strip().lower(),
            password_hash=password_hash,
            name=name,
            username=username,
            followers=[],
            following=[],
            blocked_users=[]
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration
            raise Conflict("User already exists")
        return user

    async def update(self, user: User, **fields) -> User:
        """Apply profile changes; Conflict when the username belongs to someone else."""
        username = fields.get("username")
        if username and username != user.username:
            owner = await self.get_by_username(username)
            if owner is not None and owner.id != user.id:
                raise Conflict("Username already taken")

        for key, value in fields.items():
            setattr(user, key, value)

        try:
            await self.session.flush()
        except IntegrityError:
            raise Conflict("Username already taken")
        return user

    async def delete(self, user: User):
        await self.session.delete(user)
        await self.session.flush()

    async def remove_from_relationships(self, user: User) -> int:
        """
        Strip every alias of `user` from all other users' followers and
        following lists. Returns the number of rows changed.

        Only rows whose serialized lists mention an alias are selected and
        locked. LIKE over-matches (wildcards, id case), so the exact test
        still happens here.
        """
        mentions = []
        for alias in aliases(user):
            pattern = f"%{alias}%"
            mentions.append(cast(User.followers, String).ilike(pattern))
            mentions.append(cast(User.following, String).ilike(pattern))

        result = await self.session.execute(
            select(User)
            .where(User.id != user.id, or_(*mentions))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        changed = 0
        for other in result.scalars().all():
            in_followers = contains_user(other.followers, user)
            in_following = contains_user(other.following, user)
            if not (in_followers or in_following):
                continue
            if in_followers:
                other.followers = without_user(other.followers, user)
            if in_following:
                other.following = without_user(other.following, user)
            changed += 1

        await self.session.flush()
        logger.info(f"Removed {user.id} from the relationship lists of {changed} users")
        return changed
