"""
User Management Agent - Accounts, Credentials and Sessions

EXPLANATION:
============
This agent is responsible for all account-level operations:
1. Registration - creating a user with a bcrypt password hash
2. Login - checking credentials and issuing a JWT
3. Session resolution - turning a bearer token back into {user_id, email, name}
4. Profile editing - name, username, image
5. Account deletion - the cascade over videos and the social graph
6. Batch lookup - public summaries for the followers/following dialogs

Security Implementation:
- Passwords hashed with bcrypt (never stored or returned in plain text)
- JWT tokens for stateless authentication, with expiration
- Generic "Invalid credentials" so login never reveals which accounts exist
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging
import re

import bcrypt
from jose import JWTError, jwt

from core.agent_base import Agent, AgentMessage, MessageType
from core.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, MIN_PASSWORD_LENGTH, SECRET_KEY
from core.errors import InvalidInput, Unauthorized
from core.event_bus import Event, EventBus, EventType
from models.database import session_scope
from stores.identity_store import IdentityStore
from stores.video_store import VideoStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserManagementAgent(Agent):
    """Agent responsible for user accounts and authentication."""

    def __init__(self):
        super().__init__(
            agent_id="user_management_agent",
            name="User Management Agent"
        )
        self.event_bus = EventBus()

        self.register_handler(MessageType.USER_REGISTER, self._handle_register)
        self.register_handler(MessageType.USER_LOGIN, self._handle_login)
        self.register_handler(MessageType.USER_UPDATE_PROFILE, self._handle_update_profile)
        self.register_handler(MessageType.USER_DELETE, self._handle_delete_user)
        self.register_handler(MessageType.USER_BATCH, self._handle_batch)

    def get_capabilities(self) -> List[MessageType]:
        return [
            MessageType.USER_REGISTER,
            MessageType.USER_LOGIN,
            MessageType.USER_UPDATE_PROFILE,
            MessageType.USER_DELETE,
            MessageType.USER_BATCH
        ]

    # ==================== PASSWORD UTILITIES ====================

    def _hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Bcrypt is slow by design and embeds its salt in the hash, so the
        salt is not stored separately.
        """
        password_bytes = password.encode('utf-8')
        salt = bcrypt.gensalt(rounds=12)
        hashed = bcrypt.hashpw(password_bytes, salt)
        return hashed.decode('utf-8')

    def _verify_password(self, plain_password: str, hashed_password: str) -> bool:
        try:
            return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
        except ValueError as e:
            # Malformed hash on a legacy row
            logger.error(f"Password verification error: {e}")
            return False

    # ==================== JWT TOKEN UTILITIES ====================

    def _create_access_token(self, user) -> str:
        """
        Create a JWT access token.

        Claims: sub (user id), email, name, exp, iat. The token travels in
        the Authorization header as "Bearer <token>".
        """
        now = datetime.utcnow()
        to_encode = {
            "sub": user.id,
            "email": user.email,
            "name": user.name,
            "exp": now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
            "iat": now
        }
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Decode a JWT; None if the signature is wrong or it has expired."""
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except JWTError as e:
            logger.warning(f"Token verification failed: {e}")
            return None

    def resolve_session(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        The session resolver used by the API gateway.

        Returns {"user_id", "email", "name"} for a valid token, else None.
        """
        if not token:
            return None
        payload = self.verify_token(token)
        if not payload or not payload.get("email"):
            return None
        return {
            "user_id": payload.get("sub"),
            "email": payload["email"],
            "name": payload.get("name")
        }

    # ==================== OPERATIONS ====================

    async def register(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        username: Optional[str] = None
    ) -> Dict[str, Any]:
        email = (email or "").strip().lower()
        username = (username or "").strip() or None
        name = (name or "").strip() or None

        if not email or not password:
            raise InvalidInput("Email and password are required")
        if not EMAIL_PATTERN.match(email):
            raise InvalidInput("Valid email is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        async with session_scope() as session:
            async with session.begin():
                user = await IdentityStore(session).create(
                    email=email,
                    password_hash=self._hash_password(password),
                    name=name,
                    username=username
                )

        logger.info(f"User registered: {user.email}")

        await self.event_bus.publish(Event(
            event_type=EventType.USER_REGISTERED,
            data={"user": user.to_public_dict()},
            user_id=user.id
        ))

        return {"message": "User registered successfully", "user": user.to_dict()}

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        if not email or not password:
            raise InvalidInput("Email and password are required")

        async with session_scope() as session:
            user = await IdentityStore(session).get_by_email(email)

        if not user or not self._verify_password(password, user.password_hash):
            raise Unauthorized("Invalid credentials")

        logger.info(f"User logged in: {user.email}")

        await self.event_bus.publish(Event(
            event_type=EventType.USER_LOGGED_IN,
            data={"email": user.email},
            user_id=user.id
        ))

        return {"token": self._create_access_token(user), "user": user.to_dict()}

    async def update_profile(
        self,
        actor_email: str,
        updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        allowed_fields = {"name", "username", "image"}
        update_data = {k: v for k, v in (updates or {}).items() if k in allowed_fields}
        if "username" in update_data:
            update_data["username"] = (update_data["username"] or "").strip() or None

        if not update_data:
            raise InvalidInput("No valid fields to update")

        async with session_scope() as session:
            async with session.begin():
                identities = IdentityStore(session)
                user = await identities.require_by_email(actor_email, for_update=True)
                await identities.update(user, **update_data)

        logger.info(f"Profile updated: {user.email}")

        await self.event_bus.publish(Event(
            event_type=EventType.USER_UPDATED,
            data={"user": user.to_public_dict()},
            user_id=user.id
        ))

        return {"user": user.to_dict()}

    async def delete_account(self, actor_email: str) -> Dict[str, Any]:
        """Delete the caller's account and everything that references it."""
        async with session_scope() as session:
            async with session.begin():
                user = await IdentityStore(session).require_by_email(actor_email, for_update=True)
                user_id = user.id
                summary = await VideoStore(session).delete_account_cascade(user)

        logger.info(f"Account deleted: {actor_email}")

        await self.event_bus.publish(Event(
            event_type=EventType.USER_DELETED,
            data=summary,
            user_id=user_id
        ))

        return {"message": "Account deleted successfully", **summary}

    async def batch_users(self, ids: List[str]) -> Dict[str, Any]:
        if not isinstance(ids, list):
            raise InvalidInput("Invalid IDs")

        async with session_scope() as session:
            users = await IdentityStore(session).get_many(str(i) for i in ids if i)

        return {"users": [user.to_public_dict() for user in users]}

    # ==================== MESSAGE HANDLERS ====================

    async def _handle_register(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.register(
            email=payload.get("email", ""),
            password=payload.get("password", ""),
            name=payload.get("name"),
            username=payload.get("username")
        ))

    async def _handle_login(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.login(
            payload.get("email", ""), payload.get("password", "")
        ))

    async def _handle_update_profile(self, message: AgentMessage) -> AgentMessage:
        payload = message.payload
        return await self.respond(message, lambda: self.update_profile(
            payload.get("actor_email"), payload.get("updates", {})
        ))

    async def _handle_delete_user(self, message: AgentMessage) -> AgentMessage:
        return await self.respond(message, lambda: self.delete_account(
            message.payload.get("actor_email")
        ))

    async def _handle_batch(self, message: AgentMessage) -> AgentMessage:
        return await self.respond(message, lambda: self.batch_users(
            message.payload.get("ids")
        ))
