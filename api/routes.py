"""
API Routes - FastAPI REST Endpoints

EXPLANATION:
============
This module is the API gateway in front of the agents.

Request Flow:
1. Client sends HTTP request
2. FastAPI validates the body (Pydantic schemas)
3. The caller's session is resolved from the bearer token
4. The route builds an AgentMessage and sends it through the MessageBroker
5. The owning agent processes it and replies
6. dispatch() turns the reply into a JSON body, or into an HTTPException
   whose status comes from the error code the agent reported

Errors never carry internal detail: agents only put generic messages into
internal-error replies, and a broker timeout is reported the same way.
"""

from fastapi import APIRouter, HTTPException, Depends, Query, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Any, Dict, List, Optional
import logging

from core.agent_base import AgentMessage, MessageType
from core.errors import InternalError, ServiceError
from core.event_bus import EventBus
from core.message_broker import MessageBroker

logger = logging.getLogger(__name__)

router = APIRouter()

# Security scheme
security = HTTPBearer(auto_error=False)

USER_AGENT = "user_management_agent"
VIDEO_AGENT = "video_agent"
RELATIONSHIP_AGENT = "relationship_agent"
ENGAGEMENT_AGENT = "engagement_agent"
PROFILE_AGENT = "profile_agent"


# ==================== PYDANTIC SCHEMAS ====================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None
    username: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class UserUpdateRequest(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    image: Optional[str] = None


class BatchUsersRequest(BaseModel):
    ids: List[str]


class BlockRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id_to_block: Optional[str] = Field(default=None, alias="userIdToBlock")


class VideoCreateRequest(BaseModel):
    """Metadata reported by the client after the CDN upload finished."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., max_length=255)
    description: str
    video_url: str = Field(..., alias="videoUrl")
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    controls: bool = True
    quality: Optional[str] = None


class VideoUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class CommentCreateRequest(BaseModel):
    text: Optional[str] = None


class CommentDeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    comment_id: Optional[str] = Field(default=None, alias="commentId")


# ==================== HELPER FUNCTIONS ====================

def get_broker() -> MessageBroker:
    """Get the message broker instance."""
    return MessageBroker()


async def dispatch(message_type: MessageType, recipient: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Send a request to an agent and translate its reply for HTTP."""
    message = AgentMessage(
        type=message_type,
        sender="api_gateway",
        recipient=recipient,
        payload=payload
    )

    response = await get_broker().request(message)

    if not response:
        raise HTTPException(
            status_code=InternalError.status_code,
            detail=InternalError.default_message
        )

    if response.type == MessageType.ERROR or not response.payload.get("success"):
        error_class = ServiceError.for_code(response.payload.get("error_code"))
        raise HTTPException(
            status_code=error_class.status_code,
            detail=response.payload.get("error") or error_class.default_message
        )

    body = dict(response.payload)
    body.pop("success", None)
    return body


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[dict]:
    """
    Resolve the caller's session from the bearer token.

    Returns {"user_id", "email", "name"} or None. The user management
    agent registered with the broker acts as the session resolver.
    """
    if not credentials:
        return None

    agent = get_broker().get_agent(USER_AGENT)
    if agent is None:
        logger.error("Session resolver unavailable: user management agent not registered")
        raise HTTPException(
            status_code=InternalError.status_code,
            detail=InternalError.default_message
        )

    return agent.resolve_session(credentials.credentials)


def require_auth(user: Optional[dict] = Depends(get_current_user)) -> dict:
    """Require authentication - raises 401 if not authenticated."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user


def _email(user: Optional[dict]) -> Optional[str]:
    return user["email"] if user else None


# ==================== AUTH ROUTES ====================

@router.post("/auth/register", status_code=status.HTTP_201_CREATED, tags=["Auth"])
async def register_user(request: RegisterRequest):
    return await dispatch(MessageType.USER_REGISTER, USER_AGENT, {
        "email": request.email,
        "password": request.password,
        "name": request.name,
        "username": request.username
    })


@router.post("/auth/login", tags=["Auth"])
async def login_user(request: LoginRequest):
    """
    Check credentials and return a JWT.

    Clients send it on later requests as `Authorization: Bearer <token>`.
    """
    return await dispatch(MessageType.USER_LOGIN, USER_AGENT, {
        "email": request.email,
        "password": request.password
    })


# ==================== PROFILE ROUTES ====================

@router.get("/profile", tags=["Profile"])
async def get_own_profile(user: dict = Depends(require_auth)):
    """The caller's profile with their videos and stats."""
    return await dispatch(MessageType.PROFILE_GET, PROFILE_AGENT, {
        "actor_email": user["email"]
    })


# ==================== USER ROUTES ====================
# Fixed paths (/users/me, /users/block, /users/batch) are declared before
# /users/{user_id} so they are not captured by it.

@router.get("/users/me", tags=["Users"])
async def get_current_user_profile(user: dict = Depends(require_auth)):
    return await get_own_profile(user)


@router.put("/users/me", tags=["Users"])
async def update_current_user(
    request: UserUpdateRequest,
    user: dict = Depends(require_auth)
):
    updates = {k: v for k, v in request.model_dump().items() if v is not None}
    return await dispatch(MessageType.USER_UPDATE_PROFILE, USER_AGENT, {
        "actor_email": user["email"],
        "updates": updates
    })


@router.delete("/users/me", tags=["Users"])
async def delete_current_user(user: dict = Depends(require_auth)):
    """Delete the account, its videos and every follow pointing at it."""
    return await dispatch(MessageType.USER_DELETE, USER_AGENT, {
        "actor_email": user["email"]
    })


@router.post("/users/batch", tags=["Users"])
async def batch_users(request: BatchUsersRequest):
    return await dispatch(MessageType.USER_BATCH, USER_AGENT, {"ids": request.ids})


@router.post("/users/block", tags=["Relationships"])
async def toggle_block(request: BlockRequest, user: dict = Depends(require_auth)):
    return await dispatch(MessageType.BLOCK_TOGGLE, RELATIONSHIP_AGENT, {
        "actor_email": user["email"],
        "target_id": request.user_id_to_block
    })


@router.get("/users/block", tags=["Relationships"])
async def get_block_status(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    user: dict = Depends(require_auth)
):
    return await dispatch(MessageType.BLOCK_STATUS, RELATIONSHIP_AGENT, {
        "actor_email": user["email"],
        "target_id": user_id
    })


@router.get("/users/{user_id}", tags=["Users"])
async def get_user_profile(
    user_id: str,
    current_user: Optional[dict] = Depends(get_current_user)
):
    """Public profile; user_id may be an object id or an email."""
    return await dispatch(MessageType.PROFILE_GET_PUBLIC, PROFILE_AGENT, {
        "target_id": user_id,
        "viewer_email": _email(current_user)
    })


@router.post("/users/{user_id}/follow", tags=["Relationships"])
async def toggle_follow(user_id: str, user: dict = Depends(require_auth)):
    """Follow or unfollow (each call flips the state)."""
    return await dispatch(MessageType.FOLLOW_TOGGLE, RELATIONSHIP_AGENT, {
        "actor_email": user["email"],
        "target_id": user_id
    })


@router.get("/users/{user_id}/follow", tags=["Relationships"])
async def get_follow_status(
    user_id: str,
    current_user: Optional[dict] = Depends(get_current_user)
):
    return await dispatch(MessageType.FOLLOW_STATUS, RELATIONSHIP_AGENT, {
        "actor_email": _email(current_user),
        "target_id": user_id
    })


@router.post("/users/{user_id}/remove-follower", tags=["Relationships"])
async def remove_follower(user_id: str, user: dict = Depends(require_auth)):
    return await dispatch(MessageType.FOLLOWER_REMOVE, RELATIONSHIP_AGENT, {
        "actor_email": user["email"],
        "follower_id": user_id
    })


@router.get("/users/{user_id}/followers", tags=["Relationships"])
async def list_followers(user_id: str):
    return await dispatch(MessageType.CONNECTIONS_LIST, RELATIONSHIP_AGENT, {
        "target_id": user_id,
        "kind": "followers"
    })


@router.get("/users/{user_id}/following", tags=["Relationships"])
async def list_following(user_id: str):
    return await dispatch(MessageType.CONNECTIONS_LIST, RELATIONSHIP_AGENT, {
        "target_id": user_id,
        "kind": "following"
    })


# ==================== VIDEO ROUTES ====================

@router.get("/videos", tags=["Videos"])
async def list_videos(current_user: Optional[dict] = Depends(get_current_user)):
    return await dispatch(MessageType.VIDEO_LIST, VIDEO_AGENT, {
        "viewer_email": _email(current_user)
    })


@router.post("/videos", status_code=status.HTTP_201_CREATED, tags=["Videos"])
async def create_video(request: VideoCreateRequest, user: dict = Depends(require_auth)):
    return await dispatch(MessageType.VIDEO_CREATE, VIDEO_AGENT, {
        "actor_email": user["email"],
        "video": {
            "title": request.title,
            "description": request.description,
            "videoUrl": request.video_url,
            "thumbnailUrl": request.thumbnail_url,
            "controls": request.controls,
            "quality": request.quality
        }
    })


@router.get("/videos/{video_id}", tags=["Videos"])
async def get_video(video_id: str):
    return await dispatch(MessageType.VIDEO_READ, VIDEO_AGENT, {"video_id": video_id})


@router.put("/videos/{video_id}", tags=["Videos"])
async def update_video(
    video_id: str,
    request: VideoUpdateRequest,
    user: dict = Depends(require_auth)
):
    return await dispatch(MessageType.VIDEO_UPDATE, VIDEO_AGENT, {
        "actor_email": user["email"],
        "video_id": video_id,
        "title": request.title,
        "description": request.description
    })


@router.delete("/videos/{video_id}", tags=["Videos"])
async def delete_video(video_id: str, user: dict = Depends(require_auth)):
    return await dispatch(MessageType.VIDEO_DELETE, VIDEO_AGENT, {
        "actor_email": user["email"],
        "video_id": video_id
    })


# ==================== ENGAGEMENT ROUTES ====================

@router.post("/videos/{video_id}/like", tags=["Engagement"])
async def toggle_like(video_id: str, user: dict = Depends(require_auth)):
    return await dispatch(MessageType.LIKE_TOGGLE, ENGAGEMENT_AGENT, {
        "actor_email": user["email"],
        "video_id": video_id
    })


@router.get("/videos/{video_id}/like", tags=["Engagement"])
async def get_like_status(
    video_id: str,
    current_user: Optional[dict] = Depends(get_current_user)
):
    return await dispatch(MessageType.LIKE_STATUS, ENGAGEMENT_AGENT, {
        "actor_email": _email(current_user),
        "video_id": video_id
    })


@router.post("/videos/{video_id}/comments", tags=["Engagement"])
async def add_comment(
    video_id: str,
    request: CommentCreateRequest,
    user: dict = Depends(require_auth)
):
    return await dispatch(MessageType.COMMENT_ADD, ENGAGEMENT_AGENT, {
        "actor_email": user["email"],
        "actor_name": user.get("name"),
        "video_id": video_id,
        "text": request.text
    })


@router.get("/videos/{video_id}/comments", tags=["Engagement"])
async def list_comments(video_id: str):
    return await dispatch(MessageType.COMMENT_LIST, ENGAGEMENT_AGENT, {"video_id": video_id})


@router.delete("/videos/{video_id}/comments", tags=["Engagement"])
async def delete_comment(
    video_id: str,
    request: CommentDeleteRequest,
    user: dict = Depends(require_auth)
):
    return await dispatch(MessageType.COMMENT_DELETE, ENGAGEMENT_AGENT, {
        "actor_email": user["email"],
        "video_id": video_id,
        "comment_id": request.comment_id
    })


# ==================== SYSTEM ROUTES ====================

@router.get("/health", tags=["System"])
async def health_check():
    broker = get_broker()
    return {
        "status": "healthy",
        "broker_stats": broker.get_stats(),
        "event_stats": EventBus().get_stats()
    }
