# Database Models Module
# Contains SQLAlchemy ORM models for persistent storage

from .database import (
    Base, init_db, get_engine, get_session, session_scope,
    dispose_engine, configure_database
)
from .user import User
from .video import Video
from .user_ref import UserRef, UserRefKind

__all__ = [
    'Base', 'init_db', 'get_engine', 'get_session', 'session_scope',
    'dispose_engine', 'configure_database',
    'User', 'Video', 'UserRef', 'UserRefKind'
]
