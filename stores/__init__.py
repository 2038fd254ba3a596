# Stores Module
# Persistence helpers shared by the agents; callers own the transaction

from .identity_store import IdentityStore
from .video_store import VideoStore

__all__ = ['IdentityStore', 'VideoStore']
