# Agents Module
# One agent per domain of the video platform

from .user_agent import UserManagementAgent
from .video_agent import VideoAgent
from .relationship_agent import RelationshipAgent
from .engagement_agent import EngagementAgent
from .profile_agent import ProfileAgent


def create_agents():
    """A fresh instance of every agent, in registration order."""
    return [
        UserManagementAgent(),
        VideoAgent(),
        RelationshipAgent(),
        EngagementAgent(),
        ProfileAgent()
    ]


__all__ = [
    'UserManagementAgent', 'VideoAgent', 'RelationshipAgent',
    'EngagementAgent', 'ProfileAgent', 'create_agents'
]
