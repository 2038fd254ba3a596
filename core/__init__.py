# Core Agent Framework Module
# Base classes, messaging, events and errors for the agent-based system

from .agent_base import Agent, AgentMessage, MessageType
from .message_broker import MessageBroker
from .event_bus import EventBus, Event, EventType
from .errors import (
    ServiceError, Unauthorized, InvalidInput, NotFound,
    Forbidden, Conflict, InvalidOperation, InternalError
)

__all__ = [
    'Agent', 'AgentMessage', 'MessageType', 'MessageBroker',
    'EventBus', 'Event', 'EventType',
    'ServiceError', 'Unauthorized', 'InvalidInput', 'NotFound',
    'Forbidden', 'Conflict', 'InvalidOperation', 'InternalError'
]
