"""
Agent Base Module - Foundation of the Agent-Based Architecture

EXPLANATION:
============
Every domain of the video platform (users, videos, relationships,
engagement, profiles) is owned by one "agent". An agent:
1. Has its own inbox queue and processing loop
2. Receives AgentMessages routed by the MessageBroker
3. Answers each request with a correlated response message
4. Owns exactly one domain (Single Responsibility Principle)

Key Concepts:
- AgentMessage: A structured message format for inter-agent communication
- MessageType: Enum defining the operations agents can perform
- Agent: Abstract base class that all specialized agents inherit from

Domain operations raise typed ServiceErrors (see core.errors). The
`respond()` helper turns the outcome of an operation into either a success
response or an error response carrying the error code, so every handler
reports failures the same way.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from .errors import InternalError, ServiceError

logger = logging.getLogger(__name__)


class MessageType(Enum):
    """
    Defines all possible message types in the system.

    Each message type is a command handled by exactly one agent.
    """

    # User Management Operations
    USER_REGISTER = "user_register"
    USER_LOGIN = "user_login"
    USER_UPDATE_PROFILE = "user_update_profile"
    USER_DELETE = "user_delete"
    USER_BATCH = "user_batch"

    # Video Operations
    VIDEO_CREATE = "video_create"
    VIDEO_READ = "video_read"
    VIDEO_LIST = "video_list"
    VIDEO_UPDATE = "video_update"
    VIDEO_DELETE = "video_delete"

    # Relationship Operations
    FOLLOW_TOGGLE = "follow_toggle"
    FOLLOW_STATUS = "follow_status"
    FOLLOWER_REMOVE = "follower_remove"
    CONNECTIONS_LIST = "connections_list"
    BLOCK_TOGGLE = "block_toggle"
    BLOCK_STATUS = "block_status"

    # Engagement Operations
    LIKE_TOGGLE = "like_toggle"
    LIKE_STATUS = "like_status"
    COMMENT_ADD = "comment_add"
    COMMENT_LIST = "comment_list"
    COMMENT_DELETE = "comment_delete"

    # Profile Operations
    PROFILE_GET = "profile_get"
    PROFILE_GET_PUBLIC = "profile_get_public"

    # System Messages
    RESPONSE = "response"
    ERROR = "error"


@dataclass
class AgentMessage:
    """
    Represents a message passed between agents.

    Fields:
    - id: Unique identifier for message tracking and correlation
    - type: The operation type (from MessageType enum)
    - sender: Which component sent this message
    - recipient: Target agent id
    - payload: The actual data being transmitted
    - correlation_id: Links a response to its request
    - timestamp: When the message was created
    """

    type: MessageType
    sender: str
    recipient: str
    payload: Dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def create_response(self, payload: Dict[str, Any], success: bool = True) -> 'AgentMessage':
        """
        Create a response message correlated to this message.

        The correlation_id links the response back to the original request,
        which the broker uses to resolve the caller's pending future.
        """
        return AgentMessage(
            type=MessageType.RESPONSE if success else MessageType.ERROR,
            sender=self.recipient,
            recipient=self.sender,
            payload=payload,
            correlation_id=self.id
        )

    def create_error(self, error: ServiceError) -> 'AgentMessage':
        """Create an error response carrying the error's code."""
        return self.create_response(error.to_payload(), success=False)


class Agent(ABC):
    """
    Abstract Base Class for all Agents in the system.

    This follows the Template Method Pattern - it defines the skeleton of the
    agent lifecycle, with concrete agents registering handlers for the
    message types they own.

    Key Design Decisions:
    1. Async-first design: All operations are async for non-blocking I/O
    2. Message queue: Each agent has its own inbox for received messages
    3. Handler registration: Agents register handlers per message type
    4. Lifecycle management: start() and stop() for clean resource management
    """

    def __init__(self, agent_id: str, name: str):
        """
        Initialize the agent with identity and infrastructure.

        Args:
            agent_id: Unique identifier for this agent instance
            name: Human-readable name for logging and debugging
        """
        self.agent_id = agent_id
        self.name = name
        self._message_queue: asyncio.Queue = asyncio.Queue()
        self._handlers: Dict[MessageType, Callable] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._message_broker = None  # Will be set by MessageBroker

        logger.info(f"Agent initialized: {self.name} ({self.agent_id})")

    def register_handler(self, message_type: MessageType, handler: Callable):
        """Register a handler function for a specific message type."""
        self._handlers[message_type] = handler
        logger.debug(f"Handler registered: {message_type.value} -> {handler.__name__}")

    async def receive_message(self, message: AgentMessage):
        """Add a message to this agent's inbox queue."""
        await self._message_queue.put(message)
        logger.debug(f"{self.name} received message: {message.type.value}")

    async def send_message(self, message: AgentMessage):
        """
        Send a message to another agent via the message broker.

        Agents never talk to each other directly; the broker mediates all
        communication (Mediator Pattern).
        """
        if self._message_broker:
            await self._message_broker.route_message(message)
        else:
            logger.error(f"{self.name}: No message broker configured!")

    async def respond(
        self,
        message: AgentMessage,
        operation: Callable[[], Awaitable[Dict[str, Any]]]
    ) -> AgentMessage:
        """
        Run a domain operation and wrap its outcome in a response message.

        EXPLANATION:
        ============
        - Success: the operation's result dict is returned with success=True
        - ServiceError: returned as an error response with its code
        - Anything else: logged with traceback, reported as a generic
          InternalError so no internal detail reaches the client
        """
        try:
            result = await operation()
        except ServiceError as e:
            logger.info(f"{self.name}: {message.type.value} rejected ({e.code}): {e.message}")
            return message.create_error(e)
        except Exception:
            logger.exception(f"{self.name}: {message.type.value} failed")
            return message.create_error(InternalError())

        return message.create_response({"success": True, **result})

    async def _process_messages(self):
        """
        Main message processing loop.

        Waits for messages, dispatches each to its handler, and sends the
        handler's response back through the broker. One bad message never
        stops the loop.
        """
        while self._running:
            try:
                # Wait for a message with timeout to allow clean shutdown
                try:
                    message = await asyncio.wait_for(
                        self._message_queue.get(),
                        timeout=1.0
                    )
                except asyncio.TimeoutError:
                    continue

                handler = self._handlers.get(message.type)
                if handler:
                    try:
                        result = await handler(message)
                        if result and isinstance(result, AgentMessage):
                            await self.send_message(result)
                    except Exception:
                        logger.exception(f"Handler error in {self.name}")
                        await self.send_message(message.create_error(InternalError()))
                else:
                    logger.warning(f"{self.name}: No handler for {message.type.value}")

            except Exception as e:
                logger.error(f"Message processing error in {self.name}: {e}")

    async def start(self):
        """Start the agent's message processing loop."""
        if not self._running:
            self._running = True
            self._task = asyncio.create_task(self._process_messages())
            await self.on_start()
            logger.info(f"Agent started: {self.name}")

    async def stop(self):
        """Gracefully stop the agent."""
        if self._running:
            self._running = False
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            await self.on_stop()
            logger.info(f"Agent stopped: {self.name}")

    async def on_start(self):
        """Called when agent starts."""
        logger.info(f"{self.name} started and ready to handle requests")

    async def on_stop(self):
        """Called when agent stops."""
        logger.info(f"{self.name} stopping")

    @abstractmethod
    def get_capabilities(self) -> List[MessageType]:
        """Return list of message types this agent can handle."""
        pass
