"""
Event Bus Module - Domain Event Distribution

EXPLANATION:
============
While the Message Broker carries requests and responses, the Event Bus
announces things that already happened: a user followed someone, a video
was liked, an account was deleted. Agents publish; any component may
subscribe by event type or to everything.

This is the Observer Pattern at the system level:
- Events are published when state changes occur
- Subscribers are notified without the publisher knowing who listens

At startup main.py subscribes a logger to all events, which gives an
activity trail of every social-graph and engagement change.
"""

import asyncio
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of domain events in the system."""

    # User Events
    USER_REGISTERED = "user_registered"
    USER_LOGGED_IN = "user_logged_in"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"

    # Relationship Events
    USER_FOLLOWED = "user_followed"
    USER_UNFOLLOWED = "user_unfollowed"
    FOLLOWER_REMOVED = "follower_removed"
    USER_BLOCKED = "user_blocked"
    USER_UNBLOCKED = "user_unblocked"

    # Video Events
    VIDEO_CREATED = "video_created"
    VIDEO_UPDATED = "video_updated"
    VIDEO_DELETED = "video_deleted"

    # Engagement Events
    VIDEO_LIKED = "video_liked"
    VIDEO_UNLIKED = "video_unliked"
    COMMENT_ADDED = "comment_added"
    COMMENT_DELETED = "comment_deleted"


@dataclass
class Event:
    """
    An immutable record of something that happened.

    - event_type: what happened
    - data: details about it
    - user_id: who caused it
    - video_id: which video it relates to, if any
    - timestamp: when it happened
    """

    event_type: EventType
    data: Dict[str, Any]
    user_id: Optional[str] = None
    video_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "data": self.data,
            "user_id": self.user_id,
            "video_id": self.video_id,
            "timestamp": self.timestamp.isoformat()
        }


Callback = Callable[[Event], Any]


class EventBus:
    """
    In-process publish/subscribe for domain events (Singleton).

    Callbacks may be plain functions or coroutines. Delivery is sequential
    and in subscription order: typed subscribers first, then global ones.
    A failing callback is logged and skipped.
    """

    _instance = None
    _max_history = 1000

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._subscribers: Dict[EventType, List[Callback]] = defaultdict(list)
        self._global_subscribers: List[Callback] = []
        self._history: Deque[Event] = deque(maxlen=self._max_history)

        self._initialized = True
        logger.info("EventBus initialized")

    @staticmethod
    def _unsubscriber(callbacks: List[Callback], callback: Callback) -> Callable[[], None]:
        def unsubscribe():
            if callback in callbacks:
                callbacks.remove(callback)
        return unsubscribe

    def subscribe(self, event_type: EventType, callback: Callback) -> Callable[[], None]:
        """
        Call `callback` for every event of `event_type`.

        Returns a function that removes the subscription:
            unsubscribe = event_bus.subscribe(EventType.VIDEO_LIKED, handler)
            unsubscribe()
        """
        callbacks = self._subscribers[event_type]
        callbacks.append(callback)
        logger.debug(f"Subscribed to {event_type.value}: {callback}")
        return self._unsubscriber(callbacks, callback)

    def subscribe_all(self, callback: Callback) -> Callable[[], None]:
        """Call `callback` for every event (used for the activity log)."""
        self._global_subscribers.append(callback)
        return self._unsubscriber(self._global_subscribers, callback)

    async def publish(self, event: Event):
        self._history.append(event)
        logger.debug(f"Publishing event: {event.event_type.value}")

        for callback in [*self._subscribers.get(event.event_type, []), *self._global_subscribers]:
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(f"Event callback failed for {event.event_type.value}")

    def get_history(
        self,
        event_type: Optional[EventType] = None,
        user_id: Optional[str] = None,
        limit: int = 50
    ) -> List[Event]:
        """Most recent events, oldest first, optionally filtered."""
        events = [
            event for event in self._history
            if (event_type is None or event.event_type == event_type)
            and (user_id is None or event.user_id == user_id)
        ]
        return events[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "typed_subscribers": sum(len(callbacks) for callbacks in self._subscribers.values()),
            "global_subscribers": len(self._global_subscribers),
            "events_in_history": len(self._history),
        }
