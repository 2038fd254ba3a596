"""
Message Broker Module - Routing Between the Gateway and the Agents

EXPLANATION:
============
The broker is the only component the API gateway and the agents talk to
(Mediator Pattern). A gateway call looks like this:

    gateway ──request()──► broker ──receive_message()──► agent inbox
    gateway ◄──future───── broker ◄──send_message()───── agent reply

Requests are matched to replies by correlation id: request() parks a
Future under the message id, and the reply whose correlation_id equals
that id resolves it. A reply that arrives after its request timed out is
dropped.

Delivery target, in order of preference:
1. the agent named in `recipient`
2. the first agent that declared the message type as a capability
"""

import asyncio
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional
from datetime import datetime
import logging

from .agent_base import Agent, AgentMessage, MessageType
from .config import BROKER_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

REPLY_TYPES = (MessageType.RESPONSE, MessageType.ERROR)


class MessageBroker:
    """
    Process-wide message router (Singleton).

    Tracks registered agents, which agent handles each message type, the
    requests still waiting for a reply and a bounded log of routed messages.
    """

    _instance = None
    _max_log_entries = 1000

    def __new__(cls):
        """Singleton pattern - ensures only one broker instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._agents: Dict[str, Agent] = {}
        self._handlers_by_type: Dict[MessageType, List[str]] = defaultdict(list)
        self._pending_requests: Dict[str, asyncio.Future] = {}
        self._message_log: Deque[Dict] = deque(maxlen=self._max_log_entries)
        self._timeouts = 0
        self._initialized = True

        logger.info("MessageBroker initialized")

    def register_agent(self, agent: Agent):
        """Attach an agent and index it under every message type it handles."""
        self._agents[agent.agent_id] = agent
        agent._message_broker = self

        capabilities = agent.get_capabilities()
        for message_type in capabilities:
            handlers = self._handlers_by_type[message_type]
            if agent.agent_id not in handlers:
                handlers.append(agent.agent_id)

        logger.info(f"Agent registered: {agent.name} ({agent.agent_id}), {len(capabilities)} message types")

    def _target_for(self, message: AgentMessage) -> Optional[Agent]:
        if message.recipient in self._agents:
            return self._agents[message.recipient]
        for agent_id in self._handlers_by_type.get(message.type, []):
            if agent_id in self._agents:
                return self._agents[agent_id]
        return None

    def _resolve_reply(self, message: AgentMessage) -> bool:
        """Hand a reply to the request waiting for it; False if nobody is."""
        future = self._pending_requests.pop(message.correlation_id or "", None)
        if future is None:
            return False
        if not future.done():
            future.set_result(message)
        return True

    async def route_message(self, message: AgentMessage):
        self._message_log.append({
            "timestamp": datetime.utcnow().isoformat(),
            "type": message.type.value,
            "sender": message.sender,
            "recipient": message.recipient
        })
        logger.debug(f"Routing {message.type.value}: {message.sender} -> {message.recipient}")

        if message.type in REPLY_TYPES:
            if not self._resolve_reply(message):
                logger.warning(f"Dropping late reply for {message.correlation_id}")
            return

        target = self._target_for(message)
        if target is None:
            logger.warning(f"No agent handles {message.type.value}")
            return

        await target.receive_message(message)

    async def request(
        self,
        message: AgentMessage,
        timeout: float = BROKER_TIMEOUT_SECONDS
    ) -> Optional[AgentMessage]:
        """
        Route a message and wait for its correlated reply.

        Returns None when no reply arrives within `timeout` seconds; the
        caller decides how to report that.
        """
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[message.id] = future

        try:
            await self.route_message(message)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            self._timeouts += 1
            logger.error(f"Request timeout: {message.type.value} ({message.id})")
            return None
        finally:
            self._pending_requests.pop(message.id, None)

    async def start_all_agents(self):
        await asyncio.gather(*(agent.start() for agent in self._agents.values()))
        logger.info(f"Started {len(self._agents)} agents")

    async def stop_all_agents(self):
        await asyncio.gather(*(agent.stop() for agent in self._agents.values()))
        logger.info("All agents stopped")

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_agents": len(self._agents),
            "agents": list(self._agents.keys()),
            "pending_requests": len(self._pending_requests),
            "timeouts": self._timeouts,
            "logged_messages": len(self._message_log),
            "handlers": {
                message_type.value: len(agent_ids)
                for message_type, agent_ids in self._handlers_by_type.items()
            }
        }
