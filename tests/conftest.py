"""
Test Configuration and Fixtures

EXPLANATION:
============
Reusable setup for the agent and API tests.

- Every test function gets its own in-memory SQLite database. The engine
  is pointed at it with configure_database() and disposed afterwards, so
  nothing leaks between tests.
- MessageBroker and EventBus are singletons; they are reset per test so
  each test sees only its own agents and events.
- Agents are started and stopped by the fixtures to prevent task leaks.
- The HTTP client talks to the FastAPI app in-process (no server).
"""

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from agents import (
    EngagementAgent, ProfileAgent, RelationshipAgent,
    UserManagementAgent, VideoAgent
)
from core.agent_base import AgentMessage
from core.event_bus import EventBus
from core.message_broker import MessageBroker
from models.database import configure_database, dispose_engine, init_db

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(autouse=True)
async def test_db():
    """Fresh in-memory database with all tables for each test."""
    await configure_database(TEST_DATABASE_URL)
    await init_db()

    yield

    await dispose_engine()


@pytest.fixture(autouse=True)
def event_bus():
    """Reset the EventBus singleton so history starts empty."""
    EventBus._instance = None
    bus = EventBus()

    yield bus

    EventBus._instance = None


@pytest_asyncio.fixture
async def message_broker(event_bus):
    """Fresh message broker; the singleton is reset around each test."""
    MessageBroker._instance = None
    broker = MessageBroker()

    yield broker

    await broker.stop_all_agents()
    MessageBroker._instance = None


async def _start(broker, agent):
    broker.register_agent(agent)
    await agent.start()
    return agent


@pytest_asyncio.fixture
async def user_agent(message_broker):
    agent = await _start(message_broker, UserManagementAgent())
    yield agent
    await agent.stop()


@pytest_asyncio.fixture
async def video_agent(message_broker):
    agent = await _start(message_broker, VideoAgent())
    yield agent
    await agent.stop()


@pytest_asyncio.fixture
async def relationship_agent(message_broker):
    agent = await _start(message_broker, RelationshipAgent())
    yield agent
    await agent.stop()


@pytest_asyncio.fixture
async def engagement_agent(message_broker):
    agent = await _start(message_broker, EngagementAgent())
    yield agent
    await agent.stop()


@pytest_asyncio.fixture
async def profile_agent(message_broker):
    agent = await _start(message_broker, ProfileAgent())
    yield agent
    await agent.stop()


@pytest_asyncio.fixture
async def all_agents(message_broker):
    """Create, register and start every agent."""
    agents = {
        "user": UserManagementAgent(),
        "video": VideoAgent(),
        "relationship": RelationshipAgent(),
        "engagement": EngagementAgent(),
        "profile": ProfileAgent(),
    }
    for agent in agents.values():
        message_broker.register_agent(agent)

    await message_broker.start_all_agents()

    yield {**agents, "broker": message_broker}

    await message_broker.stop_all_agents()


@pytest_asyncio.fixture
async def client(all_agents):
    """
    HTTP client bound to the FastAPI app.

    ASGITransport does not run the app lifespan; the all_agents fixture
    does the startup work instead.
    """
    from main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client


# ==================== DATA FACTORIES ====================

def create_test_user_data(name="Test User", email=None, username=None):
    """Factory for registration data; the email is unique unless given."""
    unique_id = uuid.uuid4().hex[:8]
    return {
        "email": email or f"user_{unique_id}@example.com",
        "password": "testpass123",
        "name": name,
        "username": username,
    }


def create_test_video_data(title="My first clip"):
    return {
        "title": title,
        "description": "A short clip uploaded in a test.",
        "videoUrl": f"https://cdn.example.com/videos/{uuid.uuid4().hex}.mp4",
        "thumbnailUrl": "https://cdn.example.com/thumbs/clip.jpg",
        "controls": True,
    }


@pytest.fixture
def send(message_broker):
    """
    Send a request to an agent through the broker, the way the API
    gateway does, and return the response message.
    """
    async def _send(message_type, recipient, payload):
        return await message_broker.request(AgentMessage(
            type=message_type,
            sender="test",
            recipient=recipient,
            payload=payload
        ), timeout=10.0)

    return _send


@pytest.fixture
def make_user(user_agent):
    """Register a user directly on the agent; returns the user dict."""
    async def _make_user(**overrides):
        result = await user_agent.register(**create_test_user_data(**overrides))
        return result["user"]

    return _make_user


@pytest.fixture
def make_video(video_agent):
    """Create a video owned by `owner_email`; returns the video dict."""
    async def _make_video(owner_email, **overrides):
        result = await video_agent.create_video(owner_email, create_test_video_data(**overrides))
        return result["video"]

    return _make_video


@pytest.fixture
def login(client):
    """Register and log in through the API; returns (headers, user)."""
    async def _login(name="Test User", email=None):
        data = create_test_user_data(name=name, email=email)
        await client.post("/api/auth/register", json={
            "email": data["email"], "password": data["password"], "name": name
        })
        response = await client.post("/api/auth/login", json={
            "email": data["email"], "password": data["password"]
        })
        body = response.json()
        return {"Authorization": f"Bearer {body['token']}"}, body["user"]

    return _login
