"""
Main Application Entry Point

================================================================================
VIDEO SOCIAL PLATFORM - Agent-Based Backend
================================================================================

EXPLANATION:
============
This is the entry point of the backend. It:

1. Creates the FastAPI application
2. Initializes the database
3. Creates the agents and registers them with the MessageBroker
4. Mounts the API routes under /api
5. Renders every error as {"error": message}
6. Handles application lifecycle (startup/shutdown)

Application Architecture Summary:
================================
    Client (web app)
          │  HTTP REST (Bearer JWT)
          ▼
    FastAPI gateway (api/routes)
          │  AgentMessage
          ▼
    Message Broker ──────────────► Event Bus (domain events)
          │
    ┌─────┴──────┬──────────────┬──────────────┬─────────────┐
    ▼            ▼              ▼              ▼             ▼
  User        Video        Relationship    Engagement     Profile
  Management  Agent        Agent           Agent          Agent
    │            │              │              │             │
    └────────────┴──────┬───────┴──────────────┴─────────────┘
                        ▼
              Database (SQLite / PostgreSQL)

Communication Flow:
1. Client sends an HTTP request
2. The route resolves the session and creates an AgentMessage
3. MessageBroker routes the message to the owning agent
4. The agent runs the operation against the database
5. The response flows back through the broker to the route
6. Domain events are published on the EventBus
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agents import create_agents
from api.routes import router
from core.config import ALLOWED_ORIGINS
from core.event_bus import Event, EventBus
from core.message_broker import MessageBroker
from models.database import dispose_engine, init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

event_logger = logging.getLogger("events")


def log_event(event: Event):
    """Global EventBus subscriber: one log line per domain event."""
    event_logger.info(f"{event.event_type.value}: {event.to_dict()}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    1. Initialize database (create tables)
    2. Create agent instances and register them with the broker
    3. Start agents (begin processing messages)
    4. Subscribe the event logger to the EventBus

    Shutdown:
    1. Stop all agents
    2. Dispose of the database engine
    """
    logger.info("Starting Video Social Platform...")

    logger.info("Initializing database...")
    await init_db()

    message_broker = MessageBroker()

    logger.info("Registering agents with message broker...")
    for agent in create_agents():
        message_broker.register_agent(agent)

    logger.info("Starting agents...")
    await message_broker.start_all_agents()

    unsubscribe = EventBus().subscribe_all(log_event)

    logger.info("Video Social Platform is ready!")

    yield  # Application runs here

    logger.info("Shutting down Video Social Platform...")
    unsubscribe()
    await message_broker.stop_all_agents()
    await dispose_engine()
    logger.info("Shutdown complete.")


# Create FastAPI application
app = FastAPI(
    title="Video Social Platform",
    description="""
    Backend of a short-video social platform.

    ## Features
    - Accounts: registration, JWT login, profile editing, account deletion
    - Videos: upload metadata, feed, view counting, owner edits
    - Social graph: follow toggle, remove follower, block
    - Engagement: likes and comments
    """,
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERROR HANDLERS ====================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are client errors: 400 with the first problem found."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"{field}: {errors[0].get('msg')}" if field else errors[0].get("msg", message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )


# Include API routes
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Welcome to Video Social Platform API"}


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
