"""
Application Configuration

All settings come from environment variables with development defaults.
Read once at import time; tests override DATABASE_URL through
models.database.configure_database() instead of the environment.
"""

import os


def _normalize_database_url(url: str) -> str:
    """
    Rewrite sync driver URLs to their async equivalents.

    Heroku provides DATABASE_URL with the postgres:// scheme, but the async
    engine needs postgresql+asyncpg://.
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


DATABASE_URL = _normalize_database_url(
    os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./video_social.db")
)

# Security configuration
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production-video-social-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(
    os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 30))  # 30 days
)

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8000"
).split(",")

# How long the gateway waits for an agent to answer
BROKER_TIMEOUT_SECONDS = float(os.getenv("BROKER_TIMEOUT_SECONDS", "30"))

MIN_PASSWORD_LENGTH = 6
