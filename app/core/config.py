import os

# Redis configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./workshops.db")

# Check-in token policy (milliseconds)
TOKEN_MIN_LIFETIME_MS = int(os.getenv("TOKEN_MIN_LIFETIME_MS", "10000"))
TOKEN_MAX_LIFETIME_MS = int(os.getenv("TOKEN_MAX_LIFETIME_MS", "30000"))
TOKEN_PURGE_INTERVAL_SECONDS = int(os.getenv("TOKEN_PURGE_INTERVAL_SECONDS", "30"))

# Redis lock policy
LOCK_TIMEOUT_SECONDS = int(os.getenv("LOCK_TIMEOUT_SECONDS", "10"))
LOCK_BLOCKING_TIMEOUT_SECONDS = int(os.getenv("LOCK_BLOCKING_TIMEOUT_SECONDS", "5"))

# Realtime notifications
SUBSCRIBER_QUEUE_SIZE = int(os.getenv("SUBSCRIBER_QUEUE_SIZE", "100"))
SSE_HEARTBEAT_SECONDS = int(os.getenv("SSE_HEARTBEAT_SECONDS", "15"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


def get_redis_url():
    return REDIS_URL


def get_database_url():
    return DATABASE_URL


def get_cors_origins() -> list[str]:
    return [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]
