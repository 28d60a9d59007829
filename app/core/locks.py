import logging
from contextlib import contextmanager

import redis

from app.core.config import LOCK_BLOCKING_TIMEOUT_SECONDS, LOCK_TIMEOUT_SECONDS
from app.services.errors import ConflictError

logger = logging.getLogger(__name__)


@contextmanager
def redis_lock(redis_client, key: str):
    """
    Hold a Redis lock for the duration of the block.
    Only one process can hold a given key at a time; failing to get it
    within the blocking timeout raises ConflictError.
    """
    lock = redis_client.lock(
        key,
        timeout=LOCK_TIMEOUT_SECONDS,
        blocking_timeout=LOCK_BLOCKING_TIMEOUT_SECONDS,
    )
    try:
        if not lock.acquire(blocking=True, blocking_timeout=LOCK_BLOCKING_TIMEOUT_SECONDS):
            raise ConflictError("Could not acquire lock, please try again.")
    except redis.exceptions.LockError:  # type: ignore
        raise ConflictError("Could not acquire lock, please try again.")

    try:
        yield lock
    finally:
        # Always release the lock
        try:
            lock.release()
        except redis.exceptions.LockError:  # type: ignore
            logger.warning(f"Lock {key} expired before release")


def workshop_lock_key(workshop_id: int) -> str:
    return f"workshop_lock:{workshop_id}"


def token_lock_key(token: str) -> str:
    return f"token_lock:{token}"


def workshop_token_lock_key(workshop_id: int) -> str:
    return f"workshop_token_lock:{workshop_id}"


def attendance_lock_key(workshop_id: int, user_id: int) -> str:
    return f"attendance_lock:{workshop_id}:{user_id}"
