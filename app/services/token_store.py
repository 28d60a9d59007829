"""
Short-lived, single-use check-in tokens kept in Redis.

Layout::

    checkin_token:{token}        hash   workshop_id, user_id, issued_at, expires_at, used
    checkin_tokens:by_expiry     zset   token -> expires_at (purge index)
    workshop_token:{workshop}    string the workshop's live token

Workshop-scoped tokens are marked ``used`` on consumption and kept until
they expire so a replay reports "already used". User-scoped tokens are
deleted on consumption. Every read-check-write on a token runs under that
token's Redis lock.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from app.core.clock import SystemClock
from app.core.config import TOKEN_MAX_LIFETIME_MS, TOKEN_MIN_LIFETIME_MS
from app.core.locks import redis_lock, token_lock_key, workshop_token_lock_key
from app.services.errors import (
    InvalidTokenError,
    TokenAlreadyUsedError,
    TokenExpiredError,
)

logger = logging.getLogger(__name__)

TOKEN_KEY = "checkin_token:{}"
EXPIRY_INDEX = "checkin_tokens:by_expiry"
WORKSHOP_POINTER = "workshop_token:{}"


@dataclass(frozen=True)
class TokenScope:
    workshop_id: int
    user_id: int | None = None

    @property
    def is_workshop_scoped(self) -> bool:
        return self.user_id is None


@dataclass(frozen=True)
class IssuedToken:
    token: str
    scope: TokenScope
    issued_at: float
    expires_at: float

    @property
    def expires_at_ms(self) -> int:
        return int(self.expires_at * 1000)

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


class TokenStore:
    def __init__(
        self,
        redis_client,
        clock=None,
        min_lifetime_ms: int = TOKEN_MIN_LIFETIME_MS,
        max_lifetime_ms: int = TOKEN_MAX_LIFETIME_MS,
        rng=None,
    ):
        if min_lifetime_ms <= 0 or max_lifetime_ms < min_lifetime_ms:
            raise ValueError("Token lifetime window must satisfy 0 < min <= max")
        self.redis = redis_client
        self.clock = clock or SystemClock()
        self.min_lifetime_ms = min_lifetime_ms
        self.max_lifetime_ms = max_lifetime_ms
        self._rng = rng or secrets.SystemRandom()

    def issue(self, scope: TokenScope) -> IssuedToken:
        """Issue a fresh token; a workshop-scoped one replaces the workshop's live token."""
        lifetime_ms = self._rng.uniform(self.min_lifetime_ms, self.max_lifetime_ms)
        issued_at = self.clock.timestamp()
        issued = IssuedToken(
            token=secrets.token_hex(32),
            scope=scope,
            issued_at=issued_at,
            expires_at=issued_at + lifetime_ms / 1000,
        )

        if not scope.is_workshop_scoped:
            self._store(issued)
            logger.debug(f"Issued user token: workshop_id={scope.workshop_id}, user_id={scope.user_id}")
            return issued

        pointer = WORKSHOP_POINTER.format(scope.workshop_id)
        with redis_lock(self.redis, workshop_token_lock_key(scope.workshop_id)):
            previous = self.redis.get(pointer)
            if previous:
                self._invalidate(previous)
            self._store(issued)
            self.redis.set(pointer, issued.token, px=int(lifetime_ms) + 1)

        logger.info(f"Issued workshop token: workshop_id={scope.workshop_id}")
        return issued

    def consume(
        self,
        token: str,
        workshop_id: int,
        user_id: int | None = None,
        user_scoped: bool | None = None,
    ) -> TokenScope:
        """
        Validate and consume ``token`` for the given workshop (and user).

        A workshop-scoped token matches any user; a user-scoped token only
        matches its own user. When ``user_scoped`` is given, a token of the
        other kind is rejected without being spent. Exactly one concurrent
        caller can succeed.
        """
        key = TOKEN_KEY.format(token)
        with redis_lock(self.redis, token_lock_key(token)):
            data = self.redis.hgetall(key)
            if not data:
                raise InvalidTokenError("Invalid QR token for this workshop")

            scope = _scope_from(data)
            if scope.workshop_id != workshop_id or (
                scope.user_id is not None and scope.user_id != user_id
            ):
                raise InvalidTokenError("Invalid QR token for this workshop")
            if user_scoped is not None and scope.is_workshop_scoped == user_scoped:
                raise InvalidTokenError("Invalid QR token for this workshop")

            if data.get("used") == "1":
                raise TokenAlreadyUsedError("QR token already used")

            if self.clock.timestamp() > float(data["expires_at"]):
                self._remove(token)
                raise TokenExpiredError("QR token expired")

            if scope.is_workshop_scoped:
                self.redis.hset(key, "used", "1")
            else:
                self._remove(token)

        return scope

    def purge(self, now: float | None = None) -> int:
        """Delete every token whose expiry has passed. Returns how many were removed."""
        if now is None:
            now = self.clock.timestamp()

        removed = 0
        for token in self.redis.zrangebyscore(EXPIRY_INDEX, "-inf", f"({now}"):
            with redis_lock(self.redis, token_lock_key(token)):
                expires_at = self.redis.hget(TOKEN_KEY.format(token), "expires_at")
                if expires_at is None:
                    # already consumed or invalidated
                    self.redis.zrem(EXPIRY_INDEX, token)
                    continue
                if float(expires_at) < now:
                    self._remove(token)
                    removed += 1

        if removed:
            logger.info(f"Purged {removed} expired check-in token(s)")
        return removed

    def current_workshop_token(self, workshop_id: int) -> IssuedToken | None:
        token = self.redis.get(WORKSHOP_POINTER.format(workshop_id))
        if not token:
            return None
        data = self.redis.hgetall(TOKEN_KEY.format(token))
        if not data or data.get("used") == "1":
            return None
        if self.clock.timestamp() > float(data["expires_at"]):
            return None
        return IssuedToken(
            token=token,
            scope=_scope_from(data),
            issued_at=float(data["issued_at"]),
            expires_at=float(data["expires_at"]),
        )

    def _store(self, issued: IssuedToken) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(
            TOKEN_KEY.format(issued.token),
            mapping={
                "workshop_id": str(issued.scope.workshop_id),
                "user_id": "" if issued.scope.user_id is None else str(issued.scope.user_id),
                "issued_at": repr(issued.issued_at),
                "expires_at": repr(issued.expires_at),
                "used": "0",
            },
        )
        pipe.zadd(EXPIRY_INDEX, {issued.token: issued.expires_at})
        pipe.execute()

    def _invalidate(self, token: str) -> None:
        with redis_lock(self.redis, token_lock_key(token)):
            used = self.redis.hget(TOKEN_KEY.format(token), "used")
            if used == "0":
                self._remove(token)

    def _remove(self, token: str) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.delete(TOKEN_KEY.format(token))
        pipe.zrem(EXPIRY_INDEX, token)
        pipe.execute()


def _scope_from(data: dict) -> TokenScope:
    user_id = data.get("user_id")
    return TokenScope(
        workshop_id=int(data["workshop_id"]),
        user_id=int(user_id) if user_id else None,
    )
