"""
Test the Redis-backed check-in token store.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.services.errors import (
    CheckinError,
    ExpiredError,
    InvalidTokenError,
    TokenAlreadyUsedError,
    TokenExpiredError,
)
from app.services.token_store import EXPIRY_INDEX, TokenScope, TokenStore


class TestIssue:
    """Test token issuance."""

    def test_token_is_long_and_random(self, token_store: TokenStore):
        first = token_store.issue(TokenScope(workshop_id=1, user_id=1))
        second = token_store.issue(TokenScope(workshop_id=1, user_id=2))

        assert len(first.token) == 64  # 32 random bytes, hex encoded
        assert first.token != second.token

    def test_lifetime_within_window(self, token_store: TokenStore, clock):
        for user_id in range(1, 21):
            issued = token_store.issue(TokenScope(workshop_id=1, user_id=user_id))
            lifetime = issued.expires_at - clock.timestamp()
            assert 10.0 - 1e-3 <= lifetime <= 30.0 + 1e-3
            assert issued.issued_at == clock.timestamp()

    def test_custom_lifetime_window(self, redis_client, clock):
        store = TokenStore(redis_client, clock=clock, min_lifetime_ms=1000, max_lifetime_ms=1000)

        issued = store.issue(TokenScope(workshop_id=1))

        assert issued.expires_at - clock.timestamp() == pytest.approx(1.0)

    def test_invalid_lifetime_window(self, redis_client):
        with pytest.raises(ValueError):
            TokenStore(redis_client, min_lifetime_ms=5000, max_lifetime_ms=1000)

    def test_new_workshop_token_invalidates_previous(self, token_store: TokenStore):
        first = token_store.issue(TokenScope(workshop_id=7))
        second = token_store.issue(TokenScope(workshop_id=7))

        with pytest.raises(InvalidTokenError):
            token_store.consume(first.token, 7, user_id=1)
        assert token_store.consume(second.token, 7, user_id=1) == TokenScope(workshop_id=7)

    def test_workshop_tokens_of_other_workshops_stay_valid(self, token_store: TokenStore):
        first = token_store.issue(TokenScope(workshop_id=1))
        token_store.issue(TokenScope(workshop_id=2))

        assert token_store.consume(first.token, 1, user_id=5).workshop_id == 1

    def test_user_tokens_do_not_invalidate_each_other(self, token_store: TokenStore):
        first = token_store.issue(TokenScope(workshop_id=1, user_id=3))
        second = token_store.issue(TokenScope(workshop_id=1, user_id=3))

        assert token_store.consume(first.token, 1, user_id=3).user_id == 3
        assert token_store.consume(second.token, 1, user_id=3).user_id == 3

    def test_current_workshop_token(self, token_store: TokenStore, clock):
        assert token_store.current_workshop_token(4) is None

        issued = token_store.issue(TokenScope(workshop_id=4))
        current = token_store.current_workshop_token(4)
        assert current is not None
        assert current.token == issued.token

        token_store.consume(issued.token, 4, user_id=1)
        assert token_store.current_workshop_token(4) is None


class TestConsume:
    """Test token consumption."""

    def test_user_token_is_deleted_on_use(self, token_store: TokenStore, redis_client):
        issued = token_store.issue(TokenScope(workshop_id=1, user_id=9))

        scope = token_store.consume(issued.token, 1, user_id=9)

        assert scope == TokenScope(workshop_id=1, user_id=9)
        assert not scope.is_workshop_scoped
        assert redis_client.exists(f"checkin_token:{issued.token}") == 0
        with pytest.raises(InvalidTokenError):
            token_store.consume(issued.token, 1, user_id=9)

    def test_wrong_token_kind_is_rejected_without_spending(self, token_store: TokenStore, redis_client):
        workshop_token = token_store.issue(TokenScope(workshop_id=1))
        user_token = token_store.issue(TokenScope(workshop_id=1, user_id=9))

        with pytest.raises(InvalidTokenError):
            token_store.consume(workshop_token.token, 1, user_id=9, user_scoped=True)
        with pytest.raises(InvalidTokenError):
            token_store.consume(user_token.token, 1, user_id=9, user_scoped=False)

        assert redis_client.hget(f"checkin_token:{workshop_token.token}", "used") == "0"
        assert token_store.consume(user_token.token, 1, user_id=9, user_scoped=True).user_id == 9
        assert token_store.consume(workshop_token.token, 1, user_id=9, user_scoped=False).is_workshop_scoped

    def test_workshop_token_is_marked_used(self, token_store: TokenStore):
        issued = token_store.issue(TokenScope(workshop_id=1))

        assert token_store.consume(issued.token, 1, user_id=2).is_workshop_scoped

        with pytest.raises(TokenAlreadyUsedError):
            token_store.consume(issued.token, 1, user_id=3)

    def test_unknown_token(self, token_store: TokenStore):
        with pytest.raises(InvalidTokenError):
            token_store.consume("not-a-token", 1, user_id=1)

    def test_wrong_workshop(self, token_store: TokenStore):
        issued = token_store.issue(TokenScope(workshop_id=1))

        with pytest.raises(InvalidTokenError):
            token_store.consume(issued.token, 2, user_id=1)
        # a mismatched scope does not spend the token
        assert token_store.consume(issued.token, 1, user_id=1).workshop_id == 1

    def test_user_token_for_another_user(self, token_store: TokenStore):
        issued = token_store.issue(TokenScope(workshop_id=1, user_id=1))

        with pytest.raises(InvalidTokenError):
            token_store.consume(issued.token, 1, user_id=2)

    def test_expired_token(self, token_store: TokenStore, clock, redis_client):
        issued = token_store.issue(TokenScope(workshop_id=1))
        clock.advance(31)

        with pytest.raises(TokenExpiredError) as exc_info:
            token_store.consume(issued.token, 1, user_id=1)

        assert isinstance(exc_info.value, ExpiredError)
        assert redis_client.exists(f"checkin_token:{issued.token}") == 0

    def test_token_valid_until_expiry(self, redis_client, clock):
        store = TokenStore(redis_client, clock=clock, min_lifetime_ms=10000, max_lifetime_ms=10000)
        issued = store.issue(TokenScope(workshop_id=1))

        clock.advance(9.9)

        assert store.consume(issued.token, 1, user_id=1).workshop_id == 1

    def test_concurrent_consume_single_winner(self, token_store: TokenStore):
        for scope in (TokenScope(workshop_id=1), TokenScope(workshop_id=2, user_id=4)):
            issued = token_store.issue(scope)

            def attempt(_):
                try:
                    token_store.consume(issued.token, scope.workshop_id, user_id=4)
                    return "ok"
                except (TokenAlreadyUsedError, InvalidTokenError) as e:
                    return e.kind

            with ThreadPoolExecutor(max_workers=8) as executor:
                results = list(executor.map(attempt, range(8)))

            assert results.count("ok") == 1
            assert all(r in ("already_used", "invalid_token") for r in results if r != "ok")

    def test_consumed_token_never_valid_again(self, token_store: TokenStore, clock):
        issued = token_store.issue(TokenScope(workshop_id=1))
        token_store.consume(issued.token, 1, user_id=1)

        for _ in range(3):
            with pytest.raises(CheckinError):
                token_store.consume(issued.token, 1, user_id=1)
            clock.advance(20)


class TestPurge:
    """Test background reclamation."""

    def test_purge_removes_only_expired(self, token_store: TokenStore, redis_client, clock):
        old = token_store.issue(TokenScope(workshop_id=1, user_id=1))
        clock.advance(31)
        fresh = token_store.issue(TokenScope(workshop_id=1, user_id=2))

        assert token_store.purge() == 1

        assert redis_client.exists(f"checkin_token:{old.token}") == 0
        assert redis_client.exists(f"checkin_token:{fresh.token}") == 1
        assert redis_client.zscore(EXPIRY_INDEX, old.token) is None
        with pytest.raises(InvalidTokenError):
            token_store.consume(old.token, 1, user_id=1)

    def test_purge_drops_index_entries_of_consumed_tokens(self, token_store: TokenStore, redis_client, clock):
        issued = token_store.issue(TokenScope(workshop_id=1, user_id=1))
        token_store.consume(issued.token, 1, user_id=1)
        clock.advance(31)

        assert token_store.purge() == 0
        assert redis_client.zcard(EXPIRY_INDEX) == 0

    def test_purge_removes_used_workshop_tokens_after_expiry(self, token_store: TokenStore, redis_client, clock):
        issued = token_store.issue(TokenScope(workshop_id=1))
        token_store.consume(issued.token, 1, user_id=1)
        clock.advance(31)

        assert token_store.purge() == 1
        assert redis_client.exists(f"checkin_token:{issued.token}") == 0

    def test_purge_with_nothing_expired(self, token_store: TokenStore):
        token_store.issue(TokenScope(workshop_id=1))

        assert token_store.purge() == 0
