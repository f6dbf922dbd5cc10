"""
OrgTrack Backend — Rate Limiting Tests
=======================================

What we test:
    ✅ Sliding window: the request after the limit is rejected, rejected
       requests are not counted, budget returns when the window slides
    ✅ 429 body is exactly the fixed message, with Retry-After and RateLimit-*
    ✅ Paths outside the API prefix never touch the store
    ✅ Store failures let the request through
    ✅ Redis store decides each hit in a single script call
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.exceptions import RateLimitExceededError
from app.middleware.rate_limit import RateLimitMiddleware
from app.services.rate_limit_store import (
    SLIDING_WINDOW_SCRIPT,
    MemoryRateLimitStore,
    RedisRateLimitStore,
)

CLIENT_IP = "127.0.0.1"
RATE_LIMIT_BODY = {
    "status": "Error",
    "message": (
        "You have exceeded the allowed rate limit for this endpoint. "
        "Please try again in an hour."
    ),
}


class TestMemoryRateLimitStore:

    @pytest.mark.asyncio
    async def test_rejects_after_limit(self, clock):
        """The (limit + 1)th hit inside one window is rejected."""
        store = MemoryRateLimitStore(clock=clock)
        for i in range(3):
            result = await store.hit("a", limit=3, window_seconds=60)
            assert result.allowed
            assert result.count == i + 1

        result = await store.hit("a", limit=3, window_seconds=60)
        assert not result.allowed
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_rejected_hits_are_not_recorded(self, clock):
        """Hammering while blocked does not push the reset further out."""
        store = MemoryRateLimitStore(clock=clock)
        await store.hit("a", limit=1, window_seconds=60)
        for _ in range(5):
            clock.advance(10)
            assert not (await store.hit("a", limit=1, window_seconds=60)).allowed

        clock.advance(11)  # 61s after the only accepted hit
        assert (await store.hit("a", limit=1, window_seconds=60)).allowed

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, clock):
        store = MemoryRateLimitStore(clock=clock)
        await store.hit("a", limit=1, window_seconds=60)
        assert (await store.hit("b", limit=1, window_seconds=60)).allowed

    @pytest.mark.asyncio
    async def test_reset_forgets_key(self, clock):
        store = MemoryRateLimitStore(clock=clock)
        await store.hit("a", limit=1, window_seconds=60)
        await store.reset("a")
        assert (await store.hit("a", limit=1, window_seconds=60)).allowed

    @pytest.mark.asyncio
    async def test_reset_after_counts_down(self, clock):
        store = MemoryRateLimitStore(clock=clock)
        first = await store.hit("a", limit=5, window_seconds=60)
        clock.advance(20)
        second = await store.hit("a", limit=5, window_seconds=60)
        assert first.reset_after == 61
        assert second.reset_after == 41


class TestRedisRateLimitStore:

    def _redis(self, script_result):
        redis = MagicMock()
        script = AsyncMock(return_value=script_result)
        redis.register_script.return_value = script
        return redis, script

    @pytest.mark.asyncio
    async def test_allowed_hit(self):
        redis, script = self._redis([1, 5, "1.0"])
        store = RedisRateLimitStore(redis, key_prefix="test:")

        result = await store.hit(CLIENT_IP, limit=100, window_seconds=900)

        assert result.allowed
        assert result.count == 5
        assert result.remaining == 95
        script.assert_awaited_once()
        kwargs = script.await_args.kwargs
        assert kwargs["keys"] == [f"test:{CLIENT_IP}"]
        assert kwargs["args"][1:3] == [900, 100]

    @pytest.mark.asyncio
    async def test_rejected_hit_is_decided_in_one_call(self):
        """The script refuses the hit itself; nothing is added and then taken back out."""
        redis, script = self._redis([0, 100, "1.0"])
        store = RedisRateLimitStore(redis, key_prefix="test:")

        result = await store.hit(CLIENT_IP, limit=100, window_seconds=900)

        assert not result.allowed
        assert result.count == 100
        assert result.remaining == 0
        script.assert_awaited_once()
        redis.pipeline.assert_not_called()
        redis.zadd.assert_not_called()
        redis.zrem.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_after_uses_oldest_marker(self):
        redis, _ = self._redis([1, 2, "1000.5"])
        store = RedisRateLimitStore(redis)

        with patch("app.services.rate_limit_store.time.time", return_value=1010.0):
            result = await store.hit(CLIENT_IP, limit=100, window_seconds=60)

        assert result.reset_after == 51

    def test_script_registered_once(self):
        redis, _ = self._redis([1, 1, "1.0"])
        RedisRateLimitStore(redis)

        redis.register_script.assert_called_once_with(SLIDING_WINDOW_SCRIPT)


class TestRateLimitMiddleware:

    @pytest.mark.asyncio
    async def test_request_after_limit_gets_fixed_429(self, build_app, db_result):
        """With 99 requests already counted, the 100th passes and the 101st is rejected."""
        db_result(many=[])
        store = MemoryRateLimitStore()
        for _ in range(99):
            await store.hit(CLIENT_IP, limit=100, window_seconds=900)

        app = build_app(rate_limit_store=store)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            last_allowed = await client.get("/api/ORGANIZATION")
            rejected = await client.get("/api/ORGANIZATION")

        assert last_allowed.status_code == 200
        assert last_allowed.headers["RateLimit-Limit"] == "100"
        assert last_allowed.headers["RateLimit-Remaining"] == "0"

        assert rejected.status_code == 429
        assert rejected.json() == RATE_LIMIT_BODY
        assert int(rejected.headers["Retry-After"]) > 0
        assert "RateLimit-Reset" in rejected.headers

    @pytest.mark.asyncio
    async def test_rejected_request_never_reaches_handler(self, build_app, mock_db_session):
        store = MemoryRateLimitStore()
        for _ in range(100):
            await store.hit(CLIENT_IP, limit=100, window_seconds=900)

        app = build_app(rate_limit_store=store)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/api/ORGANIZATION", json={"name": "Acme"})

        assert response.status_code == 429
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejection_still_gets_outer_headers(self, build_app):
        """Security headers and request id wrap the rate limit stage."""
        store = MemoryRateLimitStore()
        for _ in range(100):
            await store.hit(CLIENT_IP, limit=100, window_seconds=900)

        app = build_app(rate_limit_store=store)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/TASK")

        assert response.status_code == 429
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_paths_outside_prefix_are_not_counted(self, build_app):
        store = MemoryRateLimitStore()
        store.hit = AsyncMock(wraps=store.hit)
        app = build_app(rate_limit_store=store)

        with patch("app.routes.health.check_database", AsyncMock(return_value=True)):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                health = await client.get("/health")
                lookalike = await client.get("/apiary")

        assert health.status_code == 200
        assert "RateLimit-Limit" not in health.headers
        assert lookalike.status_code == 400
        store.hit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_api_path_is_counted(self, build_app):
        """The catch-all under the prefix still consumes budget."""
        store = MemoryRateLimitStore()
        store.hit = AsyncMock(wraps=store.hit)
        app = build_app(rate_limit_store=store)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/unknown")

        assert response.status_code == 400
        store.hit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_failure_fails_open(self, build_app, db_result):
        db_result(many=[])
        store = MemoryRateLimitStore()
        store.hit = AsyncMock(side_effect=ConnectionError("redis down"))
        app = build_app(rate_limit_store=store)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/ORGANIZATION")

        assert response.status_code == 200


class TestPrefixMatching:

    def setup_method(self):
        self.middleware = RateLimitMiddleware(
            app=AsyncMock(), store=MemoryRateLimitStore(), prefix="/api/"
        )

    def test_prefix_itself_and_children_match(self):
        assert self.middleware.applies_to("/api")
        assert self.middleware.applies_to("/api/")
        assert self.middleware.applies_to("/api/TEAMS/123")

    def test_other_paths_do_not_match(self):
        assert not self.middleware.applies_to("/health")
        assert not self.middleware.applies_to("/apiary")
        assert not self.middleware.applies_to("/docs")


def test_rate_limit_message_is_fixed():
    """Retry-After varies; the message never does."""
    assert RateLimitExceededError(retry_after=5).message == RATE_LIMIT_BODY["message"]
    assert RateLimitExceededError(retry_after=900).message == RATE_LIMIT_BODY["message"]
