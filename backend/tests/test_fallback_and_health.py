"""
OrgTrack Backend — Catch-all, Health and Pipeline Wiring Tests
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.middleware.pipeline import build_pipeline
from app.middleware.request_id import RequestIDMiddleware
from app.services.authenticator import Authenticator
from app.services.rate_limit_store import MemoryRateLimitStore
from app.services.session_store import SignedCookieSessionStore
from app.services.telemetry_service import TelemetryService

NOT_FOUND_BODY = "404! Page not found"


class TestCatchAll:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method", ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "PROPFIND", "PURGE"]
    )
    async def test_unknown_api_path(self, client, method):
        response = await client.request(method, "/api/unknown")

        assert response.status_code == 400
        assert response.json() == NOT_FOUND_BODY

    @pytest.mark.asyncio
    async def test_wrong_method_on_known_path(self, client):
        """A method a route does not serve falls through to the catch-all."""
        response = await client.delete("/api/ORGANIZATION")

        assert response.status_code == 400
        assert response.json() == NOT_FOUND_BODY

    @pytest.mark.asyncio
    async def test_path_outside_api(self, client):
        response = await client.get("/nothing/here")

        assert response.status_code == 400
        assert response.json() == NOT_FOUND_BODY

    @pytest.mark.asyncio
    async def test_uncommon_method_on_known_path(self, client):
        """Methods outside the usual set reach the catch-all rather than a 405."""
        response = await client.request("PROPFIND", "/api/ORGANIZATION")

        assert response.status_code == 400
        assert response.json() == NOT_FOUND_BODY


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, client):
        with patch("app.routes.health.check_database", AsyncMock(return_value=True)):
            response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["uptimeSeconds"] >= 0

    @pytest.mark.asyncio
    async def test_database_down(self, client):
        with patch("app.routes.health.check_database", AsyncMock(return_value=False)):
            response = await client.get("/health")

        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"] == "disconnected"


class TestRequestId:

    @pytest.mark.asyncio
    async def test_generated_when_absent(self, client):
        response = await client.get("/api/unknown")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_client_id_is_echoed(self, client):
        response = await client.get("/api/unknown", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"


class TestPipelineWiring:

    def _stages(self):
        return build_pipeline(
            rate_limit_store=MemoryRateLimitStore(),
            session_store=SignedCookieSessionStore("secret-for-wiring-test", 60),
            authenticator=Authenticator(user_loader=AsyncMock()),
            telemetry_service=TelemetryService(),
        )

    def test_stage_order(self):
        assert [s.name for s in self._stages()] == [
            "request_id",
            "access_log",
            "security_headers",
            "cors",
            "rate_limit",
            "body_parser",
            "injection_sanitize",
            "parameter_pollution",
            "xss_sanitize",
            "telemetry",
            "session",
            "authentication",
        ]

    def test_outermost_middleware_is_request_id(self, build_app):
        app = build_app()
        assert app.user_middleware[0].cls is RequestIDMiddleware
        assert len(app.user_middleware) == len(self._stages())

    def test_own_stages_are_documented(self):
        """Every stage defined in this package explains itself in its class docstring."""
        own = [s for s in self._stages() if s.middleware.__module__.startswith("app.")]
        assert len(own) == 11
        for stage in own:
            assert (stage.middleware.__doc__ or "").strip(), stage.name
        assert (Authenticator.__doc__ or "").strip()
