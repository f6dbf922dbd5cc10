"""
OrgTrack Backend — Telemetry Tests
===================================

What we test:
    ✅ Sensitive fields are masked before shipping
    ✅ Delivery failures are logged and reported as False, never raised
    ✅ The middleware hands a record to the service without delaying the response
    ✅ Disabled service: nothing is captured
"""

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from app.services.telemetry_service import TelemetryService, mask_payload

ENDPOINT = "http://telemetry.test/ingest"


def make_service(handler, **kwargs) -> TelemetryService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelemetryService(
        api_key="key-123",
        project_id="orgtrack",
        endpoint=ENDPOINT,
        mask_fields=["password", "token"],
        max_attempts=1,
        client=client,
        **kwargs,
    )


class TestMasking:

    def test_masks_nested_fields(self):
        payload = {"email": "a@b.c", "Password": "hunter22", "nested": [{"token": 42}]}
        assert mask_payload(payload, {"password", "token"}) == {
            "email": "a@b.c",
            "Password": "********",
            "nested": [{"token": "*****"}],
        }


class TestSend:

    @pytest.mark.asyncio
    async def test_successful_delivery(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(202)

        service = make_service(handler)
        ok = await service.send({"request": {"body": {"password": "secret12"}}})

        assert ok
        assert received[0].headers["x-api-key"] == "key-123"
        assert b"secret12" not in received[0].content
        await service.aclose()

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self):
        service = make_service(lambda request: httpx.Response(503))
        assert await service.send({"request": {}}) is False
        await service.aclose()

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = make_service(handler)
        assert await service.send({"request": {}}) is False
        await service.aclose()

    @pytest.mark.asyncio
    async def test_capture_runs_in_background(self):
        received = []

        def handler(request):
            received.append(request)
            return httpx.Response(200)

        service = make_service(handler)
        service.capture({"request": {}})
        pending = list(service._pending)
        assert len(pending) == 1

        await asyncio.gather(*pending)
        assert len(received) == 1
        await service.aclose()

    def test_disabled_without_key(self):
        service = TelemetryService(endpoint=ENDPOINT)
        assert not service.enabled
        service.capture({"request": {}})
        assert service._pending == set()


class TestTelemetryMiddleware:

    @pytest.mark.asyncio
    async def test_record_describes_request(self, build_app):
        service = TelemetryService(api_key="key-123", endpoint=ENDPOINT)
        service.capture = MagicMock()
        app = build_app(telemetry_service=service)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/api/ORGANIZATION?source=test", json={"name": "<Acme>"})

        assert response.status_code == 201
        service.capture.assert_called_once()
        record = service.capture.call_args.args[0]
        assert record["request"]["method"] == "POST"
        assert record["request"]["path"] == "/api/ORGANIZATION"
        assert record["request"]["query"] == {"source": "test"}
        assert record["request"]["body"] == {"name": "&lt;Acme>"}
        assert record["response"]["status"] == 201

    @pytest.mark.asyncio
    async def test_disabled_service_is_bypassed(self, build_app):
        service = TelemetryService()
        service.capture = MagicMock()
        app = build_app(telemetry_service=service)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            await client.get("/api/unknown")

        service.capture.assert_not_called()
