"""
OrgTrack Backend — Telemetry Middleware
========================================

What:  Hands a summary of every request/response pair to TelemetryService.
When:  After sanitization, so the body it sees (and masks) is the one the
       handler received.

The record is built after the response is produced and delivery happens in
a background task; a slow or failing observability endpoint never delays or
fails the request. When telemetry is not configured this stage is a pass-through.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var
from app.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)


class TelemetryMiddleware(BaseHTTPMiddleware):
    """
    Builds one record per request and passes it to TelemetryService.capture.

    A disabled service makes this a pass-through.
    """

    def __init__(self, app, service: TelemetryService):
        super().__init__(app)
        self.service = service

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.service.enabled:
            return await call_next(request)

        started_at = datetime.now(timezone.utc)
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        try:
            self.service.capture(self._record(request, response, started_at, duration_ms))
        except Exception as e:
            logger.warning("Could not schedule telemetry record: %s", str(e))

        return response

    @staticmethod
    def _record(
        request: Request, response: Response, started_at: datetime, duration_ms: float
    ) -> Dict[str, Any]:
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        return {
            "request": {
                "id": request_id_var.get(""),
                "timestamp": started_at.isoformat(),
                "method": request.method,
                "path": request.url.path,
                "query": dict(request.query_params),
                "body": getattr(request.state, "parsed_body", None),
                "ip": client_ip,
                "user_agent": request.headers.get("user-agent", ""),
            },
            "response": {
                "status": response.status_code,
                "size": response.headers.get("content-length"),
                "duration_ms": round(duration_ms, 2),
            },
        }
