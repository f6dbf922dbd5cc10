"""
OrgTrack Backend — Telemetry Shipping
======================================

What:  Sends per-request metadata (method, path, status, duration, client,
       masked request payload) to an external observability endpoint.
How:   capture() schedules a background task and returns immediately; the
       task posts with httpx and retries transport failures with tenacity
       (exponential backoff + jitter). Failures are logged, never raised.
Who:   Fed by TelemetryMiddleware after the response has been produced.

Masking:
    Any dict key whose lower-cased name is in the mask set has its value
    replaced by asterisks of the same length (non-strings become "*****").
    Masking is recursive through dicts and lists.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Set

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings

logger = logging.getLogger(__name__)


def mask_payload(value: Any, mask_fields: Set[str]) -> Any:
    if isinstance(value, dict):
        masked = {}
        for key, item in value.items():
            if str(key).lower() in mask_fields:
                masked[key] = "*" * len(item) if isinstance(item, str) else "*****"
            else:
                masked[key] = mask_payload(item, mask_fields)
        return masked
    if isinstance(value, list):
        return [mask_payload(item, mask_fields) for item in value]
    return value


class TelemetryService:

    def __init__(
        self,
        api_key: str = "",
        project_id: str = "",
        endpoint: str = "",
        mask_fields: Optional[Iterable[str]] = None,
        timeout: float = 5.0,
        max_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.project_id = project_id
        self.endpoint = endpoint
        self.mask_fields = {f.lower() for f in (mask_fields or ())}
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._client = client
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls) -> "TelemetryService":
        return cls(
            api_key=settings.telemetry_api_key,
            project_id=settings.telemetry_project_id,
            endpoint=settings.telemetry_endpoint,
            mask_fields=settings.telemetry_mask_set,
            timeout=settings.telemetry_timeout,
            max_attempts=settings.telemetry_retry_attempts,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.endpoint)

    def mask(self, value: Any) -> Any:
        return mask_payload(value, self.mask_fields)

    def capture(self, record: Dict[str, Any]) -> None:
        """Schedule delivery of one record. Returns immediately."""
        if not self.enabled:
            return
        task = asyncio.get_running_loop().create_task(self.send(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, record: Dict[str, Any]) -> bool:
        """Deliver one record. Returns False (and logs) on failure."""
        payload = {
            "api_key": self.api_key,
            "project_id": self.project_id,
            "data": self.mask(record),
        }
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential_jitter(initial=1, max=10, jitter=1),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    response = await self._get_client().post(
                        self.endpoint,
                        json=payload,
                        headers={"x-api-key": self.api_key},
                    )
                    response.raise_for_status()
        except Exception as e:
            logger.warning("Telemetry delivery failed: %s", str(e))
            return False
        return True

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Wait briefly for in-flight deliveries, then close the HTTP client."""
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=self.timeout)
        if self._client is not None:
            await self._client.aclose()
            self._client = None
