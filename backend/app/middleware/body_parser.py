"""
OrgTrack Backend — Body Parsing Middleware
===========================================

What:  Reads and decodes JSON and url-encoded request bodies once, before any
       sanitizer or handler sees them.
How:   The decoded value is stored in scope["state"]["parsed_body"]; the
       sanitizer stages rewrite it in place. The downstream `receive` is
       replaced by a replay that serializes whatever parsed_body holds at the
       moment the handler reads the body, so handlers always receive the
       sanitized version as JSON.

Limits:
    - Bodies larger than max_body_size (10kb) → 413 before any handler.
      A Content-Length above the limit is rejected without reading.
    - Malformed JSON, non-UTF-8 bodies, and JSON scalars at the top level
      (only objects and arrays are accepted) → 400.

Url-encoded bodies:
    Decoded to a dict; a key sent once maps to a string, a repeated key maps
    to the list of its values (ParameterPollutionMiddleware collapses those).
    After parsing, the request is presented downstream as application/json.

Other content types (multipart, text, ...) pass through untouched.
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings
from app.exceptions import OrgTrackError, PayloadTooLargeError, ValidationError
from app.middleware.errors import error_response

logger = logging.getLogger(__name__)

JSON = "json"
FORM = "form"


class BodyParserMiddleware:
    """
    Middleware that decodes the request body once and replays it as JSON.

    Behavior:
        1. Content types other than JSON and url-encoded pass straight through
        2. The body is read up to max_body_size; one byte more is a 413
        3. Decoding failures are a 400 in the {"status", "message"} shape
        4. The decoded value lands in state["parsed_body"] for later stages
    """

    def __init__(self, app: ASGIApp, max_body_size: Optional[int] = None):
        self.app = app
        self.max_body_size = max_body_size or settings.max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        state["parsed_body"] = None
        state["body_source"] = None

        headers = Headers(scope=scope)
        kind = self._body_kind(headers.get("content-type", ""))
        if kind is None:
            await self.app(scope, receive, send)
            return

        try:
            raw = await self._read_body(headers, receive)
            parsed = self._decode(kind, raw)
        except OrgTrackError as exc:
            logger.warning(
                "Rejected %s body on %s %s: %s",
                kind, scope.get("method"), scope.get("path"), exc.message,
            )
            response = error_response(exc)
            await response(scope, receive, send)
            return

        state["parsed_body"] = parsed
        state["body_source"] = kind
        if parsed is not None:
            scope["headers"] = [
                (name, value)
                for name, value in scope["headers"]
                if name not in (b"content-type", b"content-length")
            ] + [(b"content-type", b"application/json")]

        await self.app(scope, self._replay(scope, receive), send)

    @staticmethod
    def _body_kind(content_type: str) -> Optional[str]:
        media_type = content_type.split(";")[0].strip().lower()
        if media_type == "application/json" or media_type.endswith("+json"):
            return JSON
        if media_type == "application/x-www-form-urlencoded":
            return FORM
        return None

    async def _read_body(self, headers: Headers, receive: Receive) -> bytes:
        declared = headers.get("content-length")
        if declared is not None:
            try:
                if int(declared) > self.max_body_size:
                    raise PayloadTooLargeError(limit=self.max_body_size)
            except ValueError:
                pass

        body = bytearray()
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            body.extend(message.get("body", b""))
            if len(body) > self.max_body_size:
                raise PayloadTooLargeError(limit=self.max_body_size)
            if not message.get("more_body", False):
                break
        return bytes(body)

    @staticmethod
    def _decode(kind: str, raw: bytes) -> Any:
        if not raw.strip():
            return None

        if kind == JSON:
            try:
                parsed = json.loads(raw.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                raise ValidationError(message="Malformed JSON body")
            if not isinstance(parsed, (dict, list)):
                raise ValidationError(message="JSON body must be an object or an array")
            return parsed

        try:
            pairs = parse_qsl(raw.decode("utf-8"), keep_blank_values=True, strict_parsing=False)
        except (UnicodeDecodeError, ValueError):
            raise ValidationError(message="Malformed form body")
        form = {}
        for key, value in pairs:
            if key in form:
                existing = form[key]
                form[key] = existing + [value] if isinstance(existing, list) else [existing, value]
            else:
                form[key] = value
        return form

    @staticmethod
    def _replay(scope: Scope, receive: Receive) -> Receive:
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            parsed = scope["state"].get("parsed_body")
            data = b"" if parsed is None else json.dumps(parsed, separators=(",", ":")).encode("utf-8")
            return {"type": "http.request", "body": data, "more_body": False}

        return replay
