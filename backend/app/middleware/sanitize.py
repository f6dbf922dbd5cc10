"""
OrgTrack Backend — Input Sanitization Middleware
=================================================

What:  Three request-rewriting stages that run after the body parser and
       before anything reads request data:

    InjectionSanitizeMiddleware   drops keys that could be read as query
                                  operators: keys starting with "$" or
                                  containing "." (also "a[$gt]" style keys)
    ParameterPollutionMiddleware  collapses repeated query parameters (and
                                  repeated url-encoded body fields) to their
                                  last value unless the name is whitelisted
    XSSSanitizeMiddleware         escapes "<" as "&lt;" in every string value

Where data lives:
    query   scope["query_string"] is rewritten, so request.query_params and
            FastAPI Query() parameters see the cleaned values
    body    scope["state"]["parsed_body"] is rewritten; BodyParserMiddleware
            replays it to the handler

Path parameters are resolved by the router after these stages; every path
parameter in this API is typed as a UUID, so operator-shaped values are
rejected there with a 400.

None of these stages reject a request. They log at WARNING when they change
something so noisy clients are visible in the access logs.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import parse_qsl, urlencode

from starlette.types import ASGIApp, Receive, Scope, Send

from app.config import settings

logger = logging.getLogger(__name__)

Pairs = List[Tuple[str, str]]


# ══════════════════════════════════════════════════════════════════════════
# Pure functions
# ══════════════════════════════════════════════════════════════════════════


def is_operator_key(key: Any) -> bool:
    """True for keys a document store could interpret as operators or paths."""
    if not isinstance(key, str):
        return False
    if key.startswith("$") or "." in key:
        return True
    # "filter[$ne]" style names produced by bracket-notation form encoders
    if "[" in key:
        segments = key.replace("]", "").split("[")
        return any(s.startswith("$") for s in segments)
    return False


def strip_operator_keys(value: Any) -> Any:
    """Return a copy of `value` with operator keys removed at every depth."""
    if isinstance(value, dict):
        return {
            k: strip_operator_keys(v)
            for k, v in value.items()
            if not is_operator_key(k)
        }
    if isinstance(value, list):
        return [strip_operator_keys(v) for v in value]
    return value


def escape_markup(value: Any) -> Any:
    """Escape "<" in every string value (dict keys are left alone)."""
    if isinstance(value, str):
        return value.replace("<", "&lt;")
    if isinstance(value, dict):
        return {k: escape_markup(v) for k, v in value.items()}
    if isinstance(value, list):
        return [escape_markup(v) for v in value]
    return value


def collapse_repeated(pairs: Pairs, whitelist: Set[str]) -> Tuple[Pairs, Dict[str, List[str]]]:
    """
    Keep only the last occurrence of each repeated, non-whitelisted name.

    Returns the new pair list (original order otherwise preserved) and a map
    of every collapsed name to all the values that were sent.
    """
    seen: Dict[str, List[str]] = {}
    for key, value in pairs:
        seen.setdefault(key, []).append(value)

    polluted = {
        key: values
        for key, values in seen.items()
        if len(values) > 1 and key not in whitelist
    }
    if not polluted:
        return pairs, {}

    remaining = {key: len(values) for key, values in polluted.items()}
    collapsed: Pairs = []
    for key, value in pairs:
        if key in remaining:
            remaining[key] -= 1
            if remaining[key] > 0:
                continue
        collapsed.append((key, value))
    return collapsed, polluted


def collapse_form_lists(form: Dict[str, Any], whitelist: Set[str]) -> Tuple[Dict[str, Any], Dict[str, List[Any]]]:
    polluted = {
        key: value
        for key, value in form.items()
        if isinstance(value, list) and key not in whitelist
    }
    if not polluted:
        return form, {}
    collapsed = {
        key: (value[-1] if key in polluted and value else value)
        for key, value in form.items()
    }
    return collapsed, polluted


# ══════════════════════════════════════════════════════════════════════════
# Stages
# ══════════════════════════════════════════════════════════════════════════


def _read_query(scope: Scope) -> Pairs:
    raw = scope.get("query_string", b"").decode("latin-1")
    return parse_qsl(raw, keep_blank_values=True)


def _write_query(scope: Scope, pairs: Pairs) -> None:
    scope["query_string"] = urlencode(pairs).encode("ascii")


class _RequestRewriteMiddleware:
    """Base for stages that mutate the scope and then hand over unchanged."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            self.rewrite(scope, scope.setdefault("state", {}))
        await self.app(scope, receive, send)

    def rewrite(self, scope: Scope, state: Dict[str, Any]) -> None:
        raise NotImplementedError


class InjectionSanitizeMiddleware(_RequestRewriteMiddleware):
    """
    Removes keys that is_operator_key flags from the query string and, at any
    depth, from the parsed body.
    """

    def rewrite(self, scope: Scope, state: Dict[str, Any]) -> None:
        pairs = _read_query(scope)
        kept = [(k, v) for k, v in pairs if not is_operator_key(k)]
        if len(kept) != len(pairs):
            _write_query(scope, kept)
            logger.warning(
                "Removed %d operator key(s) from query on %s",
                len(pairs) - len(kept),
                scope.get("path"),
            )

        body = state.get("parsed_body")
        if body is not None:
            cleaned = strip_operator_keys(body)
            if cleaned != body:
                state["parsed_body"] = cleaned
                logger.warning("Removed operator keys from body on %s", scope.get("path"))


class ParameterPollutionMiddleware(_RequestRewriteMiddleware):
    """
    Collapses repeated query parameters and repeated url-encoded body fields
    to their last value.

    Names in the whitelist keep every value. The collapsed names are left on
    state as query_polluted and body_polluted. JSON arrays are not touched.
    """

    def __init__(self, app: ASGIApp, whitelist: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.whitelist = set(whitelist) if whitelist is not None else settings.hpp_whitelist_set

    def rewrite(self, scope: Scope, state: Dict[str, Any]) -> None:
        pairs, polluted = collapse_repeated(_read_query(scope), self.whitelist)
        state["query_polluted"] = polluted
        if polluted:
            _write_query(scope, pairs)
            logger.warning(
                "Collapsed repeated query parameter(s) %s on %s",
                sorted(polluted),
                scope.get("path"),
            )

        body = state.get("parsed_body")
        if state.get("body_source") == "form" and isinstance(body, dict):
            collapsed, body_polluted = collapse_form_lists(body, self.whitelist)
            state["body_polluted"] = body_polluted
            if body_polluted:
                state["parsed_body"] = collapsed
                logger.warning(
                    "Collapsed repeated body field(s) %s on %s",
                    sorted(body_polluted),
                    scope.get("path"),
                )


class XSSSanitizeMiddleware(_RequestRewriteMiddleware):
    """Escapes "<" in query values and in every string value of the parsed body."""

    def rewrite(self, scope: Scope, state: Dict[str, Any]) -> None:
        pairs = _read_query(scope)
        if any("<" in v for _, v in pairs):
            _write_query(scope, [(k, escape_markup(v)) for k, v in pairs])

        body = state.get("parsed_body")
        if body is not None:
            state["parsed_body"] = escape_markup(body)
