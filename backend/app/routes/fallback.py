"""
OrgTrack Backend — Catch-all Route
===================================

Answers every request no other route matched, whatever its method, with
HTTP 400 and the JSON string "404! Page not found". Existing clients match
on that exact status and body, so both are kept as they are even though the
status does not say "not found".

The handler is a plain ASGI app rather than a FastAPI endpoint: Starlette
only leaves a route open to every method (TRACE, PROPFIND, PURGE, ...) when
the endpoint is not a function.

Must be registered LAST: routes are matched in registration order and this
path pattern matches everything.
"""

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)

NOT_FOUND_BODY = "404! Page not found"
CATCH_ALL_PATH = "/{full_path:path}"


class NotFoundApp:
    """ASGI app that renders the fixed catch-all response."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.info("No route for %s %s", scope["method"], scope["path"])
        response = JSONResponse(status_code=400, content=NOT_FOUND_BODY)
        await response(scope, receive, send)


def install_catch_all(app: FastAPI) -> None:
    """Registers the catch-all with no method restriction."""
    app.add_route(CATCH_ALL_PATH, NotFoundApp(), include_in_schema=False)
