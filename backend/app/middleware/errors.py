"""
Rendering of pipeline rejections.

Middleware stages run outside FastAPI's exception handlers, so a stage that
rejects a request builds its response here. The body is always exactly
{"status": "Error", "message": <exc.message>}: no context, no traceback.
"""

from typing import Mapping, Optional

from starlette.responses import JSONResponse

from app.exceptions import OrgTrackError


def error_response(
    exc: OrgTrackError, headers: Optional[Mapping[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "Error", "message": exc.message},
        headers=dict(headers) if headers else None,
    )
