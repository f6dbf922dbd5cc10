"""
OrgTrack Backend — Request Pipeline
====================================

What:  The ordered list of middleware stages, declared in the order a request
       meets them, each with what it relies on and what it guarantees.
How:   Starlette runs the LAST added middleware first, so install_pipeline()
       adds the stages in reverse. Reordering the list is the only way to
       reorder the pipeline.

Stage guarantees (outermost first):

    request_id           X-Request-ID on every response; request_id_var set
    access_log           one log line per request
    security_headers     hardening headers on every response, rejections included
    cors                 preflights answered; CORS headers for allowed origins
    rate_limit           over-budget clients under the API prefix get 429;
                         nothing behind this stage runs for them
    body_parser          state.parsed_body holds the decoded body (or None);
                         >10kb → 413, malformed → 400
    injection_sanitize   no "$"-prefixed or dotted keys left in query or body
    parameter_pollution  one value per query name unless whitelisted;
                         state.query_polluted lists what was collapsed
    xss_sanitize         every "<" in query and body values is "&lt;"
    telemetry            request summary shipped in the background
    session              scope["session"] set; cookie re-issued when changed
    authentication       state.authenticator set; state.user is a User or None
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, settings
from app.middleware.authentication import AuthenticationMiddleware
from app.middleware.body_parser import BodyParserMiddleware
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.middleware.sanitize import (
    InjectionSanitizeMiddleware,
    ParameterPollutionMiddleware,
    XSSSanitizeMiddleware,
)
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.middleware.session import SessionMiddleware
from app.middleware.telemetry import TelemetryMiddleware
from app.services.authenticator import Authenticator
from app.services.rate_limit_store import RateLimitStore
from app.services.session_store import SessionStore
from app.services.telemetry_service import TelemetryService


@dataclass(frozen=True)
class Stage:
    name: str
    middleware: type
    options: Dict[str, Any] = field(default_factory=dict)


def build_pipeline(
    *,
    rate_limit_store: RateLimitStore,
    session_store: SessionStore,
    authenticator: Authenticator,
    telemetry_service: TelemetryService,
    config: Optional[Settings] = None,
) -> List[Stage]:
    config = config or settings
    return [
        Stage("request_id", RequestIDMiddleware),
        Stage("access_log", RequestLoggingMiddleware),
        Stage("security_headers", SecurityHeadersMiddleware),
        Stage(
            "cors",
            CORSMiddleware,
            {
                "allow_origins": config.cors_origins_list,
                "allow_credentials": True,
                "allow_methods": ["*"],
                "allow_headers": ["*"],
                "expose_headers": [
                    "X-Request-ID",
                    "Retry-After",
                    "RateLimit-Limit",
                    "RateLimit-Remaining",
                    "RateLimit-Reset",
                ],
            },
        ),
        Stage(
            "rate_limit",
            RateLimitMiddleware,
            {
                "store": rate_limit_store,
                "prefix": config.rate_limit_path_prefix,
                "max_requests": config.rate_limit_requests,
                "window_seconds": config.rate_limit_window,
            },
        ),
        Stage("body_parser", BodyParserMiddleware, {"max_body_size": config.max_body_size}),
        Stage("injection_sanitize", InjectionSanitizeMiddleware),
        Stage("parameter_pollution", ParameterPollutionMiddleware, {"whitelist": config.hpp_whitelist_set}),
        Stage("xss_sanitize", XSSSanitizeMiddleware),
        Stage("telemetry", TelemetryMiddleware, {"service": telemetry_service}),
        Stage(
            "session",
            SessionMiddleware,
            {
                "store": session_store,
                "cookie_name": config.session_cookie_name,
                "max_age": config.session_max_age,
                "https_only": config.session_cookie_secure,
            },
        ),
        Stage("authentication", AuthenticationMiddleware, {"authenticator": authenticator}),
    ]


def install_pipeline(app: FastAPI, stages: List[Stage]) -> None:
    for stage in reversed(stages):
        app.add_middleware(stage.middleware, **stage.options)
