"""
OrgTrack Backend — Application Package Initializer
===================================================

What: Marks the `app` directory as a Python package.
Who:  Imported by uvicorn (`app.main:app`), Alembic, and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │   Middleware Pipeline (security)    │  ← headers, rate limit, parse, sanitize,
    │                                     │    telemetry, session, principal
    ├─────────────────────────────────────┤
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← persistence calls, auth strategies
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Every request crosses the whole middleware pipeline before routing; see
    app/middleware/pipeline.py for the declared stage order.
"""

__version__ = "1.0.0"
