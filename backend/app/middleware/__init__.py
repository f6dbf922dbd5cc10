"""
OrgTrack Backend — Middleware Package
======================================

What:  The request pipeline every call passes through before routing.
How:   Stages are declared in order in app.middleware.pipeline and installed
       by install_pipeline(); see that module for what each stage requires
       and guarantees.

    Request → [Request ID] → [Access Log] → [Security Headers] → [CORS]
            → [Rate Limit] → [Body Parser] → [Injection Sanitize]
            → [Parameter Pollution] → [XSS Sanitize] → [Telemetry]
            → [Session] → [Authentication] → Router

A stage that rejects a request answers it directly (see errors.py); the
stages behind it, and the router, never run.
"""
