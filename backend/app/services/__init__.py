"""
OrgTrack Backend — Services Layer
==================================

What:  Business logic between the HTTP layer and persistence.

Service Inventory:
    - EntityService (hierarchy_service): create/list/get per hierarchy level
    - UserService: registration and principal lookup
    - AuthStrategy (abstract) / PasswordStrategy: credential verification
    - Authenticator: strategy registry and principal <-> session glue
    - RateLimitStore: Memory / Redis counter stores for the rate limit stage
    - SessionStore: signed-cookie session encoding
    - TelemetryService: background shipping of request metadata
"""
