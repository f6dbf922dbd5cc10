"""
OrgTrack Backend — Shared Pydantic Schemas
===========================================

What:  Base model for the camelCase API contract plus the error and health
       response shapes shared by every route.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    """
    Base for every request/response schema.

    The wire format is camelCase (organizationId, createdAt); Python code uses
    snake_case. populate_by_name lets clients send either spelling and lets
    services build schemas from ORM objects (from_attributes).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """
    Standardized error body for pipeline rejections and client errors.

    Example:
        {"status": "Error", "message": "Request body exceeds the 10kb limit."}
    """

    status: str = Field(default="Error", description="Always 'Error'")
    message: str = Field(description="Human-readable error description")
    details: Optional[List[FieldError]] = Field(default=None)
    request_id: Optional[str] = Field(default=None)


class PersistenceErrorResponse(BaseModel):
    """Body of a 500 raised by a failed create/read, e.g. {"error": "Failed to create team"}."""

    error: str


class HealthResponse(APIModel):
    status: str = Field(description="healthy or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    uptime_seconds: float
