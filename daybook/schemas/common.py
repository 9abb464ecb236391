"""
Daybook Backend: Shared Response Schemas
=========================================

What:  Error and health payloads shared by every route module.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "backend_error",
            "message": "Invalid login credentials",
            "details": {"status_code": 400},
            "request_id": "550e8400"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy or degraded")
    version: str = Field(description="Application version")
    backend: str = Field(description="Hosted backend: reachable or unreachable")
    signed_in: bool = Field(description="Whether a user session is active")
    uptime_seconds: float = Field(description="Seconds since service started")
