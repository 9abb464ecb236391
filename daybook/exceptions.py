"""
Daybook Backend: Custom Exception Hierarchy
============================================

What:  Application-specific exceptions for the failure modes of the service.
How:   Each exception carries a user-facing message and an optional context
       dict. Global exception handlers (registered in main.py) turn them into
       structured JSON error responses with the right HTTP status code.
Who:   Raised by the backend client and services; caught by global handlers.

Exception Hierarchy:
    DaybookError (base)
    ├── ValidationError              → 400 Bad Request (client can fix)
    ├── AuthenticationRequiredError  → 401 Unauthorized (nobody signed in)
    ├── NotFoundError                → 404 Not Found
    └── BackendError                 → 502 Bad Gateway (hosted backend failed)

Credential failures are NOT exceptions: login returns False and signup
returns a SignupResult. Only mutation failures (create/update/delete) and
transport problems travel as BackendError.
"""

from typing import Any, Dict, Optional


class DaybookError(Exception):
    """
    Base exception for all Daybook application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DaybookError):
    """
    Raised when client input fails a business rule.

    When:    Unknown email on password reset, expired reset link, password
             rejected by the auth backend.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "No email like that found in our app.",
            "details": {"field": "email"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationRequiredError(DaybookError):
    """
    Raised when an operation needs a signed-in identity and there is none.

    When:    Entry operations or password update while signed out.
    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Please sign in to continue.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(DaybookError):
    """
    Raised when a requested resource does not exist.

    When:    GET /api/entries/{id} for an id that is not in the entry cache.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class BackendError(DaybookError):
    """
    Raised when the hosted backend rejects a request or cannot be reached.

    What:    Wraps both non-2xx responses (message taken from the backend's
             error body) and transport failures (timeouts, refused
             connections).
    HTTP:    502 Bad Gateway

    Attributes:
        status_code: HTTP status returned by the backend (None for transport errors)
        code:        Backend-specific error code, when the body carries one
    """

    def __init__(
        self,
        message: str = "The journal backend could not complete the request.",
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        if code:
            ctx["code"] = code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.code = code
