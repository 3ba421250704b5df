import math
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class FinaccoError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def payload(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class AuthError(FinaccoError):
    """Invalid credentials or an expired, revoked or unknown token"""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "auth_error"


class PermissionDeniedError(FinaccoError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class NotFoundError(FinaccoError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(FinaccoError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class FormValidationError(FinaccoError):
    """Per-field form errors; submission is blocked until they are fixed."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"

    def __init__(self, errors: Dict[str, str], message: str = "Please correct the errors in the form"):
        super().__init__(message)
        self.errors = dict(errors)

    def payload(self) -> Dict[str, Any]:
        data = super().payload()
        data["errors"] = self.errors
        return data


class RenderError(FinaccoError):
    """Template definition or PDF export failure; the caller's input is untouched."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "render_error"


class ExternalServiceError(FinaccoError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "external_service_error"


class RateLimitError(FinaccoError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"

    def __init__(self, retry_after_seconds: float):
        minutes = max(1, math.ceil(retry_after_seconds / 60))
        plural = "s" if minutes > 1 else ""
        super().__init__(f"Rate limit exceeded. Please try again in {minutes} minute{plural}.")
        self.retry_after_seconds = retry_after_seconds
        self.minutes = minutes

    def payload(self) -> Dict[str, Any]:
        data = super().payload()
        data["retry_after"] = int(self.retry_after_seconds) + 1
        return data


async def finacco_error_handler(request: Request, exc: FinaccoError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(int(exc.retry_after_seconds) + 1)}
    elif isinstance(exc, AuthError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.payload(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FinaccoError, finacco_error_handler)
