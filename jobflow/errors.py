"""Structured error helpers for API responses."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def build_error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


class AppError(Exception):
    """Application-scoped error for standardized API responses."""

    status_code = 500
    code = "APP_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.message = message
        self.details = details

    @property
    def payload(self) -> Dict[str, Any]:
        return build_error_payload(self.code, self.message, self.details)


class ConfigurationError(AppError):
    """No resolvable stage set, or a configuration write that would break the stage graph."""

    status_code = 500
    code = "CONFIGURATION_ERROR"


class ValidationError(AppError):
    """A response value or request field was rejected."""

    status_code = 422
    code = "VALIDATION_ERROR"


class InvalidQuestionError(ValidationError):
    """The question does not belong to the job's current stage."""

    code = "INVALID_QUESTION"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConcurrencyConflictError(AppError):
    """Another writer changed the job first; the whole submission may be retried."""

    status_code = 409
    code = "CONCURRENCY_CONFLICT"


class DependencyCleanupError(AppError):
    """A delete was refused because other records still reference the target."""

    status_code = 500
    code = "DEPENDENCY_CLEANUP_ERROR"


class PermissionDeniedError(AppError):
    status_code = 403
    code = "PERMISSION_DENIED"


# Messages shown instead of the real one for server-side errors
_GENERIC_MESSAGES = {
    ConfigurationError.code: "The workflow configuration could not be loaded.",
    DependencyCleanupError.code: "The record is still referenced and was not deleted.",
}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s details=%s",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
            exc.details,
        )
        message = _GENERIC_MESSAGES.get(exc.code, "Internal server error.")
        return JSONResponse(
            status_code=exc.status_code,
            content=build_error_payload(exc.code, message),
        )
    return JSONResponse(status_code=exc.status_code, content=exc.payload)

