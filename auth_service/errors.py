"""Domain exceptions and their HTTP mapping.

Workflow and store code raise the exceptions below; :func:`register_exception_handlers`
turns them into the JSON error bodies returned by the API.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

GENERIC_LOGIN_MESSAGE = "Incorrect email or password"


class AuthServiceError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.error)
        self.message = message or self.error

    def to_body(self) -> dict:
        return {"error": self.error, "message": self.message}


class ValidationError(AuthServiceError):
    """A field is missing, malformed or violates a uniqueness constraint."""

    status_code = 400
    error = "Validation failed"

    def __init__(self, details: Dict[str, str], message: str = "") -> None:
        super().__init__(message or "; ".join(details.values()))
        self.details = details

    def to_body(self) -> dict:
        return {"error": self.error, "message": self.message, "details": self.details}


class AuthenticationError(AuthServiceError):
    """Credentials could not be matched to a verified account.

    The message is deliberately the same for every cause.
    """

    status_code = 401
    error = "Authentication failed"

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(GENERIC_LOGIN_MESSAGE)
        self.reason = reason


class NotFoundError(AuthServiceError):
    status_code = 404
    error = "Not found"


async def _auth_service_error_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthServiceError, _auth_service_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
