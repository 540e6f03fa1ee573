"""
Domain error taxonomy and the FastAPI handlers that render it.

Every business-rule failure is raised as an ``AskboxError`` subclass and
rendered verbatim with its own status code. Data-layer and unexpected
failures are logged with their traceback and surfaced as a generic 500.

Envelope::

    {"message": "<human readable>", "code": "<stable code>", "requestId": "<id>"}
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

log = structlog.get_logger()

SERVER_ERROR_MESSAGE = "Server Error"


class AskboxError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    code: str = "error"
    message: str = "Request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def payload(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code}

    def headers(self) -> dict[str, str] | None:
        return None


class Unauthenticated(AskboxError):
    status_code = 401
    code = "unauthenticated"
    message = "No token, authorization denied"


class InvalidToken(AskboxError):
    status_code = 401
    code = "invalid_token"
    message = "Token is not valid"


class TokenExpired(AskboxError):
    status_code = 401
    code = "token_expired"
    message = "Token has expired"


class InvalidCredentials(AskboxError):
    status_code = 400
    code = "invalid_credentials"
    message = "Invalid credentials"


class Forbidden(AskboxError):
    status_code = 403
    code = "forbidden"
    message = "Forbidden"


class NotFound(AskboxError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class AlreadyRegistered(AskboxError):
    status_code = 400
    code = "already_registered"
    message = "User already exists"


class AlreadyMember(AskboxError):
    status_code = 400
    code = "already_member"
    message = "User already a member of this organization"


class AlreadyAsked(AskboxError):
    status_code = 403
    code = "already_asked"
    message = "You have already asked a question in this organization"


class MessagingDisabled(AskboxError):
    status_code = 403
    code = "messaging_disabled"
    message = "Messaging is currently turned off for this organization"


class CooldownActive(AskboxError):
    status_code = 429
    code = "cooldown_active"

    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Please wait {retry_after_seconds} seconds before asking another question"
        )

    def payload(self) -> dict[str, Any]:
        body = super().payload()
        body["retryAfterSeconds"] = self.retry_after_seconds
        return body

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


class ConcurrentSubmission(AskboxError):
    status_code = 409
    code = "concurrent_submission"
    message = "Another question from you was accepted at the same moment"


class ValidationError(AskboxError):
    status_code = 400
    code = "validation_error"
    message = "Invalid request"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _render(
    request: Request,
    status_code: int,
    body: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body["requestId"] = _request_id(request)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def askbox_error_handler(request: Request, exc: AskboxError) -> JSONResponse:
    log.info(
        "request.rejected",
        code=exc.code,
        status=exc.status_code,
        path=request.url.path,
    )
    return _render(request, exc.status_code, exc.payload(), exc.headers())


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _render(
        request,
        exc.status_code,
        {"message": message, "code": "http_error"},
        getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ()) if item != "body")
        msg = err.get("msg", "")
        parts.append(f"{loc}: {msg}" if loc else msg)
    message = "; ".join(parts) or ValidationError.message
    return _render(request, 400, {"message": message, "code": ValidationError.code})


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.exception("request.database_error", path=request.url.path)
    return _render(request, 500, {"message": SERVER_ERROR_MESSAGE, "code": "server_error"})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unhandled_error", path=request.url.path)
    return _render(request, 500, {"message": SERVER_ERROR_MESSAGE, "code": "server_error"})


def install_error_handling(app: FastAPI) -> None:
    """Register the uniform error envelope on *app*."""
    app.add_exception_handler(AskboxError, askbox_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
