"""Error taxonomy and normalized error handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from quotarelay.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class AuthenticityError(AppError):
    """Signature or payload verification failed; the provider should not retry."""
    code = "authenticity_error"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class RemoteProviderError(AppError):
    """The payment provider's own call failed."""
    code = "remote_provider_error"
    status_code = 502


class RemoteSessionError(RemoteProviderError):
    code = "remote_session_error"


class StorageUnavailable(AppError):
    """Entitlement store unreachable. 5xx so webhook deliveries are retried."""
    code = "storage_unavailable"
    status_code = 503


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }


def _respond(status_code: int, code: str, message: str, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=_error_payload(code, message, rid))
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("quotarelay")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _respond(exc.status_code, exc.code, exc.message, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    logger = logging.getLogger("quotarelay")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _respond(exc.status_code, code, message, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logging.getLogger("quotarelay").warning(
        "request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400}
    )
    return _respond(400, "validation_error", message, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("quotarelay")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    return _respond(500, "internal_error", "Unexpected error", rid)
