"""Typed error hierarchy shared by services and rendered once at the HTTP edge."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AdvoqatError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class ValidationError(AdvoqatError):
    code = "validation_error"
    status_code = 400


class AuthorizationError(AdvoqatError):
    code = "forbidden"
    status_code = 403


class NotFoundError(AdvoqatError):
    code = "not_found"
    status_code = 404


class ConflictError(AdvoqatError):
    code = "conflict"
    status_code = 409


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class NotAvailableError(AdvoqatError):
    code = "not_available"
    status_code = 400


class AssignmentError(NotAvailableError):
    code = "assignment_error"


class UpstreamError(AdvoqatError):
    code = "upstream_error"
    status_code = 502


async def advoqat_error_handler(request: Request, exc: AdvoqatError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content={"code": "validation_error", "message": message})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"code": "internal_error", "message": "An unexpected error occurred"},
    )


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(AdvoqatError, advoqat_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
