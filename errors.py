"""
Error taxonomy for the API.

Every domain error is an HTTPException so FastAPI renders it as
{"detail": message} with the matching status code. Request-schema failures
and unhandled exceptions get their own handlers below.
"""
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TaskboardError(HTTPException):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class Unauthenticated(TaskboardError):
    status_code = 401
    default_detail = "Unauthorized"


class Forbidden(TaskboardError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(TaskboardError):
    status_code = 404
    default_detail = "Not found"


class ValidationError(TaskboardError):
    status_code = 400
    default_detail = "Invalid request"


class Conflict(TaskboardError):
    # The public status table has no 409; duplicates are reported as 400.
    status_code = 400
    default_detail = "Already exists"


class InternalFault(TaskboardError):
    status_code = 500
    default_detail = "Internal server error"


def _describe(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    if not loc:
        return "Invalid request body"
    return f"Invalid {'.'.join(loc)}: {first.get('msg', 'invalid value')}"


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": _describe(exc)})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": InternalFault.default_detail})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
