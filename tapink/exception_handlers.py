"""
Exception handlers for the TapInk API.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.
"""
import logging

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from tapink.core.env import is_local_env

logger = logging.getLogger("tapink")

API_PREFIX = "/api/"


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed payloads on API routes are a 400 with the offending fields"""
    if not request.url.path.startswith(API_PREFIX):
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
    logger.info(f"Rejected payload on {request.url.path}: invalid fields {fields}")
    return JSONResponse(
        status_code=400,
        content={
            "detail": {
                "error": "INVALID_PAYLOAD",
                "message": "Invalid payload",
                "fields": fields,
            }
        },
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    if isinstance(exc, (HTTPException, StarletteHTTPException)):
        return await http_error_handler(request, exc)

    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)

    # In production, don't leak internal error details to clients
    if is_local_env():
        error_response = {"detail": f"Internal server error: {exc}"}
    else:
        error_response = {"detail": "Internal server error"}
    return JSONResponse(status_code=500, content=error_response)


def register_exception_handlers(app):
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
