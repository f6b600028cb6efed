"""
Exception handlers.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.
"""
import logging
import traceback

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.env import is_local_env
from .core.errors import AffiliateError

logger = logging.getLogger("affiliate")


async def affiliate_error_handler(request: Request, exc: AffiliateError):
    """Domain errors carry their own status and machine-readable code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    if isinstance(exc, (HTTPException, StarletteHTTPException)):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail if hasattr(exc, 'detail') else str(exc)},
        )

    error_traceback = traceback.format_exc()
    logger.error(f"Unhandled exception: {exc}\n{error_traceback}", exc_info=True)

    # Don't leak internals outside local/dev
    if is_local_env():
        error_response = {"detail": f"Internal server error: {exc}"}
    else:
        error_response = {"detail": "Internal server error"}

    return JSONResponse(
        status_code=500,
        content=error_response,
    )


def register_exception_handlers(app):
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(AffiliateError, affiliate_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
