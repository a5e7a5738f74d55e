# backend/app/api/errors.py
"""Maps data access errors to HTTP responses"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.exceptions import DataAccessError, GENERIC_FAILURE_MESSAGE

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(DataAccessError)
    async def data_access_error_handler(request: Request, exc: DataAccessError):
        if not exc.user_facing:
            # Internal detail stays in the logs
            logger.error(
                "Request failed",
                extra={
                    "error_code": exc.error_code,
                    "error": exc.message,
                    "details": exc.details,
                    "path": request.url.path,
                    "tenant_id": request.headers.get("x-tenant-id"),
                },
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(TimeoutError)
    async def timeout_handler(request: Request, exc: TimeoutError):
        logger.warning("Request deadline exceeded", extra={"path": request.url.path})
        return JSONResponse(
            status_code=504,
            content={"error": "TIMEOUT", "message": GENERIC_FAILURE_MESSAGE},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.exception("Unhandled exception while handling request", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL_ERROR", "message": GENERIC_FAILURE_MESSAGE},
        )
