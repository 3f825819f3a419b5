"""Exception handlers - the one place typed failures become JSON."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vibex.core.errors import SessionError
from vibex.schemas.session import ErrorResult

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(SessionError)
    async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
        logger.info(
            "operation_rejected",
            path=request.url.path,
            error_code=exc.code,
            category=exc.category,
        )
        body = ErrorResult(error=exc.message, error_code=exc.code)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions - always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "error_code": "INTERNAL"},
        )
