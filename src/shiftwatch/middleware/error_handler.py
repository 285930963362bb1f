"""Global error handlers with consistent JSON responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shiftwatch.errors import ShiftwatchError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(ShiftwatchError)
    async def domain_exception_handler(request: Request, exc: ShiftwatchError) -> JSONResponse:
        """Map domain errors to their status code; ``code`` carries the error class."""
        logger.info(
            "domain_error",
            path=request.url.path,
            code=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": str(exc), "code": type(exc).__name__},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw ``ctx`` objects, which may not serialize."""
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]
