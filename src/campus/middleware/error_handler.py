"""Global error handlers: every error leaves as ``{"error": kind, "detail": message}``."""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc
from starlette.exceptions import HTTPException as StarletteHTTPException

from campus.errors import (
    CampusError,
    Conflict,
    Forbidden,
    InvalidRequest,
    NotFound,
    RateLimited,
    Timeout,
    Unauthorized,
    Unavailable,
    error_body,
)

logger = structlog.get_logger()

_HTTP_ERROR_KINDS = {
    cls.status_code: cls.kind
    for cls in (InvalidRequest, Unauthorized, Forbidden, NotFound, Conflict, RateLimited, Unavailable, Timeout)
}
_HTTP_ERROR_KINDS[405] = "method_not_allowed"


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(CampusError)
    async def campus_error_handler(_request: Request, exc: CampusError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.kind, exc.message),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Routing errors (unknown path, wrong method) in the same shape."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(_HTTP_ERROR_KINDS.get(exc.status_code, "error"), exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={**error_body(InvalidRequest.kind, "Validation error"), "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(sa_exc.TimeoutError)
    @app.exception_handler(sa_exc.OperationalError)
    @app.exception_handler(sa_exc.InterfaceError)
    async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
        """Pool exhaustion and lost connections are transient; the caller may retry."""
        logger.error(
            "store_unavailable",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        unavailable = Unavailable("Storage temporarily unavailable")
        return await campus_error_handler(request, unavailable)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=error_body(CampusError.kind, "Internal server error"),
        )
