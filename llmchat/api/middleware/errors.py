"""Error handling middleware for the LLMChat gateway."""

from collections.abc import Awaitable, Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from llmchat.core.errors import (
    ConfigurationError,
    LLMChatError,
    NotFoundError,
    ServiceUnavailableError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from llmchat.core.logging import get_logger


logger = get_logger(__name__)


def _error_body(
    error_type: str, message: str, details: dict | None = None
) -> dict[str, dict]:
    body: dict = {"type": error_type, "message": message}
    if details:
        body["details"] = details
    return {"error": body}


def setup_error_handlers(app: FastAPI, debug_errors: bool = False) -> None:
    """Register exception handlers producing ``{"error": {...}}`` bodies.

    Args:
        app: FastAPI application instance
        debug_errors: Include exception details in error bodies
    """
    # None means the status code comes from the exception itself
    ERROR_MAPPINGS: dict[type[Exception], int | None] = {
        LLMChatError: None,
        ValidationError: 400,
        NotFoundError: 404,
        ConfigurationError: 500,
        UpstreamError: 502,
        ServiceUnavailableError: 503,
        UpstreamTimeoutError: 504,
    }

    async def unified_error_handler(
        request: Request, exc: LLMChatError, status_code: int | None
    ) -> JSONResponse:
        status_code = status_code or exc.status_code
        log_kwargs = {
            "error_type": exc.error_type,
            "error_message": exc.message,
            "status_code": status_code,
            "request_method": request.method,
            "request_url": str(request.url.path),
            "category": "request",
        }
        if status_code >= 500:
            logger.error("request_failed", **log_kwargs)
        else:
            logger.warning("request_rejected", **log_kwargs)

        return JSONResponse(
            status_code=status_code,
            content=_error_body(
                exc.error_type, exc.message, exc.details if debug_errors else None
            ),
        )

    def make_handler(
        status_code: int | None,
    ) -> Callable[[Request, Exception], Awaitable[JSONResponse]]:
        async def handler(request: Request, exc: Exception) -> JSONResponse:
            assert isinstance(exc, LLMChatError)
            return await unified_error_handler(request, exc, status_code)

        return handler

    for exc_class, status in ERROR_MAPPINGS.items():
        app.exception_handler(exc_class)(make_handler(status))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(
            str(part) for part in first.get("loc", ()) if part != "body"
        )
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"

        logger.warning(
            "request_validation_failed",
            error_message=message,
            request_method=request.method,
            request_url=str(request.url.path),
            category="request",
        )
        return JSONResponse(
            status_code=400,
            content=_error_body(
                "validation_error",
                message,
                {"errors": jsonable_encoder(errors)} if debug_errors else None,
            ),
        )

    @app.exception_handler(HTTPException)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        log_func = logger.debug if exc.status_code == 404 else logger.warning
        log_func(
            "http_exception",
            status_code=exc.status_code,
            error_message=exc.detail,
            request_method=request.method,
            request_url=str(request.url.path),
            category="request",
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(f"http_{exc.status_code}", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            request_method=request.method,
            request_url=str(request.url.path),
            exc_info=exc,
            category="request",
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                str(exc) if debug_errors else "An unexpected error occurred",
            ),
        )

    logger.debug("error_handlers_setup_completed", category="lifecycle")
