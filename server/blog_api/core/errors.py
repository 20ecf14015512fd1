"""Map service errors and request validation failures to JSON responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..exceptions import BlogServiceError, StorageUnavailableError, ValidationError, field_errors

logger = logging.getLogger(__name__)


async def blog_error_handler(request: Request, exc: BlogServiceError) -> JSONResponse:
    content = {"error": exc.message}
    headers = None
    if isinstance(exc, ValidationError) and exc.details:
        content["details"] = exc.details
    if isinstance(exc, StorageUnavailableError):
        logger.error(
            "[Blog] %s %s failed: %s (cause: %r)",
            request.method, request.url.path, exc.message, exc.cause,
        )
        headers = {"Retry-After": "1"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Validation Error", "details": field_errors(exc.errors())},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlogServiceError, blog_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
