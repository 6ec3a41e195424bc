"""Centralized error responses.

Every error leaving the API is rendered as ``{"status", "message"}`` where
``status`` is ``"fail"`` for client errors and ``"error"`` for server
errors.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core import get_settings

logger = logging.getLogger("contactbook")


def error_body(status_code: int, message: str) -> dict:
    """Build the JSON error envelope for a status code."""
    return {
        "status": "fail" if status_code < 500 else "error",
        "message": message,
    }


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render ``HTTPException`` raised by routes and dependencies."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report invalid request data as a 400 with every problem listed."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    message = "Invalid input data. " + ". ".join(messages)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(status.HTTP_400_BAD_REQUEST, message),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures; only reveal their message outside production."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if get_settings().is_production:
        message = "Something went very wrong!"
    else:
        message = str(exc) or exc.__class__.__name__
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, message),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error responders on the application."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
