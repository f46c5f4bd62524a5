"""Translate domain errors into JSON responses.

Body shape for every LearningError and for request validation failures:

  {"error": {"code": ..., "message": ..., "details": {...}}, "path": ...}

Auth failures keep FastAPI's HTTPException ``{"detail": ...}`` body.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lms.core.errors import LearningError

logger = logging.getLogger(__name__)


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict | None = None,
    path: str | None = None,
) -> JSONResponse:
    content: dict = {
        "error": {"code": code, "message": message, "details": details or {}},
    }
    if path:
        content["path"] = path
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LearningError)
    async def learning_error_handler(request: Request, exc: LearningError):
        # Client-side outcomes: locked lessons, used-up attempts and the like.
        logger.info(
            "%s: %s",
            exc.error_code,
            exc.message,
            extra={"error_code": exc.error_code, "path": request.url.path},
        )
        return error_response(
            exc.status_code,
            exc.error_code,
            exc.message,
            exc.details,
            request.url.path,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.info(
            "Request validation failed",
            extra={"error_code": "validation_error", "path": request.url.path},
        )
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "validation_error",
            "Request validation failed",
            {"errors": errors},
            request.url.path,
        )
