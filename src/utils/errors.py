"""API error types and Flask error handlers."""

import logging
from typing import Any, Optional

from flask import Flask
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from src.utils.responses import error_response

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details


class BadRequestError(ApiError):
    status_code = 400
    code = "INVALID_REQUEST"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"


class RateLimitExceededError(ApiError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class GrippApiError(ApiError):
    """The Gripp API returned an error or an unusable response."""

    status_code = 502
    code = "GRIPP_API_ERROR"


class DatabaseError(ApiError):
    status_code = 503
    code = "DATABASE_ERROR"


def register_error_handlers(app: Flask):
    """Map exceptions raised by route handlers onto the standard error envelope."""

    @app.errorhandler(ApiError)
    def handle_api_error(e: ApiError):
        if e.status_code >= 500:
            logger.error(f"{e.code}: {e.message}")
        else:
            logger.warning(f"{e.code}: {e.message}")
        return error_response(e.message, e.status_code, e.code, e.details)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e: ValidationError):
        logger.warning(f"Validation error: {e}")
        return error_response(
            "Invalid request body",
            400,
            BadRequestError.code,
            e.errors(include_url=False, include_context=False),
        )

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e: SQLAlchemyError):
        logger.error(f"Database error: {e}", exc_info=True)
        return error_response("Database error", 503, DatabaseError.code)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        if e.code == 404:
            code = NotFoundError.code
        elif e.code == 429:
            code = RateLimitExceededError.code
        else:
            code = f"HTTP_{e.code}"
        return error_response(e.description or e.name, e.code, code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        logger.error(f"Unhandled error: {e}", exc_info=True)
        return error_response(str(e) or "Internal server error", 500)
