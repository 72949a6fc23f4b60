"""Application error taxonomy.

Every error is a FastAPI `HTTPException` so route handlers can re-raise
them untouched and `main.create_app` renders them with one handler.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException


class AppError(HTTPException):
    """Base class for errors that map onto a single HTTP response."""

    status_code_default = 500

    def __init__(self, detail: str, status_code: Optional[int] = None, headers: Optional[dict] = None) -> None:
        super().__init__(status_code=status_code or self.status_code_default, detail=detail, headers=headers)


class ValidationError(AppError):
    status_code_default = 400


class PayloadTooLargeError(ValidationError):
    status_code_default = 413


class AuthError(AppError):
    status_code_default = 401


class ForbiddenError(AuthError):
    status_code_default = 403


class NotFoundError(AppError):
    status_code_default = 404


class RateLimitError(AppError):
    """Too many requests from one client; carries the retry hint in seconds."""

    status_code_default = 429

    def __init__(self, detail: str, retry_after: int) -> None:
        super().__init__(detail, headers={"Retry-After": str(retry_after)})
        self.retry_after = retry_after


class UpstreamError(AppError):
    """The Telegram Bot API or the metadata store failed."""

    status_code_default = 500


class ConfigurationError(AppError):
    status_code_default = 500
