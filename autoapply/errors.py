"""Typed errors raised inside the pipeline."""
from __future__ import annotations


class AppError(Exception):
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(AppError):
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    code = "NOT_FOUND"


class ExternalServiceError(AppError):
    """An upstream service (LLM, SMTP, storage) failed after retries."""

    code = "EXTERNAL_SERVICE_ERROR"


class SourceFetchError(ExternalServiceError):
    """A job source could not be fetched; isolated per platform by the search engine."""

    code = "SOURCE_FETCH_ERROR"

    def __init__(self, platform: str, message: str) -> None:
        super().__init__(f"{platform}: {message}")
        self.platform = platform


class TaskNotFoundError(AppError, KeyError):
    code = "TASK_NOT_FOUND"

    def __str__(self) -> str:
        return self.message
