"""Application error taxonomy.

Every failure that crosses a module boundary is an ``AppError`` carrying a
stable ``key`` (localizable by clients) and a ``category`` that decides how
it is surfaced and whether the worker retries it.
"""

from __future__ import annotations

import enum
from typing import Optional

from sqlalchemy.exc import NoResultFound, SQLAlchemyError


class ErrorCategory(str, enum.Enum):
    DB = "DB"
    USER = "User"
    FORBIDDEN = "Forbidden"
    NOT_FOUND = "NotFound"
    INTERNAL = "Internal"


class ErrorKey(str, enum.Enum):
    INVALID_TRANSITION = "ErrorInvalidTransition"
    NO_ROWS = "ErrorNoRows"
    FAILED_TO_CONVERT_TO_API_TYPE = "ErrorFailedToConvertToAPIType"
    THREADS_LOAD_FAILURE = "ErrorThreadsLoadFailure"
    GENERIC_INTERNAL_SERVER_ERROR = "ErrorGenericInternalServerError"
    UNKNOWN_ERROR = "ErrorUnknownError"
    NOT_AUTHORIZED = "ErrorNotAuthorized"
    NOT_AUTHENTICATED = "ErrorNotAuthenticated"
    NOT_THREAD_PARTICIPANT = "ErrorNotThreadParticipant"
    THREAD_NEEDS_OTHER_USER = "ErrorThreadNeedsOtherUser"
    INVALID_REQUEST_INPUT = "ErrorInvalidRequestInput"
    TRANSACTION_CANCELLED = "ErrorTransactionCancelled"
    UNKNOWN_PROVIDER = "ErrorUnknownProvider"
    AUTH_FAILURE = "ErrorAuthFailure"


# Categories a caller can fix; retrying them never helps.
NON_RETRYABLE = frozenset({ErrorCategory.USER, ErrorCategory.FORBIDDEN, ErrorCategory.NOT_FOUND})

# Categories shown verbatim to API callers.
CLIENT_VISIBLE = NON_RETRYABLE


class AppError(Exception):
    """A categorized application error wrapping an optional cause."""

    def __init__(
        self,
        key: ErrorKey,
        category: ErrorCategory,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ) -> None:
        self.key = key
        self.category = category
        self.cause = cause
        self.message = message or (str(cause) if cause else key.value)
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def retryable(self) -> bool:
        return self.category not in NON_RETRYABLE

    def public(self) -> tuple[ErrorKey, ErrorCategory]:
        """Key and category safe to expose to an API caller."""
        if self.category in CLIENT_VISIBLE:
            return self.key, self.category
        return ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.INTERNAL

    def __repr__(self) -> str:
        return f"AppError({self.category.value}/{self.key.value}: {self.message})"


class ConfigError(Exception):
    """Raised at startup when required configuration is missing or inconsistent."""


def user_error(key: ErrorKey, message: Optional[str] = None) -> AppError:
    return AppError(key, ErrorCategory.USER, message=message)


def forbidden(key: ErrorKey = ErrorKey.NOT_AUTHORIZED, message: Optional[str] = None) -> AppError:
    return AppError(key, ErrorCategory.FORBIDDEN, message=message)


def not_found(key: ErrorKey = ErrorKey.NO_ROWS, message: Optional[str] = None) -> AppError:
    return AppError(key, ErrorCategory.NOT_FOUND, message=message)


def internal(key: ErrorKey = ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, cause: Optional[BaseException] = None) -> AppError:
    return AppError(key, ErrorCategory.INTERNAL, cause=cause)


def from_exception(exc: BaseException) -> AppError:
    """Classify an arbitrary exception into an ``AppError``."""
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, NoResultFound):
        return AppError(ErrorKey.NO_ROWS, ErrorCategory.NOT_FOUND, cause=exc)
    if isinstance(exc, SQLAlchemyError):
        return AppError(ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.DB, cause=exc)
    return AppError(ErrorKey.UNKNOWN_ERROR, ErrorCategory.INTERNAL, cause=exc)
