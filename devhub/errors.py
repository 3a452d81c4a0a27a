"""
Domain error taxonomy shared by services and the HTTP layer.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(
        self, message: Optional[str] = None, errors: Optional[Sequence[str]] = None
    ):
        self.message = message or self.default_message
        self.errors = list(errors) if errors else [self.message]
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(
        self, message: Optional[str] = None, errors: Optional[Sequence[str]] = None
    ):
        # A bare "Validation failed" is less useful than the first reason.
        if errors and not message:
            message = errors[0]
        super().__init__(message, errors)


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Unauthorized access"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource conflict"


class InternalServerError(AppError):
    status_code = 500
    default_message = "Internal server error"


@contextmanager
def service_errors(
    message: str, conflict_message: str = "Duplicate entry"
) -> Iterator[None]:
    """
    Translate failures raised inside a service operation.

    Domain errors pass through untouched. A unique-constraint violation that
    slipped past the service-level checks becomes a ConflictError. Anything
    else is logged with its original text and surfaced as an
    InternalServerError carrying only ``message``.
    """
    try:
        yield
    except AppError:
        raise
    except IntegrityError as exc:
        logger.warning("%s: integrity violation: %s", message, exc.orig)
        raise ConflictError(conflict_message) from exc
    except Exception as exc:
        logger.exception("%s: %s", message, exc)
        raise InternalServerError(message) from exc
