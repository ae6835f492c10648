"""
Typed service failures.

Every service operation reports failure with one of these. The API layer maps
`status_code` straight onto the HTTP response.

- ValidationError: malformed or missing input (caller-correctable)
- NotFoundError:   a referenced entity does not exist
- ConflictError:   a state-machine precondition does not hold (caller-correctable)
- InternalError:   storage or gateway failure unrelated to the caller's input
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Optional[UUID | str] = None) -> None:
        message = f"{resource} not found: {resource_id}" if resource_id else f"{resource} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(ServiceError):
    status_code = 409
    code = "CONFLICT"


class InternalError(ServiceError):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """
    Translate storage and gateway RuntimeErrors raised in the block into InternalError.

    The original failure is logged with full context; the caller only sees a
    generic message. ServiceErrors raised inside the block pass through.
    """

    try:
        yield
    except RuntimeError as e:
        logger.exception("Failed to %s", action, extra={"action": action})
        raise InternalError(f"Failed to {action}") from e


__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "InternalError",
    "storage_errors",
]
