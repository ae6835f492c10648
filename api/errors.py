"""
Translation of service failures into HTTP errors.

ServiceError subclasses carry their own status code. Anything else is logged
and reported as a generic 500.
"""

import logging

from fastapi import HTTPException

from services.errors import ServiceError

logger = logging.getLogger(__name__)


def http_error(e: ServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def unexpected_error(action: str) -> HTTPException:
    """Call from inside an except block so the traceback is logged."""
    logger.exception("Unexpected error while trying to %s", action)
    return HTTPException(status_code=500, detail=f"Failed to {action}")
