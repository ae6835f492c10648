"""
Row helpers shared by repository modules.

Supabase (PostgREST) returns timestamps as ISO-8601 strings, numerics as
numbers or strings, and reports failures either as an `error` attribute on the
response or by raising `postgrest.exceptions.APIError`. These helpers keep the
conversion and error reporting consistent across repositories.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from postgrest.exceptions import APIError

from domain.time import require_utc_timestamp

# Postgres SQLSTATE for unique_violation.
UNIQUE_VIOLATION: str = "23505"


class RepositoryError(RuntimeError):
    """A storage call failed. `code` carries the database error code when known."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION


def execute(query: Any, action: str) -> Any:
    """
    Execute a PostgREST query builder and normalize failures to RepositoryError.

    Args:
        query: A supabase-py request builder (table/rpc chain, not yet executed)
        action: Human-readable description used in error messages
    """

    try:
        response = query.execute()
    except APIError as e:
        raise RepositoryError(f"Failed to {action}: {e.message}", code=e.code) from e

    error = getattr(response, "error", None)
    if error:
        raise RepositoryError(f"Failed to {action}: {error}")
    return response


def rows_of(response: Any) -> List[Mapping[str, Any]]:
    return getattr(response, "data", None) or []


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def optional_iso_utc(dt: Optional[datetime], *, name: str) -> Optional[str]:
    return to_iso_utc(dt, name=name) if dt is not None else None


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    # Naive timestamps from the backend are interpreted as UTC.
    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


def parse_optional_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def to_decimal(value: Any) -> Decimal:
    # str() first so floats keep their printed value rather than binary noise.
    return Decimal(str(value)) if value is not None else Decimal("0")


__all__ = [
    "RepositoryError",
    "UNIQUE_VIOLATION",
    "execute",
    "rows_of",
    "to_iso_utc",
    "optional_iso_utc",
    "parse_utc_datetime",
    "parse_optional_datetime",
    "parse_optional_uuid",
    "to_decimal",
]
