"""
Base Models and Common Types

Foundation classes for the scheduler's models.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: Any) -> Any:
    """
    Normalize datetimes to timezone-aware UTC.

    Naive datetimes are assumed to be UTC; ISO strings (with or without a
    trailing Z) and epoch milliseconds from the ACP SDK are converted.
    Anything else is passed through for pydantic to reject.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"Epoch milliseconds out of range: {value!r}") from e
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return value
    return value


class SellerModel(BaseModel):
    """Base model for all scheduler entities with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )
