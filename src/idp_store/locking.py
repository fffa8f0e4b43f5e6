"""Optimistic concurrency control keyed on the ``updatedAt`` attribute.

A writer passes the ``updated_at`` it last read; the write is conditioned
on the stored value still matching. Every successful mutation advances
``updatedAt`` strictly, so two writes never share a version.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from .exceptions import InvalidArgumentError
from .mapper import format_timestamp

UPDATED_AT_ATTRIBUTE = "updatedAt"

RESOLUTION = timedelta(microseconds=1)
"""Smallest representable step of a stored timestamp."""


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def next_timestamp(previous: datetime | None = None) -> datetime:
    """
    Return a timestamp strictly after ``previous``.

    Normally this is the current time; if the clock has not moved past
    ``previous`` (same tick or clock skew), ``previous`` plus one
    microsecond is returned instead.
    """
    now = utc_now()
    if previous is None:
        return now
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=UTC)
    return max(now, previous + RESOLUTION)


def require_lock_arguments(entity: Any, expected_updated_at: datetime | None) -> None:
    """
    Reject an optimistic-lock save before anything is sent to the store.

    Raises:
        InvalidArgumentError: If the entity has no id or no expected timestamp is given
    """
    if entity is None:
        raise InvalidArgumentError("entity", "cannot be None")
    if getattr(entity, "id", None) is None:
        raise InvalidArgumentError("entity.id", "optimistic locking requires a persisted entity")
    if expected_updated_at is None:
        raise InvalidArgumentError(
            "expected_updated_at", "optimistic locking requires the last read updated_at"
        )


def lock_condition(expected_updated_at: datetime) -> dict[str, Any]:
    """
    Build the condition for a compare-and-swap on ``updatedAt``.

    The record must exist and still carry ``expected_updated_at``.
    Returns keyword arguments for ``put_item`` or a transaction write.
    """
    return {
        "ConditionExpression": "attribute_exists(#id) AND #updatedAt = :expectedUpdatedAt",
        "ExpressionAttributeNames": {"#id": "id", "#updatedAt": UPDATED_AT_ATTRIBUTE},
        "ExpressionAttributeValues": {
            ":expectedUpdatedAt": {"S": format_timestamp(expected_updated_at)},
        },
    }
