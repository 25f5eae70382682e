"""Utility functions for the Azure operator."""

import datetime
import uuid
from typing import Any, MutableMapping


def is_valid_uuid(value: str) -> bool:
    """Check if a string is a valid UUID.

    Used to validate user-supplied job schedule IDs.
    """
    try:
        uuid.UUID(value)
        return True
    except (ValueError, TypeError, AttributeError):
        return False


def normalize_location(location: str) -> str:
    """Convert an Azure location to its canonical short form.

    Example: 'West Europe' -> 'westeurope'
    """
    return location.replace(" ", "").lower()


def now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.datetime.now(datetime.UTC).isoformat()


def set_condition(
    status: MutableMapping[str, Any],
    condition_type: str,
    condition_status: str,
    reason: str = "",
    message: str = "",
) -> None:
    """Set or update a condition in the status conditions list."""
    if "conditions" not in status:
        status["conditions"] = []

    conditions: list[dict[str, str]] = status["conditions"]

    for condition in conditions:
        if condition["type"] == condition_type:
            if condition["status"] != condition_status:
                condition["status"] = condition_status
                condition["lastTransitionTime"] = now_iso()
            condition["reason"] = reason
            condition["message"] = message
            return

    conditions.append(
        {
            "type": condition_type,
            "status": condition_status,
            "reason": reason,
            "message": message,
            "lastTransitionTime": now_iso(),
        }
    )


def enum_value(value: Any) -> Any:
    """Unwrap an SDK enum member to its wire value (plain strings pass through)."""
    return getattr(value, "value", value)
