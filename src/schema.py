"""Validation helpers for reading custom resource specs into config objects.

Every helper raises ConfigurationError naming the offending key, so a bad
spec fails permanently instead of being retried.
"""

import re
from collections.abc import Collection, Mapping
from typing import Any

from models import ConfigurationError, MalformedIdentifierError
from resource_id import ResourceIdentifier

_MISSING = object()


def _get(spec: Mapping[str, Any], key: str) -> Any:
    value = spec.get(key, _MISSING)
    return _MISSING if value is None else value


def require_str(spec: Mapping[str, Any], key: str) -> str:
    """Return a required non-empty string."""
    value = _get(spec, key)
    if value is _MISSING:
        raise ConfigurationError(f"spec.{key} is required")
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"spec.{key} must be a non-empty string, got {value!r}")
    return value


def optional_str(spec: Mapping[str, Any], key: str, default: str | None = None) -> str | None:
    value = _get(spec, key)
    if value is _MISSING:
        return default
    if not isinstance(value, str):
        raise ConfigurationError(f"spec.{key} must be a string, got {value!r}")
    return value


def optional_bool(spec: Mapping[str, Any], key: str, default: bool | None = None) -> bool | None:
    value = _get(spec, key)
    if value is _MISSING:
        return default
    if not isinstance(value, bool):
        raise ConfigurationError(f"spec.{key} must be a boolean, got {value!r}")
    return value


def optional_int(
    spec: Mapping[str, Any],
    key: str,
    default: int | None = None,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    """Return an optional integer, checking the inclusive bounds if given."""
    value = _get(spec, key)
    if value is _MISSING:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"spec.{key} must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"spec.{key} must be at least {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"spec.{key} must be at most {maximum}, got {value}")
    return value


def optional_float(
    spec: Mapping[str, Any],
    key: str,
    default: float | None = None,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float | None:
    value = _get(spec, key)
    if value is _MISSING:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"spec.{key} must be a number, got {value!r}")
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise ConfigurationError(f"spec.{key} must be between {minimum} and {maximum}, got {value}")
    return float(value)


def require_int(
    spec: Mapping[str, Any], key: str, minimum: int | None = None, maximum: int | None = None
) -> int:
    if _get(spec, key) is _MISSING:
        raise ConfigurationError(f"spec.{key} is required")
    return optional_int(spec, key, minimum=minimum, maximum=maximum)


def one_of(
    spec: Mapping[str, Any],
    key: str,
    allowed: Collection[Any],
    default: Any = None,
    required: bool = False,
) -> Any:
    """Return a value that must be one of ``allowed``."""
    value = _get(spec, key)
    if value is _MISSING:
        if required:
            raise ConfigurationError(f"spec.{key} is required")
        return default
    if value not in allowed:
        raise ConfigurationError(
            f"spec.{key} must be one of {', '.join(map(str, allowed))}, got {value!r}"
        )
    return value


def matches(value: str, pattern: str, key: str, hint: str) -> str:
    """Check ``value`` against a full-match regular expression."""
    if not re.fullmatch(pattern, value):
        raise ConfigurationError(f"spec.{key} {value!r} is invalid: {hint}")
    return value


def resource_id(spec: Mapping[str, Any], key: str, *required_keys: str) -> ResourceIdentifier:
    """Parse a required Azure resource ID field.

    ``required_keys`` are path segments the ID must contain, for example
    ``networkInterfaces`` for a network interface ID.
    """
    raw = require_str(spec, key)
    try:
        identifier = ResourceIdentifier.parse(raw)
        identifier.require(*required_keys)
    except MalformedIdentifierError as e:
        raise ConfigurationError(f"spec.{key}: {e.message}") from e
    return identifier


def string_map(spec: Mapping[str, Any], key: str) -> dict[str, str] | None:
    """Return an optional mapping of strings to strings (tags, parameters)."""
    value = _get(spec, key)
    if value is _MISSING:
        return None
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"spec.{key} must be a mapping, got {value!r}")
    result: dict[str, str] = {}
    for k, v in value.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ConfigurationError(f"spec.{key} entries must be strings, got {k!r}: {v!r}")
        result[k] = v
    return result


def string_list(spec: Mapping[str, Any], key: str) -> tuple[str, ...] | None:
    value = _get(spec, key)
    if value is _MISSING:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"spec.{key} must be a list of strings, got {value!r}")
    return tuple(value)


def object_list(spec: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    value = _get(spec, key)
    if value is _MISSING:
        return []
    if not isinstance(value, list) or not all(isinstance(v, Mapping) for v in value):
        raise ConfigurationError(f"spec.{key} must be a list of objects, got {value!r}")
    return value


def nested(spec: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    value = _get(spec, key)
    if value is _MISSING:
        return None
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"spec.{key} must be an object, got {value!r}")
    return value
