"""Azure resource identifier parsing and formatting.

An Azure Resource Manager ID is a hierarchical path:

    /subscriptions/{sub}/resourceGroups/{rg}/providers/{namespace}/{type}/{name}[/{type}/{name}...]

Parsing keeps the original key spelling and ordering so that formatting a
parsed identifier reproduces the input exactly. Associations that have no
Azure identity of their own are tracked as two identifiers joined by a pipe.
"""

from dataclasses import dataclass
from typing import Iterable

from constants import COMPOSITE_ID_SEPARATOR
from models import MalformedIdentifierError

_SUBSCRIPTIONS_KEY = "subscriptions"
_RESOURCE_GROUPS_KEY = "resourceGroups"
_PROVIDERS_KEY = "providers"


@dataclass(frozen=True)
class ResourceIdentifier:
    """A parsed Azure resource ID.

    ``segments`` holds every key/value pair in the order it appeared,
    including the subscription, resource group and provider segments.
    """

    segments: tuple[tuple[str, str], ...]

    @classmethod
    def parse(cls, raw: str) -> "ResourceIdentifier":
        """Parse a resource ID, raising MalformedIdentifierError if invalid."""
        if not isinstance(raw, str) or not raw:
            raise MalformedIdentifierError(f"Cannot parse an empty resource ID: {raw!r}")
        if not raw.startswith("/"):
            raise MalformedIdentifierError(
                f"Resource ID {raw!r} must start with '/'"
            )

        components = raw[1:].split("/")
        if len(components) % 2 != 0:
            raise MalformedIdentifierError(
                f"The number of path segments is not divisible by 2 in {raw!r}"
            )

        segments: list[tuple[str, str]] = []
        for index in range(0, len(components), 2):
            key, value = components[index], components[index + 1]
            if not key or not value:
                raise MalformedIdentifierError(
                    f"Key/Value cannot be empty strings. Key: {key!r}, Value: {value!r} in {raw!r}"
                )
            segments.append((key, value))

        identifier = cls(tuple(segments))
        if identifier._find(_SUBSCRIPTIONS_KEY) is None:
            raise MalformedIdentifierError(f"No subscription ID found in: {raw!r}")
        return identifier

    @classmethod
    def build(
        cls,
        subscription_id: str,
        resource_group: str,
        provider: str,
        path: Iterable[tuple[str, str]],
    ) -> "ResourceIdentifier":
        """Build an identifier from its parts."""
        segments = [
            (_SUBSCRIPTIONS_KEY, subscription_id),
            (_RESOURCE_GROUPS_KEY, resource_group),
            (_PROVIDERS_KEY, provider),
            *path,
        ]
        for key, value in segments:
            if not key or not value or "/" in value:
                raise MalformedIdentifierError(
                    f"Invalid resource ID segment {key!r}={value!r}"
                )
        return cls(tuple(segments))

    def _find(self, key: str) -> str | None:
        for segment_key, value in self.segments:
            if segment_key == key:
                return value
        lowered = key.lower()
        for segment_key, value in self.segments:
            if segment_key.lower() == lowered:
                return value
        return None

    @property
    def subscription_id(self) -> str:
        return self._find(_SUBSCRIPTIONS_KEY) or ""

    @property
    def resource_group(self) -> str:
        return self._find(_RESOURCE_GROUPS_KEY) or ""

    @property
    def provider(self) -> str:
        return self._find(_PROVIDERS_KEY) or ""

    @property
    def path(self) -> dict[str, str]:
        """Resource type/name pairs below the provider, in order."""
        return {
            key: value
            for key, value in self.segments
            if key.lower()
            not in (_SUBSCRIPTIONS_KEY.lower(), _RESOURCE_GROUPS_KEY.lower(), _PROVIDERS_KEY)
        }

    @property
    def name(self) -> str:
        """Name of the innermost resource."""
        return self.segments[-1][1]

    def get(self, key: str) -> str | None:
        """Look up a path value, exact key first then case-insensitively."""
        return self._find(key)

    def require(self, *keys: str) -> tuple[str, ...]:
        """Return the values for ``keys``, raising if any are missing."""
        values = []
        for key in keys:
            value = self._find(key)
            if value is None:
                expected = "/".join(f"{k}/{{{k}}}" for k in keys)
                raise MalformedIdentifierError(
                    f"Expected {key!r} in resource ID {self.format()!r} "
                    f"(format: .../{expected})"
                )
            values.append(value)
        if not self.resource_group:
            raise MalformedIdentifierError(
                f"No resource group found in resource ID {self.format()!r}"
            )
        return tuple(values)

    def format(self) -> str:
        return "/" + "/".join(f"{key}/{value}" for key, value in self.segments)

    def __str__(self) -> str:
        return self.format()


def join_composite(first: str | ResourceIdentifier, second: str | ResourceIdentifier) -> str:
    """Join two resource IDs into an association identifier."""
    return f"{first}{COMPOSITE_ID_SEPARATOR}{second}"


def split_composite(raw: str) -> tuple[ResourceIdentifier, ResourceIdentifier]:
    """Split an association identifier into its two resource IDs.

    Anything other than exactly two non-empty, parseable halves is an error.
    """
    parts = raw.split(COMPOSITE_ID_SEPARATOR) if isinstance(raw, str) else []
    if len(parts) != 2 or not all(parts):
        raise MalformedIdentifierError(
            f"Expected ID to be in the format {{resourceIdA}}|{{resourceIdB}} but got {raw!r}"
        )
    return ResourceIdentifier.parse(parts[0]), ResourceIdentifier.parse(parts[1])
