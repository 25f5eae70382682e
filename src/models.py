"""Domain models for the Azure operator.

This module defines the typed data structures shared by the lifecycle
handlers and the kopf bindings, and the exception hierarchy every layer
raises.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from constants import IMPORT_ID_ANNOTATION


# =============================================================================
# Enums for constrained values
# =============================================================================


class Phase(Enum):
    """Lifecycle phase of a managed Azure resource."""

    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    READY = "Ready"
    ERROR = "Error"
    DELETING = "Deleting"


class Operation(Enum):
    """Lifecycle operation, used for timeouts, metrics and error context."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    IMPORT = "import"


# =============================================================================
# Dataclasses for handler input and output
# =============================================================================


@dataclass(frozen=True)
class Timeouts:
    """Per-operation time bounds in seconds."""

    create: float = 30 * 60
    read: float = 5 * 60
    update: float = 30 * 60
    delete: float = 30 * 60

    def for_operation(self, operation: Operation) -> float:
        """Return the bound for an operation (imports use the read bound)."""
        if operation is Operation.IMPORT:
            return self.read
        return getattr(self, operation.value)

    @classmethod
    def from_env(cls) -> "Timeouts":
        """Build timeouts from AZURE_TIMEOUT_<OPERATION>_MINUTES variables."""
        defaults = cls()
        values: dict[str, float] = {}
        for name in ("create", "read", "update", "delete"):
            raw = os.environ.get(f"AZURE_TIMEOUT_{name.upper()}_MINUTES")
            values[name] = float(raw) * 60 if raw else getattr(defaults, name)
        return cls(**values)


@dataclass(frozen=True)
class ResourceState:
    """Result of a successful create, read, update or import.

    ``fields`` are written to the custom resource status, ``secrets`` are
    sensitive computed outputs that must never land in status.
    """

    resource_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    secrets: dict[str, str] = field(default_factory=dict)

    def to_status(self) -> dict[str, Any]:
        """Convert to dict for Kubernetes status."""
        return {"resourceId": self.resource_id, **self.fields}


# =============================================================================
# Exceptions
# =============================================================================


class OperatorError(Exception):
    """Base exception for operator errors.

    ``terminal`` errors are never retried by the kopf layer. A handler adds
    context (operation, resource type, name and resource group) once, on the
    way out.
    """

    terminal = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.context: str | None = None

    def with_context(self, context: str) -> "OperatorError":
        if self.context is None:
            self.context = context
        return self

    def __str__(self) -> str:
        if self.context:
            return f"{self.context}: {self.message}"
        return self.message


class ResourceNotFoundError(OperatorError):
    """A remote Azure resource was not found."""

    pass


class ConfigurationError(OperatorError):
    """Invalid or missing configuration."""

    terminal = True


class AzureAPIError(OperatorError):
    """Error communicating with the Azure Resource Manager API."""

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedIdentifierError(OperatorError):
    """A resource identifier could not be parsed."""

    terminal = True


class ImportCollisionError(OperatorError):
    """Create found a remote resource that is not tracked yet."""

    terminal = True

    def __init__(self, kind: str, resource_id: str) -> None:
        super().__init__(
            f"A resource with the ID {resource_id!r} already exists - to be managed "
            f"via {kind} it needs to be imported using the "
            f"{IMPORT_ID_ANNOTATION!r} annotation"
        )
        self.kind = kind
        self.resource_id = resource_id


class OperationTimeoutError(OperatorError):
    """An operation did not complete within its time bound."""

    pass
