"""Generic create/read/update/delete orchestration over resource kinds.

A ResourceKind describes one Azure resource type: how to derive and parse
its identifier, how to fetch it, how to turn a config into an SDK payload
and back, and whether it lives inside a shared parent that must be locked.
LifecycleHandler drives every kind through the same state machine:

    Absent -> Creating -> Present -> Updating -> Present -> Deleting -> Absent
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager, nullcontext
from typing import Any, ClassVar

from azure_client import AzureClient
from locks import NamedLockRegistry
from models import (
    ConfigurationError,
    ImportCollisionError,
    Operation,
    OperatorError,
    ResourceNotFoundError,
    ResourceState,
)
from polling import Deadline

logger = logging.getLogger(__name__)

_VERBS = {
    Operation.CREATE: "creating",
    Operation.READ: "retrieving",
    Operation.UPDATE: "updating",
    Operation.DELETE: "deleting",
    Operation.IMPORT: "importing",
}


class ResourceKind:
    """Strategy describing one Azure resource type.

    Subclasses set the class attributes and override the hooks they need.
    ``ident`` is whatever ``parse_id`` returns, usually a ResourceIdentifier.
    """

    # CRD kind and plural
    kind: ClassVar[str] = ""
    plural: ClassVar[str] = ""
    # Human readable name used in error messages
    display_name: ClassVar[str] = ""
    # Frozen dataclass with a from_spec(spec) classmethod
    config_class: ClassVar[type] = object
    supports_update: ClassVar[bool] = False
    # Spec keys whose change requires delete and recreate
    immutable_fields: ClassVar[frozenset[str]] = frozenset()
    # Version of the persisted identifier format
    schema_version: ClassVar[int] = 0
    # Lock namespace for kinds that mutate a shared parent
    lock_type: ClassVar[str | None] = None

    def config_from_spec(self, spec: dict[str, Any]) -> Any:
        return self.config_class.from_spec(spec)

    def forces_recreate(self, field: str, old: Any, new: Any) -> bool:
        """Whether changing top level spec ``field`` needs delete and recreate."""
        return field in self.immutable_fields

    def identity(self, config: Any, subscription_id: str) -> Any:
        """Identifier the resource described by ``config`` has (or will have)."""
        raise NotImplementedError

    def parse_id(self, raw: str) -> Any:
        raise NotImplementedError

    def format_id(self, ident: Any) -> str:
        return str(ident)

    def describe(self, ident: Any) -> tuple[str, str]:
        """Return (name, resource group) for error messages."""
        return ident.name, ident.resource_group

    def lock_key(self, ident: Any) -> str | None:
        """Name of the shared parent to lock, or None."""
        return None

    def fetch(self, client: AzureClient, ident: Any, deadline: Deadline) -> Any:
        """Fetch the remote resource, raising ResourceNotFoundError if absent."""
        raise NotImplementedError

    def prepare(self, client: AzureClient, ident: Any, config: Any, deadline: Deadline) -> Any:
        """Check remote preconditions before a write and return the config to use.

        Kinds may resolve remote references into the config or clear
        conflicting leftovers here.
        """
        return config

    def load_for_write(
        self, client: AzureClient, ident: Any, config: Any, deadline: Deadline
    ) -> Any:
        """Fetch what the create payload is merged into (a shared parent)."""
        return None

    def build_payload(self, config: Any, current: Any) -> Any:
        raise NotImplementedError

    def submit(self, client: AzureClient, ident: Any, payload: Any, deadline: Deadline) -> Any:
        """Write the payload and wait until Azure has applied it."""
        raise NotImplementedError

    def resource_id_for(self, ident: Any, result: Any) -> str:
        """Identifier to persist after a successful create."""
        server_id = getattr(result, "id", None)
        return server_id if isinstance(server_id, str) and server_id else self.format_id(ident)

    def build_update_payload(self, config: Any, current: Any) -> Any:
        return self.build_payload(config, current)

    def submit_update(
        self, client: AzureClient, ident: Any, payload: Any, deadline: Deadline
    ) -> Any:
        return self.submit(client, ident, payload, deadline)

    def parse_state(self, remote: Any, ident: Any) -> dict[str, Any]:
        """Convert the remote resource into status fields."""
        return {}

    def secret_outputs(self, remote: Any) -> dict[str, str]:
        """Sensitive computed values, kept out of status."""
        return {}

    def remove(self, client: AzureClient, ident: Any, deadline: Deadline) -> None:
        """Delete the resource, raising ResourceNotFoundError if already gone."""
        raise NotImplementedError

    def confirm_deleted(self, client: AzureClient, ident: Any, deadline: Deadline) -> None:
        """Wait out eventual consistency after a delete."""

    def state_upgraders(self) -> dict[int, Callable[[str], str]]:
        """Identifier rewrites keyed by the version they upgrade from."""
        return {}


class LifecycleHandler:
    """Drives a ResourceKind through create, read, update and delete."""

    def __init__(self, kind: ResourceKind, client: AzureClient, locks: NamedLockRegistry) -> None:
        self.kind = kind
        self.client = client
        self.locks = locks

    def _describe(self, operation: Operation, ident: Any = None) -> str:
        text = f"{_VERBS[operation]} {self.kind.display_name}"
        if ident is not None:
            name, resource_group = self.kind.describe(ident)
            text += f" {name!r} (Resource Group {resource_group!r})"
        return text

    @contextmanager
    def _errors(self, operation: Operation, ident: Any = None) -> Iterator[None]:
        try:
            yield
        except OperatorError as e:
            raise e.with_context(self._describe(operation, ident))

    def _locked(self, ident: Any, deadline: Deadline):
        key = self.kind.lock_key(ident)
        if key is None:
            return nullcontext()
        return self.locks.hold(key, self.kind.lock_type or self.kind.kind, deadline)

    def _parse(self, operation: Operation, raw: str) -> Any:
        with self._errors(operation):
            return self.kind.parse_id(raw)

    def create(
        self,
        config: Any,
        deadline: Deadline,
        is_new: bool = True,
        on_created: Callable[[str], None] | None = None,
    ) -> ResourceState:
        """Create the resource described by ``config``.

        With ``is_new`` an existing remote resource is an ImportCollisionError
        and nothing is written. ``on_created`` receives the identifier as soon
        as the write has been applied, before the state is read back, so a
        failed read does not lose track of the new resource.
        """
        with self._errors(Operation.CREATE):
            ident = self.kind.identity(config, self.client.subscription_id)

        with self._errors(Operation.CREATE, ident), self._locked(ident, deadline):
            if is_new:
                try:
                    self.kind.fetch(self.client, ident, deadline)
                except ResourceNotFoundError:
                    pass
                else:
                    raise ImportCollisionError(self.kind.kind, self.kind.format_id(ident))

            config = self.kind.prepare(self.client, ident, config, deadline)
            current = self.kind.load_for_write(self.client, ident, config, deadline)
            payload = self.kind.build_payload(config, current)
            result = self.kind.submit(self.client, ident, payload, deadline)
            resource_id = self.kind.resource_id_for(ident, result)

        logger.info("Created %s %s", self.kind.display_name, resource_id)
        if on_created is not None:
            on_created(resource_id)
        return self._read_back(Operation.CREATE, resource_id, deadline)

    def read(self, resource_id: str, deadline: Deadline) -> ResourceState | None:
        """Read current state; None means the resource no longer exists."""
        ident = self._parse(Operation.READ, resource_id)
        with self._errors(Operation.READ, ident):
            try:
                remote = self.kind.fetch(self.client, ident, deadline)
            except ResourceNotFoundError:
                logger.info(
                    "%s %s was not found - removing from state",
                    self.kind.display_name, resource_id,
                )
                return None
            return ResourceState(
                resource_id=resource_id,
                fields=self.kind.parse_state(remote, ident),
                secrets=self.kind.secret_outputs(remote),
            )

    def update(self, resource_id: str, config: Any, deadline: Deadline) -> ResourceState:
        """Apply ``config`` to an existing resource in place."""
        ident = self._parse(Operation.UPDATE, resource_id)
        with self._errors(Operation.UPDATE, ident):
            if not self.kind.supports_update:
                raise ConfigurationError(
                    f"{self.kind.display_name} cannot be updated in place"
                )
            with self._locked(ident, deadline):
                config = self.kind.prepare(self.client, ident, config, deadline)
                current = self.kind.fetch(self.client, ident, deadline)
                payload = self.kind.build_update_payload(config, current)
                self.kind.submit_update(self.client, ident, payload, deadline)

        logger.info("Updated %s %s", self.kind.display_name, resource_id)
        return self._read_back(Operation.UPDATE, resource_id, deadline)

    def delete(self, resource_id: str, deadline: Deadline) -> None:
        """Delete the resource. Deleting something already gone succeeds."""
        ident = self._parse(Operation.DELETE, resource_id)
        with self._errors(Operation.DELETE, ident):
            with self._locked(ident, deadline):
                try:
                    self.kind.remove(self.client, ident, deadline)
                except ResourceNotFoundError:
                    logger.info(
                        "%s %s was already gone", self.kind.display_name, resource_id
                    )
                    return
            self.kind.confirm_deleted(self.client, ident, deadline)
        logger.info("Deleted %s %s", self.kind.display_name, resource_id)

    def import_existing(self, resource_id: str, deadline: Deadline) -> ResourceState:
        """Adopt an existing remote resource by its identifier."""
        ident = self._parse(Operation.IMPORT, resource_id)
        state = self.read(resource_id, deadline)
        if state is None:
            raise ResourceNotFoundError(
                f"cannot import non-existent remote object {resource_id!r}"
            ).with_context(self._describe(Operation.IMPORT, ident))
        return state

    def upgrade_resource_id(self, raw: str, from_version: int) -> str:
        """Rewrite a persisted identifier to the kind's current format."""
        upgraders = self.kind.state_upgraders()
        upgraded = raw
        for version in range(from_version, self.kind.schema_version):
            upgrader = upgraders.get(version)
            if upgrader is not None:
                upgraded = upgrader(upgraded)
        if upgraded != raw:
            logger.info(
                "Upgraded %s identifier from v%d: %s -> %s",
                self.kind.display_name, from_version, raw, upgraded,
            )
        return upgraded

    def _read_back(self, operation: Operation, resource_id: str, deadline: Deadline) -> ResourceState:
        state = self.read(resource_id, deadline)
        if state is None:
            raise ResourceNotFoundError(
                f"{self.kind.display_name} {resource_id!r} was not found after it was written"
            ).with_context(self._describe(operation))
        return state
