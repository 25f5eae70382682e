"""Kopf handlers for the Azure resource CRDs.

Every kind in the catalog gets the same four handlers, bound by register().
The handler bodies are plain functions taking the kind first so they can
be called directly.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

import kopf

from constants import CRD_GROUP, CRD_VERSION, IMPORT_ID_ANNOTATION
from k8s_secrets import read_secret_value, resolve_secret_refs, write_outputs_secret
from lifecycle import LifecycleHandler, ResourceKind
from metrics import RECONCILE_DURATION, RECONCILE_IN_PROGRESS, RECONCILE_TOTAL
from models import Operation, OperatorError, Phase, ResourceNotFoundError, ResourceState, Timeouts
from polling import Deadline
from resources.catalog import KINDS
from state import get_azure_client, get_k8s_core_api, get_lock_registry
from utils import now_iso, set_condition

logger = logging.getLogger(__name__)

# Status keys carried over when a handler only patches part of the status
PRESERVED_STATUS_KEYS = ("resourceId", "schemaVersion", "conditions")


def _lifecycle(kind: ResourceKind) -> LifecycleHandler:
    return LifecycleHandler(kind, get_azure_client(), get_lock_registry())


def _deadline(operation: Operation, stopped: Any = None) -> Deadline:
    return Deadline(Timeouts.from_env().for_operation(operation), stop_event=stopped)


def _preserve_status(status: dict[str, Any], patch: kopf.Patch) -> None:
    for key in PRESERVED_STATUS_KEYS:
        if key in status and key not in patch.status:
            value = status[key]
            patch.status[key] = [dict(c) for c in value] if key == "conditions" else value


def _load_config(kind: ResourceKind, spec: dict[str, Any], namespace: str) -> Any:
    """Resolve secret references in the spec and validate it."""

    def read(secret_name: str, key: str) -> str:
        return read_secret_value(get_k8s_core_api(), namespace, secret_name, key)

    return kind.config_from_spec(resolve_secret_refs(dict(spec), read))


def _apply_state(
    kind: ResourceKind,
    result: ResourceState,
    patch: kopf.Patch,
    body: kopf.Body,
    namespace: str,
) -> None:
    for key, value in result.to_status().items():
        patch.status[key] = value
    patch.status["schemaVersion"] = kind.schema_version
    if result.secrets:
        write_outputs_secret(get_k8s_core_api(), namespace, body, result.secrets)


def _record_identifier(kind: ResourceKind, patch: kopf.Patch) -> Callable[[str], None]:
    """Callback persisting a new identifier before the state is read back."""

    def record(resource_id: str) -> None:
        patch.status["resourceId"] = resource_id
        patch.status["schemaVersion"] = kind.schema_version

    return record


def _current_resource_id(handler: LifecycleHandler, status: dict[str, Any], patch: kopf.Patch) -> str:
    """Stored identifier, upgraded to the kind's current format."""
    resource_id = status["resourceId"]
    stored_version = status.get("schemaVersion", 0)
    if stored_version < handler.kind.schema_version:
        resource_id = handler.upgrade_resource_id(resource_id, stored_version)
        patch.status["resourceId"] = resource_id
        patch.status["schemaVersion"] = handler.kind.schema_version
    return resource_id


def changed_spec_fields(diff: kopf.Diff) -> set[str]:
    """Top level spec keys touched by a diff."""
    fields: set[str] = set()
    for _operation, field, old, new in diff:
        path = tuple(field) if isinstance(field, (tuple, list)) else (field,)
        if not path or path[0] != "spec":
            continue
        if len(path) > 1:
            fields.add(str(path[1]))
        else:
            # The whole spec was added, removed or replaced
            for value in (old, new):
                if isinstance(value, dict):
                    fields.update(value)
    return fields


def _record_success(kind: ResourceKind, operation: str, start_time: float) -> None:
    RECONCILE_TOTAL.labels(resource=kind.kind, operation=operation, status="success").inc()
    RECONCILE_DURATION.labels(resource=kind.kind, operation=operation).observe(
        time.monotonic() - start_time
    )


def _failure(
    kind: ResourceKind,
    operation: str,
    error: Exception,
    patch: kopf.Patch | None,
    body: kopf.Body,
    namespace: str,
    name: str,
) -> kopf.PermanentError | kopf.TemporaryError:
    """Record a failed handler run and return the kopf error to raise."""
    message = str(error)[:200]
    terminal = isinstance(error, OperatorError) and error.terminal
    logger.error(f"Failed to {operation} {kind.kind} {namespace}/{name}: {error}")

    if patch is not None:
        patch.status["phase"] = Phase.ERROR.value
        set_condition(patch.status, "Ready", "False", "Error", message)

    RECONCILE_TOTAL.labels(
        resource=kind.kind,
        operation=operation,
        status="permanent_error" if terminal else "error",
    ).inc()
    kopf.warn(body, reason=f"{operation.capitalize()}Failed", message=message)

    if terminal:
        return kopf.PermanentError(f"{operation.capitalize()} failed: {error}")
    return kopf.TemporaryError(f"{operation.capitalize()} failed: {error}", delay=60)


def create_resource(
    kind: ResourceKind,
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    namespace: str,
    name: str,
    meta: dict[str, Any],
    body: kopf.Body,
    stopped: Any = None,
    **_: Any,
) -> None:
    """Create (or, with the import annotation, adopt) the Azure resource."""
    logger.info(f"Creating {kind.kind}: {namespace}/{name}")
    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.labels(resource=kind.kind).inc()

    _preserve_status(status, patch)
    patch.status["phase"] = Phase.PROVISIONING.value
    patch.status["observedGeneration"] = meta.get("generation", 1)

    try:
        handler = _lifecycle(kind)
        import_id = (meta.get("annotations") or {}).get(IMPORT_ID_ANNOTATION)
        if import_id:
            logger.info(f"Importing {kind.kind} {namespace}/{name} from {import_id}")
            result = handler.import_existing(import_id, _deadline(Operation.IMPORT, stopped))
            reason = "Imported"
        else:
            config = _load_config(kind, spec, namespace)
            result = None
            if status.get("resourceId"):
                # An earlier attempt wrote the resource and failed afterwards
                resource_id = _current_resource_id(handler, status, patch)
                result = handler.read(resource_id, _deadline(Operation.READ, stopped))
            if result is None:
                result = handler.create(
                    config,
                    _deadline(Operation.CREATE, stopped),
                    on_created=_record_identifier(kind, patch),
                )
            reason = "Created"

        _apply_state(kind, result, patch, body, namespace)
        set_condition(patch.status, "Ready", "True", reason, "")
        patch.status["phase"] = Phase.READY.value
        patch.status["lastSyncTime"] = now_iso()

        _record_success(kind, "create", start_time)
        logger.info(f"Successfully created {kind.kind}: {namespace}/{name}")

    except Exception as e:
        raise _failure(kind, "create", e, patch, body, namespace, name)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=kind.kind).dec()


def update_resource(
    kind: ResourceKind,
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    diff: kopf.Diff,
    namespace: str,
    name: str,
    meta: dict[str, Any],
    body: kopf.Body,
    stopped: Any = None,
    old: dict[str, Any] | None = None,
    **_: Any,
) -> None:
    """Apply spec changes, recreating the resource when an immutable field changed."""
    if not status.get("resourceId"):
        # Never created (or lost), treat as create
        create_resource(kind, spec, status, patch, namespace, name, meta, body, stopped)
        return

    logger.info(f"Updating {kind.kind}: {namespace}/{name}")
    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.labels(resource=kind.kind).inc()

    _preserve_status(status, patch)
    patch.status["phase"] = Phase.PROVISIONING.value
    patch.status["observedGeneration"] = meta.get("generation", 1)

    try:
        handler = _lifecycle(kind)
        resource_id = _current_resource_id(handler, status, patch)
        config = _load_config(kind, spec, namespace)

        old_spec = (old or {}).get("spec") or {}
        recreate = sorted(
            field
            for field in changed_spec_fields(diff)
            if kind.forces_recreate(field, old_spec.get(field), spec.get(field))
        )
        if recreate:
            logger.info(
                f"{kind.kind} {namespace}/{name} requires recreate due to change of {', '.join(recreate)}"
            )
            handler.delete(resource_id, _deadline(Operation.DELETE, stopped))
            patch.status["resourceId"] = None
            result = handler.create(
                config,
                _deadline(Operation.CREATE, stopped),
                on_created=_record_identifier(kind, patch),
            )
            reason = "Recreated"
        elif kind.supports_update:
            result = handler.update(resource_id, config, _deadline(Operation.UPDATE, stopped))
            reason = "Updated"
        else:
            result = handler.read(resource_id, _deadline(Operation.READ, stopped))
            if result is None:
                raise ResourceNotFoundError(
                    f"{kind.display_name} {resource_id!r} no longer exists"
                )
            reason = "Refreshed"

        _apply_state(kind, result, patch, body, namespace)
        set_condition(patch.status, "Ready", "True", reason, "")
        patch.status["phase"] = Phase.READY.value
        patch.status["lastSyncTime"] = now_iso()

        _record_success(kind, "update", start_time)
        logger.info(f"Successfully updated {kind.kind}: {namespace}/{name}")

    except Exception as e:
        raise _failure(kind, "update", e, patch, body, namespace, name)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=kind.kind).dec()


def delete_resource(
    kind: ResourceKind,
    status: dict[str, Any],
    patch: kopf.Patch,
    namespace: str,
    name: str,
    body: kopf.Body,
    stopped: Any = None,
    **_: Any,
) -> None:
    """Delete the Azure resource behind a custom resource."""
    logger.info(f"Deleting {kind.kind}: {namespace}/{name}")

    if not status.get("resourceId"):
        logger.warning(f"No resourceId in status for {namespace}/{name}, nothing to delete")
        return

    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.labels(resource=kind.kind).inc()
    patch.status["phase"] = Phase.DELETING.value

    try:
        handler = _lifecycle(kind)
        resource_id = _current_resource_id(handler, status, patch)
        handler.delete(resource_id, _deadline(Operation.DELETE, stopped))

        _record_success(kind, "delete", start_time)
        logger.info(f"Successfully deleted {kind.kind}: {namespace}/{name}")

    except Exception as e:
        raise _failure(kind, "delete", e, None, body, namespace, name)
    finally:
        RECONCILE_IN_PROGRESS.labels(resource=kind.kind).dec()


def reconcile_resource(
    kind: ResourceKind,
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    namespace: str,
    name: str,
    meta: dict[str, Any],
    body: kopf.Body,
    stopped: Any = None,
    **_: Any,
) -> None:
    """Periodic reconciliation to detect resources removed outside the operator."""
    phase = status.get("phase")
    if phase == Phase.PENDING.value and not status.get("resourceId"):
        logger.info(f"Retrying create of {kind.kind} {namespace}/{name}")
        create_resource(kind, spec, status, patch, namespace, name, meta, body, stopped)
        return

    if phase != Phase.READY.value:
        logger.debug(f"Skipping reconciliation for {namespace}/{name}: phase is {phase}")
        return

    logger.debug(f"Reconciling {kind.kind}: {namespace}/{name}")

    try:
        handler = _lifecycle(kind)
        resource_id = _current_resource_id(handler, status, patch)
        result = handler.read(resource_id, _deadline(Operation.READ, stopped))
        if result is None:
            logger.warning(
                f"{kind.display_name} {resource_id} not found in Azure, clearing state for {namespace}/{name}"
            )
            _preserve_status(status, patch)
            patch.status["phase"] = Phase.PENDING.value
            patch.status["resourceId"] = None
            set_condition(
                patch.status, "Ready", "False", "NotFound", "resource was removed outside the operator"
            )
            return

        _apply_state(kind, result, patch, body, namespace)
        patch.status["lastSyncTime"] = now_iso()

    except Exception:
        logger.exception(f"Reconciliation failed for {kind.kind} {namespace}/{name}")


def register(kind: ResourceKind) -> None:
    """Bind create, update, delete and timer handlers for one kind."""
    resource = (CRD_GROUP, CRD_VERSION, kind.plural)

    @kopf.on.create(*resource)
    def on_create(**kwargs: Any) -> None:
        create_resource(kind, **kwargs)

    @kopf.on.update(*resource)
    def on_update(**kwargs: Any) -> None:
        update_resource(kind, **kwargs)

    @kopf.on.delete(*resource)
    def on_delete(**kwargs: Any) -> None:
        delete_resource(kind, **kwargs)

    @kopf.timer(*resource, interval=300)
    def on_timer(**kwargs: Any) -> None:
        reconcile_resource(kind, **kwargs)


for _kind in KINDS:
    register(_kind)
