"""Kubernetes Secret access for sensitive inputs and outputs.

Sensitive spec values are given as ``<field>SecretRef: {name, key}`` and
resolved here before a spec is validated. Sensitive computed outputs are
written to a ``<cr-name>-outputs`` Secret owned by the custom resource.
"""

import base64
import logging
from collections.abc import Callable, Mapping
from typing import Any

import kopf
from kubernetes.client import ApiException, CoreV1Api

from constants import MANAGED_BY_LABEL, MANAGED_BY_VALUE
from models import ConfigurationError, OperatorError

logger = logging.getLogger(__name__)

SECRET_REF_SUFFIX = "SecretRef"


def outputs_secret_name(cr_name: str) -> str:
    return f"{cr_name}-outputs"


def read_secret_value(core_api: CoreV1Api, namespace: str, name: str, key: str) -> str:
    """Read and decode one key of a Secret."""
    try:
        secret = core_api.read_namespaced_secret(name, namespace)
    except ApiException as e:
        if e.status == 404:
            # May be created later, so not terminal
            raise OperatorError(f"Secret {namespace}/{name} not found") from e
        raise OperatorError(f"Failed to read Secret {namespace}/{name}: {e.reason}") from e

    data = secret.data or {}
    if key not in data:
        raise ConfigurationError(f"Secret {namespace}/{name} has no key {key!r}")
    return base64.b64decode(data[key]).decode("utf-8")


def resolve_secret_refs(value: Any, read: Callable[[str, str], str]) -> Any:
    """Replace every ``<field>SecretRef`` with ``<field>`` set to the secret value.

    Args:
        value: Spec (or part of one) to resolve, not modified
        read: Callable taking (secret name, key) and returning the value
    """
    if isinstance(value, list):
        return [resolve_secret_refs(item, read) for item in value]
    if not isinstance(value, Mapping):
        return value

    resolved: dict[str, Any] = {}
    for key, item in value.items():
        if key.endswith(SECRET_REF_SUFFIX) and len(key) > len(SECRET_REF_SUFFIX):
            if not isinstance(item, Mapping) or not item.get("name") or not item.get("key"):
                raise ConfigurationError(f"spec.{key} must have 'name' and 'key'")
            field = key[: -len(SECRET_REF_SUFFIX)]
            resolved[field] = read(item["name"], item["key"])
        else:
            resolved[key] = resolve_secret_refs(item, read)
    return resolved


def write_outputs_secret(
    core_api: CoreV1Api,
    namespace: str,
    owner: kopf.Body,
    values: dict[str, str],
) -> None:
    """Create or replace the outputs Secret of a custom resource."""
    name = outputs_secret_name(owner["metadata"]["name"])
    secret: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {
            "name": name,
            "labels": {MANAGED_BY_LABEL: MANAGED_BY_VALUE},
        },
        "stringData": dict(values),
    }
    kopf.adopt(secret, owner=owner)

    try:
        core_api.create_namespaced_secret(namespace, secret)
        logger.info("Created outputs Secret %s/%s", namespace, name)
    except ApiException as e:
        if e.status != 409:
            raise
        core_api.replace_namespaced_secret(name, namespace, secret)
        logger.debug("Replaced outputs Secret %s/%s", namespace, name)
