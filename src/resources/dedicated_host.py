"""Dedicated host in a dedicated host group."""

import logging
from dataclasses import dataclass
from typing import Any

from azure.mgmt.compute import models as compute_models

import schema
from lifecycle import ResourceKind
from models import ResourceNotFoundError
from polling import await_completion, wait_for_state
from resource_id import ResourceIdentifier
from utils import enum_value, normalize_location

logger = logging.getLogger(__name__)

SKU_NAMES = (
    "DASv4-Type1",
    "DCSv2-Type1",
    "DDSv4-Type1",
    "DSv3-Type1",
    "DSv3-Type2",
    "DSv3-Type3",
    "DSv4-Type1",
    "EASv4-Type1",
    "EDSv4-Type1",
    "ESv3-Type1",
    "ESv3-Type2",
    "ESv3-Type3",
    "ESv4-Type1",
    "FSv2-Type2",
    "FSv2-Type3",
    "LSv2-Type1",
    "MS-Type1",
    "MSm-Type1",
    "MSmv2-Type1",
    "MSv2-Type1",
    "NVASv4-Type1",
    "NVSv3-Type1",
)

LICENSE_TYPES = ("None", "Windows_Server_Hybrid", "Windows_Server_Perpetual")

# Delete confirmation states
EXISTS = "Exists"
NOT_FOUND = "NotFound"


@dataclass(frozen=True)
class DedicatedHostConfig:
    name: str
    location: str
    dedicated_host_group_id: ResourceIdentifier
    sku_name: str
    platform_fault_domain: int
    auto_replace_on_failure: bool = True
    license_type: str = "None"
    tags: dict[str, str] | None = None

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "DedicatedHostConfig":
        name = schema.matches(
            schema.require_str(spec, "name"),
            r"[A-Za-z0-9](?:[\w.-]{0,78}\w)?",
            "name",
            "must be 1-80 characters of letters, digits, '_', '-' and '.', "
            "starting with a letter or digit and not ending with '-' or '.'",
        )
        return cls(
            name=name,
            location=normalize_location(schema.require_str(spec, "location")),
            dedicated_host_group_id=schema.resource_id(spec, "dedicatedHostGroupId", "hostGroups"),
            sku_name=schema.one_of(spec, "skuName", SKU_NAMES, required=True),
            platform_fault_domain=schema.require_int(spec, "platformFaultDomain", minimum=0),
            auto_replace_on_failure=schema.optional_bool(spec, "autoReplaceOnFailure", True),
            license_type=schema.one_of(spec, "licenseType", LICENSE_TYPES, "None"),
            tags=schema.string_map(spec, "tags"),
        )


class DedicatedHost(ResourceKind):
    """Dedicated host.

    Deleting a host is eventually consistent: Azure may report it as gone
    and then return it again for a while. Delete therefore waits until
    ``delete_confirmations`` consecutive reads return NotFound.
    """

    kind = "AzureDedicatedHost"
    plural = "azurededicatedhosts"
    display_name = "Dedicated Host"
    config_class = DedicatedHostConfig
    supports_update = True
    immutable_fields = frozenset(
        {"name", "location", "dedicatedHostGroupId", "skuName", "platformFaultDomain"}
    )

    def __init__(self, delete_confirmations: int = 20, poll_interval: float = 10.0) -> None:
        self.delete_confirmations = delete_confirmations
        self.poll_interval = poll_interval

    def identity(self, config, subscription_id):
        group_id = config.dedicated_host_group_id
        return ResourceIdentifier.build(
            group_id.subscription_id,
            group_id.resource_group,
            "Microsoft.Compute",
            [("hostGroups", group_id.get("hostGroups")), ("hosts", config.name)],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        identifier.require("hostGroups", "hosts")
        return identifier

    def fetch(self, client, ident, deadline):
        host_group_name, name = ident.require("hostGroups", "hosts")
        # A missing parent group means the host is gone too
        client.get_dedicated_host_group(ident.resource_group, host_group_name)
        return client.get_dedicated_host(ident.resource_group, host_group_name, name)

    def build_payload(self, config, current):
        return compute_models.DedicatedHost(
            location=config.location,
            sku=compute_models.Sku(name=config.sku_name),
            platform_fault_domain=config.platform_fault_domain,
            auto_replace_on_failure=config.auto_replace_on_failure,
            license_type=config.license_type,
            tags=config.tags,
        )

    def submit(self, client, ident, payload, deadline):
        host_group_name, name = ident.require("hostGroups", "hosts")
        poller = client.begin_create_or_update_dedicated_host(
            ident.resource_group, host_group_name, name, payload
        )
        return await_completion(
            poller, deadline, f"waiting for creation of Dedicated Host {name!r} (Host Group {host_group_name!r})"
        )

    def build_update_payload(self, config, current):
        return compute_models.DedicatedHostUpdate(
            auto_replace_on_failure=config.auto_replace_on_failure,
            license_type=config.license_type,
            tags=config.tags,
        )

    def submit_update(self, client, ident, payload, deadline):
        host_group_name, name = ident.require("hostGroups", "hosts")
        poller = client.begin_update_dedicated_host(
            ident.resource_group, host_group_name, name, payload
        )
        return await_completion(
            poller, deadline, f"waiting for update of Dedicated Host {name!r} (Host Group {host_group_name!r})"
        )

    def parse_state(self, remote, ident):
        host_group_name, _ = ident.require("hostGroups", "hosts")
        group_id = ResourceIdentifier.build(
            ident.subscription_id, ident.resource_group, ident.provider, [("hostGroups", host_group_name)]
        )
        sku = getattr(remote, "sku", None)
        return {
            "name": remote.name,
            "location": normalize_location(remote.location) if remote.location else None,
            "dedicatedHostGroupId": str(group_id),
            "skuName": getattr(sku, "name", None),
            "platformFaultDomain": remote.platform_fault_domain or 0,
            "autoReplaceOnFailure": remote.auto_replace_on_failure,
            "licenseType": enum_value(remote.license_type),
            "tags": dict(remote.tags or {}),
        }

    def remove(self, client, ident, deadline):
        host_group_name, name = ident.require("hostGroups", "hosts")
        poller = client.begin_delete_dedicated_host(ident.resource_group, host_group_name, name)
        try:
            await_completion(
                poller, deadline, f"waiting for deletion of Dedicated Host {name!r} (Host Group {host_group_name!r})"
            )
        except ResourceNotFoundError:
            pass

    def confirm_deleted(self, client, ident, deadline):
        host_group_name, name = ident.require("hostGroups", "hosts")
        logger.debug(
            "Waiting for Dedicated Host %s (Host Group %s / Resource Group %s) to disappear",
            name, host_group_name, ident.resource_group,
        )

        def refresh() -> tuple[Any, str]:
            try:
                host = client.get_dedicated_host(ident.resource_group, host_group_name, name)
            except ResourceNotFoundError:
                return NOT_FOUND, NOT_FOUND
            return host, EXISTS

        wait_for_state(
            refresh,
            pending={EXISTS},
            target={NOT_FOUND},
            deadline=deadline,
            poll_interval=self.poll_interval,
            continuous_target_occurence=self.delete_confirmations,
            description=f"waiting for Dedicated Host {name!r} (Host Group {host_group_name!r}) to be deleted",
        )
