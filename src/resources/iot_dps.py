"""IoT Hub Device Provisioning Service."""

import logging
from dataclasses import dataclass
from typing import Any

from azure.mgmt.iothubprovisioningservices import models as dps_models

import schema
from lifecycle import ResourceKind
from models import ConfigurationError, ResourceNotFoundError
from polling import await_completion, wait_for_state
from resource_id import ResourceIdentifier
from utils import enum_value, normalize_location

logger = logging.getLogger(__name__)

SKU_NAMES = ("S1",)
ALLOCATION_POLICIES = ("Hashed", "GeoLatency", "Static")

# Status codes observed while waiting for a delete
STATUS_EXISTS = "200"
STATUS_NOT_FOUND = "404"

# Linked hub settings that cannot change without recreating the service
LINKED_HUB_FIXED_KEYS = ("connectionString", "connectionStringSecretRef", "location")


def linked_hub_placement(hubs: Any) -> list[tuple[Any, ...]]:
    """Connection and location of each linked hub, in order."""
    placement = []
    for hub in hubs or ():
        hub = hub if isinstance(hub, dict) else {}
        values = [hub.get(key) for key in LINKED_HUB_FIXED_KEYS]
        if isinstance(values[-1], str):
            values[-1] = normalize_location(values[-1])
        placement.append(tuple(values))
    return placement


@dataclass(frozen=True)
class LinkedHubConfig:
    connection_string: str
    location: str
    apply_allocation_policy: bool = False
    allocation_weight: int = 0

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "LinkedHubConfig":
        return cls(
            connection_string=schema.require_str(spec, "connectionString"),
            location=normalize_location(schema.require_str(spec, "location")),
            apply_allocation_policy=schema.optional_bool(spec, "applyAllocationPolicy", False),
            allocation_weight=schema.optional_int(spec, "allocationWeight", 0, minimum=0, maximum=1000),
        )


@dataclass(frozen=True)
class IotDpsConfig:
    name: str
    resource_group: str
    location: str
    sku_name: str
    sku_capacity: int
    linked_hubs: tuple[LinkedHubConfig, ...] = ()
    allocation_policy: str = "Hashed"
    tags: dict[str, str] | None = None

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "IotDpsConfig":
        sku = schema.nested(spec, "sku")
        if sku is None:
            raise ConfigurationError("spec.sku is required")
        return cls(
            name=schema.matches(
                schema.require_str(spec, "name"),
                r"[a-zA-Z0-9-]{3,64}",
                "name",
                "must be 3-64 characters of letters, digits and hyphens",
            ),
            resource_group=schema.require_str(spec, "resourceGroupName"),
            location=normalize_location(schema.require_str(spec, "location")),
            sku_name=schema.one_of(sku, "name", SKU_NAMES, required=True),
            sku_capacity=schema.require_int(sku, "capacity", minimum=1, maximum=200),
            linked_hubs=tuple(
                LinkedHubConfig.from_spec(hub) for hub in schema.object_list(spec, "linkedHubs")
            ),
            allocation_policy=schema.one_of(spec, "allocationPolicy", ALLOCATION_POLICIES, "Hashed"),
            tags=schema.string_map(spec, "tags"),
        )


class IotDps(ResourceKind):
    """IoT Hub Device Provisioning Service.

    The delete operation's own poller treats the final 404 as an error, so
    delete is confirmed by refreshing until the service returns 404.
    """

    kind = "AzureIotDpsService"
    plural = "azureiotdpsservices"
    display_name = "IoT Device Provisioning Service"
    config_class = IotDpsConfig
    supports_update = True
    immutable_fields = frozenset({"name", "resourceGroupName", "location"})

    def __init__(self, poll_interval: float = 10.0) -> None:
        self.poll_interval = poll_interval

    def forces_recreate(self, field, old, new):
        if field == "linkedHubs":
            # Allocation settings of a hub update in place
            return linked_hub_placement(old) != linked_hub_placement(new)
        return super().forces_recreate(field, old, new)

    def identity(self, config, subscription_id):
        return ResourceIdentifier.build(
            subscription_id,
            config.resource_group,
            "Microsoft.Devices",
            [("provisioningServices", config.name)],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        # Older identifiers spell the segment ProvisioningServices, which the
        # case-insensitive lookup accepts
        identifier.require("provisioningServices")
        return identifier

    def fetch(self, client, ident, deadline):
        (name,) = ident.require("provisioningServices")
        return client.get_iot_dps(ident.resource_group, name)

    def build_payload(self, config, current):
        hubs = [
            dps_models.IotHubDefinitionDescription(
                connection_string=hub.connection_string,
                location=hub.location,
                apply_allocation_policy=hub.apply_allocation_policy,
                allocation_weight=hub.allocation_weight,
            )
            for hub in config.linked_hubs
        ]
        return dps_models.ProvisioningServiceDescription(
            location=config.location,
            sku=dps_models.IotDpsSkuInfo(name=config.sku_name, capacity=config.sku_capacity),
            properties=dps_models.IotDpsPropertiesDescription(
                iot_hubs=hubs, allocation_policy=config.allocation_policy
            ),
            tags=config.tags,
        )

    def submit(self, client, ident, payload, deadline):
        (name,) = ident.require("provisioningServices")
        poller = client.begin_create_or_update_iot_dps(ident.resource_group, name, payload)
        return await_completion(
            poller, deadline, f"waiting for IoT Device Provisioning Service {name!r} to be created/updated"
        )

    def parse_state(self, remote, ident):
        sku = getattr(remote, "sku", None)
        props = getattr(remote, "properties", None)
        linked_hubs = []
        for hub in getattr(props, "iot_hubs", None) or []:
            # Connection strings come back with the key masked and stay out of status
            linked_hubs.append(
                {
                    "hostname": hub.name,
                    "location": normalize_location(hub.location) if hub.location else None,
                    "applyAllocationPolicy": hub.apply_allocation_policy,
                    "allocationWeight": hub.allocation_weight,
                }
            )
        return {
            "name": remote.name,
            "resourceGroupName": ident.resource_group,
            "location": normalize_location(remote.location) if remote.location else None,
            "sku": {
                "name": enum_value(getattr(sku, "name", None)),
                "capacity": getattr(sku, "capacity", None),
            },
            "linkedHubs": linked_hubs,
            "allocationPolicy": enum_value(getattr(props, "allocation_policy", None)),
            "serviceOperationsHostName": getattr(props, "service_operations_host_name", None),
            "deviceProvisioningHostName": getattr(props, "device_provisioning_host_name", None),
            "idScope": getattr(props, "id_scope", None),
            "tags": dict(remote.tags or {}),
        }

    def remove(self, client, ident, deadline):
        (name,) = ident.require("provisioningServices")
        client.begin_delete_iot_dps(ident.resource_group, name)

    def confirm_deleted(self, client, ident, deadline):
        (name,) = ident.require("provisioningServices")
        logger.debug(
            "Waiting for IoT Device Provisioning Service %s (Resource Group %s) to be deleted",
            name, ident.resource_group,
        )

        def refresh() -> tuple[Any, str]:
            try:
                service = client.get_iot_dps(ident.resource_group, name)
            except ResourceNotFoundError:
                return None, STATUS_NOT_FOUND
            return service, STATUS_EXISTS

        wait_for_state(
            refresh,
            pending={STATUS_EXISTS},
            target={STATUS_NOT_FOUND},
            deadline=deadline,
            poll_interval=self.poll_interval,
            description=f"waiting for IoT Device Provisioning Service {name!r} to be deleted",
        )
