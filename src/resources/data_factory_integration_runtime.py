"""Data Factory managed (Azure) integration runtime."""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any

from azure.mgmt.datafactory import models as datafactory_models

import schema
from lifecycle import ResourceKind
from models import AzureAPIError, ConfigurationError
from resource_id import ResourceIdentifier
from utils import enum_value, normalize_location

logger = logging.getLogger(__name__)

COMPUTE_TYPES = ("General", "ComputeOptimized", "MemoryOptimized")
CORE_COUNTS = (8, 16, 32, 48, 80, 144, 272)
MANAGED_RUNTIME_TYPE = "Managed"


@dataclass(frozen=True)
class IntegrationRuntimeConfig:
    name: str
    data_factory_name: str
    resource_group: str
    location: str
    description: str | None = None
    compute_type: str = "General"
    core_count: int = 8
    time_to_live_min: int = 0
    virtual_network_enabled: bool = False
    # Resolved from the factory before writing
    managed_virtual_network_name: str | None = None

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "IntegrationRuntimeConfig":
        name = schema.matches(
            schema.require_str(spec, "name"),
            r"(?=.{3,})[a-zA-Z0-9]+(?:-[a-zA-Z0-9]+)*",
            "name",
            "minimum 3 characters, must start and end with a number or a letter, "
            "may only consist of letters, numbers and dashes and no consecutive dashes",
        )
        return cls(
            name=name,
            data_factory_name=schema.require_str(spec, "dataFactoryName"),
            resource_group=schema.require_str(spec, "resourceGroupName"),
            location=normalize_location(schema.require_str(spec, "location")),
            description=schema.optional_str(spec, "description"),
            compute_type=schema.one_of(spec, "computeType", COMPUTE_TYPES, "General"),
            core_count=schema.one_of(spec, "coreCount", CORE_COUNTS, 8),
            time_to_live_min=schema.optional_int(spec, "timeToLiveMin", 0, minimum=0),
            virtual_network_enabled=schema.optional_bool(spec, "virtualNetworkEnabled", False),
        )


class DataFactoryIntegrationRuntime(ResourceKind):
    kind = "AzureDataFactoryIntegrationRuntime"
    plural = "azuredatafactoryintegrationruntimes"
    display_name = "Data Factory Azure Integration Runtime"
    config_class = IntegrationRuntimeConfig
    supports_update = True
    immutable_fields = frozenset(
        {"name", "dataFactoryName", "resourceGroupName", "virtualNetworkEnabled"}
    )

    def identity(self, config, subscription_id):
        return ResourceIdentifier.build(
            subscription_id,
            config.resource_group,
            "Microsoft.DataFactory",
            [("factories", config.data_factory_name), ("integrationruntimes", config.name)],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        identifier.require("factories", "integrationruntimes")
        return identifier

    def fetch(self, client, ident, deadline):
        factory_name, name = ident.require("factories", "integrationruntimes")
        return client.get_integration_runtime(ident.resource_group, factory_name, name)

    def prepare(self, client, ident, config, deadline):
        if not config.virtual_network_enabled:
            return config

        factory_name, _ = ident.require("factories", "integrationruntimes")
        networks = client.list_managed_virtual_networks(ident.resource_group, factory_name)
        if not networks or not networks[0].name:
            raise ConfigurationError(
                "virtual network feature for azure integration runtime is only available "
                f"after managed virtual network for Data Factory {factory_name!r} is enabled"
            )
        logger.debug("Using managed virtual network %s of factory %s", networks[0].name, factory_name)
        return dataclasses.replace(config, managed_virtual_network_name=networks[0].name)

    def build_payload(self, config, current):
        managed_virtual_network = None
        if config.managed_virtual_network_name:
            managed_virtual_network = datafactory_models.ManagedVirtualNetworkReference(
                type="ManagedVirtualNetworkReference",
                reference_name=config.managed_virtual_network_name,
            )
        runtime = datafactory_models.ManagedIntegrationRuntime(
            description=config.description,
            compute_properties=datafactory_models.IntegrationRuntimeComputeProperties(
                location=config.location,
                data_flow_properties=datafactory_models.IntegrationRuntimeDataFlowProperties(
                    compute_type=config.compute_type,
                    core_count=config.core_count,
                    time_to_live=config.time_to_live_min,
                ),
            ),
            managed_virtual_network=managed_virtual_network,
        )
        return datafactory_models.IntegrationRuntimeResource(properties=runtime)

    def submit(self, client, ident, payload, deadline):
        factory_name, name = ident.require("factories", "integrationruntimes")
        return client.create_or_update_integration_runtime(
            ident.resource_group, factory_name, name, payload
        )

    def parse_state(self, remote, ident):
        factory_name, name = ident.require("factories", "integrationruntimes")
        runtime = getattr(remote, "properties", None)
        if getattr(runtime, "type", None) != MANAGED_RUNTIME_TYPE:
            raise AzureAPIError(
                f"Integration Runtime {name!r} (Data Factory {factory_name!r}) "
                "is not an Azure (managed) integration runtime"
            )

        managed_virtual_network = getattr(runtime, "managed_virtual_network", None)
        compute = getattr(runtime, "compute_properties", None)
        data_flow = getattr(compute, "data_flow_properties", None)
        return {
            "name": name,
            "dataFactoryName": factory_name,
            "resourceGroupName": ident.resource_group,
            "description": runtime.description,
            "virtualNetworkEnabled": bool(getattr(managed_virtual_network, "reference_name", None)),
            "location": getattr(compute, "location", None),
            "computeType": enum_value(getattr(data_flow, "compute_type", None)),
            "coreCount": getattr(data_flow, "core_count", None),
            "timeToLiveMin": getattr(data_flow, "time_to_live", None),
        }

    def remove(self, client, ident, deadline):
        factory_name, name = ident.require("factories", "integrationruntimes")
        client.delete_integration_runtime(ident.resource_group, factory_name, name)
