"""ExpressRoute circuit authorization."""

from dataclasses import dataclass
from typing import Any

from azure.mgmt.network import models as network_models

import schema
from lifecycle import ResourceKind
from models import ResourceNotFoundError
from polling import await_completion
from resource_id import ResourceIdentifier
from utils import enum_value

EXPRESS_ROUTE_CIRCUIT_LOCK = "expressRouteCircuit"


@dataclass(frozen=True)
class ExpressRouteCircuitAuthorizationConfig:
    name: str
    resource_group: str
    express_route_circuit_name: str

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "ExpressRouteCircuitAuthorizationConfig":
        return cls(
            name=schema.require_str(spec, "name"),
            resource_group=schema.require_str(spec, "resourceGroupName"),
            express_route_circuit_name=schema.require_str(spec, "expressRouteCircuitName"),
        )


class ExpressRouteCircuitAuthorization(ResourceKind):
    kind = "AzureExpressRouteCircuitAuthorization"
    plural = "azureexpressroutecircuitauthorizations"
    display_name = "Express Route Circuit Authorization"
    config_class = ExpressRouteCircuitAuthorizationConfig
    immutable_fields = frozenset({"name", "resourceGroupName", "expressRouteCircuitName"})
    lock_type = EXPRESS_ROUTE_CIRCUIT_LOCK

    def identity(self, config, subscription_id):
        return ResourceIdentifier.build(
            subscription_id,
            config.resource_group,
            "Microsoft.Network",
            [
                ("expressRouteCircuits", config.express_route_circuit_name),
                ("authorizations", config.name),
            ],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        identifier.require("expressRouteCircuits", "authorizations")
        return identifier

    def lock_key(self, ident):
        return ident.get("expressRouteCircuits")

    def fetch(self, client, ident, deadline):
        circuit_name, name = ident.require("expressRouteCircuits", "authorizations")
        return client.get_express_route_circuit_authorization(
            ident.resource_group, circuit_name, name
        )

    def build_payload(self, config, current):
        # Authorizations carry no settable properties
        return network_models.ExpressRouteCircuitAuthorization()

    def submit(self, client, ident, payload, deadline):
        circuit_name, name = ident.require("expressRouteCircuits", "authorizations")
        poller = client.begin_create_or_update_express_route_circuit_authorization(
            ident.resource_group, circuit_name, name, payload
        )
        return await_completion(
            poller,
            deadline,
            f"waiting for Express Route Circuit Authorization {name!r} "
            f"(Circuit {circuit_name!r}) to finish creating",
        )

    def parse_state(self, remote, ident):
        circuit_name, name = ident.require("expressRouteCircuits", "authorizations")
        return {
            "name": name,
            "resourceGroupName": ident.resource_group,
            "expressRouteCircuitName": circuit_name,
            "authorizationUseStatus": enum_value(getattr(remote, "authorization_use_status", None)),
        }

    def secret_outputs(self, remote):
        key = getattr(remote, "authorization_key", None)
        return {"authorizationKey": key} if key else {}

    def remove(self, client, ident, deadline):
        circuit_name, name = ident.require("expressRouteCircuits", "authorizations")
        poller = client.begin_delete_express_route_circuit_authorization(
            ident.resource_group, circuit_name, name
        )
        try:
            await_completion(
                poller,
                deadline,
                f"waiting for Express Route Circuit Authorization {name!r} "
                f"(Circuit {circuit_name!r}) to be deleted",
            )
        except ResourceNotFoundError:
            pass
