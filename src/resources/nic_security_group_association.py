"""Network interface <-> application security group association.

The association has no Azure identity of its own: it is an entry in the
application security group list of every IP configuration of a network
interface. Creating or deleting it rewrites the whole network interface,
so both hold the network interface's named lock.
"""

import logging
from dataclasses import dataclass
from typing import Any

from azure.mgmt.network.models import ApplicationSecurityGroup

import schema
from azure_client import AzureClient
from constants import COMPOSITE_ID_SEPARATOR
from lifecycle import ResourceKind
from models import AzureAPIError, ResourceNotFoundError
from polling import Deadline, await_completion
from resource_id import ResourceIdentifier, join_composite, split_composite

logger = logging.getLogger(__name__)

NETWORK_INTERFACE_LOCK = "networkInterface"


@dataclass(frozen=True)
class NicSecurityGroupAssociationConfig:
    network_interface_id: ResourceIdentifier
    application_security_group_id: ResourceIdentifier

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "NicSecurityGroupAssociationConfig":
        return cls(
            network_interface_id=schema.resource_id(spec, "networkInterfaceId", "networkInterfaces"),
            application_security_group_id=schema.resource_id(
                spec, "applicationSecurityGroupId", "applicationSecurityGroups"
            ),
        )


def security_group_ids(nic: Any) -> list[str]:
    """Union of the application security group IDs over all IP configurations."""
    ids: list[str] = []
    seen: set[str] = set()
    for ip_configuration in nic.ip_configurations or []:
        for group in ip_configuration.application_security_groups or []:
            if group.id and group.id.lower() not in seen:
                seen.add(group.id.lower())
                ids.append(group.id)
    return ids


def set_security_group_ids(nic: Any, ids: list[str]) -> None:
    """Set the same application security group list on every IP configuration."""
    for ip_configuration in nic.ip_configurations:
        ip_configuration.application_security_groups = [
            ApplicationSecurityGroup(id=group_id) for group_id in ids
        ]


def _contains(ids: list[str], group_id: str) -> bool:
    return group_id.lower() in (i.lower() for i in ids)


def upgrade_v0_identifier(raw: str) -> str:
    """Drop the IP configuration segment from a v0 association identifier.

    v0: {nicId}/ipConfigurations/{name}|{asgId}
    v1: {nicId}|{asgId}
    """
    parts = raw.split(COMPOSITE_ID_SEPARATOR)
    if len(parts) != 2:
        return raw
    nic_id, asg_id = parts
    marker = nic_id.lower().find("/ipconfigurations/")
    if marker != -1:
        nic_id = nic_id[:marker]
    return join_composite(nic_id, asg_id)


class NicSecurityGroupAssociation(ResourceKind):
    kind = "AzureNetworkInterfaceSecurityGroupAssociation"
    plural = "azurenicsecuritygroupassociations"
    display_name = "Network Interface <-> Application Security Group Association"
    config_class = NicSecurityGroupAssociationConfig
    immutable_fields = frozenset({"networkInterfaceId", "applicationSecurityGroupId"})
    schema_version = 1
    lock_type = NETWORK_INTERFACE_LOCK

    def identity(self, config, subscription_id):
        return config.network_interface_id, config.application_security_group_id

    def parse_id(self, raw):
        nic_id, asg_id = split_composite(raw)
        nic_id.require("networkInterfaces")
        return nic_id, asg_id

    def format_id(self, ident):
        return join_composite(*ident)

    def describe(self, ident):
        nic_id, _ = ident
        return nic_id.get("networkInterfaces") or nic_id.name, nic_id.resource_group

    def lock_key(self, ident):
        nic_id, _ = ident
        return nic_id.get("networkInterfaces")

    def _get_nic(self, client: AzureClient, nic_id: ResourceIdentifier) -> Any:
        name = nic_id.get("networkInterfaces")
        nic = client.get_network_interface(nic_id.resource_group, name)
        if nic.ip_configurations is None:
            raise AzureAPIError(
                f"`properties.ipConfigurations` was nil for Network Interface {name!r} "
                f"(Resource Group {nic_id.resource_group!r})"
            )
        return nic

    def fetch(self, client, ident, deadline):
        nic_id, asg_id = ident
        nic = self._get_nic(client, nic_id)
        if not _contains(security_group_ids(nic), str(asg_id)):
            raise ResourceNotFoundError(
                f"Application Security Group {str(asg_id)!r} is not associated "
                f"with Network Interface {nic_id.name!r}"
            )
        return nic

    def load_for_write(self, client, ident, config, deadline):
        nic_id, _ = ident
        return self._get_nic(client, nic_id)

    def build_payload(self, config, current):
        ids = security_group_ids(current)
        group_id = str(config.application_security_group_id)
        if not _contains(ids, group_id):
            ids.append(group_id)
        set_security_group_ids(current, ids)
        return current

    def submit(self, client, ident, payload, deadline):
        nic_id, _ = ident
        name = nic_id.get("networkInterfaces")
        poller = client.begin_create_or_update_network_interface(
            nic_id.resource_group, name, payload
        )
        return await_completion(
            poller, deadline, f"waiting for Network Interface {name!r} to be updated"
        )

    def resource_id_for(self, ident, result):
        return self.format_id(ident)

    def parse_state(self, remote, ident):
        nic_id, asg_id = ident
        return {
            "networkInterfaceId": remote.id or str(nic_id),
            "applicationSecurityGroupId": str(asg_id),
        }

    def remove(self, client, ident, deadline):
        nic_id, asg_id = ident
        nic = self._get_nic(client, nic_id)
        ids = security_group_ids(nic)
        group_id = str(asg_id).lower()
        if not _contains(ids, group_id):
            raise ResourceNotFoundError(
                f"Application Security Group {str(asg_id)!r} is not associated "
                f"with Network Interface {nic_id.name!r}"
            )

        remaining = [i for i in ids if i.lower() != group_id]
        logger.info(
            "Removing application security group %s from network interface %s",
            asg_id, nic_id.name,
        )
        set_security_group_ids(nic, remaining)
        self.submit(client, ident, nic, deadline)

    def state_upgraders(self):
        return {0: upgrade_v0_identifier}
