"""Automation DSC node configuration."""

from dataclasses import dataclass
from typing import Any

from azure.mgmt.automation import models as automation_models

import schema
from lifecycle import ResourceKind
from polling import await_completion
from resource_id import ResourceIdentifier


def configuration_name(node_configuration_name: str) -> str:
    """DSC configuration a node configuration belongs to.

    webserver.prod and webserver.local both belong to webserver.
    """
    return node_configuration_name.split(".")[0]


@dataclass(frozen=True)
class DscNodeConfigurationConfig:
    name: str
    resource_group: str
    automation_account_name: str
    content_embedded: str

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "DscNodeConfigurationConfig":
        return cls(
            name=schema.require_str(spec, "name"),
            resource_group=schema.require_str(spec, "resourceGroupName"),
            automation_account_name=schema.require_str(spec, "automationAccountName"),
            content_embedded=schema.require_str(spec, "contentEmbedded"),
        )


class AutomationDscNodeConfiguration(ResourceKind):
    kind = "AzureAutomationDscNodeConfiguration"
    plural = "azureautomationdscnodeconfigurations"
    display_name = "Automation DSC Node Configuration"
    config_class = DscNodeConfigurationConfig
    supports_update = True
    immutable_fields = frozenset({"name", "resourceGroupName", "automationAccountName"})

    def identity(self, config, subscription_id):
        return ResourceIdentifier.build(
            subscription_id,
            config.resource_group,
            "Microsoft.Automation",
            [("automationAccounts", config.automation_account_name), ("nodeConfigurations", config.name)],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        identifier.require("automationAccounts", "nodeConfigurations")
        return identifier

    def fetch(self, client, ident, deadline):
        account_name, name = ident.require("automationAccounts", "nodeConfigurations")
        return client.get_dsc_node_configuration(ident.resource_group, account_name, name)

    def build_payload(self, config, current):
        return automation_models.DscNodeConfigurationCreateOrUpdateParameters(
            name=config.name,
            source=automation_models.ContentSource(
                type="embeddedContent", value=config.content_embedded
            ),
            configuration=automation_models.DscConfigurationAssociationProperty(
                name=configuration_name(config.name)
            ),
        )

    def submit(self, client, ident, payload, deadline):
        account_name, name = ident.require("automationAccounts", "nodeConfigurations")
        poller = client.begin_create_or_update_dsc_node_configuration(
            ident.resource_group, account_name, name, payload
        )
        return await_completion(
            poller, deadline, f"waiting for Automation DSC Node Configuration {name!r} to be written"
        )

    def parse_state(self, remote, ident):
        account_name, _ = ident.require("automationAccounts", "nodeConfigurations")
        # The embedded content is write-only and never returned by the API
        return {
            "name": remote.name,
            "resourceGroupName": ident.resource_group,
            "automationAccountName": account_name,
            "configurationName": getattr(remote.configuration, "name", None),
        }

    def remove(self, client, ident, deadline):
        account_name, name = ident.require("automationAccounts", "nodeConfigurations")
        client.delete_dsc_node_configuration(ident.resource_group, account_name, name)
