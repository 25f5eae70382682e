"""Disk access endpoint."""

from dataclasses import dataclass
from typing import Any

from azure.mgmt.compute import models as compute_models

import schema
from lifecycle import ResourceKind
from polling import await_completion
from resource_id import ResourceIdentifier
from utils import normalize_location


@dataclass(frozen=True)
class DiskAccessConfig:
    name: str
    resource_group: str
    location: str
    tags: dict[str, str] | None = None

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "DiskAccessConfig":
        return cls(
            name=schema.require_str(spec, "name"),
            resource_group=schema.require_str(spec, "resourceGroupName"),
            location=normalize_location(schema.require_str(spec, "location")),
            tags=schema.string_map(spec, "tags"),
        )


class DiskAccess(ResourceKind):
    kind = "AzureDiskAccess"
    plural = "azurediskaccesses"
    display_name = "Disk Access"
    config_class = DiskAccessConfig
    supports_update = True
    immutable_fields = frozenset({"name", "resourceGroupName", "location"})

    def identity(self, config, subscription_id):
        return ResourceIdentifier.build(
            subscription_id,
            config.resource_group,
            "Microsoft.Compute",
            [("diskAccesses", config.name)],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        identifier.require("diskAccesses")
        return identifier

    def fetch(self, client, ident, deadline):
        (name,) = ident.require("diskAccesses")
        return client.get_disk_access(ident.resource_group, name)

    def build_payload(self, config, current):
        return compute_models.DiskAccess(location=config.location, tags=config.tags)

    def submit(self, client, ident, payload, deadline):
        (name,) = ident.require("diskAccesses")
        poller = client.begin_create_or_update_disk_access(ident.resource_group, name, payload)
        return await_completion(
            poller, deadline, f"waiting for create/update of Disk Access {name!r}"
        )

    def build_update_payload(self, config, current):
        # Location is immutable, keep what Azure reports
        return compute_models.DiskAccess(location=current.location, tags=config.tags)

    def parse_state(self, remote, ident):
        return {
            "name": remote.name,
            "resourceGroupName": ident.resource_group,
            "location": normalize_location(remote.location) if remote.location else None,
            "tags": dict(remote.tags or {}),
        }

    def remove(self, client, ident, deadline):
        (name,) = ident.require("diskAccesses")
        poller = client.begin_delete_disk_access(ident.resource_group, name)
        await_completion(poller, deadline, f"waiting for deletion of Disk Access {name!r}")
