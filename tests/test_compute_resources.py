"""Tests for the dedicated host and disk access kinds."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from azure_client import AzureClient
from conftest import SUBSCRIPTION, FakePoller
from lifecycle import LifecycleHandler
from locks import NamedLockRegistry
from models import ConfigurationError, ImportCollisionError, ResourceNotFoundError
from polling import Deadline
from resources.dedicated_host import DedicatedHost, DedicatedHostConfig
from resources.disk_access import DiskAccess, DiskAccessConfig

COMPUTE = f"/subscriptions/{SUBSCRIPTION}/resourceGroups/rg1/providers/Microsoft.Compute"
HOST_GROUP_ID = f"{COMPUTE}/hostGroups/group1"
HOST_ID = f"{HOST_GROUP_ID}/hosts/host1"
DISK_ACCESS_ID = f"{COMPUTE}/diskAccesses/access1"


def _client():
    client = MagicMock(spec=AzureClient)
    client.subscription_id = SUBSCRIPTION
    return client


def _host_spec(**overrides):
    spec = {
        "name": "host1",
        "location": "West Europe",
        "dedicatedHostGroupId": HOST_GROUP_ID,
        "skuName": "DSv3-Type1",
        "platformFaultDomain": 1,
    }
    spec.update(overrides)
    return spec


def _remote_host(**overrides):
    values = dict(
        id=HOST_ID,
        name="host1",
        location="westeurope",
        sku=SimpleNamespace(name="DSv3-Type1"),
        platform_fault_domain=1,
        auto_replace_on_failure=True,
        license_type="None",
        tags={},
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _not_found():
    return ResourceNotFoundError("retrieving Dedicated Host 'host1': not found")


class TestDedicatedHostConfig:
    """Tests for DedicatedHostConfig.from_spec."""

    def test_defaults(self):
        config = DedicatedHostConfig.from_spec(_host_spec())

        assert config.location == "westeurope"
        assert config.auto_replace_on_failure is True
        assert config.license_type == "None"
        assert config.dedicated_host_group_id.get("hostGroups") == "group1"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "-host"},
            {"name": "host."},
            {"skuName": "XL-Type9"},
            {"platformFaultDomain": -1},
            {"platformFaultDomain": "1"},
            {"licenseType": "Linux"},
            {"dedicatedHostGroupId": f"{COMPUTE}/diskAccesses/access1"},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            DedicatedHostConfig.from_spec(_host_spec(**overrides))

    def test_missing_fault_domain(self):
        spec = _host_spec()
        del spec["platformFaultDomain"]

        with pytest.raises(ConfigurationError, match="spec.platformFaultDomain is required"):
            DedicatedHostConfig.from_spec(spec)


class TestDedicatedHost:
    """Tests for the DedicatedHost kind."""

    def test_create(self):
        client = _client()
        client.get_dedicated_host.side_effect = [_not_found(), _remote_host()]
        client.begin_create_or_update_dedicated_host.return_value = FakePoller(result=_remote_host())
        handler = LifecycleHandler(DedicatedHost(), client, NamedLockRegistry())

        state = handler.create(DedicatedHostConfig.from_spec(_host_spec()), Deadline(60))

        assert state.resource_id == HOST_ID
        assert state.fields["dedicatedHostGroupId"] == HOST_GROUP_ID
        assert state.fields["skuName"] == "DSv3-Type1"
        _, _, _, payload = client.begin_create_or_update_dedicated_host.call_args.args
        assert payload.sku.name == "DSv3-Type1"
        assert payload.platform_fault_domain == 1

    def test_create_existing_is_collision(self):
        client = _client()
        client.get_dedicated_host.return_value = _remote_host()
        handler = LifecycleHandler(DedicatedHost(), client, NamedLockRegistry())

        with pytest.raises(ImportCollisionError):
            handler.create(DedicatedHostConfig.from_spec(_host_spec()), Deadline(60))
        client.begin_create_or_update_dedicated_host.assert_not_called()

    def test_missing_group_reads_as_gone(self):
        client = _client()
        client.get_dedicated_host_group.side_effect = ResourceNotFoundError("group not found")
        handler = LifecycleHandler(DedicatedHost(), client, NamedLockRegistry())

        assert handler.read(HOST_ID, Deadline(60)) is None
        client.get_dedicated_host.assert_not_called()

    def test_update_patches_mutable_fields(self):
        client = _client()
        client.get_dedicated_host.return_value = _remote_host()
        client.begin_update_dedicated_host.return_value = FakePoller(result=_remote_host())
        handler = LifecycleHandler(DedicatedHost(), client, NamedLockRegistry())
        config = DedicatedHostConfig.from_spec(
            _host_spec(autoReplaceOnFailure=False, tags={"env": "prod"})
        )

        handler.update(HOST_ID, config, Deadline(60))

        _, _, _, payload = client.begin_update_dedicated_host.call_args.args
        assert payload.auto_replace_on_failure is False
        assert payload.tags == {"env": "prod"}

    def test_delete_waits_for_consecutive_not_found(self):
        client = _client()
        client.begin_delete_dedicated_host.return_value = FakePoller()
        client.get_dedicated_host.side_effect = [
            _remote_host(),
            _not_found(),
            _remote_host(),
            _not_found(),
            _not_found(),
            _not_found(),
        ]
        kind = DedicatedHost(delete_confirmations=3, poll_interval=0)
        handler = LifecycleHandler(kind, client, NamedLockRegistry())

        handler.delete(HOST_ID, Deadline(60))

        assert client.get_dedicated_host.call_count == 6

    def test_delete_of_missing_host(self):
        client = _client()
        client.begin_delete_dedicated_host.side_effect = _not_found()
        handler = LifecycleHandler(DedicatedHost(), client, NamedLockRegistry())

        handler.delete(HOST_ID, Deadline(60))

        client.get_dedicated_host.assert_not_called()


class TestDiskAccess:
    """Tests for the DiskAccess kind."""

    def _remote(self, **overrides):
        values = dict(id=DISK_ACCESS_ID, name="access1", location="westeurope", tags={"a": "b"})
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_create(self):
        client = _client()
        client.get_disk_access.side_effect = [ResourceNotFoundError("not found"), self._remote()]
        client.begin_create_or_update_disk_access.return_value = FakePoller(result=self._remote())
        handler = LifecycleHandler(DiskAccess(), client, NamedLockRegistry())
        config = DiskAccessConfig.from_spec(
            {"name": "access1", "resourceGroupName": "rg1", "location": "West Europe", "tags": {"a": "b"}}
        )

        state = handler.create(config, Deadline(60))

        assert state.resource_id == DISK_ACCESS_ID
        assert state.fields == {
            "name": "access1",
            "resourceGroupName": "rg1",
            "location": "westeurope",
            "tags": {"a": "b"},
        }

    def test_update_keeps_remote_location(self):
        client = _client()
        client.get_disk_access.return_value = self._remote(location="northeurope")
        client.begin_create_or_update_disk_access.return_value = FakePoller()
        handler = LifecycleHandler(DiskAccess(), client, NamedLockRegistry())
        config = DiskAccessConfig.from_spec(
            {"name": "access1", "resourceGroupName": "rg1", "location": "westeurope", "tags": {"c": "d"}}
        )

        handler.update(DISK_ACCESS_ID, config, Deadline(60))

        _, _, payload = client.begin_create_or_update_disk_access.call_args.args
        assert payload.location == "northeurope"
        assert payload.tags == {"c": "d"}

    def test_tags_must_be_strings(self):
        with pytest.raises(ConfigurationError, match="spec.tags"):
            DiskAccessConfig.from_spec(
                {"name": "access1", "resourceGroupName": "rg1", "location": "westeurope", "tags": {"a": 1}}
            )
