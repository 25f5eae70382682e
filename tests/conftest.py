"""Shared fixtures: fake Azure SDK operation groups and a wired AzureClient."""

import copy
import threading
import time
from types import SimpleNamespace

import pytest
from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError
from azure.mgmt.network.models import (
    ApplicationSecurityGroup,
    NetworkInterface,
    NetworkInterfaceIPConfiguration,
)

from azure_client import AzureClient
from locks import NamedLockRegistry
from polling import Deadline
from ratelimit import RateLimiter

SUBSCRIPTION = "00000000-0000-0000-0000-000000000000"
NETWORK = f"/subscriptions/{SUBSCRIPTION}/resourceGroups/rg1/providers/Microsoft.Network"


def nic_id(name: str) -> str:
    return f"{NETWORK}/networkInterfaces/{name}"


def asg_id(name: str) -> str:
    return f"{NETWORK}/applicationSecurityGroups/{name}"


class FakePoller:
    """Stands in for azure.core.polling.LROPoller.

    Finishes after ``waits_until_done`` calls to ``wait``; with ``done=False``
    it never finishes and each ``wait`` blocks for its full timeout.
    """

    def __init__(self, result=None, done=True, error=None, waits_until_done=0):
        self._result = result
        self._done = done
        self._error = error
        self._waits_until_done = waits_until_done
        self.waits: list[float] = []
        self.awaited = False

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if not self.done():
            time.sleep(timeout or 0)

    def result(self, timeout=None):
        self.awaited = True
        if self._error is not None:
            raise self._error
        return self._result

    def done(self):
        return self._done and len(self.waits) >= self._waits_until_done


class FakeNetworkInterfaces:
    """In-memory network_interfaces operation group.

    ``get`` returns a copy, as the real API does, so a writer that does not
    re-read before writing loses concurrent updates.
    """

    def __init__(self, read_delay: float = 0.0):
        self.nics: dict[tuple[str, str], NetworkInterface] = {}
        self.writes: list[tuple[str, list[list[str]]]] = []
        self.read_delay = read_delay
        self._guard = threading.Lock()

    def add(self, resource_group, name, group_ids, ip_configurations=1):
        self.nics[(resource_group, name)] = NetworkInterface(
            id=f"/subscriptions/{SUBSCRIPTION}/resourceGroups/{resource_group}"
            f"/providers/Microsoft.Network/networkInterfaces/{name}",
            location="westeurope",
            ip_configurations=[
                NetworkInterfaceIPConfiguration(
                    name=f"ipconfig{index}",
                    application_security_groups=[
                        ApplicationSecurityGroup(id=group_id) for group_id in group_ids
                    ],
                )
                for index in range(ip_configurations)
            ],
        )

    def group_ids(self, resource_group, name, ip_configuration=0):
        nic = self.nics[(resource_group, name)]
        groups = nic.ip_configurations[ip_configuration].application_security_groups or []
        return [group.id for group in groups]

    def get(self, resource_group, name):
        with self._guard:
            nic = self.nics.get((resource_group, name))
            if nic is None:
                raise AzureResourceNotFoundError(f"Network interface {name} not found")
            nic = copy.deepcopy(nic)
        if self.read_delay:
            time.sleep(self.read_delay)
        return nic

    def begin_create_or_update(self, resource_group, name, parameters):
        with self._guard:
            self.nics[(resource_group, name)] = copy.deepcopy(parameters)
            self.writes.append(
                (
                    name,
                    [
                        [group.id for group in ip.application_security_groups or []]
                        for ip in parameters.ip_configurations
                    ],
                )
            )
        return FakePoller(result=copy.deepcopy(parameters))


@pytest.fixture
def network_interfaces():
    return FakeNetworkInterfaces()


@pytest.fixture
def make_client():
    """Build an AzureClient around fake management clients."""

    def _make(**clients):
        return AzureClient(
            subscription_id=SUBSCRIPTION,
            credential=object(),
            clients=clients,
            rate_limiter=RateLimiter(max_concurrent=100, requests_per_second=0),
        )

    return _make


@pytest.fixture
def network_client(make_client, network_interfaces):
    return make_client(network=SimpleNamespace(network_interfaces=network_interfaces))


@pytest.fixture
def locks():
    return NamedLockRegistry()


@pytest.fixture
def deadline():
    return Deadline(60)
