"""Azure SDK wrapper with rate limiting, metrics and error translation."""

import logging
import os
import time
from collections.abc import Callable
from typing import Any, TypeVar

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.mgmt.apimanagement import ApiManagementClient
from azure.mgmt.automation import AutomationClient
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.datafactory import DataFactoryManagementClient
from azure.mgmt.iothubprovisioningservices import IotDpsClient
from azure.mgmt.network import NetworkManagementClient

from metrics import AZURE_API_CALLS, AZURE_API_DURATION
from models import AzureAPIError, OperatorError, ResourceNotFoundError
from ratelimit import RateLimiter, get_rate_limiter, retry_after_seconds

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Management client class per service name
_CLIENT_FACTORIES: dict[str, Callable[..., Any]] = {
    "network": NetworkManagementClient,
    "compute": ComputeManagementClient,
    "apimanagement": ApiManagementClient,
    "datafactory": DataFactoryManagementClient,
    "automation": AutomationClient,
    "iotdps": IotDpsClient,
}


def error_status(exc: AzureError) -> int | None:
    """HTTP status of a failed call, if the SDK recorded one."""
    return getattr(exc, "status_code", None)


def translate_error(exc: AzureError, description: str) -> OperatorError:
    """Map an Azure SDK exception onto the operator's error taxonomy."""
    status_code = error_status(exc)
    if isinstance(exc, AzureResourceNotFoundError) or status_code == 404:
        return ResourceNotFoundError(f"{description}: not found")
    return AzureAPIError(f"{description}: {exc}", status_code=status_code)


class AzureClient:
    """Wrapper around the Azure management SDKs with convenience methods."""

    def __init__(
        self,
        subscription_id: str | None = None,
        credential: TokenCredential | None = None,
        clients: dict[str, Any] | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the Azure client.

        Args:
            subscription_id: Subscription to manage (default: AZURE_SUBSCRIPTION_ID env)
            credential: Token credential (default: DefaultAzureCredential)
            clients: Pre-built management clients keyed by service name
            rate_limiter: Rate limiter (default: the shared global limiter)
        """
        self.subscription_id = subscription_id or os.environ.get("AZURE_SUBSCRIPTION_ID", "")
        self._credential = credential
        self._clients: dict[str, Any] = dict(clients or {})
        self._rate_limiter = rate_limiter

    @property
    def credential(self) -> TokenCredential:
        """Get or create the Azure credential."""
        if self._credential is None:
            logger.info("Authenticating to Azure with DefaultAzureCredential")
            self._credential = DefaultAzureCredential()
        return self._credential

    @property
    def rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is None:
            self._rate_limiter = get_rate_limiter()
        return self._rate_limiter

    def service(self, name: str) -> Any:
        """Get or create the management client for a service."""
        if name not in self._clients:
            if not self.subscription_id:
                raise AzureAPIError("AZURE_SUBSCRIPTION_ID is not set")
            logger.info("Creating %s management client for subscription %s", name, self.subscription_id)
            self._clients[name] = _CLIENT_FACTORIES[name](self.credential, self.subscription_id)
        return self._clients[name]

    def close(self) -> None:
        """Close all management clients."""
        for name, client in self._clients.items():
            close = getattr(client, "close", None)
            if close is not None:
                logger.debug("Closing %s management client", name)
                close()
        self._clients = {}

    def _call(
        self,
        service: str,
        operation: str,
        description: str,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run one API call under the rate limiter, recording metrics."""
        start = time.monotonic()
        status = "success"
        try:
            with self.rate_limiter.acquire():
                return func(*args, **kwargs)
        except AzureError as e:
            error = translate_error(e, description)
            if error_status(e) == 429:
                response = getattr(e, "response", None)
                self.rate_limiter.throttle(retry_after_seconds(getattr(response, "headers", None)))
            status = "not_found" if isinstance(error, ResourceNotFoundError) else "error"
            raise error from e
        finally:
            AZURE_API_CALLS.labels(service=service, operation=operation, status=status).inc()
            AZURE_API_DURATION.labels(service=service, operation=operation).observe(
                time.monotonic() - start
            )

    # -------------------------------------------------------------------------
    # Network interface operations
    # -------------------------------------------------------------------------

    def get_network_interface(self, resource_group: str, name: str) -> Any:
        """Get a network interface."""
        ops = self.service("network").network_interfaces
        return self._call(
            "network", "get_network_interface",
            f"retrieving Network Interface {name!r} (Resource Group {resource_group!r})",
            ops.get, resource_group, name,
        )

    def begin_create_or_update_network_interface(
        self, resource_group: str, name: str, parameters: Any
    ) -> Any:
        """Start writing a network interface, returning the poller."""
        logger.info("Updating network interface %s in %s", name, resource_group)
        ops = self.service("network").network_interfaces
        return self._call(
            "network", "create_or_update_network_interface",
            f"updating Network Interface {name!r} (Resource Group {resource_group!r})",
            ops.begin_create_or_update, resource_group, name, parameters,
        )

    # -------------------------------------------------------------------------
    # ExpressRoute circuit authorization operations
    # -------------------------------------------------------------------------

    def get_express_route_circuit_authorization(
        self, resource_group: str, circuit_name: str, name: str
    ) -> Any:
        """Get an ExpressRoute circuit authorization."""
        ops = self.service("network").express_route_circuit_authorizations
        return self._call(
            "network", "get_express_route_circuit_authorization",
            f"retrieving Express Route Circuit Authorization {name!r} "
            f"(Circuit {circuit_name!r} / Resource Group {resource_group!r})",
            ops.get, resource_group, circuit_name, name,
        )

    def begin_create_or_update_express_route_circuit_authorization(
        self, resource_group: str, circuit_name: str, name: str, parameters: Any
    ) -> Any:
        """Start creating an ExpressRoute circuit authorization."""
        logger.info("Creating authorization %s on circuit %s", name, circuit_name)
        ops = self.service("network").express_route_circuit_authorizations
        return self._call(
            "network", "create_or_update_express_route_circuit_authorization",
            f"creating Express Route Circuit Authorization {name!r} (Circuit {circuit_name!r})",
            ops.begin_create_or_update, resource_group, circuit_name, name, parameters,
        )

    def begin_delete_express_route_circuit_authorization(
        self, resource_group: str, circuit_name: str, name: str
    ) -> Any:
        """Start deleting an ExpressRoute circuit authorization."""
        logger.info("Deleting authorization %s on circuit %s", name, circuit_name)
        ops = self.service("network").express_route_circuit_authorizations
        return self._call(
            "network", "delete_express_route_circuit_authorization",
            f"deleting Express Route Circuit Authorization {name!r} (Circuit {circuit_name!r})",
            ops.begin_delete, resource_group, circuit_name, name,
        )

    # -------------------------------------------------------------------------
    # Dedicated host operations
    # -------------------------------------------------------------------------

    def get_dedicated_host_group(self, resource_group: str, host_group_name: str) -> Any:
        """Get a dedicated host group."""
        ops = self.service("compute").dedicated_host_groups
        return self._call(
            "compute", "get_dedicated_host_group",
            f"retrieving Dedicated Host Group {host_group_name!r} (Resource Group {resource_group!r})",
            ops.get, resource_group, host_group_name,
        )

    def get_dedicated_host(self, resource_group: str, host_group_name: str, name: str) -> Any:
        """Get a dedicated host."""
        ops = self.service("compute").dedicated_hosts
        return self._call(
            "compute", "get_dedicated_host",
            f"retrieving Dedicated Host {name!r} (Host Group {host_group_name!r})",
            ops.get, resource_group, host_group_name, name,
        )

    def begin_create_or_update_dedicated_host(
        self, resource_group: str, host_group_name: str, name: str, parameters: Any
    ) -> Any:
        """Start creating a dedicated host."""
        logger.info("Creating dedicated host %s in group %s", name, host_group_name)
        ops = self.service("compute").dedicated_hosts
        return self._call(
            "compute", "create_or_update_dedicated_host",
            f"creating Dedicated Host {name!r} (Host Group {host_group_name!r})",
            ops.begin_create_or_update, resource_group, host_group_name, name, parameters,
        )

    def begin_update_dedicated_host(
        self, resource_group: str, host_group_name: str, name: str, parameters: Any
    ) -> Any:
        """Start patching a dedicated host."""
        logger.info("Updating dedicated host %s in group %s", name, host_group_name)
        ops = self.service("compute").dedicated_hosts
        return self._call(
            "compute", "update_dedicated_host",
            f"updating Dedicated Host {name!r} (Host Group {host_group_name!r})",
            ops.begin_update, resource_group, host_group_name, name, parameters,
        )

    def begin_delete_dedicated_host(
        self, resource_group: str, host_group_name: str, name: str
    ) -> Any:
        """Start deleting a dedicated host."""
        logger.info("Deleting dedicated host %s in group %s", name, host_group_name)
        ops = self.service("compute").dedicated_hosts
        return self._call(
            "compute", "delete_dedicated_host",
            f"deleting Dedicated Host {name!r} (Host Group {host_group_name!r})",
            ops.begin_delete, resource_group, host_group_name, name,
        )

    # -------------------------------------------------------------------------
    # Disk access operations
    # -------------------------------------------------------------------------

    def get_disk_access(self, resource_group: str, name: str) -> Any:
        """Get a disk access."""
        ops = self.service("compute").disk_accesses
        return self._call(
            "compute", "get_disk_access",
            f"retrieving Disk Access {name!r} (Resource Group {resource_group!r})",
            ops.get, resource_group, name,
        )

    def begin_create_or_update_disk_access(
        self, resource_group: str, name: str, parameters: Any
    ) -> Any:
        """Start creating or updating a disk access."""
        logger.info("Creating/updating disk access %s in %s", name, resource_group)
        ops = self.service("compute").disk_accesses
        return self._call(
            "compute", "create_or_update_disk_access",
            f"creating/updating Disk Access {name!r} (Resource Group {resource_group!r})",
            ops.begin_create_or_update, resource_group, name, parameters,
        )

    def begin_delete_disk_access(self, resource_group: str, name: str) -> Any:
        """Start deleting a disk access."""
        logger.info("Deleting disk access %s in %s", name, resource_group)
        ops = self.service("compute").disk_accesses
        return self._call(
            "compute", "delete_disk_access",
            f"deleting Disk Access {name!r} (Resource Group {resource_group!r})",
            ops.begin_delete, resource_group, name,
        )

    # -------------------------------------------------------------------------
    # API Management diagnostic operations
    # -------------------------------------------------------------------------

    def get_api_management_diagnostic(
        self, resource_group: str, service_name: str, diagnostic_id: str
    ) -> Any:
        """Get an API Management service diagnostic."""
        ops = self.service("apimanagement").diagnostic
        return self._call(
            "apimanagement", "get_diagnostic",
            f"retrieving Diagnostic {diagnostic_id!r} (API Management Service {service_name!r})",
            ops.get, resource_group, service_name, diagnostic_id,
        )

    def create_or_update_api_management_diagnostic(
        self, resource_group: str, service_name: str, diagnostic_id: str, parameters: Any
    ) -> Any:
        """Create or update an API Management service diagnostic."""
        logger.info("Creating/updating diagnostic %s on %s", diagnostic_id, service_name)
        ops = self.service("apimanagement").diagnostic
        return self._call(
            "apimanagement", "create_or_update_diagnostic",
            f"creating/updating Diagnostic {diagnostic_id!r} (API Management Service {service_name!r})",
            ops.create_or_update, resource_group, service_name, diagnostic_id, parameters,
        )

    def delete_api_management_diagnostic(
        self, resource_group: str, service_name: str, diagnostic_id: str
    ) -> None:
        """Delete an API Management service diagnostic, regardless of ETag."""
        logger.info("Deleting diagnostic %s on %s", diagnostic_id, service_name)
        ops = self.service("apimanagement").diagnostic
        self._call(
            "apimanagement", "delete_diagnostic",
            f"deleting Diagnostic {diagnostic_id!r} (API Management Service {service_name!r})",
            ops.delete, resource_group, service_name, diagnostic_id, if_match="*",
        )

    # -------------------------------------------------------------------------
    # Data Factory integration runtime operations
    # -------------------------------------------------------------------------

    def get_integration_runtime(self, resource_group: str, factory_name: str, name: str) -> Any:
        """Get a Data Factory integration runtime."""
        ops = self.service("datafactory").integration_runtimes
        return self._call(
            "datafactory", "get_integration_runtime",
            f"retrieving Integration Runtime {name!r} (Data Factory {factory_name!r})",
            ops.get, resource_group, factory_name, name,
        )

    def create_or_update_integration_runtime(
        self, resource_group: str, factory_name: str, name: str, parameters: Any
    ) -> Any:
        """Create or update a Data Factory integration runtime."""
        logger.info("Creating/updating integration runtime %s in factory %s", name, factory_name)
        ops = self.service("datafactory").integration_runtimes
        return self._call(
            "datafactory", "create_or_update_integration_runtime",
            f"creating/updating Integration Runtime {name!r} (Data Factory {factory_name!r})",
            ops.create_or_update, resource_group, factory_name, name, parameters,
        )

    def delete_integration_runtime(self, resource_group: str, factory_name: str, name: str) -> None:
        """Delete a Data Factory integration runtime."""
        logger.info("Deleting integration runtime %s in factory %s", name, factory_name)
        ops = self.service("datafactory").integration_runtimes
        self._call(
            "datafactory", "delete_integration_runtime",
            f"deleting Integration Runtime {name!r} (Data Factory {factory_name!r})",
            ops.delete, resource_group, factory_name, name,
        )

    def list_managed_virtual_networks(self, resource_group: str, factory_name: str) -> list[Any]:
        """List the managed virtual networks of a Data Factory."""
        ops = self.service("datafactory").managed_virtual_networks
        return self._call(
            "datafactory", "list_managed_virtual_networks",
            f"listing Managed Virtual Networks (Data Factory {factory_name!r})",
            lambda: list(ops.list_by_factory(resource_group, factory_name)),
        )

    # -------------------------------------------------------------------------
    # Automation operations
    # -------------------------------------------------------------------------

    def get_job_schedule(self, resource_group: str, account_name: str, job_schedule_id: str) -> Any:
        """Get an Automation job schedule."""
        ops = self.service("automation").job_schedule
        return self._call(
            "automation", "get_job_schedule",
            f"retrieving Automation Job Schedule {job_schedule_id!r} (Account {account_name!r})",
            ops.get, resource_group, account_name, job_schedule_id,
        )

    def list_job_schedules(self, resource_group: str, account_name: str) -> list[Any]:
        """List all job schedules of an Automation account."""
        ops = self.service("automation").job_schedule
        return self._call(
            "automation", "list_job_schedules",
            f"listing Automation Job Schedules (Account {account_name!r})",
            lambda: list(ops.list_by_automation_account(resource_group, account_name)),
        )

    def create_job_schedule(
        self, resource_group: str, account_name: str, job_schedule_id: str, parameters: Any
    ) -> Any:
        """Create an Automation job schedule."""
        logger.info("Creating job schedule %s in account %s", job_schedule_id, account_name)
        ops = self.service("automation").job_schedule
        return self._call(
            "automation", "create_job_schedule",
            f"creating Automation Job Schedule {job_schedule_id!r} (Account {account_name!r})",
            ops.create, resource_group, account_name, job_schedule_id, parameters,
        )

    def delete_job_schedule(self, resource_group: str, account_name: str, job_schedule_id: str) -> None:
        """Delete an Automation job schedule."""
        logger.info("Deleting job schedule %s in account %s", job_schedule_id, account_name)
        ops = self.service("automation").job_schedule
        self._call(
            "automation", "delete_job_schedule",
            f"deleting Automation Job Schedule {job_schedule_id!r} (Account {account_name!r})",
            ops.delete, resource_group, account_name, job_schedule_id,
        )

    def get_dsc_node_configuration(self, resource_group: str, account_name: str, name: str) -> Any:
        """Get an Automation DSC node configuration."""
        ops = self.service("automation").dsc_node_configuration
        return self._call(
            "automation", "get_dsc_node_configuration",
            f"retrieving Automation DSC Node Configuration {name!r} (Account {account_name!r})",
            ops.get, resource_group, account_name, name,
        )

    def begin_create_or_update_dsc_node_configuration(
        self, resource_group: str, account_name: str, name: str, parameters: Any
    ) -> Any:
        """Start creating or updating an Automation DSC node configuration."""
        logger.info("Creating/updating DSC node configuration %s in account %s", name, account_name)
        ops = self.service("automation").dsc_node_configuration
        return self._call(
            "automation", "create_or_update_dsc_node_configuration",
            f"creating/updating Automation DSC Node Configuration {name!r} (Account {account_name!r})",
            ops.begin_create_or_update, resource_group, account_name, name, parameters,
        )

    def delete_dsc_node_configuration(self, resource_group: str, account_name: str, name: str) -> None:
        """Delete an Automation DSC node configuration."""
        logger.info("Deleting DSC node configuration %s in account %s", name, account_name)
        ops = self.service("automation").dsc_node_configuration
        self._call(
            "automation", "delete_dsc_node_configuration",
            f"deleting Automation DSC Node Configuration {name!r} (Account {account_name!r})",
            ops.delete, resource_group, account_name, name,
        )

    # -------------------------------------------------------------------------
    # IoT Hub Device Provisioning Service operations
    # -------------------------------------------------------------------------

    def get_iot_dps(self, resource_group: str, name: str) -> Any:
        """Get an IoT Hub Device Provisioning Service."""
        ops = self.service("iotdps").iot_dps_resource
        return self._call(
            "iotdps", "get_iot_dps",
            f"retrieving IoT Device Provisioning Service {name!r} (Resource Group {resource_group!r})",
            ops.get, name, resource_group,
        )

    def begin_create_or_update_iot_dps(self, resource_group: str, name: str, parameters: Any) -> Any:
        """Start creating or updating an IoT Hub Device Provisioning Service."""
        logger.info("Creating/updating IoT DPS %s in %s", name, resource_group)
        ops = self.service("iotdps").iot_dps_resource
        return self._call(
            "iotdps", "create_or_update_iot_dps",
            f"creating/updating IoT Device Provisioning Service {name!r} (Resource Group {resource_group!r})",
            ops.begin_create_or_update, resource_group, name, parameters,
        )

    def begin_delete_iot_dps(self, resource_group: str, name: str) -> Any:
        """Start deleting an IoT Hub Device Provisioning Service."""
        logger.info("Deleting IoT DPS %s in %s", name, resource_group)
        ops = self.service("iotdps").iot_dps_resource
        return self._call(
            "iotdps", "delete_iot_dps",
            f"deleting IoT Device Provisioning Service {name!r} (Resource Group {resource_group!r})",
            ops.begin_delete, name, resource_group,
        )
