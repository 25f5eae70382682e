"""The set of resource kinds the operator serves."""

import os

from lifecycle import ResourceKind
from resources.api_management_diagnostic import ApiManagementDiagnostic
from resources.automation_dsc_node_configuration import AutomationDscNodeConfiguration
from resources.automation_job_schedule import AutomationJobSchedule
from resources.data_factory_integration_runtime import DataFactoryIntegrationRuntime
from resources.dedicated_host import DedicatedHost
from resources.disk_access import DiskAccess
from resources.express_route_circuit_authorization import ExpressRouteCircuitAuthorization
from resources.iot_dps import IotDps
from resources.nic_security_group_association import NicSecurityGroupAssociation


def build_kinds() -> list[ResourceKind]:
    """Instantiate every kind.

    Configuration via environment variables:
        AZURE_DEDICATED_HOST_DELETE_CONFIRMATIONS: Consecutive NotFound reads
            required before a dedicated host counts as deleted (default: 20)
        AZURE_POLL_INTERVAL_SECONDS: Seconds between delete confirmation
            refreshes (default: 10)
    """
    poll_interval = float(os.environ.get("AZURE_POLL_INTERVAL_SECONDS", "10"))
    delete_confirmations = int(os.environ.get("AZURE_DEDICATED_HOST_DELETE_CONFIRMATIONS", "20"))

    return [
        NicSecurityGroupAssociation(),
        ExpressRouteCircuitAuthorization(),
        DedicatedHost(delete_confirmations=delete_confirmations, poll_interval=poll_interval),
        DiskAccess(),
        ApiManagementDiagnostic(),
        DataFactoryIntegrationRuntime(),
        AutomationJobSchedule(),
        AutomationDscNodeConfiguration(),
        IotDps(poll_interval=poll_interval),
    ]


KINDS: list[ResourceKind] = build_kinds()
