"""Automation job schedule: the link between a runbook and a schedule."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from azure.mgmt.automation import models as automation_models

import schema
from lifecycle import ResourceKind
from models import AzureAPIError, ConfigurationError
from resource_id import ResourceIdentifier
from utils import is_valid_uuid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobScheduleConfig:
    resource_group: str
    automation_account_name: str
    runbook_name: str
    schedule_name: str
    parameters: dict[str, str] | None = None
    run_on: str | None = None
    job_schedule_id: str | None = None

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "JobScheduleConfig":
        parameters = schema.string_map(spec, "parameters")
        for key in parameters or {}:
            if key != key.lower():
                raise ConfigurationError(
                    f"spec.parameters key {key!r} must be lowercase, Azure stores parameter names lowercased"
                )

        job_schedule_id = schema.optional_str(spec, "jobScheduleId")
        if job_schedule_id is not None and not is_valid_uuid(job_schedule_id):
            raise ConfigurationError(f"spec.jobScheduleId must be a UUID, got {job_schedule_id!r}")

        return cls(
            resource_group=schema.require_str(spec, "resourceGroupName"),
            automation_account_name=schema.require_str(spec, "automationAccountName"),
            runbook_name=schema.require_str(spec, "runbookName"),
            schedule_name=schema.require_str(spec, "scheduleName"),
            parameters=parameters,
            run_on=schema.optional_str(spec, "runOn"),
            job_schedule_id=job_schedule_id,
        )


class AutomationJobSchedule(ResourceKind):
    """Automation job schedule.

    Job schedules cannot be updated, every spec change recreates the link.
    """

    kind = "AzureAutomationJobSchedule"
    plural = "azureautomationjobschedules"
    display_name = "Automation Job Schedule"
    config_class = JobScheduleConfig
    immutable_fields = frozenset(
        {
            "resourceGroupName",
            "automationAccountName",
            "runbookName",
            "scheduleName",
            "parameters",
            "runOn",
            "jobScheduleId",
        }
    )

    def identity(self, config, subscription_id):
        job_schedule_id = config.job_schedule_id or str(uuid.uuid4())
        return ResourceIdentifier.build(
            subscription_id,
            config.resource_group,
            "Microsoft.Automation",
            [("automationAccounts", config.automation_account_name), ("jobSchedules", job_schedule_id)],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        identifier.require("automationAccounts", "jobSchedules")
        return identifier

    def fetch(self, client, ident, deadline):
        account_name, job_schedule_id = ident.require("automationAccounts", "jobSchedules")
        return client.get_job_schedule(ident.resource_group, account_name, job_schedule_id)

    def prepare(self, client, ident, config, deadline):
        # Updating a runbook re-creates its job schedules under new IDs, so an
        # older link for the same runbook and schedule has to go first
        account_name, _ = ident.require("automationAccounts", "jobSchedules")
        for existing in client.list_job_schedules(ident.resource_group, account_name):
            schedule_name = getattr(existing.schedule, "name", None)
            runbook_name = getattr(existing.runbook, "name", None)
            if schedule_name != config.schedule_name or runbook_name != config.runbook_name:
                continue
            if not existing.job_schedule_id:
                raise AzureAPIError(
                    f"job schedule ID is empty in the job schedule list of Automation Account {account_name!r}"
                )
            logger.info(
                "Deleting job schedule %s linking runbook %s to schedule %s",
                existing.job_schedule_id, runbook_name, schedule_name,
            )
            client.delete_job_schedule(ident.resource_group, account_name, existing.job_schedule_id)
        return config

    def build_payload(self, config, current):
        return automation_models.JobScheduleCreateParameters(
            schedule=automation_models.ScheduleAssociationProperty(name=config.schedule_name),
            runbook=automation_models.RunbookAssociationProperty(name=config.runbook_name),
            parameters=dict(config.parameters) if config.parameters else None,
            run_on=config.run_on,
        )

    def submit(self, client, ident, payload, deadline):
        account_name, job_schedule_id = ident.require("automationAccounts", "jobSchedules")
        return client.create_job_schedule(ident.resource_group, account_name, job_schedule_id, payload)

    def parse_state(self, remote, ident):
        account_name, _ = ident.require("automationAccounts", "jobSchedules")
        parameters = None
        if remote.parameters is not None:
            parameters = {key.lower(): value for key, value in remote.parameters.items()}
        return {
            "jobScheduleId": remote.job_schedule_id,
            "resourceGroupName": ident.resource_group,
            "automationAccountName": account_name,
            "runbookName": getattr(remote.runbook, "name", None),
            "scheduleName": getattr(remote.schedule, "name", None),
            "runOn": remote.run_on,
            "parameters": parameters,
        }

    def remove(self, client, ident, deadline):
        account_name, job_schedule_id = ident.require("automationAccounts", "jobSchedules")
        client.delete_job_schedule(ident.resource_group, account_name, job_schedule_id)
