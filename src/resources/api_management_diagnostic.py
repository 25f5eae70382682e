"""API Management service diagnostic.

Diagnostics are written with a plain (non long-running) PUT. Delete sends
``If-Match: *`` so it succeeds whatever the current ETag is.
"""

from dataclasses import dataclass
from typing import Any

from azure.mgmt.apimanagement import models as apim_models

import schema
from lifecycle import ResourceKind
from resource_id import ResourceIdentifier
from utils import enum_value

IDENTIFIERS = ("applicationinsights", "azuremonitor")
VERBOSITIES = ("verbose", "information", "error")
HTTP_CORRELATION_PROTOCOLS = ("None", "Legacy", "W3C")
OPERATION_NAME_FORMATS = ("Name", "Url")
ALWAYS_LOG_ALL_ERRORS = "allErrors"
MAX_BODY_BYTES = 8192


@dataclass(frozen=True)
class MessageSettings:
    """What to log of one HTTP request or response."""

    body_bytes: int | None = None
    headers_to_log: tuple[str, ...] | None = None

    @classmethod
    def from_spec(cls, spec: dict[str, Any], key: str) -> "MessageSettings | None":
        settings = schema.nested(spec, key)
        if settings is None:
            return None
        return cls(
            body_bytes=schema.optional_int(settings, "bodyBytes", minimum=0, maximum=MAX_BODY_BYTES),
            headers_to_log=schema.string_list(settings, "headersToLog"),
        )

    def to_model(self) -> apim_models.HttpMessageDiagnostic:
        body = None
        if self.body_bytes is not None:
            body = apim_models.BodyDiagnosticSettings(bytes=self.body_bytes)
        headers = list(self.headers_to_log) if self.headers_to_log is not None else None
        return apim_models.HttpMessageDiagnostic(headers=headers, body=body)


def _flatten_message(message: Any) -> dict[str, Any] | None:
    if message is None:
        return None
    body = getattr(message, "body", None)
    return {
        "bodyBytes": getattr(body, "bytes", None),
        "headersToLog": sorted(message.headers or []),
    }


@dataclass(frozen=True)
class ApiManagementDiagnosticConfig:
    identifier: str
    resource_group: str
    api_management_name: str
    logger_id: ResourceIdentifier
    sampling_percentage: float | None = None
    always_log_errors: bool | None = None
    verbosity: str | None = None
    log_client_ip: bool | None = None
    http_correlation_protocol: str | None = None
    frontend_request: MessageSettings | None = None
    frontend_response: MessageSettings | None = None
    backend_request: MessageSettings | None = None
    backend_response: MessageSettings | None = None
    operation_name_format: str = "Name"

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> "ApiManagementDiagnosticConfig":
        return cls(
            identifier=schema.one_of(spec, "identifier", IDENTIFIERS, required=True),
            resource_group=schema.require_str(spec, "resourceGroupName"),
            api_management_name=schema.require_str(spec, "apiManagementName"),
            logger_id=schema.resource_id(spec, "apiManagementLoggerId", "service", "loggers"),
            sampling_percentage=schema.optional_float(
                spec, "samplingPercentage", minimum=0.0, maximum=100.0
            ),
            always_log_errors=schema.optional_bool(spec, "alwaysLogErrors"),
            verbosity=schema.one_of(spec, "verbosity", VERBOSITIES),
            log_client_ip=schema.optional_bool(spec, "logClientIp"),
            http_correlation_protocol=schema.one_of(
                spec, "httpCorrelationProtocol", HTTP_CORRELATION_PROTOCOLS
            ),
            frontend_request=MessageSettings.from_spec(spec, "frontendRequest"),
            frontend_response=MessageSettings.from_spec(spec, "frontendResponse"),
            backend_request=MessageSettings.from_spec(spec, "backendRequest"),
            backend_response=MessageSettings.from_spec(spec, "backendResponse"),
            operation_name_format=schema.one_of(
                spec, "operationNameFormat", OPERATION_NAME_FORMATS, "Name"
            ),
        )


def _pipeline(
    request: MessageSettings | None, response: MessageSettings | None
) -> apim_models.PipelineDiagnosticSettings | None:
    if request is None and response is None:
        return None
    return apim_models.PipelineDiagnosticSettings(
        request=request.to_model() if request is not None else None,
        response=response.to_model() if response is not None else None,
    )


class ApiManagementDiagnostic(ResourceKind):
    kind = "AzureApiManagementDiagnostic"
    plural = "azureapimanagementdiagnostics"
    display_name = "API Management Diagnostic"
    config_class = ApiManagementDiagnosticConfig
    supports_update = True
    immutable_fields = frozenset({"identifier", "resourceGroupName", "apiManagementName"})

    def identity(self, config, subscription_id):
        return ResourceIdentifier.build(
            subscription_id,
            config.resource_group,
            "Microsoft.ApiManagement",
            [("service", config.api_management_name), ("diagnostics", config.identifier)],
        )

    def parse_id(self, raw):
        identifier = ResourceIdentifier.parse(raw)
        identifier.require("service", "diagnostics")
        return identifier

    def fetch(self, client, ident, deadline):
        service_name, diagnostic_id = ident.require("service", "diagnostics")
        return client.get_api_management_diagnostic(ident.resource_group, service_name, diagnostic_id)

    def build_payload(self, config, current):
        sampling = None
        if config.sampling_percentage is not None:
            sampling = apim_models.SamplingSettings(
                sampling_type="fixed", percentage=config.sampling_percentage
            )
        return apim_models.DiagnosticContract(
            logger_id=str(config.logger_id),
            operation_name_format=config.operation_name_format,
            sampling=sampling,
            always_log=ALWAYS_LOG_ALL_ERRORS if config.always_log_errors else None,
            verbosity=config.verbosity,
            log_client_ip=config.log_client_ip,
            http_correlation_protocol=config.http_correlation_protocol,
            frontend=_pipeline(config.frontend_request, config.frontend_response),
            backend=_pipeline(config.backend_request, config.backend_response),
        )

    def submit(self, client, ident, payload, deadline):
        service_name, diagnostic_id = ident.require("service", "diagnostics")
        return client.create_or_update_api_management_diagnostic(
            ident.resource_group, service_name, diagnostic_id, payload
        )

    def parse_state(self, remote, ident):
        service_name, _ = ident.require("service", "diagnostics")
        sampling = getattr(remote, "sampling", None)
        frontend = getattr(remote, "frontend", None)
        backend = getattr(remote, "backend", None)
        return {
            "identifier": remote.name,
            "resourceGroupName": ident.resource_group,
            "apiManagementName": service_name,
            "apiManagementLoggerId": remote.logger_id,
            "samplingPercentage": getattr(sampling, "percentage", None),
            "alwaysLogErrors": enum_value(remote.always_log) == ALWAYS_LOG_ALL_ERRORS,
            "verbosity": enum_value(remote.verbosity),
            "logClientIp": remote.log_client_ip,
            "httpCorrelationProtocol": enum_value(remote.http_correlation_protocol),
            "frontendRequest": _flatten_message(getattr(frontend, "request", None)),
            "frontendResponse": _flatten_message(getattr(frontend, "response", None)),
            "backendRequest": _flatten_message(getattr(backend, "request", None)),
            "backendResponse": _flatten_message(getattr(backend, "response", None)),
            "operationNameFormat": enum_value(remote.operation_name_format) or "Name",
        }

    def remove(self, client, ident, deadline):
        service_name, diagnostic_id = ident.require("service", "diagnostics")
        client.delete_api_management_diagnostic(ident.resource_group, service_name, diagnostic_id)
