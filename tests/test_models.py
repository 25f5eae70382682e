"""Tests for data models."""

import pytest

from constants import IMPORT_ID_ANNOTATION
from models import (
    AzureAPIError,
    ConfigurationError,
    ImportCollisionError,
    MalformedIdentifierError,
    Operation,
    OperationTimeoutError,
    OperatorError,
    ResourceNotFoundError,
    ResourceState,
    Timeouts,
)


class TestTimeouts:
    """Tests for Timeouts dataclass."""

    def test_default_values(self):
        timeouts = Timeouts()

        assert timeouts.create == 1800
        assert timeouts.read == 300
        assert timeouts.update == 1800
        assert timeouts.delete == 1800

    def test_import_uses_read_bound(self):
        timeouts = Timeouts(read=42)

        assert timeouts.for_operation(Operation.IMPORT) == 42
        assert timeouts.for_operation(Operation.READ) == 42

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AZURE_TIMEOUT_DELETE_MINUTES", "90")
        monkeypatch.delenv("AZURE_TIMEOUT_CREATE_MINUTES", raising=False)

        timeouts = Timeouts.from_env()

        assert timeouts.delete == 5400
        assert timeouts.create == 1800


class TestResourceState:
    """Tests for ResourceState dataclass."""

    def test_to_status(self):
        state = ResourceState(resource_id="/subscriptions/s/x", fields={"name": "x"})

        assert state.to_status() == {"resourceId": "/subscriptions/s/x", "name": "x"}

    def test_secrets_not_in_status(self):
        state = ResourceState(
            resource_id="id", fields={"name": "x"}, secrets={"authorizationKey": "k"}
        )

        assert "authorizationKey" not in state.to_status()


class TestOperatorError:
    """Tests for the exception hierarchy."""

    def test_context_prefixes_message(self):
        error = ResourceNotFoundError("Network Interface not found")
        error.with_context("creating Network Interface Application Security Group Association")

        assert str(error) == (
            "creating Network Interface Application Security Group Association: "
            "Network Interface not found"
        )

    def test_context_added_once(self):
        error = AzureAPIError("boom").with_context("outer").with_context("inner")

        assert str(error) == "outer: boom"

    @pytest.mark.parametrize(
        "error, terminal",
        [
            (ResourceNotFoundError("x"), False),
            (AzureAPIError("x", status_code=500), False),
            (OperationTimeoutError("x"), False),
            (ConfigurationError("x"), True),
            (MalformedIdentifierError("x"), True),
            (ImportCollisionError("AzureDiskAccess", "/subscriptions/s/x"), True),
        ],
    )
    def test_terminal(self, error, terminal):
        assert isinstance(error, OperatorError)
        assert error.terminal is terminal

    def test_import_collision_message(self):
        error = ImportCollisionError("AzureDiskAccess", "/subscriptions/s/x")

        assert "'/subscriptions/s/x' already exists" in str(error)
        assert f"using the '{IMPORT_ID_ANNOTATION}' annotation" in str(error)
