"""Tests for logging setup and reconciler assembly."""

import json
import logging
import os
import sys
from unittest import mock

import pytest
from azure_mock import MOCK_SUBSCRIPTION_ID, MockAzureContext

from cosmosdb_operator.config import Config
from cosmosdb_operator.main import JsonFormatter, build_reconciler, setup_logging
from cosmosdb_operator.reconciler import CosmosDBReconciler
from cosmosdb_operator.security import SecretlessViolationError


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def make_record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            name="cosmosdb_operator.reconciler",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Account %s provisioned",
            args=("db1",),
            exc_info=None,
        )
        record.__dict__.update(extra)
        return record

    def test_basic_fields(self) -> None:
        """Test level, logger and rendered message are included."""
        data = json.loads(JsonFormatter().format(self.make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "cosmosdb_operator.reconciler"
        assert data["message"] == "Account db1 provisioned"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields(self) -> None:
        """Test structured extras are emitted as top-level keys."""
        data = json.loads(JsonFormatter().format(self.make_record(account="db1", resource_group="rg1")))

        assert data["account"] == "db1"
        assert data["resource_group"] == "rg1"
        assert "args" not in data
        assert "msg" not in data

    def test_exception(self) -> None:
        """Test exceptions are formatted into the record."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = self.make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_configures_root(self) -> None:
        """Test the root logger gets a single JSON handler."""
        setup_logging(logging.DEBUG)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_sdk_loggers_quieted(self) -> None:
        """Test SDK loggers are raised to WARNING."""
        setup_logging()

        assert logging.getLogger("azure").level == logging.WARNING
        assert logging.getLogger("kubernetes").level == logging.WARNING


class TestBuildReconciler:
    """Tests for build_reconciler()."""

    def test_wires_collaborators(self) -> None:
        """Test the reconciler is built from configuration."""
        config = Config(subscription_id=MOCK_SUBSCRIPTION_ID, secret_namespace="cosmos-secrets")

        with mock.patch.dict(os.environ, {}, clear=True):
            with MockAzureContext() as ctx:
                reconciler = build_reconciler(config)

        assert isinstance(reconciler, CosmosDBReconciler)
        ctx.client_factory.assert_called_once_with(ctx.credential, MOCK_SUBSCRIPTION_ID)
        ctx.store_factory.assert_called_once_with(
            namespace_override="cosmos-secrets",
            kubeconfig_path=None,
        )

    def test_refuses_credentials_in_environment(self) -> None:
        """Test assembly fails when a client secret is present."""
        config = Config(subscription_id=MOCK_SUBSCRIPTION_ID)

        with mock.patch.dict(os.environ, {"AZURE_CLIENT_SECRET": "s3cr3t"}, clear=True):
            with MockAzureContext() as ctx:
                with pytest.raises(SecretlessViolationError):
                    build_reconciler(config)

        ctx.client_factory.assert_not_called()
