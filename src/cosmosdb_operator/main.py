"""Process setup for the Cosmos DB operator.

Configures structured logging and assembles a CosmosDBReconciler from
configuration: managed-identity credential, Cosmos DB management client,
Kubernetes secret store.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from .client import CosmosDBClient
from .config import Config
from .reconciler import CosmosDBReconciler
from .secret_store import KubernetesSecretStore, SecretMaterializer
from .security import get_managed_identity_credential

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Send JSON logs to stderr, keeping stdout for command output."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # Reduce noise from SDKs
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def build_reconciler(config: Config) -> CosmosDBReconciler:
    """Assemble a reconciler with production collaborators.

    Raises:
        SecretlessViolationError: If credentials are present in the environment.
    """
    credential = get_managed_identity_credential(config.client_id)
    provisioning_client = CosmosDBClient(credential, config.subscription_id)
    store = KubernetesSecretStore(
        namespace_override=config.secret_namespace,
        kubeconfig_path=config.kubeconfig_path,
    )
    materializer = SecretMaterializer(
        provisioning_client,
        store,
        audit=config.enable_audit_logging,
    )
    return CosmosDBReconciler(provisioning_client, materializer)
