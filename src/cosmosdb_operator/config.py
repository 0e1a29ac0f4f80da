"""Configuration management with validation.

Security constraints are enforced at configuration load time to ensure
the operator runs in a secure mode by default.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Cosmos DB account naming limits (enforced by the service)
MIN_ACCOUNT_NAME_LENGTH = 3
MAX_ACCOUNT_NAME_LENGTH = 44
MAX_RESOURCE_GROUP_NAME_LENGTH = 90

# Security constraints - enforced limits to prevent abuse
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max desired-state manifest
MAX_STATUS_FILE_SIZE_BYTES = 64 * 1024

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_NAMESPACE_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    subscription_id: str

    # User-assigned managed identity; system-assigned when unset
    client_id: str | None = None

    # Secrets are written to the owning object's namespace unless overridden
    secret_namespace: str | None = None

    # Local kubeconfig, only used when in-cluster config is unavailable
    kubeconfig_path: Path | None = None

    enable_audit_logging: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        SECURITY: All inputs are validated at the boundary (fail-fast).
        """
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if self.secret_namespace is not None and not re.match(
            VALID_NAMESPACE_PATTERN, self.secret_namespace
        ):
            errors.append(f"SECRET_NAMESPACE is not a valid namespace name: {self.secret_namespace}")

        if self.kubeconfig_path is not None and not self.kubeconfig_path.exists():
            errors.append(f"KUBECONFIG_PATH does not exist: {self.kubeconfig_path}")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def log_level_value(self) -> int:
        """Numeric logging level for the configured LOG_LEVEL."""
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription holding the Cosmos DB accounts
            AZURE_CLIENT_ID: Client ID of a user-assigned managed identity (optional)
            SECRET_NAMESPACE: Namespace for account key secrets (default: object namespace)
            KUBECONFIG_PATH: Kubeconfig used outside the cluster (optional)
            ENABLE_AUDIT_LOGGING: Enable security audit events (default: true)
            LOG_LEVEL: Root log level (default: INFO)
        """

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        kubeconfig = os.environ.get("KUBECONFIG_PATH")

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            secret_namespace=os.environ.get("SECRET_NAMESPACE") or None,
            kubeconfig_path=Path(kubeconfig) if kubeconfig else None,
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )
