"""Secretless credential handling and security audit events.

The operator authenticates to Azure with a managed identity only. It does
handle key material (the Cosmos DB account keys it materializes into the
secret store), so every write or removal of that material is recorded as
an audit event.

SECURITY INVARIANTS:
1. No service principal secret or password may be present in the environment
2. ManagedIdentityCredential is the only credential type handed to Azure clients
3. Account keys are never logged, only the identity of the secret holding them
"""

from __future__ import annotations

import logging
import os

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "SECURITY VIOLATION: {env_var} is set. The Cosmos DB operator authenticates "
    "with a managed identity only; remove service principal or password "
    "credentials from the environment and assign a managed identity instead."
)


class SecretlessViolationError(Exception):
    """Raised when a credential is found in the environment.

    Fatal: the operator must not start.
    """

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to run when credential environment variables are present.

    Raises:
        SecretlessViolationError: If any forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secretless architecture violation",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))

    logger.debug(
        "Secretless architecture verified",
        extra={"security_event": "secretless_verified", "credential_type": "ManagedIdentity"},
    )


def get_managed_identity_credential(
    client_id: str | None = None,
) -> ManagedIdentityCredential:
    """Return a ManagedIdentityCredential after verifying the environment.

    Args:
        client_id: Client ID of a user-assigned identity; system-assigned when None.

    Raises:
        SecretlessViolationError: If credential environment variables are detected.
    """
    enforce_secretless_architecture()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()


def log_security_audit_event(
    event_type: str,
    target_resource: str,
    action: str,
    result: str,
    *,
    enabled: bool = True,
) -> None:
    """Log a security-relevant event with structured fields.

    Args:
        event_type: Kind of event (e.g. "secret").
        target_resource: Identity of the object acted upon ("namespace/name").
        action: Action performed (upsert, delete).
        result: success, failure or noop.
        enabled: Audit logging switch from configuration.
    """
    if not enabled:
        return

    logger.info(
        f"Security audit: {event_type} {action}",
        extra={
            "security_audit": True,
            "event_type": event_type,
            "target_resource": target_resource,
            "action": action,
            "result": result,
        },
    )
