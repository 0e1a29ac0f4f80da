"""Account key materialization into a secret store.

The secret holding an account's keys follows the account's lifecycle: it
is written once the account reaches Succeeded and removed when the account
is deleted. Both operations are idempotent.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .client import ProvisioningClient
from .models import DesiredSpec, NamespacedName
from .security import log_security_audit_event

logger = logging.getLogger(__name__)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "cosmosdb-operator"

# Field names consumers read; the master keys keep their historical
# *ConnectionString names.
PRIMARY_MASTER_KEY_FIELD = "primaryConnectionString"
SECONDARY_MASTER_KEY_FIELD = "secondaryConnectionString"
PRIMARY_READONLY_KEY_FIELD = "primaryReadonlyMasterKey"
SECONDARY_READONLY_KEY_FIELD = "secondaryReadonlyMasterKey"


class SecretStore(Protocol):
    """Where materialized credential bundles are kept."""

    def upsert(self, key: NamespacedName, data: dict[str, bytes]) -> None: ...

    def delete(self, key: NamespacedName) -> None: ...


class KubernetesSecretStore:
    """SecretStore backed by Kubernetes Secrets."""

    def __init__(
        self,
        core_api: client.CoreV1Api | None = None,
        *,
        namespace_override: str | None = None,
        kubeconfig_path: Path | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            core_api: Pre-built CoreV1Api; loaded from cluster config when None.
            namespace_override: Write every secret to this namespace.
            kubeconfig_path: Kubeconfig used when in-cluster config is unavailable.
        """
        if core_api is None:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                logger.warning("In-cluster config unavailable, loading kubeconfig")
                config.load_kube_config(config_file=str(kubeconfig_path) if kubeconfig_path else None)
            core_api = client.CoreV1Api()

        self._api = core_api
        self._namespace_override = namespace_override

    def _namespace(self, key: NamespacedName) -> str:
        return self._namespace_override or key.namespace

    def upsert(self, key: NamespacedName, data: dict[str, bytes]) -> None:
        namespace = self._namespace(key)
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=key.name,
                namespace=namespace,
                labels={MANAGED_BY_LABEL: MANAGED_BY_VALUE},
            ),
            type="Opaque",
            data={name: base64.b64encode(value).decode("ascii") for name, value in data.items()},
        )

        try:
            self._api.create_namespaced_secret(namespace=namespace, body=body)
            logger.info("Secret created", extra={"secret": f"{namespace}/{key.name}"})
        except ApiException as e:
            if e.status != 409:
                raise
            self._api.replace_namespaced_secret(name=key.name, namespace=namespace, body=body)
            logger.info("Secret replaced", extra={"secret": f"{namespace}/{key.name}"})

    def delete(self, key: NamespacedName) -> None:
        namespace = self._namespace(key)
        try:
            self._api.delete_namespaced_secret(name=key.name, namespace=namespace)
            logger.info("Secret deleted", extra={"secret": f"{namespace}/{key.name}"})
        except ApiException as e:
            if e.status == 404:
                logger.debug("Secret already gone", extra={"secret": f"{namespace}/{key.name}"})
                return
            raise


class SecretMaterializer:
    """Derives the credential bundle of an account and keeps it in a SecretStore."""

    def __init__(
        self,
        provisioning_client: ProvisioningClient,
        store: SecretStore,
        *,
        audit: bool = True,
    ) -> None:
        self._client = provisioning_client
        self._store = store
        self._audit = audit

    def upsert(self, key: NamespacedName, desired: DesiredSpec) -> None:
        """Fetch the account keys and write them under ``key``.

        Raises:
            AzureError: If listing the keys fails.
            ApiException: If the secret store rejects the write.
        """
        bundle = self._client.list_keys(desired.resource_group, desired.name)
        data = {
            PRIMARY_MASTER_KEY_FIELD: bundle.primary_master_key.encode("utf-8"),
            SECONDARY_MASTER_KEY_FIELD: bundle.secondary_master_key.encode("utf-8"),
            PRIMARY_READONLY_KEY_FIELD: bundle.primary_readonly_master_key.encode("utf-8"),
            SECONDARY_READONLY_KEY_FIELD: bundle.secondary_readonly_master_key.encode("utf-8"),
        }

        try:
            self._store.upsert(key, data)
        except Exception:
            log_security_audit_event("secret", str(key), "upsert", "failure", enabled=self._audit)
            raise
        log_security_audit_event("secret", str(key), "upsert", "success", enabled=self._audit)

    def remove(self, key: NamespacedName) -> None:
        """Delete the secret under ``key``; a missing secret is not an error."""
        try:
            self._store.delete(key)
        except Exception:
            log_security_audit_event("secret", str(key), "delete", "failure", enabled=self._audit)
            raise
        log_security_audit_event("secret", str(key), "delete", "success", enabled=self._audit)
