"""Cosmos DB management-plane client.

Wraps azure-mgmt-cosmosdb behind the small ProvisioningClient interface the
reconciler depends on.

NON-BLOCKING: long-running operations are submitted with polling disabled.
A request the service accepted but has not finished (HTTP 202) is reported
as OperationInProgressError; the caller observes completion on a later
invocation through get(). No poller threads are started.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from azure.mgmt.cosmosdb import CosmosDBManagementClient
from azure.mgmt.cosmosdb.models import (
    DatabaseAccountCreateUpdateParameters,
    DatabaseAccountGetResults,
    DatabaseAccountListKeysResult,
    Location,
)

from .errors import OperationInProgressError

if TYPE_CHECKING:
    from azure.core.credentials import TokenCredential

logger = logging.getLogger(__name__)

HTTP_ACCEPTED = 202


@dataclass(frozen=True)
class DatabaseAccount:
    """Provider-side view of a Cosmos DB account."""

    id: str
    name: str
    provisioning_state: str
    location: str | None = None

    @classmethod
    def from_sdk(cls, result: DatabaseAccountGetResults) -> DatabaseAccount:
        return cls(
            id=result.id or "",
            name=result.name or "",
            provisioning_state=result.provisioning_state or "",
            location=result.location,
        )


@dataclass(frozen=True)
class CredentialBundle:
    """Account keys returned by the provider."""

    primary_master_key: str
    secondary_master_key: str
    primary_readonly_master_key: str
    secondary_readonly_master_key: str

    @classmethod
    def from_sdk(cls, result: DatabaseAccountListKeysResult) -> CredentialBundle:
        return cls(
            primary_master_key=result.primary_master_key or "",
            secondary_master_key=result.secondary_master_key or "",
            primary_readonly_master_key=result.primary_readonly_master_key or "",
            secondary_readonly_master_key=result.secondary_readonly_master_key or "",
        )


class ProvisioningClient(Protocol):
    """Operations the reconciler performs against the remote provider.

    Implementations raise azure.core.exceptions.AzureError subclasses;
    classification happens in errors.classify().
    """

    def get(self, resource_group: str, name: str) -> DatabaseAccount: ...

    def create_or_update(
        self,
        resource_group: str,
        name: str,
        location: str,
        kind: str,
        offer_type: str,
        tags: dict[str, str],
    ) -> DatabaseAccount: ...

    def delete(self, resource_group: str, name: str) -> None: ...

    def list_keys(self, resource_group: str, name: str) -> CredentialBundle: ...

    def check_name_exists(self, name: str) -> bool: ...


def _status_and_body(pipeline_response: Any, deserialized: Any, _headers: Any) -> tuple[int, Any]:
    """LRO output hook returning the initial HTTP status with the body."""
    return pipeline_response.http_response.status_code, deserialized


class CosmosDBClient:
    """ProvisioningClient backed by CosmosDBManagementClient."""

    def __init__(
        self,
        credential: TokenCredential,
        subscription_id: str,
        *,
        management_client: CosmosDBManagementClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            credential: Azure credential (managed identity in production).
            subscription_id: Subscription holding the accounts.
            management_client: Pre-built SDK client, mainly for tests.
        """
        self._subscription_id = subscription_id
        self._client = management_client or CosmosDBManagementClient(
            credential=credential,
            subscription_id=subscription_id,
        )

    def get(self, resource_group: str, name: str) -> DatabaseAccount:
        result = self._client.database_accounts.get(
            resource_group_name=resource_group,
            account_name=name,
        )
        return DatabaseAccount.from_sdk(result)

    def create_or_update(
        self,
        resource_group: str,
        name: str,
        location: str,
        kind: str,
        offer_type: str,
        tags: dict[str, str],
    ) -> DatabaseAccount:
        parameters = DatabaseAccountCreateUpdateParameters(
            location=location,
            tags=tags,
            kind=kind,
            database_account_offer_type=offer_type,
            locations=[Location(location_name=location, failover_priority=0)],
        )
        poller = self._client.database_accounts.begin_create_or_update(
            resource_group_name=resource_group,
            account_name=name,
            create_update_parameters=parameters,
            polling=False,
            cls=_status_and_body,
        )
        status_code, body = poller.result()

        if status_code == HTTP_ACCEPTED or body is None:
            logger.info(
                "Create or update accepted",
                extra={"resource_group": resource_group, "account": name},
            )
            raise OperationInProgressError(
                f"Create or update of Cosmos DB account '{name}' has not completed"
            )
        return DatabaseAccount.from_sdk(body)

    def delete(self, resource_group: str, name: str) -> None:
        poller = self._client.database_accounts.begin_delete(
            resource_group_name=resource_group,
            account_name=name,
            polling=False,
            cls=_status_and_body,
        )
        status_code, _ = poller.result()

        if status_code == HTTP_ACCEPTED:
            logger.info(
                "Delete accepted",
                extra={"resource_group": resource_group, "account": name},
            )
            raise OperationInProgressError(f"Deletion of Cosmos DB account '{name}' has not completed")

    def list_keys(self, resource_group: str, name: str) -> CredentialBundle:
        result = self._client.database_accounts.list_keys(
            resource_group_name=resource_group,
            account_name=name,
        )
        return CredentialBundle.from_sdk(result)

    def check_name_exists(self, name: str) -> bool:
        return bool(self._client.database_accounts.check_name_exists(account_name=name))
