"""Azure mock for integration testing.

In-memory stand-ins for the Cosmos DB management plane, the secret store
and the managed identity credential.

Key Features:
- Accounts move through Creating/Updating -> Succeeded on complete_operations()
- Optional 202 Accepted behavior for create/update and delete
- ARM error codes on failures (ResourceGroupNotFound, NotFound, ...)
- One-shot error injection per operation
- Call recording for "zero remote calls" style assertions

Usage:
    from azure_mock import MockCosmosDBClient, MockSecretStore

    client = MockCosmosDBClient()
    store = MockSecretStore()
    reconciler = CosmosDBReconciler(client, SecretMaterializer(client, store))
"""

from .context import MockAzureContext
from .cosmosdb import MOCK_SUBSCRIPTION_ID, MockAccount, MockCosmosDBClient, azure_error
from .credential import MockManagedIdentityCredential, create_mock_credential
from .secret_store import MockSecretStore

__all__ = [
    "MOCK_SUBSCRIPTION_ID",
    "MockAccount",
    "MockAzureContext",
    "MockCosmosDBClient",
    "MockManagedIdentityCredential",
    "MockSecretStore",
    "azure_error",
    "create_mock_credential",
]
