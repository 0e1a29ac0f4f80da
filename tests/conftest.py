"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from azure_mock import MockCosmosDBClient, MockSecretStore  # noqa: E402

from cosmosdb_operator.models import CosmosDB  # noqa: E402
from cosmosdb_operator.reconciler import CosmosDBReconciler  # noqa: E402
from cosmosdb_operator.secret_store import SecretMaterializer  # noqa: E402


def make_cosmosdb(**overrides) -> CosmosDB:
    """Build the CosmosDB used across tests: db1 in rg1/eastus."""
    data = {
        "apiVersion": "azure.microsoft.com/v1alpha1",
        "kind": "CosmosDB",
        "metadata": {"name": "db1", "namespace": "default", "labels": {"team": "data"}},
        "spec": {
            "resourceGroup": "rg1",
            "location": "eastus",
            "kind": "GlobalDocumentDB",
            "properties": {"databaseAccountOfferType": "Standard"},
        },
    }
    for section in ("metadata", "spec"):
        data[section].update(overrides.pop(section, {}))
    data.update(overrides)
    return CosmosDB.model_validate(data)


@pytest.fixture
def cosmosdb() -> CosmosDB:
    return make_cosmosdb()


@pytest.fixture
def client() -> MockCosmosDBClient:
    return MockCosmosDBClient()


@pytest.fixture
def secret_store() -> MockSecretStore:
    return MockSecretStore()


@pytest.fixture
def reconciler(client: MockCosmosDBClient, secret_store: MockSecretStore) -> CosmosDBReconciler:
    return CosmosDBReconciler(client, SecretMaterializer(client, secret_store))
