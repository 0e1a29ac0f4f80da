"""Pydantic models for the CosmosDB desired-state object and its status.

These models provide:
1. Type-safe manifest parsing
2. Validation at the boundary (fail fast, fail loudly)
3. The immutable DesiredSpec view consumed by the reconciler
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import (
    MAX_ACCOUNT_NAME_LENGTH,
    MAX_RESOURCE_GROUP_NAME_LENGTH,
    MIN_ACCOUNT_NAME_LENGTH,
)

COSMOSDB_KIND = "CosmosDB"
RESOURCE_GROUP_KIND = "ResourceGroup"

VALID_ACCOUNT_NAME_PATTERN = r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$"

# Characters Azure rejects in tag names
INVALID_TAG_NAME_CHARS = "<>%&\\?/"


class TypeMismatchError(TypeError):
    """Raised when an object handed to the reconciler is not a CosmosDB."""

    pass


class ProvisioningState(str, Enum):
    """Provisioning states tracked in the observed status.

    The remote account may report other values (Updating, Deleting, ...);
    those are stored verbatim and treated as non-terminal.
    """

    UNKNOWN = "Unknown"
    WAITING = "Waiting"
    CREATING = "Creating"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


# Remote states in which a submitted operation is still running
IN_FLIGHT_STATES: frozenset[str] = frozenset({"Creating", "Updating", "Deleting"})


class DatabaseAccountKind(str, Enum):
    """Cosmos DB account API kinds."""

    GLOBAL_DOCUMENT_DB = "GlobalDocumentDB"
    MONGO_DB = "MongoDB"
    PARSE = "Parse"


@dataclass(frozen=True)
class NamespacedName:
    """Identity of a namespaced object (secret key, dependency key)."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class KubeParent:
    """An owning object the caller must track for dependency ordering."""

    key: NamespacedName
    target: str = RESOURCE_GROUP_KIND


@dataclass(frozen=True)
class DesiredSpec:
    """Immutable per-invocation view of what the account should look like."""

    resource_group: str
    name: str
    location: str
    kind: str
    offer_type: str
    labels: dict[str, str] = field(default_factory=dict)

    def to_fingerprint_input(self) -> dict[str, Any]:
        """Field mapping hashed by the SpecHasher."""
        return {
            "resourceGroup": self.resource_group,
            "name": self.name,
            "location": self.location,
            "kind": self.kind,
            "databaseAccountOfferType": self.offer_type,
            "labels": dict(self.labels),
        }


# =============================================================================
# Desired-state object
# =============================================================================


class CosmosDBProperties(BaseModel):
    """Account-level properties."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    database_account_offer_type: str = Field("Standard", alias="databaseAccountOfferType")

    @field_validator("database_account_offer_type")
    @classmethod
    def validate_offer_type(cls, v: str) -> str:
        # Standard is the only offer type the service accepts
        if v != "Standard":
            raise ValueError("databaseAccountOfferType must be 'Standard'")
        return v


class CosmosDBSpec(BaseModel):
    """Desired configuration of a Cosmos DB account."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    location: Annotated[str, Field(min_length=1)]
    resource_group: Annotated[
        str, Field(min_length=1, max_length=MAX_RESOURCE_GROUP_NAME_LENGTH, alias="resourceGroup")
    ]
    kind: DatabaseAccountKind = DatabaseAccountKind.GLOBAL_DOCUMENT_DB
    properties: CosmosDBProperties = Field(default_factory=CosmosDBProperties)


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata the operator relies on."""

    model_config = {"extra": "ignore"}

    name: Annotated[str, Field(min_length=MIN_ACCOUNT_NAME_LENGTH, max_length=MAX_ACCOUNT_NAME_LENGTH)]
    namespace: str = "default"
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not re.match(VALID_ACCOUNT_NAME_PATTERN, v):
            raise ValueError(
                "name must contain only lowercase letters, digits and hyphens, "
                "and start and end with a letter or digit"
            )
        return v


class ObservedStatus(BaseModel):
    """Status record written by the reconciler and persisted by the caller."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    spec_hash: str = Field("", alias="specHash")
    state: str = ProvisioningState.UNKNOWN.value
    provisioning: bool = False
    provisioned: bool = False
    failed_provisioning: bool = Field(False, alias="failedProvisioning")
    resource_id: str | None = Field(None, alias="resourceId")
    message: str | None = None
    requested_at: datetime | None = Field(None, alias="requestedAt")

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys for persistence."""
        return self.model_dump(by_alias=True, mode="json")


class CosmosDB(BaseModel):
    """The CosmosDB desired-state object handed to the reconciler."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    api_version: str = Field("azure.microsoft.com/v1alpha1", alias="apiVersion")
    kind: Literal["CosmosDB"] = COSMOSDB_KIND
    metadata: ObjectMeta
    spec: CosmosDBSpec
    status: ObservedStatus = Field(default_factory=ObservedStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(namespace=self.metadata.namespace, name=self.metadata.name)

    def desired(self) -> DesiredSpec:
        """Build the immutable DesiredSpec for this invocation."""
        return DesiredSpec(
            resource_group=self.spec.resource_group,
            name=self.metadata.name,
            location=self.spec.location,
            kind=self.spec.kind.value,
            offer_type=self.spec.properties.database_account_offer_type,
            labels=dict(self.metadata.labels),
        )


# =============================================================================
# Boundary helpers
# =============================================================================


def convert(obj: Any) -> CosmosDB:
    """Convert a caller-supplied object into a CosmosDB.

    Accepts a CosmosDB instance, or a mapping declaring ``kind: CosmosDB``
    that validates against the model.

    Raises:
        TypeMismatchError: If the object is any other variant.
    """
    if isinstance(obj, CosmosDB):
        return obj

    if isinstance(obj, Mapping):
        kind = obj.get("kind")
        if kind != COSMOSDB_KIND:
            raise TypeMismatchError(f"failed type conversion on kind: {kind}")
        try:
            return CosmosDB.model_validate(obj)
        except ValidationError as e:
            raise TypeMismatchError(f"object of kind {kind} is not a valid CosmosDB: {e}") from e

    raise TypeMismatchError(f"failed type conversion on kind: {type(obj).__name__}")


def get_parents(obj: Any) -> list[KubeParent]:
    """Return the owning resource group of a CosmosDB for dependency tracking."""
    instance = convert(obj)
    return [
        KubeParent(
            key=NamespacedName(namespace=instance.namespace, name=instance.spec.resource_group),
            target=RESOURCE_GROUP_KIND,
        )
    ]


def get_status(obj: Any) -> ObservedStatus:
    """Return the live status record of a CosmosDB."""
    return convert(obj).status


def labels_to_tags(labels: Mapping[str, str] | None) -> dict[str, str]:
    """Translate object labels into Azure resource tags.

    Azure rejects some characters in tag names (notably ``/``, common in
    Kubernetes label prefixes); they are replaced with ``.``.
    """
    tags: dict[str, str] = {}
    for name, value in (labels or {}).items():
        tag_name = "".join("." if ch in INVALID_TAG_NAME_CHARS else ch for ch in name)
        tags[tag_name] = value
    return tags
