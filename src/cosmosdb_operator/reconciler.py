"""Convergence of a CosmosDB object with its Azure account.

Each call to ensure() or delete() is one synchronous, non-blocking step:
1. Fingerprint the desired spec and short-circuit when already converged
2. Read the remote account and classify any error
3. Decide: no-op, create-or-update, wait, or stop (terminal)
4. Record the decision in the object's status
5. Materialize or remove the account-key secret as a side effect

Long-running Azure work is never awaited. "Still in progress" is reported
as an IN_PROGRESS outcome and the caller invokes again later; every path is
safe to repeat with the same desired state and status. The caller must
serialize invocations per object.

Expected remote conditions (still provisioning, already gone, rejected
location) are absorbed into the status. Only unexpected collaborator
failures produce a TRANSIENT outcome carrying an error. Terminal failures
never carry an error, so they are not retried forever.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from azure.core.exceptions import AzureError

from .client import ProvisioningClient
from .errors import (
    DELETED,
    LOCATION_REJECTED,
    PARENT_MISSING,
    RESOURCE_ABSENT,
    ErrorCategory,
    classify,
)
from .hashing import fingerprint
from .models import IN_FLIGHT_STATES, CosmosDB, ProvisioningState, convert, labels_to_tags
from .secret_store import SecretMaterializer

logger = logging.getLogger(__name__)

SUCCESS_MSG = "successfully provisioned"
FAILED_MSG = "Failed to provision CosmosDB"
SUBMITTED_MSG = "Resource request successfully submitted to Azure"
DELETE_SUBMITTED_MSG = "Deletion request submitted successfully"
NAME_EXISTS_MSG = "CosmosDB Account name already exists"


class OutcomeKind(str, Enum):
    """What the caller should do after an invocation."""

    READY = "ready"  # Converged (or deleted); nothing more to do
    IN_PROGRESS = "in_progress"  # Not converged yet; invoke again later
    TERMINAL = "terminal"  # Will not converge without a spec change; stop
    TRANSIENT = "transient"  # Unexpected failure; invoke again with backoff


@dataclass(frozen=True)
class Outcome:
    """Result of a single ensure() or delete() invocation."""

    kind: OutcomeKind
    message: str | None = None
    error: Exception | None = None

    @classmethod
    def ready(cls, message: str | None = None) -> Outcome:
        return cls(OutcomeKind.READY, message)

    @classmethod
    def in_progress(cls, message: str | None = None) -> Outcome:
        return cls(OutcomeKind.IN_PROGRESS, message)

    @classmethod
    def terminal(cls, message: str) -> Outcome:
        return cls(OutcomeKind.TERMINAL, message)

    @classmethod
    def transient(cls, error: Exception) -> Outcome:
        return cls(OutcomeKind.TRANSIENT, str(error), error)

    @property
    def done(self) -> bool:
        """True when no further invocation is needed (READY or TERMINAL)."""
        return self.kind in (OutcomeKind.READY, OutcomeKind.TERMINAL)

    @property
    def retry(self) -> bool:
        """True when the caller should invoke again."""
        return not self.done

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.kind.value,
            "message": self.message,
            "error": type(self.error).__name__ if self.error else None,
        }


def _write_back_status(obj: Any, instance: CosmosDB) -> None:
    """Copy the status of a converted mapping back into the caller's object."""
    if obj is not instance and isinstance(obj, MutableMapping):
        obj["status"] = instance.status.to_dict()


class CosmosDBReconciler:
    """Drives CosmosDB objects toward their desired state.

    Collaborators are injected at construction and never replaced; the
    reconciler holds no per-object state between calls.
    """

    def __init__(
        self,
        provisioning_client: ProvisioningClient,
        secrets: SecretMaterializer,
    ) -> None:
        """Initialize the reconciler.

        Args:
            provisioning_client: Remote Cosmos DB operations.
            secrets: Materializer for the account-key secret.
        """
        self._client = provisioning_client
        self._secrets = secrets

    def ensure(self, obj: Any) -> Outcome:
        """Converge the account toward obj.spec, updating obj.status.

        A mapping input gets its ``status`` entry replaced with the
        serialized result.

        Raises:
            TypeMismatchError: If obj is not a CosmosDB.
        """
        instance = convert(obj)
        outcome = self._ensure(instance)
        _write_back_status(obj, instance)
        return outcome

    def delete(self, obj: Any) -> Outcome:
        """Remove the account and its key secret.

        READY means the account is gone (or was never created); IN_PROGRESS
        means deletion was submitted and the caller must invoke again.

        Raises:
            TypeMismatchError: If obj is not a CosmosDB.
        """
        instance = convert(obj)
        outcome = self._delete(instance)
        _write_back_status(obj, instance)
        return outcome

    def _ensure(self, instance: CosmosDB) -> Outcome:
        status = instance.status
        desired = instance.desired()
        spec_hash = fingerprint(desired)
        log_extra = {"resource_group": desired.resource_group, "account": desired.name}

        if status.provisioned and status.spec_hash == spec_hash:
            status.requested_at = None
            return Outcome.ready()

        status.provisioned = False

        try:
            account = self._client.get(desired.resource_group, desired.name)
        except AzureError as e:
            classified = classify(e)
            if classified.category in PARENT_MISSING:
                status.provisioning = False
                status.message = str(classified)
                status.state = ProvisioningState.WAITING.value
                logger.info("Waiting for resource group", extra={**log_extra, "code": classified.code})
                return Outcome.in_progress(status.message)
            if classified.category not in RESOURCE_ABSENT:
                status.message = f"Unhandled error after get: {classified}"
                logger.warning(
                    "Unhandled error reading account, continuing",
                    extra={**log_extra, "category": classified.category.value, "error": str(e)},
                )
        else:
            status.resource_id = account.id
            status.state = account.provisioning_state
            # The account exists in Azure, so delete must reach it
            status.failed_provisioning = False

        if status.state in IN_FLIGHT_STATES:
            # A remote operation is outstanding; do not submit another
            return Outcome.in_progress(status.message)

        if status.state == ProvisioningState.SUCCEEDED and status.spec_hash == spec_hash:
            return self._complete(instance, log_extra)

        if status.state == ProvisioningState.FAILED:
            status.message = FAILED_MSG
            status.provisioning = False
            status.provisioned = False
            logger.error("Account is in Failed state", extra=log_extra)
            return Outcome.terminal(FAILED_MSG)

        try:
            account = self._client.create_or_update(
                resource_group=desired.resource_group,
                name=desired.name,
                location=desired.location,
                kind=desired.kind,
                offer_type=desired.offer_type,
                tags=labels_to_tags(desired.labels),
            )
        except AzureError as e:
            return self._handle_create_error(instance, e, spec_hash, log_extra)

        status.spec_hash = spec_hash
        status.resource_id = account.id
        status.state = account.provisioning_state
        status.provisioning = False
        status.failed_provisioning = False
        status.message = SUCCESS_MSG
        logger.info(
            "Create or update returned",
            extra={**log_extra, "provisioning_state": account.provisioning_state},
        )

        # Optimistic: only claim provisioned when the response already says so,
        # and make sure the keys exist before claiming it. The next get()
        # re-derives the actual remote state either way.
        if account.provisioning_state == ProvisioningState.SUCCEEDED:
            outcome = self._complete(instance, log_extra)
            if outcome.kind is OutcomeKind.TRANSIENT:
                return outcome
        return Outcome.in_progress(status.message)

    def _delete(self, instance: CosmosDB) -> Outcome:
        status = instance.status
        desired = instance.desired()
        log_extra = {"resource_group": desired.resource_group, "account": desired.name}

        if status.failed_provisioning:
            # Nothing was durably created in Azure
            logger.info("Skipping remote delete for failed provisioning", extra=log_extra)
            return Outcome.ready()

        try:
            self._client.delete(desired.resource_group, desired.name)
        except AzureError as e:
            classified = classify(e)

            if classified.category is ErrorCategory.TRANSIENT_ASYNC:
                status.message = DELETE_SUBMITTED_MSG
                return Outcome.in_progress(DELETE_SUBMITTED_MSG)

            if classified.category not in DELETED:
                status.message = str(classified)
                logger.error(
                    "Unhandled error deleting account",
                    extra={**log_extra, "category": classified.category.value, "error": str(e)},
                )
                return Outcome.transient(e)

            logger.info("Account already gone", extra={**log_extra, "code": classified.code})

        return self._remove_secret(instance, log_extra)

    def _complete(self, instance: CosmosDB, log_extra: dict[str, Any]) -> Outcome:
        """Materialize the key secret and mark the account provisioned."""
        status = instance.status
        try:
            self._secrets.upsert(instance.key, instance.desired())
        except Exception as e:
            status.message = str(e)
            status.provisioned = False
            logger.error("Failed to materialize account keys", extra={**log_extra, "error": str(e)})
            return Outcome.transient(e)

        status.message = SUCCESS_MSG
        status.provisioning = False
        status.provisioned = True
        status.requested_at = None
        logger.info("Account provisioned", extra=log_extra)
        return Outcome.ready(SUCCESS_MSG)

    def _remove_secret(self, instance: CosmosDB, log_extra: dict[str, Any]) -> Outcome:
        try:
            self._secrets.remove(instance.key)
        except Exception as e:
            instance.status.message = str(e)
            logger.error("Failed to remove account keys", extra={**log_extra, "error": str(e)})
            return Outcome.transient(e)
        return Outcome.ready()

    def _handle_create_error(
        self,
        instance: CosmosDB,
        error: AzureError,
        spec_hash: str,
        log_extra: dict[str, Any],
    ) -> Outcome:
        status = instance.status
        classified = classify(error)
        category = classified.category

        if category is ErrorCategory.TRANSIENT_ASYNC:
            # The submitted spec is what the pending operation will converge to
            status.spec_hash = spec_hash
            status.state = ProvisioningState.CREATING.value
            status.provisioning = True
            status.failed_provisioning = False
            status.message = SUBMITTED_MSG
            if status.requested_at is None:
                status.requested_at = datetime.now(UTC)
            logger.info("Create or update submitted", extra=log_extra)
            return Outcome.in_progress(SUBMITTED_MSG)

        if category in LOCATION_REJECTED:
            status.provisioning = False
            status.failed_provisioning = True
            status.message = str(classified)
            logger.error("Location rejected", extra={**log_extra, "code": classified.code})
            return Outcome.terminal(status.message)

        if category in PARENT_MISSING:
            status.provisioning = False
            status.message = str(classified)
            return Outcome.in_progress(status.message)

        if category is ErrorCategory.NOT_FOUND_CODE:
            # Ambiguous: the name may be taken by an account elsewhere
            try:
                name_exists = self._client.check_name_exists(instance.name)
            except AzureError as e:
                status.message = str(e)
                logger.error("Account name check failed", extra={**log_extra, "error": str(e)})
                return Outcome.transient(e)
            if name_exists:
                status.provisioning = False
                status.failed_provisioning = True
                status.message = NAME_EXISTS_MSG
                logger.error("Account name already taken", extra=log_extra)
                return Outcome.terminal(NAME_EXISTS_MSG)

        status.message = str(classified)
        logger.warning(
            "Create or update failed",
            extra={**log_extra, "category": category.value, "error": str(error)},
        )
        return Outcome.in_progress(status.message)
