"""Classification of Azure provisioning errors.

Azure reports failures through several shapes: HttpResponseError with an
ARM error code, bare 404s without a code, and long-running operations that
were accepted but have not finished. The reconciler only needs to know
which of a small, closed set of situations it is in, so every error is
mapped to exactly one ErrorCategory here. Both ensure and delete consult
this table; nothing else inspects error codes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError


class OperationInProgressError(AzureError):
    """A long-running operation was accepted but has not completed yet."""

    pass


class ErrorCategory(str, Enum):
    """Closed taxonomy of provisioning errors."""

    TRANSIENT_ASYNC = "transient-async"
    RESOURCE_GROUP_NOT_FOUND = "resource-group-not-found"
    PARENT_NOT_FOUND = "parent-not-found"
    RESOURCE_NOT_FOUND = "resource-not-found"
    NOT_FOUND_CODE = "not-found-code"
    INVALID_LOCATION = "invalid-location"
    LOCATION_UNAVAILABLE = "location-unavailable"
    UNCLASSIFIED = "unclassified"


# ARM error code -> category
ERROR_CODE_CATEGORIES: dict[str, ErrorCategory] = {
    "AsyncOpIncomplete": ErrorCategory.TRANSIENT_ASYNC,
    "ResourceGroupNotFound": ErrorCategory.RESOURCE_GROUP_NOT_FOUND,
    "ParentResourceNotFound": ErrorCategory.PARENT_NOT_FOUND,
    "ResourceNotFound": ErrorCategory.RESOURCE_NOT_FOUND,
    "NotFound": ErrorCategory.NOT_FOUND_CODE,
    "InvalidResourceLocation": ErrorCategory.INVALID_LOCATION,
    "LocationNotAvailableForResourceType": ErrorCategory.LOCATION_UNAVAILABLE,
}

# Category families used by the reconciler
PARENT_MISSING: frozenset[ErrorCategory] = frozenset(
    {ErrorCategory.RESOURCE_GROUP_NOT_FOUND, ErrorCategory.PARENT_NOT_FOUND}
)
RESOURCE_ABSENT: frozenset[ErrorCategory] = frozenset(
    {ErrorCategory.RESOURCE_NOT_FOUND, ErrorCategory.NOT_FOUND_CODE}
)
LOCATION_REJECTED: frozenset[ErrorCategory] = frozenset(
    {ErrorCategory.INVALID_LOCATION, ErrorCategory.LOCATION_UNAVAILABLE}
)
# Outcomes of a delete that mean the account is gone
DELETED: frozenset[ErrorCategory] = PARENT_MISSING | RESOURCE_ABSENT

# Fallback for errors whose code only survives in the message text,
# e.g. "(ResourceGroupNotFound) Resource group 'rg1' could not be found."
_CODE_IN_MESSAGE = re.compile(r"^\((?P<code>[A-Za-z]+)\)|Code: (?P<label>[A-Za-z]+)", re.MULTILINE)


@dataclass(frozen=True)
class ClassifiedError:
    """An error together with its category and the code it was derived from."""

    category: ErrorCategory
    code: str | None
    message: str

    def __str__(self) -> str:
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message


def _error_code(error: BaseException) -> str | None:
    """Extract the ARM error code from an Azure SDK error, if any."""
    odata = getattr(error, "error", None)
    code = getattr(odata, "code", None)
    if code:
        return str(code)

    match = _CODE_IN_MESSAGE.search(str(error))
    if match:
        return match.group("code") or match.group("label")
    return None


def _error_message(error: BaseException) -> str:
    odata = getattr(error, "error", None)
    message = getattr(odata, "message", None)
    if message:
        return str(message)
    return getattr(error, "message", None) or str(error) or type(error).__name__


def classify(error: BaseException) -> ClassifiedError:
    """Map any error to exactly one ErrorCategory.

    Pure and total: unknown inputs map to UNCLASSIFIED.
    """
    message = _error_message(error)

    if isinstance(error, OperationInProgressError):
        return ClassifiedError(ErrorCategory.TRANSIENT_ASYNC, None, message)

    code = _error_code(error) if isinstance(error, AzureError) else None
    if code is not None and code in ERROR_CODE_CATEGORIES:
        return ClassifiedError(ERROR_CODE_CATEGORIES[code], code, message)

    if isinstance(error, ResourceNotFoundError) or (
        isinstance(error, HttpResponseError) and error.status_code == 404
    ):
        return ClassifiedError(ErrorCategory.NOT_FOUND_CODE, code or "NotFound", message)

    return ClassifiedError(ErrorCategory.UNCLASSIFIED, code, message)
