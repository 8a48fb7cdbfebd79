"""Remote error classification.

Every error surfaced by the control plane is mapped into the closed
OutcomeCategory vocabulary. Classification runs in two stages:

1. error_kind() reduces an arbitrary exception to a RemoteErrorKind. This is
   an explicit, ordered match: service error codes first (the most specific
   signal ARM gives us), then the azure-core exception type, then the HTTP
   status code, and finally UNRECOGNIZED. Exceptions that are not azure-core
   errors are always UNRECOGNIZED.
2. classify() maps the kind to a category. The only place message text is
   inspected is the access-denied branch, where mentions_tagging_action()
   separates tagging permission failures from generic ones.

DESIGN CONSTRAINT: classify() is total. It never raises and never returns a
raw remote error to the caller.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceModifiedError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)

from .outcomes import OutcomeCategory

logger = logging.getLogger(__name__)

# Log line used by metric filters. Changing it breaks dashboards.
EXCEPTION_LOG_PATTERN = "[EXCEPTION] Operation: %s, ExceptionType: %s"


class RemoteErrorKind(str, Enum):
    """Closed set of remote failure shapes."""

    DUPLICATE = "duplicate"
    MISSING = "missing"
    QUOTA = "quota"
    MALFORMED = "malformed"
    RATE_LIMITED = "rate_limited"
    SERVER_FAULT = "server_fault"
    ACCESS_DENIED = "access_denied"
    STALE_VERSION = "stale_version"
    TRANSPORT = "transport"
    UNRECOGNIZED = "unrecognized"


# =============================================================================
# Service error code tables
# =============================================================================

THROTTLING_ERROR_CODES = frozenset(
    {
        "TooManyRequests",
        "Throttled",
        "ThrottlingException",
        "TooManyUpdates",
        "SubscriptionRequestsThrottled",
        "TenantRequestsThrottled",
        "ResourceRequestsThrottled",
        "AnotherOperationInProgress",
    }
)

QUOTA_ERROR_CODES = frozenset(
    {
        "QuotaExceeded",
        "LimitExceeded",
        "TooManyTags",
        "ResourceCountExceedsLimit",
    }
)

STALE_VERSION_ERROR_CODES = frozenset(
    {
        "PreconditionFailed",
        "ResourceModified",
        "ConditionNotMet",
    }
)

ACCESS_DENIED_ERROR_CODES = frozenset(
    {
        "AuthorizationFailed",
        "LinkedAuthorizationFailed",
        "AccessDenied",
        "AccessDeniedException",
        "Forbidden",
    }
)

MISSING_ERROR_CODES = frozenset(
    {
        "ResourceNotFound",
        "ResourceGroupNotFound",
        "ParentResourceNotFound",
        "NotFound",
    }
)

DUPLICATE_ERROR_CODES = frozenset(
    {
        "ResourceExists",
        "AlreadyExists",
        "ResourceAlreadyExists",
    }
)

SERVER_FAULT_ERROR_CODES = frozenset(
    {
        "InternalServerError",
        "InternalError",
        "ServiceUnavailable",
        "GatewayTimeout",
    }
)

MALFORMED_ERROR_CODES = frozenset(
    {
        "BadRequest",
        "MissingRequiredParameter",
        "UnsupportedApiVersion",
        "LinkedInvalidPropertyId",
    }
)

# Tagging actions as they appear in access-denied messages, e.g.
# "does not have authorization to perform action 'Microsoft.Resources/tags/write'"
# or "not authorized to perform: ssm:AddTagsToResource".
TAGGING_ACTION_PATTERN = re.compile(
    r"(AddTagsToResource|RemoveTagsFromResource|ListTagsForResource|\bTagResource\b|\bUntagResource\b"
    r"|Microsoft\.Resources/tags/(read|write|delete))",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Classification:
    """A classified remote error.

    Attributes:
        category: Outcome category driving retry-vs-fail.
        message: Human-readable message for the end user.
        error: The original error, preserved for diagnostics.
    """

    category: OutcomeCategory
    message: str
    error: BaseException | None = None


def error_code(error: BaseException) -> str | None:
    """Extract the service error code from an azure-core error, if any."""
    odata = getattr(error, "error", None)
    code = getattr(odata, "code", None)
    if isinstance(code, str) and code:
        return code
    return None


def error_message(error: BaseException) -> str:
    """Extract the most specific human-readable message from an error."""
    odata = getattr(error, "error", None)
    odata_message = getattr(odata, "message", None)
    if isinstance(odata_message, str) and odata_message:
        return odata_message
    if isinstance(error, AzureError) and error.message:
        return str(error.message)
    return str(error) or type(error).__name__


def _kind_from_code(code: str) -> RemoteErrorKind | None:
    if code in THROTTLING_ERROR_CODES:
        return RemoteErrorKind.RATE_LIMITED
    if code in QUOTA_ERROR_CODES or code.endswith(("LimitExceeded", "QuotaExceeded")):
        return RemoteErrorKind.QUOTA
    if code in STALE_VERSION_ERROR_CODES:
        return RemoteErrorKind.STALE_VERSION
    if code in ACCESS_DENIED_ERROR_CODES:
        return RemoteErrorKind.ACCESS_DENIED
    if code in MISSING_ERROR_CODES or code.endswith("NotFound"):
        return RemoteErrorKind.MISSING
    if code in DUPLICATE_ERROR_CODES or code.endswith("AlreadyExists"):
        return RemoteErrorKind.DUPLICATE
    if code in SERVER_FAULT_ERROR_CODES:
        return RemoteErrorKind.SERVER_FAULT
    if code in MALFORMED_ERROR_CODES or code.startswith("Invalid"):
        return RemoteErrorKind.MALFORMED
    return None


def _kind_from_status(status: int | None) -> RemoteErrorKind:
    if status is None:
        return RemoteErrorKind.UNRECOGNIZED
    if status == 429:
        return RemoteErrorKind.RATE_LIMITED
    if status >= 500:
        return RemoteErrorKind.SERVER_FAULT
    if status in (401, 403):
        return RemoteErrorKind.ACCESS_DENIED
    if status == 404:
        return RemoteErrorKind.MISSING
    if status == 409:
        return RemoteErrorKind.DUPLICATE
    if status == 412:
        return RemoteErrorKind.STALE_VERSION
    if status in (400, 422):
        return RemoteErrorKind.MALFORMED
    return RemoteErrorKind.UNRECOGNIZED


def error_kind(error: BaseException) -> RemoteErrorKind:
    """Reduce an error to its RemoteErrorKind.

    Args:
        error: Any exception raised by a remote call.

    Returns:
        The matching kind; UNRECOGNIZED when nothing matches.
    """
    if not isinstance(error, AzureError):
        return RemoteErrorKind.UNRECOGNIZED

    # ARM reuses 409 for "another operation in progress" and 400 for quota
    # failures, so the code is more reliable than the exception type.
    code = error_code(error)
    if code is not None:
        kind = _kind_from_code(code)
        if kind is not None:
            return kind

    if isinstance(error, (ServiceRequestError, ServiceResponseError)):
        return RemoteErrorKind.TRANSPORT
    if isinstance(error, ResourceNotFoundError):
        return RemoteErrorKind.MISSING
    if isinstance(error, ResourceExistsError):
        return RemoteErrorKind.DUPLICATE
    if isinstance(error, ResourceModifiedError):
        return RemoteErrorKind.STALE_VERSION
    if isinstance(error, ClientAuthenticationError):
        return RemoteErrorKind.ACCESS_DENIED
    if isinstance(error, HttpResponseError):
        return _kind_from_status(error.status_code)
    return RemoteErrorKind.UNRECOGNIZED


def mentions_tagging_action(message: str | None) -> bool:
    """Heuristic: does an access-denied message name a tagging action?

    This is the single place classification depends on message text. It is
    only consulted for errors already known to be access-denied.
    """
    if not message:
        return False
    return TAGGING_ACTION_PATTERN.search(message) is not None


def classify(
    error: BaseException,
    *,
    type_name: str = "resource",
    operation: str | None = None,
    identifier: str | None = None,
    request: Any | None = None,
) -> Classification:
    """Classify a remote error into an outcome category.

    Args:
        error: Error raised by the remote call.
        type_name: Resource kind name used in messages.
        operation: Remote operation name (e.g. "CreateResource").
        identifier: Identifier of the resource the call targeted.
        request: Safe summary of the offending request, included in
            invalid-request messages.

    Returns:
        Classification with category, message and the original error.
    """
    kind = error_kind(error)
    detail = error_message(error)
    op = operation or "remote call"
    target = identifier or "<unknown>"

    logger.info(EXCEPTION_LOG_PATTERN, op, type(error).__name__)

    if kind == RemoteErrorKind.DUPLICATE:
        category = OutcomeCategory.ALREADY_EXISTS
        message = f"Resource of type '{type_name}' with identifier '{target}' already exists."
    elif kind == RemoteErrorKind.MISSING:
        category = OutcomeCategory.NOT_FOUND
        message = f"Resource of type '{type_name}' with identifier '{target}' was not found."
    elif kind == RemoteErrorKind.QUOTA:
        category = OutcomeCategory.LIMIT_EXCEEDED
        message = f"Limit exceeded for resource of type '{type_name}'. Reason: {detail}"
    elif kind in (RemoteErrorKind.MALFORMED, RemoteErrorKind.STALE_VERSION):
        # A stale version token is a legitimate conflict; it is reported, not retried.
        category = OutcomeCategory.INVALID_REQUEST
        message = f"Invalid request provided: {detail}"
        if request is not None:
            message = f"{message} Request: {request}"
    elif kind == RemoteErrorKind.RATE_LIMITED:
        category = OutcomeCategory.THROTTLED
        message = f"Rate exceeded for operation '{op}'. Reason: {detail}"
    elif kind == RemoteErrorKind.SERVER_FAULT:
        category = OutcomeCategory.INTERNAL_ERROR
        message = f"Internal error reported from downstream service during operation '{op}'."
    elif kind == RemoteErrorKind.TRANSPORT:
        category = OutcomeCategory.NETWORK_FAILURE
        message = f"Network failure during operation '{op}': {detail}"
    elif kind == RemoteErrorKind.ACCESS_DENIED:
        # Tagging check first: the raw code is the same for both.
        if mentions_tagging_action(detail) or mentions_tagging_action(str(error)):
            category = OutcomeCategory.TAG_PERMISSION_DENIED
            message = f"Unauthorized tagging operation during '{op}': {detail}"
        else:
            category = OutcomeCategory.ACCESS_DENIED
            message = f"Access denied for operation '{op}': {detail}"
    else:
        category = OutcomeCategory.UNKNOWN
        message = f"Error occurred during operation '{op}': {detail}"

    return Classification(category=category, message=message, error=error)
