"""Outcome vocabulary returned to the orchestrator.

A single engine invocation produces exactly one ProgressEvent. Its status is
one of SUCCESS, FAILED or IN_PROGRESS; failures always carry an
OutcomeCategory, and in-progress events always carry a ContinuationState the
orchestrator hands back unchanged on the next invocation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# A resource instance: field name -> scalar, list or nested structure.
ResourceModel = dict[str, Any]

# Tag key -> tag value.
TagSet = dict[str, str]


class ContinuationError(Exception):
    """Raised when continuation state is malformed or belongs to another operation."""

    pass


class Verb(str, Enum):
    """Operations the orchestrator can request."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"

    @property
    def mutating(self) -> bool:
        return self in (Verb.CREATE, Verb.UPDATE, Verb.DELETE)


class OperationStatus(str, Enum):
    """Terminal shape of one invocation."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    IN_PROGRESS = "IN_PROGRESS"


class OutcomeCategory(str, Enum):
    """Closed set of failure categories.

    The orchestrator decides retry policy from the category, never from the
    message text.
    """

    ALREADY_EXISTS = "AlreadyExists"
    NOT_FOUND = "NotFound"
    LIMIT_EXCEEDED = "ServiceLimitExceeded"
    INVALID_REQUEST = "InvalidRequest"
    THROTTLED = "Throttling"
    INTERNAL_ERROR = "ServiceInternalError"
    NETWORK_FAILURE = "NetworkFailure"
    ACCESS_DENIED = "AccessDenied"
    TAG_PERMISSION_DENIED = "UnauthorizedTaggingOperation"
    NOT_UPDATABLE = "NotUpdatable"
    NOT_STABILIZED = "NotStabilized"
    UNKNOWN = "GeneralServiceException"

    @property
    def retryable(self) -> bool:
        """Whether the orchestrator should retry the operation with backoff."""
        return self in _RETRYABLE_CATEGORIES


_RETRYABLE_CATEGORIES = frozenset(
    {
        OutcomeCategory.THROTTLED,
        OutcomeCategory.INTERNAL_ERROR,
        OutcomeCategory.NETWORK_FAILURE,
    }
)


@dataclass(frozen=True)
class IdentityToken:
    """Server-issued identity of a content-addressed resource.

    The version is forwarded untouched on update/delete; the remote system is
    responsible for rejecting a stale one.
    """

    id: str
    version: str | None = None


class Phase(str, Enum):
    """Where a resumed invocation re-enters the operation."""

    INVOKING = "invoking"
    STABILIZING = "stabilizing"


@dataclass(frozen=True)
class ContinuationState:
    """Opaque state threaded between invocations of one logical operation.

    Serialized with to_dict() so the orchestrator can persist it as JSON.
    """

    verb: Verb
    phase: Phase = Phase.INVOKING
    operation_token: str | None = None
    identity: IdentityToken | None = None
    remaining_timeout_seconds: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "verb": self.verb.value,
            "phase": self.phase.value,
            "operationToken": self.operation_token,
            "remainingTimeoutSeconds": self.remaining_timeout_seconds,
        }
        if self.identity is not None:
            data["identity"] = {"id": self.identity.id, "version": self.identity.version}
        return data

    @classmethod
    def from_dict(cls, data: Any) -> ContinuationState:
        """Rebuild continuation state handed back by the orchestrator.

        Raises:
            ContinuationError: If the payload is not a continuation produced by to_dict().
        """
        if not isinstance(data, dict):
            raise ContinuationError(f"Continuation state must be a mapping, got {type(data).__name__}")

        try:
            verb = Verb(data["verb"])
            phase = Phase(data.get("phase", Phase.INVOKING.value))
        except (KeyError, ValueError) as e:
            raise ContinuationError(f"Invalid continuation state: {e}") from e

        remaining = data.get("remainingTimeoutSeconds", 0)
        if not isinstance(remaining, int) or isinstance(remaining, bool):
            raise ContinuationError("remainingTimeoutSeconds must be an integer")

        token = data.get("operationToken")
        if token is not None and not isinstance(token, str):
            raise ContinuationError("operationToken must be a string")

        identity = None
        raw_identity = data.get("identity")
        if raw_identity is not None:
            if not isinstance(raw_identity, dict) or not raw_identity.get("id"):
                raise ContinuationError("identity must be a mapping with an 'id'")
            identity = IdentityToken(id=str(raw_identity["id"]), version=raw_identity.get("version"))

        return cls(
            verb=verb,
            phase=phase,
            operation_token=token,
            identity=identity,
            remaining_timeout_seconds=remaining,
        )


@dataclass(frozen=True)
class ProgressEvent:
    """Normalized result of one engine invocation."""

    status: OperationStatus
    model: ResourceModel | None = None
    models: list[ResourceModel] = field(default_factory=list)
    category: OutcomeCategory | None = None
    message: str = ""
    continuation: ContinuationState | None = None
    callback_delay_seconds: int = 0
    warnings: list[str] = field(default_factory=list)
    next_token: str | None = None

    @classmethod
    def success(
        cls,
        model: ResourceModel | None,
        *,
        warnings: list[str] | None = None,
        models: list[ResourceModel] | None = None,
        next_token: str | None = None,
    ) -> ProgressEvent:
        return cls(
            status=OperationStatus.SUCCESS,
            model=model,
            models=list(models or []),
            warnings=list(warnings or []),
            next_token=next_token,
        )

    @classmethod
    def failed(
        cls,
        category: OutcomeCategory,
        message: str,
        *,
        model: ResourceModel | None = None,
    ) -> ProgressEvent:
        return cls(status=OperationStatus.FAILED, model=model, category=category, message=message)

    @classmethod
    def in_progress(
        cls,
        continuation: ContinuationState,
        *,
        model: ResourceModel | None = None,
        callback_delay_seconds: int = 0,
        message: str = "",
    ) -> ProgressEvent:
        return cls(
            status=OperationStatus.IN_PROGRESS,
            model=model,
            continuation=continuation,
            callback_delay_seconds=callback_delay_seconds,
            message=message,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Render the event for JSON output."""
        data: dict[str, Any] = {"status": self.status.value}
        if self.model is not None:
            data["resourceModel"] = self.model
        if self.models:
            data["resourceModels"] = self.models
        if self.category is not None:
            data["errorCode"] = self.category.value
            data["retryable"] = self.category.retryable
        if self.message:
            data["message"] = self.message
        if self.continuation is not None:
            data["callbackContext"] = self.continuation.to_dict()
            data["callbackDelaySeconds"] = self.callback_delay_seconds
        if self.warnings:
            data["warnings"] = self.warnings
        if self.next_token is not None:
            data["nextToken"] = self.next_token
        return data
