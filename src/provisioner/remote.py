"""Interfaces consumed from the remote control-plane client.

The engine never builds requests or parses responses itself. A client is
bound to one resource kind and exposes one call per verb; request/response
shapes stay inside the client and its translators. Errors are raised as
azure-core exceptions and classified by the engine.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from .outcomes import IdentityToken, ResourceModel, TagSet, Verb


class ResourceStatus(str, Enum):
    """Coarse lifecycle state reported by the control plane."""

    ACTIVE = "active"
    PENDING = "pending"
    FAILED = "failed"


# ARM provisioningState values
_ACTIVE_STATES = frozenset({"succeeded", "ready", "active"})
_FAILED_STATES = frozenset({"failed", "canceled", "cancelled"})


def status_of(model: Mapping[str, object] | None) -> ResourceStatus:
    """Map a model's provisioning state onto a ResourceStatus.

    Models without a provisioning state are considered active.
    """
    if not model:
        return ResourceStatus.ACTIVE
    state = model.get("provisioningState")
    if state is None:
        return ResourceStatus.ACTIVE
    normalized = str(state).lower()
    if normalized in _ACTIVE_STATES:
        return ResourceStatus.ACTIVE
    if normalized in _FAILED_STATES:
        return ResourceStatus.FAILED
    return ResourceStatus.PENDING


@dataclass(frozen=True)
class RemoteResult:
    """Outcome of one mutating remote call.

    Attributes:
        model: Resource as reported by the control plane, when available.
        pending_token: Opaque token for an operation still running remotely.
            None when the operation has completed.
        status_message: Free-form status text from the control plane.
    """

    model: ResourceModel | None = None
    pending_token: str | None = None
    status_message: str = ""

    @property
    def pending(self) -> bool:
        return self.pending_token is not None


class RemoteClient(Protocol):
    """Client bound to one resource kind."""

    def create(self, desired: ResourceModel) -> RemoteResult: ...

    def update(self, desired: ResourceModel, token: IdentityToken | None) -> RemoteResult: ...

    def delete(self, desired: ResourceModel, token: IdentityToken | None) -> RemoteResult: ...

    def read(self, desired: ResourceModel) -> ResourceModel: ...

    def resume(self, verb: Verb, desired: ResourceModel, operation_token: str) -> RemoteResult: ...

    def get_tags(self, model: ResourceModel) -> TagSet: ...

    def add_tags(self, model: ResourceModel, tags: TagSet) -> None: ...

    def remove_tags(self, model: ResourceModel, tags: TagSet) -> None: ...

    def list_models(
        self, desired: ResourceModel, next_token: str | None
    ) -> tuple[list[ResourceModel], str | None]: ...


@runtime_checkable
class ContentAddressedClient(Protocol):
    """Extra capability required for content-addressed kinds."""

    def list_entries(self, parent: str) -> list[ResourceModel]: ...
