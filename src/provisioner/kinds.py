"""Resource kind declarations.

A ResourceKind tells the engine everything it needs to know about a resource
type that is not mechanical field copying: which field identifies it, which
fields are create-only, whether it carries tags, whether the control plane
identifies it by content rather than by a caller-chosen key, and whether
create/update may finish asynchronously.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .outcomes import IdentityToken, ResourceModel


class ResourceKindError(Exception):
    """Raised when a resource kind declaration is inconsistent."""

    pass


@dataclass(frozen=True)
class ContentAddressing:
    """How a content-addressed kind is located and identified.

    Attributes:
        parent_field: Field holding the target/parent the entry is attached to.
        content_field: Field whose exact content identifies the entry.
        id_field: Field receiving the server-issued id.
        version_field: Field receiving the server-issued version/hash token.
    """

    parent_field: str
    content_field: str
    id_field: str
    version_field: str

    def token_from(self, model: ResourceModel) -> IdentityToken | None:
        """Return the explicit identity token a model carries, if any."""
        token_id = model.get(self.id_field)
        if not token_id:
            return None
        version = model.get(self.version_field)
        return IdentityToken(id=str(token_id), version=str(version) if version else None)

    def apply_token(self, model: ResourceModel, token: IdentityToken) -> ResourceModel:
        """Return a copy of the model carrying the identity token."""
        merged = dict(model)
        merged[self.id_field] = token.id
        if token.version is not None:
            merged[self.version_field] = token.version
        return merged


@dataclass(frozen=True)
class ResourceKind:
    """Declaration of one resource kind.

    Validated at construction; an inconsistent declaration is a programming
    error and raises ResourceKindError immediately.
    """

    name: str
    identifier_field: str
    immutable_fields: frozenset[str] = field(default_factory=frozenset)
    taggable: bool = False
    tags_field: str = "tags"
    server_assigned_fields: frozenset[str] = field(default_factory=frozenset)
    content_addressed: ContentAddressing | None = None
    stabilizes: bool = False
    supports_list: bool = True

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not self.name:
            errors.append("name is required")
        if not self.identifier_field:
            errors.append("identifier_field is required")

        # Accept any iterable of names but store frozensets
        object.__setattr__(self, "immutable_fields", frozenset(self.immutable_fields))
        object.__setattr__(self, "server_assigned_fields", frozenset(self.server_assigned_fields))

        if self.taggable and self.tags_field in self.immutable_fields:
            errors.append(f"tags field '{self.tags_field}' cannot be immutable")

        addressing = self.content_addressed
        if addressing is not None:
            names = [
                addressing.parent_field,
                addressing.content_field,
                addressing.id_field,
                addressing.version_field,
            ]
            if not all(names):
                errors.append("content addressing requires parent, content, id and version fields")
            elif len(set(names)) != len(names):
                errors.append("content addressing fields must be distinct")
            if addressing.content_field in self.immutable_fields:
                errors.append(
                    f"content field '{addressing.content_field}' is the update payload "
                    "and cannot be immutable"
                )

        if errors:
            raise ResourceKindError(
                f"Invalid resource kind '{self.name}':\n  - " + "\n  - ".join(errors)
            )

    def identifier(self, model: ResourceModel | None) -> str | None:
        """Human-readable identifier of a model, used in messages and logs."""
        if not model:
            return None
        value = model.get(self.identifier_field)
        if value:
            return str(value)
        if self.content_addressed is not None:
            parent = model.get(self.content_addressed.parent_field)
            if parent:
                return f"{self.content_addressed.parent_field}={parent}"
        return None

    def desired_tags(self, model: ResourceModel) -> dict[str, str] | None:
        """Tags the caller asked for; None when the model expresses no tag intent."""
        if not self.taggable:
            return None
        tags = model.get(self.tags_field)
        if tags is None:
            return None
        if not isinstance(tags, dict):
            raise TypeError(f"{self.tags_field} must be a mapping, got {type(tags).__name__}")
        return {str(k): str(v) for k, v in tags.items() if v is not None}

    def merge_server_fields(
        self, desired: ResourceModel, observed: ResourceModel | None
    ) -> ResourceModel:
        """Overlay server-assigned fields from a response onto the desired model."""
        merged = dict(desired)
        if not observed:
            return merged
        for name in self.server_assigned_fields | {self.identifier_field}:
            value: Any = observed.get(name)
            if value is not None:
                merged[name] = value
        return merged


# =============================================================================
# Built-in kinds
# =============================================================================

GENERIC_ARM_RESOURCE = ResourceKind(
    name="Azure::Resources::GenericResource",
    identifier_field="id",
    immutable_fields=frozenset({"id", "type", "location", "kind"}),
    taggable=True,
    server_assigned_fields=frozenset({"provisioningState", "etag", "systemData"}),
    stabilizes=True,
)

RESOURCE_GROUP = ResourceKind(
    name="Azure::Resources::ResourceGroup",
    identifier_field="id",
    immutable_fields=frozenset({"id", "location"}),
    taggable=True,
    server_assigned_fields=frozenset({"provisioningState"}),
    stabilizes=False,
    supports_list=False,
)

# A policy document attached to a target resource. The control plane assigns
# the id and a content hash; callers never choose a key.
RESOURCE_POLICY = ResourceKind(
    name="Azure::Resources::ResourcePolicy",
    identifier_field="policyId",
    immutable_fields=frozenset({"targetId"}),
    taggable=False,
    server_assigned_fields=frozenset({"policyHash"}),
    content_addressed=ContentAddressing(
        parent_field="targetId",
        content_field="policy",
        id_field="policyId",
        version_field="policyHash",
    ),
    stabilizes=False,
)

BUILTIN_KINDS: dict[str, ResourceKind] = {
    kind.name: kind for kind in (GENERIC_ARM_RESOURCE, RESOURCE_GROUP, RESOURCE_POLICY)
}


def get_kind(name: str) -> ResourceKind:
    """Look up a built-in kind by name.

    Raises:
        ResourceKindError: If the name is not a built-in kind.
    """
    kind = BUILTIN_KINDS.get(name)
    if kind is None:
        raise ResourceKindError(f"Unknown resource kind '{name}'. Valid kinds: {sorted(BUILTIN_KINDS)}")
    return kind
