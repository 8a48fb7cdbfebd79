"""Pydantic models for desired-state documents.

A document names the resource kind, carries the desired model, and may supply
tags from several sources which are merged into the model's tag field:

    resourceKind: Azure::Resources::GenericResource
    armApiVersion: "2023-01-31"
    resource:
      id: /subscriptions/.../resourceGroups/rg/providers/Microsoft.ManagedIdentity/userAssignedIdentities/uami-app
      location: westeurope
    tags:
      owner: platform
    stackTags:
      costCenter: "1234"
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .kinds import BUILTIN_KINDS, ResourceKind, get_kind
from .outcomes import ResourceModel
from .tags import consolidate_tags

VALID_API_VERSION_PATTERN = r"^\d{4}-\d{2}-\d{2}(-preview)?$"


class ResourceDocument(BaseModel):
    """One resource's desired state."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    resource_kind: str = Field(alias="resourceKind")
    arm_api_version: str | None = Field(None, alias="armApiVersion")
    resource: dict[str, Any] = Field(default_factory=dict)

    # None means the document expresses no tag intent; {} clears tags
    tags: dict[str, str] | None = None
    stack_tags: dict[str, str] | None = Field(None, alias="stackTags")
    system_tags: dict[str, str] | None = Field(None, alias="systemTags")

    @field_validator("resource_kind")
    @classmethod
    def validate_resource_kind(cls, v: str) -> str:
        if v not in BUILTIN_KINDS:
            raise ValueError(f"resourceKind must be one of {sorted(BUILTIN_KINDS)}")
        return v

    @field_validator("arm_api_version")
    @classmethod
    def validate_api_version(cls, v: str | None) -> str | None:
        if v is not None and not re.match(VALID_API_VERSION_PATTERN, v):
            raise ValueError("armApiVersion must look like YYYY-MM-DD or YYYY-MM-DD-preview")
        return v

    @property
    def kind(self) -> ResourceKind:
        return get_kind(self.resource_kind)

    def desired_model(self) -> ResourceModel:
        """Build the desired model with all tag sources merged in.

        Tags given inside the resource body count as resource-level tags when
        the document has no top-level tags.
        """
        kind = self.kind
        model: ResourceModel = dict(self.resource)
        if not kind.taggable:
            return model

        resource_tags = self.tags
        if resource_tags is None:
            embedded = model.get(kind.tags_field)
            if isinstance(embedded, dict):
                resource_tags = {str(k): str(v) for k, v in embedded.items() if v is not None}

        merged = consolidate_tags(resource_tags, self.stack_tags, self.system_tags)
        if merged is None:
            model.pop(kind.tags_field, None)
        else:
            model[kind.tags_field] = merged
        return model
