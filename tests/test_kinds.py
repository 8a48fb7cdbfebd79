"""Tests for resource kind declarations."""

from __future__ import annotations

import pytest

from provisioner.kinds import (
    BUILTIN_KINDS,
    GENERIC_ARM_RESOURCE,
    RESOURCE_GROUP,
    RESOURCE_POLICY,
    ContentAddressing,
    ResourceKind,
    ResourceKindError,
    get_kind,
)
from provisioner.outcomes import IdentityToken


def _addressing(**overrides: str) -> ContentAddressing:
    values = {
        "parent_field": "targetId",
        "content_field": "policy",
        "id_field": "policyId",
        "version_field": "policyHash",
    }
    values.update(overrides)
    return ContentAddressing(**values)


class TestValidation:
    """Tests for declaration validation."""

    def test_valid_kind(self) -> None:
        kind = ResourceKind(name="Test::Kind", identifier_field="id", immutable_fields=["id"])

        assert kind.immutable_fields == frozenset({"id"})

    def test_missing_name_and_identifier(self) -> None:
        with pytest.raises(ResourceKindError) as exc_info:
            ResourceKind(name="", identifier_field="")

        message = str(exc_info.value)
        assert "name is required" in message
        assert "identifier_field is required" in message

    def test_immutable_tags_rejected(self) -> None:
        with pytest.raises(ResourceKindError, match="cannot be immutable"):
            ResourceKind(name="T", identifier_field="id", taggable=True, immutable_fields={"tags"})

    def test_immutable_tags_allowed_when_not_taggable(self) -> None:
        kind = ResourceKind(name="T", identifier_field="id", immutable_fields={"tags"})

        assert "tags" in kind.immutable_fields

    def test_content_fields_must_be_distinct(self) -> None:
        with pytest.raises(ResourceKindError, match="distinct"):
            ResourceKind(
                name="T",
                identifier_field="policyId",
                content_addressed=_addressing(version_field="policyId"),
            )

    def test_content_fields_required(self) -> None:
        with pytest.raises(ResourceKindError, match="requires parent"):
            ResourceKind(name="T", identifier_field="policyId", content_addressed=_addressing(parent_field=""))

    def test_content_field_cannot_be_immutable(self) -> None:
        with pytest.raises(ResourceKindError, match="update payload"):
            ResourceKind(
                name="T",
                identifier_field="policyId",
                immutable_fields={"policy"},
                content_addressed=_addressing(),
            )


class TestIdentifier:
    """Tests for identifier rendering."""

    def test_identifier_field(self) -> None:
        assert GENERIC_ARM_RESOURCE.identifier({"id": "/subscriptions/x"}) == "/subscriptions/x"

    def test_no_model(self) -> None:
        assert GENERIC_ARM_RESOURCE.identifier(None) is None
        assert GENERIC_ARM_RESOURCE.identifier({"location": "westeurope"}) is None

    def test_content_addressed_falls_back_to_parent(self) -> None:
        assert RESOURCE_POLICY.identifier({"targetId": "doc-1", "policy": "{}"}) == "targetId=doc-1"


class TestDesiredTags:
    """Tests for tag intent extraction."""

    def test_no_intent(self) -> None:
        assert GENERIC_ARM_RESOURCE.desired_tags({"id": "/x"}) is None

    def test_values_are_stringified_and_none_dropped(self) -> None:
        tags = GENERIC_ARM_RESOURCE.desired_tags({"tags": {"count": 3, "gone": None}})

        assert tags == {"count": "3"}

    def test_not_taggable(self) -> None:
        assert RESOURCE_POLICY.desired_tags({"tags": {"a": "1"}}) is None

    def test_malformed_tags(self) -> None:
        with pytest.raises(TypeError, match="must be a mapping"):
            GENERIC_ARM_RESOURCE.desired_tags({"tags": ["a", "b"]})


class TestMergeServerFields:
    """Tests for overlaying server-assigned fields."""

    def test_overlay(self) -> None:
        desired = {"id": "/x", "location": "westeurope"}
        observed = {"id": "/x", "location": "WestEurope", "provisioningState": "Succeeded", "etag": "e1"}

        merged = GENERIC_ARM_RESOURCE.merge_server_fields(desired, observed)

        assert merged == {"id": "/x", "location": "westeurope", "provisioningState": "Succeeded", "etag": "e1"}
        assert "provisioningState" not in desired

    def test_no_observed(self) -> None:
        assert GENERIC_ARM_RESOURCE.merge_server_fields({"id": "/x"}, None) == {"id": "/x"}


class TestContentAddressing:
    """Tests for identity token handling."""

    def test_token_from_model(self) -> None:
        token = RESOURCE_POLICY.content_addressed.token_from({"policyId": "p-1", "policyHash": "abc"})

        assert token == IdentityToken(id="p-1", version="abc")

    def test_no_token(self) -> None:
        assert RESOURCE_POLICY.content_addressed.token_from({"targetId": "doc"}) is None

    def test_apply_token(self) -> None:
        model = {"targetId": "doc", "policy": "{}"}

        applied = RESOURCE_POLICY.content_addressed.apply_token(model, IdentityToken(id="p-1", version="h"))

        assert applied == {"targetId": "doc", "policy": "{}", "policyId": "p-1", "policyHash": "h"}
        assert "policyId" not in model


class TestBuiltins:
    """Tests for the built-in kind registry."""

    def test_registry(self) -> None:
        assert set(BUILTIN_KINDS) == {
            "Azure::Resources::GenericResource",
            "Azure::Resources::ResourceGroup",
            "Azure::Resources::ResourcePolicy",
        }

    def test_get_kind(self) -> None:
        assert get_kind("Azure::Resources::ResourceGroup") is RESOURCE_GROUP

    def test_unknown_kind(self) -> None:
        with pytest.raises(ResourceKindError, match="Unknown resource kind"):
            get_kind("Azure::Compute::Nope")

    def test_resource_groups_are_not_listed(self) -> None:
        assert RESOURCE_GROUP.supports_list is False
        assert GENERIC_ARM_RESOURCE.supports_list is True
