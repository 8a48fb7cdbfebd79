"""Tests for tag-set reconciliation."""

from __future__ import annotations

import pytest

from provisioner.tags import TagDelta, consolidate_tags, diff, tags_from_list


class TestDiff:
    """Tests for the add/remove delta."""

    def test_set_difference(self) -> None:
        """Test the documented example: one changed value, one stale key."""
        delta = diff({"a": "1", "b": "2"}, {"a": "1", "b": "3", "c": "4"})

        assert delta.to_add == {"b": "2"}
        assert delta.to_remove == {"b": "3", "c": "4"}

    def test_no_intent_means_no_change(self) -> None:
        """Test that a None desired set never removes anything."""
        delta = diff(None, {"a": "1", "b": "2"})

        assert delta == TagDelta()
        assert delta.is_empty

    def test_empty_desired_clears(self) -> None:
        delta = diff({}, {"a": "1"})

        assert delta.to_add == {}
        assert delta.to_remove == {"a": "1"}

    def test_identical_sets(self) -> None:
        assert diff({"a": "1"}, {"a": "1"}).is_empty

    def test_nothing_observed(self) -> None:
        delta = diff({"a": "1"}, None)

        assert delta.to_add == {"a": "1"}
        assert delta.to_remove == {}

    def test_protected_prefixes_are_never_removed(self) -> None:
        delta = diff(
            {"owner": "me"},
            {"hidden-link": "x", "azd-env-name": "s", "old": "1"},
            protected_prefixes=("hidden-", "azd-"),
        )

        assert delta.to_remove == {"old": "1"}

    def test_protected_prefix_can_still_be_added(self) -> None:
        delta = diff({"hidden-link": "y"}, {"hidden-link": "x"}, protected_prefixes=("hidden-",))

        assert delta.to_add == {"hidden-link": "y"}
        assert delta.to_remove == {}

    @pytest.mark.parametrize(
        ("desired", "observed"),
        [
            ({"a": "1"}, {"a": "2"}),
            ({"a": "1", "b": "2"}, {}),
            ({}, {"x": "9", "y": "8"}),
            ({"k": "v", "m": "n"}, {"k": "w", "z": "z"}),
        ],
    )
    def test_applying_delta_reaches_desired(
        self, desired: dict[str, str], observed: dict[str, str]
    ) -> None:
        """Test that removals then additions turn observed into desired."""
        delta = diff(desired, observed)
        result = {k: v for k, v in observed.items() if delta.removals.get(k) != v}
        result.update(delta.to_add)

        assert result == desired


class TestRemovals:
    """Tests for the pairs handed to the remove call."""

    def test_changed_keys_are_left_to_add(self) -> None:
        delta = diff({"env": "prod"}, {"env": "dev", "stale": "1"})

        assert delta.to_remove == {"env": "dev", "stale": "1"}
        assert delta.removals == {"stale": "1"}


class TestConsolidateTags:
    """Tests for merging tag sources."""

    def test_no_sources_is_no_intent(self) -> None:
        assert consolidate_tags(None, None, None) is None

    def test_precedence(self) -> None:
        merged = consolidate_tags(
            {"owner": "resource"},
            {"owner": "stack", "cost": "1"},
            {"owner": "system", "cost": "0", "sys": "y"},
        )

        assert merged == {"owner": "resource", "cost": "1", "sys": "y"}

    def test_empty_resource_tags_are_intent(self) -> None:
        assert consolidate_tags({}) == {}


class TestTagsFromList:
    """Tests for key/value list conversion."""

    def test_both_spellings(self) -> None:
        tags = tags_from_list([{"key": "a", "value": "1"}, {"Key": "b", "Value": "2"}])

        assert tags == {"a": "1", "b": "2"}

    def test_none(self) -> None:
        assert tags_from_list(None) is None

    def test_incomplete_entries_skipped(self) -> None:
        assert tags_from_list([{"key": "a"}, {"value": "1"}]) == {}
