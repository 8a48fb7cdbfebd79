"""Tag-set reconciliation.

The remote tagging API only knows "add" and "remove", so a changed value on an
existing key is expressed as removal of the old pair plus addition of the new
pair. A desired tag set of None means the caller expressed no tag intent and
nothing is removed; an empty mapping is an explicit request to clear tags.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .outcomes import TagSet


@dataclass(frozen=True)
class TagDelta:
    """Minimal change set between desired and observed tags."""

    to_add: TagSet = field(default_factory=dict)
    to_remove: TagSet = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove

    @property
    def removals(self) -> TagSet:
        """Pairs the remove call must strip.

        Keys that are re-added with a new value are left to the add call,
        which overwrites in place, so the two calls commute.
        """
        return {key: value for key, value in self.to_remove.items() if key not in self.to_add}


def diff(
    desired: Mapping[str, str] | None,
    observed: Mapping[str, str] | None,
    *,
    protected_prefixes: Iterable[str] = (),
) -> TagDelta:
    """Compute tags to add and remove.

    Args:
        desired: Tags the caller wants; None means no tag intent.
        observed: Tags currently on the resource, read fresh from the remote.
        protected_prefixes: Observed keys with these prefixes are owned by the
            platform and are never scheduled for removal.

    Returns:
        TagDelta where to_add = desired - observed and
        to_remove = observed - desired, compared by (key, value).
    """
    if desired is None:
        return TagDelta()

    observed_items = set((observed or {}).items())
    desired_items = set(desired.items())
    prefixes = tuple(protected_prefixes)

    to_add = dict(sorted(desired_items - observed_items))
    to_remove = {
        key: value
        for key, value in sorted(observed_items - desired_items)
        if not (prefixes and key.startswith(prefixes))
    }
    return TagDelta(to_add=to_add, to_remove=to_remove)


def consolidate_tags(
    resource_tags: Mapping[str, str] | None,
    stack_tags: Mapping[str, str] | None = None,
    system_tags: Mapping[str, str] | None = None,
) -> TagSet | None:
    """Merge tag sources into one desired tag set.

    Precedence, lowest first: system tags, stack-level tags, resource tags.
    Entries with a None value are dropped.

    Returns:
        The merged tag set, or None when no source expressed any intent.
    """
    if resource_tags is None and stack_tags is None and system_tags is None:
        return None

    merged: TagSet = {}
    for source in (system_tags, stack_tags, resource_tags):
        if source:
            merged.update({k: v for k, v in source.items() if v is not None})
    return merged


def tags_from_list(entries: Iterable[Mapping[str, str]] | None) -> TagSet | None:
    """Convert a [{"key": .., "value": ..}] list into a tag mapping.

    Accepts both "key"/"value" and "Key"/"Value" spellings. Value-less entries
    are skipped; the last duplicate key wins.
    """
    if entries is None:
        return None

    tags: TagSet = {}
    for entry in entries:
        key = entry.get("key", entry.get("Key"))
        value = entry.get("value", entry.get("Value"))
        if key is None or value is None:
            continue
        tags[str(key)] = str(value)
    return tags
