"""Create-only property enforcement.

Some fields cannot be changed in place once a resource exists (name, parent,
targets, ...). An update that changes one of them must be refused before any
remote call is made.

Comparison is structural. Lists are compared as multisets of canonicalized
entries because the control plane does not guarantee the order in which it
returns targets and similar collections.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

_MISSING = object()


def canonicalize(value: Any) -> Any:
    """Return a hashable, order-insensitive representation of a value.

    Mappings become sorted item tuples, lists become sorted tuples of their
    canonicalized entries (duplicates kept), scalars are returned unchanged.
    """
    match value:
        case Mapping():
            return ("map", tuple(sorted((str(k), canonicalize(v)) for k, v in value.items())))
        case list() | tuple():
            return ("seq", tuple(sorted((canonicalize(item) for item in value), key=repr)))
        case set() | frozenset():
            return ("seq", tuple(sorted((canonicalize(item) for item in value), key=repr)))
        case _:
            return value


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality ignoring list order."""
    if left is _MISSING or right is _MISSING:
        return left is right
    return canonicalize(left) == canonicalize(right)


def changed_fields(
    previous: Mapping[str, Any] | None,
    desired: Mapping[str, Any],
    immutable_fields: Iterable[str],
) -> list[str]:
    """List immutable fields whose value differs between previous and desired.

    A field absent on both sides is unchanged; absent on one side only is a
    change. With no previous model (a create) nothing is ever reported.
    """
    if previous is None:
        return []

    changed = []
    for name in sorted(set(immutable_fields)):
        before = previous.get(name, _MISSING)
        after = desired.get(name, _MISSING)
        if not values_equal(before, after):
            changed.append(name)
    return changed


def check(
    previous: Mapping[str, Any] | None,
    desired: Mapping[str, Any],
    immutable_fields: Iterable[str],
) -> bool:
    """Return True when the update would change a create-only field."""
    return bool(changed_fields(previous, desired, immutable_fields))
