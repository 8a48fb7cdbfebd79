"""Field translation between resource models and ARM wire shapes.

Translators never return None to mean "not there". A lookup yields
Present(value) or ABSENT and callers branch with an ordinary match
statement, so a field explicitly set to a falsy value is never confused with
a missing one.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from azure.mgmt.resource.resources.models import GenericResource

from .outcomes import ResourceModel

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Present(Generic[T]):
    value: T


@dataclass(frozen=True)
class Absent:
    pass


ABSENT = Absent()

Maybe = Present[T] | Absent

# Top-level GenericResource fields a caller may set on create/update
REQUEST_FIELDS: tuple[str, ...] = (
    "location",
    "tags",
    "kind",
    "sku",
    "plan",
    "identity",
    "managedBy",
    "extendedLocation",
    "properties",
)


def lookup(model: Mapping[str, Any] | None, *path: str) -> Maybe[Any]:
    """Follow a path of keys through nested mappings.

    A key holding None counts as absent: ARM omits and nulls fields
    interchangeably.
    """
    current: Any = model
    for key in path:
        if not isinstance(current, Mapping) or current.get(key) is None:
            return ABSENT
        current = current[key]
    return Present(current)


def map_present(maybe: Maybe[T], fn: Callable[[T], U]) -> Maybe[U]:
    match maybe:
        case Present(value):
            return Present(fn(value))
        case _:
            return ABSENT


def or_default(maybe: Maybe[T], default: U) -> T | U:
    match maybe:
        case Present(value):
            return value
        case _:
            return default


def to_request(model: Mapping[str, Any]) -> dict[str, Any]:
    """Copy the request fields present in a model."""
    payload: dict[str, Any] = {}
    for name in REQUEST_FIELDS:
        match lookup(model, name):
            case Present(value):
                payload[name] = value
            case Absent():
                pass
    return payload


def to_generic_resource(model: Mapping[str, Any]) -> GenericResource:
    """Build the PUT body for a generic ARM resource."""
    return GenericResource.from_dict(to_request(model))


def from_generic_resource(resource: GenericResource | None) -> ResourceModel | None:
    """Convert an ARM response into a resource model with REST field names.

    provisioningState is lifted from properties when the service reports it
    there, which is where most resource providers put it.
    """
    if resource is None:
        return None

    model: ResourceModel = resource.serialize(keep_readonly=True)
    match lookup(model, "provisioningState"):
        case Absent():
            match lookup(model, "properties", "provisioningState"):
                case Present(state):
                    model["provisioningState"] = state
                case Absent():
                    pass
        case Present():
            pass
    return model


def resource_group_of(resource_id: str) -> Maybe[str]:
    """Extract the resource group name from an ARM resource id."""
    segments = [s for s in resource_id.split("/") if s]
    lowered = [s.lower() for s in segments]
    if "resourcegroups" not in lowered:
        return ABSENT
    index = lowered.index("resourcegroups")
    if index + 1 >= len(segments):
        return ABSENT
    return Present(segments[index + 1])
