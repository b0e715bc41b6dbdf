"""Resource (table) name resolution.

Lookup order for an object or list:

1. a non-empty ``resource`` attribute on the instance,
2. the type registered with :meth:`ResourceRegistry.register`,
3. for lists, the resolution of the ``items`` element type,
4. the lower-cased, pluralised class name (``Policy`` -> ``policies``).
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any, get_args, get_origin, get_type_hints

from sqlstore.core.errors import BadRequestError
from sqlstore.store.object import ObjectList


def simple_name_to_plural(name: str) -> str:
    if name.endswith("s"):
        return name
    if name.endswith("y"):
        return name[:-1] + "ies"
    return name + "s"


def reflect_resource_name(tp: type) -> str:
    """Resource name derived from a class name."""
    name = tp.__name__.split("[", 1)[0]
    if not name:
        raise BadRequestError(f"cannot get resource name from type {tp!r}")
    return simple_name_to_plural(name.lower())


def is_list(value: Any) -> bool:
    tp = value if isinstance(value, type) else type(value)
    return isinstance(tp, type) and issubclass(tp, ObjectList)


def item_type(list_value: Any) -> Any:
    """Element type of an ``ObjectList`` subclass' ``items`` field."""
    tp = list_value if isinstance(list_value, type) else type(list_value)
    if not dataclasses.is_dataclass(tp):
        return Any
    hint = get_type_hints(tp).get("items")
    if hint is None or get_origin(hint) is not list:
        return Any
    args = get_args(hint)
    return args[0] if args else Any


class ResourceRegistry:
    """Maps stored types to resource names.

    Usage:
        registry = ResourceRegistry()
        registry.register(Widget, "gadgets")
        storage = Storage(engine, registry=registry)
    """

    def __init__(self) -> None:
        self._resources: dict[type, str] = {}

    def register(self, tp: type, resource: str | None = None) -> str:
        """Register ``tp`` under ``resource`` (default: derived from the class name)."""
        resource = resource or reflect_resource_name(tp)
        self._resources[tp] = resource
        return resource

    def registered(self) -> dict[type, str]:
        return dict(self._resources)

    def resource_for(self, value: Any) -> str:
        """Resource name of an object, object list, or type.

        Raises:
            BadRequestError: When no name can be resolved (untyped dicts
                and lists without a ``resource``).
        """
        if not isinstance(value, type):
            resource = getattr(value, "resource", "")
            if isinstance(resource, str) and resource:
                return resource
        tp = value if isinstance(value, type) else type(value)
        if tp in self._resources:
            return self._resources[tp]
        if is_list(tp):
            element = item_type(tp)
            if element is not Any and isinstance(element, type) and not issubclass(element, Mapping):
                return self.resource_for(element)
            raise BadRequestError(f"cannot resolve resource of {tp.__name__} without items type")
        if issubclass(tp, Mapping):
            raise BadRequestError("cannot resolve resource of an untyped mapping")
        return reflect_resource_name(tp)


__all__ = [
    "ResourceRegistry",
    "is_list",
    "item_type",
    "reflect_resource_name",
    "simple_name_to_plural",
]
