"""Stored object model: ObjectMeta, ObjectList, Scope.

Any dataclass (or plain dict) can be stored. Types that embed the standard
metadata inherit from ``ObjectMeta``; list containers inherit from
``ObjectList`` and declare a typed ``items`` field::

    @dataclass
    class Widget(ObjectMeta):
        value: int = 0

    @dataclass
    class WidgetList(ObjectList):
        items: list[Widget] = field(default_factory=list)

Column names come from the field name, or the ``name`` given to
:func:`sqlstore.store.fields.column`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from sqlstore.store.fields import column


def now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(UTC).replace(microsecond=0)


@dataclass(frozen=True)
class Scope:
    """One segment of a tenancy path, e.g. ``Scope("tenants", "acme")``.

    Applied as ``"<resource>" = <name>`` on every operation and written as
    an extra column on create.
    """

    resource: str
    name: str

    def __str__(self) -> str:
        return f"{self.resource}/{self.name}"


@dataclass
class OwnerReference:
    resource: str = column(default="", omitempty=True)
    name: str = column(default="", omitempty=True)
    uid: str = column(default="", omitempty=True)
    scopes: list[Scope] = column(default_factory=list, omitempty=True)
    controller: bool = column(default=False, omitempty=True)
    block_owner_deletion: bool | None = column(
        "blockOwnerDeletion", default=None, omitempty=True
    )


@runtime_checkable
class Object(Protocol):
    """Anything with the standard metadata attributes."""

    name: str
    creation_timestamp: datetime | None
    labels: dict[str, str]
    annotations: dict[str, str]


@dataclass
class ObjectMeta:
    """Standard object metadata.

    Every column is written only when set. ``resource`` overrides the table
    name for this instance and is never persisted.
    """

    name: str = column(default="", omitempty=True)
    uid: str = column(default="", omitempty=True)
    description: str = column(default="", omitempty=True)
    creation_timestamp: datetime | None = column(
        "creationTimestamp", default=None, omitempty=True
    )
    deletion_timestamp: datetime | None = column(
        "deletionTimestamp", default=None, omitempty=True
    )
    labels: dict[str, str] = column(default_factory=dict, omitempty=True)
    annotations: dict[str, str] = column(default_factory=dict, omitempty=True)
    finalizers: list[str] = column(default_factory=list, omitempty=True)
    owner_references: list[OwnerReference] = column(
        "ownerReferences", default_factory=list, omitempty=True
    )
    resource: str = column(default="", ignore=True)


class Unstructured(dict):
    """A schemaless object: every key is a column.

    >>> obj = Unstructured({"name": "a", "value": 1}, resource="widgets")
    >>> obj.resource, obj["value"]
    ('widgets', 1)
    """

    def __init__(self, data: Any = (), *, resource: str = ""):
        super().__init__(data)
        self.resource = resource

    @property
    def name(self) -> str:
        return self.get("name", "")


@dataclass
class ObjectList:
    """Paged result container; subclasses declare ``items: list[T]``."""

    total: int = 0
    page: int = 0
    size: int = 0
    resource: str = ""
    items: list[Any] = field(default_factory=list)


__all__ = ["Object", "ObjectList", "ObjectMeta", "OwnerReference", "Scope", "Unstructured", "now"]
