"""sqlstore -- generic object storage over SQL databases.

Every resource is a table and every object a row; tenancy scopes become
extra columns applied to every statement.

Usage::

    from dataclasses import dataclass, field
    from sqlstore import ObjectList, ObjectMeta, Scope, Storage, create_store_engine

    @dataclass
    class Widget(ObjectMeta):
        value: int = 0

    storage = Storage(create_store_engine("sqlite:///widgets.db"))
    acme = storage.scope(Scope("tenants", "acme"))
    acme.create(Widget(name="w1", value=3))
"""

__version__ = "0.1.0"

from sqlstore.core.errors import (
    AlreadyExistsError,
    BadRequestError,
    ErrorReason,
    NotFoundError,
    StoreError,
    UnsupportedError,
    ignore_already_exists,
    ignore_not_found,
    is_already_exists,
    is_not_found,
)
from sqlstore.core.settings import StoreSettings
from sqlstore.store.database import create_store_engine, engine_from_settings
from sqlstore.store.object import ObjectList, ObjectMeta, OwnerReference, Scope, Unstructured
from sqlstore.store.options import (
    CountOptions,
    DeleteBatchOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    PatchOptions,
    SortDirection,
    SortField,
    UpdateOptions,
)
from sqlstore.store.patch import JSONPatch, MergeFromPatch, MergePatch, PatchType, RawPatch
from sqlstore.store.registry import ResourceRegistry
from sqlstore.store.selector import Operator, Requirement, parse_requirements
from sqlstore.store.storage import StatusStorage, Storage

__all__ = [
    "AlreadyExistsError",
    "BadRequestError",
    "CountOptions",
    "DeleteBatchOptions",
    "DeleteOptions",
    "ErrorReason",
    "GetOptions",
    "JSONPatch",
    "ListOptions",
    "MergeFromPatch",
    "MergePatch",
    "NotFoundError",
    "ObjectList",
    "ObjectMeta",
    "Operator",
    "OwnerReference",
    "PatchOptions",
    "PatchType",
    "RawPatch",
    "Requirement",
    "ResourceRegistry",
    "Scope",
    "SortDirection",
    "SortField",
    "StatusStorage",
    "Storage",
    "StoreError",
    "StoreSettings",
    "UnsupportedError",
    "Unstructured",
    "UpdateOptions",
    "create_store_engine",
    "engine_from_settings",
    "ignore_already_exists",
    "ignore_not_found",
    "is_already_exists",
    "is_not_found",
    "parse_requirements",
]
