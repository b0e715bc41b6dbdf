"""
Storage facade: scoped, typed CRUD over SQL tables.

Manifesto:
    Every resource is a table; every object is a row. The facade resolves
    the table, applies the tenancy scopes and turns database failures
    into the store's error taxonomy. Callers never see SQL.

Features:
    - Nested scoping via ``storage.scope(Scope("tenants", "acme"))``
    - Spec/status separation (``storage.status()`` writes only status keys)
    - JSON Patch and merge patch translated into one UPDATE
    - Field and label selectors, search, sorting and pagination on list

Tags:
    storage, crud, sql, scope, patch

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine

from sqlstore.core.dialect import Dialect, get_dialect
from sqlstore.core.errors import UnsupportedError
from sqlstore.core.logging import get_logger
from sqlstore.core.settings import StoreSettings
from sqlstore.store.database import create_database_if_not_exists, engine_from_settings
from sqlstore.store.engine import Core
from sqlstore.store.fields import FieldMapper
from sqlstore.store.object import Scope
from sqlstore.store.options import (
    CountOptions,
    DeleteBatchOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    PatchOptions,
    UpdateOptions,
)
from sqlstore.store.patch import Patch
from sqlstore.store.registry import ResourceRegistry

logger = get_logger(__name__)


class Storage:
    """Scoped object storage backed by a SQLAlchemy engine.

    Usage:
        storage = Storage(create_store_engine("sqlite://"))
        acme = storage.scope(Scope("tenants", "acme"))
        acme.create(Widget(name="w1", value=3))
        widget = acme.get("w1", Widget())

    Args:
        engine: Engine to execute against
        dialect: Dialect instance or name (default: from ``engine.dialect.name``)
        registry: Resource name registry (default: empty, names reflected from classes)
        mapper: Field mapper (default: field names as columns)
        scopes: Scopes applied to every operation
    """

    def __init__(
        self,
        engine: Engine,
        dialect: Dialect | str | None = None,
        registry: ResourceRegistry | None = None,
        mapper: FieldMapper | None = None,
        scopes: tuple[Scope, ...] = (),
    ):
        if dialect is None:
            dialect = engine.dialect.name
        if isinstance(dialect, str):
            dialect = get_dialect(dialect)
        self._core = Core(engine, dialect, registry or ResourceRegistry(), mapper or FieldMapper())
        self._scopes = tuple(scopes)

    @classmethod
    def open(
        cls,
        settings: StoreSettings | None = None,
        registry: ResourceRegistry | None = None,
        create_database: bool = True,
    ) -> Storage:
        """Storage for the database in ``settings`` (default: from the environment).

        Creates the database first unless ``create_database`` is false.
        """
        settings = settings or StoreSettings()
        if create_database:
            create_database_if_not_exists(settings)
        engine = engine_from_settings(settings)
        logger.info("store.opened", driver=settings.driver, database=settings.database)
        return cls(engine, settings.driver, registry=registry)

    @classmethod
    def _derive(cls, core: Core, scopes: tuple[Scope, ...]) -> Storage:
        storage = cls.__new__(cls)
        storage._core = core
        storage._scopes = scopes
        return storage

    @property
    def engine(self) -> Engine:
        return self._core.engine

    @property
    def dialect(self) -> Dialect:
        return self._core.dialect

    @property
    def registry(self) -> ResourceRegistry:
        return self._core.registry

    @property
    def scopes(self) -> tuple[Scope, ...]:
        return self._scopes

    def scope(self, *scopes: Scope) -> Storage:
        """A storage handle with ``scopes`` appended; ``self`` is unchanged."""
        return Storage._derive(self._core, self._scopes + scopes)

    def status(self) -> StatusStorage:
        """A handle whose writes touch only the status allow-list."""
        return StatusStorage(self._core, self._scopes)

    def create(self, obj: Any) -> Any:
        """Insert ``obj``; sets its creation timestamp.

        Raises:
            AlreadyExistsError: If the name is taken within the scope.
            BadRequestError: If the object has no name.
        """
        return self._core.create(self._scopes, obj)

    def get(self, name: str, into: Any, options: GetOptions | None = None) -> Any:
        """Read ``name`` into ``into`` and return it.

        Raises:
            NotFoundError: If no row matches within the scope.
        """
        return self._core.get(self._scopes, name, into, options or GetOptions())

    def update(self, obj: Any, options: UpdateOptions | None = None) -> Any:
        return self._core.update(self._scopes, obj, False, options or UpdateOptions())

    def patch(self, obj: Any, patch: Patch, options: PatchOptions | None = None) -> Any:
        return self._core.patch(self._scopes, obj, patch, False, options or PatchOptions())

    def delete(self, obj: Any, options: DeleteOptions | None = None) -> Any:
        return self._core.delete(self._scopes, obj, options or DeleteOptions())

    def delete_batch(self, target: Any, options: DeleteBatchOptions | None = None) -> int:
        """Delete every row of ``target``'s resource matching the scope and selectors.

        Returns the number of deleted rows.
        """
        return self._core.delete_batch(self._scopes, target, options or DeleteBatchOptions())

    def list(self, into: Any, options: ListOptions | None = None) -> Any:
        """Fill the ``ObjectList`` ``into`` with one page of results."""
        return self._core.list(self._scopes, into, options or ListOptions())

    def count(self, target: Any, options: CountOptions | None = None) -> int:
        return self._core.count(self._scopes, target, options or CountOptions())

    def patch_batch(self, target: Any, patch: Patch, options: PatchOptions | None = None) -> Any:
        raise UnsupportedError("patch batch is not supported").with_context(operation="patch_batch")

    def watch(self, target: Any, options: ListOptions | None = None) -> Any:
        raise UnsupportedError("watch is not supported").with_context(operation="watch")

    def close(self) -> None:
        self._core.engine.dispose()

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, *args) -> None:
        self.close()


class StatusStorage:
    """Status-mode writes: only status, annotations, labels, finalizers and ownerReferences."""

    def __init__(self, core: Core, scopes: tuple[Scope, ...]):
        self._core = core
        self._scopes = scopes

    def update(self, obj: Any, options: UpdateOptions | None = None) -> Any:
        return self._core.update(self._scopes, obj, True, options or UpdateOptions())

    def patch(self, obj: Any, patch: Patch, options: PatchOptions | None = None) -> Any:
        return self._core.patch(self._scopes, obj, patch, True, options or PatchOptions())


__all__ = ["StatusStorage", "Storage"]
