"""Core engine: scoped CRUD, selectors, search, sort and pagination.

Statements are built as SQLAlchemy ``text()`` clauses with named bind
parameters (``:p0``, ``:p1`` ...). Identifiers always go through the
dialect's quoting; values are always bound.

Query shape for every operation::

    <verb> <table>
      WHERE "<scope.resource>" = :p ...      -- one per scope
        AND "name" = :p                      -- single-object operations
        AND (<search> OR <search> ...)       -- list / count
        AND <field requirement> ...
        AND <label requirement> ...          -- JSON text of labels at $."key"
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import is_dataclass
from datetime import UTC, datetime
from itertools import groupby
from operator import attrgetter
from typing import Any

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine
from sqlalchemy.sql.elements import TextClause

from sqlstore.core.dialect import Dialect
from sqlstore.core.errors import BadRequestError, NotFoundError, StoreError
from sqlstore.core.logging import get_logger
from sqlstore.store.fields import FieldKind, FieldMapper, bind_value, to_driver_value, to_jsonable
from sqlstore.store.object import Scope, now
from sqlstore.store.options import (
    CountOptions,
    DeleteBatchOptions,
    DeleteOptions,
    GetOptions,
    ListOptions,
    PatchOptions,
    SelectorOptions,
    SortDirection,
    UpdateOptions,
)
from sqlstore.store.patch import JSONMutation, JSONStep, Patch, PatchUpdate, decode_patch
from sqlstore.store.registry import ResourceRegistry, item_type
from sqlstore.store.scanners import scan_all, scan_one
from sqlstore.store.selector import Operator, Requirement
from sqlstore.store.sqlerrors import map_sql_error

logger = get_logger(__name__)

STATUS_ALLOWED_KEYS = ("status", "annotations", "labels", "finalizers", "ownerReferences")

NAME_COLUMN = "name"
LABELS_COLUMN = "labels"
CREATION_TIMESTAMP_COLUMN = "creationTimestamp"

_COMPARISONS = {
    Operator.EQUALS: "=",
    Operator.DOUBLE_EQUALS: "=",
    Operator.NOT_EQUALS: "<>",
    Operator.GREATER_THAN: ">",
    Operator.LESS_THAN: "<",
    Operator.GREATER_THAN_OR_EQUAL: ">=",
    Operator.LESS_THAN_OR_EQUAL: "<=",
}


def is_allowed_key(key: str, status: bool) -> bool:
    """Status writes touch only the allow-list; spec writes never touch ``status``."""
    if status:
        return key in STATUS_ALLOWED_KEYS
    return key != "status"


class Statement:
    """Accumulates bind parameters for one SQL statement."""

    def __init__(self) -> None:
        self.params: dict[str, Any] = {}
        self._typed: list[Any] = []

    def bind(self, value: Any) -> str:
        key = f"p{len(self.params)}"
        value = bind_value(value)
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(UTC)
            self._typed.append(bindparam(key, type_=DateTime(timezone=True)))
        self.params[key] = value
        return f":{key}"

    def bind_json(self, value: Any) -> str:
        return self.bind(json.dumps(to_jsonable(value), separators=(",", ":")))

    def clause(self, sql: str) -> TextClause:
        clause = text(sql)
        if self._typed:
            clause = clause.bindparams(*self._typed)
        return clause


class Core:
    """Executes storage operations against one SQLAlchemy engine."""

    def __init__(
        self,
        engine: Engine,
        dialect: Dialect,
        registry: ResourceRegistry,
        mapper: FieldMapper,
    ):
        self.engine = engine
        self.dialect = dialect
        self.registry = registry
        self.mapper = mapper

    # -- SQL building ------------------------------------------------------

    def ident(self, identifier: str) -> str:
        # text() treats ":word" as a bind parameter
        return self.dialect.quote_identifier(identifier).replace(":", "\\:")

    def _predicates(
        self,
        stmt: Statement,
        scopes: Sequence[Scope],
        options: SelectorOptions | None = None,
        name: str | None = None,
    ) -> list[str]:
        where = [f"{self.ident(scope.resource)} = {stmt.bind(scope.name)}" for scope in scopes]
        if name is not None:
            where.append(f"{self.ident(NAME_COLUMN)} = {stmt.bind(name)}")
        if options is not None:
            for req in options.field_requirements:
                where.append(self._condition(stmt, self.ident(req.key), req))
            for req in options.label_requirements:
                path = stmt.bind(self.dialect.json_path([req.key]))
                column = self.dialect.json_extract_text(self.ident(LABELS_COLUMN), path)
                where.append(self._condition(stmt, column, req))
        return where

    def _condition(self, stmt: Statement, column: str, req: Requirement) -> str:
        op = req.operator
        if op in _COMPARISONS:
            return f"{column} {_COMPARISONS[op]} {stmt.bind(req.values[0])}"
        if op in (Operator.IN, Operator.NOT_IN):
            keyword = "IN" if op is Operator.IN else "NOT IN"
            return f"{column} {keyword} ({', '.join(stmt.bind(v) for v in req.values)})"
        if op is Operator.EXISTS:
            return f"{column} IS NOT NULL"
        if op is Operator.DOES_NOT_EXIST:
            return f"{column} IS NULL"
        if op is Operator.LIKE:
            return f"{column} LIKE {stmt.bind(f'%{req.values[0]}%')}"
        raise BadRequestError(f"unsupported operator {op!r}")

    def _search(self, stmt: Statement, options: CountOptions) -> list[str]:
        if not options.search:
            return []
        pattern = f"%{options.search}%"
        fields = options.search_fields or [NAME_COLUMN]
        terms = [f"{self.ident(f)} LIKE {stmt.bind(pattern)}" for f in fields]
        return ["(" + " OR ".join(terms) + ")"]

    def _projection(self, fields: Sequence[str], target: Any) -> str:
        """Explicit fields, else every mapped field of a dataclass target, else ``*``."""
        if not fields and is_dataclass(target):
            fields = self.mapper.fields(target)
        if not fields:
            return "*"
        return ", ".join(self.ident(f) for f in fields)

    @staticmethod
    def _where(predicates: Iterable[str]) -> str:
        predicates = list(predicates)
        if not predicates:
            return ""
        return " WHERE " + " AND ".join(predicates)

    # -- Execution ---------------------------------------------------------

    def _read(
        self, operation: str, resource: str, name: str | None, stmt: Statement, *sql: str
    ) -> list[tuple[list[str], list[Sequence[Any]]]]:
        logger.debug("store.sql", operation=operation, resource=resource, name=name)
        results = []
        try:
            with self.engine.connect() as conn:
                for query in sql:
                    result = conn.execute(stmt.clause(query), stmt.params)
                    results.append((list(result.keys()), list(result.fetchall())))
        except sa_exc.SQLAlchemyError as e:
            raise map_sql_error(e, operation, resource, name) from e
        return results

    def _write(
        self, operation: str, resource: str, name: str | None, stmt: Statement, sql: str
    ) -> int:
        logger.debug("store.sql", operation=operation, resource=resource, name=name)
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt.clause(sql), stmt.params).rowcount
        except sa_exc.SQLAlchemyError as e:
            raise map_sql_error(e, operation, resource, name) from e

    # -- Object helpers ----------------------------------------------------

    def name_of(self, obj: Any) -> str:
        handle = self.mapper.field_map(obj, with_init=True).get(NAME_COLUMN)
        name = handle.get() if handle is not None else None
        return name if isinstance(name, str) else ""

    def _require_name(self, operation: str, resource: str, name: str) -> None:
        if not name:
            raise BadRequestError(f"{resource}: empty name").with_context(
                operation=operation, resource=resource
            )

    def _stamp_creation(self, obj: Any) -> None:
        if isinstance(obj, dict):
            obj[CREATION_TIMESTAMP_COLUMN] = now()
            return
        handle = self.mapper.field_map(obj, with_init=True).get(CREATION_TIMESTAMP_COLUMN)
        if handle is not None and handle.kind in (FieldKind.TIME, FieldKind.ANY):
            handle.set(now())

    @staticmethod
    def _not_found(operation: str, resource: str, name: str) -> NotFoundError:
        return NotFoundError(f'{resource} "{name}" not found').with_context(
            operation=operation, resource=resource, name=name
        )

    def _exists(self, scopes: Sequence[Scope], resource: str, name: str, options: SelectorOptions) -> bool:
        stmt = Statement()
        sql = (
            f"SELECT 1 FROM {self.ident(resource)}"
            f"{self._where(self._predicates(stmt, scopes, options, name))} LIMIT 1"
        )
        [(_, rows)] = self._read("exists", resource, name, stmt, sql)
        return bool(rows)

    # -- Operations --------------------------------------------------------

    def create(self, scopes: Sequence[Scope], obj: Any) -> Any:
        resource = self.registry.resource_for(obj)
        name = self.name_of(obj)
        self._require_name("create", resource, name)
        self._stamp_creation(obj)

        values = self.mapper.to_driver_value_map(obj)
        for scope in scopes:
            values[scope.resource] = scope.name

        stmt = Statement()
        columns = ", ".join(self.ident(k) for k in values)
        placeholders = ", ".join(stmt.bind(v) for v in values.values())
        sql = f"INSERT INTO {self.ident(resource)} ({columns}) VALUES ({placeholders})"
        logger.debug("store.create", resource=resource, name=name, scopes=[str(s) for s in scopes])
        self._write("create", resource, name, stmt, sql)
        return obj

    def get(self, scopes: Sequence[Scope], name: str, into: Any, options: GetOptions) -> Any:
        resource = self.registry.resource_for(into)
        self._require_name("get", resource, name)

        stmt = Statement()
        projection = self._projection(options.fields, into)
        sql = (
            f"SELECT {projection} FROM {self.ident(resource)}"
            f"{self._where(self._predicates(stmt, scopes, options, name))} LIMIT 1"
        )
        logger.debug("store.get", resource=resource, name=name, scopes=[str(s) for s in scopes])
        [(columns, rows)] = self._read("get", resource, name, stmt, sql)
        if not rows:
            raise self._not_found("get", resource, name)
        try:
            return scan_one(self.mapper, columns, rows[0], into)
        except StoreError as e:
            raise e.with_context(operation="get", resource=resource, name=name)

    def update(
        self, scopes: Sequence[Scope], obj: Any, status: bool, options: UpdateOptions
    ) -> Any:
        resource = self.registry.resource_for(obj)
        name = self.name_of(obj)
        self._require_name("update", resource, name)

        values = {
            k: v for k, v in self.mapper.to_driver_value_map(obj).items() if is_allowed_key(k, status)
        }
        if not status:
            for scope in scopes:
                values[scope.resource] = scope.name
        if not values:
            if not self._exists(scopes, resource, name, options):
                raise self._not_found("update", resource, name)
            return obj

        stmt = Statement()
        assignments = ", ".join(f"{self.ident(k)} = {stmt.bind(v)}" for k, v in values.items())
        sql = (
            f"UPDATE {self.ident(resource)} SET {assignments}"
            f"{self._where(self._predicates(stmt, scopes, options, name))}"
        )
        logger.debug("store.update", resource=resource, name=name, status=status)
        if self._write("update", resource, name, stmt, sql) == 0:
            raise self._not_found("update", resource, name)
        return obj

    def patch(
        self, scopes: Sequence[Scope], obj: Any, patch: Patch, status: bool, options: PatchOptions
    ) -> Any:
        resource = self.registry.resource_for(obj)
        name = self.name_of(obj)
        self._require_name("patch", resource, name)

        update = decode_patch(patch, obj).restrict(lambda key: is_allowed_key(key, status))
        if not update:
            if not self._exists(scopes, resource, name, options):
                raise self._not_found("patch", resource, name)
            return obj

        stmt = Statement()
        assignments = self._patch_assignments(stmt, update)
        sql = (
            f"UPDATE {self.ident(resource)} SET {', '.join(assignments)}"
            f"{self._where(self._predicates(stmt, scopes, options, name))}"
        )
        logger.debug(
            "store.patch",
            resource=resource,
            name=name,
            status=status,
            keys=sorted(update.keys()),
        )
        if self._write("patch", resource, name, stmt, sql) == 0:
            raise self._not_found("patch", resource, name)
        return obj

    def _patch_assignments(self, stmt: Statement, update: PatchUpdate) -> list[str]:
        assignments = []
        for key, value in update.columns.items():
            if key in update.json_ops:
                continue
            assignments.append(f"{self.ident(key)} = {stmt.bind(to_driver_value(value))}")
        for key, ops in update.json_ops.items():
            if key in update.columns:
                base = update.columns[key]
                target = self.dialect.json_value(stmt.bind_json(base if base is not None else {}))
            else:
                target = self.dialect.json_document(self.ident(key))
            # consecutive steps of one kind share a call; kinds nest in patch order
            for kind, group in groupby(ops.steps, key=attrgetter("kind")):
                steps = list(group)
                if kind is JSONMutation.REMOVE:
                    paths = [stmt.bind(self.dialect.json_path(s.path)) for s in steps]
                    target = self.dialect.json_remove(target, paths)
                elif kind is JSONMutation.REPLACE:
                    target = self.dialect.json_replace(target, self._json_pairs(stmt, steps))
                else:
                    target = self.dialect.json_set(target, self._json_pairs(stmt, steps))
            assignments.append(f"{self.ident(key)} = {target}")
        return assignments

    def _json_pairs(self, stmt: Statement, steps: Sequence[JSONStep]) -> list[tuple[str, str]]:
        return [
            (stmt.bind(self.dialect.json_path(s.path)), self.dialect.json_value(stmt.bind_json(s.value)))
            for s in steps
        ]

    def delete(self, scopes: Sequence[Scope], obj: Any, options: DeleteOptions) -> Any:
        resource = self.registry.resource_for(obj)
        name = self.name_of(obj)
        self._require_name("delete", resource, name)

        stmt = Statement()
        sql = f"DELETE FROM {self.ident(resource)}{self._where(self._predicates(stmt, scopes, options, name))}"
        logger.debug("store.delete", resource=resource, name=name)
        if self._write("delete", resource, name, stmt, sql) == 0:
            raise self._not_found("delete", resource, name)
        return obj

    def delete_batch(self, scopes: Sequence[Scope], target: Any, options: DeleteBatchOptions) -> int:
        resource = self.registry.resource_for(target)
        stmt = Statement()
        sql = f"DELETE FROM {self.ident(resource)}{self._where(self._predicates(stmt, scopes, options))}"
        deleted = self._write("delete_batch", resource, None, stmt, sql)
        logger.debug("store.delete_batch", resource=resource, deleted=deleted)
        return deleted

    def list(self, scopes: Sequence[Scope], into: Any, options: ListOptions) -> Any:
        resource = self.registry.resource_for(into)
        element = item_type(into)

        stmt = Statement()
        where = self._where(
            self._predicates(stmt, scopes) + self._search(stmt, options) + self._predicates(stmt, (), options)
        )
        table = self.ident(resource)

        projection = self._projection(options.fields, element)
        order = [
            f"{self.ident(s.field)} {'DESC' if s.direction is SortDirection.DESC else 'ASC'}"
            for s in options.sort_fields()
        ]
        sql = f"SELECT {projection} FROM {table}{where}"
        if order:
            sql += " ORDER BY " + ", ".join(order)

        page, size = options.page, options.size
        if size > 0:
            page = max(1, page)
            sql += f" LIMIT {int(size)} OFFSET {int((page - 1) * size)}"

        logger.debug(
            "store.list", resource=resource, scopes=[str(s) for s in scopes], page=page, size=size
        )
        count_sql = f"SELECT COUNT(*) FROM {table}{where}"
        [(_, count_rows), (columns, rows)] = self._read("list", resource, None, stmt, count_sql, sql)
        try:
            items = scan_all(self.mapper, columns, rows, element)
        except StoreError as e:
            raise e.with_context(operation="list", resource=resource)

        into.items = items
        into.total = int(count_rows[0][0])
        into.page = page
        into.size = size
        into.resource = resource
        return into

    def count(self, scopes: Sequence[Scope], target: Any, options: CountOptions) -> int:
        resource = self.registry.resource_for(target)
        stmt = Statement()
        where = self._where(
            self._predicates(stmt, scopes) + self._search(stmt, options) + self._predicates(stmt, (), options)
        )
        sql = f"SELECT COUNT(*) FROM {self.ident(resource)}{where}"
        [(_, rows)] = self._read("count", resource, None, stmt, sql)
        return int(rows[0][0])


__all__ = ["Core", "STATUS_ALLOWED_KEYS", "Statement", "is_allowed_key"]
