"""Field mapping between dataclasses and table columns.

The mapper turns a live dataclass instance (or a plain ``dict``) into a
``name -> FieldHandle`` mapping the engine can read from and write into,
without compile-time knowledge of the stored type.

Manifesto:
    The engine stores arbitrary application types. Introspecting a type on
    every call is slow and scatters the naming rules, so each dataclass is
    described once by a cached schema descriptor and every read and write
    path goes through it.

    - **One descriptor per type:** ``schema_for`` resolves type hints once
    - **Declarative columns:** ``column(name=..., omitempty=..., inline=...)``
    - **Parent wins:** inline fields never shadow a name already declared
    - **Plain JSON at the boundary:** nested values are dicts and lists

Features:
    - **column():** ``dataclasses.field`` with mapping metadata
      (``name``, ``ignore``, ``inline``, ``omitempty``)
    - **FieldMapper.fields():** column names of a type, for projections
    - **FieldMapper.field_map():** live handles for reading and scanning
    - **FieldMapper.to_driver_value_map():** bind values for writes
    - **to_driver_value():** native values pass through, others become
      ``JsonValuer``
    - **to_jsonable() / from_jsonable():** typed <-> JSON-compatible values

Examples:
    >>> @dataclass
    ... class Widget:
    ...     name: str = ""
    ...     created: datetime | None = column("creationTimestamp", default=None)
    ...     labels: dict[str, str] = column(default_factory=dict, omitempty=True)
    >>> FieldMapper().fields(Widget)
    ['name', 'creationTimestamp', 'labels']
    >>> sorted(FieldMapper().to_driver_value_map(Widget(name="a")))
    ['creationTimestamp', 'name']

Guardrails:
    ❌ DON'T: Declare mapped dataclasses inside functions (type hints must
       resolve from module globals)
    ✅ DO: Declare them at module level

Tags:
    field-mapping, dataclasses, reflection, json, sqlstore

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import base64
import dataclasses
import functools
import json
import types
from collections.abc import Callable, Mapping, MutableMapping
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, Union, get_args, get_origin, get_type_hints, runtime_checkable

# Field metadata keys
NAME = "name"
IGNORE = "ignore"
INLINE = "inline"
OMITEMPTY = "omitempty"


def column(
    name: str | None = None,
    *,
    ignore: bool = False,
    inline: bool = False,
    omitempty: bool = False,
    **kwargs: Any,
) -> Any:
    """``dataclasses.field`` carrying column mapping metadata.

    Args:
        name: Column name (defaults to the attribute name)
        ignore: Never map this field
        inline: Flatten the fields of this nested dataclass into the parent
        omitempty: Skip the field on writes while it holds a zero value
        **kwargs: Forwarded to ``dataclasses.field``
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    if name:
        metadata[NAME] = name
    if ignore:
        metadata[IGNORE] = True
    if inline:
        metadata[INLINE] = True
    if omitempty:
        metadata[OMITEMPTY] = True
    return dataclasses.field(metadata=metadata, **kwargs)


class FieldKind(str, Enum):
    """How a field is converted on the read path."""

    TIME = "time"
    BOOL = "bool"
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BYTES = "bytes"
    ENUM = "enum"
    JSON = "json"
    ANY = "any"
    VALUE = "value"


_JSON_ORIGINS = (dict, list, tuple, set, frozenset, Mapping, MutableMapping)


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Split ``X | None`` into ``(X, True)``; other types return ``(tp, False)``."""
    if get_origin(tp) in (Union, types.UnionType):
        args = get_args(tp)
        rest = tuple(arg for arg in args if arg is not type(None))
        if len(rest) != len(args):
            if len(rest) == 1:
                return rest[0], True
            return Union[rest], True  # noqa: UP007
    return tp, False


def classify(tp: Any) -> tuple[FieldKind, bool, Any]:
    """Classify a type hint into ``(kind, nullable, inner type)``."""
    inner, nullable = unwrap_optional(tp)
    origin = get_origin(inner)
    if inner is Any or inner is object or origin in (Union, types.UnionType):
        return FieldKind.ANY, nullable, inner
    if origin is not None:
        if origin in _JSON_ORIGINS or (isinstance(origin, type) and issubclass(origin, (list, dict))):
            return FieldKind.JSON, nullable, inner
        return FieldKind.VALUE, nullable, inner
    if not isinstance(inner, type):
        return FieldKind.ANY, nullable, inner
    if issubclass(inner, datetime):
        return FieldKind.TIME, nullable, inner
    if issubclass(inner, Enum):
        return FieldKind.ENUM, nullable, inner
    if issubclass(inner, bool):
        return FieldKind.BOOL, nullable, inner
    if issubclass(inner, str):
        return FieldKind.STRING, nullable, inner
    if issubclass(inner, int):
        return FieldKind.INT, nullable, inner
    if issubclass(inner, float):
        return FieldKind.FLOAT, nullable, inner
    if issubclass(inner, (bytes, bytearray)):
        return FieldKind.BYTES, nullable, inner
    if dataclasses.is_dataclass(inner) or issubclass(inner, _JSON_ORIGINS):
        return FieldKind.JSON, nullable, inner
    return FieldKind.VALUE, nullable, inner


@dataclasses.dataclass(frozen=True)
class FieldSpec:
    """Mapping description of one dataclass field."""

    attr: str
    name: str
    annotation: Any
    type: Any
    kind: FieldKind
    nullable: bool
    init: bool = True
    inline: bool = False
    ignore: bool = False
    omitempty: bool = False


@functools.cache
def schema_for(tp: type) -> tuple[FieldSpec, ...]:
    """Cached schema descriptor of a dataclass type."""
    if not (isinstance(tp, type) and dataclasses.is_dataclass(tp)):
        raise TypeError(f"{tp!r} is not a dataclass type")
    hints = get_type_hints(tp)
    specs = []
    for f in dataclasses.fields(tp):
        if f.name.startswith("_"):
            continue
        annotation = hints.get(f.name, Any)
        kind, nullable, inner = classify(annotation)
        specs.append(
            FieldSpec(
                attr=f.name,
                name=f.metadata.get(NAME, f.name),
                annotation=annotation,
                type=inner,
                kind=kind,
                nullable=nullable,
                init=f.init,
                inline=bool(f.metadata.get(INLINE)) and dataclasses.is_dataclass(inner),
                ignore=bool(f.metadata.get(IGNORE)),
                omitempty=bool(f.metadata.get(OMITEMPTY)),
            )
        )
    return tuple(specs)


def is_zero(value: Any) -> bool:
    """Whether ``value`` is the zero value of its type."""
    if value is None:
        return True
    if isinstance(value, Enum):
        return is_zero(value.value)
    if isinstance(value, (str, bytes, bytearray, int, float, Decimal, list, dict, tuple, set, frozenset)):
        return not value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return all(is_zero(getattr(value, f.name)) for f in dataclasses.fields(value))
    return False


class FieldHandle:
    """Read/write access to one field of a live dataclass or dict."""

    __slots__ = ("owner", "key", "spec")

    def __init__(self, owner: Any, key: Any, spec: FieldSpec | None = None):
        self.owner = owner
        self.key = key
        self.spec = spec

    @property
    def kind(self) -> FieldKind:
        return self.spec.kind if self.spec else FieldKind.ANY

    @property
    def type(self) -> Any:
        return self.spec.type if self.spec else Any

    @property
    def annotation(self) -> Any:
        return self.spec.annotation if self.spec else Any

    @property
    def nullable(self) -> bool:
        return self.spec.nullable if self.spec else True

    def get(self) -> Any:
        if isinstance(self.owner, MutableMapping):
            return self.owner.get(self.key)
        return getattr(self.owner, self.key)

    def set(self, value: Any) -> None:
        if isinstance(self.owner, MutableMapping):
            self.owner[self.key] = value
        else:
            setattr(self.owner, self.key, value)

    def __repr__(self) -> str:
        return f"FieldHandle({type(self.owner).__name__}.{self.key}, kind={self.kind.value})"


# =============================================================================
# WRITE PATH
# =============================================================================


@runtime_checkable
class Valuer(Protocol):
    """Values that convert themselves into a driver value at bind time."""

    def driver_value(self) -> Any: ...


class JsonValuer:
    """Binds any JSON-serializable source as JSON text."""

    __slots__ = ("source",)

    def __init__(self, source: Any):
        self.source = source

    def driver_value(self) -> Any:
        if self.source is None:
            return None
        return json.dumps(to_jsonable(self.source), separators=(",", ":"))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, JsonValuer) and other.source == self.source

    def __repr__(self) -> str:
        return f"JsonValuer({self.source!r})"


_NATIVE = (str, bytes, int, float, Decimal, datetime, date)


def to_driver_value(value: Any) -> Any:
    """Convert a field value into something a DBAPI driver accepts."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return to_driver_value(value.value)
    if isinstance(value, _NATIVE):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, Valuer):
        return value
    return JsonValuer(value)


def bind_value(value: Any) -> Any:
    """Resolve ``Valuer`` instances; everything else binds unchanged."""
    if isinstance(value, Valuer):
        return value.driver_value()
    return value


def format_time(value: datetime) -> str:
    """RFC 3339 text of ``value`` in UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_time(value: Any) -> datetime:
    """Parse a driver or JSON time value into an aware UTC datetime."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    raise TypeError(f"cannot convert {type(value).__name__} to datetime")


def to_jsonable(value: Any) -> Any:
    """Convert a typed value into JSON-compatible Python values."""
    if value is None or isinstance(value, (bool, int, float, str)) and not isinstance(value, Enum):
        return value
    if isinstance(value, Enum):
        return to_jsonable(value.value)
    if isinstance(value, datetime):
        return format_time(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _dataclass_to_jsonable(value)
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _dataclass_to_jsonable(value: Any) -> dict[str, Any]:
    own: dict[str, Any] = {}
    embedded: dict[str, Any] = {}
    for spec in schema_for(type(value)):
        if spec.ignore:
            continue
        current = getattr(value, spec.attr)
        if spec.inline:
            if current is not None:
                for k, v in _dataclass_to_jsonable(current).items():
                    embedded.setdefault(k, v)
            continue
        if spec.omitempty and is_zero(current):
            continue
        own[spec.name] = to_jsonable(current)
    for k, v in embedded.items():
        own.setdefault(k, v)
    return own


# =============================================================================
# READ PATH
# =============================================================================


def zero_value(tp: Any) -> Any:
    """Zero value of a type, ``None`` when it has none."""
    inner, nullable = unwrap_optional(tp)
    if nullable:
        return None
    origin = get_origin(inner) or inner
    if not isinstance(origin, type):
        return None
    if origin in (dict, Mapping, MutableMapping):
        return {}
    if origin in (list, tuple, set, frozenset):
        return origin()
    if issubclass(origin, Enum):
        return None
    if origin in (str, int, float, bool, bytes):
        return origin()
    if dataclasses.is_dataclass(origin):
        try:
            return origin()
        except TypeError:
            return None
    return None


def from_jsonable(tp: Any, data: Any) -> Any:
    """Convert JSON-compatible data into a value of type ``tp``.

    Raises:
        TypeError, ValueError: If ``data`` does not fit ``tp``.
    """
    if tp is Any or tp is object:
        return data
    inner, nullable = unwrap_optional(tp)
    if data is None:
        return None if nullable else zero_value(inner)
    origin = get_origin(inner)
    args = get_args(inner)
    if origin in (Union, types.UnionType):
        return data
    if origin is not None:
        if origin in (list, set, frozenset) or (isinstance(origin, type) and issubclass(origin, list)):
            _expect(data, list, inner)
            item_type = args[0] if args else Any
            return origin(from_jsonable(item_type, item) for item in data)
        if origin is tuple:
            _expect(data, list, inner)
            if len(args) == 2 and args[1] is Ellipsis:
                return tuple(from_jsonable(args[0], item) for item in data)
            if args:
                return tuple(from_jsonable(t, item) for t, item in zip(args, data, strict=False))
            return tuple(data)
        if origin in (dict, Mapping, MutableMapping) or (isinstance(origin, type) and issubclass(origin, dict)):
            _expect(data, dict, inner)
            value_type = args[1] if len(args) == 2 else Any
            return {k: from_jsonable(value_type, v) for k, v in data.items()}
        return data
    if not isinstance(inner, type):
        return data
    if dataclasses.is_dataclass(inner):
        _expect(data, dict, inner)
        return _dataclass_from_jsonable(inner, data)
    if issubclass(inner, datetime):
        return parse_time(data)
    if issubclass(inner, date):
        return date.fromisoformat(data) if isinstance(data, str) else data
    if issubclass(inner, Enum):
        return inner(data)
    if issubclass(inner, bool):
        _expect(data, bool, inner)
        return data
    if issubclass(inner, (bytes, bytearray)):
        if isinstance(data, str):
            return inner(base64.b64decode(data))
        return inner(data)
    if issubclass(inner, (str, int, float, Decimal)):
        if isinstance(data, (dict, list)):
            raise TypeError(f"cannot decode {type(data).__name__} into {inner.__name__}")
        return data if type(data) is inner else inner(data)
    if inner in (dict, list, tuple, set, frozenset):
        return inner(data)
    return data


def _expect(data: Any, kind: type, tp: Any) -> None:
    if not isinstance(data, kind):
        raise TypeError(f"cannot decode {type(data).__name__} into {tp!r}")


def _dataclass_from_jsonable(tp: type, data: Mapping[str, Any]) -> Any:
    kwargs: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for spec in schema_for(tp):
        if spec.ignore:
            continue
        if spec.inline:
            value = _dataclass_from_jsonable(spec.type, data)
        elif spec.name in data:
            value = from_jsonable(spec.annotation, data[spec.name])
        else:
            continue
        if spec.init:
            kwargs[spec.attr] = value
        else:
            late[spec.attr] = value
    obj = tp(**kwargs)
    for attr, value in late.items():
        setattr(obj, attr, value)
    return obj


# =============================================================================
# MAPPER
# =============================================================================


class FieldMapper:
    """Maps dataclass fields (or dict keys) to column names.

    Args:
        name_func: Optional transform applied to every mapped field name,
            e.g. ``str.lower``. A transform returning ``""`` drops the field.
    """

    def __init__(self, name_func: Callable[[str], str] | None = None):
        self.name_func = name_func

    def column_name(self, spec: FieldSpec) -> str:
        if self.name_func is not None:
            return self.name_func(spec.name)
        return spec.name

    def fields(self, target: Any) -> list[str]:
        """Column names of a dataclass type (or instance), inline fields flattened."""
        tp = target if isinstance(target, type) else type(target)
        if not dataclasses.is_dataclass(tp):
            return []
        return list(self._names(tp))

    def _names(self, tp: type) -> dict[str, None]:
        own: dict[str, None] = {}
        embedded: dict[str, None] = {}
        for spec in schema_for(tp):
            if spec.ignore:
                continue
            if spec.inline:
                for name in self._names(spec.type):
                    embedded.setdefault(name, None)
                continue
            name = self.column_name(spec)
            if name:
                own[name] = None
        for name in embedded:
            own.setdefault(name, None)
        return own

    def field_map(self, value: Any, with_init: bool = False) -> dict[str, FieldHandle]:
        """Handles of every mapped field of ``value``.

        Without ``with_init`` (the write path) omitempty fields holding a
        zero value are skipped. With ``with_init`` (the scan path) every
        field is returned and absent inline dataclasses are allocated.
        """
        if isinstance(value, MutableMapping):
            return {str(key): FieldHandle(value, key) for key in value}
        if not dataclasses.is_dataclass(value) or isinstance(value, type):
            return {}
        own: dict[str, FieldHandle] = {}
        embedded: dict[str, FieldHandle] = {}
        for spec in schema_for(type(value)):
            if spec.ignore:
                continue
            current = getattr(value, spec.attr)
            if spec.inline:
                if current is None:
                    if not with_init:
                        continue
                    current = spec.type()
                    setattr(value, spec.attr, current)
                for name, handle in self.field_map(current, with_init).items():
                    embedded.setdefault(name, handle)
                continue
            if not with_init and spec.omitempty and is_zero(current):
                continue
            name = self.column_name(spec)
            if name:
                own[name] = FieldHandle(value, spec.attr, spec)
        for name, handle in embedded.items():
            own.setdefault(name, handle)
        return own

    def to_driver_value_map(self, value: Any) -> dict[str, Any]:
        """Column name -> driver value for every field written by ``value``."""
        return {name: to_driver_value(handle.get()) for name, handle in self.field_map(value).items()}


__all__ = [
    "FieldHandle",
    "FieldKind",
    "FieldMapper",
    "FieldSpec",
    "JsonValuer",
    "Valuer",
    "bind_value",
    "classify",
    "column",
    "format_time",
    "from_jsonable",
    "is_zero",
    "parse_time",
    "schema_for",
    "to_driver_value",
    "to_jsonable",
    "unwrap_optional",
    "zero_value",
]
