"""Read-path adapters: column value -> typed field.

``to_scan_target`` picks one scanner per destination field; ``scan_one``
and ``scan_all`` apply them to result rows. Drivers disagree on how they
return booleans, timestamps and JSON (MySQL bit columns arrive as bytes,
SQLite timestamps as text, psycopg2 JSON as already-decoded dicts), so
each scanner accepts every representation the supported drivers produce.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, MutableMapping, Sequence
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from sqlstore.core.errors import ScanError
from sqlstore.store.fields import (
    FieldHandle,
    FieldKind,
    FieldMapper,
    from_jsonable,
    parse_time,
    zero_value,
)


@runtime_checkable
class Scanner(Protocol):
    """Writes one column value into its destination."""

    def scan(self, src: Any) -> None: ...


class _HandleScanner:
    __slots__ = ("handle",)

    def __init__(self, handle: FieldHandle):
        self.handle = handle

    def _fail(self, src: Any, cause: Exception | None = None) -> ScanError:
        return ScanError(
            f"cannot scan {type(src).__name__} into field {self.handle.key!r}",
            cause=cause,
        )


class TimeScanner(_HandleScanner):
    """Non-nullable datetime destination."""

    def scan(self, src: Any) -> None:
        if src is None:
            raise self._fail(src)
        try:
            self.handle.set(parse_time(src))
        except (TypeError, ValueError) as e:
            raise self._fail(src, e) from e


class NullTimeScanner(_HandleScanner):
    """Nullable datetime destination; NULL clears the field."""

    def scan(self, src: Any) -> None:
        if src is None:
            self.handle.set(None)
            return
        try:
            self.handle.set(parse_time(src))
        except (TypeError, ValueError) as e:
            raise self._fail(src, e) from e


_TRUE = {"1", "t", "true", "y", "yes", "on"}
_FALSE = {"0", "f", "false", "n", "no", "off", ""}


class BoolScanner(_HandleScanner):
    """Booleans from bool, int, bit(1) bytes or text."""

    def scan(self, src: Any) -> None:
        if src is None:
            self.handle.set(None if self.handle.nullable else False)
            return
        if isinstance(src, (bytes, bytearray)):
            if len(src) == 0:
                return
            if src[0] in (0, 1):
                self.handle.set(bool(src[0]))
                return
            src = bytes(src).decode()
        if isinstance(src, bool):
            self.handle.set(src)
        elif isinstance(src, int):
            self.handle.set(src != 0)
        elif isinstance(src, str) and src.strip().lower() in _TRUE:
            self.handle.set(True)
        elif isinstance(src, str) and src.strip().lower() in _FALSE:
            self.handle.set(False)
        else:
            raise self._fail(src)


class StringScanner(_HandleScanner):
    """Strings; NULL becomes the empty string."""

    def scan(self, src: Any) -> None:
        if src is None:
            self.handle.set("")
        elif isinstance(src, (bytes, bytearray)):
            self.handle.set(bytes(src).decode())
        elif isinstance(src, (str, int, float)) and not isinstance(src, bool):
            self.handle.set(str(src))
        else:
            raise self._fail(src)


class JsonScanner(_HandleScanner):
    """Nested dataclasses, dicts and lists stored as JSON text.

    NULL, empty text and ``null`` reset the field to its zero value.
    Values already decoded by the driver are converted directly.
    """

    def scan(self, src: Any) -> None:
        if isinstance(src, (bytes, bytearray, memoryview)):
            src = bytes(src).decode()
        if src is None or (isinstance(src, str) and src.strip() in ("", "null")):
            self.handle.set(zero_value(self.handle.annotation))
            return
        try:
            data = json.loads(src) if isinstance(src, str) else src
            self.handle.set(from_jsonable(self.handle.annotation, data))
        except (TypeError, ValueError) as e:
            raise self._fail(src, e) from e


class AnyScanner(_HandleScanner):
    """Untyped destinations: bytes become text, NULL becomes ``None``."""

    def scan(self, src: Any) -> None:
        if isinstance(src, (bytes, bytearray)):
            if len(src) == 0:
                return
            src = bytes(src).decode()
        self.handle.set(src)


class ValueScanner(_HandleScanner):
    """Direct assignment, coerced to the declared scalar type."""

    def scan(self, src: Any) -> None:
        tp = self.handle.type
        if src is None:
            self.handle.set(zero_value(tp))
            return
        try:
            if isinstance(tp, type) and issubclass(tp, Enum):
                self.handle.set(tp(src))
            elif isinstance(tp, type) and tp in (int, float) and not isinstance(src, tp):
                if isinstance(src, (bytes, bytearray)):
                    src = bytes(src).decode()
                self.handle.set(tp(src))
            elif isinstance(tp, type) and tp is bytes and isinstance(src, (str, bytearray, memoryview)):
                self.handle.set(src.encode() if isinstance(src, str) else bytes(src))
            else:
                self.handle.set(src)
        except (TypeError, ValueError) as e:
            raise self._fail(src, e) from e


class NullableScanner:
    """Wraps a scalar scanner so NULL leaves ``None`` in optional fields."""

    __slots__ = ("handle", "inner")

    def __init__(self, handle: FieldHandle, inner: Scanner):
        self.handle = handle
        self.inner = inner

    def scan(self, src: Any) -> None:
        if src is None:
            self.handle.set(None)
            return
        self.inner.scan(src)


class _Discard:
    def scan(self, src: Any) -> None:
        pass


_DISCARD = _Discard()


def to_scan_target(handle: FieldHandle) -> Scanner:
    """Choose the scanner for a destination field."""
    current = handle.get()
    if isinstance(current, Scanner):
        return current
    kind = handle.kind
    if kind is FieldKind.TIME:
        return NullTimeScanner(handle) if handle.nullable else TimeScanner(handle)
    if kind is FieldKind.JSON:
        return JsonScanner(handle)
    if kind is FieldKind.ANY:
        return AnyScanner(handle)
    if kind is FieldKind.BOOL:
        scanner: Scanner = BoolScanner(handle)
    elif kind is FieldKind.STRING:
        scanner = StringScanner(handle)
    else:
        scanner = ValueScanner(handle)
    if handle.nullable:
        return NullableScanner(handle, scanner)
    return scanner


def scan_one(mapper: FieldMapper, columns: Sequence[str], row: Sequence[Any], into: Any) -> Any:
    """Populate ``into`` from one row; unknown columns are discarded."""
    if isinstance(into, MutableMapping):
        for name, value in zip(columns, row, strict=True):
            AnyScanner(FieldHandle(into, name)).scan(value)
            if name not in into:
                into[name] = None
        return into
    fields = mapper.field_map(into, with_init=True)
    for name, value in zip(columns, row, strict=True):
        handle = fields.get(name)
        target = to_scan_target(handle) if handle is not None else _DISCARD
        target.scan(value)
    return into


def scan_all(
    mapper: FieldMapper, columns: Sequence[str], rows: Iterable[Sequence[Any]], item_type: Any
) -> list[Any]:
    """Scan every row into a fresh ``item_type`` instance."""
    factory = dict if item_type in (dict, Any, None) else item_type
    return [scan_one(mapper, columns, row, factory()) for row in rows]


__all__ = [
    "AnyScanner",
    "BoolScanner",
    "JsonScanner",
    "NullTimeScanner",
    "NullableScanner",
    "Scanner",
    "StringScanner",
    "TimeScanner",
    "ValueScanner",
    "scan_all",
    "scan_one",
    "to_scan_target",
]
