"""Partial updates: JSON Patch (RFC 6902) and JSON Merge Patch (RFC 7386).

The engine never reads-modifies-writes an object to apply a patch. Instead
the patch document is reduced to a ``PatchUpdate``:

- ``columns``: top-level keys assigned whole (``NULL`` for removals), and
- ``json_ops``: per-column JSON mutations, in patch order, for paths
  reaching inside a JSON column, compiled by the engine into the dialect's ``JSON_SET`` /
  ``JSON_REPLACE`` / ``JSON_REMOVE`` equivalents.

Examples:
    >>> update = json_patch_to_update([
    ...     {"op": "replace", "path": "/value", "value": 2},
    ...     {"op": "add", "path": "/labels/app", "value": "web"},
    ...     {"op": "remove", "path": "/annotations/a~1b"},
    ... ])
    >>> update.columns
    {'value': 2}
    >>> update.json_ops["labels"].set
    [(['app'], 'web')]
    >>> update.json_ops["annotations"].remove
    [['a/b']]
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from sqlstore.core.errors import BadRequestError
from sqlstore.store.fields import to_jsonable

MAX_JSON_PATCH_OPERATIONS = 10000


class PatchType(str, Enum):
    JSON_PATCH = "application/json-patch+json"
    MERGE_PATCH = "application/merge-patch+json"


@runtime_checkable
class Patch(Protocol):
    """A patch document and its media type."""

    @property
    def type(self) -> PatchType: ...

    def data(self, obj: Any) -> bytes: ...


class RawPatch:
    """Pre-encoded patch bytes."""

    def __init__(self, type: PatchType, data: bytes | str):
        self._type = PatchType(type)
        self._data = data.encode() if isinstance(data, str) else data

    @property
    def type(self) -> PatchType:
        return self._type

    def data(self, obj: Any) -> bytes:
        return self._data


class MergePatch(dict):
    """A merge patch built from a mapping: ``MergePatch(value=2)``."""

    @property
    def type(self) -> PatchType:
        return PatchType.MERGE_PATCH

    def data(self, obj: Any) -> bytes:
        return json.dumps(to_jsonable(dict(self))).encode()


class JSONPatch(list):
    """A JSON Patch operation list: ``JSONPatch([{"op": ..., "path": ...}])``."""

    @property
    def type(self) -> PatchType:
        return PatchType.JSON_PATCH

    def data(self, obj: Any) -> bytes:
        return json.dumps(to_jsonable(list(self))).encode()


class MergeFromPatch:
    """Merge patch from a snapshot to the object passed to ``data``.

    Each changed top-level key carries its whole new value, so a changed
    JSON column is rewritten as one document.

    Usage:
        snapshot = copy.deepcopy(widget)
        widget.value = 2
        storage.patch(widget, MergeFromPatch(snapshot))
    """

    def __init__(self, original: Any):
        self.original = to_jsonable(original)

    @property
    def type(self) -> PatchType:
        return PatchType.MERGE_PATCH

    def data(self, obj: Any) -> bytes:
        modified = to_jsonable(obj)
        if not isinstance(self.original, dict) or not isinstance(modified, dict):
            return json.dumps(create_merge_patch(self.original, modified)).encode()
        patch: dict[str, Any] = {key: None for key in self.original if key not in modified}
        for key, value in modified.items():
            if key not in self.original or self.original[key] != value:
                patch[key] = value
        return json.dumps(patch).encode()


def create_merge_patch(original: Any, modified: Any) -> Any:
    """RFC 7386 merge patch turning ``original`` into ``modified``."""
    if not isinstance(original, dict) or not isinstance(modified, dict):
        return modified
    patch: dict[str, Any] = {}
    for key in original:
        if key not in modified:
            patch[key] = None
    for key, value in modified.items():
        if key not in original:
            patch[key] = value
        elif original[key] != value:
            if isinstance(original[key], dict) and isinstance(value, dict):
                patch[key] = create_merge_patch(original[key], value)
            else:
                patch[key] = value
    return patch


def json_pointer_escape(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def json_pointer_unescape(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


class JSONMutation(str, Enum):
    SET = "set"
    REPLACE = "replace"
    REMOVE = "remove"


@dataclass
class JSONStep:
    kind: JSONMutation
    path: list[str]
    value: Any = None


@dataclass
class JSONOperation:
    """Accumulated JSON mutations for one column, in patch order.

    Paths are segment lists relative to the column document. ``set``,
    ``replace`` and ``remove`` are per-kind views of ``steps``.
    """

    steps: list[JSONStep] = field(default_factory=list)

    def append(self, kind: JSONMutation, path: list[str], value: Any = None) -> None:
        self.steps.append(JSONStep(kind, path, value))

    @property
    def set(self) -> list[tuple[list[str], Any]]:
        return [(s.path, s.value) for s in self.steps if s.kind is JSONMutation.SET]

    @property
    def replace(self) -> list[tuple[list[str], Any]]:
        return [(s.path, s.value) for s in self.steps if s.kind is JSONMutation.REPLACE]

    @property
    def remove(self) -> list[list[str]]:
        return [s.path for s in self.steps if s.kind is JSONMutation.REMOVE]

    def __bool__(self) -> bool:
        return bool(self.steps)


@dataclass
class PatchUpdate:
    columns: dict[str, Any] = field(default_factory=dict)
    json_ops: dict[str, JSONOperation] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.columns or self.json_ops)

    def keys(self) -> set[str]:
        return set(self.columns) | set(self.json_ops)

    def restrict(self, allowed: Any) -> PatchUpdate:
        """Keep only top-level keys for which ``allowed(key)`` is true."""
        return PatchUpdate(
            columns={k: v for k, v in self.columns.items() if allowed(k)},
            json_ops={k: v for k, v in self.json_ops.items() if allowed(k)},
        )


def _split_path(path: str) -> list[str]:
    if path.startswith("/"):
        path = path[1:]
    return [json_pointer_unescape(segment) for segment in path.split("/")]


def _matches(keys: Sequence[str], segments: Sequence[str]) -> bool:
    return bool(segments) and segments[0] in keys


_MUTATIONS = {
    "add": JSONMutation.SET,
    "replace": JSONMutation.REPLACE,
    "remove": JSONMutation.REMOVE,
}


def json_patch_to_update(
    patches: Iterable[Mapping[str, Any]],
    excludes: Sequence[str] = (),
    includes: Sequence[str] = (),
) -> PatchUpdate:
    """Reduce a JSON Patch operation list into a ``PatchUpdate``.

    Args:
        patches: Decoded operations (``{"op", "path", "value"}`` mappings)
        excludes: Top-level keys whose operations are dropped
        includes: When non-empty, only operations on these keys are kept

    Raises:
        BadRequestError: On a malformed operation or an unsupported op;
            nothing is applied in that case.
    """
    patches = list(patches)
    if len(patches) > MAX_JSON_PATCH_OPERATIONS:
        raise BadRequestError(
            f"json patch has {len(patches)} operations, limit is {MAX_JSON_PATCH_OPERATIONS}"
        )
    update = PatchUpdate()
    for patch in patches:
        if not isinstance(patch, Mapping):
            raise BadRequestError(f"invalid patch operation: {patch!r}")
        path, op, value = patch.get("path"), patch.get("op"), patch.get("value")
        if not isinstance(path, str) or not path:
            raise BadRequestError(f"invalid patch path: {path!r}")
        if not isinstance(op, str) or not op:
            raise BadRequestError(f"invalid patch op: {op!r}")
        segments = _split_path(path)
        if _matches(excludes, segments) or (includes and not _matches(includes, segments)):
            continue
        key, rest = segments[0], segments[1:]
        if op not in _MUTATIONS:
            raise BadRequestError(f"invalid patch op: {op!r}")
        if not rest:
            # a whole-column write supersedes earlier nested steps
            update.json_ops.pop(key, None)
            update.columns[key] = None if op == "remove" else value
        else:
            kind = _MUTATIONS[op]
            update.json_ops.setdefault(key, JSONOperation()).append(
                kind, rest, None if kind is JSONMutation.REMOVE else value
            )
    return update


def merge_patch_to_update(document: Any) -> PatchUpdate:
    """Top-level keys of a merge patch become whole-column assignments."""
    if not isinstance(document, dict):
        raise BadRequestError("merge patch must be a JSON object")
    return PatchUpdate(columns=dict(document))


def decode_patch(patch: Patch, obj: Any) -> PatchUpdate:
    """Decode a patch's bytes according to its type.

    Raises:
        BadRequestError: On undecodable data or an unknown patch type.
    """
    try:
        patch_type = PatchType(patch.type)
    except ValueError as e:
        raise BadRequestError(f"unsupported patch type: {patch.type!r}") from e
    try:
        document = json.loads(patch.data(obj))
    except (TypeError, ValueError) as e:
        raise BadRequestError(f"invalid patch data: {e}", cause=e) from e
    if patch_type is PatchType.JSON_PATCH:
        if not isinstance(document, list):
            raise BadRequestError("json patch must be a JSON array")
        return json_patch_to_update(document)
    return merge_patch_to_update(document)


__all__ = [
    "MAX_JSON_PATCH_OPERATIONS",
    "JSONMutation",
    "JSONOperation",
    "JSONPatch",
    "JSONStep",
    "MergeFromPatch",
    "MergePatch",
    "Patch",
    "PatchType",
    "PatchUpdate",
    "RawPatch",
    "create_merge_patch",
    "decode_patch",
    "json_patch_to_update",
    "json_pointer_escape",
    "json_pointer_unescape",
    "merge_patch_to_update",
]
