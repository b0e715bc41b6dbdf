"""Tests for sqlstore.store.patch -- patch documents to PatchUpdate."""

from __future__ import annotations

import json

import pytest

from sqlstore.core.errors import BadRequestError
from sqlstore.store.patch import (
    MAX_JSON_PATCH_OPERATIONS,
    JSONMutation,
    JSONOperation,
    JSONPatch,
    JSONStep,
    MergeFromPatch,
    MergePatch,
    PatchType,
    PatchUpdate,
    RawPatch,
    create_merge_patch,
    decode_patch,
    json_patch_to_update,
    json_pointer_escape,
    json_pointer_unescape,
    merge_patch_to_update,
)
from tests.models import Widget


class TestJsonPatchToUpdate:
    """JSON Patch reduction."""

    def test_single_segment_paths(self):
        update = json_patch_to_update(
            [
                {"op": "add", "path": "/value", "value": 1},
                {"op": "replace", "path": "/description", "value": "d"},
                {"op": "remove", "path": "/uid"},
            ]
        )

        assert update.columns == {"value": 1, "description": "d", "uid": None}
        assert update.json_ops == {}

    def test_multi_segment_paths(self):
        update = json_patch_to_update(
            [
                {"op": "add", "path": "/labels/app", "value": "web"},
                {"op": "replace", "path": "/status/phase", "value": "Ready"},
                {"op": "remove", "path": "/annotations/x~0y"},
            ]
        )

        assert update.columns == {}
        assert update.json_ops["labels"].set == [(["app"], "web")]
        assert update.json_ops["status"].replace == [(["phase"], "Ready")]
        assert update.json_ops["annotations"].remove == [["x~y"]]

    def test_steps_keep_patch_order(self):
        update = json_patch_to_update(
            [
                {"op": "remove", "path": "/labels/app"},
                {"op": "add", "path": "/labels/app", "value": "api"},
                {"op": "remove", "path": "/labels/tier"},
            ]
        )

        assert update.json_ops["labels"].steps == [
            JSONStep(JSONMutation.REMOVE, ["app"]),
            JSONStep(JSONMutation.SET, ["app"], "api"),
            JSONStep(JSONMutation.REMOVE, ["tier"]),
        ]

    def test_whole_column_write_drops_earlier_nested_steps(self):
        update = json_patch_to_update(
            [
                {"op": "add", "path": "/labels/tier", "value": "db"},
                {"op": "replace", "path": "/labels", "value": {"app": "web"}},
            ]
        )

        assert update.columns == {"labels": {"app": "web"}}
        assert update.json_ops == {}

    def test_nested_steps_after_whole_column_write_are_kept(self):
        update = json_patch_to_update(
            [
                {"op": "replace", "path": "/labels", "value": {"app": "web"}},
                {"op": "add", "path": "/labels/tier", "value": "db"},
            ]
        )

        assert update.columns == {"labels": {"app": "web"}}
        assert update.json_ops["labels"].set == [(["tier"], "db")]

    def test_excludes_and_includes(self):
        patches = [
            {"op": "replace", "path": "/value", "value": 1},
            {"op": "replace", "path": "/status/phase", "value": "Ready"},
        ]

        assert json_patch_to_update(patches, excludes=["status"]).keys() == {"value"}
        assert json_patch_to_update(patches, includes=["status"]).keys() == {"status"}

    @pytest.mark.parametrize(
        "operation",
        [
            {"op": "copy", "path": "/a", "from": "/b"},
            {"op": "add", "value": 1},
            {"op": "add", "path": "", "value": 1},
            {"path": "/a", "value": 1},
            {"op": 3, "path": "/a"},
            "not an object",
        ],
    )
    def test_invalid_operations(self, operation):
        with pytest.raises(BadRequestError):
            json_patch_to_update([operation])

    def test_operation_limit(self):
        patches = [{"op": "remove", "path": "/a"}] * (MAX_JSON_PATCH_OPERATIONS + 1)

        with pytest.raises(BadRequestError):
            json_patch_to_update(patches)


class TestPatchUpdate:
    def test_restrict(self):
        update = PatchUpdate(
            columns={"value": 1, "status": {}},
            json_ops={"labels": JSONOperation([JSONStep(JSONMutation.SET, ["a"], "b")])},
        )

        restricted = update.restrict(lambda key: key != "status")

        assert restricted.keys() == {"value", "labels"}
        assert not update.restrict(lambda key: False)


class TestMergePatch:
    def test_top_level_keys_become_columns(self):
        update = merge_patch_to_update({"value": 2, "labels": {"a": "b"}, "uid": None})

        assert update.columns == {"value": 2, "labels": {"a": "b"}, "uid": None}

    def test_must_be_object(self):
        with pytest.raises(BadRequestError):
            merge_patch_to_update([1])

    def test_create_merge_patch(self):
        original = {"a": 1, "b": {"c": 1, "d": 2}, "e": 0}
        modified = {"a": 1, "b": {"c": 3, "d": 2}, "f": 1}

        assert create_merge_patch(original, modified) == {"e": None, "b": {"c": 3}, "f": 1}

    def test_merge_from_patch_whole_columns(self):
        original = Widget(name="w1", value=1, labels={"a": "1"})
        modified = Widget(name="w1", value=1, labels={"a": "1", "b": "2"})

        data = json.loads(MergeFromPatch(original).data(modified))

        assert data == {"labels": {"a": "1", "b": "2"}}

    def test_merge_from_patch_removal(self):
        original = Widget(name="w1", description="gone")

        data = json.loads(MergeFromPatch(original).data(Widget(name="w1")))

        assert data == {"description": None}


class TestDecodePatch:
    """Patch type dispatch and decoding."""

    def test_json_patch(self):
        update = decode_patch(JSONPatch([{"op": "replace", "path": "/value", "value": 4}]), None)

        assert update.columns == {"value": 4}

    def test_merge_patch(self):
        assert decode_patch(MergePatch(value=4), None).columns == {"value": 4}

    def test_raw_patch_types(self):
        assert RawPatch("application/merge-patch+json", b"{}").type is PatchType.MERGE_PATCH

    def test_json_patch_must_be_array(self):
        with pytest.raises(BadRequestError):
            decode_patch(RawPatch(PatchType.JSON_PATCH, "{}"), None)

    def test_bad_json(self):
        with pytest.raises(BadRequestError):
            decode_patch(RawPatch(PatchType.MERGE_PATCH, "{"), None)

    def test_unknown_type(self):
        class StrategicPatch:
            type = "application/strategic-merge-patch+json"

            def data(self, obj):
                return b"{}"

        with pytest.raises(BadRequestError):
            decode_patch(StrategicPatch(), None)


class TestPointers:
    def test_escape_round_trip(self):
        assert json_pointer_escape("a/b~c") == "a~1b~0c"
        assert json_pointer_unescape("a~1b~0c") == "a/b~c"
