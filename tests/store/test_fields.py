"""Tests for sqlstore.store.fields -- column mapping and value conversion."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest

from sqlstore.store.fields import (
    FieldKind,
    FieldMapper,
    JsonValuer,
    bind_value,
    classify,
    column,
    format_time,
    from_jsonable,
    is_zero,
    parse_time,
    schema_for,
    to_driver_value,
    to_jsonable,
    zero_value,
)
from tests.models import Audit, Gadget, Phase, Widget, WidgetStatus


@dataclass
class Outer:
    name: str = ""
    inner: Audit = column(default_factory=Audit, inline=True)
    reviewed: str = "parent"


class TestClassify:
    """FieldKind classification of annotations."""

    @pytest.mark.parametrize(
        "annotation,kind,nullable",
        [
            (datetime, FieldKind.TIME, False),
            (datetime | None, FieldKind.TIME, True),
            (bool, FieldKind.BOOL, False),
            (str, FieldKind.STRING, False),
            (int, FieldKind.INT, False),
            (float | None, FieldKind.FLOAT, True),
            (bytes, FieldKind.BYTES, False),
            (Phase, FieldKind.ENUM, False),
            (dict[str, str], FieldKind.JSON, False),
            (list[int], FieldKind.JSON, False),
            (WidgetStatus, FieldKind.JSON, False),
            (Any, FieldKind.ANY, False),
        ],
    )
    def test_kinds(self, annotation, kind, nullable):
        got_kind, got_nullable, _ = classify(annotation)
        assert got_kind is kind
        assert got_nullable is nullable


class TestSchema:
    """Dataclass schema descriptors."""

    def test_column_names_and_flags(self):
        specs = {s.attr: s for s in schema_for(Gadget)}

        assert "_cache" not in specs
        assert specs["secret"].ignore is True
        assert specs["audit"].inline is True
        assert specs["name"].kind is FieldKind.STRING

    def test_column_metadata_name(self):
        specs = {s.attr: s for s in schema_for(Widget)}

        assert specs["creation_timestamp"].name == "creationTimestamp"
        assert specs["owner_references"].name == "ownerReferences"
        assert specs["resource"].ignore is True

    def test_rejects_non_dataclass(self):
        with pytest.raises(TypeError):
            schema_for(int)


class TestIsZero:
    @pytest.mark.parametrize("value", [None, "", 0, 0.0, [], {}, b"", WidgetStatus()])
    def test_zero(self, value):
        assert is_zero(value)

    @pytest.mark.parametrize("value", ["x", 1, [0], {"a": 1}, WidgetStatus(message="m"), True])
    def test_non_zero(self, value):
        assert not is_zero(value)


class TestFieldMapper:
    """Field discovery on the write and scan paths."""

    def test_fields_flatten_inline(self):
        fields = FieldMapper().fields(Gadget)

        assert fields == ["name", "size", "enabled", "seen", "createdBy", "reviewed"]

    def test_parent_wins_over_inline(self):
        handles = FieldMapper().field_map(Outer(name="o"), with_init=True)

        assert handles["reviewed"].get() == "parent"
        assert handles["createdBy"].get() == ""

    def test_omitempty_skipped_on_write(self):
        handles = FieldMapper().field_map(Widget(name="w1"))

        assert set(handles) == {"name", "value"}

    def test_with_init_returns_every_field(self):
        handles = FieldMapper().field_map(Widget(), with_init=True)

        assert "labels" in handles
        assert "status" in handles
        assert "resource" not in handles

    def test_with_init_allocates_inline(self):
        gadget = Gadget()

        handles = FieldMapper().field_map(gadget, with_init=True)
        handles["createdBy"].set("alice")

        assert gadget.audit == Audit(created_by="alice")

    def test_inline_none_skipped_on_write(self):
        assert "createdBy" not in FieldMapper().field_map(Gadget(name="g"))

    def test_dict_maps_every_key(self):
        handles = FieldMapper().field_map({"name": "a", "extra": [1]})

        assert set(handles) == {"name", "extra"}
        assert handles["extra"].kind is FieldKind.ANY

    def test_name_func(self):
        mapper = FieldMapper(lambda name: "" if name == "size" else name.upper())

        assert mapper.fields(Gadget)[:2] == ["NAME", "ENABLED"]

    def test_driver_value_map(self):
        ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        values = FieldMapper().to_driver_value_map(
            Widget(name="w1", value=2, labels={"a": "b"}, creation_timestamp=ts)
        )

        assert values["name"] == "w1"
        assert values["value"] == 2
        assert values["creationTimestamp"] == ts
        assert isinstance(values["labels"], JsonValuer)
        assert bind_value(values["labels"]) == '{"a":"b"}'


class TestDriverValues:
    """Write-path conversions."""

    def test_native_pass_through(self):
        for value in ("s", b"b", 1, 1.5, Decimal("1.1"), date(2024, 1, 1)):
            assert to_driver_value(value) == value

    def test_enum_uses_value(self):
        assert to_driver_value(Phase.READY) == "Ready"

    def test_containers_become_json(self):
        valuer = to_driver_value({"k": [1, 2]})

        assert json.loads(valuer.driver_value()) == {"k": [1, 2]}

    def test_none(self):
        assert to_driver_value(None) is None
        assert JsonValuer(None).driver_value() is None


class TestTime:
    def test_format_time_utc(self):
        ts = datetime(2024, 1, 2, 5, 0, tzinfo=timezone(timedelta(hours=2)))

        assert format_time(ts) == "2024-01-02T03:00:00Z"

    def test_parse_naive_is_utc(self):
        assert parse_time("2024-01-02 03:04:05").tzinfo is UTC

    def test_parse_bytes(self):
        assert parse_time(b"2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_parse_rejects_numbers(self):
        with pytest.raises(TypeError):
            parse_time(12)


class TestJsonable:
    """JSON conversion of typed values."""

    def test_dataclass_honours_column_options(self):
        data = to_jsonable(
            Widget(name="w1", creation_timestamp=datetime(2024, 1, 1, tzinfo=UTC), resource="x")
        )

        assert data == {"name": "w1", "creationTimestamp": "2024-01-01T00:00:00Z", "value": 0}

    def test_bytes_base64(self):
        assert to_jsonable(b"hi") == "aGk="

    def test_unserializable(self):
        with pytest.raises(TypeError):
            to_jsonable(object())

    def test_from_jsonable_dataclass(self):
        status = from_jsonable(WidgetStatus, {"phase": "Ready", "message": "ok"})

        assert status == WidgetStatus(phase=Phase.READY, message="ok")

    def test_from_jsonable_nested_containers(self):
        assert from_jsonable(dict[str, list[int]], {"a": [1, 2]}) == {"a": [1, 2]}

    def test_from_jsonable_type_mismatch(self):
        with pytest.raises(TypeError):
            from_jsonable(list[int], {"a": 1})

    def test_zero_values(self):
        assert zero_value(dict[str, str]) == {}
        assert zero_value(list[str]) == []
        assert zero_value(int | None) is None
        assert zero_value(WidgetStatus) == WidgetStatus()
