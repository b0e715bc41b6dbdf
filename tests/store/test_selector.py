"""Tests for sqlstore.store.selector."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from sqlstore.core.errors import BadRequestError
from sqlstore.store.selector import (
    Operator,
    Requirement,
    Requirements,
    creation_range_requirements,
    parse_requirements,
    requirement_equal,
    requirements_from_map,
)


class TestRequirement:
    """Requirement validation and rendering."""

    def test_operator_coerced(self):
        assert Requirement("a", "in", ["x"]).operator is Operator.IN

    def test_missing_values(self):
        with pytest.raises(BadRequestError):
            Requirement("a", Operator.EQUALS)

    def test_exists_takes_no_values(self):
        with pytest.raises(BadRequestError):
            Requirement("a", Operator.EXISTS, ["x"])

    def test_empty_key(self):
        with pytest.raises(BadRequestError):
            Requirement("", Operator.EXISTS)

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            Requirement("a", "~=", ["x"])

    @pytest.mark.parametrize(
        "req,text",
        [
            (Requirement("a", Operator.EQUALS, ["1"]), "a=1"),
            (Requirement("a", Operator.NOT_EQUALS, ["1"]), "a!=1"),
            (Requirement("a", Operator.IN, ["y", "x"]), "a in (x,y)"),
            (Requirement("a", Operator.EXISTS), "a"),
            (Requirement("a", Operator.DOES_NOT_EXIST), "!a"),
            (Requirement("a", Operator.GREATER_THAN, [3]), "a>3"),
        ],
    )
    def test_str(self, req, text):
        assert str(req) == text


class TestHelpers:
    def test_requirement_equal(self):
        assert requirement_equal("a", 1) == Requirement("a", Operator.EQUALS, [1])

    def test_from_map_sorted(self):
        reqs = requirements_from_map({"b": "2", "a": "1"})

        assert isinstance(reqs, Requirements)
        assert str(reqs) == "a=1, b=2"

    def test_creation_range(self):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        end = datetime(2024, 2, 1, tzinfo=UTC)

        reqs = creation_range_requirements(start, end)

        assert [(r.key, r.operator) for r in reqs] == [
            ("creationTimestamp", Operator.GREATER_THAN),
            ("creationTimestamp", Operator.LESS_THAN),
        ]
        assert creation_range_requirements() == []


class TestParse:
    """Label selector expression parsing."""

    def test_all_forms(self):
        reqs = parse_requirements("app=web, env==prod, tier!=db, zone in (a, b), x notin (c), has, !gone")

        assert [(r.key, r.operator, r.values) for r in reqs] == [
            ("app", Operator.EQUALS, ["web"]),
            ("env", Operator.DOUBLE_EQUALS, ["prod"]),
            ("tier", Operator.NOT_EQUALS, ["db"]),
            ("zone", Operator.IN, ["a", "b"]),
            ("x", Operator.NOT_IN, ["c"]),
            ("has", Operator.EXISTS, []),
            ("gone", Operator.DOES_NOT_EXIST, []),
        ]

    def test_comparisons(self):
        reqs = parse_requirements("replicas>=2,age<10")

        assert [r.operator for r in reqs] == [Operator.GREATER_THAN_OR_EQUAL, Operator.LESS_THAN]

    def test_dotted_keys(self):
        assert parse_requirements("example.com/team=core")[0].key == "example.com/team"

    def test_empty(self):
        assert parse_requirements("") == []

    def test_malformed(self):
        with pytest.raises(BadRequestError):
            parse_requirements("app in web")

    def test_round_trip_text(self):
        assert str(parse_requirements("app=web,tier in (db,cache),!legacy")) == (
            "app=web, tier in (cache,db), !legacy"
        )
