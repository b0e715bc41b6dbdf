"""Field and label selector requirements.

A ``Requirement`` is a ``(key, operator, values)`` predicate. Field
requirements address columns; label requirements address keys of the
``labels`` JSON column. Requirements in one list are ANDed.

Examples:
    >>> Requirement("name", Operator.IN, ["a", "b"])
    Requirement(key='name', operator=<Operator.IN: 'in'>, values=['a', 'b'])
    >>> str(parse_requirements("app=web,tier in (db,cache),!legacy"))
    'app=web, tier in (cache,db), !legacy'
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlstore.core.errors import BadRequestError


class Operator(str, Enum):
    """Selection operators."""

    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN_OR_EQUAL = "lte"
    LIKE = "like"


_VALUELESS = (Operator.EXISTS, Operator.DOES_NOT_EXIST)

_SYMBOLS = {
    Operator.EQUALS: "=",
    Operator.DOUBLE_EQUALS: "==",
    Operator.NOT_EQUALS: "!=",
    Operator.GREATER_THAN: ">",
    Operator.LESS_THAN: "<",
    Operator.GREATER_THAN_OR_EQUAL: ">=",
    Operator.LESS_THAN_OR_EQUAL: "<=",
    Operator.LIKE: " like ",
}


@dataclass
class Requirement:
    """A single selector predicate.

    Raises:
        BadRequestError: If ``values`` is empty for an operator needing one,
            or non-empty for ``exists`` / ``!``.
    """

    key: str
    operator: Operator
    values: list[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.operator = Operator(self.operator)
        self.values = list(self.values)
        if not self.key:
            raise BadRequestError("requirement key must not be empty")
        if self.operator in _VALUELESS:
            if self.values:
                raise BadRequestError(f"operator {self.operator.value!r} takes no values")
        elif not self.values:
            raise BadRequestError(f"operator {self.operator.value!r} requires at least one value")

    def __str__(self) -> str:
        if self.operator is Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if self.operator is Operator.EXISTS:
            return self.key
        values = sorted(str(v) for v in self.values)
        if self.operator in (Operator.IN, Operator.NOT_IN):
            return f"{self.key} {self.operator.value} ({','.join(values)})"
        return f"{self.key}{_SYMBOLS[self.operator]}{','.join(values)}"


class Requirements(list):
    """A list of requirements, ANDed."""

    def __str__(self) -> str:
        return ", ".join(str(r) for r in self)


def requirement_equal(key: str, value: Any) -> Requirement:
    return Requirement(key, Operator.EQUALS, [value])


def requirements_from_map(kvs: Mapping[str, Any]) -> Requirements:
    """One equality requirement per key, in key order."""
    return Requirements(requirement_equal(k, v) for k, v in sorted(kvs.items()))


def creation_range_requirements(
    start: datetime | None = None, end: datetime | None = None
) -> Requirements:
    """Requirements selecting objects created strictly between ``start`` and ``end``."""
    reqs = Requirements()
    if start is not None:
        reqs.append(Requirement("creationTimestamp", Operator.GREATER_THAN, [start]))
    if end is not None:
        reqs.append(Requirement("creationTimestamp", Operator.LESS_THAN, [end]))
    return reqs


_KEY = r"[A-Za-z0-9]([-A-Za-z0-9_./]*[A-Za-z0-9])?"
_SET_RE = re.compile(rf"^(?P<key>{_KEY})\s+(?P<op>in|notin)\s*\((?P<values>[^)]*)\)$")
_BINARY_RE = re.compile(rf"^(?P<key>{_KEY})\s*(?P<op>==|!=|=|>=|<=|>|<)\s*(?P<value>[^,]*)$")
_EXISTS_RE = re.compile(rf"^(?P<neg>!)?\s*(?P<key>{_KEY})$")

_PARSED = {
    "=": Operator.EQUALS,
    "==": Operator.DOUBLE_EQUALS,
    "!=": Operator.NOT_EQUALS,
    ">": Operator.GREATER_THAN,
    "<": Operator.LESS_THAN,
    ">=": Operator.GREATER_THAN_OR_EQUAL,
    "<=": Operator.LESS_THAN_OR_EQUAL,
    "in": Operator.IN,
    "notin": Operator.NOT_IN,
}


def _split_terms(expr: str) -> list[str]:
    terms, depth, current = [], 0, []
    for ch in expr:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            terms.append("".join(current))
            current = []
        else:
            current.append(ch)
    terms.append("".join(current))
    return [t.strip() for t in terms if t.strip()]


def parse_requirements(expr: str) -> Requirements:
    """Parse a label selector expression.

    Supports ``k=v``, ``k==v``, ``k!=v``, ``k in (a,b)``, ``k notin (a,b)``,
    ``k`` (exists), ``!k`` (does not exist), and ``>``, ``<``, ``>=``, ``<=``.

    Raises:
        BadRequestError: On a malformed term.
    """
    reqs = Requirements()
    for term in _split_terms(expr):
        if m := _SET_RE.match(term):
            values = [v.strip() for v in m["values"].split(",") if v.strip()]
            reqs.append(Requirement(m["key"], _PARSED[m["op"]], values))
        elif m := _BINARY_RE.match(term):
            reqs.append(Requirement(m["key"], _PARSED[m["op"]], [m["value"].strip()]))
        elif m := _EXISTS_RE.match(term):
            op = Operator.DOES_NOT_EXIST if m["neg"] else Operator.EXISTS
            reqs.append(Requirement(m["key"], op))
        else:
            raise BadRequestError(f"invalid selector term {term!r}")
    return reqs


__all__ = [
    "Operator",
    "Requirement",
    "Requirements",
    "creation_range_requirements",
    "parse_requirements",
    "requirement_equal",
    "requirements_from_map",
]
