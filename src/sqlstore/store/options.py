"""Per-call options for storage operations.

Every option object is optional; ``None`` means the defaults below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sqlstore.store.selector import Requirement


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class SortField:
    field: str
    direction: SortDirection = SortDirection.ASC


def parse_sorts(sort: str) -> list[SortField]:
    """Parse ``"name,-creationTimestamp,+uid"`` into sort directives.

    A leading ``-`` sorts descending, a leading ``+`` (or nothing) ascending.
    A trailing ``asc`` / ``desc`` word is accepted as well.
    """
    sorts = []
    for term in sort.split(","):
        term = term.strip()
        if not term:
            continue
        direction = SortDirection.ASC
        if term.startswith("-"):
            direction, term = SortDirection.DESC, term[1:]
        elif term.startswith("+"):
            term = term[1:]
        else:
            name, _, word = term.rpartition(" ")
            if name and word.upper() in SortDirection.__members__:
                term, direction = name.strip(), SortDirection[word.upper()]
        if term:
            sorts.append(SortField(term, direction))
    return sorts


@dataclass
class SelectorOptions:
    field_requirements: list[Requirement] = field(default_factory=list)
    label_requirements: list[Requirement] = field(default_factory=list)


@dataclass
class GetOptions(SelectorOptions):
    fields: list[str] = field(default_factory=list)


@dataclass
class CountOptions(SelectorOptions):
    search: str = ""
    search_fields: list[str] = field(default_factory=list)


@dataclass
class ListOptions(CountOptions):
    """List query options.

    Attributes:
        page: 1-based page number; values below 1 read the first page
        size: Page size; 0 returns every row
        search: Free text matched with ``LIKE %search%``
        search_fields: Columns to search (default ``name``)
        sort: Sort directives, or a string for :func:`parse_sorts`
        fields: Explicit projection (default: every mapped field)
    """

    page: int = 0
    size: int = 0
    sort: list[SortField] | str = field(default_factory=list)
    fields: list[str] = field(default_factory=list)

    def sort_fields(self) -> list[SortField]:
        if isinstance(self.sort, str):
            return parse_sorts(self.sort)
        return list(self.sort)


@dataclass
class UpdateOptions(SelectorOptions):
    pass


@dataclass
class PatchOptions(SelectorOptions):
    pass


@dataclass
class DeleteOptions(SelectorOptions):
    pass


@dataclass
class DeleteBatchOptions(SelectorOptions):
    pass


__all__ = [
    "CountOptions",
    "DeleteBatchOptions",
    "DeleteOptions",
    "GetOptions",
    "ListOptions",
    "PatchOptions",
    "SelectorOptions",
    "SortDirection",
    "SortField",
    "UpdateOptions",
    "parse_sorts",
]
