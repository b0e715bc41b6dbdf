"""Tests for sqlstore.store.options."""

from __future__ import annotations

from sqlstore.store.options import ListOptions, SortDirection, SortField, parse_sorts


class TestParseSorts:
    def test_prefixes(self):
        assert parse_sorts("name,-value,+uid") == [
            SortField("name"),
            SortField("value", SortDirection.DESC),
            SortField("uid"),
        ]

    def test_trailing_words(self):
        assert parse_sorts("value desc, name ASC") == [
            SortField("value", SortDirection.DESC),
            SortField("name", SortDirection.ASC),
        ]

    def test_blank_terms_skipped(self):
        assert parse_sorts(" , -,") == []


class TestListOptions:
    def test_defaults(self):
        options = ListOptions()

        assert options.page == 0
        assert options.size == 0
        assert options.sort_fields() == []
        assert options.search_fields == []

    def test_sort_fields_from_string(self):
        assert ListOptions(sort="-creationTimestamp").sort_fields() == [
            SortField("creationTimestamp", SortDirection.DESC)
        ]

    def test_sort_fields_from_list(self):
        sorts = [SortField("name")]

        assert ListOptions(sort=sorts).sort_fields() == sorts
