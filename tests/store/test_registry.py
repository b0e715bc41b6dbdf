"""Tests for sqlstore.store.registry -- resource name resolution."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from sqlstore.core.errors import BadRequestError
from sqlstore.store.object import ObjectList, Unstructured
from sqlstore.store.registry import (
    ResourceRegistry,
    is_list,
    item_type,
    reflect_resource_name,
    simple_name_to_plural,
)
from tests.models import Gadget, Policy, Widget, WidgetList


@dataclass
class PolicyList(ObjectList):
    items: list[Policy] = field(default_factory=list)


@dataclass
class RecordList(ObjectList):
    items: list[dict] = field(default_factory=list)


class TestNames:
    @pytest.mark.parametrize(
        "name,plural", [("widget", "widgets"), ("policy", "policies"), ("status", "status")]
    )
    def test_plural(self, name, plural):
        assert simple_name_to_plural(name) == plural

    def test_reflect(self):
        assert reflect_resource_name(Policy) == "policies"
        assert reflect_resource_name(Gadget) == "gadgets"


class TestLists:
    def test_is_list(self):
        assert is_list(WidgetList)
        assert is_list(WidgetList())
        assert not is_list(Widget())

    def test_item_type(self):
        assert item_type(WidgetList()) is Widget
        assert item_type(PolicyList) is Policy


class TestResourceRegistry:
    """Resolution order."""

    def test_instance_resource_wins(self):
        registry = ResourceRegistry()
        registry.register(Widget, "gadgets")

        assert registry.resource_for(Widget(resource="custom")) == "custom"

    def test_registered_type(self):
        registry = ResourceRegistry()
        assert registry.register(Widget, "gadgets") == "gadgets"
        assert registry.register(Policy) == "policies"

        assert registry.resource_for(Widget()) == "gadgets"
        assert registry.resource_for(Widget) == "gadgets"
        assert registry.registered() == {Widget: "gadgets", Policy: "policies"}

    def test_list_uses_item_type(self):
        registry = ResourceRegistry()
        registry.register(Policy, "rules")

        assert registry.resource_for(PolicyList()) == "rules"
        assert registry.resource_for(WidgetList()) == "widgets"

    def test_reflected(self):
        assert ResourceRegistry().resource_for(Policy()) == "policies"

    def test_unstructured(self):
        registry = ResourceRegistry()

        assert registry.resource_for(Unstructured(resource="things")) == "things"
        with pytest.raises(BadRequestError):
            registry.resource_for(Unstructured())

    def test_untyped_lists(self):
        registry = ResourceRegistry()

        assert registry.resource_for(ObjectList(resource="things")) == "things"
        with pytest.raises(BadRequestError):
            registry.resource_for(ObjectList())
        with pytest.raises(BadRequestError):
            registry.resource_for(RecordList())
