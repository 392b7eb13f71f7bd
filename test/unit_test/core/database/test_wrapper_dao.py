"""Unit tests for the wrapper engine (parents with nested collections)."""

import pytest

from metacrud.core.database.wrapper_dao import WrapperDAO
from metacrud.core.model.filters import Comparator, FilterExpression


@pytest.fixture
def orders(registry, storage):
    return registry.dao("Order", storage)


@pytest.fixture
def lines(registry, storage):
    return registry.dao("Line", storage)


@pytest.fixture
def placed(orders, registry):
    order_type = registry.entity_type("Order")
    line_type = registry.entity_type("Line")
    return orders.create(
        [
            order_type.new(
                {
                    "customer": "ACME",
                    "lines": [
                        line_type.new({"num": 1, "product": "bolt", "qty": 100}),
                        line_type.new({"num": 2, "product": "nut", "qty": 100}),
                    ],
                }
            ),
            order_type.new({"customer": "Initech", "lines": [line_type.new({"num": 1, "product": "stapler"})]}),
        ]
    )


def products(order):
    return [line.get("product") for line in order.get("lines")]


class TestWrapperCreate:
    """Children receive the parent key and are created with it."""

    def test_registry_builds_a_wrapper(self, orders):
        assert isinstance(orders, WrapperDAO)
        assert list(orders.children) == ["lines"]

    def test_children_are_stamped_with_the_parent_key(self, placed, lines):
        assert [order.get("id") for order in placed] == [1, 2]
        assert products(placed[0]) == ["bolt", "nut"]
        assert [line.get("id") for line in placed[0].get("lines")] == [1, 1]
        assert len(lines.read([[FilterExpression.eq("id", 2)]]).entities) == 1

    def test_parent_without_children(self, orders, registry):
        (created,) = orders.create([registry.entity_type("Order").new({"customer": "Hooli"})])

        assert created.get("lines") == []


class TestWrapperRead:
    """Reads attach the nested collections and accept routed filters."""

    def test_read_attaches_children(self, orders, placed):
        result = orders.read([[]])

        assert [products(order) for order in result.entities] == [["bolt", "nut"], ["stapler"]]

    def test_routed_filter_uses_exists(self, orders, placed):
        group = [FilterExpression.eq("product", "stapler", route=["lines"])]

        assert [order.get("customer") for order in orders.read([group]).entities] == ["Initech"]

    def test_routed_and_own_filters_combine(self, orders, placed):
        group = [
            FilterExpression.eq("customer", "ACME"),
            FilterExpression("qty", Comparator.GTE, (100,), route=["lines"]),
        ]

        assert [order.get("id") for order in orders.read([group]).entities] == [1]

    @pytest.mark.parametrize("size, total_pages", [(1, 3), (2, 2), (3, 1), (10, 1)])
    def test_pages_of_a_routed_filter_cover_each_parent_once(self, orders, registry, size, total_pages):
        order_type = registry.entity_type("Order")
        line_type = registry.entity_type("Line")
        orders.create(
            [
                order_type.new(
                    {
                        "customer": f"c{index}",
                        "lines": (
                            [line_type.new({"num": 1, "product": "bolt"}), line_type.new({"num": 2, "product": "bolt"})]
                            if index % 2 == 0
                            else [line_type.new({"num": 1, "product": "nut"})]
                        ),
                    }
                )
                for index in range(6)
            ]
        )
        groups = [[FilterExpression.eq("product", "bolt", route=["lines"])]]

        first = orders.read(groups, page=0, size=size)
        customers = [order.get("customer") for order in first.entities]
        for page in range(1, first.pagination.total_pages):
            customers += [order.get("customer") for order in orders.read(groups, page=page, size=size).entities]

        assert first.pagination.total_pages == total_pages
        assert customers == ["c0", "c2", "c4"]

    def test_filterable_routes(self, orders):
        assert orders.is_filterable((), "lines")
        assert orders.is_filterable(("lines",), "product")
        assert not orders.is_filterable(("lines",), "missing")
        assert not orders.is_filterable(("other",), "product")


class TestWrapperSave:
    def test_save_replaces_every_child(self, orders, placed, registry):
        order = placed[0]
        order.set("customer", "ACME Corp")
        order.set("lines", [registry.entity_type("Line").new({"num": 7, "product": "washer"})])
        orders.save([order])

        (stored,) = orders.read([[FilterExpression.eq("id", 1)]]).entities
        assert stored.get("customer") == "ACME Corp"
        assert [(line.get("num"), line.get("product")) for line in stored.get("lines")] == [(7, "washer")]


class TestWrapperDelete:
    def test_delete_removes_children_first(self, orders, lines, placed):
        assert orders.delete([[FilterExpression.eq("id", 1)]]) == 3

        assert [order.get("id") for order in orders.read([[]]).entities] == [2]
        assert [line.get("product") for line in lines.read([[]]).entities] == ["stapler"]

    def test_delete_without_match(self, orders, placed):
        assert orders.delete([[FilterExpression.eq("id", 9)]]) == 0
