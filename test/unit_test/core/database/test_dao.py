"""Unit tests for the flat persistence engine on SQLite."""

from decimal import Decimal

import pytest

from metacrud.core.database.dao import FlatDAO, PaginationInfo
from metacrud.core.database.table_mapping import TableMappingManager
from metacrud.core.exceptions import AlreadyExistentResourceError, ForeignKeyConstraintError
from metacrud.core.model.filters import Comparator, FilterExpression


@pytest.fixture
def widgets(registry, storage):
    return registry.dao("Widget", storage)


@pytest.fixture
def stocked(widgets, registry):
    widget_type = registry.entity_type("Widget")
    return widgets.create(
        [
            widget_type.new({"name": "bolt", "qty": 10, "price": Decimal("0.5")}),
            widget_type.new({"name": "nut", "qty": 3}),
            widget_type.new({"name": "screw", "qty": None}),
        ]
    )


class TestCreate:
    """Bulk creation returns the stored entities."""

    def test_generated_keys_are_returned(self, stocked):
        assert [(w.get("id"), w.get("name")) for w in stocked] == [(1, "bolt"), (2, "nut"), (3, "screw")]
        assert stocked[0].get("price") == Decimal("0.50")

    def test_empty_creation(self, widgets):
        assert widgets.create([]) == []

    def test_duplicated_unique_column(self, widgets, registry, stocked):
        duplicate = registry.entity_type("Widget").new({"name": "bolt"})

        with pytest.raises(AlreadyExistentResourceError):
            widgets.create([duplicate])

    def test_failed_bulk_creation_is_rolled_back(self, widgets, registry, stocked):
        widget_type = registry.entity_type("Widget")
        with pytest.raises(AlreadyExistentResourceError):
            widgets.create([widget_type.new({"name": "washer"}), widget_type.new({"name": "nut"})])

        assert widgets.read([[FilterExpression.eq("name", "washer")]]).entities == []

    def test_hierarchy_creation(self, registry, storage):
        employees = registry.dao("Employee", storage)
        (created,) = employees.create([registry.entity_type("Employee").new({"name": "Ada", "salary": 10.0})])

        assert created.values() == {"id": 1, "name": "Ada", "salary": 10.0}


class TestRead:
    """Filtered and paginated reads."""

    def test_unfiltered_read_is_ordered_by_key(self, widgets, stocked):
        result = widgets.read([[]])

        assert [w.get("name") for w in result.entities] == ["bolt", "nut", "screw"]
        assert result.pagination is None

    def test_groups_are_ored(self, widgets, stocked):
        groups = [[FilterExpression.eq("name", "bolt")], [FilterExpression("qty", Comparator.LT, (5,))]]

        assert [w.get("name") for w in widgets.read(groups).entities] == ["bolt", "nut"]

    def test_expressions_in_a_group_are_anded(self, widgets, stocked):
        group = [FilterExpression("name", Comparator.LIKE, ("%t",)), FilterExpression("qty", Comparator.GTE, (5,))]

        assert [w.get("name") for w in widgets.read([group]).entities] == ["bolt"]

    def test_null_filter(self, widgets, stocked):
        assert [w.get("name") for w in widgets.read([[FilterExpression.eq("qty", None)]]).entities] == ["screw"]

    def test_pagination(self, widgets, stocked):
        result = widgets.read([[]], page=1, size=2)

        assert [w.get("name") for w in result.entities] == ["screw"]
        assert result.pagination == PaginationInfo(total_pages=2, size=2, page=1)
        assert result.pagination.to_dict() == {"total-pages": 2, "size": 2, "page": 1}

    @pytest.mark.parametrize("size, total_pages", [(1, 5), (2, 3), (3, 2), (10, 1)])
    def test_pages_cover_the_filtered_rows_once(self, widgets, registry, size, total_pages):
        widget_type = registry.entity_type("Widget")
        widgets.create([widget_type.new({"name": f"w{index}", "qty": index}) for index in range(7)])
        groups = [[FilterExpression("qty", Comparator.GTE, (2,))]]

        first = widgets.read(groups, page=0, size=size)
        names = [w.get("name") for w in first.entities]
        for page in range(1, first.pagination.total_pages):
            names += [w.get("name") for w in widgets.read(groups, page=page, size=size).entities]

        assert first.pagination.total_pages == total_pages
        assert names == ["w2", "w3", "w4", "w5", "w6"]


class TestSave:
    def test_save_updates_non_key_columns(self, widgets, stocked):
        bolt = stocked[0]
        bolt.set("qty", 42)
        widgets.save([bolt])

        (stored,) = widgets.read([[FilterExpression.eq("id", 1)]]).entities
        assert stored.get("qty") == 42

    def test_save_hierarchy(self, registry, storage):
        employees = registry.dao("Employee", storage)
        (ada,) = employees.create([registry.entity_type("Employee").new({"name": "Ada", "salary": 10.0})])
        ada.set("name", "Ada L.")
        ada.set("salary", 11.0)
        employees.save([ada])

        (stored,) = employees.read([[]]).entities
        assert stored.values() == {"id": 1, "name": "Ada L.", "salary": 11.0}


class TestDelete:
    """Deletion removes matching keys from every table."""

    def test_delete_matching(self, widgets, stocked):
        assert widgets.delete([[FilterExpression.eq("name", "nut", "screw")]]) == 2
        assert [w.get("name") for w in widgets.read([[]]).entities] == ["bolt"]

    def test_unrestricted_groups_delete_nothing(self, widgets, stocked):
        assert widgets.delete([]) == 0
        assert widgets.delete([[]]) == 0
        assert len(widgets.read([[]]).entities) == 3

    def test_delete_counts_rows_of_every_table(self, registry, storage):
        employees = registry.dao("Employee", storage)
        employees.create([registry.entity_type("Employee").new({"name": "Ada"})])

        assert employees.delete([[FilterExpression.eq("id", 1)]]) == 2
        assert employees.read([[]]).entities == []

    def test_referenced_row(self, registry, storage):
        orders = registry.dao("Order", storage)
        order_type = registry.entity_type("Order")
        line_type = registry.entity_type("Line")
        orders.create([order_type.new({"customer": "ACME", "lines": [line_type.new({"num": 1, "product": "bolt"})]})])
        flat_orders = FlatDAO(order_type, TableMappingManager(order_type, [("orders", {"id": "id", "customer": "customer"})]), storage)

        with pytest.raises(ForeignKeyConstraintError):
            flat_orders.delete([[FilterExpression.eq("id", 1)]])
