"""Unit tests for query-string filter parsing."""

import copy
from datetime import date

import pytest

from metacrud.core.exceptions import RequestParsingError
from metacrud.core.model.filters import Comparator, FilterExpression
from metacrud.core.model.session import ANONYMOUS, SessionInfo
from metacrud.core.registry import EntityRegistry
from metacrud.core.schema import ApiSchema
from metacrud.server.routing.filter_parser import (
    FilterParser,
    coerce_scalar,
    filter_value,
    parse_comparator,
    parse_positional,
)

from ...schema_fixtures import ADMIN_LEVEL, SCHEMA

ADMIN = SessionInfo(level=ADMIN_LEVEL, logged_in=True)


@pytest.fixture
def widget_parser(registry, storage):
    dao = registry.facade("Widget", storage)
    return FilterParser(dao.entity_type, dao.is_filterable)


@pytest.fixture
def order_parser(registry, storage):
    dao = registry.facade("Order", storage)
    return FilterParser(dao.entity_type, dao.is_filterable)


class TestComparators:
    @pytest.mark.parametrize(
        "segment, expected",
        [
            ("qty", ("qty", Comparator.EQ)),
            ("qty!", ("qty", Comparator.NEQ)),
            ("name~", ("name", Comparator.LIKE)),
            ("!name~", ("name", Comparator.NOT_LIKE)),
            ("min@qty", ("qty", Comparator.GTE)),
            ("x-min@qty", ("qty", Comparator.GT)),
            ("max@qty", ("qty", Comparator.LTE)),
            ("X-MAX@qty", ("qty", Comparator.LT)),
            ("X-Min@qty", ("qty", Comparator.GT)),
            ("MIN@qty", ("MIN@qty", Comparator.EQ)),
            ("Max@qty", ("Max@qty", Comparator.EQ)),
        ],
    )
    def test_markers(self, segment, expected):
        assert parse_comparator(segment) == expected

    def test_prefix_and_suffix_markers_are_exclusive(self):
        with pytest.raises(RequestParsingError):
            parse_comparator("min@qty!")


class TestValues:
    """Conversion of raw query values."""

    def test_scalars_in_declared_order(self, registry):
        widget = registry.entity_type("Widget")

        assert coerce_scalar(widget.descriptor("qty"), "12") == 12
        assert coerce_scalar(widget.descriptor("name"), "12") == "12"
        with pytest.raises(RequestParsingError, match="Invalid value 'many' for 'qty'"):
            coerce_scalar(widget.descriptor("qty"), "many")

    def test_formatted_values_use_storage_representation(self, registry):
        widget = registry.entity_type("Widget")

        assert filter_value(widget.descriptor("created"), "01/02/2024") == "2024-02-01"
        assert filter_value(widget.descriptor("price"), "3") == 3.0

    def test_like_keeps_raw_value_and_none_stays_none(self, registry):
        qty = registry.entity_type("Widget").descriptor("qty")

        assert filter_value(qty, "1%", Comparator.LIKE) == "1%"
        assert filter_value(qty, None) is None

    def test_positional_values_are_internal(self, registry):
        widget = registry.entity_type("Widget")

        assert parse_positional(widget.descriptor("id"), "7") == 7
        assert parse_positional(widget.descriptor("created"), "01/02/2024") == date(2024, 2, 1)


class TestFilterParser:
    """Groups built from query parameters and path captures."""

    def test_untagged_group_comes_first(self, widget_parser):
        groups = widget_parser.parse({"_name": ["bolt"], "_t1*qty": ["3"], "_t1*name~": ["n%"], "page": ["1"]})

        assert groups == [
            [FilterExpression.eq("name", "bolt")],
            [FilterExpression.eq("qty", 3), FilterExpression("name", Comparator.LIKE, ("n%",))],
        ]

    def test_repeated_keys_give_several_values(self, widget_parser):
        (group,) = widget_parser.parse({"_qty": ["1", None]})

        assert group == [FilterExpression.eq("qty", 1, None)]

    def test_captures_are_filters(self, widget_parser):
        assert widget_parser.parse({}, {"id": "4"}) == [[FilterExpression.eq("id", 4)]]

    def test_capture_repeating_a_query_key(self, widget_parser):
        with pytest.raises(RequestParsingError, match="Repeated keys: _id"):
            widget_parser.parse({"_id": ["4"]}, {"id": "4"})

    def test_nested_route(self, order_parser):
        (group,) = order_parser.parse({"_lines_product": ["bolt"], "_lines.min@qty": ["2"]})

        assert group == [
            FilterExpression.eq("product", "bolt", route=["lines"]),
            FilterExpression("qty", Comparator.GTE, (2,), ("lines",)),
        ]

    @pytest.mark.parametrize(
        "parser, key",
        [
            ("widget_parser", "_colour"),
            ("widget_parser", "_summary"),
            ("widget_parser", "_name_first"),
            ("order_parser", "_lines"),
            ("order_parser", "_lines_colour"),
        ],
    )
    def test_properties_that_cannot_filter(self, request, parser, key):
        with pytest.raises(RequestParsingError, match="cannot be used as a filter"):
            request.getfixturevalue(parser).parse({key: ["x"]})

    def test_parse_error_names_the_property(self, order_parser):
        with pytest.raises(RequestParsingError, match="Error parsing lines.qty"):
            order_parser.parse({"_lines_qty": ["many"]})


class TestFilterVisibility:
    """Properties hidden from the caller cannot be filtered."""

    def test_restricted_property(self, registry, storage):
        dao = registry.facade("Widget", storage)
        anonymous = FilterParser(dao.entity_type, dao.is_filterable, ANONYMOUS)
        admin = FilterParser(dao.entity_type, dao.is_filterable, ADMIN)

        with pytest.raises(RequestParsingError, match="The property 'secret' cannot be used as a filter"):
            anonymous.parse({"_secret": ["x"]})
        assert admin.parse({"_secret": ["x"]}) == [[FilterExpression.eq("secret", "x")]]

    def test_restricted_route_segment(self, storage):
        raw = copy.deepcopy(SCHEMA)
        order = next(entity for entity in raw["entities"] if entity["name"] == "Order")
        next(prop for prop in order["properties"] if prop["label"] == "lines")["visible_to"] = [ADMIN_LEVEL]
        dao = EntityRegistry.from_schema(ApiSchema.model_validate(raw)).facade("Order", storage)

        with pytest.raises(RequestParsingError, match="The property 'lines' cannot be used as a filter"):
            FilterParser(dao.entity_type, dao.is_filterable, ANONYMOUS).parse({"_lines_product": ["bolt"]})
        (group,) = FilterParser(dao.entity_type, dao.is_filterable, ADMIN).parse({"_lines_product": ["bolt"]})
        assert group == [FilterExpression.eq("product", "bolt", route=["lines"])]
