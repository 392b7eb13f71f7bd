"""Unit tests for entity serialization, deserialization and descriptions."""

from datetime import date
from decimal import Decimal

import pytest

from metacrud.core.exceptions import RequestParsingError, RequiredPropertyError
from metacrud.core.model.entity import Version
from metacrud.core.model.session import ANONYMOUS, SessionInfo
from metacrud.core.registry import EntityRegistry
from metacrud.core.schema import ApiSchema

from ...schema_fixtures import ADMIN_LEVEL

ADMIN = SessionInfo(level=ADMIN_LEVEL, logged_in=True)


@pytest.fixture
def widget_type(registry):
    return registry.entity_type("Widget")


@pytest.fixture
def widget(widget_type):
    return widget_type.new(
        {
            "id": 4,
            "name": "bolt",
            "qty": 10,
            "price": Decimal("1.5"),
            "created": date(2024, 2, 1),
            "notes": "zinc plated",
            "secret": "supplier-x",
        }
    )


class TestAccess:
    """Values are only reachable through get and set."""

    def test_unknown_label(self, widget):
        with pytest.raises(KeyError):
            widget.get("colour")
        with pytest.raises(KeyError):
            widget.set("colour", "red")

    def test_read_only_property_has_no_writer(self, widget):
        with pytest.raises(AttributeError):
            widget.set("summary", "text")

    def test_unset_value_is_none(self, widget_type):
        assert widget_type.new().get("qty") is None


class TestSerialize:
    """FULL/SHORT versions, visibility and formatting."""

    def test_full_version_for_anonymous(self, widget):
        assert widget.serialize() == {
            "id": 4,
            "name": "bolt",
            "qty": 10,
            "price": "1.50",
            "created": "01/02/2024",
            "notes": "zinc plated",
        }

    def test_short_version_hides_single_only_properties(self, widget):
        assert "notes" not in widget.serialize(Version.SHORT)

    def test_restricted_property_visible_to_admin(self, widget):
        assert widget.serialize(Version.FULL, ADMIN)["secret"] == "supplier-x"

    def test_missing_optional_values_are_omitted(self, widget_type):
        assert widget_type.new({"id": 1, "name": "nut"}).serialize() == {"id": 1, "name": "nut"}

    def test_links_are_appended_on_request(self, widget):
        result = widget.serialize(print_links=True)

        assert result["links"] == {"self": "/widgets/4"}

    def test_links_missing_values_are_skipped(self, widget_type):
        assert widget_type.new({"name": "nut"}).links() == {}

    def test_nested_collection(self, registry):
        order = registry.entity_type("Order").new({"id": 1, "customer": "ACME"})
        line = registry.entity_type("Line").new({"id": 1, "num": 1, "product": "bolt"})
        order.set("lines", [line])

        assert order.serialize() == {
            "id": 1,
            "customer": "ACME",
            "lines": [{"id": 1, "num": 1, "product": "bolt"}],
        }


class TestDeserialize:
    """Population from parsed request bodies."""

    def test_parses_formatted_values(self, widget_type):
        entity = widget_type.new().deserialize({"name": "nut", "price": "2", "created": "03/04/2024"})

        assert entity.get("price") == Decimal("2.00")
        assert entity.get("created") == date(2024, 4, 3)

    def test_required_property_missing(self, widget_type):
        with pytest.raises(RequiredPropertyError, match="name"):
            widget_type.new().deserialize({"qty": 1})

    def test_partial_skips_required_check(self, widget_type):
        entity = widget_type.new().deserialize({"qty": 1}, partial=True)

        assert entity.get("qty") == 1

    def test_null_for_non_nullable(self, widget_type):
        with pytest.raises(RequestParsingError, match="does not accept nulls"):
            widget_type.new().deserialize({"name": None})

    def test_null_for_nullable(self, widget_type):
        entity = widget_type.new().deserialize({"name": "nut", "qty": None})

        assert entity.get("qty") is None

    def test_wrong_type_names_the_property(self, widget_type):
        with pytest.raises(RequestParsingError, match="Error parsing qty"):
            widget_type.new().deserialize({"name": "nut", "qty": "many"})

    def test_read_only_and_invisible_input_is_ignored(self, widget_type):
        entity = widget_type.new().deserialize({"name": "nut", "summary": "x", "secret": "y"}, ANONYMOUS)

        assert entity.get("secret") is None
        assert entity.get("summary") is None

    def test_preset_labels_are_not_overwritten(self, widget_type):
        entity = widget_type.new({"id": 9})
        entity.deserialize({"id": 1, "name": "nut"}, preset=["id"])

        assert entity.get("id") == 9

    def test_nested_collection_skips_parent_key(self, registry):
        order = registry.entity_type("Order").new().deserialize(
            {"customer": "ACME", "lines": [{"id": 99, "num": 1, "product": "bolt"}]}
        )
        (line,) = order.get("lines")

        assert line.get("num") == 1
        assert line.get("id") is None

    def test_nested_collection_must_be_a_list_of_objects(self, registry):
        with pytest.raises(RequestParsingError, match="Error parsing lines"):
            registry.entity_type("Order").new().deserialize({"customer": "ACME", "lines": [1, 2]})


class TestDescribe:
    """Interface descriptions."""

    def test_describe_lists_types_and_definitions(self, widget_type):
        description = widget_type.describe()

        assert description["id"] == {"required": False, "def": "(PriKey)", "types": ["integer"]}
        assert description["qty"]["types"] == ["integer", "null"]
        assert description["created"]["types"] == "day/month/year"
        assert description["name"]["description"] == "Display name"
        assert "secret" not in description

    def test_describe_in_and_out(self, widget_type):
        assert "summary" not in widget_type.describe(only_in=True)
        assert "summary" in widget_type.describe(only_out=True)

    def test_describe_nests_collections(self, registry):
        description = registry.entity_type("Order").describe()

        assert list(description["lines"]["types"][0]) == ["id", "num", "product", "qty"]

    def test_describe_mutually_referencing_entities(self):
        schema = ApiSchema.model_validate(
            {
                "entities": [
                    {
                        "name": "Author",
                        "properties": [
                            {"label": "id", "type": "integer", "primary_key": True},
                            {"label": "book", "type": "null|Book"},
                        ],
                    },
                    {
                        "name": "Book",
                        "properties": [
                            {"label": "id", "type": "integer", "primary_key": True},
                            {"label": "authors", "type": "Author[]"},
                        ],
                    },
                ]
            }
        )
        registry = EntityRegistry.from_schema(schema)

        author = registry.entity_type("Author").describe()
        book = registry.entity_type("Book").describe()

        assert author["book"]["types"]["authors"]["types"] == "Author[]"
        assert book["authors"]["types"][0]["book"]["types"] == "Book"


class TestRoundTrip:
    """Serializing then deserializing into a fresh entity keeps the visible values."""

    def test_full_version_round_trip(self, widget_type, widget):
        widget.set("qty", None)

        payload = widget.serialize(Version.FULL, ADMIN)
        restored = widget_type.new().deserialize(payload, ADMIN)

        assert restored.values() == {label: value for label, value in widget.values().items() if value is not None}
        assert restored.get("price") == Decimal("1.50")
        assert restored.get("created") == date(2024, 2, 1)
        assert restored.get("secret") == "supplier-x"
        assert restored.serialize(Version.FULL, ADMIN) == payload

    def test_round_trip_for_anonymous_drops_restricted_values(self, widget_type, widget):
        restored = widget_type.new().deserialize(widget.serialize(Version.FULL, ANONYMOUS), ANONYMOUS)

        assert restored.get("secret") is None
        assert restored.get("notes") == "zinc plated"
