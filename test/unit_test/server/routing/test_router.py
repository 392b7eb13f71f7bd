"""Unit tests for route matching and error rendering."""

import pytest

from metacrud.core.exceptions import (
    InvalidConfigurationError,
    ResourceNotFoundError,
    UncontrolledStorageError,
    UnknownControllerError,
    UnknownMethodError,
)
from metacrud.core.model.session import ANONYMOUS, SessionInfo
from metacrud.core.schema.models import RouteSchema
from metacrud.server.core.config import Settings
from metacrud.server.routing.controller import ApiResponse, UrlController
from metacrud.server.routing.router import RequestRouter, Route, humanize_pattern, normalize_query
from metacrud.server.services.deps import RequestContext


class EchoController(UrlController):
    methods = ("GET",)

    def get(self) -> ApiResponse:
        return ApiResponse(200, {"params": self.params, "query": dict(self.query)})


@pytest.fixture
def context(registry, storage):
    return RequestContext(session=ANONYMOUS, registry=registry, storage=storage, settings=Settings())


@pytest.fixture
def router(registry):
    routes = list(registry.routes) + [RouteSchema(pattern=r"^/echo/(?P<name>\w+)$", controller="echo")]
    return RequestRouter(routes, {"echo": EchoController})


class TestHumanizePattern:
    @pytest.mark.parametrize(
        "pattern, expected",
        [
            (r"^/widgets(/(?P<id>\d+))?$", "/widgets[/:id]"),
            (r"^/orders/(?P<id>\d+)/lines(/(?P<num>\d+))?$", "/orders/:id/lines[/:num]"),
            (r"^/session$", "/session"),
            (r"^/files/(?:(?P<name>[a-z]+)\.txt)?$", "/files/[:name.txt]"),
        ],
    )
    def test_readable_forms(self, pattern, expected):
        assert humanize_pattern(pattern) == expected


class TestNormalizeQuery:
    def test_repeated_keys_and_empty_values(self):
        assert normalize_query([("_qty", "1"), ("_qty", "2"), ("urls", "")]) == {
            "_qty": ["1", "2"],
            "urls": [None],
        }


class TestRoute:
    def test_levels_per_method(self):
        route = Route.from_schema(RouteSchema(pattern="^/x$", entity="A", levels={"post": [7], "get": None}))

        assert route.levels_for("POST") == frozenset({7})
        assert route.levels_for("get") is None
        assert route.levels_for("DELETE") is None

    def test_invalid_pattern(self):
        with pytest.raises(InvalidConfigurationError):
            Route.from_schema(RouteSchema(pattern="^/x(", entity="A"))


class TestRequestRouter:
    """Matching order, listings and dispatch."""

    def test_unknown_controller_name(self):
        with pytest.raises(InvalidConfigurationError, match="unknown controller"):
            RequestRouter([RouteSchema(pattern="^/x$", controller="missing")])

    def test_first_match_wins(self, router):
        route, params = router.match("/orders/3/lines")

        assert route.entity == "Line"
        assert params == {"id": "3", "num": None}

    def test_unknown_url(self, router):
        with pytest.raises(UnknownControllerError, match="Unknown URL /gadgets"):
            router.match("/gadgets")

    def test_url_listing(self, router):
        listing = router.url_listing()

        assert listing["/widgets[/:id]"] == "Widgets in stock"
        assert listing["/orders/:id/lines[/:num]"] == "No description"

    def test_urls_for_entity(self, router):
        assert router.urls_for("Order") == ["/orders[/:id]"]

    def test_dispatch_to_specialized_controller(self, router, context):
        response = router.dispatch(context, "GET", "/echo/bob", {"x": ["1"]})

        assert response.status_code == 200
        assert response.body == {"params": {"name": "bob"}, "query": {"x": ["1"]}}

    def test_dispatch_renders_api_errors(self, router, context):
        response = router.dispatch(context, "GET", "/gadgets", {})

        assert response.status_code == 404
        assert response.body == {"error": "Unknown URL /gadgets", "session_info": {"logeada": False, "expirada": False}}

    def test_dispatch_answers_url_listing_anywhere(self, router, context):
        response = router.dispatch(context, "GET", "/anything", {"urls": [None]})

        assert response.status_code == 200
        assert "/session" in response.body

    def test_pks_must_hold_whole_keys(self, registry, context):
        router = RequestRouter([RouteSchema(pattern="^/lines$", entity="Line")])
        response = router.dispatch(context, "DELETE", "/lines", {"pks": ["1,2,3"]})

        assert response.status_code == 400
        assert response.body["error"] == (
            "Unable to parse pks, the number of values should be a multiple of 2, but 3 given"
        )

    def test_method_not_implemented(self, router, context):
        response = router.dispatch(context, "POST", "/echo/bob", {})

        assert response.status_code == 405
        assert response.headers == {"Allow": "GET"}


class TestErrorResponse:
    def test_session_flags_are_echoed(self):
        expired = SessionInfo(expired=True)
        response = RequestRouter.error_response(ResourceNotFoundError("gone"), expired)

        assert response.body == {"error": "gone", "session_info": {"logeada": False, "expirada": True}}

    def test_empty_message_has_no_body(self):
        response = RequestRouter.error_response(UnknownMethodError("", headers={"Allow": "GET"}), ANONYMOUS)

        assert response.body is None
        assert response.headers == {"Allow": "GET"}

    def test_server_errors_are_logged_as_errors(self, caplog):
        with caplog.at_level("ERROR", logger="metacrud.server.routing.router"):
            RequestRouter.error_response(UncontrolledStorageError(), ANONYMOUS, "GET", "/widgets")

        assert "GET /widgets failed: Storage error" in caplog.text
