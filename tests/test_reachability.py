from pathlib import Path

from gateway_openapi.document.codec import load_document
from gateway_openapi.document.models import Document, Operation, PathItem
from gateway_openapi.pipeline.reachability import UNREACHABLE_REASON, analyze_path_reachability
from gateway_openapi.routing.models import (
    Cluster,
    ClusterOpenApiConfig,
    PathPatternTransform,
    PathPrefixTransform,
    Route,
    RouteClusterMapping,
    RouteOpenApiConfig,
    UnknownTransform,
)
from gateway_openapi.settings import NonAnalyzableStrategy

FIXTURES = Path(__file__).parent / "fixtures"


def _mapping(route_id: str, match_path: str, transforms=None, strategy=None) -> RouteClusterMapping:
    return RouteClusterMapping(
        route=Route(id=route_id, cluster_id="c1", match_path=match_path, transforms=transforms or []),
        cluster=Cluster(id="c1", destinations=["http://backend"]),
        route_config=RouteOpenApiConfig(service_name="Svc"),
        cluster_config=ClusterOpenApiConfig(non_analyzable_strategy=strategy),
    )


def _users_mapping() -> RouteClusterMapping:
    return _mapping(
        "users-route",
        "/api/users/{**catch-all}",
        [PathPatternTransform(pattern="/users/{**catch-all}")],
    )


def _document(*paths: str) -> Document:
    return Document(paths={p: PathItem(get=Operation(operation_id=p)) for p in paths})


class TestAnalyzePathReachability:
    def test_fixture_reachability(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        result = analyze_path_reachability(doc, _users_mapping())
        assert set(result.reachable) == {"/api/users", "/api/users/{id}"}
        assert set(result.unreachable) == {"/health"}
        assert result.warnings == []

    def test_path_extensions_ignored(self):
        doc = Document.model_validate({
            "paths": {"x-generated-by": "tool", "/users": {"get": {"operationId": "list"}}},
        })
        result = analyze_path_reachability(doc, _mapping("all", "/{**catch-all}"))
        assert set(result.reachable) == {"/users"}
        assert result.unreachable == {}

    def test_reachable_entry(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        entry = analyze_path_reachability(doc, _users_mapping()).reachable["/api/users"]
        assert entry.backend_path == "/users"
        assert entry.gateway_path == "/api/users"
        assert entry.route_id == "users-route"
        assert set(entry.operations) == {"get", "post"}

    def test_unreachable_entry(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        entry = analyze_path_reachability(doc, _users_mapping()).unreachable["/health"]
        assert entry.reason == UNREACHABLE_REASON
        assert set(entry.operations) == {"get"}

    def test_first_matching_route_wins(self):
        mappings = [
            _mapping("first", "/a/{**catch-all}"),
            _mapping("second", "/b/{**catch-all}", [PathPrefixTransform(prefix="/users")]),
        ]
        result = analyze_path_reachability(_document("/users/list"), mappings)
        assert result.reachable["/users/list"].route_id == "first"

    def test_falls_through_to_later_route(self):
        mappings = [
            _mapping("orders", "/o/{**catch-all}", [PathPrefixTransform(prefix="/orders")]),
            _mapping("users", "/u/{**catch-all}", [PathPrefixTransform(prefix="/users")]),
        ]
        result = analyze_path_reachability(_document("/users/list"), mappings)
        assert result.reachable["/u/list"].route_id == "users"

    def test_paths_without_operations_skipped(self):
        doc = Document(paths={"/empty": PathItem(summary="nothing"), "/users": PathItem(get=Operation())})
        result = analyze_path_reachability(doc, _mapping("r", "/{**catch-all}"))
        assert set(result.reachable) == {"/users"}
        assert result.unreachable == {}

    def test_empty_document(self):
        result = analyze_path_reachability(Document(), _users_mapping())
        assert result.reachable == {}
        assert result.unreachable == {}

    def test_reachable_and_unreachable_are_disjoint(self):
        doc = load_document(FIXTURES / "users-openapi.yaml")
        result = analyze_path_reachability(doc, _users_mapping())
        backend_reachable = {entry.backend_path for entry in result.reachable.values()}
        assert backend_reachable.isdisjoint(result.unreachable)
        assert backend_reachable | set(result.unreachable) == set(doc.paths)


class TestNonAnalyzableStrategies:
    def _non_analyzable(self, strategy=None) -> RouteClusterMapping:
        return _mapping("custom", "/x/{**catch-all}", [UnknownTransform(config={"Custom": "1"})], strategy)

    def test_include_with_warning(self):
        result = analyze_path_reachability(_document("/users"), self._non_analyzable())
        assert set(result.reachable) == {"/users"}
        assert result.reachable["/users"].backend_path == "/users"
        assert result.warnings == ["Route custom has non-analyzable transforms for path /users"]

    def test_exclude_with_warning(self):
        result = analyze_path_reachability(
            _document("/users"), self._non_analyzable(), NonAnalyzableStrategy.EXCLUDE_WITH_WARNING
        )
        assert result.reachable == {}
        assert set(result.unreachable) == {"/users"}
        assert len(result.warnings) == 1

    def test_exclude_tries_next_route(self):
        mappings = [self._non_analyzable(), _mapping("plain", "/{**catch-all}")]
        result = analyze_path_reachability(
            _document("/users"), mappings, NonAnalyzableStrategy.EXCLUDE_WITH_WARNING
        )
        assert result.reachable["/users"].route_id == "plain"

    def test_skip_service(self):
        result = analyze_path_reachability(
            _document("/a/b", "/c"), self._non_analyzable(), NonAnalyzableStrategy.SKIP_SERVICE
        )
        assert result.service_skipped is True
        assert result.reachable == {}
        assert result.unreachable == {}
        assert result.warnings == ["Skipping service due to non-analyzable route custom"]

    def test_cluster_strategy_overrides_run_strategy(self):
        mapping = self._non_analyzable(NonAnalyzableStrategy.EXCLUDE_WITH_WARNING)
        result = analyze_path_reachability(
            _document("/users"), mapping, NonAnalyzableStrategy.INCLUDE_WITH_WARNING
        )
        assert result.reachable == {}
