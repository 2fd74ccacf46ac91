"""Path reachability analysis.

Decides, for every path of a backend document, whether some route of the
service makes it reachable at the gateway, and under which gateway path.
Routes are tried in configuration order and the first one that reaches a
path wins.
"""

import logging
from dataclasses import dataclass, field

from gateway_openapi.document.models import Document, Operation, PathItem
from gateway_openapi.routing.models import RouteClusterMapping
from gateway_openapi.routing.transforms import RouteTransformAnalysis, analyze_route, map_backend_to_gateway_path
from gateway_openapi.settings import NonAnalyzableStrategy

logger = logging.getLogger(__name__)

UNREACHABLE_REASON = "No route configuration makes this path accessible"


@dataclass(frozen=True)
class ReachablePath:
    backend_path: str
    gateway_path: str
    route_id: str
    path_item: PathItem
    operations: dict[str, Operation]
    analysis: RouteTransformAnalysis


@dataclass(frozen=True)
class UnreachablePath:
    backend_path: str
    reason: str
    operations: dict[str, Operation]


@dataclass
class PathReachabilityResult:
    """Reachable paths keyed by gateway path, unreachable ones keyed by backend path."""

    reachable: dict[str, ReachablePath] = field(default_factory=dict)
    unreachable: dict[str, UnreachablePath] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    service_skipped: bool = False


class _SkipService(Exception):
    pass


def analyze_path_reachability(
    document: Document,
    mappings: list[RouteClusterMapping] | RouteClusterMapping,
    strategy: NonAnalyzableStrategy = NonAnalyzableStrategy.INCLUDE_WITH_WARNING,
) -> PathReachabilityResult:
    """Classify every path of ``document`` against the service's route mappings.

    ``strategy`` applies to routes whose transforms cannot be inverted, unless
    the route's cluster configures its own strategy.
    """
    if isinstance(mappings, RouteClusterMapping):
        mappings = [mappings]

    result = PathReachabilityResult()
    if not document.paths:
        logger.warning("OpenAPI document has no paths to analyze")
        return result

    analyses = [(mapping, analyze_route(mapping.route)) for mapping in mappings]
    logger.debug("Analyzing path reachability for %d paths across %d route(s)", len(document.paths), len(analyses))

    try:
        for backend_path, path_item in document.paths.items():
            if not backend_path or not backend_path.strip():
                continue
            operations = path_item.operations
            if not operations:
                logger.debug("Path %s has no operations, skipping", backend_path)
                continue
            _analyze_path(backend_path, path_item, operations, analyses, strategy, result)
    except _SkipService:
        return PathReachabilityResult(warnings=result.warnings, service_skipped=True)

    logger.info(
        "Path reachability analysis complete: %d reachable, %d unreachable, %d warnings",
        len(result.reachable), len(result.unreachable), len(result.warnings),
    )
    return result


def _analyze_path(backend_path, path_item, operations, analyses, strategy, result) -> None:
    for mapping, analysis in analyses:
        if not analysis.analyzable:
            if _apply_non_analyzable(backend_path, path_item, operations, mapping, analysis, strategy, result):
                return
            continue

        gateway_path = map_backend_to_gateway_path(mapping.route, backend_path)
        if gateway_path and gateway_path.strip():
            _add_reachable(result, gateway_path, backend_path, path_item, operations, mapping, analysis)
            logger.debug("Path %s is reachable via route %s as %s", backend_path, mapping.route.id, gateway_path)
            return

    result.unreachable[backend_path] = UnreachablePath(
        backend_path=backend_path,
        reason=UNREACHABLE_REASON,
        operations=operations,
    )
    logger.debug("Path %s is not reachable through any route", backend_path)


def _apply_non_analyzable(backend_path, path_item, operations, mapping, analysis, strategy, result) -> bool:
    """Apply the non-analyzable strategy. Returns True when the path is settled."""
    strategy = mapping.cluster_config.non_analyzable_strategy or strategy

    if strategy is NonAnalyzableStrategy.SKIP_SERVICE:
        result.warnings.append(f"Skipping service due to non-analyzable route {mapping.route.id}")
        raise _SkipService()

    result.warnings.append(f"Route {mapping.route.id} has non-analyzable transforms for path {backend_path}")
    if strategy is NonAnalyzableStrategy.INCLUDE_WITH_WARNING:
        # published unchanged, as if the route were direct
        _add_reachable(result, backend_path, backend_path, path_item, operations, mapping, analysis)
        return True
    return False


def _add_reachable(result, gateway_path, backend_path, path_item, operations, mapping, analysis) -> None:
    # several backend paths may map onto one gateway path; the first one stays
    if gateway_path in result.reachable:
        return
    result.reachable[gateway_path] = ReachablePath(
        backend_path=backend_path,
        gateway_path=gateway_path,
        route_id=mapping.route.id,
        path_item=path_item,
        operations=operations,
        analysis=analysis,
    )
