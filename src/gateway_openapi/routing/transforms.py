"""Route transform analysis.

A route forwards gateway requests to a backend after applying its path
transforms. To publish a backend's OpenAPI paths at the gateway we need the
opposite direction: given a path the backend exposes, which gateway path
reaches it? ``map_backend_to_gateway_path`` answers that by inverting each
transform.

The inverses are applied in the order the transforms are declared, not in
reverse. With PathPrefix ``/v1`` followed by PathRemovePrefix ``/api`` on
``/api/{**catch-all}``, backend ``/v1/users`` maps to ``/api/api/users``.
"""

import re
from dataclasses import dataclass, field

from gateway_openapi.routing.models import (
    PathPatternTransform,
    PathPrefixTransform,
    PathRemovePrefixTransform,
    PathSetTransform,
    Route,
    Transform,
    TransformType,
)

# "{**catch-all}" or "{*rest}", with its leading slash
CATCH_ALL = re.compile(r"/?\{\*\*?[^}]*\}")


@dataclass(frozen=True)
class TransformInfo:
    type: TransformType
    transform: Transform
    analyzable: bool


@dataclass(frozen=True)
class RouteTransformAnalysis:
    route_id: str
    match_pattern: str
    transform_type: TransformType
    transforms: list[TransformInfo] = field(default_factory=list)
    analyzable: bool = True


def strip_catch_all(pattern: str) -> str:
    """'/api/{**catch-all}' -> '/api'."""
    return CATCH_ALL.sub("", pattern, count=1)


def analyze_route(route: Route) -> RouteTransformAnalysis:
    """Classify the route's transforms and decide whether they can be inverted."""
    match_pattern = route.match_path or "/"
    if not route.transforms:
        return RouteTransformAnalysis(
            route_id=route.id,
            match_pattern=match_pattern,
            transform_type=TransformType.DIRECT,
        )

    infos = []
    for transform in route.transforms:
        kind = TransformType(transform.kind)
        analyzable = kind is not TransformType.UNKNOWN
        infos.append(TransformInfo(type=kind, transform=transform, analyzable=analyzable))

    return RouteTransformAnalysis(
        route_id=route.id,
        match_pattern=match_pattern,
        transform_type=infos[0].type,
        transforms=infos,
        analyzable=all(info.analyzable for info in infos),
    )


def map_backend_to_gateway_path(route: Route, backend_path: str | None) -> str | None:
    """Gateway path that reaches ``backend_path`` through ``route``, or None."""
    if backend_path is None:
        return None

    analysis = analyze_route(route)
    if not analysis.analyzable:
        return None

    current = backend_path
    for info in analysis.transforms:
        current = _reverse(info.transform, current, analysis.match_pattern)
        if current is None:
            return None
    return current


def is_path_reachable(route: Route, backend_path: str | None) -> bool:
    return map_backend_to_gateway_path(route, backend_path) is not None


# -- inverses ---------------------------------------------------------------


def _reverse(transform: Transform, path: str, route_pattern: str) -> str | None:
    if isinstance(transform, PathPrefixTransform):
        return _reverse_path_prefix(path, transform.prefix, route_pattern)
    if isinstance(transform, PathRemovePrefixTransform):
        return transform.prefix + path
    if isinstance(transform, PathSetTransform):
        return path if path == transform.path else None
    if isinstance(transform, PathPatternTransform):
        return _reverse_path_pattern(path, transform.pattern, route_pattern)
    return None


def _remainder_after(path: str, literal: str) -> str | None:
    """What follows ``literal`` in ``path``, if ``literal`` ends on a segment boundary."""
    if not path.startswith(literal):
        return None
    remainder = path[len(literal):]
    if remainder and literal and not literal.endswith("/") and not remainder.startswith("/"):
        # "/v1" must not match "/v10/users"
        return None
    return remainder


def _reverse_path_prefix(path: str, prefix: str, route_pattern: str) -> str | None:
    remainder = _remainder_after(path, prefix)
    if remainder is None:
        return None
    return strip_catch_all(route_pattern) + remainder


def _reverse_path_pattern(path: str, pattern: str, route_pattern: str) -> str | None:
    remainder = _remainder_after(path, strip_catch_all(pattern))
    if remainder is None:
        return None
    return strip_catch_all(route_pattern) + remainder
