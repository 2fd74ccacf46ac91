"""Reverse-proxy routing models.

Routes and clusters are read-only inputs. Path transforms are a tagged union:
the raw ``{"PathPrefix": "/v1"}`` maps found in proxy configuration are
turned into one typed transform each by ``transform_from_config``.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from gateway_openapi.settings import NonAnalyzableStrategy


class TransformType(str, Enum):
    DIRECT = "Direct"
    PATH_PATTERN = "PathPattern"
    PATH_PREFIX = "PathPrefix"
    PATH_REMOVE_PREFIX = "PathRemovePrefix"
    PATH_SET = "PathSet"
    UNKNOWN = "Unknown"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class PathPrefixTransform(_Frozen):
    """Forward: prepend ``prefix`` to the forwarded path."""

    kind: Literal["PathPrefix"] = "PathPrefix"
    prefix: str


class PathRemovePrefixTransform(_Frozen):
    """Forward: strip ``prefix`` from the request path."""

    kind: Literal["PathRemovePrefix"] = "PathRemovePrefix"
    prefix: str


class PathPatternTransform(_Frozen):
    """Forward: rewrite the path with a template that reuses the catch-all value."""

    kind: Literal["PathPattern"] = "PathPattern"
    pattern: str


class PathSetTransform(_Frozen):
    """Forward: replace the whole path with a constant."""

    kind: Literal["PathSet"] = "PathSet"
    path: str


class UnknownTransform(_Frozen):
    """Any transform we do not know how to invert."""

    kind: Literal["Unknown"] = "Unknown"
    config: dict[str, str] = {}


Transform = Annotated[
    Union[
        PathPrefixTransform,
        PathRemovePrefixTransform,
        PathPatternTransform,
        PathSetTransform,
        UnknownTransform,
    ],
    Field(discriminator="kind"),
]


def transform_from_config(raw: dict[str, str]) -> Transform:
    """Convert one raw transform map into its typed variant.

    The variant is chosen by which key is present; PathPattern wins over
    PathPrefix, which wins over PathRemovePrefix, which wins over PathSet.
    """
    if "PathPattern" in raw:
        return PathPatternTransform(pattern=raw["PathPattern"])
    if "PathPrefix" in raw:
        return PathPrefixTransform(prefix=raw["PathPrefix"])
    if "PathRemovePrefix" in raw:
        return PathRemovePrefixTransform(prefix=raw["PathRemovePrefix"])
    if "PathSet" in raw:
        return PathSetTransform(path=raw["PathSet"])
    return UnknownTransform(config={str(k): str(v) for k, v in raw.items()})


class RouteOpenApiConfig(_Frozen):
    """Per-route OpenAPI metadata."""

    service_name: str | None = None
    enabled: bool = True
    openapi_path: str | None = None  # overrides the cluster's path


class ClusterOpenApiConfig(_Frozen):
    """Per-cluster OpenAPI metadata."""

    openapi_path: str | None = None  # AggregationSettings.default_openapi_path when unset
    prefix: str | None = None  # schema name prefix
    non_analyzable_strategy: NonAnalyzableStrategy | None = None


class Route(_Frozen):
    id: str
    cluster_id: str | None = None
    match_path: str = "/"
    transforms: list[Transform] = []
    openapi: RouteOpenApiConfig | None = None


class Cluster(_Frozen):
    id: str
    destinations: list[str] = []  # base URLs, in configuration order
    openapi: ClusterOpenApiConfig | None = None


class RouteClusterMapping(_Frozen):
    """A route, the cluster it targets, and the OpenAPI metadata of both."""

    route: Route
    cluster: Cluster
    route_config: RouteOpenApiConfig
    cluster_config: ClusterOpenApiConfig

    @property
    def base_url(self) -> str | None:
        """First destination address without a trailing slash, or None."""
        if not self.cluster.destinations:
            return None
        return self.cluster.destinations[0].strip().rstrip("/") or None

    @property
    def openapi_path(self) -> str | None:
        return self.route_config.openapi_path or self.cluster_config.openapi_path


class ServiceSpecification(_Frozen):
    """Routes grouped under one declared service name."""

    service_name: str
    routes: list[RouteClusterMapping]

    @property
    def cluster_ids(self) -> list[str]:
        seen: list[str] = []
        for mapping in self.routes:
            if mapping.cluster.id not in seen:
                seen.append(mapping.cluster.id)
        return seen
