"""Reverse-proxy configuration reader.

Loads routes, clusters and their OpenAPI metadata from a YAML or JSON file.
Both snake_case keys and the CamelCase keys of typical proxy configuration
files (``ClusterId``, ``Match.Path``, ``Destinations.*.Address``,
``Metadata.OpenApi``) are accepted. Example::

    routes:
      users-route:
        cluster_id: users
        match: {path: "/api/users/{**catch-all}"}
        transforms:
          - PathPattern: "/users/{**catch-all}"
        openapi: {service_name: User Service}
    clusters:
      users:
        destinations: {primary: {address: "http://users:8080"}}
        openapi: {prefix: Users}
"""

import json
import logging
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from gateway_openapi.errors import ConfigurationError
from gateway_openapi.routing.models import (
    Cluster,
    ClusterOpenApiConfig,
    Route,
    RouteOpenApiConfig,
    transform_from_config,
)

logger = logging.getLogger(__name__)


class ProxyConfig(BaseModel):
    """Routes and clusters, in configuration order."""

    model_config = ConfigDict(frozen=True)

    routes: list[Route] = []
    clusters: list[Cluster] = []

    def get_cluster(self, cluster_id: str) -> Cluster | None:
        """Case-insensitive cluster lookup."""
        wanted = cluster_id.lower()
        for cluster in self.clusters:
            if cluster.id.lower() == wanted:
                return cluster
        return None


def load_proxy_config(file_path: Path) -> ProxyConfig:
    """Read a proxy configuration file."""
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read proxy configuration {file_path}: {e}") from e
    return parse_proxy_config(data or {})


def parse_proxy_config(data: dict) -> ProxyConfig:
    """Build a ProxyConfig from already-loaded configuration data."""
    if not isinstance(data, dict):
        raise ConfigurationError("Proxy configuration root must be a mapping")

    section = _get(data, "reverse_proxy")
    if isinstance(section, dict):
        data = section

    routes = [_parse_route(route_id, raw) for route_id, raw in _entries(_get(data, "routes"), "route_id")]
    clusters = [_parse_cluster(cluster_id, raw) for cluster_id, raw in _entries(_get(data, "clusters"), "cluster_id")]
    return ProxyConfig(routes=routes, clusters=clusters)


def _parse_route(route_id: str, raw: dict) -> Route:
    match = _get(raw, "match") or {}
    match_path = _get(match, "path") if isinstance(match, dict) else None
    transforms = [
        transform_from_config({str(k): str(v) for k, v in t.items()})
        for t in (_get(raw, "transforms") or [])
        if isinstance(t, dict)
    ]
    return Route(
        id=route_id,
        cluster_id=_get(raw, "cluster_id"),
        match_path=match_path or "/",
        transforms=transforms,
        openapi=_parse_metadata(raw, RouteOpenApiConfig, f"route '{route_id}'"),
    )


def _parse_cluster(cluster_id: str, raw: dict) -> Cluster:
    return Cluster(
        id=cluster_id,
        destinations=_parse_destinations(_get(raw, "destinations")),
        openapi=_parse_metadata(raw, ClusterOpenApiConfig, f"cluster '{cluster_id}'"),
    )


def _parse_destinations(raw) -> list[str]:
    if isinstance(raw, dict):
        raw = list(raw.values())
    addresses = []
    for item in raw or []:
        address = _get(item, "address") if isinstance(item, dict) else item
        if isinstance(address, str):
            addresses.append(address)
    return addresses


def _parse_metadata(raw: dict, model: type[BaseModel], context: str):
    """Read the ``openapi`` block of a route/cluster; None when absent or invalid."""
    value = _get(raw, "openapi")
    if value is None:
        metadata = _get(raw, "metadata")
        if isinstance(metadata, dict):
            value = _get(metadata, "openapi")
    if value is None:
        return None

    if isinstance(value, str):
        # proxy metadata values are strings holding JSON
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Failed to deserialize OpenApi metadata for %s. JSON: %s", context, value)
            return None

    if not isinstance(value, dict):
        logger.warning("OpenApi metadata for %s is not a mapping, ignoring", context)
        return None

    fields = {_key(name): name for name in model.model_fields}
    normalized = {fields[_key(k)]: v for k, v in value.items() if _key(k) in fields}
    try:
        return model.model_validate(normalized)
    except ValidationError as e:
        logger.warning("Invalid OpenApi metadata for %s: %s", context, e)
        return None


# -- key helpers ------------------------------------------------------------


def _key(name) -> str:
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


def _get(mapping: dict, name: str, default=None):
    """Look up ``name`` ignoring case, underscores and dashes."""
    wanted = _key(name)
    for k, v in mapping.items():
        if _key(k) == wanted:
            return v
    return default


def _entries(section, id_field: str) -> list[tuple[str, dict]]:
    """Yield (id, body) from either a mapping keyed by id or a list of bodies."""
    if isinstance(section, dict):
        return [(str(k), v or {}) for k, v in section.items()]
    entries = []
    for item in section or []:
        if not isinstance(item, dict):
            continue
        entry_id = _get(item, "id") or _get(item, id_field)
        if entry_id:
            entries.append((str(entry_id), item))
    return entries
