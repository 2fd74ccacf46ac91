"""Group proxy routes into service specifications by their declared service name."""

import logging

from gateway_openapi.routing.config_reader import ProxyConfig
from gateway_openapi.routing.models import ClusterOpenApiConfig, RouteClusterMapping, ServiceSpecification

logger = logging.getLogger(__name__)


def build_service_specifications(config: ProxyConfig) -> list[ServiceSpecification]:
    """Return one ServiceSpecification per service name, in first-seen order.

    Routes without OpenAPI metadata, disabled routes, routes with a blank
    service name, and routes whose cluster is missing are skipped. Service
    names are grouped case-insensitively; the first spelling seen is kept.
    """
    groups: dict[str, tuple[str, list[RouteClusterMapping]]] = {}

    for route in config.routes:
        route_config = route.openapi
        if route_config is None:
            logger.debug("Route %s has no OpenApi metadata, skipping", route.id)
            continue
        if not route_config.enabled:
            logger.debug("Route %s has OpenAPI disabled, skipping", route.id)
            continue
        if not route_config.service_name or not route_config.service_name.strip():
            logger.warning("Route %s has empty service_name in OpenApi metadata, skipping", route.id)
            continue
        if not route.cluster_id or not route.cluster_id.strip():
            logger.warning("Route %s has no cluster_id assigned, skipping", route.id)
            continue

        cluster = config.get_cluster(route.cluster_id)
        if cluster is None:
            logger.warning("Route %s references cluster %s which does not exist, skipping", route.id, route.cluster_id)
            continue

        mapping = RouteClusterMapping(
            route=route,
            cluster=cluster,
            route_config=route_config,
            cluster_config=cluster.openapi or ClusterOpenApiConfig(),
        )
        name = route_config.service_name.strip()
        groups.setdefault(name.lower(), (name, []))[1].append(mapping)
        logger.debug("Route %s added to service '%s'", route.id, name)

    specifications = []
    for name, mappings in groups.values():
        specifications.append(ServiceSpecification(service_name=name, routes=mappings))
        logger.info("Service specification created: '%s' with %d route(s)", name, len(mappings))
    return specifications


def to_kebab_case(value: str) -> str:
    """'User Service' -> 'user-service'."""
    if not value or not value.strip():
        return value
    return value.strip().replace(" ", "-").replace("_", "-").lower()


def find_service(specifications: list[ServiceSpecification], name: str) -> ServiceSpecification | None:
    """Find a service by exact or kebab-case name, ignoring case."""
    wanted = name.strip().lower()
    for spec in specifications:
        if spec.service_name.lower() == wanted or to_kebab_case(spec.service_name) == wanted:
            return spec
    return None
