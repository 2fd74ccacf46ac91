"""Per-service aggregation.

Ties the pipeline together for one service: fetch every backend document
(concurrently), keep what the routes make reachable, prune, prefix schema
names, merge, and cache the merged document under tags that let it be
invalidated by service or by cluster.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from gateway_openapi.cache.invalidator import CacheInvalidator
from gateway_openapi.cache.store import MemoryTagCache, TagCache, cluster_tag, service_tag
from gateway_openapi.document.models import Document
from gateway_openapi.errors import OperationCancelled, raise_if_cancelled
from gateway_openapi.fetching.fetcher import DocumentFetcher
from gateway_openapi.pipeline.merger import merge_documents
from gateway_openapi.pipeline.pruner import prune_document
from gateway_openapi.pipeline.reachability import PathReachabilityResult, analyze_path_reachability
from gateway_openapi.pipeline.renamer import apply_prefix
from gateway_openapi.routing.config_reader import ProxyConfig
from gateway_openapi.routing.models import RouteClusterMapping, ServiceSpecification
from gateway_openapi.routing.services import build_service_specifications, find_service, to_kebab_case
from gateway_openapi.settings import AggregationSettings

logger = logging.getLogger(__name__)

AGGREGATE_TAG = "openapi_spec"


def aggregate_cache_key(service_name: str) -> str:
    return f"openapi_spec:{service_name}"


@dataclass(frozen=True)
class ServiceInfo:
    name: str
    url: str


@dataclass(frozen=True)
class AggregationResult:
    service_name: str
    document: Document
    warnings: list[str] = field(default_factory=list)
    cluster_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RouteReachability:
    """Reachability of one route's backend document, for diagnostics."""

    mapping: RouteClusterMapping
    result: PathReachabilityResult | None  # None when the document could not be fetched


class Aggregator:
    """Builds and caches the aggregated OpenAPI document of each service."""

    def __init__(
        self,
        proxy_config: ProxyConfig,
        settings: AggregationSettings | None = None,
        cache: TagCache | None = None,
        fetcher: DocumentFetcher | None = None,
    ):
        self.settings = settings or AggregationSettings()
        self.cache = cache if cache is not None else MemoryTagCache()
        self.fetcher = fetcher or DocumentFetcher(self.cache, self.settings)
        self.invalidator = CacheInvalidator(self.cache)
        self.services = build_service_specifications(proxy_config)

    # -- lookup -------------------------------------------------------------

    def list_services(self) -> list[ServiceInfo]:
        base = self.settings.docs_base_path.rstrip("/")
        services = [
            ServiceInfo(name=spec.service_name, url=f"{base}/{to_kebab_case(spec.service_name)}")
            for spec in self.services
        ]
        logger.info("Found %d services: %s", len(services), ", ".join(s.name for s in services))
        return services

    def find_service(self, service_name: str) -> ServiceSpecification | None:
        if not service_name or not service_name.strip():
            raise ValueError("Service name cannot be blank")
        return find_service(self.services, service_name)

    # -- aggregation --------------------------------------------------------

    def aggregate(self, service_name: str, cancel: threading.Event | None = None) -> AggregationResult | None:
        """Aggregated document for ``service_name``, or None.

        None means the service is unknown or none of its backends produced a
        document. Raises OperationCancelled if ``cancel`` is set before the
        result is cached.
        """
        spec = self.find_service(service_name)
        if spec is None:
            logger.warning("Service specification not found: %s", service_name)
            return None

        key = aggregate_cache_key(spec.service_name)
        entry = self.cache.get(key)
        if entry is not None:
            logger.debug("Aggregated OpenAPI spec cache hit for service: %s", spec.service_name)
            return entry.value

        logger.debug("Starting aggregation for service: %s (%d routes)", spec.service_name, len(spec.routes))
        documents = self._fetch_all(spec, cancel)

        warnings: list[str] = []
        processed: list[Document] = []
        clusters: list[str] = []
        for mapping, document in zip(spec.routes, documents):
            if document is None:
                continue
            raise_if_cancelled(cancel)
            try:
                processed.append(self._process(mapping, document, warnings))
            except OperationCancelled:
                raise
            except Exception:
                logger.exception("Error processing route %s", mapping.route.id)
                continue
            if mapping.cluster.id not in clusters:
                clusters.append(mapping.cluster.id)

        if not processed:
            logger.warning("No documents were successfully processed for service: %s", spec.service_name)
            return None
        logger.info("Processed %d documents for service: %s", len(processed), spec.service_name)

        raise_if_cancelled(cancel)
        merged = merge_documents(processed, spec.service_name)
        warnings.extend(merged.warnings)

        result = AggregationResult(
            service_name=spec.service_name,
            document=merged.document,
            warnings=warnings,
            cluster_ids=clusters,
        )

        raise_if_cancelled(cancel)
        tags = [AGGREGATE_TAG, service_tag(spec.service_name)] + [cluster_tag(c) for c in spec.cluster_ids]
        self.cache.set(key, result, self.settings.aggregated_spec_cache_duration, tags)
        logger.info("Aggregated OpenAPI spec for service: %s", spec.service_name)
        return result

    def analyze_reachability(
        self, service_name: str, cancel: threading.Event | None = None
    ) -> list[RouteReachability] | None:
        """Per-route reachability of a service's backend paths. None for an unknown service."""
        spec = self.find_service(service_name)
        if spec is None:
            return None
        documents = self._fetch_all(spec, cancel)
        return [
            RouteReachability(
                mapping=mapping,
                result=None if document is None else analyze_path_reachability(
                    document, mapping, self.settings.non_analyzable_strategy
                ),
            )
            for mapping, document in zip(spec.routes, documents)
        ]

    # -- invalidation -------------------------------------------------------

    def invalidate_service(self, service_name: str) -> int:
        spec = self.find_service(service_name)
        return self.invalidator.invalidate_service(spec.service_name if spec else service_name)

    def invalidate_cluster(self, cluster_id: str) -> int:
        return self.invalidator.invalidate_cluster(cluster_id)

    def invalidate_all(self) -> int:
        return self.invalidator.invalidate_all()

    # -- internals ----------------------------------------------------------

    def _fetch_all(self, spec: ServiceSpecification, cancel) -> list[Document | None]:
        """Fetch the document of every mapping concurrently, in mapping order."""
        raise_if_cancelled(cancel)
        with ThreadPoolExecutor(max_workers=max(1, len(spec.routes)), thread_name_prefix="openapi-fetch") as pool:
            futures = [pool.submit(self._fetch, spec.service_name, mapping, cancel) for mapping in spec.routes]
            return [future.result() for future in futures]

    def _fetch(self, service_name: str, mapping: RouteClusterMapping, cancel) -> Document | None:
        cluster_id = mapping.cluster.id
        logger.debug("Processing route %s for cluster %s", mapping.route.id, cluster_id)

        base_url = mapping.base_url
        if base_url is None:
            logger.warning("Cluster %s has no destination address, skipping", cluster_id)
            return None

        try:
            document = self.fetcher.fetch(
                base_url,
                mapping.openapi_path or self.settings.default_openapi_path,
                tags=(service_tag(service_name), cluster_tag(cluster_id)),
                cancel=cancel,
            )
        except OperationCancelled:
            raise
        except Exception:
            logger.exception("Error fetching OpenAPI document for route %s", mapping.route.id)
            return None

        if document is None:
            logger.warning("Failed to fetch OpenAPI document for cluster: %s", cluster_id)
        return document

    def _process(self, mapping: RouteClusterMapping, document: Document, warnings: list[str]) -> Document:
        cluster_id = mapping.cluster.id
        reachability = analyze_path_reachability(document, mapping, self.settings.non_analyzable_strategy)
        logger.debug(
            "Path reachability: %d reachable, %d unreachable",
            len(reachability.reachable), len(reachability.unreachable),
        )
        if self.settings.log_transform_warnings:
            for warning in reachability.warnings:
                logger.warning("%s", warning)
        warnings.extend(reachability.warnings)

        pruned = prune_document(document, reachability)
        if not pruned.paths:
            logger.warning("Document became empty after pruning for cluster: %s", cluster_id)

        prefix = mapping.cluster_config.prefix
        if prefix and prefix.strip():
            logger.debug("Applying schema prefix: %s", prefix)
            pruned = apply_prefix(pruned, prefix)
        return pruned
