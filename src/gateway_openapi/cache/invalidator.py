"""Tag-scoped cache invalidation for services, clusters, or everything."""

import logging

from gateway_openapi.cache.store import WILDCARD_TAG, TagCache, cluster_tag, service_tag

logger = logging.getLogger(__name__)


class CacheInvalidator:
    """Evicts cached documents by tag.

    Calls are idempotent. Each returns the number of entries removed, which
    is informational only: a fetch racing with the call may repopulate the
    cache right after.
    """

    def __init__(self, cache: TagCache):
        self.cache = cache

    def invalidate_service(self, service_name: str) -> int:
        if not service_name or not service_name.strip():
            raise ValueError("Service name cannot be blank")
        removed = self.cache.remove_by_tag(service_tag(service_name))
        logger.info("Invalidated cache for service '%s' (%d entries)", service_name, removed)
        return removed

    def invalidate_cluster(self, cluster_id: str) -> int:
        if not cluster_id or not cluster_id.strip():
            raise ValueError("Cluster id cannot be blank")
        removed = self.cache.remove_by_tag(cluster_tag(cluster_id))
        logger.info("Invalidated cache for cluster '%s' (%d entries)", cluster_id, removed)
        return removed

    def invalidate_all(self) -> int:
        removed = self.cache.remove_by_tag(WILDCARD_TAG)
        logger.info("Invalidated all cached OpenAPI documents (%d entries)", removed)
        return removed
