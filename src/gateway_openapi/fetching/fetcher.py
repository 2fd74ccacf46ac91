"""Fetch raw OpenAPI documents from downstream services.

Results are cached per (base URL, path). A backend that fails on every
candidate path is remembered as a failure for a shorter time so it is not
retried on every request. Concurrent fetches are limited by a bounded
semaphore owned by the fetcher; share one fetcher per process.
"""

import logging
import threading
from typing import Iterable

import requests

from gateway_openapi.cache.store import TagCache
from gateway_openapi.document.codec import parse_document
from gateway_openapi.document.models import Document
from gateway_openapi.errors import DocumentParseError, raise_if_cancelled
from gateway_openapi.settings import AggregationSettings

logger = logging.getLogger(__name__)

# seconds between cancellation checks while waiting for a lock or permit
_POLL_INTERVAL = 0.05


def cache_key(base_url: str, openapi_path: str) -> str:
    return f"openapi:{base_url}:{openapi_path}"


def combine_url(base_url: str, path: str) -> str:
    """Join without doubling or dropping the slash between the two parts."""
    path = path if path.startswith("/") else "/" + path
    return base_url.rstrip("/") + path


class DocumentFetcher:
    """Fetches, parses and caches downstream OpenAPI documents."""

    def __init__(
        self,
        cache: TagCache,
        settings: AggregationSettings | None = None,
        session: requests.Session | None = None,
    ):
        self.cache = cache
        self.settings = settings or AggregationSettings()
        self.session = session or requests.Session()
        self._permits = threading.BoundedSemaphore(self.settings.max_concurrent_fetches)
        self._key_locks: dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    def fetch(
        self,
        base_url: str,
        openapi_path: str,
        *,
        tags: Iterable[str] = (),
        cancel: threading.Event | None = None,
    ) -> Document | None:
        """Return the document served at ``base_url`` + ``openapi_path``.

        Falls back to the configured fallback paths when the primary path
        fails. Returns None when every path fails; network and parse errors
        never escape. Raises ValueError for blank arguments and
        OperationCancelled when ``cancel`` is set, in which case nothing is
        cached.
        """
        if not base_url or not base_url.strip():
            raise ValueError("Base URL cannot be blank")
        if not openapi_path or not openapi_path.strip():
            raise ValueError("OpenAPI path cannot be blank")
        raise_if_cancelled(cancel)

        key = cache_key(base_url, openapi_path)
        entry = self.cache.get(key)
        if entry is not None:
            logger.debug("OpenAPI document cache hit for %s%s", base_url, openapi_path)
            return entry.value

        # one fetch per key at a time; latecomers find the winner's result cached
        with self._key_lock(key, cancel):
            self._acquire_permit(cancel)
            try:
                entry = self.cache.get(key)
                if entry is not None:
                    logger.debug("OpenAPI document cache hit (after wait) for %s%s", base_url, openapi_path)
                    return entry.value

                document = self._fetch_with_fallbacks(base_url, openapi_path, cancel)

                raise_if_cancelled(cancel)
                tags = frozenset(tags)
                if document is not None:
                    self.cache.set(key, document, self.settings.cache_duration, tags)
                    logger.info(
                        "OpenAPI document cached for %s%s (expires in %ss)",
                        base_url, openapi_path, self.settings.cache_duration,
                    )
                else:
                    self.cache.set(key, None, self.settings.failure_cache_duration, tags)
                    logger.warning("Failed to fetch OpenAPI document from %s%s (all paths attempted)", base_url, openapi_path)
                return document
            finally:
                self._permits.release()

    def _fetch_with_fallbacks(self, base_url: str, openapi_path: str, cancel) -> Document | None:
        document = self._try_fetch(base_url, openapi_path)
        if document is not None:
            return document

        fallbacks = [p for p in self.settings.fallback_paths if p != openapi_path]
        if fallbacks:
            logger.info("Primary OpenAPI path %s failed for %s, trying fallback paths", openapi_path, base_url)
        for path in fallbacks:
            raise_if_cancelled(cancel)
            document = self._try_fetch(base_url, path)
            if document is not None:
                logger.info("Fetched OpenAPI document from fallback path %s for %s", path, base_url)
                return document
        return None

    def _try_fetch(self, base_url: str, path: str) -> Document | None:
        url = combine_url(base_url, path)
        logger.debug("Fetching OpenAPI document from %s", url)
        try:
            response = self.session.get(url, timeout=self.settings.fetch_timeout_seconds)
            if not response.ok:
                logger.warning("HTTP %d fetching OpenAPI document from %s", response.status_code, url)
                return None
            document = parse_document(response.text)
        except requests.Timeout:
            logger.warning("Timeout fetching OpenAPI document from %s", url)
            return None
        except requests.RequestException as e:
            logger.warning("HTTP request error fetching OpenAPI document from %s: %s", url, e)
            return None
        except DocumentParseError as e:
            logger.warning("Failed to parse OpenAPI document from %s: %s", url, e)
            return None

        logger.debug("Fetched OpenAPI document from %s", url)
        return document

    # -- synchronization ----------------------------------------------------

    def _key_lock(self, key: str, cancel) -> "_HeldLock":
        with self._key_locks_guard:
            lock = self._key_locks.setdefault(key, threading.Lock())
        _wait_for(lock, cancel)
        return _HeldLock(lock)

    def _acquire_permit(self, cancel) -> None:
        _wait_for(self._permits, cancel)


def _wait_for(lock, cancel) -> None:
    """Acquire ``lock``, giving up with OperationCancelled if ``cancel`` is set."""
    if cancel is None:
        lock.acquire()
        return
    while not lock.acquire(timeout=_POLL_INTERVAL):
        raise_if_cancelled(cancel)


class _HeldLock:
    """Context manager releasing an already acquired lock."""

    def __init__(self, lock):
        self._lock = lock

    def __enter__(self):
        return self._lock

    def __exit__(self, *exc):
        self._lock.release()
        return False
