"""
Effective-Permission Cache

Optional cache of each principal's effective permission names. The stores
work without it (a fresh join on every check); when enabled, correctness
rests on *explicit invalidation*, with the TTL acting only as a memory bound.

Invalidation model:
- ``assign_role`` / ``remove_role`` invalidate the affected principal
- ``grant_permission`` / ``revoke_permission`` invalidate every principal
  holding the role

A read that races an invalidation must not write its (possibly stale) result
back. Every principal carries a generation counter: readers take a
``begin()`` token before querying the store, ``store()`` only writes when the
generation is unchanged, and ``invalidate()`` bumps the generation before
dropping the entry. An invalidation that cannot be carried out raises
``LookupFailure``; it is never left to the TTL.

Backends:
- ``NullPermissionCache``: caching disabled
- ``InMemoryPermissionCache``: process-local dictionary
- ``RedisPermissionCache``: shared Redis keys ``authz:perm:{principal_id}``
  and ``authz:perm_gen:{principal_id}``
"""

import json
import time
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

import structlog
from redis import Redis
from redis.exceptions import RedisError

from edu_rbac.auth.catalog import PermissionName
from edu_rbac.auth.exceptions import LookupFailure
from edu_rbac.monitoring.metrics import authz_permission_cache_total

logger = structlog.get_logger(__name__)


class CacheKeyPatterns:
    """Redis key patterns for permission caching."""

    USER_PERMISSIONS = "authz:perm:{principal_id}"
    USER_GENERATION = "authz:perm_gen:{principal_id}"


class PermissionCache(ABC):
    """Interface shared by the cache backends."""

    enabled = True

    @abstractmethod
    def begin(self, principal_id: str) -> int:
        """Snapshot the principal's generation before computing a fresh value."""

    @abstractmethod
    def get(self, principal_id: str) -> Optional[FrozenSet[PermissionName]]:
        ...

    @abstractmethod
    def store(self, principal_id: str, permissions: Iterable[PermissionName], token: int) -> bool:
        """Write the value unless the principal was invalidated since ``begin``."""

    @abstractmethod
    def invalidate(self, principal_id: str) -> None:
        ...

    def invalidate_many(self, principal_ids: Iterable[str]) -> None:
        for principal_id in principal_ids:
            self.invalidate(principal_id)


class NullPermissionCache(PermissionCache):
    """Caching disabled: every check recomputes effective permissions."""

    enabled = False

    def begin(self, principal_id: str) -> int:
        return 0

    def get(self, principal_id: str) -> Optional[FrozenSet[PermissionName]]:
        return None

    def store(self, principal_id: str, permissions: Iterable[PermissionName], token: int) -> bool:
        return False

    def invalidate(self, principal_id: str) -> None:
        return None


class InMemoryPermissionCache(PermissionCache):
    """Process-local cache with TTL expiry and generation-checked writes."""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds
        self._lock = RLock()
        self._entries: Dict[str, Tuple[float, FrozenSet[PermissionName]]] = {}
        self._generations: Dict[str, int] = {}

    def begin(self, principal_id: str) -> int:
        with self._lock:
            return self._generations.get(principal_id, 0)

    def get(self, principal_id: str) -> Optional[FrozenSet[PermissionName]]:
        with self._lock:
            entry = self._entries.get(principal_id)
            if entry is None:
                authz_permission_cache_total.labels(operation='get', result='miss').inc()
                return None
            expires_at, permissions = entry
            if expires_at <= time.monotonic():
                del self._entries[principal_id]
                authz_permission_cache_total.labels(operation='get', result='expired').inc()
                return None
            authz_permission_cache_total.labels(operation='get', result='hit').inc()
            return permissions

    def store(self, principal_id: str, permissions: Iterable[PermissionName], token: int) -> bool:
        with self._lock:
            if self._generations.get(principal_id, 0) != token:
                authz_permission_cache_total.labels(operation='store', result='stale').inc()
                return False
            self._entries[principal_id] = (
                time.monotonic() + self.ttl_seconds,
                frozenset(permissions),
            )
            authz_permission_cache_total.labels(operation='store', result='success').inc()
            return True

    def invalidate(self, principal_id: str) -> None:
        with self._lock:
            self._generations[principal_id] = self._generations.get(principal_id, 0) + 1
            self._entries.pop(principal_id, None)
        authz_permission_cache_total.labels(operation='invalidate', result='success').inc()


class RedisPermissionCache(PermissionCache):
    """
    Redis-backed cache shared by every worker process.

    Read failures and unreadable entries degrade to a cache miss (the store is
    authoritative). Invalidation failures are logged with
    ``event_type="authz.cache_invalidation_failed"`` and raised as
    ``LookupFailure`` so the mutation that triggered them fails and can be
    retried.
    """

    def __init__(self, redis_client: Redis, ttl_seconds: int = 300):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _keys(principal_id: str) -> Tuple[str, str]:
        return (
            CacheKeyPatterns.USER_PERMISSIONS.format(principal_id=principal_id),
            CacheKeyPatterns.USER_GENERATION.format(principal_id=principal_id),
        )

    def begin(self, principal_id: str) -> int:
        _, generation_key = self._keys(principal_id)
        try:
            return int(self.redis_client.get(generation_key) or 0)
        except RedisError as e:
            logger.warning("Permission cache generation read failed", principal_id=principal_id, error=str(e))
            # Unknowable generation: make store() refuse the write
            return -1

    def get(self, principal_id: str) -> Optional[FrozenSet[PermissionName]]:
        value_key, generation_key = self._keys(principal_id)
        try:
            raw_value, raw_generation = self.redis_client.mget(value_key, generation_key)
        except RedisError as e:
            logger.warning("Permission cache read failed", principal_id=principal_id, error=str(e))
            authz_permission_cache_total.labels(operation='get', result='error').inc()
            return None

        if raw_value is None:
            authz_permission_cache_total.labels(operation='get', result='miss').inc()
            return None

        try:
            payload = json.loads(raw_value)
            generation = payload['generation']
            current_generation = int(raw_generation or 0)
            permissions = frozenset(PermissionName(name) for name in payload['permissions'])
        except (ValueError, KeyError, TypeError) as e:
            # Corrupt entry, or a permission name this release no longer knows
            logger.warning("Permission cache entry unreadable", principal_id=principal_id, error=str(e))
            authz_permission_cache_total.labels(operation='get', result='error').inc()
            self._discard(value_key)
            return None

        if generation != current_generation:
            authz_permission_cache_total.labels(operation='get', result='stale').inc()
            return None

        authz_permission_cache_total.labels(operation='get', result='hit').inc()
        return permissions

    def _discard(self, value_key: str) -> None:
        try:
            self.redis_client.delete(value_key)
        except RedisError as e:
            logger.warning("Permission cache entry delete failed", key=value_key, error=str(e))

    def store(self, principal_id: str, permissions: Iterable[PermissionName], token: int) -> bool:
        if token < 0:
            return False
        value_key, _ = self._keys(principal_id)
        payload = json.dumps({
            'generation': token,
            'permissions': sorted(PermissionName(name).value for name in permissions),
        })
        try:
            self.redis_client.setex(value_key, self.ttl_seconds, payload)
        except RedisError as e:
            logger.warning("Permission cache write failed", principal_id=principal_id, error=str(e))
            authz_permission_cache_total.labels(operation='store', result='error').inc()
            return False
        authz_permission_cache_total.labels(operation='store', result='success').inc()
        return True

    def invalidate(self, principal_id: str) -> None:
        value_key, generation_key = self._keys(principal_id)
        try:
            pipeline = self.redis_client.pipeline()
            pipeline.incr(generation_key)
            pipeline.delete(value_key)
            pipeline.execute()
        except RedisError as e:
            logger.error(
                "Permission cache invalidation failed",
                event_type="authz.cache_invalidation_failed",
                principal_id=principal_id,
                error=str(e)
            )
            authz_permission_cache_total.labels(operation='invalidate', result='error').inc()
            raise LookupFailure(
                f"Permission cache invalidation failed for {principal_id}: {e}",
                original_error=e,
                user_message="Permission cache unavailable; retry the operation",
                metadata={'principal_id': principal_id}
            ) from e
        authz_permission_cache_total.labels(operation='invalidate', result='success').inc()


def create_permission_cache(
    backend: str,
    ttl_seconds: int = 300,
    redis_url: Optional[str] = None
) -> PermissionCache:
    """
    Build the cache selected by ``PERMISSION_CACHE_BACKEND``.

    Args:
        backend: ``none``, ``memory`` or ``redis``
        ttl_seconds: Entry lifetime
        redis_url: Connection URL, required for ``redis``
    """
    backend = (backend or 'none').lower()
    if backend == 'none':
        return NullPermissionCache()
    if backend == 'memory':
        return InMemoryPermissionCache(ttl_seconds=ttl_seconds)
    if backend == 'redis':
        if not redis_url:
            raise ValueError("REDIS_URL is required for the redis permission cache")
        return RedisPermissionCache(Redis.from_url(redis_url), ttl_seconds=ttl_seconds)
    raise ValueError(f"Unknown permission cache backend: {backend}")


__all__ = [
    'CacheKeyPatterns',
    'PermissionCache',
    'NullPermissionCache',
    'InMemoryPermissionCache',
    'RedisPermissionCache',
    'create_permission_cache',
]
