"""Per-asset exclusive sections for chain appends.

Appending reads the chain tail, hashes against it and persists the new event.
Two writers interleaving those steps on the same asset would both link to the
same tail, so the whole sequence runs while holding the asset's lock. Locks
for different assets are independent.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from redis.exceptions import LockError

from servicevault_api.ledger.errors import ChainLockTimeout
from servicevault_api.settings import get_settings

logger = logging.getLogger(__name__)


class AssetLockProvider:
    """Hands out one exclusive section per asset."""

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds

    def hold(self, asset_id: str):
        """Context manager holding the asset's exclusive section."""
        raise NotImplementedError


class LocalAssetLockProvider(AssetLockProvider):
    """In-process locks; serializes writers sharing one interpreter.

    An asset's lock lives only while some writer holds or waits on it.
    """

    def __init__(self, timeout_seconds: float = 10.0):
        super().__init__(timeout_seconds)
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}
        self._registry_lock = threading.Lock()

    def _checkout(self, asset_id: str) -> threading.Lock:
        with self._registry_lock:
            self._users[asset_id] = self._users.get(asset_id, 0) + 1
            return self._locks.setdefault(asset_id, threading.Lock())

    def _checkin(self, asset_id: str) -> None:
        with self._registry_lock:
            self._users[asset_id] -= 1
            if not self._users[asset_id]:
                del self._users[asset_id]
                del self._locks[asset_id]

    @contextmanager
    def hold(self, asset_id: str) -> Iterator[None]:
        lock = self._checkout(asset_id)
        try:
            if not lock.acquire(timeout=self.timeout_seconds):
                raise ChainLockTimeout(
                    f"Timed out after {self.timeout_seconds}s waiting to append to asset {asset_id}"
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(asset_id)


class RedisAssetLockProvider(AssetLockProvider):
    """Redis locks; serializes writers across processes and hosts."""

    key_prefix = "asset_chain_lock"

    def __init__(self, redis_client, timeout_seconds: float = 10.0, ttl_seconds: int = 30):
        super().__init__(timeout_seconds)
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    @contextmanager
    def hold(self, asset_id: str) -> Iterator[None]:
        lock = self.redis_client.lock(
            f"{self.key_prefix}:{asset_id}",
            timeout=self.ttl_seconds,
            blocking_timeout=self.timeout_seconds,
        )
        if not lock.acquire():
            raise ChainLockTimeout(
                f"Timed out after {self.timeout_seconds}s waiting to append to asset {asset_id}"
            )
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # TTL elapsed before release; another writer may already hold it
                logger.warning(
                    "Asset chain lock expired before release",
                    extra={"asset_id": asset_id, "ttl_seconds": self.ttl_seconds},
                )


_lock_provider: Optional[AssetLockProvider] = None


def get_lock_provider() -> AssetLockProvider:
    """Get or create the process-wide lock provider from settings."""
    global _lock_provider

    if _lock_provider is None:
        settings = get_settings()
        if settings.asset_lock_backend == "redis":
            import redis

            _lock_provider = RedisAssetLockProvider(
                redis.from_url(settings.redis_url),
                timeout_seconds=settings.asset_lock_timeout_seconds,
                ttl_seconds=settings.asset_lock_ttl_seconds,
            )
        else:
            _lock_provider = LocalAssetLockProvider(
                timeout_seconds=settings.asset_lock_timeout_seconds,
            )
        logger.info(f"Initialized {type(_lock_provider).__name__} for asset chain appends")

    return _lock_provider
