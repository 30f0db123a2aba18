"""
Cache de lecture (non autoritatif).

Le coeur ne dépend que de trois opérations : get / set / invalidate(prefix).
Les écritures côté coeur sont uniquement des invalidations, faites APRÈS
commit, en best-effort : un échec est loggé puis ignoré, l'entrée périmée
expire avec son TTL.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"

# Préfixes d'invalidation
PURCHASE_ORDERS = "purchase-orders"
PURCHASE_ORDER_LIST = "purchase-orders:list"
PURCHASE_ORDER_STATS = "purchase-orders:stats"
SUPPLIERS = "suppliers"
RAW_MATERIALS = "raw-materials"
LOW_STOCK_MATERIALS = "raw-materials:low-stock"


class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def invalidate(self, prefix: str) -> int: ...


def make_key(*parts: object) -> str:
    return KEY_SEPARATOR.join("none" if p is None or p == "" else str(p) for p in parts)


class InMemoryCache:
    """Backend TTL en mémoire du process (dev / tests / mono-instance)."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, value)

    def invalidate(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k == prefix or k.startswith(prefix + KEY_SEPARATOR)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)


def cached_get(cache: CacheBackend | None, key: str) -> Any | None:
    """Lecture best-effort : une panne de cache = cache miss."""
    if cache is None:
        return None
    try:
        return cache.get(key)
    except Exception:
        logger.warning("Cache get failed for %s", key, exc_info=True)
        return None


def cached_set(cache: CacheBackend | None, key: str, value: Any, ttl: int) -> None:
    if cache is None:
        return
    try:
        cache.set(key, value, ttl)
    except Exception:
        logger.warning("Cache set failed for %s", key, exc_info=True)


def invalidate_quietly(cache: CacheBackend | None, prefixes: Iterable[str]) -> None:
    """
    Fire-and-forget : ne lève jamais.

    Appelé après commit ; la base fait foi, une invalidation ratée laisse
    seulement des données périmées jusqu'à expiration du TTL.
    """
    if cache is None:
        return
    for prefix in prefixes:
        try:
            cache.invalidate(prefix)
        except Exception:
            logger.warning("Cache invalidation failed for prefix %s", prefix, exc_info=True)
