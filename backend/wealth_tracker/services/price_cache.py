"""
Short-lived price cache.

Each entry is keyed per identifier (``crypto:bitcoin``, ``stock:BIST:THYAO``,
``gold:gram`` ...) so a single category request can be served partly from
cache and partly from the network.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import logging
import time

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 25.0


def system_clock_ms() -> float:
    return time.time() * 1000


@dataclass
class PriceCacheEntry:
    data: Any
    fetched_at_epoch_ms: float


class PriceCache:
    """
    Per-identifier TTL cache with an injectable millisecond clock.

    The TTL is kept shorter than the UI polling interval so consecutive
    refresh cycles refetch, while duplicate calls inside one cycle do not.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = system_clock_ms):
        self.ttl_ms = ttl_seconds * 1000
        self._clock = clock
        self._entries: Dict[str, PriceCacheEntry] = {}

    def is_fresh(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry.fetched_at_epoch_ms < self.ttl_ms

    def get(self, key: str) -> Optional[Any]:
        if self.is_fresh(key):
            return self._entries[key].data
        return None

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = PriceCacheEntry(data=data, fetched_at_epoch_ms=self._clock())

    def split(self, namespace: str, ids: Iterable[str]) -> Tuple[Dict[str, Any], List[str]]:
        """
        Partition ``ids`` into cached values and identifiers needing a fetch.

        Returns:
            Tuple of ({id: cached value}, [stale or missing ids])
        """
        hits: Dict[str, Any] = {}
        misses: List[str] = []
        for item_id in ids:
            cached = self.get(f"{namespace}:{item_id}")
            if cached is not None:
                hits[item_id] = cached
            else:
                misses.append(item_id)
        if hits:
            logger.debug(f"Cache hit for {len(hits)} {namespace} ids")
        return hits, misses

    def entries(self) -> Dict[str, PriceCacheEntry]:
        return dict(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Price cache cleared")
