"""
Per-user recommendation cache with TTL, plus a per-user "seen" history
used to keep already-shown manga out of later batches.
"""

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from common.constants import CACHE, PATHS
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["app_log_file"])

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    data: T
    created_at: float
    expires_at: float


def _canonical(value):
    if isinstance(value, (set, frozenset)):
        return sorted(_canonical(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    return value


def make_signature(**params: Any) -> str:
    """Deterministic key for a set of request parameters: same parameters, same signature."""
    payload = json.dumps(_canonical(params), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


class RecommendationCache:
    """
    In-memory result cache keyed by (user_id, signature).

    Expired entries are evicted lazily when they are next read. History entries
    older than the retention window are pruned the same way.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE["ttl_seconds"],
        history_ttl_seconds: float = CACHE["history_ttl_seconds"],
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.history_ttl_seconds = history_ttl_seconds
        self.clock = clock
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}
        self._history: Dict[str, Dict[int, float]] = {}

    def set(self, user_id: str, signature: str, data: Any) -> CacheEntry:
        now = self.clock()
        entry = CacheEntry(data=data, created_at=now, expires_at=now + self.ttl_seconds)
        self._entries[(user_id, signature)] = entry
        return entry

    def get(self, user_id: str, signature: str) -> Optional[Any]:
        key = (user_id, signature)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() >= entry.expires_at:
            del self._entries[key]
            logger.debug(f"Evicted expired cache entry for user {user_id}")
            return None
        return entry.data

    def add_to_history(self, user_id: str, item_ids: Iterable[int]) -> None:
        now = self.clock()
        seen = self._history.setdefault(user_id, {})
        for item_id in item_ids:
            seen[int(item_id)] = now

    def get_history(self, user_id: str) -> List[int]:
        seen = self._history.get(user_id)
        if not seen:
            return []
        cutoff = self.clock() - self.history_ttl_seconds
        stale = [item_id for item_id, added_at in seen.items() if added_at <= cutoff]
        for item_id in stale:
            del seen[item_id]
        if stale:
            logger.debug(f"Pruned {len(stale)} stale history entries for user {user_id}")
        return sorted(seen)

    def clear_history(self, user_id: str) -> None:
        """Forget what the user has seen and drop every cached result for them."""
        self._history.pop(user_id, None)
        keys = [key for key in self._entries if key[0] == user_id]
        for key in keys:
            del self._entries[key]
        logger.info(f"Cleared history and {len(keys)} cache entries for user {user_id}")

    def __len__(self) -> int:
        return len(self._entries)
