"""
Cache for lookup-service results.

Identifier lookups and parent-name searches are expensive and rate limited
upstream, so results are kept for days. The cache also hosts an advisory
per-identifier processing lock and a priority queue of identifiers worth
pre-fetching (relatives of people just looked up).

Storage is behind two small interfaces, `TTLCache` and `PriorityQueue`, so a
shared backend can replace the in-memory implementations used by default.
"""

import asyncio
import hashlib
import heapq
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
import logging

from pydantic import ValidationError

from schemas.records import ParentRole, PersonRecord, ParentSearchRecord
from genealogy.validators.name_matcher import normalize_name

logger = logging.getLogger(__name__)

KEY_PREFIX = "genealogy:cache"

IDENTIFIER_TTL = 30 * 24 * 3600
PARENT_SEARCH_TTL = 7 * 24 * 3600
LOCK_TTL = 300


# ============================================================================
# Storage interfaces
# ============================================================================

class TTLCache(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    async def set_if_absent(self, key: str, value: Any, ttl: Optional[float] = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def keys(self, prefix: str) -> List[str]: ...


class PriorityQueue(Protocol):
    async def push(self, member: str, score: float) -> None: ...

    async def pop_min(self) -> Optional[str]: ...

    async def size(self) -> int: ...


# ============================================================================
# In-memory implementations
# ============================================================================

class InMemoryTTLCache:
    """Dictionary-backed TTL cache with lazy expiry and an injectable clock"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _alive(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return False
        return True

    def _expiry(self, ttl: Optional[float]) -> Optional[float]:
        return self._clock() + ttl if ttl is not None else None

    async def get(self, key: str) -> Optional[Any]:
        if not self._alive(key):
            return None
        return self._entries[key][0]

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = (value, self._expiry(ttl))

    async def set_if_absent(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        async with self._lock:
            if self._alive(key):
                return False
            self._entries[key] = (value, self._expiry(ttl))
            return True

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def keys(self, prefix: str) -> List[str]:
        return [key for key in list(self._entries) if key.startswith(prefix) and self._alive(key)]

    async def purge_expired(self) -> int:
        expired = [key for key in list(self._entries) if not self._alive(key)]
        return len(expired)


class InMemoryPriorityQueue:
    """Sorted-set semantics: one entry per member, re-pushing updates the score"""

    def __init__(self):
        self._heap: List[Tuple[float, int, str]] = []
        self._scores: Dict[str, float] = {}
        self._counter = 0

    async def push(self, member: str, score: float) -> None:
        self._scores[member] = score
        self._counter += 1
        heapq.heappush(self._heap, (score, self._counter, member))

    async def pop_min(self) -> Optional[str]:
        while self._heap:
            score, _, member = heapq.heappop(self._heap)
            if self._scores.get(member) == score:
                del self._scores[member]
                return member
        return None

    async def size(self) -> int:
        return len(self._scores)


# ============================================================================
# Lookup cache
# ============================================================================

class LookupCache:
    """
    Typed cache of lookup results with hit/miss accounting.

    Keys:
    - <prefix>:identifier:<digits>
    - <prefix>:mother:<md5 of normalized name>
    - <prefix>:father:<md5 of normalized name>
    - <prefix>:processing:<digits>

    Counters are kept per kind (identifier, mother_search, father_search).
    Entries that no longer parse are deleted and counted as errors.
    """

    def __init__(
        self,
        backend: Optional[TTLCache] = None,
        queue: Optional[PriorityQueue] = None,
        identifier_ttl: float = IDENTIFIER_TTL,
        parent_search_ttl: float = PARENT_SEARCH_TTL,
        lock_ttl: float = LOCK_TTL,
        clock: Callable[[], float] = time.time
    ):
        self.backend = backend if backend is not None else InMemoryTTLCache()
        self.queue = queue if queue is not None else InMemoryPriorityQueue()
        self.identifier_ttl = identifier_ttl
        self.parent_search_ttl = parent_search_ttl
        self.lock_ttl = lock_ttl
        self._clock = clock
        self.metrics: Dict[str, Dict[str, int]] = {}

    # Keys ---------------------------------------------------------------

    @staticmethod
    def identifier_key(identifier: str) -> str:
        return f"{KEY_PREFIX}:identifier:{identifier}"

    @staticmethod
    def parent_search_key(role: ParentRole, name: str) -> str:
        digest = hashlib.md5(normalize_name(name).encode("utf-8")).hexdigest()
        kind = "mother" if role == ParentRole.MOTHER else "father"
        return f"{KEY_PREFIX}:{kind}:{digest}"

    @staticmethod
    def lock_key(identifier: str) -> str:
        return f"{KEY_PREFIX}:processing:{identifier}"

    def _count(self, kind: str, outcome: str) -> None:
        bucket = self.metrics.setdefault(kind, {"hit": 0, "miss": 0, "cached": 0, "error": 0})
        bucket[outcome] += 1

    @staticmethod
    def _search_kind(role: ParentRole) -> str:
        return "mother_search" if role == ParentRole.MOTHER else "father_search"

    # Identifier lookups -------------------------------------------------

    async def get_identifier(self, identifier: str) -> Optional[PersonRecord]:
        key = self.identifier_key(identifier)
        raw = await self.backend.get(key)
        if raw is None:
            self._count("identifier", "miss")
            return None
        try:
            record = PersonRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Dropping corrupt cache entry {key}: {e}")
            await self.backend.delete(key)
            self._count("identifier", "error")
            return None
        self._count("identifier", "hit")
        logger.debug(f"Cache hit for identifier {identifier}")
        return record

    async def has_identifier(self, identifier: str) -> bool:
        return await self.backend.get(self.identifier_key(identifier)) is not None

    async def set_identifier(self, identifier: str, record: PersonRecord) -> None:
        await self.backend.set(
            self.identifier_key(identifier),
            record.model_dump(by_alias=True),
            self.identifier_ttl
        )
        self._count("identifier", "cached")

    async def invalidate_identifier(self, identifier: str) -> bool:
        return await self.backend.delete(self.identifier_key(identifier))

    # Parent-name searches -----------------------------------------------

    async def get_parent_search(self, role: ParentRole, name: str) -> Optional[List[ParentSearchRecord]]:
        kind = self._search_kind(role)
        key = self.parent_search_key(role, name)
        raw = await self.backend.get(key)
        if raw is None:
            self._count(kind, "miss")
            return None
        try:
            rows = [ParentSearchRecord.model_validate(item) for item in raw]
        except (ValidationError, TypeError) as e:
            logger.warning(f"Dropping corrupt cache entry {key}: {e}")
            await self.backend.delete(key)
            self._count(kind, "error")
            return None
        self._count(kind, "hit")
        return rows

    async def set_parent_search(self, role: ParentRole, name: str, rows: List[ParentSearchRecord]) -> None:
        await self.backend.set(
            self.parent_search_key(role, name),
            [row.model_dump(by_alias=True) for row in rows],
            self.parent_search_ttl
        )
        self._count(self._search_kind(role), "cached")

    async def invalidate_parent_search(self, role: ParentRole, name: str) -> bool:
        return await self.backend.delete(self.parent_search_key(role, name))

    # Processing lock ----------------------------------------------------

    async def try_lock(self, identifier: str, ttl: Optional[float] = None) -> bool:
        """Advisory lock; expires on its own so a crashed holder cannot wedge it"""
        return await self.backend.set_if_absent(
            self.lock_key(identifier),
            self._clock(),
            ttl if ttl is not None else self.lock_ttl
        )

    async def release(self, identifier: str) -> None:
        await self.backend.delete(self.lock_key(identifier))

    async def is_locked(self, identifier: str) -> bool:
        return await self.backend.get(self.lock_key(identifier)) is not None

    # Warm-up queue ------------------------------------------------------

    async def enqueue_priority(self, identifier: str, score: Optional[float] = None) -> None:
        await self.queue.push(identifier, score if score is not None else self._clock())

    async def dequeue_priority(self) -> Optional[str]:
        return await self.queue.pop_min()

    # Statistics ---------------------------------------------------------

    def hit_rate(self) -> Dict[str, float]:
        """Hit percentage per kind plus overall, rounded to two decimals"""
        rates: Dict[str, float] = {}
        total_hits = 0
        total_lookups = 0
        for kind, bucket in self.metrics.items():
            lookups = bucket["hit"] + bucket["miss"]
            total_hits += bucket["hit"]
            total_lookups += lookups
            rates[kind] = round(bucket["hit"] / lookups * 100, 2) if lookups else 0.0
        rates["overall"] = round(total_hits / total_lookups * 100, 2) if total_lookups else 0.0
        return rates

    async def stats(self) -> Dict[str, Any]:
        return {
            "identifier_entries": len(await self.backend.keys(f"{KEY_PREFIX}:identifier:")),
            "mother_search_entries": len(await self.backend.keys(f"{KEY_PREFIX}:mother:")),
            "father_search_entries": len(await self.backend.keys(f"{KEY_PREFIX}:father:")),
            "locks": len(await self.backend.keys(f"{KEY_PREFIX}:processing:")),
            "priority_queue": await self.queue.size(),
            "metrics": {kind: dict(bucket) for kind, bucket in self.metrics.items()},
            "hit_rate": self.hit_rate(),
        }

    async def clear_all(self) -> int:
        keys = await self.backend.keys(f"{KEY_PREFIX}:")
        for key in keys:
            await self.backend.delete(key)
        self.metrics.clear()
        logger.info(f"Cleared {len(keys)} lookup cache entries")
        return len(keys)
