"""Cache of output-shape descriptors keyed by their canonical structure."""

import hashlib
import itertools
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type, TypeVar, Union

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

SchemaLike = Union[Type[BaseModel], Mapping[str, Any]]


def canonical_json(value: Any) -> str:
    """Serialize ``value`` with sorted keys and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def schema_hash(schema: SchemaLike) -> str:
    """
    Hash a schema descriptor by structure.

    Pydantic models are hashed through their JSON schema, plain mappings are
    taken as JSON schemas directly. Object key order does not matter.
    """
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        document = schema.model_json_schema()
    elif isinstance(schema, Mapping):
        document = schema
    else:
        raise TypeError(f"Unsupported schema descriptor: {schema!r}")
    return hashlib.sha256(canonical_json(document).encode("utf-8")).hexdigest()


def _check_max_size(max_size: int) -> None:
    if max_size < 1:
        raise ValueError(f"max_size must be at least 1, got {max_size}")


@dataclass
class SchemaCacheEntry:
    """A cached descriptor and its usage counters."""

    schema: SchemaLike
    hit_count: int
    last_accessed: float
    access_seq: int

    @property
    def schema_type(self) -> str:
        if isinstance(self.schema, type):
            return self.schema.__name__
        return type(self.schema).__name__


class SchemaCache:
    """
    LRU cache mapping canonical schema hashes to one descriptor instance.

    Structurally identical schemas resolve to the first instance seen, so
    callers share one representation instead of re-deriving it.
    """

    def __init__(self, max_size: int = 100, clock: Callable[[], float] = time.monotonic):
        _check_max_size(max_size)
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, SchemaCacheEntry] = {}
        self._seq = itertools.count()
        self._lock = threading.RLock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._total_requests = 0

    def get_cache_key(self, schema: SchemaLike) -> str:
        """Get cache key for a schema (useful for debugging)."""
        return schema_hash(schema)

    def get_or_set(self, schema: T) -> T:
        """Return the cached equivalent of ``schema``, inserting it on first sight."""
        key = schema_hash(schema)
        with self._lock:
            self._total_requests += 1
            now = self._clock()
            entry = self._entries.get(key)

            if entry is not None:
                self._hits += 1
                entry.hit_count += 1
                entry.last_accessed = now
                entry.access_seq = next(self._seq)
                return entry.schema  # type: ignore[return-value]

            self._misses += 1
            if len(self._entries) >= self.max_size:
                self._evict_least_recently_used()

            self._entries[key] = SchemaCacheEntry(
                schema=schema,
                hit_count=1,
                last_accessed=now,
                access_seq=next(self._seq),
            )
            return schema

    def _evict_least_recently_used(self) -> None:
        if not self._entries:
            return
        lru_key = min(
            self._entries,
            key=lambda k: (self._entries[k].last_accessed, self._entries[k].access_seq),
        )
        del self._entries[lru_key]
        self._evictions += 1
        logger.debug("schema_cache_evicted", key=lru_key)

    def has(self, schema: SchemaLike) -> bool:
        """Check if a schema is cached without affecting statistics."""
        return schema_hash(schema) in self._entries

    def remove(self, schema: SchemaLike) -> bool:
        """Remove a specific schema from cache."""
        key = schema_hash(schema)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all cached schemas and statistics."""
        with self._lock:
            self._entries.clear()
            self._reset_counters()

    def reset_stats(self) -> None:
        """Reset statistics without clearing cache."""
        with self._lock:
            self._reset_counters()

    def preload(self, schemas: Iterable[SchemaLike]) -> None:
        """Warm the cache with commonly used schemas."""
        for schema in schemas:
            self.get_or_set(schema)

    def update_max_size(self, max_size: int) -> None:
        """Change capacity, evicting entries if the cache is now too large."""
        _check_max_size(max_size)
        with self._lock:
            self.max_size = max_size
            while len(self._entries) > self.max_size:
                self._evict_least_recently_used()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "total_requests": self._total_requests,
                "hit_rate": self._hits / self._total_requests if self._total_requests else 0.0,
            }

    def get_most_used(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most frequently used schemas, by hit count."""
        with self._lock:
            rows = [
                {"key": key, "hit_count": entry.hit_count, "schema_type": entry.schema_type}
                for key, entry in self._entries.items()
            ]
        rows.sort(key=lambda row: row["hit_count"], reverse=True)
        return rows[:limit]

    def get_debug_info(self) -> Dict[str, Any]:
        """Detailed cache contents for debugging."""
        with self._lock:
            entries = [
                {
                    "key": key,
                    "hit_count": entry.hit_count,
                    "last_accessed": entry.last_accessed,
                    "schema_type": entry.schema_type,
                }
                for key, entry in self._entries.items()
            ]
        entries.sort(key=lambda row: row["hit_count"], reverse=True)
        return {"entries": entries, "stats": self.get_stats()}

    def get_entry(self, schema: SchemaLike) -> Optional[SchemaCacheEntry]:
        """Inspect the entry for ``schema`` without touching counters."""
        return self._entries.get(schema_hash(schema))

    def __len__(self) -> int:
        return len(self._entries)
