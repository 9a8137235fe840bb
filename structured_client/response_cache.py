"""Full-response cache keyed by a deterministic request fingerprint."""

import asyncio
import hashlib
import itertools
import json
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

import structlog

from .schema_cache import canonical_json

logger = structlog.get_logger(__name__)

CONTENT_MARKER = "\n---CONTENT---\n"


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def prompt_hash(prompt: str, content: Optional[str] = None) -> str:
    """Hash of the prompt together with its optional content."""
    if content:
        return _sha256(f"{prompt}{CONTENT_MARKER}{content}")
    return _sha256(prompt)


def build_fingerprint(
    provider: str,
    model: str,
    schema_hash: str,
    prompt: str,
    content: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> str:
    """
    Build the cache key for a generation request.

    Every field that can change the output participates; unset temperature
    and max_tokens are normalised to 0.
    """
    key_data = {
        "provider": provider,
        "model": model,
        "schemaHash": schema_hash,
        "promptHash": prompt_hash(prompt, content),
        "params": {
            "temperature": temperature if temperature is not None else 0,
            "maxTokens": max_tokens if max_tokens is not None else 0,
        },
    }
    return _sha256(canonical_json(key_data))


@dataclass
class ResponseCacheEntry:
    """A cached, already-validated output."""

    data: Any
    created_at: float
    last_accessed: float
    hit_count: int = 0
    ttl: Optional[float] = None  # seconds; None never expires
    metadata: Dict[str, str] = field(default_factory=dict)
    access_seq: int = 0

    def is_expired(self, now: float) -> bool:
        if not self.ttl:
            return False
        return now - self.created_at > self.ttl


@dataclass(frozen=True)
class ResponseCacheConfig:
    """Configuration for the response cache."""

    max_size: int = 1000
    default_ttl: Optional[float] = 24 * 60 * 60  # 24 hours
    enable_cleanup: bool = True
    cleanup_interval: float = 60 * 60  # 1 hour

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {self.max_size}")


class ResponseCache:
    """
    LRU + TTL cache of generation outputs.

    An expired entry is never returned: ``get`` deletes it and reports a
    miss. ``cleanup`` sweeps every expired entry at once; ``start_cleanup``
    runs that sweep periodically on the event loop until ``close``.
    """

    def __init__(
        self,
        config: Optional[ResponseCacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ResponseCacheConfig()
        self._clock = clock
        self._entries: Dict[str, ResponseCacheEntry] = {}
        self._seq = itertools.count()
        self._lock = threading.RLock()
        self._cleanup_task: Optional[asyncio.Task] = None
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._total_requests = 0

    def get(self, key: str) -> Optional[Any]:
        """Get a cached response if it exists and is not expired."""
        with self._lock:
            self._total_requests += 1
            entry = self._entries.get(key)

            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None

            entry.last_accessed = now
            entry.access_seq = next(self._seq)
            entry.hit_count += 1
            self._hits += 1
            return entry.data

    def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """Store a response, evicting the least recently used entry when full."""
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.config.max_size:
                self._evict_least_recently_used()

            self._entries[key] = ResponseCacheEntry(
                data=data,
                created_at=now,
                last_accessed=now,
                ttl=ttl if ttl is not None else self.config.default_ttl,
                metadata=dict(metadata or {}),
                access_seq=next(self._seq),
            )

    def has(self, key: str) -> bool:
        """Check if a live entry exists, without affecting statistics."""
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def remove(self, key: str) -> bool:
        """Remove a specific entry from cache."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def _evict_least_recently_used(self) -> None:
        if not self._entries:
            return
        lru_key = min(
            self._entries,
            key=lambda k: (self._entries[k].last_accessed, self._entries[k].access_seq),
        )
        del self._entries[lru_key]
        self._evictions += 1
        logger.debug("response_cache_evicted", key=lru_key)

    def cleanup(self) -> int:
        """Remove all expired entries, returning how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)

        if expired:
            logger.debug("response_cache_cleanup", removed=len(expired))
        return len(expired)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            self.cleanup()

    def start_cleanup(self) -> None:
        """Start the periodic cleanup task on the running event loop."""
        if not self.config.enable_cleanup or self._cleanup_task is not None:
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    def stop_cleanup(self) -> None:
        """Stop the periodic cleanup task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    def clear(self) -> None:
        """Clear all cached entries and statistics."""
        with self._lock:
            self._entries.clear()
            self._reset_counters()

    def reset_stats(self) -> None:
        """Reset statistics without clearing cache."""
        with self._lock:
            self._reset_counters()

    def update_config(self, **changes: Any) -> None:
        """Update configuration, restarting cleanup and shrinking as needed."""
        with self._lock:
            old = self.config
            self.config = replace(self.config, **changes)

            while len(self._entries) > self.config.max_size:
                self._evict_least_recently_used()

        cleanup_changed = (
            old.enable_cleanup != self.config.enable_cleanup
            or old.cleanup_interval != self.config.cleanup_interval
        )
        if cleanup_changed and self._cleanup_task is not None:
            self.stop_cleanup()
            self.start_cleanup()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.config.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "total_requests": self._total_requests,
                "hit_rate": self._hits / self._total_requests if self._total_requests else 0.0,
            }

    def get_most_used(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most frequently hit entries."""
        with self._lock:
            rows = [
                {
                    "key": key,
                    "hit_count": entry.hit_count,
                    "provider": entry.metadata.get("provider"),
                    "model": entry.metadata.get("model"),
                    "schema_hash": entry.metadata.get("schema_hash"),
                    "prompt_hash": entry.metadata.get("prompt_hash"),
                    "created_at": entry.created_at,
                }
                for key, entry in self._entries.items()
            ]
        rows.sort(key=lambda row: row["hit_count"], reverse=True)
        return rows[:limit]

    def get_debug_info(self) -> Dict[str, Any]:
        """Detailed cache contents for debugging."""
        with self._lock:
            now = self._clock()
            entries = [
                {
                    "key": key,
                    "hit_count": entry.hit_count,
                    "created_at": entry.created_at,
                    "last_accessed": entry.last_accessed,
                    "is_expired": entry.is_expired(now),
                    "provider": entry.metadata.get("provider"),
                    "model": entry.metadata.get("model"),
                    "schema_hash": entry.metadata.get("schema_hash"),
                    "prompt_hash": entry.metadata.get("prompt_hash"),
                    "data_size": len(json.dumps(entry.data, default=str)),
                }
                for key, entry in self._entries.items()
            ]
        entries.sort(key=lambda row: row["hit_count"], reverse=True)
        return {"entries": entries, "stats": self.get_stats()}

    def close(self) -> None:
        """Stop background cleanup and drop all entries."""
        self.stop_cleanup()
        self.clear()

    def __len__(self) -> int:
        return len(self._entries)
