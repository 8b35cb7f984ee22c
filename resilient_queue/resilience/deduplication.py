"""
Local deduplication cache for published messages.

Keys younger than ``cache_expiry_ms`` mark a message as a duplicate.
Entries are stored in insertion order, which is also time order, so expired
entries are always at the front and eviction stops at the first live one.

The cache is per process and is not shared between consumers or publishers.
"""

import hashlib
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from resilient_queue.config import Settings
from resilient_queue.constants import DedupStrategy
from resilient_queue.types.resilience import DedupCacheStats

logger = logging.getLogger(__name__)


class DeduplicationConfig(BaseModel):
    """Deduplication key and cache settings."""

    model_config = ConfigDict(frozen=True)

    strategy: DedupStrategy = DedupStrategy.CONTENT
    hash_algorithm: str = "sha256"
    hash_length: int = Field(default=32, ge=8)
    cache_expiry_ms: int = Field(default=300_000, gt=0)

    @field_validator("hash_algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        if value not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {value}")
        if hashlib.new(value).digest_size == 0:
            raise ValueError(f"Variable-length hash algorithm not supported: {value}")
        return value

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeduplicationConfig":
        return cls(
            strategy=DedupStrategy(settings.dedup_strategy),
            hash_algorithm=settings.dedup_hash_algorithm,
            hash_length=settings.dedup_hash_length,
            cache_expiry_ms=settings.dedup_cache_expiry_ms,
        )


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


class DeduplicationCache:
    """
    Generates deduplication keys and remembers them for a bounded window.

    Key strategies:
    - content: hash of the body and group id. Identical content published
      again inside the window is a duplicate.
    - timestamp: hash of the current millisecond timestamp.
    - hybrid: hash of content hash, current timestamp and group id. Unique
      per millisecond, so only exact key repeats are caught.
    """

    def __init__(
        self,
        config: DeduplicationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            config: Key and expiry settings. Defaults to DeduplicationConfig().
            clock: Returns the current time in seconds.
        """
        self._config = config or DeduplicationConfig()
        self._clock = clock
        self._entries: OrderedDict[str, float] = OrderedDict()

    @property
    def config(self) -> DeduplicationConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _hash(self, value: str) -> str:
        digest = hashlib.new(self._config.hash_algorithm, value.encode("utf-8"))
        return digest.hexdigest()[: self._config.hash_length]

    def generate_key(
        self,
        body: Any,
        *,
        group_id: str | None = None,
        custom_id: str | None = None,
    ) -> str:
        """
        Compute a deduplication key for a message.

        Args:
            body: Message body (JSON-serializable).
            group_id: Message group id, if any.
            custom_id: Caller-supplied identity; overrides the strategy.

        Returns:
            Hex digest truncated to ``hash_length``.
        """
        if custom_id:
            return self._hash(custom_id)

        strategy = self._config.strategy

        if strategy == DedupStrategy.TIMESTAMP:
            return self._hash(str(int(self._now_ms())))

        if strategy == DedupStrategy.HYBRID:
            content_hash = self._hash(_canonical_json(body))
            timestamp = int(self._now_ms())
            return self._hash(f"{content_hash}-{timestamp}-{group_id or 'default'}")

        return self._hash(_canonical_json({"body": body, "group_id": group_id}))

    def is_duplicate(self, key: str) -> bool:
        """
        Check a key, remembering it if it is new.

        Returns:
            True if the key was seen within the expiry window.
        """
        now = self._now_ms()
        self._evict_expired(now)

        if key in self._entries:
            logger.debug("Duplicate key detected", extra={"dedup_key": key})
            return True

        self._entries[key] = now
        return False

    def _evict_expired(self, now: float) -> int:
        expiry = self._config.cache_expiry_ms
        evicted = 0
        while self._entries:
            key, inserted_at = next(iter(self._entries.items()))
            if now - inserted_at <= expiry:
                break
            del self._entries[key]
            evicted += 1
        return evicted

    def discard(self, key: str) -> None:
        """Forget a key, e.g. after the message it guarded failed to send."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Forget every key."""
        self._entries.clear()

    def get_stats(self) -> DedupCacheStats:
        """Count live and expired (not yet evicted) entries."""
        now = self._now_ms()
        expiry = self._config.cache_expiry_ms
        expired = sum(1 for inserted_at in self._entries.values() if now - inserted_at > expiry)
        return DedupCacheStats(
            total_entries=len(self._entries),
            valid_entries=len(self._entries) - expired,
            expired_entries=expired,
            cache_expiry_ms=expiry,
        )
