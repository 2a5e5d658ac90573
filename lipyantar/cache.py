"""Persistent, size-bounded transliteration cache."""

from __future__ import annotations

import json
import random
import time
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from .errors import (
    ErrorCategory,
    StorageError,
    StorageQuotaExceededError,
    StorageReadError,
)
from .policy import ErrorPolicy
from .storage import KeyValueStorage
from .structures import CacheEntry, CacheStats, TransliterationMode

logger = structlog.get_logger(__name__)

DEFAULT_CACHE_KEY = "lipyantar_transliteration_cache"
KEY_SEPARATOR = "_"
INTERMEDIATE_MARKER = "iast_raw"


class CacheWritePolicy(str, Enum):
    """When ``set`` persists the cache to durable storage."""

    EVERY_WRITE = "every-write"
    SAMPLED = "sampled"
    FLUSH_ONLY = "explicit-flush-only"


def make_cache_key(text: str, mode: TransliterationMode | str) -> str:
    """Fingerprint for a final result: source text plus target mode."""

    value = mode.value if isinstance(mode, TransliterationMode) else str(mode)
    return f"{text}{KEY_SEPARATOR}{value}"


def make_intermediate_key(text: str) -> str:
    """Fingerprint for the raw remote result, shared by every final mode."""

    return f"{text}{KEY_SEPARATOR}{INTERMEDIATE_MARKER}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class TransliterationCache:
    """Key/value cache persisted opportunistically to a storage namespace.

    Writes never block on durable storage unless the write policy asks for
    it. When storage reports quota exhaustion the cache keeps only its newest
    ``max_entries`` entries (by creation time) and retries once; a second
    failure is logged and dropped so the cache degrades to best effort.
    """

    MAX_ENTRIES = 1000
    SAMPLE_RATE = 0.1

    def __init__(
        self,
        storage: KeyValueStorage,
        cache_key: str = DEFAULT_CACHE_KEY,
        *,
        write_policy: CacheWritePolicy = CacheWritePolicy.SAMPLED,
        sample_rate: float = SAMPLE_RATE,
        max_entries: int = MAX_ENTRIES,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = _now_ms,
        error_policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.storage = storage
        self.cache_key = cache_key
        self.write_policy = CacheWritePolicy(write_policy)
        self.sample_rate = sample_rate
        self.max_entries = max_entries
        self._rng = rng or random.Random()
        self._clock = clock
        self.error_policy = error_policy or ErrorPolicy()
        self._entries: Dict[str, CacheEntry] = self._load()

    def _load(self) -> Dict[str, CacheEntry]:
        try:
            raw = self.storage.get_item(self.cache_key)
        except StorageReadError as exc:
            self.error_policy.handle_error(
                ErrorCategory.STORAGE_READ,
                "cache_load_failed",
                details=str(exc),
                cache_key=self.cache_key,
            )
            return {}
        if not raw:
            return {}

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            self.error_policy.handle_error(
                ErrorCategory.STORAGE_READ,
                "cache_corrupt",
                details=str(exc),
                cache_key=self.cache_key,
            )
            return {}
        if not isinstance(payload, dict):
            self.error_policy.handle_error(
                ErrorCategory.STORAGE_READ,
                "cache_corrupt",
                details="expected a mapping at the root",
                cache_key=self.cache_key,
            )
            return {}

        entries: Dict[str, CacheEntry] = {}
        for key, value in payload.items():
            if not isinstance(value, dict) or not isinstance(value.get("result"), str):
                continue
            timestamp = value.get("timestamp")
            if not isinstance(timestamp, int):
                timestamp = 0
            entries[key] = CacheEntry(result=value["result"], timestamp=timestamp)
        logger.debug("cache_loaded", cache_key=self.cache_key, entries=len(entries))
        return entries

    def _serialise(self) -> str:
        payload = {
            key: {"result": entry.result, "timestamp": entry.timestamp}
            for key, entry in self._entries.items()
        }
        return json.dumps(payload, ensure_ascii=False)

    def _save(self) -> None:
        try:
            self.storage.set_item(self.cache_key, self._serialise())
            return
        except StorageQuotaExceededError as exc:
            logger.info(
                "cache_quota_exceeded",
                cache_key=self.cache_key,
                entries=len(self._entries),
                details=str(exc),
            )
        except StorageError as exc:
            self.error_policy.handle_error(
                ErrorCategory.STORAGE,
                "cache_save_failed",
                details=str(exc),
                cache_key=self.cache_key,
            )
            return

        self._evict_oldest()
        try:
            self.storage.set_item(self.cache_key, self._serialise())
        except StorageError as exc:
            self.error_policy.handle_error(
                ErrorCategory.STORAGE,
                "cache_save_failed_after_eviction",
                details=str(exc),
                cache_key=self.cache_key,
                entries=len(self._entries),
            )

    def _evict_oldest(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        # Stable sort keeps insertion order for equal timestamps.
        ordered = sorted(self._entries.items(), key=lambda item: item[1].timestamp)
        kept = ordered[-self.max_entries:] if self.max_entries > 0 else []
        evicted = len(self._entries) - len(kept)
        self._entries = dict(kept)
        logger.info("cache_evicted", evicted=evicted, kept=len(self._entries))

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        return entry.result if entry is not None else None

    def has(self, key: str) -> bool:
        return key in self._entries

    def set(self, key: str, value: str) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(result=value, timestamp=self._clock())

        if self.write_policy is CacheWritePolicy.EVERY_WRITE:
            self._save()
        elif self.write_policy is CacheWritePolicy.SAMPLED:
            if self._rng.random() < self.sample_rate:
                self._save()

    def flush(self) -> None:
        """Force a synchronous durable write."""

        self._save()

    def clear(self) -> None:
        self._entries = {}
        try:
            self.storage.remove_item(self.cache_key)
        except StorageError as exc:
            self.error_policy.handle_error(
                ErrorCategory.STORAGE,
                "cache_clear_failed",
                details=str(exc),
                cache_key=self.cache_key,
            )

    def stats(self) -> CacheStats:
        timestamps = [entry.timestamp for entry in self._entries.values()]
        return CacheStats(
            entry_count=len(timestamps),
            oldest_entry=min(timestamps) if timestamps else None,
            newest_entry=max(timestamps) if timestamps else None,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
