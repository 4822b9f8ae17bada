"""
Time-bounded cache of pull request status, keyed by worktree path.

Each entry's lifetime is derived from the record itself (ttl_for_record), so
merged PRs are kept for a year while pending CI is rechecked every few
seconds. Only complete, successful results (exists, no_pr) are ever stored
or persisted.
"""

import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .logging_config import get_logger
from .models import (
    CacheEntry,
    CacheStats,
    PRExists,
    PRNoPR,
    StatusRecord,
    is_cacheable,
    record_from_dict,
    record_to_dict,
)
from .protocols import CacheStoreInterface
from .status_constants import (
    CHECKS_FAILING,
    CHECKS_PASSING,
    CHECKS_PENDING,
    PR_STATE_CLOSED,
    PR_STATE_MERGED,
    PR_STATE_OPEN,
    TTL_CHECKS_FAILING,
    TTL_CHECKS_PENDING,
    TTL_CLOSED,
    TTL_FALLBACK,
    TTL_MERGED,
    TTL_NO_PR,
    TTL_OPEN,
    TTL_OPEN_PASSING,
)

logger = get_logger("cache")

CACHE_FORMAT_VERSION = 1


def ttl_for_record(record: StatusRecord) -> float:
    """Lifetime in seconds of a cached record. First matching rule wins.

    Only exists and no_pr records are ever cached; every other record has a
    zero lifetime.
    """
    if isinstance(record, PRNoPR):
        return TTL_NO_PR
    if not isinstance(record, PRExists):
        return 0.0

    if record.state == PR_STATE_MERGED:
        return TTL_MERGED
    if record.checks == CHECKS_FAILING:
        return TTL_CHECKS_FAILING
    if record.checks == CHECKS_PENDING:
        return TTL_CHECKS_PENDING
    if record.state == PR_STATE_OPEN and record.checks == CHECKS_PASSING:
        return TTL_OPEN_PASSING
    if record.state == PR_STATE_OPEN:
        return TTL_OPEN
    if record.number is None:
        return TTL_NO_PR
    if record.state == PR_STATE_CLOSED:
        return TTL_CLOSED
    return TTL_FALLBACK


class JsonCacheStore:
    """CacheStoreInterface backed by a JSON file.

    Writes go through a temp file and rename so a crash never leaves a
    half-written cache behind.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Dict[str, Any]]:
        try:
            if not self.path.exists():
                return {}
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (ValueError, OSError) as e:
            # ValueError covers bad JSON and bytes that are not UTF-8
            logger.warning("Ignoring unreadable cache file %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict) or data.get("version") != CACHE_FORMAT_VERSION:
            logger.info("Ignoring cache file %s with unknown format", self.path)
            return {}
        entries = data.get("entries")
        return entries if isinstance(entries, dict) else {}

    def save(self, entries: Dict[str, Dict[str, Any]]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix('.tmp')
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump({"version": CACHE_FORMAT_VERSION, "entries": entries}, f, indent=2)
            temp_path.replace(self.path)
            return True
        except OSError as e:
            logger.warning("Failed to write cache file %s: %s", self.path, e)
            return False


class StatusCache:
    """PR status cache with record-derived TTLs and optional persistence.

    Args:
        store: Durable side-store; hydrated from on construction and rewritten
            after every mutation. None keeps the cache in memory only.
        clock: Returns current wall-clock seconds (time.time by default)
    """

    def __init__(
        self,
        store: Optional[CacheStoreInterface] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        if store is not None:
            self._hydrate(store.load())

    def _hydrate(self, stored: Dict[str, Any]) -> None:
        skipped = 0
        for key, raw in stored.items():
            if not isinstance(raw, dict):
                skipped += 1
                continue
            record = record_from_dict(raw.get("record"))
            timestamp = raw.get("timestamp")
            if (record is None or not is_cacheable(record)
                    or not isinstance(timestamp, (int, float))):
                skipped += 1
                continue
            self._entries[key] = CacheEntry(record=record, timestamp=float(timestamp))
        if skipped:
            logger.debug("Skipped %d stored cache entries", skipped)

    def _persist(self) -> None:
        if self._store is None:
            return
        self._store.save({
            key: {"record": record_to_dict(entry.record), "timestamp": entry.timestamp}
            for key, entry in self._entries.items()
        })

    def ttl_for(self, key: str) -> Optional[float]:
        """TTL of the entry stored under key, or None if there is none."""
        entry = self._entries.get(key)
        return ttl_for_record(entry.record) if entry else None

    def _entry_valid(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp < ttl_for_record(entry.record)

    def is_valid(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._entry_valid(entry)

    def get(self, key: str) -> Optional[StatusRecord]:
        """The cached record, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None or not self._entry_valid(entry):
            return None
        return entry.record

    def set(self, key: str, record: StatusRecord) -> None:
        """Store a record stamped with the current time.

        Records that are not cacheable (error, loading, not_checked) are
        refused and the cache is left untouched.
        """
        self.set_many({key: record})

    def set_many(self, records: Mapping[str, StatusRecord]) -> List[str]:
        """Store several records with one write to the store.

        Non-cacheable records are refused as in set().

        Returns:
            The keys that were stored
        """
        now = self._clock()
        stored = []
        for key, record in records.items():
            if not is_cacheable(record):
                logger.warning("Refusing to cache %s record for %s", record.loading_status, key)
                continue
            self._entries[key] = CacheEntry(record=record, timestamp=now)
            stored.append(key)
        if stored:
            self._persist()
        return stored

    def invalidate(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._persist()

    def invalidate_multiple(self, keys: Iterable[str]) -> None:
        removed = [key for key in keys if self._entries.pop(key, None) is not None]
        if removed:
            self._persist()

    def invalidate_by_pr_number(self, number: int,
                                keys: Optional[Iterable[str]] = None) -> List[str]:
        """Drop every entry whose record carries the given PR number.

        PR numbers are only unique within a repository, so callers that know
        the repository pass its keys to restrict the sweep.

        Returns:
            The invalidated keys
        """
        scope = set(keys) if keys is not None else None
        matched = [
            key for key, entry in self._entries.items()
            if isinstance(entry.record, PRExists)
            and entry.record.number == number
            and (scope is None or key in scope)
        ]
        self.invalidate_multiple(matched)
        return matched

    def clear(self) -> None:
        self._entries.clear()
        self._persist()

    def cleanup(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        expired = [key for key, entry in self._entries.items() if not self._entry_valid(entry)]
        self.invalidate_multiple(expired)
        return len(expired)

    def get_stats(self) -> CacheStats:
        valid = sum(1 for entry in self._entries.values() if self._entry_valid(entry))
        total = len(self._entries)
        return CacheStats(total=total, valid=valid, expired=total - valid)

    def cached_keys(self) -> List[str]:
        """Keys with a valid entry."""
        return [key for key, entry in self._entries.items() if self._entry_valid(entry)]
