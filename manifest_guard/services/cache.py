"""
In-process cache of validation outcomes keyed by content hash.

Identical manifests are common when a generator retries or when the same
course is re-published. Results are kept in an ``OrderedDict`` in least
recently used order and expire after a fixed time-to-live. Stored results
and the results handed back are deep copies, so callers may mutate what
they receive.
"""

import copy
import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from manifest_guard.models.result import ValidationResult
from manifest_guard.utils.logging import get_logger


logger = get_logger("manifest_guard.cache")


@dataclass
class CacheEntry:
    result: ValidationResult
    expires_at: float


class ResultCache:
    """
    Bounded LRU cache of ValidationResult objects with a time-to-live.

    Example:
        cache = ResultCache(max_entries=128, ttl_seconds=600)
        key = ResultCache.document_key(document)
        if key is not None:
            cache.put(key, result)
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ValidationResult]:
        """Return a copy of the cached result, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            result = entry.result
        return copy.deepcopy(result)

    def put(self, key: str, result: ValidationResult) -> None:
        stored = copy.deepcopy(result)
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cached result", key=evicted)
            self._entries[key] = CacheEntry(stored, self._clock() + self.ttl_seconds)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def document_key(document: Any) -> Optional[str]:
        """
        Hash of the canonical JSON form of a document.

        Returns None for documents that have no JSON form (non-string keys of
        mixed types, cycles, foreign objects, excessive nesting); such
        documents are validated without caching.
        """
        try:
            canonical = json.dumps(document, sort_keys=True, ensure_ascii=False)
        except (TypeError, ValueError, RecursionError):
            return None
        digest = hashlib.sha256(canonical.encode('utf-8', 'surrogatepass'))
        return 'document:' + digest.hexdigest()

    @staticmethod
    def payload_key(payload: Union[str, bytes, bytearray, memoryview]) -> Optional[str]:
        """Hash of a raw payload; text is hashed as UTF-8."""
        if isinstance(payload, str):
            raw = payload.encode('utf-8', 'surrogatepass')
        elif isinstance(payload, (bytes, bytearray, memoryview)):
            raw = bytes(payload)
        else:
            return None
        return 'payload:' + hashlib.sha256(raw).hexdigest()


__all__ = ['CacheEntry', 'ResultCache']
