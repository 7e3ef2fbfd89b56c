"""
In-memory bridge between the preview and sign steps of the NDA wizard.

Entries are keyed by reader pin and expire after a fixed TTL. Expired entries
are never returned; they are evicted on access and by a periodic sweep that
runs on a scheduler thread, hence the lock.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class PreviewCacheEntry:
    pdf_path: str
    signature_data: str
    created_at: float
    reader: Dict[str, Any] = field(default_factory=dict)
    version_id: Optional[int] = None


class PreviewCache:

    def __init__(self, ttl_seconds: float = 600, clock: Clock = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, PreviewCacheEntry] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: PreviewCacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    def put(self, reader_pin: str, pdf_path: str, signature_data: str,
            reader: Optional[Dict[str, Any]] = None, version_id: Optional[int] = None) -> PreviewCacheEntry:
        entry = PreviewCacheEntry(
            pdf_path=pdf_path,
            signature_data=signature_data,
            created_at=self._clock(),
            reader=dict(reader or {}),
            version_id=version_id,
        )
        with self._lock:
            self._entries[reader_pin] = entry
        return entry

    def get(self, reader_pin: str) -> Optional[PreviewCacheEntry]:
        """Live entry for the pin, or None if absent or expired"""
        with self._lock:
            entry = self._entries.get(reader_pin)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[reader_pin]
                logger.info("[NDA] Preview for %s expired", reader_pin)
                return None
            return entry

    def pop(self, reader_pin: str) -> Optional[PreviewCacheEntry]:
        with self._lock:
            return self._entries.pop(reader_pin, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [pin for pin, entry in self._entries.items() if self._expired(entry, now)]
            for pin in stale:
                del self._entries[pin]
        if stale:
            logger.info("[NDA] Swept %d expired previews", len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, reader_pin: str) -> bool:
        return self.get(reader_pin) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
