import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TrackCache:
    """In-memory map from a local persistent id to its resolved remote id.

    Lives for one migration run. The first remote id stored for a key wins.
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self.hits = 0
        self.misses = 0

    def __contains__(self, persistent_id: str) -> bool:
        return persistent_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, persistent_id: str) -> Optional[str]:
        """Return the cached remote id, or None when the track was never resolved."""
        remote_id = self._entries.get(persistent_id)
        if remote_id is None:
            self.misses += 1
        else:
            self.hits += 1
        return remote_id

    def store(self, persistent_id: str, remote_id: str) -> None:
        """Record a successful resolution."""
        with self._lock:
            existing = self._entries.get(persistent_id)
            if existing is None:
                self._entries[persistent_id] = remote_id
            elif existing != remote_id:
                logger.warning(
                    f"Ignoring remote id {remote_id} for {persistent_id}: already cached as {existing}"
                )

    def get_or_resolve(self, persistent_id: str,
                       resolve: Callable[[], Optional[str]]) -> Optional[str]:
        """Return the cached id or call ``resolve`` and cache a non-empty result.

        Concurrent callers for the same key are serialized, so ``resolve``
        runs at most once per key while it keeps succeeding.
        """
        with self._lock:
            key_lock = self._key_locks.setdefault(persistent_id, threading.Lock())

        with key_lock:
            cached = self.lookup(persistent_id)
            if cached is not None:
                return cached
            remote_id = resolve()
            if remote_id:
                self.store(persistent_id, remote_id)
            return remote_id

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}
