"""
Named mutual-exclusion locks keyed by a stable hash.

Keys are signed 64-bit integers (the same space as Postgres advisory
locks), derived from a namespace and a value with stable_lock_key, so
"media:SKU1" always maps to the same key in every process.

LockRegistry is process-local: it serializes work within one worker
process. Deployments with several worker processes need a shared lock
service behind the same hold() contract.
"""

from contextlib import contextmanager
import hashlib
import threading
import time
from typing import Iterator
import structlog

logger = structlog.get_logger(__name__)


def stable_lock_key(namespace: str, value: str) -> int:
    """
    Derive a signed 64-bit lock key.

    Args:
        namespace: Lock family, e.g. "media"
        value: Value within the family, e.g. a SKU

    Returns:
        int in [-2**63, 2**63)
    """
    digest = hashlib.sha1(f"{namespace}:{value}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


# Global key guarding schema bootstrap; never collides with per-SKU keys
# because the namespace differs.
SCHEMA_BOOTSTRAP_LOCK = stable_lock_key("schema", "bootstrap")


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


class LockRegistry:
    """
    Map of reentrant locks created on demand.

    Entries are dropped once nobody holds or waits on them, so the map
    does not grow with the number of SKUs ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[int, _LockEntry] = {}

    @contextmanager
    def hold(self, key: int) -> Iterator[None]:
        """
        Hold the lock for `key` for the duration of the block.

        Blocks while another thread holds the same key. Reentrant for the
        owning thread. Always released, including on error.
        """
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _LockEntry()
                self._entries[key] = entry
            entry.holders += 1

        started = time.monotonic()
        entry.lock.acquire()
        waited = time.monotonic() - started
        if waited > 0.5:
            logger.debug("lock_wait", key=key, waited_seconds=round(waited, 3))

        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)

    def is_held(self, key: int) -> bool:
        """True while any thread holds or waits on `key`."""
        with self._guard:
            return key in self._entries


# Created eagerly: worker threads call the getter concurrently
_lock_registry = LockRegistry()

def get_lock_registry() -> LockRegistry:
    """Get the process-wide LockRegistry."""
    return _lock_registry
