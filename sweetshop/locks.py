"""
Per-item exclusive locks.

`ItemLocks` maps an item id to a lock. Holders of the same id are strictly
serialized; holders of different ids never block each other. Entries are
created on first use and dropped once nobody holds or waits on them, so the
map only ever contains ids with in-flight work.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from .errors import LockTimeout

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class LockHandle:
    """A held lock. Release it exactly once."""

    def __init__(self, owner: "ItemLocks", key: Hashable, entry: _Entry) -> None:
        self._owner = owner
        self._entry = entry
        self.key = key
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self._entry.lock.release()
        self._owner._forget(self.key, self._entry)


class ItemLocks:
    """
    Registry of exclusive locks keyed by item id.

    Example
    -------
    >>> locks = ItemLocks()
    >>> with locks.hold(42, timeout=1.0):
    ...     change_item_42()
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def acquire(self, key: Hashable, timeout: Optional[float] = None) -> LockHandle:
        """
        Block until the lock for `key` is free and take it.

        Parameters
        ----------
        key : Hashable
            Item id.
        timeout : float | None
            Seconds to wait. None waits indefinitely.

        Raises
        ------
        LockTimeout
            If the lock is still held by someone else after `timeout` seconds.
        """
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1

        acquired = entry.lock.acquire(timeout=-1 if timeout is None else max(timeout, 0))
        if not acquired:
            self._forget(key, entry)
            logger.warning(f"Timed out after {timeout}s waiting for lock on item {key}")
            raise LockTimeout(f"Failed to acquire lock for item {key} within timeout={timeout}s")
        return LockHandle(self, key, entry)

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[LockHandle]:
        handle = self.acquire(key, timeout)
        try:
            yield handle
        finally:
            handle.release()

    def is_locked(self, key: Hashable) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _forget(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]
