"""Process-lifetime record of feed items that have already been announced."""

from __future__ import annotations

from collections.abc import Iterable
import threading


class SeenSet:
    """Set of item ids that were handed to the notifier.

    Membership only ever grows. The supervisor creates one instance and
    passes it to every session, so reconnects never forget what was sent.
    """

    def __init__(self, initial: Iterable[str] = ()) -> None:
        """Initialize with optional pre-seen ids."""
        self._items: set[str] = set(initial)
        self._lock = threading.Lock()

    def contains(self, item_id: str) -> bool:
        """Return True when ``item_id`` has been recorded."""
        with self._lock:
            return item_id in self._items

    def record(self, item_id: str) -> None:
        """Record ``item_id``; recording an existing id is a no-op."""
        with self._lock:
            self._items.add(item_id)

    def claim(self, item_id: str) -> bool:
        """Atomically record ``item_id`` and report whether it was new.

        Only the first caller for a given id gets True, which makes the
        decision to notify and the insertion a single step.
        """
        with self._lock:
            if item_id in self._items:
                return False
            self._items.add(item_id)
            return True

    def snapshot(self) -> frozenset[str]:
        """Return an immutable copy of the recorded ids."""
        with self._lock:
            return frozenset(self._items)

    def __contains__(self, item_id: object) -> bool:
        """Support ``id in seen``."""
        return isinstance(item_id, str) and self.contains(item_id)

    def __len__(self) -> int:
        """Return number of recorded ids."""
        with self._lock:
            return len(self._items)
