"""
Snapshot cache: the single published read view of the latest refresh cycle.
"""
import threading
from typing import Optional, Tuple

from .models import Snapshot


class SnapshotCache:
    """
    One slot, swapped whole by the refresh scheduler and read by any number
    of request threads. Snapshots are frozen, so readers can hold the
    reference they got without copying; the lock only covers the swap.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None

    def publish(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    def read_current(self) -> Tuple[bool, Optional[Snapshot]]:
        """Returns (ready, snapshot). (False, None) until the first cycle completes."""
        with self._lock:
            snap = self._snapshot
        if snap is None or not snap.success:
            return False, None
        return True, snap

    def is_ready(self) -> bool:
        return self.read_current()[0]


__all__ = ['SnapshotCache']
