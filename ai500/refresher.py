"""
Refresh scheduler for the AI500 snapshot.

One background thread runs the pipeline on a fixed interval:
fetch -> normalize -> rank -> history update -> publish -> persist.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from .errors import HistoryPersistError, MarketFetchError
from .history import HistoryLedger
from .history_store import HistoryStore
from .logging_config import CYCLE_ID_CTX
from .models import Snapshot, Tick
from .ranking import MIN_NOTIONAL_VOLUME, normalize_ticks, rank_assets
from .snapshot_cache import SnapshotCache

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """
    Drives refresh cycles. Cycles never overlap: `run_cycle` takes a
    non-blocking single-flight lock and returns False if one is in flight.

    A fetch failure aborts the cycle before anything is mutated, so the
    previous snapshot and history stay in place until the next tick.
    """

    def __init__(
        self,
        fetch_fn: Callable[[], Iterable[Tick]],
        ledger: HistoryLedger,
        cache: SnapshotCache,
        store: Optional[HistoryStore] = None,
        interval: float = 10.0,
        min_volume: float = MIN_NOTIONAL_VOLUME,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.fetch_fn = fetch_fn
        self.ledger = ledger
        self.cache = cache
        self.store = store
        self.interval = interval
        self.min_volume = min_volume
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self._inflight = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stats_lock = threading.Lock()
        self._cycle_seq = 0
        self._stats: Dict[str, Any] = {
            'cycles_ok': 0,
            'cycles_failed': 0,
            'cycles_skipped': 0,
            'persist_failures': 0,
            'last_cycle_duration_ms': None,
            'last_success_time': None,
            'last_index_value': None,
            'last_count': None,
            'last_error': None,
        }

    # -------------------------
    # One cycle
    # -------------------------
    def run_cycle(self) -> bool:
        """Run one full cycle synchronously. Returns True if a snapshot was published."""
        if not self._inflight.acquire(blocking=False):
            logger.warning("refresh cycle already in flight; skipping", extra={'event': 'cycle_skipped'})
            with self._stats_lock:
                self._stats['cycles_skipped'] += 1
            return False
        with self._stats_lock:
            self._cycle_seq += 1
            token = CYCLE_ID_CTX.set(self._cycle_seq)
        try:
            return self._run_cycle_locked()
        finally:
            CYCLE_ID_CTX.reset(token)
            self._inflight.release()

    def _run_cycle_locked(self) -> bool:
        t0 = time.monotonic()
        try:
            ticks = list(self.fetch_fn())
        except MarketFetchError as e:
            logger.error(f"Error fetching market data: {e}", extra={'event': 'fetch_failed'})
            with self._stats_lock:
                self._stats['cycles_failed'] += 1
                self._stats['last_error'] = str(e)
            return False

        # Normalize and rank before touching shared state
        batch = rank_assets(normalize_ticks(ticks, self.min_volume))
        now = self.clock()
        coins = self.ledger.apply(batch, now=now)
        snapshot = Snapshot.build(coins, index_value=batch.index_value, generated_at=now)
        self.cache.publish(snapshot)

        if self.store is not None:
            try:
                saved = self.store.save(self.ledger)
                logger.debug(f"✓ history saved ({saved} symbols)")
            except HistoryPersistError as e:
                logger.warning(f"⚠️  failed to save history: {e}", extra={'event': 'persist_failed'})
                with self._stats_lock:
                    self._stats['persist_failures'] += 1

        dur_ms = (time.monotonic() - t0) * 1000.0
        with self._stats_lock:
            self._stats['cycles_ok'] += 1
            self._stats['last_cycle_duration_ms'] = round(dur_ms, 3)
            self._stats['last_success_time'] = time.time()
            self._stats['last_index_value'] = batch.index_value
            self._stats['last_count'] = snapshot.count
            self._stats['last_error'] = None
        logger.info(f"Updated AI500 data. Index: {batch.index_value:.2f}, Count: {snapshot.count}",
                    extra={'event': 'cycle_ok'})
        return True

    # -------------------------
    # Background loop
    # -------------------------
    def _loop(self) -> None:
        next_at = time.monotonic()
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                # never let one bad cycle kill the refresher
                logger.exception(f"Unexpected error in refresh cycle: {e}")
                with self._stats_lock:
                    self._stats['cycles_failed'] += 1
                    self._stats['last_error'] = f"{type(e).__name__}: {e}"
            # Fixed-rate ticks; ticks missed while a cycle overran are dropped
            next_at += self.interval
            now = time.monotonic()
            while next_at <= now:
                next_at += self.interval
            self._stop.wait(next_at - now)

    def start(self) -> None:
        """Start the background thread; the first cycle runs immediately."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='ai500-refresher', daemon=True)
        self._thread.start()
        logger.info(f"🔄 Refresher started (interval={self.interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        t = self._thread
        if t is not None:
            t.join(timeout)
            logger.info("🛑 Refresher stopped")
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            data = dict(self._stats)
        data['interval_seconds'] = self.interval
        data['running'] = self.running
        return data


__all__ = ['RefreshScheduler']
