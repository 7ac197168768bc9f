"""
Per-symbol history ledger.

Tracks, for every symbol ever ranked, when it was first seen and at what
price, its running maximum price and score, and the score from the previous
refresh cycle. Entries are created lazily and never removed.
"""
import logging
import re
import threading
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

from .models import CoinItem, HistoryEntry
from .ranking import RankedBatch, round_half_away

logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r'[-/_]')


def normalize_symbol(contract_code: str) -> str:
    """BTC-USDT -> BTCUSDT"""
    return _SEPARATORS_RE.sub('', contract_code)


def compute_score(volume: float, top_volume: float) -> float:
    if top_volume <= 0:
        return 0.0
    return round_half_away(volume / top_volume * 100, 1)


def percent_change(price: float, start_price: float) -> float:
    if not start_price:
        return 0.0
    return round_half_away((price - start_price) / start_price * 100, 2)


class HistoryLedger:
    """
    Owns the symbol -> HistoryEntry map.

    Written once per cycle by the refresh scheduler (`apply`) and read by the
    history store (`entries` / `replace`). Every operation holds the lock for
    its whole duration, so a save never sees a half-applied batch.
    """

    def __init__(self, entries: Optional[Mapping[str, HistoryEntry]] = None):
        self._lock = threading.Lock()
        self._entries: Dict[str, HistoryEntry] = dict(entries or {})

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._entries

    def get(self, symbol: str) -> Optional[HistoryEntry]:
        with self._lock:
            entry = self._entries.get(symbol)
            return entry.model_copy() if entry is not None else None

    def entries(self) -> Dict[str, HistoryEntry]:
        """Consistent copy of all entries."""
        with self._lock:
            return {k: v.model_copy() for k, v in self._entries.items()}

    def replace(self, entries: Mapping[str, HistoryEntry]) -> None:
        with self._lock:
            self._entries = dict(entries)

    def apply(self, batch: RankedBatch, now: Optional[datetime] = None) -> List[CoinItem]:
        """
        Fold one ranked batch into the ledger and build the response records.

        `last_score` on each emitted record is the value stored by the
        previous cycle (or this cycle's score on first sighting); it is
        overwritten with the current score only after being read.
        """
        if not batch.records:
            return []
        now = now or datetime.now(timezone.utc)
        top_volume = batch.top_volume
        coins: List[CoinItem] = []
        created = 0

        with self._lock:
            for rec in batch.records:
                score = compute_score(rec.volume, top_volume)
                pair = normalize_symbol(rec.symbol)

                entry = self._entries.get(pair)
                if entry is None:
                    entry = HistoryEntry(
                        first_seen=now,
                        start_price=rec.price,
                        max_price=rec.price,
                        last_score=score,
                        max_score=score,
                    )
                    self._entries[pair] = entry
                    created += 1
                else:
                    if rec.price > entry.max_price:
                        entry.max_price = rec.price
                    if score > entry.max_score:
                        entry.max_score = score

                previous_score = entry.last_score
                entry.last_score = score

                coins.append(CoinItem(
                    symbol=pair,
                    score=score,
                    first_seen=int(entry.first_seen.timestamp()),
                    start_price=entry.start_price,
                    last_score=previous_score,
                    max_score=entry.max_score,
                    max_price=entry.max_price,
                    percent_change=percent_change(rec.price, entry.start_price),
                ))

        if created:
            logger.info(f"history: {created} new symbols tracked")
        return coins


__all__ = ['HistoryLedger', 'normalize_symbol', 'compute_score', 'percent_change']
