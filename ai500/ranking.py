"""Tick normalization and volume ranking.

Turns raw provider ticks into typed asset records, keeps only perpetual
contracts whose estimated notional volume clears the inclusion threshold, and
orders them by that volume.
"""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from .models import Tick

logger = logging.getLogger(__name__)

MIN_NOTIONAL_VOLUME = 10_000_000.0
PERPETUAL_CONTRACT_TYPES = {'swap', 'perpetual'}


@dataclass
class AssetRecord:
    symbol: str
    price: float
    volume: float  # estimated notional: amount (base units) * price
    rank: int = 0


@dataclass
class RankedBatch:
    records: List[AssetRecord] = field(default_factory=list)
    index_value: float = 0.0

    @property
    def top_volume(self) -> float:
        return self.records[0].volume if self.records else 0.0


def is_perpetual(contract_type: Optional[str]) -> bool:
    """Linear swap feeds are perpetual already; an empty label is taken as perpetual."""
    if not contract_type:
        return True
    return contract_type.strip().lower() in PERPETUAL_CONTRACT_TYPES


def parse_number(raw) -> float:
    """Parse a decimal-as-text provider field. Raises ValueError on anything unusable."""
    if raw is None:
        raise ValueError('missing value')
    text = str(raw).strip()
    if not text or '_' in text:
        raise ValueError(f'not a decimal number: {raw!r}')
    val = float(text)
    if not math.isfinite(val):
        raise ValueError(f'non-finite value: {raw!r}')
    return val


def round_half_away(value: float, places: int) -> float:
    """Round half away from zero at `places` decimals.

    Scales first and rounds the exact binary value of the scaled float, so
    results match `math.Round(v*10^p)/10^p` in other runtimes bit for bit.
    """
    if places <= 0:
        return float(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    factor = 10.0 ** places
    scaled = Decimal(value * factor).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(scaled) / factor


def normalize_ticks(ticks: Iterable[Tick], min_volume: float = MIN_NOTIONAL_VOLUME) -> List[AssetRecord]:
    """Filter and type raw ticks. Bad entries are skipped and logged, never fatal."""
    records: List[AssetRecord] = []
    skipped_type = 0
    for t in ticks:
        if not is_perpetual(t.contract_type):
            skipped_type += 1
            logger.debug(f"skip {t.contract_code}: contract type {t.contract_type!r} is not perpetual")
            continue
        try:
            price = parse_number(t.close)
        except ValueError as e:
            logger.warning(f"skip {t.contract_code}: invalid close {t.close!r}: {e}",
                           extra={'event': 'tick_invalid_field'})
            continue
        try:
            amount = parse_number(t.amount)
        except ValueError as e:
            logger.warning(f"skip {t.contract_code}: invalid amount {t.amount!r}: {e}",
                           extra={'event': 'tick_invalid_field'})
            continue
        if price < 0:
            logger.warning(f"skip {t.contract_code}: negative close {t.close!r}",
                           extra={'event': 'tick_invalid_field'})
            continue

        volume = amount * price
        if volume <= min_volume:
            continue
        records.append(AssetRecord(symbol=t.contract_code, price=price, volume=volume))
    if skipped_type:
        logger.info(f"normalize: skipped {skipped_type} non-perpetual contracts")
    return records


def rank_assets(records: Iterable[AssetRecord]) -> RankedBatch:
    """Stable sort by volume (desc) and assign dense 1-based ranks."""
    records = list(records)
    # Plain price sum across assets in arrival order, not volume-weighted
    index_value = 0.0
    for rec in records:
        index_value += rec.price
    ordered = sorted(records, key=lambda r: r.volume, reverse=True)
    for i, rec in enumerate(ordered):
        rec.rank = i + 1
    return RankedBatch(records=ordered, index_value=index_value)
