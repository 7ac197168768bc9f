"""Pydantic models for provider ticks, persisted history and API responses.

Wire names of the response records are kept stable for dashboard clients
(`pair`, `start_time`, `increase_percent`), while attribute names describe the
values. History entries also accept the PascalCase keys written by the earlier
Go build of this service so old history files keep loading.
"""
from __future__ import annotations
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# RFC 3339 timestamps from Go carry nanoseconds; Python keeps microseconds.
_FRACTION_RE = re.compile(r'(\.\d{6})\d+')


class Tick(BaseModel):
    """One market ticker entry from the provider's batch endpoint."""
    model_config = ConfigDict(extra='ignore', coerce_numbers_to_str=True)

    contract_code: str
    contract_type: str = ''
    close: Optional[str] = None
    amount: Optional[str] = None

    @field_validator('contract_type', mode='before')
    @classmethod
    def _empty_contract_type(cls, v: Any) -> Any:
        return '' if v is None else v


class HistoryEntry(BaseModel):
    """Running per-symbol aggregate, persisted across restarts."""
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    first_seen: datetime = Field(validation_alias=AliasChoices('first_seen', 'FirstSeen'))
    start_price: float = Field(validation_alias=AliasChoices('start_price', 'StartPrice'))
    max_price: float = Field(validation_alias=AliasChoices('max_price', 'MaxPrice'))
    last_score: float = Field(validation_alias=AliasChoices('last_score', 'LastScore'))
    max_score: float = Field(validation_alias=AliasChoices('max_score', 'MaxScore'))

    @field_validator('first_seen', mode='before')
    @classmethod
    def _trim_nanoseconds(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _FRACTION_RE.sub(r'\1', v)
        return v

    @field_validator('first_seen')
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class CoinItem(BaseModel):
    """Response record for one ranked asset."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str = Field(serialization_alias='pair')
    score: float
    first_seen: int = Field(serialization_alias='start_time')  # epoch seconds
    start_price: float
    last_score: float
    max_score: float
    max_price: float
    percent_change: float = Field(serialization_alias='increase_percent')


class Snapshot(BaseModel):
    """The published view of one completed refresh cycle."""
    model_config = ConfigDict(frozen=True)

    success: bool = True
    coins: Tuple[CoinItem, ...] = ()
    count: int = 0
    index_value: float = 0.0
    generated_at: Optional[datetime] = None

    @classmethod
    def build(cls, coins: Sequence[CoinItem], index_value: float,
              generated_at: Optional[datetime] = None) -> 'Snapshot':
        coins = tuple(coins)
        return cls(
            success=True,
            coins=coins,
            count=len(coins),
            index_value=index_value,
            generated_at=generated_at or datetime.now(timezone.utc),
        )

    def to_envelope(self) -> Dict[str, Any]:
        """Render the `{success, data: {coins, count}}` body served to clients."""
        coins: List[Dict[str, Any]] = [c.model_dump(by_alias=True) for c in self.coins]
        return {
            'success': self.success,
            'data': {'coins': coins, 'count': self.count},
        }


class HealthResponse(BaseModel):
    status: str = Field(pattern='^(ok|initializing)$')
    ready: bool


__all__ = ['Tick', 'HistoryEntry', 'CoinItem', 'Snapshot', 'HealthResponse']
