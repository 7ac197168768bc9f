"""Exception types raised by the refresh pipeline."""
from __future__ import annotations


class Ai500Error(Exception):
    """Base class for service errors."""


class MarketFetchError(Ai500Error):
    """Upstream market data could not be fetched or decoded for this cycle."""


class HistoryLoadError(Ai500Error):
    """Persisted history exists but could not be read or parsed."""


class HistoryPersistError(Ai500Error):
    """History could not be serialized or written to disk."""


__all__ = ['Ai500Error', 'MarketFetchError', 'HistoryLoadError', 'HistoryPersistError']
