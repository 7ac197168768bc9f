"""
Shared pytest fixtures for the AI500 refresh pipeline tests.
"""

from datetime import datetime, timezone

import pytest

from ai500.history import HistoryLedger
from ai500.history_store import HistoryStore
from ai500.models import Tick
from ai500.snapshot_cache import SnapshotCache


# ============================================================================
# Tick Fixtures
# ============================================================================

@pytest.fixture
def make_tick():
    """Factory for provider ticks; numbers may be passed as str or float."""
    def _make(code, close, amount, contract_type='swap'):
        return Tick(contract_code=code, contract_type=contract_type, close=str(close), amount=str(amount))
    return _make


@pytest.fixture
def example_ticks(make_tick):
    """BTC clears the 10M notional threshold (15M), ETH does not (3M)."""
    return [
        make_tick('BTC-USD', '50000', '300'),
        make_tick('ETH-USD', '3000', '1000'),
    ]


# ============================================================================
# Component Fixtures
# ============================================================================

@pytest.fixture
def ledger():
    return HistoryLedger()


@pytest.fixture
def cache():
    return SnapshotCache()


@pytest.fixture
def history_path(tmp_path):
    return tmp_path / "data" / "history.json"


@pytest.fixture
def store(history_path):
    return HistoryStore(history_path)


@pytest.fixture
def fixed_now():
    return datetime(2026, 10, 17, 12, 0, 0, 250000, tzinfo=timezone.utc)
