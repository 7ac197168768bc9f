import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from ai500.errors import HistoryLoadError, HistoryPersistError
from ai500.history import HistoryLedger
from ai500.history_store import HistoryStore
from ai500.models import HistoryEntry
from ai500.ranking import AssetRecord, rank_assets


def _seed_ledger():
    return HistoryLedger({
        'BTCUSDT': HistoryEntry(
            first_seen=datetime(2026, 10, 1, 8, 30, 15, 123456, tzinfo=timezone.utc),
            start_price=50000.0,
            max_price=52000.123456789,
            last_score=95.0,
            max_score=98.5,
        ),
        'ETHUSDT': HistoryEntry(
            first_seen=datetime(2026, 10, 2, 0, 0, 0, tzinfo=timezone.utc),
            start_price=0.1 + 0.2,
            max_price=3200.0000000000005,
            last_score=88.0,
            max_score=92.0,
        ),
    })


def test_round_trip_is_exact(store):
    original = _seed_ledger()
    assert store.save(original) == 2

    restored = HistoryLedger()
    assert store.load(restored) == 2

    before, after = original.entries(), restored.entries()
    assert set(after) == {'BTCUSDT', 'ETHUSDT'}
    for sym, entry in before.items():
        loaded = after[sym]
        assert loaded.first_seen == entry.first_seen
        for field in ('start_price', 'max_price', 'last_score', 'max_score'):
            assert getattr(loaded, field).hex() == getattr(entry, field).hex(), (sym, field)


def test_save_writes_readable_json_and_creates_directory(store, history_path):
    assert not history_path.parent.exists()
    store.save(_seed_ledger())
    data = json.loads(history_path.read_text(encoding='utf-8'))
    assert set(data['BTCUSDT']) == {'first_seen', 'start_price', 'max_price', 'last_score', 'max_score'}
    assert data['BTCUSDT']['max_score'] == 98.5
    assert '\n' in history_path.read_text(encoding='utf-8')
    assert not store.tmp_path.exists()


def test_missing_file_is_cold_start(store):
    ledger = _seed_ledger()
    assert store.load(ledger) == 0
    assert len(ledger) == 2


@pytest.mark.parametrize("content", [
    '{"BTCUSDT": {',
    '[]',
    '{"BTCUSDT": {"first_seen": "2026-10-01T00:00:00Z", "start_price": 1.0}}',
    '{"BTCUSDT": {"first_seen": "yesterday", "start_price": 1, "max_price": 1, "last_score": 1, "max_score": 1}}',
    '{"BTCUSDT": {"first_seen": "2026-10-01T00:00:00Z", "start_price": 1, "max_price": NaN, "last_score": 1, "max_score": 1}}',
    '{"BTCUSDT": {"first_seen": "2026-10-01T00:00:00Z", "start_price": 1, "max_price": 1, "last_score": 1, "max_score": Infinity}}',
])
def test_corrupt_file_raises_and_leaves_ledger_untouched(store, history_path, content):
    history_path.parent.mkdir(parents=True)
    history_path.write_text(content, encoding='utf-8')
    ledger = _seed_ledger()
    before = ledger.entries()
    with pytest.raises(HistoryLoadError):
        store.load(ledger)
    assert ledger.entries() == before


def test_loads_history_written_by_go_service(store, history_path):
    history_path.parent.mkdir(parents=True)
    history_path.write_text(json.dumps({
        'BTCUSDT': {
            'FirstSeen': '2025-01-02T15:04:05.123456789+08:00',
            'StartPrice': 50000,
            'MaxPrice': 52000,
            'LastScore': 95,
            'MaxScore': 98.5,
        }
    }), encoding='utf-8')
    ledger = HistoryLedger()
    assert store.load(ledger) == 1
    entry = ledger.get('BTCUSDT')
    assert entry.first_seen == datetime(2025, 1, 2, 7, 4, 5, 123456, tzinfo=timezone.utc)
    assert entry.start_price == 50000.0
    assert entry.max_score == 98.5


def test_failed_rename_keeps_previous_file(store, history_path):
    store.save(_seed_ledger())
    previous = history_path.read_bytes()

    grown = _seed_ledger()
    grown.replace({**grown.entries(), 'SOLUSDT': HistoryEntry(
        first_seen=datetime(2026, 10, 3, tzinfo=timezone.utc),
        start_price=150.0, max_price=150.0, last_score=10.0, max_score=10.0,
    )})
    with patch('ai500.history_store.os.replace', side_effect=OSError("disk gone")):
        with pytest.raises(HistoryPersistError):
            store.save(grown)

    assert history_path.read_bytes() == previous
    assert not store.tmp_path.exists()
    # in-memory ledger unaffected by the failed save
    assert len(grown) == 3


def test_failed_temp_write_keeps_previous_file(store, history_path):
    store.save(_seed_ledger())
    previous = history_path.read_bytes()
    with patch('ai500.history_store.os.fsync', side_effect=OSError("io error")):
        with pytest.raises(HistoryPersistError):
            store.save(_seed_ledger())
    assert history_path.read_bytes() == previous
    assert not store.tmp_path.exists()


def test_unwritable_directory_raises_persist_error(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    store = HistoryStore(blocker / "history.json")
    with pytest.raises(HistoryPersistError):
        store.save(_seed_ledger())


@pytest.mark.parametrize("field", ['start_price', 'max_price', 'last_score', 'max_score'])
@pytest.mark.parametrize("value", [float('nan'), float('inf'), float('-inf')])
def test_history_entry_rejects_non_finite_values(field, value):
    data = {'first_seen': '2026-10-01T00:00:00Z', 'start_price': 1.0, 'max_price': 1.0,
            'last_score': 1.0, 'max_score': 1.0}
    data[field] = value
    with pytest.raises(ValidationError):
        HistoryEntry.model_validate(data)


def test_non_finite_file_does_not_block_later_saves(store, history_path, fixed_now):
    history_path.parent.mkdir(parents=True)
    history_path.write_text(
        '{"XUSDT": {"first_seen": "2026-10-01T00:00:00Z", "start_price": 100, '
        '"max_price": NaN, "last_score": 10, "max_score": Infinity}}',
        encoding='utf-8',
    )
    ledger = HistoryLedger()
    with pytest.raises(HistoryLoadError, match='NaN'):
        store.load(ledger)
    assert len(ledger) == 0

    ledger.apply(rank_assets([AssetRecord('X-USDT', price=500.0, volume=20e6)]), now=fixed_now)
    assert store.save(ledger) == 1
    assert json.loads(history_path.read_text(encoding='utf-8'))['XUSDT']['max_price'] == 500.0
