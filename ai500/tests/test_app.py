import pytest

from ai500.app import ERROR_INITIALIZING, create_app, parse_arguments
from ai500.models import CoinItem, Snapshot
from ai500.refresher import RefreshScheduler


@pytest.fixture
def published(cache, fixed_now):
    coin = CoinItem(symbol='BTCUSD', score=100.0, first_seen=int(fixed_now.timestamp()), start_price=50000.0,
                    last_score=100.0, max_score=100.0, max_price=50000.0, percent_change=0.0)
    cache.publish(Snapshot.build([coin], index_value=50000.0, generated_at=fixed_now))
    return cache


@pytest.fixture
def scheduler(ledger, cache):
    return RefreshScheduler(fetch_fn=lambda: [], ledger=ledger, cache=cache)


def test_list_is_503_until_first_snapshot(cache):
    client = create_app(cache).test_client()
    resp = client.get('/api/ai500/list')
    assert resp.status_code == 503
    assert resp.get_json() == {'error': ERROR_INITIALIZING}


def test_list_returns_envelope(published):
    client = create_app(published).test_client()
    resp = client.get('/api/ai500/list')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    assert body['data']['count'] == 1
    coin = body['data']['coins'][0]
    assert coin['pair'] == 'BTCUSD'
    assert coin['score'] == 100.0
    assert coin['increase_percent'] == 0.0
    assert set(coin) == {'pair', 'score', 'start_time', 'start_price', 'last_score',
                         'max_score', 'max_price', 'increase_percent'}


def test_health_reflects_readiness(cache, published):
    client = create_app(cache).test_client()
    resp = client.get('/api/ai500/health')
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'ok', 'ready': True}


def test_health_initializing(cache):
    resp = create_app(cache).test_client().get('/api/ai500/health')
    assert resp.status_code == 503
    assert resp.get_json() == {'status': 'initializing', 'ready': False}


def test_metrics_json(published, scheduler, fixed_now):
    resp = create_app(published, scheduler).test_client().get('/api/metrics')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['ready'] is True
    assert body['count'] == 1
    assert body['index_value'] == 50000.0
    assert body['generated_at'] == fixed_now.isoformat()
    assert body['refresh']['cycles_ok'] == 0
    assert body['refresh']['running'] is False
    assert 'total_calls' in body['market_fetch']


def test_metrics_prometheus(cache, scheduler):
    resp = create_app(cache, scheduler).test_client().get('/metrics.prom')
    assert resp.status_code == 200
    assert resp.mimetype == 'text/plain'
    text = resp.get_data(as_text=True)
    assert '# TYPE ai500_ready gauge' in text
    assert 'ai500_ready 0' in text
    assert 'ai500_snapshot_coins NaN' in text
    assert 'ai500_refresh_cycles_ok_total 0' in text


def test_cors_allows_any_origin_by_default(published):
    client = create_app(published, cors_origins='*').test_client()
    resp = client.get('/api/ai500/list', headers={'Origin': 'http://dashboard.example'})
    assert resp.headers.get('Access-Control-Allow-Origin') == '*'


def test_cors_restricted_origins(published):
    client = create_app(published, cors_origins='http://a.example, http://b.example').test_client()
    allowed = client.get('/api/ai500/list', headers={'Origin': 'http://b.example'})
    assert allowed.headers.get('Access-Control-Allow-Origin') == 'http://b.example'
    denied = client.get('/api/ai500/list', headers={'Origin': 'http://evil.example'})
    assert 'Access-Control-Allow-Origin' not in denied.headers


def test_parse_arguments():
    args = parse_arguments(['--port', '9000', '--interval', '2.5', '--history-file', '/tmp/h.json'])
    assert args.port == 9000
    assert args.interval == 2.5
    assert args.history_file == '/tmp/h.json'
    assert args.host is None
