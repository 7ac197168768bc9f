import argparse
import logging
import time
from typing import Optional

from flask import Flask, Response, jsonify
from flask_cors import CORS

from .config import CONFIG
from .errors import HistoryLoadError
from .history import HistoryLedger
from .history_store import HistoryStore
from .logging_config import setup_logging, log_config
from .market_fetch import fetch_market_ticks, fetch_time_budget, get_fetch_metrics
from .metrics import render_prometheus
from .models import HealthResponse
from .refresher import RefreshScheduler
from .snapshot_cache import SnapshotCache

ERROR_INITIALIZING = "Data initializing..."


def create_app(cache: SnapshotCache, scheduler: Optional[RefreshScheduler] = None,
               cors_origins: Optional[str] = None) -> Flask:
    """Build the read-only HTTP view over the snapshot cache."""
    app = Flask(__name__)
    startup_time = time.time()

    origins = cors_origins or CONFIG.get('CORS_ALLOWED_ORIGINS', '*')
    if origins == '*':
        CORS(app, origins='*', send_wildcard=True)
    else:
        CORS(app, origins=[o.strip() for o in origins.split(',') if o.strip()])

    @app.route('/api/ai500/list')
    def ai500_list():
        ready, snapshot = cache.read_current()
        if not ready:
            return jsonify({'error': ERROR_INITIALIZING}), 503
        return jsonify(snapshot.to_envelope())

    @app.route('/api/ai500/health')
    def ai500_health():
        ready = cache.is_ready()
        body = HealthResponse(status='ok' if ready else 'initializing', ready=ready)
        return jsonify(body.model_dump()), (200 if ready else 503)

    @app.route('/api/metrics')
    def metrics_json():
        ready, snapshot = cache.read_current()
        return jsonify({
            'status': 'ok',
            'ready': ready,
            'uptime_seconds': round(time.time() - startup_time, 2),
            'count': snapshot.count if snapshot else None,
            'index_value': snapshot.index_value if snapshot else None,
            'generated_at': snapshot.generated_at.isoformat() if snapshot and snapshot.generated_at else None,
            'refresh': scheduler.stats() if scheduler else None,
            'market_fetch': get_fetch_metrics(),
        })

    @app.route('/metrics.prom')
    def metrics_prom():
        ready, snapshot = cache.read_current()
        text = render_prometheus(
            scheduler.stats() if scheduler else {},
            get_fetch_metrics(),
            ready=ready,
            count=snapshot.count if snapshot else None,
        )
        return Response(text, mimetype='text/plain; version=0.0.4')

    return app


# =============================================================================
# COMMAND LINE ARGUMENTS
# =============================================================================

def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='AI500 attention board service')
    parser.add_argument('--port', type=int, help='Port to run the server on')
    parser.add_argument('--host', type=str, help='Host to bind the server to')
    parser.add_argument('--interval', type=float, help='Refresh interval in seconds')
    parser.add_argument('--history-file', type=str, help='Path of the persisted history JSON file')
    return parser.parse_args(argv)


# =============================================================================
# APPLICATION STARTUP
# =============================================================================

def main(argv=None):
    args = parse_arguments(argv)
    config = dict(CONFIG)
    if args.port:
        config['PORT'] = args.port
    if args.host:
        config['HOST'] = args.host
    if args.interval:
        config['REFRESH_INTERVAL'] = args.interval
    if args.history_file:
        config['HISTORY_FILE'] = args.history_file

    setup_logging(
        log_dir=config['LOG_DIR'],
        log_format=config['LOG_FORMAT'],
        level=config['LOG_LEVEL'],
        retention_days=config['LOG_RETENTION_DAYS'],
    )
    log_config(config)
    budget = fetch_time_budget()
    if budget >= config['REFRESH_INTERVAL']:
        logging.warning(f"⚠️  A market fetch can take up to {budget:.1f}s, not less than the "
                        f"{config['REFRESH_INTERVAL']}s refresh interval; overrunning ticks will be dropped")

    ledger = HistoryLedger()
    store = HistoryStore(config['HISTORY_FILE'])
    try:
        loaded = store.load(ledger)
        logging.info(f"✓ Loaded history for {loaded} symbols")
    except HistoryLoadError as e:
        # Refresh cycles rebuild history over time; never block startup on it
        logging.warning(f"⚠️  Failed to load history: {e} (continuing with empty history)")

    cache = SnapshotCache()
    scheduler = RefreshScheduler(
        fetch_fn=fetch_market_ticks,
        ledger=ledger,
        cache=cache,
        store=store,
        interval=config['REFRESH_INTERVAL'],
        min_volume=config['MIN_NOTIONAL_VOLUME'],
    )
    app = create_app(cache, scheduler, cors_origins=config['CORS_ALLOWED_ORIGINS'])

    scheduler.start()
    logging.info(f"🚀 AI500 Service running at http://{config['HOST']}:{config['PORT']}/api/ai500/list")
    try:
        app.run(host=config['HOST'], port=config['PORT'], debug=False, use_reloader=False, threaded=True)
    finally:
        scheduler.stop(timeout=config['REFRESH_INTERVAL'])


if __name__ == "__main__":
    main()
