import time, logging, threading
from typing import Any, Dict, List, Optional, Tuple
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from requests.exceptions import RequestException, ConnectTimeout, ReadTimeout
from urllib3.exceptions import NewConnectionError, TimeoutError as Urllib3TimeoutError
from pydantic import ValidationError

from .config import CONFIG
from .errors import MarketFetchError
from .models import Tick

logger = logging.getLogger(__name__)

# Cap on how much of an error body ends up in logs
ERROR_BODY_LIMIT = 4 << 10

# Configure a session with light retry/backoff to ride out transient 5xx/429.
# Read timeouts are not retried and Retry-After is ignored, so one fetch is
# bounded by fetch_time_budget().
_SESSION = requests.Session()
_RETRY_STRATEGY = Retry(
    total=int(CONFIG.get('REQUEST_RETRIES', 1)),
    read=0,
    status_forcelist=(429, 500, 502, 503, 504),
    allowed_methods=frozenset(['GET']),
    backoff_factor=float(CONFIG.get('RETRY_BACKOFF', 0.5)),
    raise_on_status=False,
    respect_retry_after_header=False,
)
_ADAPTER = HTTPAdapter(max_retries=_RETRY_STRATEGY)
_SESSION.mount('https://', _ADAPTER)
_SESSION.mount('http://', _ADAPTER)

API_TIMEOUT: Tuple[float, float] = (
    float(CONFIG.get('API_TIMEOUT_CONNECT', 2)),
    float(CONFIG.get('API_TIMEOUT_READ', 2.5)),
)

_metrics_lock = threading.Lock()
_metrics = {
    'total_calls': 0,
    'errors': 0,
    'timeouts': 0,
    'last_status': None,
    'last_tick_count': 0,
    'dropped_ticks': 0,
    'last_fetch_duration_ms': 0.0,
    'last_success_time': 0.0,
    'last_error': None,
}


def _record_error(message: str, timeout: bool = False) -> None:
    with _metrics_lock:
        _metrics['errors'] += 1
        if timeout:
            _metrics['timeouts'] += 1
        _metrics['last_error'] = message


def _is_timeout(exc: RequestException) -> bool:
    if isinstance(exc, (ConnectTimeout, ReadTimeout)):
        return True
    # once Retry gives up, requests wraps the timeout as ConnectionError(MaxRetryError(reason=...))
    reason = getattr(exc.args[0], 'reason', None) if exc.args else None
    # NewConnectionError subclasses ConnectTimeoutError but means refused or unreachable
    return isinstance(reason, Urllib3TimeoutError) and not isinstance(reason, NewConnectionError)


def fetch_time_budget(timeout: Optional[Tuple[float, float]] = None, retries: Optional[int] = None,
                      backoff_factor: Optional[float] = None) -> float:
    """
    Worst-case seconds one fetch_market_ticks() call can block, assuming each
    socket operation stays within its timeout: every attempt may spend the
    full connect + read timeout, plus the backoff sleeps between attempts.
    """
    connect, read = timeout or API_TIMEOUT
    retries = _RETRY_STRATEGY.total if retries is None else retries
    backoff_factor = _RETRY_STRATEGY.backoff_factor if backoff_factor is None else backoff_factor
    # urllib3 skips the sleep before the first retry, then doubles
    sleeps = sum(min(backoff_factor * 2 ** (n - 1), Retry.DEFAULT_BACKOFF_MAX) for n in range(2, retries + 1))
    return (retries + 1) * (connect + read) + sleeps


def parse_ticks(payload: Any) -> List[Tick]:
    """Validate the batch payload. Individual malformed ticks are dropped."""
    if not isinstance(payload, dict) or not isinstance(payload.get('ticks'), list):
        raise MarketFetchError("market payload has no 'ticks' list")
    ticks: List[Tick] = []
    dropped = 0
    for raw in payload['ticks']:
        try:
            ticks.append(Tick.model_validate(raw))
        except ValidationError as e:
            dropped += 1
            logger.warning(f"market_fetch: dropping malformed tick {str(raw)[:200]}: {e.error_count()} errors",
                           extra={'event': 'tick_malformed'})
    if dropped:
        with _metrics_lock:
            _metrics['dropped_ticks'] += dropped
    return ticks


def fetch_market_ticks(url: Optional[str] = None, timeout: Optional[Tuple[float, float]] = None) -> List[Tick]:
    """
    Fetch every linear-swap ticker in one batch request.

    Raises MarketFetchError on network failure, timeout, non-200 status or an
    undecodable body; the caller treats that as a failed cycle.
    """
    url = url or CONFIG['HUOBI_API_URL']
    timeout = timeout or API_TIMEOUT
    verify = not CONFIG.get('SKIP_TLS_VERIFY', False)
    start = time.time()
    with _metrics_lock:
        _metrics['total_calls'] += 1
    try:
        r = _SESSION.get(url, timeout=timeout, verify=verify)
    except RequestException as e:
        if _is_timeout(e):
            _record_error(f"timeout: {e}", timeout=True)
            raise MarketFetchError(f"market fetch timed out: {e}") from e
        _record_error(f"request error: {e}")
        raise MarketFetchError(f"market fetch failed: {e}") from e

    with _metrics_lock:
        _metrics['last_status'] = r.status_code
    if r.status_code != 200:
        body = (r.text or '')[:ERROR_BODY_LIMIT]
        _record_error(f"status {r.status_code}")
        raise MarketFetchError(f"market status {r.status_code}: {body}")

    try:
        payload = r.json()
    except ValueError as e:
        _record_error('invalid json')
        raise MarketFetchError(f"market response is not valid JSON: {e}") from e
    try:
        ticks = parse_ticks(payload)
    except MarketFetchError as e:
        _record_error(str(e))
        raise

    dur_ms = (time.time() - start) * 1000.0
    with _metrics_lock:
        _metrics['last_tick_count'] = len(ticks)
        _metrics['last_fetch_duration_ms'] = dur_ms
        _metrics['last_success_time'] = time.time()
    logger.debug(f"market_fetch: {len(ticks)} ticks in {dur_ms:.0f}ms")
    return ticks


def get_fetch_metrics() -> Dict[str, Any]:
    with _metrics_lock:
        # return shallow copy to avoid external mutation
        data = dict(_metrics)
    total = data.get('total_calls', 0)
    data['error_rate_percent'] = round(data['errors'] / total * 100.0, 4) if total else 0.0
    return data


def reset_fetch_metrics() -> None:
    with _metrics_lock:
        _metrics.update({
            'total_calls': 0, 'errors': 0, 'timeouts': 0, 'last_status': None,
            'last_tick_count': 0, 'dropped_ticks': 0, 'last_fetch_duration_ms': 0.0,
            'last_success_time': 0.0, 'last_error': None,
        })


__all__ = ['fetch_market_ticks', 'fetch_time_budget', 'parse_ticks', 'get_fetch_metrics', 'reset_fetch_metrics']
