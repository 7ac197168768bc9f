"""
Runtime configuration for the AI500 service.

Values come from environment variables (optionally seeded from a .env file)
and are exposed as the CONFIG dict used throughout the service.
"""
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

HUOBI_BATCH_MERGED_URL = "https://api.hbdm.com/linear-swap-ex/market/detail/batch_merged"

# Load .env from project root (or current working directory)
env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path, override=False)
else:
    load_dotenv(override=False)

_TRUTHY = {'1', 'true', 'yes', 'on'}


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in _TRUTHY


def load_config(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Build a config dict from `env` (defaults to os.environ)."""
    env = os.environ if env is None else env

    def get(key: str, default: str) -> str:
        val = env.get(key)
        return default if val is None or val == '' else val

    return {
        'HUOBI_API_URL': get('HUOBI_API_URL', HUOBI_BATCH_MERGED_URL),
        'REFRESH_INTERVAL': float(get('REFRESH_INTERVAL', '10')),
        'HISTORY_FILE': get('HISTORY_FILE', os.path.join('data', 'history.json')),
        'MIN_NOTIONAL_VOLUME': float(get('MIN_NOTIONAL_VOLUME', '10000000')),
        # Timeouts: (connect, read) in seconds
        'API_TIMEOUT_CONNECT': float(get('API_TIMEOUT_CONNECT', '2')),
        'API_TIMEOUT_READ': float(get('API_TIMEOUT_READ', '2.5')),
        'REQUEST_RETRIES': int(get('REQUEST_RETRIES', '1')),
        'RETRY_BACKOFF': float(get('RETRY_BACKOFF', '0.5')),
        # Only for local Docker debugging behind intercepting proxies
        'SKIP_TLS_VERIFY': _as_bool(env.get('SKIP_TLS_VERIFY')),
        'HOST': get('HOST', '127.0.0.1'),
        'PORT': int(get('PORT', '2234')),
        'LOG_DIR': get('LOG_DIR', 'logs'),
        'LOG_FORMAT': get('LOG_FORMAT', 'text').lower(),
        'LOG_LEVEL': get('LOG_LEVEL', 'INFO').upper(),
        'LOG_RETENTION_DAYS': int(get('LOG_RETENTION_DAYS', '30')),
        'CORS_ALLOWED_ORIGINS': get('CORS_ALLOWED_ORIGINS', '*'),
    }


CONFIG: Dict[str, Any] = load_config()

__all__ = ['CONFIG', 'HUOBI_BATCH_MERGED_URL', 'load_config']
