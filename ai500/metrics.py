"""Metrics exposition helpers for JSON and Prometheus outputs.

Text exposition only; no prometheus_client dependency.
"""
from __future__ import annotations
from typing import Any, Dict, Optional


def emit_prometheus(lines: list[str], name: str, value: Any, mtype: str, help_text: str):
    lines.append(f'# HELP {name} {help_text}')
    lines.append(f'# TYPE {name} {mtype}')
    if value is None:
        value = 'NaN'
    elif value is True or value is False:
        value = int(value)
    lines.append(f'{name} {value}')


def render_prometheus(refresh: Dict[str, Any], fetch: Dict[str, Any], ready: bool,
                      count: Optional[int]) -> str:
    lines: list[str] = []
    emit_prometheus(lines, 'ai500_ready', ready, 'gauge', 'Whether a snapshot has been published')
    emit_prometheus(lines, 'ai500_snapshot_coins', count, 'gauge', 'Number of ranked assets in the current snapshot')
    emit_prometheus(lines, 'ai500_refresh_cycles_ok_total', refresh.get('cycles_ok', 0), 'counter', 'Completed refresh cycles')
    emit_prometheus(lines, 'ai500_refresh_cycles_failed_total', refresh.get('cycles_failed', 0), 'counter', 'Aborted refresh cycles')
    emit_prometheus(lines, 'ai500_refresh_cycles_skipped_total', refresh.get('cycles_skipped', 0), 'counter', 'Cycles skipped because one was in flight')
    emit_prometheus(lines, 'ai500_history_persist_failures_total', refresh.get('persist_failures', 0), 'counter', 'History saves that failed')
    emit_prometheus(lines, 'ai500_refresh_last_duration_ms', refresh.get('last_cycle_duration_ms'), 'gauge', 'Duration of the last completed cycle (ms)')
    emit_prometheus(lines, 'ai500_index_value', refresh.get('last_index_value'), 'gauge', 'Sum of prices of qualifying assets in the last cycle')
    emit_prometheus(lines, 'ai500_market_fetch_calls_total', fetch.get('total_calls', 0), 'counter', 'Market data fetch attempts')
    emit_prometheus(lines, 'ai500_market_fetch_errors_total', fetch.get('errors', 0), 'counter', 'Market data fetch errors')
    emit_prometheus(lines, 'ai500_market_fetch_timeouts_total', fetch.get('timeouts', 0), 'counter', 'Market data fetch timeouts')
    emit_prometheus(lines, 'ai500_market_fetch_last_duration_ms', fetch.get('last_fetch_duration_ms'), 'gauge', 'Duration of the last successful fetch (ms)')
    return '\n'.join(lines) + '\n'


__all__ = ['emit_prometheus', 'render_prometheus']
