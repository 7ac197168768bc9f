"""
File-backed persistence for the history ledger.

The whole ledger is rewritten after every refresh: serialize, write a temp
file beside the target, fsync, then rename over the target. The rename is the
only visible state change, so the file on disk is always a complete copy of
some earlier save.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Union

from pydantic import ValidationError

from .errors import HistoryLoadError, HistoryPersistError
from .history import HistoryLedger
from .models import HistoryEntry

logger = logging.getLogger(__name__)


def _reject_constant(name: str):
    # history values are always finite
    raise ValueError(f"non-finite number {name} in history file")


class HistoryStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')

    def load(self, ledger: HistoryLedger) -> int:
        """
        Replace the ledger contents with the persisted history.

        A missing file is a cold start (returns 0, ledger untouched). An
        unreadable or corrupt file raises HistoryLoadError and also leaves the
        ledger untouched.
        """
        if not self.path.exists():
            logger.info(f"No history file at {self.path}; starting with empty history",
                        extra={'event': 'history_cold_start'})
            return 0
        try:
            raw = json.loads(self.path.read_text(encoding='utf-8'), parse_constant=_reject_constant)
        except (OSError, ValueError) as e:
            raise HistoryLoadError(f"failed to read history file {self.path}: {e}") from e
        if not isinstance(raw, dict):
            raise HistoryLoadError(f"history file {self.path} must hold a JSON object, got {type(raw).__name__}")

        entries: Dict[str, HistoryEntry] = {}
        for symbol, data in raw.items():
            try:
                entries[symbol] = HistoryEntry.model_validate(data)
            except ValidationError as e:
                raise HistoryLoadError(f"invalid history entry {symbol!r} in {self.path}: {e}") from e

        ledger.replace(entries)
        return len(entries)

    def save(self, ledger: HistoryLedger) -> int:
        """Atomically rewrite the history file. Returns the number of entries saved."""
        entries = ledger.entries()
        try:
            payload = {
                symbol: entry.model_dump(mode='json')
                for symbol, entry in sorted(entries.items())
            }
            data = json.dumps(payload, ensure_ascii=False, indent=2, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise HistoryPersistError(f"failed to serialize history: {e}") from e

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise HistoryPersistError(f"failed to create directory {self.path.parent}: {e}") from e

        try:
            with self.tmp_path.open('w', encoding='utf-8') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(self.tmp_path, self.path)
        except OSError as e:
            try:
                self.tmp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"could not remove temp history file {self.tmp_path}")
            raise HistoryPersistError(f"failed to write history file {self.path}: {e}") from e
        return len(entries)


__all__ = ['HistoryStore']
