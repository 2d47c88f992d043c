from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any, Dict, List

from chartlab.backtest.models import BacktestResult
from chartlab.core.exceptions import StorageError
from chartlab.core.timeutils import isoformat, now_utc

RESULTS_FILE = "results.jsonl"


class JsonlResultStore:
    """Append-only JSONL log of backtest results, one run per line."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    @property
    def path(self) -> Path:
        return self.root / RESULTS_FILE

    def save(self, result: BacktestResult) -> str:
        run_id = uuid.uuid4().hex
        record = {"run_id": run_id, "ts": isoformat(now_utc()), "result": result.to_dict()}
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, allow_nan=False) + "\n")
        except (OSError, ValueError) as exc:
            raise StorageError(f"cannot append result to {self.path}: {exc}") from exc
        return run_id

    def _records(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            with self.path.open(encoding="utf-8") as handle:
                lines = handle.readlines()
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"cannot read results from {self.path}: {exc}") from exc

        records: List[Dict[str, Any]] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return records

    def load(self, run_id: str) -> Dict[str, Any] | None:
        """Return the serialized result saved under ``run_id``."""
        for record in self._records():
            if record.get("run_id") == run_id:
                return record.get("result")
        return None

    def recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        records = self._records()
        records.sort(key=lambda r: r.get("ts", ""), reverse=True)
        return records[:limit]


__all__ = ["JsonlResultStore", "RESULTS_FILE"]
