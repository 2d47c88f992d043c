from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, List

from loguru import logger

from chartlab.core.exceptions import ConfigError, StorageError
from chartlab.signals.presets import PRESET_STRATEGIES
from chartlab.signals.rules import strategy_from_dict, strategy_to_dict
from chartlab.signals.types import Strategy


class JsonStrategyStore:
    """
    User strategies kept in one JSON document ``{id: strategy}``.

    Built-in presets resolve first and cannot be overwritten.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"cannot read strategies from {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} must hold a JSON object")
        return data

    def _write(self, data: Dict[str, dict]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"cannot write strategies to {self.path}: {exc}") from exc

    def load(self, strategy_id: str) -> Strategy | None:
        preset = PRESET_STRATEGIES.get(strategy_id)
        if preset is not None:
            return preset
        raw = self._read().get(strategy_id)
        if raw is None:
            return None
        return strategy_from_dict(raw)

    def save(self, strategy: Strategy) -> None:
        if strategy.id in PRESET_STRATEGIES:
            raise ConfigError(f"'{strategy.id}' is a built-in preset and cannot be replaced")
        data = self._read()
        data[strategy.id] = strategy_to_dict(strategy)
        self._write(data)
        logger.debug("strategy saved id={} path={}", strategy.id, self.path)

    def list(self) -> List[Strategy]:
        out = list(PRESET_STRATEGIES.values())
        for strategy_id, raw in sorted(self._read().items()):
            if strategy_id in PRESET_STRATEGIES:
                continue
            out.append(strategy_from_dict(raw))
        return out


__all__ = ["JsonStrategyStore"]
