class ChartLabError(Exception):
    """Base class for all chartlab exceptions."""


class ConfigError(ChartLabError):
    """Raised for missing/malformed configuration."""


class ConditionError(ConfigError):
    """Raised when a buy/sell rule tree is malformed.

    ``path`` points at the offending node (e.g. ``buy.children[1]``) so the
    caller can surface a single structured error before any simulation runs.
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")

    def as_dict(self) -> dict:
        return {"path": self.path, "reason": self.reason}


class DataValidationError(ChartLabError):
    """Raised when retrieved data fails sanity or schema validation."""


class ProviderError(ChartLabError):
    """Raised when a data provider returns an invalid or failed response."""


class StorageError(ChartLabError):
    """Raised when a strategy or result store cannot read or write."""


__all__ = [
    "ChartLabError",
    "ConfigError",
    "ConditionError",
    "DataValidationError",
    "ProviderError",
    "StorageError",
]
