from chartlab.repositories.results import JsonlResultStore
from chartlab.repositories.strategies import JsonStrategyStore

__all__ = ["JsonlResultStore", "JsonStrategyStore"]
