"""Epochs — волатильность и адаптивный расчёт эпох."""

from .scheduler import EpochScheduler, SettlementResult, optimal_duration
from .volatility import VolatilityMonitor

__all__ = [
    "VolatilityMonitor",
    "EpochScheduler",
    "SettlementResult",
    "optimal_duration",
]
