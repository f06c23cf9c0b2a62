"""Tranches — учёт senior/junior и waterfall."""

from .ledger import DEFAULT_FEE_RATES, TrancheLedger, WaterfallResult, WithdrawResult

__all__ = [
    "TrancheLedger",
    "WaterfallResult",
    "WithdrawResult",
    "DEFAULT_FEE_RATES",
]
