"""
Domain models and value objects.

Contains the immutable records shared across components: Epoch, TrancheState,
FeeRates, ShieldPolicy, YieldNote, LadderRung, and the command variants.
"""

from kinetic_vault.core.domain.commands import (
    AdvanceEpoch,
    AdvanceYield,
    CancelShield,
    ClaimShield,
    ContributeToShield,
    Deposit,
    DepositLadder,
    EarlyRedeem,
    LadderCommand,
    LedgerCommand,
    PurchaseShield,
    RebalanceLadder,
    RedeemNote,
    SettleRung,
    ShieldCommand,
    TeleportCommand,
    TransferNote,
    VaultCommand,
    Withdraw,
    parse_command,
)
from kinetic_vault.core.domain.epoch import Epoch, EpochState, VolatilityState
from kinetic_vault.core.domain.ladder import LadderRung
from kinetic_vault.core.domain.market import MarketSnapshot
from kinetic_vault.core.domain.shield import ShieldPolicy, ShieldPoolState
from kinetic_vault.core.domain.snapshot import VaultSnapshot
from kinetic_vault.core.domain.teleport import (
    AdvanceOptionView,
    TeleportPoolState,
    YieldNote,
)
from kinetic_vault.core.domain.tranche import (
    DrawdownEvent,
    FeeRates,
    Tranche,
    TrancheState,
    YieldForecastPoint,
)

__all__ = [
    # Epoch
    "Epoch",
    "EpochState",
    "VolatilityState",
    # Tranches
    "Tranche",
    "TrancheState",
    "FeeRates",
    "DrawdownEvent",
    "YieldForecastPoint",
    # Shield
    "ShieldPolicy",
    "ShieldPoolState",
    # Teleport
    "YieldNote",
    "TeleportPoolState",
    "AdvanceOptionView",
    # Ladder
    "LadderRung",
    # Market / snapshot
    "MarketSnapshot",
    "VaultSnapshot",
    # Commands
    "Deposit",
    "Withdraw",
    "ContributeToShield",
    "AdvanceEpoch",
    "PurchaseShield",
    "ClaimShield",
    "CancelShield",
    "AdvanceYield",
    "RedeemNote",
    "EarlyRedeem",
    "TransferNote",
    "DepositLadder",
    "SettleRung",
    "RebalanceLadder",
    "LedgerCommand",
    "ShieldCommand",
    "TeleportCommand",
    "LadderCommand",
    "VaultCommand",
    "parse_command",
]
