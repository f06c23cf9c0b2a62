"""
Contract Validation Module

Модуль для валидации JSON снапшотов движка Kinetic Vault.
"""

from .validators import (
    ContractValidator,
    EpochValidator,
    FeeRatesValidator,
    LadderRungValidator,
    SchemaLoader,
    ShieldPoolValidator,
    TeleportPoolValidator,
    TrancheStateValidator,
    VaultSnapshotValidator,
    validate_epoch,
    validate_fee_rates,
    validate_ladder_rung,
    validate_shield_pool,
    validate_teleport_pool,
    validate_tranche_state,
    validate_vault_snapshot,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "EpochValidator",
    "TrancheStateValidator",
    "FeeRatesValidator",
    "ShieldPoolValidator",
    "TeleportPoolValidator",
    "LadderRungValidator",
    "VaultSnapshotValidator",
    # Functions
    "validate_epoch",
    "validate_tranche_state",
    "validate_fee_rates",
    "validate_shield_pool",
    "validate_teleport_pool",
    "validate_ladder_rung",
    "validate_vault_snapshot",
]
