"""
VaultSnapshot — полный read-only снапшот движка для отображения

Соответствует контракту vault_snapshot.json.
"""

from pydantic import BaseModel, Field

from .epoch import Epoch, VolatilityState
from .ladder import LadderRung
from .shield import ShieldPoolState
from .teleport import TeleportPoolState
from .tranche import FeeRates, TrancheState


class VaultSnapshot(BaseModel):
    """Снапшот всех компонентов на момент ts."""

    ts: int = Field(..., ge=0, description="Время снапшота (сек)")
    epoch: Epoch | None = Field(None, description="Текущая эпоха (None до genesis)")
    optimal_duration: int = Field(..., gt=0, description="Длительность следующей эпохи (сек)")
    volatility: VolatilityState
    tranches: TrancheState
    fee_rates: FeeRates
    shield_pool: ShieldPoolState
    teleport_pool: TeleportPoolState
    ladder: list[LadderRung] = Field(default_factory=list)

    model_config = {"frozen": True}
