"""
LadderRung — снапшот ступени лестницы эпох
"""

from pydantic import BaseModel, Field


class LadderRung(BaseModel):
    """
    Ступень лестницы: собственная пара EpochScheduler + TrancheLedger.

    Инвариант по всей лестнице: сумма weight_bps = 10000.
    """

    index: int = Field(..., ge=0, description="Номер ступени")
    duration: int = Field(..., gt=0, description="Длительность эпохи ступени (сек)")
    weight_bps: int = Field(..., ge=0, le=10_000, description="Доля новых депозитов (bps)")
    epoch_count: int = Field(..., ge=0, description="Рассчитанных эпох")
    next_settlement: int = Field(..., ge=0, description="end_time текущей эпохи (сек)")
    senior_assets: int = Field(..., ge=0)
    junior_assets: int = Field(..., ge=0)
    total_assets: int = Field(..., ge=0)
    last_return_bps: int = Field(0, description="Доходность последней эпохи (bps)")

    model_config = {"frozen": True}
