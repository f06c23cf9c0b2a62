"""
Tranche models — состояние траншей, ставки комиссий, события просадки

Immutable Pydantic модели. Все суммы в минимальных единицах валюты (int),
все ставки в basis points.
"""

from enum import Enum

from pydantic import BaseModel, Field, computed_field


# =============================================================================
# ENUMS
# =============================================================================


class Tranche(str, Enum):
    """Класс риска."""

    SENIOR = "senior"
    JUNIOR = "junior"


# =============================================================================
# TRANCHE STATE
# =============================================================================


class TrancheState(BaseModel):
    """
    Балансы траншей.

    Инвариант: senior_assets + junior_assets = total_assets, оба >= 0.
    """

    senior_assets: int = Field(0, ge=0, description="Активы senior транша")
    junior_assets: int = Field(0, ge=0, description="Активы junior транша")

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_assets(self) -> int:
        return self.senior_assets + self.junior_assets

    def assets_of(self, tranche: Tranche) -> int:
        if tranche == Tranche.SENIOR:
            return self.senior_assets
        return self.junior_assets

    def with_assets(self, tranche: Tranche, amount: int) -> "TrancheState":
        """Новое состояние с заменённым балансом одного транша."""
        field = "senior_assets" if tranche == Tranche.SENIOR else "junior_assets"
        return self.model_copy(update={field: amount})


# =============================================================================
# FEE RATES
# =============================================================================


class FeeRates(BaseModel):
    """Текущие ставки комиссий (bps), вычисленные KineticFeeCurve."""

    management_fee_bps: int = Field(..., ge=0, le=10_000, description="Management fee")
    performance_fee_bps: int = Field(..., ge=0, le=10_000, description="Performance fee")
    senior_coupon_bps: int = Field(..., ge=0, le=10_000, description="Купон senior за эпоху")
    entry_fee_bps: int = Field(..., ge=0, le=10_000, description="Комиссия входа")
    exit_fee_bps: int = Field(..., ge=0, le=10_000, description="Комиссия выхода")
    last_update_time: int = Field(0, ge=0, description="Время последнего пересчёта (сек)")

    model_config = {"frozen": True}


# =============================================================================
# DRAWDOWN EVENT
# =============================================================================


class DrawdownEvent(BaseModel):
    """
    Событие просадки эпохи.

    Создаётся TrancheLedger при убыточном расчёте, дополняется
    DrawdownShieldPool (shields_triggered, total_payout) в той же транзакции.
    """

    epoch: int = Field(..., ge=1, description="Номер эпохи")
    drawdown_bps: int = Field(..., ge=0, description="Просадка эпохи (bps от активов)")
    timestamp: int = Field(0, ge=0, description="Время расчёта (сек)")
    spillover: int = Field(0, ge=0, description="Убыток, перешедший на senior")
    shields_triggered: int = Field(0, ge=0, description="Число выплаченных полисов")
    total_payout: int = Field(0, ge=0, description="Сумма выплат по полисам")
    pool_utilization_bps: int = Field(0, ge=0, description="Утилизация пула после выплат")

    model_config = {"frozen": True}


# =============================================================================
# YIELD FORECAST
# =============================================================================


class YieldForecastPoint(BaseModel):
    """Прогноз junior-доходности на одну будущую эпоху."""

    epoch: int = Field(..., ge=1, description="Номер будущей эпохи")
    expected_yield: int = Field(..., ge=0, description="Ожидаемая доходность junior")
    confidence_bps: int = Field(..., ge=0, le=10_000, description="Уверенность прогноза")
    risk_adjusted: int = Field(..., ge=0, description="expected_yield * confidence")

    model_config = {"frozen": True}
