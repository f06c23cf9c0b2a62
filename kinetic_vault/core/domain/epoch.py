"""
Epoch & Volatility — модели эпохи и состояния волатильности

Immutable Pydantic модели. Изменение эпохи = создание новой записи через
model_copy(update=...); единственный владелец лога эпох — EpochScheduler.

Жизненный цикл эпохи:
    ACTIVE → SETTLING → SETTLED
После SETTLED запись неизменна, следующая эпоха создаётся как новая ACTIVE.
"""

from enum import Enum

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class EpochState(str, Enum):
    """Состояние эпохи."""

    ACTIVE = "ACTIVE"
    SETTLING = "SETTLING"
    SETTLED = "SETTLED"


# =============================================================================
# VOLATILITY STATE
# =============================================================================


class VolatilityState(BaseModel):
    """
    Состояние волатильности.

    Волатильность в basis points (7000 = 70%), change_rate в bps/сек.
    """

    current: int = Field(0, ge=0, description="Текущая волатильность (bps)")
    historical: int = Field(0, ge=0, description="Сглаженная (EMA) волатильность (bps)")
    last_update: int = Field(0, ge=0, description="Timestamp последнего замера (сек)")
    change_rate: int = Field(0, description="Скорость изменения (bps/сек, со знаком)")
    samples: int = Field(0, ge=0, description="Число принятых замеров")

    model_config = {"frozen": True}

    @property
    def has_sample(self) -> bool:
        """Был ли принят хотя бы один замер."""
        return self.samples > 0


# =============================================================================
# EPOCH MODEL
# =============================================================================


class Epoch(BaseModel):
    """
    Запись эпохи (учётного периода).

    end_time может быть пересмотрен только flash trigger'ом и только в
    состоянии ACTIVE. realized_return_bps заполняется при расчёте.
    """

    index: int = Field(..., ge=1, description="Номер эпохи (монотонный, с 1)")
    start_time: int = Field(..., ge=0, description="Начало эпохи (сек)")
    end_time: int = Field(..., ge=0, description="Плановый конец эпохи (сек)")
    state: EpochState = Field(EpochState.ACTIVE, description="Состояние эпохи")

    senior_assets_at_start: int = Field(0, ge=0, description="Senior активы на старте")
    junior_assets_at_start: int = Field(0, ge=0, description="Junior активы на старте")

    realized_return_bps: int | None = Field(
        None, description="Реализованная доходность эпохи (bps, со знаком)"
    )
    pnl: int | None = Field(None, description="P&L эпохи в минимальных единицах")
    flash_triggered: bool = Field(False, description="Эпоха завершена flash trigger'ом")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_lifecycle(self) -> "Epoch":
        """
        Проверка согласованности полей с жизненным циклом.

        - end_time >= start_time
        - realized_return_bps отсутствует у ACTIVE эпохи
        - у SETTLED эпохи realized_return_bps обязателен
        """
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time {self.end_time} precedes start_time {self.start_time}"
            )
        if self.state == EpochState.ACTIVE and self.realized_return_bps is not None:
            raise ValueError("realized_return_bps is set only at settlement")
        if self.state == EpochState.SETTLED and self.realized_return_bps is None:
            raise ValueError("settled epoch must carry realized_return_bps")
        return self

    @property
    def is_settled(self) -> bool:
        return self.state == EpochState.SETTLED

    def is_due(self, now: int) -> bool:
        """Наступил ли плановый конец эпохи."""
        return now >= self.end_time

    def elapsed(self, now: int) -> int:
        """Прошедшее с начала эпохи время (сек), не меньше 0."""
        return max(0, now - self.start_time)

    def time_remaining(self, now: int) -> int:
        """Оставшееся до end_time время (сек), не меньше 0."""
        return max(0, self.end_time - now)
