"""
Teleport models — ноты аванса будущей junior-доходности

Нота передаваема: владелец — поле записи, а не получатель аванса.
"""

from pydantic import BaseModel, Field, model_validator


class YieldNote(BaseModel):
    """
    Нота Yield Teleport.

    maturity_epoch = current_epoch + future_epochs
    outstanding — доля notional, ещё не погашенная (пропорциональна
    remaining_claims).
    """

    token_id: int = Field(..., ge=1, description="Идентификатор ноты")
    owner: str = Field(..., min_length=1, description="Текущий владелец")
    notional: int = Field(..., gt=0, description="Сумма аванса")
    future_epochs: int = Field(..., ge=1, description="Число будущих эпох")
    current_epoch: int = Field(..., ge=0, description="Эпоха выпуска")
    maturity_epoch: int = Field(..., ge=1, description="Эпоха погашения")
    yield_rate_bps: int = Field(..., ge=0, le=10_000, description="Ставка за эпоху (bps)")
    collateral_ratio_permille: int = Field(..., ge=1000, description="Collateral ratio (‰)")
    total_expected_yield: int = Field(..., ge=0, description="notional * rate * epochs")
    remaining_claims: int = Field(..., ge=0, description="Непогашенные эпохи")
    outstanding: int = Field(..., ge=0, description="Непогашенная часть notional")
    is_active: bool = Field(True, description="Нота действует")
    created_at: int = Field(0, ge=0, description="Время выпуска (сек)")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_schedule(self) -> "YieldNote":
        if self.maturity_epoch != self.current_epoch + self.future_epochs:
            raise ValueError("maturity_epoch must equal current_epoch + future_epochs")
        if self.remaining_claims > self.future_epochs:
            raise ValueError("remaining_claims cannot exceed future_epochs")
        if self.outstanding > self.notional:
            raise ValueError("outstanding cannot exceed notional")
        return self

    @property
    def remaining_value(self) -> int:
        """Ожидаемая доходность, приходящаяся на оставшиеся claims (вниз)."""
        return self.total_expected_yield * self.remaining_claims // self.future_epochs

    def is_matured(self, epoch: int) -> bool:
        return epoch >= self.maturity_epoch


class AdvanceOptionView(BaseModel):
    """Вариант аванса для отображения."""

    epochs: int = Field(..., ge=1)
    yield_rate_bps: int = Field(..., ge=0, le=10_000)
    collateral_ratio_permille: int = Field(..., ge=1000)
    max_advance: int = Field(..., ge=0, description="Доступно сейчас для этого срока")
    description: str = ""

    model_config = {"frozen": True}


class TeleportPoolState(BaseModel):
    """
    Снапшот teleport-пула.

    available_advance = junior_yield_buffer * (1 - default_rate) - total_outstanding,
    не меньше 0.
    """

    total_advanced: int = Field(..., ge=0, description="Выдано авансов за всё время")
    total_outstanding: int = Field(..., ge=0, description="Непогашенный notional")
    available_advance: int = Field(..., ge=0, description="Доступно для новых авансов")
    junior_yield_buffer: int = Field(..., ge=0, description="Буфер прогнозной junior-доходности")
    default_rate_bps: int = Field(..., ge=0, le=10_000, description="Ставка дефолта (bps)")
    active_notes: int = Field(..., ge=0, description="Действующие ноты")
    average_maturity: int = Field(..., ge=0, description="Средний срок до погашения (эпох)")
    current_epoch: int = Field(0, ge=0, description="Последняя рассчитанная эпоха")

    model_config = {"frozen": True}
