"""
Shield models — полисы страхования просадки и снапшот пула

Полис принадлежит пулу (индекс по id), владелец — отдельное поле.
"""

from pydantic import BaseModel, Field, model_validator


class ShieldPolicy(BaseModel):
    """
    Полис Drawdown Shield.

    Инвариант: total_claimed <= max_claim.
    Покрытие эпох: [purchased_epoch, purchased_epoch + duration_epochs).
    """

    id: int = Field(..., ge=1, description="Идентификатор полиса")
    owner: str = Field(..., min_length=1, description="Владелец полиса")
    threshold_bps: int = Field(..., ge=0, le=10_000, description="Порог срабатывания (bps)")
    notional: int = Field(..., gt=0, description="Страхуемая сумма")
    premium_paid: int = Field(..., ge=0, description="Уплаченная премия")
    active: bool = Field(True, description="Полис действует")

    duration_epochs: int = Field(..., ge=1, description="Срок полиса в эпохах")
    epochs_remaining: int = Field(..., ge=0, description="Оставшиеся эпохи покрытия")
    purchased_epoch: int = Field(..., ge=1, description="Первая покрываемая эпоха")

    total_claimed: int = Field(0, ge=0, description="Выплачено по полису")
    max_claim: int = Field(..., ge=0, description="Лимит выплат = notional * cap_ratio")
    last_claimed_epoch: int | None = Field(None, description="Эпоха последней выплаты")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_claims(self) -> "ShieldPolicy":
        if self.total_claimed > self.max_claim:
            raise ValueError(
                f"total_claimed {self.total_claimed} exceeds max_claim {self.max_claim}"
            )
        if self.epochs_remaining > self.duration_epochs:
            raise ValueError("epochs_remaining cannot exceed duration_epochs")
        return self

    @property
    def remaining_cover(self) -> int:
        """Неизрасходованный лимит выплат (0 для неактивного полиса)."""
        if not self.active:
            return 0
        return self.max_claim - self.total_claimed

    def covers_epoch(self, epoch: int) -> bool:
        return self.purchased_epoch <= epoch < self.purchased_epoch + self.duration_epochs


class ShieldPoolState(BaseModel):
    """Снапшот shield-пула для внешних коллабораторов."""

    total_reserves: int = Field(..., ge=0, description="Резервы пула")
    total_policies: int = Field(..., ge=0, description="Выпущено полисов за всё время")
    active_policies: int = Field(..., ge=0, description="Действующие полисы")
    active_claims: int = Field(..., ge=0, description="Действующие полисы с выплатами")
    outstanding_cover: int = Field(..., ge=0, description="Сумма неизрасходованных лимитов")
    utilization_bps: int = Field(..., ge=0, le=10_000, description="outstanding / reserves")
    min_threshold_bps: int = Field(..., ge=0, description="Минимальный порог полиса")
    max_threshold_bps: int = Field(..., ge=0, description="Максимальный порог полиса")
    current_epoch: int = Field(0, ge=0, description="Последняя рассчитанная эпоха")

    model_config = {"frozen": True}
