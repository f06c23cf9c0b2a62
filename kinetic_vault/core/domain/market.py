"""
MarketSnapshot — снапшот рыночных данных от внешнего коллаборатора

Для движка это непрозрачный числовой вектор; используется только
KineticFeeCurve для вычисления утилизации и доходности. Диапазоны
проверяет потребитель (KineticFeeCurve), чтобы ошибка имела вид
InvalidParameter, а не ошибку схемы.
"""

from pydantic import BaseModel, Field


class MarketSnapshot(BaseModel):
    """Снапшот цен/ликвидности."""

    timestamp: int = Field(..., description="Время снапшота (сек)")
    utilization: float = Field(..., description="Утилизация пула, доля [0, 1]")
    trailing_performance_bps: int = Field(0, description="Скользящая доходность (bps)")
    prices: list[float] = Field(default_factory=list, description="Цены инструментов")
    liquidity: list[float] = Field(default_factory=list, description="Ликвидность инструментов")

    model_config = {"frozen": True}
