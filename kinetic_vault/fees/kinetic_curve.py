"""KineticFeeCurve — комиссии, реагирующие на утилизацию и доходность.

Для каждой из пяти комиссий:

    fee = base
        + utilization_bps * utilization_slope / 10000
        + performance_bps * performance_slope / 10000

затем clamp в [floor, cap] независимо для каждой комиссии.
Расчёт чистый и детерминированный: одинаковый вход → одинаковые ставки.
"""

import logging
import threading
from decimal import Decimal
from typing import Optional, Union

from kinetic_vault.config import FeeCurveConfig, FeeRule
from kinetic_vault.core.domain.market import MarketSnapshot
from kinetic_vault.core.domain.tranche import FeeRates
from kinetic_vault.core.math.fixed_point import (
    BPS,
    clamp,
    fraction_to_bps,
    mul_div,
    require_int,
    require_non_negative,
)

logger = logging.getLogger(__name__)


def _evaluate(rule: FeeRule, utilization_bps: int, performance_bps: int) -> int:
    fee = (
        rule.base_bps
        + mul_div(utilization_bps, rule.utilization_slope_bps, BPS)
        + mul_div(performance_bps, rule.performance_slope_bps, BPS)
    )
    return clamp(fee, rule.floor_bps, rule.cap_bps)


class KineticFeeCurve:
    def __init__(self, config: Optional[FeeCurveConfig] = None):
        self.config = config or FeeCurveConfig()
        self._rates: Optional[FeeRates] = None
        self._lock = threading.RLock()

    @property
    def rates(self) -> Optional[FeeRates]:
        """Последние вычисленные ставки (None до первого update)."""
        return self._rates

    @property
    def last_update_time(self) -> int:
        return self._rates.last_update_time if self._rates else 0

    def compute(self, utilization_bps: int, performance_bps: int, now: int = 0) -> FeeRates:
        """Ставки для утилизации в bps без сохранения состояния."""
        cfg = self.config
        return FeeRates(
            management_fee_bps=_evaluate(cfg.management, utilization_bps, performance_bps),
            performance_fee_bps=_evaluate(cfg.performance, utilization_bps, performance_bps),
            senior_coupon_bps=_evaluate(cfg.senior_coupon, utilization_bps, performance_bps),
            entry_fee_bps=_evaluate(cfg.entry, utilization_bps, performance_bps),
            exit_fee_bps=_evaluate(cfg.exit, utilization_bps, performance_bps),
            last_update_time=now,
        )

    def update(
        self, utilization: Union[float, Decimal, int], performance_bps: int, now: int
    ) -> FeeRates:
        """Пересчёт ставок.

        Args:
            utilization: утилизация как доля [0, 1] (float/Decimal/int)
            performance_bps: скользящая доходность (bps, со знаком)
            now: время пересчёта (сек)

        Raises:
            InvalidParameter: утилизация вне [0, 1]
        """
        utilization_bps = fraction_to_bps(utilization)
        require_int(performance_bps, "performance_bps")
        require_non_negative(now, "now")

        with self._lock:
            self._rates = self.compute(utilization_bps, performance_bps, now)

        logger.debug(
            "fees updated: utilization=%d bps performance=%d bps -> %s",
            utilization_bps,
            performance_bps,
            self._rates.model_dump(),
        )
        return self._rates

    def update_from_snapshot(self, snapshot: MarketSnapshot) -> FeeRates:
        return self.update(
            snapshot.utilization, snapshot.trailing_performance_bps, snapshot.timestamp
        )
