"""VolatilityMonitor — приём замеров волатильности и EMA-сглаживание.

Замер приходит от внешнего коллаборатора (оракул/keeper) как пара
(sample, timestamp); волатильность в bps (7000 = 70%).

historical' = historical * (1 - α) + current * α, α = smoothing_alpha_bps.
Первый замер инициализирует historical самим значением.
"""

import logging
import threading
from typing import Optional

from kinetic_vault.config import VolatilityConfig
from kinetic_vault.core.domain.epoch import VolatilityState
from kinetic_vault.core.errors import InvalidParameter, StaleInput
from kinetic_vault.core.math.fixed_point import BPS, div_trunc, mul_div, require_int

logger = logging.getLogger(__name__)


class VolatilityMonitor:
    """Единственный писатель VolatilityState."""

    def __init__(self, config: Optional[VolatilityConfig] = None):
        self.config = config or VolatilityConfig()
        self._state = VolatilityState()
        self._lock = threading.RLock()

    @property
    def state(self) -> VolatilityState:
        return self._state

    @property
    def has_sample(self) -> bool:
        return self._state.has_sample

    def record(self, sample: int, timestamp: int) -> VolatilityState:
        """Принять замер волатильности.

        Args:
            sample: волатильность (bps, >= 0)
            timestamp: время замера (сек), не раньше предыдущего

        Returns:
            Новое VolatilityState

        Raises:
            InvalidParameter: отрицательный замер или время
            StaleInput: timestamp раньше последнего принятого замера
        """
        require_int(sample, "sample")
        require_int(timestamp, "timestamp")
        if sample < 0:
            raise InvalidParameter(f"volatility sample cannot be negative, got {sample}", sample=sample)
        if timestamp < 0:
            raise InvalidParameter(f"timestamp cannot be negative, got {timestamp}")

        with self._lock:
            prev = self._state
            if prev.has_sample and timestamp < prev.last_update:
                raise StaleInput(
                    f"volatility sample at {timestamp} is older than last update {prev.last_update}",
                    timestamp=timestamp,
                    last_update=prev.last_update,
                )

            if prev.has_sample:
                alpha = self.config.smoothing_alpha_bps
                historical = mul_div(prev.historical, BPS - alpha, BPS) + mul_div(sample, alpha, BPS)
                time_delta = max(timestamp - prev.last_update, 1)
                change_rate = div_trunc(sample - prev.current, time_delta)
            else:
                historical = sample
                change_rate = 0

            self._state = VolatilityState(
                current=sample,
                historical=historical,
                last_update=timestamp,
                change_rate=change_rate,
                samples=prev.samples + 1,
            )

        logger.debug(
            "volatility recorded: current=%d historical=%d change_rate=%d",
            sample,
            historical,
            change_rate,
        )
        return self._state
