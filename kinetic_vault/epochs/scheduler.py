"""EpochScheduler — адаптивные эпохи и их расчёт (crank).

Жизненный цикл:
    ACTIVE → SETTLING → SETTLED → (новая) ACTIVE

Длительность следующей эпохи зависит от текущей волатильности:
- нет замеров → base_duration
- v <= low_vol_threshold → max_duration
- v >= high_vol_threshold → min_duration
- между порогами: линейно от max к min
затем делится на speed_multiplier (per-mille) и ограничивается [min, max].

Flash trigger: current >= high_vol_threshold и эпоха старше flash_guard →
end_time активной эпохи подтягивается к моменту наблюдения.

Конкурентность: crank выполняется под lock, переход ACTIVE→SETTLING — через
compare-and-set по тегу состояния; ровно один конкурентный crank выигрывает,
остальные получают AlreadySettled.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

from kinetic_vault.config import EpochConfig
from kinetic_vault.core.domain.epoch import Epoch, EpochState, VolatilityState
from kinetic_vault.core.domain.tranche import DrawdownEvent
from kinetic_vault.core.errors import AlreadySettled, EpochNotReady
from kinetic_vault.core.math.fixed_point import PERMILLE, clamp, mul_div, require_int
from kinetic_vault.epochs.volatility import VolatilityMonitor
from kinetic_vault.tranches.ledger import TrancheLedger, WaterfallResult

logger = logging.getLogger(__name__)


def optimal_duration(volatility: VolatilityState, config: EpochConfig) -> int:
    """Длительность эпохи (сек) для данного состояния волатильности.

    Монотонно не возрастает по volatility.current, результат всегда в
    [min_duration, max_duration].

    Examples:
        >>> optimal_duration(VolatilityState(current=7000, samples=1), EpochConfig())
        3600
    """
    if not volatility.has_sample:
        return config.base_duration

    v = volatility.current
    if v <= config.low_vol_threshold:
        duration = config.max_duration
    elif v >= config.high_vol_threshold:
        duration = config.min_duration
    else:
        span = config.max_duration - config.min_duration
        duration = config.max_duration - mul_div(
            span,
            v - config.low_vol_threshold,
            config.high_vol_threshold - config.low_vol_threshold,
        )

    duration = mul_div(duration, PERMILLE, config.speed_multiplier)
    return clamp(duration, config.min_duration, config.max_duration)


@dataclass(frozen=True)
class SettlementResult:
    """Результат успешного crank."""

    settled_epoch: Epoch
    next_epoch: Epoch
    waterfall: WaterfallResult
    drawdown: Optional[DrawdownEvent]
    flash_triggered: bool


class EpochScheduler:
    """Владелец лога эпох (append-only, последняя запись = текущая эпоха).

    Один scheduler работает в паре с одним TrancheLedger; лестница
    создаёт по паре на ступень.
    """

    def __init__(
        self,
        ledger: TrancheLedger,
        monitor: Optional[VolatilityMonitor] = None,
        config: Optional[EpochConfig] = None,
    ):
        self.config = config or EpochConfig()
        self.ledger = ledger
        self.monitor = monitor or VolatilityMonitor()
        self._epochs: List[Epoch] = []
        self._lock = threading.RLock()

    # =========================================================================
    # READ ACCESSORS
    # =========================================================================

    @property
    def current_epoch(self) -> Optional[Epoch]:
        with self._lock:
            return self._epochs[-1] if self._epochs else None

    @property
    def started(self) -> bool:
        with self._lock:
            return bool(self._epochs)

    @property
    def settled_count(self) -> int:
        """Число рассчитанных эпох."""
        with self._lock:
            return sum(1 for e in self._epochs if e.is_settled)

    @property
    def last_settled(self) -> Optional[Epoch]:
        with self._lock:
            for epoch in reversed(self._epochs):
                if epoch.is_settled:
                    return epoch
            return None

    def history(self) -> List[Epoch]:
        """Копия лога эпох."""
        with self._lock:
            return list(self._epochs)

    def calculate_optimal_duration(self) -> int:
        return optimal_duration(self.monitor.state, self.config)

    def time_remaining(self, now: int) -> int:
        epoch = self.current_epoch
        if epoch is None:
            return 0
        return epoch.time_remaining(now)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def genesis(self, now: int) -> Epoch:
        """Открыть эпоху 1.

        Raises:
            AlreadySettled: лог эпох уже начат
        """
        require_int(now, "now")
        with self._lock:
            if self._epochs:
                raise AlreadySettled("epoch log already started", current=self._epochs[-1].index)
            epoch = self._open_epoch(index=1, now=now)
            self._epochs.append(epoch)

        logger.info("epoch 1 opened: [%d, %d]", epoch.start_time, epoch.end_time)
        return epoch

    def _open_epoch(self, index: int, now: int) -> Epoch:
        state = self.ledger.state
        return Epoch(
            index=index,
            start_time=now,
            end_time=now + self.calculate_optimal_duration(),
            state=EpochState.ACTIVE,
            senior_assets_at_start=state.senior_assets,
            junior_assets_at_start=state.junior_assets,
        )

    def _flash_condition(self, epoch: Epoch, now: int) -> bool:
        volatility = self.monitor.state
        return (
            volatility.has_sample
            and volatility.current >= self.config.high_vol_threshold
            and now - epoch.start_time > self.config.flash_guard
        )

    def check_flash_trigger(self, now: int) -> bool:
        """Проверка flash trigger для активной эпохи.

        При срабатывании и end_time > now подтягивает end_time к now
        (единственный пересмотр end_time за жизнь эпохи).
        """
        require_int(now, "now")
        with self._lock:
            epoch = self.current_epoch
            if epoch is None or epoch.state != EpochState.ACTIVE:
                return False
            if not self._flash_condition(epoch, now):
                return False
            if epoch.end_time > now:
                self._epochs[-1] = epoch.model_copy(
                    update={"end_time": max(now, epoch.start_time), "flash_triggered": True}
                )
                logger.info(
                    "flash trigger: epoch %d end_time pulled from %d to %d",
                    epoch.index,
                    epoch.end_time,
                    now,
                )
            return True

    def _compare_and_set(self, expected: EpochState, new_epoch: Epoch) -> None:
        current = self._epochs[-1]
        if current.index != new_epoch.index or current.state != expected:
            raise AlreadySettled(
                f"epoch {new_epoch.index} is no longer {expected.value}",
                epoch=current.index,
                state=current.state.value,
            )
        self._epochs[-1] = new_epoch

    def try_advance(
        self, now: int, pnl: int, expected_index: Optional[int] = None
    ) -> SettlementResult:
        """Crank: расчёт текущей эпохи и открытие следующей.

        Args:
            now: время crank (сек)
            pnl: P&L эпохи в минимальных единицах (со знаком)
            expected_index: эпоха, которую вызывающий собирается рассчитать

        Raises:
            EpochNotReady: now < end_time и flash trigger не сработал
            AlreadySettled: эпоха уже не ACTIVE или expected_index устарел
            Insolvent: убыток больше активов (ничего не изменено)
        """
        require_int(now, "now")
        require_int(pnl, "pnl")

        with self._lock:
            epoch = self.current_epoch
            if epoch is None:
                raise EpochNotReady("no epoch opened yet")
            if expected_index is not None and expected_index != epoch.index:
                raise AlreadySettled(
                    f"epoch {expected_index} is not current (current is {epoch.index})",
                    expected=expected_index,
                    current=epoch.index,
                )
            if epoch.state != EpochState.ACTIVE:
                raise AlreadySettled(f"epoch {epoch.index} is {epoch.state.value}")

            flash = not epoch.is_due(now) and self._flash_condition(epoch, now)
            if not epoch.is_due(now) and not flash:
                raise EpochNotReady(
                    f"epoch {epoch.index} ends at {epoch.end_time}",
                    now=now,
                    end_time=epoch.end_time,
                )

            # Чистый расчёт: Insolvent поднимается до любой мутации
            waterfall = self.ledger.compute_waterfall(pnl)

            settling = epoch.model_copy(
                update={
                    "state": EpochState.SETTLING,
                    "end_time": now if flash else epoch.end_time,
                    "flash_triggered": epoch.flash_triggered or flash,
                }
            )
            self._compare_and_set(EpochState.ACTIVE, settling)

            self.ledger.settle_epoch(epoch.index, pnl, waterfall)

            settled = settling.model_copy(
                update={
                    "state": EpochState.SETTLED,
                    "realized_return_bps": waterfall.realized_return_bps,
                    "pnl": pnl,
                }
            )
            self._compare_and_set(EpochState.SETTLING, settled)

            drawdown = self.ledger.record_drawdown(epoch.index, waterfall, now)

            next_epoch = self._open_epoch(index=epoch.index + 1, now=now)
            self._epochs.append(next_epoch)

        logger.info(
            "epoch %d settled: pnl=%d return_bps=%d flash=%s; epoch %d ends at %d",
            settled.index,
            pnl,
            waterfall.realized_return_bps,
            settled.flash_triggered,
            next_epoch.index,
            next_epoch.end_time,
        )
        return SettlementResult(
            settled_epoch=settled,
            next_epoch=next_epoch,
            waterfall=waterfall,
            drawdown=drawdown,
            flash_triggered=settled.flash_triggered,
        )
