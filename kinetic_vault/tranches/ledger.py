"""TrancheLedger — балансы senior/junior и waterfall распределения P&L.

Waterfall эпохи:
1. coupon = senior * senior_coupon_bps / 10000 (вниз — платит движок)
2. senior получает coupon, junior получает pnl - coupon
3. если junior уходит в минус — недостача переходит на senior (spillover)
4. если и senior уходит в минус — Insolvent, состояние не меняется

Инвариант сохранения:
    senior + junior = deposits - withdrawals - contributions + cumulative pnl

TrancheLedger — единственный писатель TrancheState и FeeRates.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

from kinetic_vault.core.domain.commands import (
    ContributeToShield,
    Deposit,
    LedgerCommand,
    Withdraw,
)
from kinetic_vault.core.domain.tranche import (
    DrawdownEvent,
    FeeRates,
    Tranche,
    TrancheState,
    YieldForecastPoint,
)
from kinetic_vault.core.errors import (
    InsufficientLiquidity,
    Insolvent,
    InvalidParameter,
)
from kinetic_vault.core.math.fixed_point import (
    BPS,
    PPM,
    Rounding,
    bps_of,
    div_trunc,
    mul_div,
    require_int,
    require_positive,
)

logger = logging.getLogger(__name__)


DEFAULT_FEE_RATES = FeeRates(
    management_fee_bps=50,
    performance_fee_bps=1000,
    senior_coupon_bps=50,
    entry_fee_bps=0,
    exit_fee_bps=10,
    last_update_time=0,
)

# Прогноз junior-доходности: уверенность падает на 300 bps за эпоху, не ниже 70%
FORECAST_CONFIDENCE_DECAY_BPS = 300
FORECAST_CONFIDENCE_FLOOR_BPS = 7000

# Глубина истории расчётов (прирост junior) и событий просадки
MAX_JUNIOR_HISTORY = 365
MAX_DRAWDOWN_EVENTS = 100


@dataclass(frozen=True)
class WaterfallResult:
    """Распределение P&L одной эпохи (до применения к состоянию)."""

    pnl: int
    senior_before: int
    junior_before: int
    coupon: int
    spillover: int
    senior_after: int
    junior_after: int
    realized_return_bps: int

    @property
    def total_before(self) -> int:
        return self.senior_before + self.junior_before

    @property
    def total_after(self) -> int:
        return self.senior_after + self.junior_after

    @property
    def junior_gain(self) -> int:
        return self.junior_after - self.junior_before


@dataclass(frozen=True)
class WithdrawResult:
    """Результат вывода: gross списан с транша, net получает пользователь."""

    tranche: Tranche
    gross: int
    fee: int
    net: int


class TrancheLedger:
    """Учёт траншей одного пула (или одной ступени лестницы)."""

    def __init__(self, fee_rates: Optional[FeeRates] = None):
        self._state = TrancheState()
        self._fee_rates = fee_rates or DEFAULT_FEE_RATES
        self._lock = threading.RLock()

        self.total_deposits = 0
        self.total_withdrawals = 0
        self.total_contributions = 0
        self.cumulative_pnl = 0
        self.fees_collected = 0

        # Внесённый капитал по траншам (база NAV)
        self._principal = {Tranche.SENIOR: 0, Tranche.JUNIOR: 0}
        self._junior_history: Deque[Tuple[int, int]] = deque(maxlen=MAX_JUNIOR_HISTORY)
        self._drawdowns: Deque[DrawdownEvent] = deque(maxlen=MAX_DRAWDOWN_EVENTS)
        self.last_settled_epoch = 0

    # =========================================================================
    # READ ACCESSORS
    # =========================================================================

    @property
    def state(self) -> TrancheState:
        return self._state

    @property
    def fee_rates(self) -> FeeRates:
        return self._fee_rates

    @property
    def drawdowns(self) -> List[DrawdownEvent]:
        with self._lock:
            return list(self._drawdowns)

    def expected_total(self) -> int:
        """Сумма активов, следующая из истории операций."""
        return (
            self.total_deposits
            - self.total_withdrawals
            - self.total_contributions
            + self.cumulative_pnl
        )

    def nav(self, tranche: Tranche) -> int:
        """NAV транша на единицу внесённого капитала (ppm, 1_000_000 = 1.0)."""
        with self._lock:
            principal = self._principal[tranche]
            if principal == 0:
                return PPM
            return mul_div(self._state.assets_of(tranche), PPM, principal)

    def senior_apy_bps(self, epochs_per_year: int = 365) -> int:
        """Простая годовая доходность senior по текущему купону."""
        if epochs_per_year <= 0:
            raise InvalidParameter(f"epochs_per_year must be positive, got {epochs_per_year}")
        return self._fee_rates.senior_coupon_bps * epochs_per_year

    def junior_yield_history(self) -> List[Tuple[int, int]]:
        """Пары (эпоха, прирост junior) в порядке расчёта."""
        with self._lock:
            return list(self._junior_history)

    def junior_yield_forecast(self, horizon: int = 12, window: int = 8) -> List[YieldForecastPoint]:
        """Прогноз junior-доходности на horizon будущих эпох.

        Ожидаемая доходность — среднее прироста junior за последние window
        эпох (не меньше 0). Уверенность падает на 300 bps за эпоху,
        не ниже 7000 bps.
        """
        if horizon <= 0 or window <= 0:
            raise InvalidParameter("horizon and window must be positive")

        with self._lock:
            recent = [gain for _, gain in list(self._junior_history)[-window:]]
            start = self.last_settled_epoch + 1

        expected = max(0, sum(recent) // len(recent)) if recent else 0

        points = []
        for i in range(horizon):
            confidence = max(
                FORECAST_CONFIDENCE_FLOOR_BPS, BPS - FORECAST_CONFIDENCE_DECAY_BPS * i
            )
            points.append(
                YieldForecastPoint(
                    epoch=start + i,
                    expected_yield=expected,
                    confidence_bps=confidence,
                    risk_adjusted=bps_of(expected, confidence),
                )
            )
        return points

    # =========================================================================
    # DEPOSITS / WITHDRAWALS
    # =========================================================================

    def deposit(self, amount: int, tranche: Tranche) -> TrancheState:
        """Депозит в транш; entry fee (вверх) удерживается с суммы.

        Raises:
            InvalidAmount: amount <= 0
        """
        require_positive(amount, "amount")
        tranche = Tranche(tranche)

        with self._lock:
            fee = bps_of(amount, self._fee_rates.entry_fee_bps, Rounding.UP)
            credited = amount - fee
            self._state = self._state.with_assets(
                tranche, self._state.assets_of(tranche) + credited
            )
            self._principal[tranche] += credited
            self.total_deposits += credited
            self.fees_collected += fee

        logger.debug("deposit %d into %s (fee %d)", amount, tranche.value, fee)
        return self._state

    def withdraw(self, amount: int, tranche: Tranche) -> WithdrawResult:
        """Вывод из транша; exit fee (вверх) удерживается с выплаты.

        Raises:
            InvalidAmount: amount <= 0
            InsufficientLiquidity: amount больше баланса транша
        """
        require_positive(amount, "amount")
        tranche = Tranche(tranche)

        with self._lock:
            balance = self._state.assets_of(tranche)
            if amount > balance:
                raise InsufficientLiquidity(
                    f"{tranche.value} tranche holds {balance}, requested {amount}",
                    balance=balance,
                    requested=amount,
                )
            fee = bps_of(amount, self._fee_rates.exit_fee_bps, Rounding.UP)

            principal = self._principal[tranche]
            self._principal[tranche] = principal - min(
                principal, mul_div(principal, amount, balance, Rounding.UP)
            )
            self._state = self._state.with_assets(tranche, balance - amount)
            self.total_withdrawals += amount
            self.fees_collected += fee

        logger.debug("withdraw %d from %s (fee %d)", amount, tranche.value, fee)
        return WithdrawResult(tranche=tranche, gross=amount, fee=fee, net=amount - fee)

    def transfer_to_shield(self, amount: int) -> TrancheState:
        """Взнос junior-транша в резервы shield-пула.

        Raises:
            InvalidAmount: amount <= 0
            InsufficientLiquidity: amount больше junior баланса
        """
        require_positive(amount, "amount")

        with self._lock:
            junior = self._state.junior_assets
            if amount > junior:
                raise InsufficientLiquidity(
                    f"junior tranche holds {junior}, requested {amount}",
                    balance=junior,
                    requested=amount,
                )
            principal = self._principal[Tranche.JUNIOR]
            self._principal[Tranche.JUNIOR] = principal - min(
                principal, mul_div(principal, amount, junior, Rounding.UP)
            )
            self._state = self._state.with_assets(Tranche.JUNIOR, junior - amount)
            self.total_contributions += amount

        logger.info("junior contributed %d to shield pool", amount)
        return self._state

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    def compute_waterfall(self, pnl: int) -> WaterfallResult:
        """Чистый расчёт waterfall по текущему состоянию.

        Raises:
            Insolvent: убыток больше суммарных активов
        """
        require_int(pnl, "pnl")

        with self._lock:
            senior = self._state.senior_assets
            junior = self._state.junior_assets
            coupon_bps = self._fee_rates.senior_coupon_bps

        coupon = bps_of(senior, coupon_bps)
        senior_after = senior + coupon
        junior_after = junior + pnl - coupon
        spillover = 0

        if junior_after < 0:
            spillover = -junior_after
            senior_after -= spillover
            junior_after = 0

        if senior_after < 0:
            logger.warning(
                "insolvent waterfall: senior=%d junior=%d pnl=%d", senior, junior, pnl
            )
            raise Insolvent(
                f"loss {-pnl} exceeds total assets {senior + junior}",
                senior_assets=senior,
                junior_assets=junior,
                pnl=pnl,
            )

        before = senior + junior
        realized = div_trunc(pnl * BPS, before) if before > 0 else 0

        return WaterfallResult(
            pnl=pnl,
            senior_before=senior,
            junior_before=junior,
            coupon=coupon,
            spillover=spillover,
            senior_after=senior_after,
            junior_after=junior_after,
            realized_return_bps=realized,
        )

    def settle_epoch(
        self, epoch: int, pnl: int, waterfall: Optional[WaterfallResult] = None
    ) -> WaterfallResult:
        """Применить waterfall эпохи к состоянию.

        waterfall, рассчитанный заранее через compute_waterfall, применяется
        только если состояние с тех пор не менялось.

        Raises:
            Insolvent: убыток больше суммарных активов
            InvalidParameter: waterfall рассчитан по устаревшему состоянию
        """
        require_int(epoch, "epoch")

        with self._lock:
            if waterfall is None:
                waterfall = self.compute_waterfall(pnl)
            elif (
                waterfall.pnl != pnl
                or waterfall.senior_before != self._state.senior_assets
                or waterfall.junior_before != self._state.junior_assets
            ):
                raise InvalidParameter("waterfall does not match current tranche state")

            self._state = TrancheState(
                senior_assets=waterfall.senior_after,
                junior_assets=waterfall.junior_after,
            )
            self.cumulative_pnl += pnl
            self._junior_history.append((epoch, waterfall.junior_gain))
            self.last_settled_epoch = epoch

        logger.debug(
            "epoch %d waterfall: coupon=%d spillover=%d senior=%d junior=%d",
            epoch,
            waterfall.coupon,
            waterfall.spillover,
            waterfall.senior_after,
            waterfall.junior_after,
        )
        return waterfall

    def record_drawdown(
        self, epoch: int, waterfall: WaterfallResult, timestamp: int = 0
    ) -> Optional[DrawdownEvent]:
        """DrawdownEvent для убыточной эпохи или эпохи со spillover на senior.

        Прибыльная эпоха, в которой junior не покрыл купон, даёт событие с
        drawdown_bps = 0: spillover записан, shield-полисы не срабатывают.
        None, если убытка и spillover нет.
        """
        if waterfall.pnl >= 0 and waterfall.spillover == 0:
            return None

        total = waterfall.total_before
        loss = max(0, -waterfall.pnl)
        drawdown_bps = mul_div(loss, BPS, total) if total > 0 else 0
        event = DrawdownEvent(
            epoch=epoch,
            drawdown_bps=drawdown_bps,
            timestamp=timestamp,
            spillover=waterfall.spillover,
        )
        with self._lock:
            self._drawdowns.append(event)

        logger.info(
            "drawdown in epoch %d: %d bps (spillover %d)", epoch, drawdown_bps, waterfall.spillover
        )
        return event

    # =========================================================================
    # FEES
    # =========================================================================

    def set_fee_rates(self, rates: FeeRates) -> None:
        with self._lock:
            self._fee_rates = rates

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def handle(self, command: LedgerCommand):
        """Единая точка обработки LedgerCommand."""
        if isinstance(command, Deposit):
            return self.deposit(command.amount, command.tranche)
        if isinstance(command, Withdraw):
            return self.withdraw(command.amount, command.tranche)
        if isinstance(command, ContributeToShield):
            return self.transfer_to_shield(command.amount)
        raise InvalidParameter(f"unsupported ledger command: {type(command).__name__}")
