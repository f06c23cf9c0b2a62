"""VaultEngine — фасад, связывающий все компоненты движка.

Поток данных:
    VolatilityMonitor → EpochScheduler → TrancheLedger ⇄ KineticFeeCurve
        → {DrawdownShieldPool, YieldTeleportPool}
    LadderAllocator — независимые пары scheduler+ledger (общий монитор)

Crank эпохи — одна логическая транзакция под общим lock:
    расчёт waterfall → DrawdownEvent → выплаты shield → старение полисов
    → эпоха teleport-пула → обновление junior yield buffer
Любая ошибка поднимается до первой мутации (Insolvent, EpochNotReady,
AlreadySettled); после успешного расчёта шаги не могут завершиться ошибкой.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Union

from kinetic_vault.config import VaultConfig
from kinetic_vault.core.domain.commands import (
    AdvanceEpoch,
    AdvanceYield,
    CancelShield,
    ClaimShield,
    ContributeToShield,
    Deposit,
    DepositLadder,
    EarlyRedeem,
    PurchaseShield,
    RebalanceLadder,
    RedeemNote,
    SettleRung,
    TransferNote,
    VaultCommand,
    Withdraw,
    parse_command,
)
from kinetic_vault.core.domain.epoch import Epoch, VolatilityState
from kinetic_vault.core.domain.market import MarketSnapshot
from kinetic_vault.core.domain.snapshot import VaultSnapshot
from kinetic_vault.core.domain.tranche import DrawdownEvent, FeeRates, Tranche, TrancheState
from kinetic_vault.core.errors import AlreadySettled, InvalidParameter
from kinetic_vault.core.math.fixed_point import require_non_negative, require_positive
from kinetic_vault.epochs.scheduler import EpochScheduler, SettlementResult
from kinetic_vault.epochs.volatility import VolatilityMonitor
from kinetic_vault.fees.kinetic_curve import KineticFeeCurve
from kinetic_vault.ladder.allocator import LadderAllocator
from kinetic_vault.shield.pool import DrawdownShieldPool, ShieldClaim
from kinetic_vault.teleport.pool import YieldTeleportPool
from kinetic_vault.tranches.ledger import TrancheLedger, WithdrawResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrankResult:
    """Итог crank: расчёт эпохи и его последствия для пулов."""

    settlement: SettlementResult
    drawdown: Optional[DrawdownEvent]
    claims: List[ShieldClaim]
    expired_policies: int
    matured_notes: int
    junior_yield_buffer: int

    @property
    def total_payout(self) -> int:
        return sum(c.payout for c in self.claims)


class VaultEngine:
    """Kinetic Vault: транши, адаптивные эпохи, shield и teleport пулы, лестница."""

    def __init__(self, config: Optional[VaultConfig] = None):
        self.config = config or VaultConfig()
        self.monitor = VolatilityMonitor(self.config.volatility)
        self.ledger = TrancheLedger()
        self.scheduler = EpochScheduler(self.ledger, self.monitor, self.config.epoch)
        self.fee_curve = KineticFeeCurve(self.config.fees)
        self.shield = DrawdownShieldPool(self.config.shield)
        self.teleport = YieldTeleportPool(self.config.teleport)
        self.ladder = LadderAllocator(self.config.ladder, monitor=self.monitor)
        self._lock = threading.RLock()

    @classmethod
    def from_yaml(cls, path: str | Path) -> "VaultEngine":
        return cls(VaultConfig.from_yaml(path))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "VaultEngine":
        return cls(VaultConfig.from_dict(raw))

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, now: int) -> Epoch:
        """Genesis: эпоха 1 основного пула и всех ступеней лестницы."""
        with self._lock:
            if self.scheduler.started or self.ladder.started:
                raise AlreadySettled("vault already started")
            epoch = self.scheduler.genesis(now)
            self.ladder.genesis(now)
        logger.info("vault started at %d", now)
        return epoch

    def record_volatility(self, sample: int, timestamp: int) -> VolatilityState:
        return self.monitor.record(sample, timestamp)

    def check_flash_trigger(self, now: int) -> bool:
        with self._lock:
            return self.scheduler.check_flash_trigger(now)

    # =========================================================================
    # LEDGER
    # =========================================================================

    def deposit(self, amount: int, tranche: Tranche) -> TrancheState:
        with self._lock:
            return self.ledger.deposit(amount, tranche)

    def withdraw(self, amount: int, tranche: Tranche) -> WithdrawResult:
        with self._lock:
            return self.ledger.withdraw(amount, tranche)

    def contribute_to_shield(self, amount: int) -> int:
        """Перевод junior-средств в резервы shield-пула.

        Returns:
            Резервы пула после взноса
        """
        require_positive(amount, "amount")
        with self._lock:
            self.ledger.transfer_to_shield(amount)
            return self.shield.fund_pool(amount)

    # =========================================================================
    # FEES
    # =========================================================================

    def update_fees(
        self, utilization: Union[float, Decimal, int], performance_bps: int, now: int
    ) -> FeeRates:
        """Пересчёт ставок кривой и установка их в ledger пула и ступеней."""
        with self._lock:
            rates = self.fee_curve.update(utilization, performance_bps, now)
            self.ledger.set_fee_rates(rates)
            self.ladder.set_fee_rates(rates)
        return rates

    def update_fees_from_snapshot(self, snapshot: MarketSnapshot) -> FeeRates:
        with self._lock:
            rates = self.fee_curve.update_from_snapshot(snapshot)
            self.ledger.set_fee_rates(rates)
            self.ladder.set_fee_rates(rates)
        return rates

    # =========================================================================
    # CRANK
    # =========================================================================

    def _refresh_yield_buffer(self) -> int:
        forecast = self.ledger.junior_yield_forecast(
            horizon=self.config.teleport.forecast_horizon,
            window=self.config.teleport.forecast_window,
        )
        return self.teleport.update_junior_yield_buffer(sum(p.risk_adjusted for p in forecast))

    def crank(self, now: int, pnl: int, expected_index: Optional[int] = None) -> CrankResult:
        """Расчёт текущей эпохи вместе с выплатами shield и обновлением пулов.

        Raises:
            EpochNotReady, AlreadySettled, Insolvent: состояние не изменено
        """
        with self._lock:
            settlement = self.scheduler.try_advance(now, pnl, expected_index)
            index = settlement.settled_epoch.index

            claims: List[ShieldClaim] = []
            drawdown = settlement.drawdown
            if drawdown is not None:
                self.shield.record_drawdown(drawdown)
                claims = self.shield.claim_all_eligible()
                drawdown = self.shield.latest_drawdown

            expired = self.shield.on_epoch_settled(index)
            matured = self.teleport.on_epoch_settled(index)
            buffer = self._refresh_yield_buffer()

        return CrankResult(
            settlement=settlement,
            drawdown=drawdown,
            claims=claims,
            expired_policies=expired,
            matured_notes=matured,
            junior_yield_buffer=buffer,
        )

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def execute(self, command: Union[VaultCommand, Mapping[str, Any]]):
        """Единая точка обработки VaultCommand (модель или dict с полем kind).

        Raises:
            pydantic.ValidationError: dict не разбирается в команду
            VaultError: ошибка соответствующего компонента
        """
        if isinstance(command, Mapping):
            command = parse_command(dict(command))

        with self._lock:
            if isinstance(command, ContributeToShield):
                return self.contribute_to_shield(command.amount)
            if isinstance(command, (Deposit, Withdraw)):
                return self.ledger.handle(command)
            if isinstance(command, AdvanceEpoch):
                return self.crank(command.now, command.pnl, command.expected_index)
            if isinstance(command, (PurchaseShield, ClaimShield, CancelShield)):
                return self.shield.handle(command)
            if isinstance(command, (AdvanceYield, RedeemNote, EarlyRedeem, TransferNote)):
                return self.teleport.handle(command)
            if isinstance(command, (DepositLadder, SettleRung, RebalanceLadder)):
                return self.ladder.handle(command)
        raise InvalidParameter(f"unsupported command: {type(command).__name__}")

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def snapshot(self, now: int) -> VaultSnapshot:
        """Read-only снапшот всех компонентов (контракт vault_snapshot.json)."""
        require_non_negative(now, "now")
        with self._lock:
            return VaultSnapshot(
                ts=now,
                epoch=self.scheduler.current_epoch,
                optimal_duration=self.scheduler.calculate_optimal_duration(),
                volatility=self.monitor.state,
                tranches=self.ledger.state,
                fee_rates=self.ledger.fee_rates,
                shield_pool=self.shield.pool_state(),
                teleport_pool=self.teleport.pool_state(),
                ladder=self.ladder.rung_states(),
            )
