"""LadderAllocator — лестница эпох разной длительности.

Каждая ступень — собственная пара EpochScheduler + TrancheLedger с
фиксированной длительностью эпохи. Ступени рассчитываются независимо.

Депозит делится по весам (bps, сумма = 10000):
    allocation_i = amount * w_i // 10000
остаток от округления уходит на самую тяжёлую ступень, так что сумма
аллокаций всегда равна amount.

Ребалансировка проспективна: меняет веса будущих депозитов, уже
размещённые средства остаются в своих ступенях.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from kinetic_vault.config import EpochConfig, LadderConfig
from kinetic_vault.core.domain.commands import (
    DepositLadder,
    LadderCommand,
    RebalanceLadder,
    SettleRung,
)
from kinetic_vault.core.domain.ladder import LadderRung
from kinetic_vault.core.domain.tranche import FeeRates, Tranche
from kinetic_vault.core.errors import AlreadySettled, InvalidParameter
from kinetic_vault.core.math.fixed_point import BPS, require_int, require_positive, require_weights
from kinetic_vault.epochs.scheduler import EpochScheduler, SettlementResult
from kinetic_vault.epochs.volatility import VolatilityMonitor
from kinetic_vault.tranches.ledger import TrancheLedger

logger = logging.getLogger(__name__)


@dataclass
class _Rung:
    duration: int
    ledger: TrancheLedger
    scheduler: EpochScheduler


class LadderAllocator:
    def __init__(
        self,
        config: Optional[LadderConfig] = None,
        monitor: Optional[VolatilityMonitor] = None,
        fee_rates: Optional[FeeRates] = None,
    ):
        self.config = config or LadderConfig()
        self.monitor = monitor or VolatilityMonitor()
        self._rungs: List[_Rung] = []
        for duration in self.config.rung_durations:
            ledger = TrancheLedger(fee_rates=fee_rates)
            scheduler = EpochScheduler(ledger, self.monitor, EpochConfig.fixed(duration))
            self._rungs.append(_Rung(duration=duration, ledger=ledger, scheduler=scheduler))
        self._weights: Tuple[int, ...] = tuple(self.config.initial_weights_bps)
        self._lock = threading.RLock()

    @property
    def weights(self) -> Tuple[int, ...]:
        return self._weights

    def __len__(self) -> int:
        return len(self._rungs)

    def _rung(self, index: int) -> _Rung:
        require_int(index, "index")
        if not 0 <= index < len(self._rungs):
            raise InvalidParameter(
                f"rung index must be in [0, {len(self._rungs) - 1}], got {index}", index=index
            )
        return self._rungs[index]

    def ledger(self, index: int) -> TrancheLedger:
        return self._rung(index).ledger

    def scheduler(self, index: int) -> EpochScheduler:
        return self._rung(index).scheduler

    def set_fee_rates(self, rates: FeeRates) -> None:
        """Ставки кривой комиссий для ledger каждой ступени."""
        with self._lock:
            for rung in self._rungs:
                rung.ledger.set_fee_rates(rates)

    @property
    def started(self) -> bool:
        return any(rung.scheduler.started for rung in self._rungs)

    def genesis(self, now: int) -> None:
        """Открыть эпоху 1 на каждой ступени.

        Raises:
            AlreadySettled: хотя бы одна ступень уже начата (ни одна не открыта)
        """
        require_int(now, "now")
        with self._lock:
            if self.started:
                raise AlreadySettled("ladder already started")
            for rung in self._rungs:
                rung.scheduler.genesis(now)

    # =========================================================================
    # ALLOCATION
    # =========================================================================

    def allocate(self, amount: int, weights_bps: Sequence[int]) -> List[int]:
        """Разбиение суммы по весам без изменения состояния."""
        weights = require_weights(weights_bps, expected_len=len(self._rungs))
        allocations = [amount * w // BPS for w in weights]
        heaviest = weights.index(max(weights))
        allocations[heaviest] += amount - sum(allocations)
        return allocations

    def deposit_ladder(
        self,
        amount: int,
        weights_bps: Optional[Sequence[int]] = None,
        tranche: Tranche = Tranche.SENIOR,
    ) -> List[int]:
        """Депозит по лестнице.

        Args:
            amount: сумма депозита
            weights_bps: веса ступеней (по умолчанию — текущие веса)
            tranche: транш, в который зачисляется каждая аллокация

        Returns:
            Аллокации по ступеням (сумма = amount)

        Raises:
            InvalidAmount: amount <= 0
            InvalidParameter: веса не по одному на ступень или сумма != 10000
        """
        require_positive(amount, "amount")
        tranche = Tranche(tranche)

        with self._lock:
            weights = self._weights if weights_bps is None else tuple(weights_bps)
            allocations = self.allocate(amount, weights)
            for rung, allocation in zip(self._rungs, allocations):
                if allocation > 0:
                    rung.ledger.deposit(allocation, tranche)
            if weights_bps is not None:
                self._weights = require_weights(weights, expected_len=len(self._rungs))

        logger.info("ladder deposit %d into %s: %s", amount, tranche.value, allocations)
        return allocations

    def rebalance_ladder(self, new_weights: Sequence[int]) -> Tuple[int, ...]:
        """Новые веса для будущих депозитов.

        Raises:
            InvalidParameter: веса не по одному на ступень или сумма != 10000
        """
        weights = require_weights(new_weights, expected_len=len(self._rungs))
        with self._lock:
            self._weights = weights
        logger.info("ladder rebalanced: %s", list(weights))
        return weights

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    def settle_rung(
        self, index: int, now: int, pnl: int, expected_index: Optional[int] = None
    ) -> SettlementResult:
        """Crank одной ступени; остальные ступени не затрагиваются."""
        rung = self._rung(index)
        return rung.scheduler.try_advance(now, pnl, expected_index)

    # =========================================================================
    # READ ACCESSORS
    # =========================================================================

    def rung_states(self) -> List[LadderRung]:
        with self._lock:
            states = []
            for i, (rung, weight) in enumerate(zip(self._rungs, self._weights)):
                state = rung.ledger.state
                current = rung.scheduler.current_epoch
                last = rung.scheduler.last_settled
                states.append(
                    LadderRung(
                        index=i,
                        duration=rung.duration,
                        weight_bps=weight,
                        epoch_count=rung.scheduler.settled_count,
                        next_settlement=current.end_time if current else 0,
                        senior_assets=state.senior_assets,
                        junior_assets=state.junior_assets,
                        total_assets=state.total_assets,
                        last_return_bps=last.realized_return_bps if last else 0,
                    )
                )
            return states

    def next_settlement(self) -> Optional[Tuple[int, int]]:
        """(индекс ступени, end_time) ближайшего расчёта; None до genesis."""
        candidates = [
            (rung.scheduler.current_epoch.end_time, i)
            for i, rung in enumerate(self._rungs)
            if rung.scheduler.current_epoch is not None
        ]
        if not candidates:
            return None
        end_time, index = min(candidates)
        return index, end_time

    def total_assets(self) -> int:
        return sum(rung.ledger.state.total_assets for rung in self._rungs)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def handle(self, command: LadderCommand):
        """Единая точка обработки LadderCommand."""
        if isinstance(command, DepositLadder):
            return self.deposit_ladder(command.amount, command.weights_bps, command.tranche)
        if isinstance(command, SettleRung):
            return self.settle_rung(command.index, command.now, command.pnl, command.expected_index)
        if isinstance(command, RebalanceLadder):
            return self.rebalance_ladder(command.weights_bps)
        raise InvalidParameter(f"unsupported ladder command: {type(command).__name__}")
