"""DrawdownShieldPool — страхование просадки эпохи.

Премия (платит пользователь, вверх):
    premium = notional * rate_ppm(threshold) * duration_epochs / 10^6

Выплата (платит пул, вниз):
    payout = min(max_claim - total_claimed, notional * f(drawdown) / 10000)

Ограничение ёмкости: полис принимается только если
    outstanding_cover + max_claim <= reserves + premium
поэтому утилизация пула никогда не превышает 100%.

Пул — единственный писатель своих полисов (индекс по id, владелец — поле).
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple

from kinetic_vault.config import ShieldConfig
from kinetic_vault.core.domain.commands import (
    CancelShield,
    ClaimShield,
    PurchaseShield,
    ShieldCommand,
)
from kinetic_vault.core.domain.shield import ShieldPolicy, ShieldPoolState
from kinetic_vault.core.domain.tranche import DrawdownEvent
from kinetic_vault.core.errors import (
    InvalidParameter,
    NotEligible,
    NotOwner,
    PoolSaturated,
)
from kinetic_vault.core.math.fixed_point import (
    BPS,
    PPM,
    Rounding,
    bps_of,
    interpolate_table,
    mul_div,
    ratio_bps,
    require_int,
    require_non_negative,
    require_positive,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShieldClaim:
    """Выплата по полису за одну эпоху."""

    policy_id: int
    owner: str
    epoch: int
    drawdown_bps: int
    payout: int


def _require_owner(owner: object, name: str = "owner") -> str:
    if not isinstance(owner, str) or not owner:
        raise InvalidParameter(f"{name} must be a non-empty string, got {owner!r}")
    return owner


class DrawdownShieldPool:
    def __init__(self, config: Optional[ShieldConfig] = None):
        self.config = config or ShieldConfig()
        self._policies: Dict[int, ShieldPolicy] = {}
        self._next_id = 1
        self._reserves = 0
        self._events: Deque[DrawdownEvent] = deque(maxlen=self.config.max_recent_events)
        self._current_epoch = 0
        self._lock = threading.RLock()

        self.total_premiums = 0
        self.total_payouts = 0
        self.total_refunds = 0

    # =========================================================================
    # PRICING
    # =========================================================================

    def pricing_table(self) -> List[Tuple[int, int]]:
        """Пары (порог bps, премия за эпоху ppm)."""
        return list(self.config.pricing_table)

    def premium_rate_ppm(self, threshold_bps: int) -> int:
        # Ставка — цена пула, округляется вверх
        return interpolate_table(
            self.config.pricing_table,
            threshold_bps,
            mode=self.config.pricing_interpolation,
            rounding=Rounding.UP,
        )

    def quote_premium(self, threshold_bps: int, notional: int, duration_epochs: int) -> int:
        """Премия за весь срок полиса (вверх)."""
        self._validate_terms(threshold_bps, notional, duration_epochs)
        rate = self.premium_rate_ppm(threshold_bps)
        return mul_div(notional * rate, duration_epochs, PPM, Rounding.UP)

    def payout_ratio_bps(self, drawdown_bps: int) -> int:
        """f(drawdown): доля notional к выплате (bps), вниз."""
        return interpolate_table(self.config.payout_curve, drawdown_bps, mode="linear")

    def _validate_terms(self, threshold_bps: int, notional: int, duration_epochs: int) -> None:
        require_int(threshold_bps, "threshold_bps")
        if not self.config.min_threshold_bps <= threshold_bps <= self.config.max_threshold_bps:
            raise InvalidParameter(
                f"threshold must be in [{self.config.min_threshold_bps}, "
                f"{self.config.max_threshold_bps}] bps, got {threshold_bps}",
                threshold_bps=threshold_bps,
            )
        require_positive(notional, "notional")
        require_int(duration_epochs, "duration_epochs")
        if duration_epochs <= 0:
            raise InvalidParameter(
                f"duration_epochs must be positive, got {duration_epochs}",
                duration_epochs=duration_epochs,
            )

    # =========================================================================
    # READ ACCESSORS
    # =========================================================================

    @property
    def reserves(self) -> int:
        return self._reserves

    @property
    def current_epoch(self) -> int:
        return self._current_epoch

    @property
    def latest_drawdown(self) -> Optional[DrawdownEvent]:
        with self._lock:
            return self._events[-1] if self._events else None

    def policy(self, policy_id: int) -> ShieldPolicy:
        with self._lock:
            try:
                return self._policies[policy_id]
            except KeyError:
                raise InvalidParameter(f"unknown policy {policy_id}", policy_id=policy_id) from None

    def outstanding_cover(self) -> int:
        with self._lock:
            return sum(p.remaining_cover for p in self._policies.values())

    def utilization_bps(self) -> int:
        with self._lock:
            return ratio_bps(self.outstanding_cover(), self._reserves, Rounding.UP)

    def pool_state(self) -> ShieldPoolState:
        with self._lock:
            active = [p for p in self._policies.values() if p.active]
            return ShieldPoolState(
                total_reserves=self._reserves,
                total_policies=len(self._policies),
                active_policies=len(active),
                active_claims=sum(1 for p in active if p.total_claimed > 0),
                outstanding_cover=self.outstanding_cover(),
                utilization_bps=self.utilization_bps(),
                min_threshold_bps=self.config.min_threshold_bps,
                max_threshold_bps=self.config.max_threshold_bps,
                current_epoch=self._current_epoch,
            )

    def user_shields(self, owner: str) -> List[ShieldPolicy]:
        with self._lock:
            return [p for _, p in sorted(self._policies.items()) if p.owner == owner]

    def recent_drawdowns(self, n: int = 10) -> List[DrawdownEvent]:
        """Последние n событий просадки, новые первыми."""
        if n <= 0:
            return []
        with self._lock:
            return list(reversed(self._events))[:n]

    # =========================================================================
    # FUNDING
    # =========================================================================

    def fund_pool(self, amount: int) -> int:
        """Пополнение резервов (взносы junior-транша)."""
        require_positive(amount, "amount")
        with self._lock:
            self._reserves += amount
            logger.info("shield pool funded with %d, reserves=%d", amount, self._reserves)
            return self._reserves

    # =========================================================================
    # POLICIES
    # =========================================================================

    def purchase_shield(
        self, owner: str, threshold_bps: int, notional: int, duration_epochs: int
    ) -> ShieldPolicy:
        """Покупка полиса.

        Raises:
            InvalidParameter: порог вне [min, max], notional/duration <= 0
            PoolSaturated: полис поднял бы утилизацию выше 100%
        """
        _require_owner(owner)
        premium = self.quote_premium(threshold_bps, notional, duration_epochs)
        max_claim = bps_of(notional, self.config.cap_ratio_bps)

        with self._lock:
            outstanding = self.outstanding_cover()
            if outstanding + max_claim > self._reserves + premium:
                logger.warning(
                    "shield purchase rejected: outstanding=%d max_claim=%d reserves=%d premium=%d",
                    outstanding,
                    max_claim,
                    self._reserves,
                    premium,
                )
                raise PoolSaturated(
                    "policy would push shield pool utilization above 100%",
                    outstanding=outstanding,
                    max_claim=max_claim,
                    reserves=self._reserves,
                    premium=premium,
                )

            policy = ShieldPolicy(
                id=self._next_id,
                owner=owner,
                threshold_bps=threshold_bps,
                notional=notional,
                premium_paid=premium,
                active=True,
                duration_epochs=duration_epochs,
                epochs_remaining=duration_epochs,
                purchased_epoch=self._current_epoch + 1,
                max_claim=max_claim,
            )
            self._policies[policy.id] = policy
            self._next_id += 1
            self._reserves += premium
            self.total_premiums += premium

        logger.info(
            "shield %d purchased by %s: threshold=%d notional=%d premium=%d epochs=%d",
            policy.id,
            owner,
            threshold_bps,
            notional,
            premium,
            duration_epochs,
        )
        return policy

    def record_drawdown(self, event: DrawdownEvent) -> None:
        """Событие просадки, против которого принимаются claims."""
        with self._lock:
            self._events.append(event)

    def _eligible(self, policy: ShieldPolicy, event: Optional[DrawdownEvent]) -> Optional[str]:
        """Причина отказа или None, если полис может получить выплату."""
        if event is None:
            return "no drawdown recorded"
        if not policy.active:
            return "policy is not active"
        if policy.purchased_epoch > event.epoch:
            return "policy purchased after the drawdown epoch"
        if not policy.covers_epoch(event.epoch):
            return "policy does not cover the drawdown epoch"
        if policy.last_claimed_epoch == event.epoch:
            return "already claimed for this epoch"
        if event.drawdown_bps < policy.threshold_bps:
            return "drawdown below policy threshold"
        if policy.remaining_cover == 0:
            return "claim limit exhausted"
        return None

    def _pay(self, policy: ShieldPolicy, event: DrawdownEvent) -> ShieldClaim:
        ratio = self.payout_ratio_bps(event.drawdown_bps)
        payout = min(policy.remaining_cover, mul_div(policy.notional, ratio, BPS))
        total_claimed = policy.total_claimed + payout
        self._policies[policy.id] = policy.model_copy(
            update={
                "total_claimed": total_claimed,
                "last_claimed_epoch": event.epoch,
                "active": total_claimed < policy.max_claim,
            }
        )
        self._reserves -= payout
        self.total_payouts += payout
        return ShieldClaim(
            policy_id=policy.id,
            owner=policy.owner,
            epoch=event.epoch,
            drawdown_bps=event.drawdown_bps,
            payout=payout,
        )

    def _annotate_latest(self, claims: List[ShieldClaim]) -> None:
        event = self._events[-1]
        self._events[-1] = event.model_copy(
            update={
                "shields_triggered": event.shields_triggered + len(claims),
                "total_payout": event.total_payout + sum(c.payout for c in claims),
                "pool_utilization_bps": self.utilization_bps(),
            }
        )

    def claim_shield(self, policy_id: int, owner: str) -> ShieldClaim:
        """Выплата по полису против последнего события просадки.

        Raises:
            NotOwner: owner не владелец полиса
            NotEligible: полис неактивен, куплен после эпохи, уже получил
                выплату за неё или просадка ниже порога
        """
        with self._lock:
            policy = self.policy(policy_id)
            if policy.owner != owner:
                raise NotOwner(f"policy {policy_id} is not owned by {owner}", policy_id=policy_id)

            event = self.latest_drawdown
            reason = self._eligible(policy, event)
            if reason is not None:
                raise NotEligible(f"policy {policy_id}: {reason}", policy_id=policy_id)

            claim = self._pay(policy, event)
            self._annotate_latest([claim])

        logger.info("shield %d paid %d for epoch %d", policy_id, claim.payout, claim.epoch)
        return claim

    def claim_all_eligible(self) -> List[ShieldClaim]:
        """Выплаты всем подходящим полисам по последнему событию (в порядке id)."""
        with self._lock:
            event = self.latest_drawdown
            if event is None:
                return []
            claims = [
                self._pay(policy, event)
                for _, policy in sorted(self._policies.items())
                if self._eligible(policy, event) is None
            ]
            self._annotate_latest(claims)

        if claims:
            logger.info(
                "epoch %d drawdown %d bps: %d shields paid %d",
                event.epoch,
                event.drawdown_bps,
                len(claims),
                sum(c.payout for c in claims),
            )
        return claims

    def cancel_shield(self, policy_id: int, owner: str) -> int:
        """Отмена полиса с возвратом неиспользованной премии.

        refund = premium * epochs_remaining / duration (вниз), но не больше,
        чем позволяет сохранить утилизацию <= 100%.

        Returns:
            Сумма возврата

        Raises:
            NotOwner: owner не владелец полиса
            NotEligible: полис уже неактивен
        """
        with self._lock:
            policy = self.policy(policy_id)
            if policy.owner != owner:
                raise NotOwner(f"policy {policy_id} is not owned by {owner}", policy_id=policy_id)
            if not policy.active:
                raise NotEligible(f"policy {policy_id} is not active", policy_id=policy_id)

            refund = mul_div(policy.premium_paid, policy.epochs_remaining, policy.duration_epochs)
            outstanding_after = self.outstanding_cover() - policy.remaining_cover
            refund = max(0, min(refund, self._reserves - outstanding_after))

            self._policies[policy_id] = policy.model_copy(update={"active": False})
            self._reserves -= refund
            self.total_refunds += refund

        logger.info("shield %d cancelled by %s, refund=%d", policy_id, owner, refund)
        return refund

    def on_epoch_settled(self, epoch_index: int) -> int:
        """Старение полисов после расчёта эпохи.

        Returns:
            Число полисов, истёкших в этой эпохе
        """
        require_non_negative(epoch_index, "epoch_index")
        expired = 0
        with self._lock:
            self._current_epoch = max(self._current_epoch, epoch_index)
            for policy_id, policy in list(self._policies.items()):
                if not policy.active or policy.purchased_epoch > epoch_index:
                    continue
                remaining = policy.epochs_remaining - 1
                self._policies[policy_id] = policy.model_copy(
                    update={"epochs_remaining": remaining, "active": remaining > 0}
                )
                if remaining == 0:
                    expired += 1

        if expired:
            logger.debug("%d shield policies expired after epoch %d", expired, epoch_index)
        return expired

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def handle(self, command: ShieldCommand):
        """Единая точка обработки ShieldCommand."""
        if isinstance(command, PurchaseShield):
            return self.purchase_shield(
                command.owner, command.threshold_bps, command.notional, command.duration_epochs
            )
        if isinstance(command, ClaimShield):
            return self.claim_shield(command.policy_id, command.owner)
        if isinstance(command, CancelShield):
            return self.cancel_shield(command.policy_id, command.owner)
        raise InvalidParameter(f"unsupported shield command: {type(command).__name__}")
