"""Тесты DrawdownShieldPool.

Coverage:
- Scenario C: выплата ограничена max_claim
- Ценообразование: таблица премий, интерполяция, округление вверх
- PoolSaturated: утилизация никогда не превышает 100%
- Условия claim: владелец, порог, эпоха покупки, повторная выплата
- Отмена с возвратом премии и ограничением по утилизации
- Старение полисов, claim_all_eligible, handle()
"""

import pytest

from kinetic_vault.config import ShieldConfig
from kinetic_vault.core.domain import CancelShield, ClaimShield, DrawdownEvent, PurchaseShield
from kinetic_vault.core.errors import InvalidParameter, NotEligible, NotOwner, PoolSaturated
from kinetic_vault.shield import DrawdownShieldPool


@pytest.fixture
def pool():
    pool = DrawdownShieldPool()
    pool.fund_pool(10_000)
    return pool


@pytest.fixture
def uncapped_pool():
    """Пул с cap_ratio = 100%, чтобы полис переживал первую выплату."""
    pool = DrawdownShieldPool(ShieldConfig(cap_ratio_bps=10_000))
    pool.fund_pool(50_000)
    return pool


def _event(epoch: int, drawdown_bps: int) -> DrawdownEvent:
    return DrawdownEvent(epoch=epoch, drawdown_bps=drawdown_bps, timestamp=epoch * 100)


class TestPricing:
    @pytest.mark.parametrize(
        "threshold,rate",
        [(50, 1250), (75, 1875), (100, 2500), (150, 4250), (500, 20_000), (1000, 45_000)],
    )
    def test_premium_rate(self, pool, threshold, rate):
        assert pool.premium_rate_ppm(threshold) == rate

    def test_rate_non_decreasing_in_threshold(self, pool):
        rates = [pool.premium_rate_ppm(t) for t in range(50, 1001, 10)]
        assert all(a <= b for a, b in zip(rates, rates[1:]))

    def test_premium_rounded_up(self, pool):
        # 25000 * 2500 ppm * 3 = 187.5 → 188
        assert pool.quote_premium(100, 25_000, 3) == 188

    def test_payout_curve(self, pool):
        assert pool.payout_ratio_bps(0) == 0
        assert pool.payout_ratio_bps(120) == 5000
        assert pool.payout_ratio_bps(2000) == 10_000

    def test_pricing_table(self, pool):
        assert pool.pricing_table()[0] == (50, 1250)

    @pytest.mark.parametrize(
        "threshold,notional,duration",
        [(49, 1000, 1), (1001, 1000, 1), (100, 0, 1), (100, 1000, 0), (100, -5, 1)],
    )
    def test_invalid_terms(self, pool, threshold, notional, duration):
        with pytest.raises(InvalidParameter):
            pool.purchase_shield("alice", threshold, notional, duration)
        assert pool.pool_state().total_policies == 0


class TestPurchase:
    def test_purchase_stores_policy(self, pool):
        policy = pool.purchase_shield("alice", 100, 25_000, 3)

        assert policy.id == 1
        assert policy.owner == "alice"
        assert policy.premium_paid == 188
        assert policy.max_claim == 2_500
        assert policy.epochs_remaining == 3
        assert policy.purchased_epoch == 1
        assert pool.reserves == 10_188

    def test_utilization(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        state = pool.pool_state()

        assert state.outstanding_cover == 2_500
        # 2500 / 10188 → 2453.8 → 2454 (вверх)
        assert state.utilization_bps == 2_454
        assert state.active_policies == 1

    def test_saturated_on_empty_pool(self):
        pool = DrawdownShieldPool()
        with pytest.raises(PoolSaturated) as exc_info:
            pool.purchase_shield("alice", 100, 25_000, 1)

        assert exc_info.value.code == "pool_saturated"
        assert pool.reserves == 0
        assert pool.pool_state().total_policies == 0

    def test_utilization_never_exceeds_full(self, pool):
        accepted = 0
        for i in range(20):
            try:
                pool.purchase_shield(f"user{i}", 100, 25_000, 1)
                accepted += 1
            except PoolSaturated:
                pass
            assert pool.pool_state().utilization_bps <= 10_000

        assert 0 < accepted < 20

    def test_user_shields(self, pool):
        pool.purchase_shield("alice", 100, 10_000, 1)
        pool.purchase_shield("bob", 100, 10_000, 1)
        pool.purchase_shield("alice", 200, 10_000, 1)

        assert [p.id for p in pool.user_shields("alice")] == [1, 3]


class TestClaim:
    def test_scenario_c_payout_capped(self, pool):
        """threshold=100, notional=25000, drawdown=120 → min(2500, 25000*0.5)."""
        policy = pool.purchase_shield("alice", 100, 25_000, 3)
        pool.record_drawdown(_event(1, 120))

        claim = pool.claim_shield(policy.id, "alice")

        assert claim.payout == 2_500
        updated = pool.policy(policy.id)
        assert updated.total_claimed == updated.max_claim
        assert not updated.active
        assert pool.reserves == 10_188 - 2_500

    def test_claim_annotates_event(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        pool.record_drawdown(_event(1, 120))
        pool.claim_shield(1, "alice")

        event = pool.latest_drawdown
        assert event.shields_triggered == 1
        assert event.total_payout == 2_500

    def test_not_owner(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        pool.record_drawdown(_event(1, 120))

        with pytest.raises(NotOwner):
            pool.claim_shield(1, "mallory")

    def test_below_threshold(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        pool.record_drawdown(_event(1, 80))

        with pytest.raises(NotEligible):
            pool.claim_shield(1, "alice")

    def test_no_drawdown_recorded(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        with pytest.raises(NotEligible):
            pool.claim_shield(1, "alice")

    def test_bought_after_drawdown_epoch(self, pool):
        pool.on_epoch_settled(1)
        pool.purchase_shield("alice", 100, 25_000, 3)
        pool.record_drawdown(_event(1, 500))

        with pytest.raises(NotEligible):
            pool.claim_shield(1, "alice")

    def test_double_claim_same_epoch(self, uncapped_pool):
        uncapped_pool.purchase_shield("alice", 100, 25_000, 3)
        uncapped_pool.record_drawdown(_event(1, 120))

        assert uncapped_pool.claim_shield(1, "alice").payout == 12_500
        with pytest.raises(NotEligible):
            uncapped_pool.claim_shield(1, "alice")

    def test_claims_across_epochs_bounded(self, uncapped_pool):
        uncapped_pool.purchase_shield("alice", 100, 25_000, 3)
        for epoch in (1, 2):
            uncapped_pool.record_drawdown(_event(epoch, 200))
            uncapped_pool.claim_all_eligible()
            uncapped_pool.on_epoch_settled(epoch)

        policy = uncapped_pool.policy(1)
        assert policy.total_claimed == policy.max_claim == 25_000

    def test_claim_all_eligible(self, pool):
        pool.fund_pool(10_000)
        pool.purchase_shield("alice", 100, 25_000, 3)
        pool.purchase_shield("bob", 200, 25_000, 3)
        pool.record_drawdown(_event(1, 120))

        claims = pool.claim_all_eligible()

        assert [(c.policy_id, c.payout) for c in claims] == [(1, 2_500)]
        assert pool.latest_drawdown.shields_triggered == 1
        assert pool.pool_state().utilization_bps <= 10_000

    def test_unknown_policy(self, pool):
        with pytest.raises(InvalidParameter):
            pool.claim_shield(99, "alice")


class TestCancel:
    def test_refund_pro_rata(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        pool.on_epoch_settled(1)

        refund = pool.cancel_shield(1, "alice")

        # 188 * 2 / 3 = 125.3 → 125
        assert refund == 125
        assert not pool.policy(1).active
        assert pool.reserves == 10_188 - 125

    def test_refund_capped_by_utilization(self):
        pool = DrawdownShieldPool()
        pool.fund_pool(200)
        pool.purchase_shield("alice", 1000, 10_000, 3)
        pool.purchase_shield("bob", 1000, 10_000, 1)
        assert pool.reserves == 2_000

        refund = pool.cancel_shield(1, "alice")

        assert refund == 1_000
        assert pool.pool_state().utilization_bps == 10_000

    def test_cancel_not_owner(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        with pytest.raises(NotOwner):
            pool.cancel_shield(1, "bob")
        assert pool.policy(1).active

    def test_cancel_twice(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 3)
        pool.cancel_shield(1, "alice")
        with pytest.raises(NotEligible):
            pool.cancel_shield(1, "alice")


class TestAging:
    def test_policy_expires_after_duration(self, pool):
        pool.purchase_shield("alice", 100, 25_000, 2)

        assert pool.on_epoch_settled(1) == 0
        assert pool.policy(1).epochs_remaining == 1
        assert pool.on_epoch_settled(2) == 1
        assert not pool.policy(1).active
        assert pool.pool_state().outstanding_cover == 0

    def test_future_policy_not_aged(self, pool):
        pool.on_epoch_settled(3)
        pool.purchase_shield("alice", 100, 25_000, 2)
        pool.on_epoch_settled(3)
        assert pool.policy(1).epochs_remaining == 2

    def test_recent_drawdowns_newest_first(self, pool):
        for epoch in (1, 2, 3):
            pool.record_drawdown(_event(epoch, 100 * epoch))
        assert [e.epoch for e in pool.recent_drawdowns(2)] == [3, 2]


class TestHandle:
    def test_command_flow(self, pool):
        policy = pool.handle(
            PurchaseShield(owner="alice", threshold_bps=100, notional=25_000, duration_epochs=3)
        )
        pool.record_drawdown(_event(1, 120))
        claim = pool.handle(ClaimShield(policy_id=policy.id, owner="alice"))
        assert claim.payout == 2_500

        with pytest.raises(NotEligible):
            pool.handle(CancelShield(policy_id=policy.id, owner="alice"))
