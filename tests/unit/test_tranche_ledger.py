"""Тесты TrancheLedger.

Coverage:
- Scenario B: купон senior и остаток junior
- Spillover убытка на senior, Insolvent
- Сохранение: активы = депозиты - выводы - взносы + cumulative pnl
- Вывод с exit fee, взнос в shield-пул
- NAV, senior APY, прогноз junior-доходности
- DrawdownEvent при убытке и при spillover купона, ограниченная история
- handle() для LedgerCommand
"""

import pytest

from kinetic_vault.core.domain import (
    ContributeToShield,
    Deposit,
    FeeRates,
    Tranche,
    Withdraw,
)
from kinetic_vault.core.errors import (
    InsufficientLiquidity,
    Insolvent,
    InvalidAmount,
    InvalidParameter,
)
from kinetic_vault.tranches import DEFAULT_FEE_RATES, TrancheLedger
from kinetic_vault.tranches.ledger import MAX_DRAWDOWN_EVENTS, MAX_JUNIOR_HISTORY


@pytest.fixture
def ledger():
    """Scenario B: senior=500000, junior=250000, coupon=50 bps."""
    ledger = TrancheLedger()
    ledger.deposit(500_000, Tranche.SENIOR)
    ledger.deposit(250_000, Tranche.JUNIOR)
    return ledger


def _rates(**overrides) -> FeeRates:
    return DEFAULT_FEE_RATES.model_copy(update=overrides)


class TestDeposit:
    def test_deposit_credits_tranche(self, ledger):
        assert ledger.state.senior_assets == 500_000
        assert ledger.state.junior_assets == 250_000
        assert ledger.state.total_assets == 750_000

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount(self, ledger, amount):
        with pytest.raises(InvalidAmount):
            ledger.deposit(amount, Tranche.SENIOR)
        assert ledger.state.total_assets == 750_000

    def test_entry_fee_rounded_up(self):
        ledger = TrancheLedger(fee_rates=_rates(entry_fee_bps=30))
        ledger.deposit(1_001, Tranche.JUNIOR)

        # 1001 * 30 / 10000 = 3.003 → 4
        assert ledger.state.junior_assets == 997
        assert ledger.fees_collected == 4
        assert ledger.expected_total() == 997

    def test_unknown_tranche_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.deposit(100, "mezzanine")


class TestWaterfall:
    def test_scenario_b(self, ledger):
        waterfall = ledger.settle_epoch(1, 10_000)

        assert waterfall.coupon == 2_500
        assert ledger.state.senior_assets == 502_500
        assert ledger.state.junior_assets == 257_500
        assert waterfall.spillover == 0

    def test_loss_absorbed_by_junior(self, ledger):
        ledger.settle_epoch(1, -100_000)

        assert ledger.state.senior_assets == 502_500
        assert ledger.state.junior_assets == 147_500

    def test_spillover_to_senior(self, ledger):
        waterfall = ledger.settle_epoch(1, -300_000)

        # junior: 250000 - 300000 - 2500 = -52500 → spillover 52500
        assert waterfall.spillover == 52_500
        assert ledger.state.junior_assets == 0
        assert ledger.state.senior_assets == 450_000
        assert ledger.state.total_assets == 450_000

    def test_total_loss_is_solvent(self, ledger):
        ledger.settle_epoch(1, -750_000)
        assert ledger.state.total_assets == 0

    def test_insolvent(self, ledger):
        before = ledger.state
        with pytest.raises(Insolvent) as exc_info:
            ledger.settle_epoch(1, -750_001)

        assert exc_info.value.code == "insolvent"
        assert ledger.state == before
        assert ledger.cumulative_pnl == 0

    def test_realized_return_truncates_toward_zero(self, ledger):
        assert ledger.compute_waterfall(10_000).realized_return_bps == 133
        assert ledger.compute_waterfall(-10_000).realized_return_bps == -133

    def test_empty_ledger_return_is_zero(self):
        assert TrancheLedger().compute_waterfall(0).realized_return_bps == 0

    def test_compute_waterfall_is_pure(self, ledger):
        ledger.compute_waterfall(10_000)
        assert ledger.state.senior_assets == 500_000

    def test_stale_waterfall_rejected(self, ledger):
        waterfall = ledger.compute_waterfall(10_000)
        ledger.deposit(1, Tranche.SENIOR)

        with pytest.raises(InvalidParameter):
            ledger.settle_epoch(1, 10_000, waterfall)

    @pytest.mark.parametrize(
        "pnls", [[10_000, -5_000, 3_333], [-300_000, 50_000, 1], [0, 0, -1]]
    )
    def test_conservation(self, ledger, pnls):
        for i, pnl in enumerate(pnls, start=1):
            ledger.settle_epoch(i, pnl)
            assert ledger.state.total_assets == ledger.expected_total()
            assert ledger.state.total_assets == 750_000 + sum(pnls[:i])


class TestDrawdown:
    def test_drawdown_event_on_loss(self, ledger):
        waterfall = ledger.settle_epoch(3, -9_000)
        event = ledger.record_drawdown(3, waterfall, timestamp=1234)

        # 9000 / 750000 = 120 bps
        assert event.epoch == 3
        assert event.drawdown_bps == 120
        assert event.timestamp == 1234
        assert ledger.drawdowns == [event]

    def test_no_event_on_gain(self, ledger):
        waterfall = ledger.settle_epoch(1, 5_000)
        assert ledger.record_drawdown(1, waterfall) is None

    def test_event_on_coupon_spillover(self):
        ledger = TrancheLedger()
        ledger.deposit(1_000_000, Tranche.SENIOR)

        waterfall = ledger.settle_epoch(1, 1_000)
        event = ledger.record_drawdown(1, waterfall)

        # купон 5000 > junior 0 + pnl 1000: 4000 переходит на senior
        assert waterfall.spillover == 4_000
        assert event.spillover == 4_000
        assert event.drawdown_bps == 0
        assert ledger.state.senior_assets == 1_001_000

    def test_drawdown_log_bounded(self, ledger):
        for epoch in range(1, MAX_DRAWDOWN_EVENTS + 11):
            waterfall = ledger.settle_epoch(epoch, -1)
            ledger.record_drawdown(epoch, waterfall)

        events = ledger.drawdowns
        assert len(events) == MAX_DRAWDOWN_EVENTS
        assert events[0].epoch == 11

    def test_junior_history_bounded(self, ledger):
        for epoch in range(1, MAX_JUNIOR_HISTORY + 6):
            ledger.settle_epoch(epoch, 0)

        history = ledger.junior_yield_history()
        assert len(history) == MAX_JUNIOR_HISTORY
        assert history[0][0] == 6
        assert history[-1][0] == MAX_JUNIOR_HISTORY + 5


class TestWithdrawAndContribute:
    def test_withdraw_charges_exit_fee(self, ledger):
        result = ledger.withdraw(100_001, Tranche.SENIOR)

        # exit 10 bps: 100.001 → 101
        assert result.fee == 101
        assert result.net == 99_900
        assert ledger.state.senior_assets == 399_999
        assert ledger.state.total_assets == ledger.expected_total()

    def test_withdraw_insufficient(self, ledger):
        with pytest.raises(InsufficientLiquidity):
            ledger.withdraw(250_001, Tranche.JUNIOR)
        assert ledger.state.junior_assets == 250_000

    def test_transfer_to_shield(self, ledger):
        ledger.transfer_to_shield(50_000)

        assert ledger.state.junior_assets == 200_000
        assert ledger.total_contributions == 50_000
        assert ledger.state.total_assets == ledger.expected_total()

    def test_transfer_to_shield_insufficient(self, ledger):
        with pytest.raises(InsufficientLiquidity):
            ledger.transfer_to_shield(250_001)


class TestAnalytics:
    def test_nav_tracks_returns(self, ledger):
        assert ledger.nav(Tranche.SENIOR) == 1_000_000
        ledger.settle_epoch(1, 10_000)

        assert ledger.nav(Tranche.SENIOR) == 1_005_000
        assert ledger.nav(Tranche.JUNIOR) == 1_030_000

    def test_nav_of_empty_tranche(self):
        assert TrancheLedger().nav(Tranche.JUNIOR) == 1_000_000

    def test_senior_apy(self, ledger):
        assert ledger.senior_apy_bps(epochs_per_year=12) == 600
        with pytest.raises(InvalidParameter):
            ledger.senior_apy_bps(0)

    def test_forecast_without_history(self, ledger):
        forecast = ledger.junior_yield_forecast(horizon=3)

        assert [p.epoch for p in forecast] == [1, 2, 3]
        assert all(p.expected_yield == 0 for p in forecast)

    def test_forecast_confidence_decay(self, ledger):
        ledger.settle_epoch(1, 10_000)
        ledger.settle_epoch(2, 10_000)

        forecast = ledger.junior_yield_forecast(horizon=12)
        confidences = [p.confidence_bps for p in forecast]

        assert forecast[0].epoch == 3
        assert confidences[:3] == [10_000, 9_700, 9_400]
        assert min(confidences) == 7_000
        assert forecast[1].risk_adjusted == forecast[1].expected_yield * 9_700 // 10_000

    def test_forecast_floors_losses_at_zero(self, ledger):
        ledger.settle_epoch(1, -50_000)
        assert ledger.junior_yield_forecast(horizon=1)[0].expected_yield == 0


class TestHandle:
    def test_deposit_command(self, ledger):
        state = ledger.handle(Deposit(amount=1_000, tranche=Tranche.JUNIOR))
        assert state.junior_assets == 251_000

    def test_withdraw_command(self, ledger):
        result = ledger.handle(Withdraw(amount=1_000, tranche="senior"))
        assert result.gross == 1_000

    def test_contribute_command(self, ledger):
        state = ledger.handle(ContributeToShield(amount=1_000))
        assert state.junior_assets == 249_000
