"""Тесты EpochScheduler.

Coverage:
- Адаптивная длительность: границы, интерполяция, монотонность, speed multiplier
- Scenario A: 70% волатильность → min_duration + flash trigger
- Flash trigger: end_time подтягивается к моменту наблюдения, flash_guard
- Crank: EpochNotReady, AlreadySettled, Insolvent без мутаций
- Конкурентный crank: ровно один выигрывает
"""

import threading

import pytest

from kinetic_vault.config import EpochConfig
from kinetic_vault.core.domain import EpochState, Tranche, VolatilityState
from kinetic_vault.core.errors import AlreadySettled, EpochNotReady, Insolvent, InvalidParameter
from kinetic_vault.epochs import EpochScheduler, VolatilityMonitor, optimal_duration
from kinetic_vault.tranches import TrancheLedger


@pytest.fixture
def ledger():
    ledger = TrancheLedger()
    ledger.deposit(500_000, Tranche.SENIOR)
    ledger.deposit(250_000, Tranche.JUNIOR)
    return ledger


@pytest.fixture
def monitor():
    return VolatilityMonitor()


@pytest.fixture
def scheduler(ledger, monitor):
    return EpochScheduler(ledger, monitor, EpochConfig())


def _vol(current: int) -> VolatilityState:
    return VolatilityState(current=current, historical=current, samples=1)


class TestOptimalDuration:
    def test_no_sample_uses_base(self):
        assert optimal_duration(VolatilityState(), EpochConfig()) == 86_400

    def test_scenario_a_high_volatility_clamps_to_min(self):
        """Scenario A: base=86400, low=20%, high=60%, current=70% → min."""
        assert optimal_duration(_vol(7000), EpochConfig()) == 3_600

    def test_low_volatility_uses_max(self):
        assert optimal_duration(_vol(1500), EpochConfig()) == 172_800
        assert optimal_duration(_vol(2000), EpochConfig()) == 172_800

    def test_linear_between_thresholds(self):
        """4000 bps — середина [2000, 6000] → середина [3600, 172800]."""
        assert optimal_duration(_vol(4000), EpochConfig()) == 88_200

    def test_speed_multiplier(self):
        fast = EpochConfig(speed_multiplier=2000)
        assert optimal_duration(_vol(4000), fast) == 44_100

    def test_speed_multiplier_result_clamped(self):
        slow = EpochConfig(speed_multiplier=500)
        assert optimal_duration(_vol(1000), slow) == 172_800
        fast = EpochConfig(speed_multiplier=4000)
        assert optimal_duration(_vol(7000), fast) == 3_600

    def test_monotonic_and_bounded(self):
        config = EpochConfig()
        durations = [optimal_duration(_vol(v), config) for v in range(0, 10_001, 250)]

        assert all(a >= b for a, b in zip(durations, durations[1:]))
        assert all(config.min_duration <= d <= config.max_duration for d in durations)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"min_duration": 0},
            {"min_duration": 90_000},
            {"base_duration": 200_000},
            {"low_vol_threshold": 6000},
            {"speed_multiplier": 0},
            {"flash_guard": -1},
        ],
    )
    def test_invalid_config(self, overrides):
        with pytest.raises(InvalidParameter):
            EpochConfig(**overrides)


class TestGenesis:
    def test_genesis_opens_epoch_one(self, scheduler):
        epoch = scheduler.genesis(1_000)

        assert epoch.index == 1
        assert epoch.state == EpochState.ACTIVE
        assert epoch.start_time == 1_000
        assert epoch.end_time == 1_000 + 86_400
        assert epoch.senior_assets_at_start == 500_000
        assert epoch.junior_assets_at_start == 250_000

    def test_genesis_twice_rejected(self, scheduler):
        scheduler.genesis(0)
        with pytest.raises(AlreadySettled):
            scheduler.genesis(10)

    def test_advance_before_genesis(self, scheduler):
        with pytest.raises(EpochNotReady):
            scheduler.try_advance(100_000, 0)


class TestFlashTrigger:
    def test_scenario_a_flash_trigger(self, scheduler, monitor):
        scheduler.genesis(0)
        monitor.record(7000, 1_000)

        assert scheduler.check_flash_trigger(1_000)

        epoch = scheduler.current_epoch
        assert epoch.end_time <= 1_000
        assert epoch.flash_triggered
        assert scheduler.calculate_optimal_duration() == 3_600

    def test_flash_guard_blocks_young_epoch(self, scheduler, monitor):
        scheduler.genesis(0)
        monitor.record(7000, 200)

        assert not scheduler.check_flash_trigger(200)
        assert scheduler.current_epoch.end_time == 86_400

    def test_no_flash_below_high_threshold(self, scheduler, monitor):
        scheduler.genesis(0)
        monitor.record(5999, 10_000)
        assert not scheduler.check_flash_trigger(10_000)

    def test_flash_settles_early(self, scheduler, monitor):
        scheduler.genesis(0)
        monitor.record(7000, 5_000)

        result = scheduler.try_advance(5_000, 1_000)

        assert result.flash_triggered
        assert result.settled_epoch.end_time == 5_000
        assert result.settled_epoch.state == EpochState.SETTLED
        assert result.next_epoch.start_time == 5_000
        assert result.next_epoch.end_time == 5_000 + 3_600


class TestTryAdvance:
    def test_not_ready_before_end(self, scheduler):
        scheduler.genesis(0)
        with pytest.raises(EpochNotReady) as exc_info:
            scheduler.try_advance(86_399, 100)
        assert exc_info.value.code == "epoch_not_ready"

    def test_settlement_opens_next_epoch(self, scheduler, ledger):
        scheduler.genesis(0)

        result = scheduler.try_advance(86_400, 10_000, expected_index=1)

        settled = result.settled_epoch
        assert settled.index == 1
        assert settled.state == EpochState.SETTLED
        assert settled.pnl == 10_000
        # 10000 / 750000 = 133.33 bps → 133
        assert settled.realized_return_bps == 133
        assert not result.flash_triggered

        nxt = result.next_epoch
        assert nxt.index == 2
        assert nxt.state == EpochState.ACTIVE
        assert nxt.start_time == 86_400
        assert nxt.senior_assets_at_start == ledger.state.senior_assets
        assert scheduler.current_epoch == nxt
        assert scheduler.settled_count == 1
        assert [e.index for e in scheduler.history()] == [1, 2]

    def test_stale_expected_index(self, scheduler):
        scheduler.genesis(0)
        scheduler.try_advance(86_400, 0)

        with pytest.raises(AlreadySettled):
            scheduler.try_advance(200_000, 0, expected_index=1)

    def test_loss_emits_drawdown(self, scheduler):
        scheduler.genesis(0)
        result = scheduler.try_advance(86_400, -7_500)

        assert result.drawdown is not None
        assert result.drawdown.epoch == 1
        assert result.drawdown.drawdown_bps == 100

    def test_insolvent_leaves_state_unchanged(self, scheduler, ledger):
        scheduler.genesis(0)
        before = ledger.state

        with pytest.raises(Insolvent):
            scheduler.try_advance(86_400, -750_001)

        assert ledger.state == before
        assert scheduler.current_epoch.state == EpochState.ACTIVE
        assert scheduler.current_epoch.index == 1

    def test_insolvent_flash_does_not_revise_end_time(self, scheduler, monitor):
        scheduler.genesis(0)
        monitor.record(7000, 5_000)

        with pytest.raises(Insolvent):
            scheduler.try_advance(5_000, -10_000_000)

        assert scheduler.current_epoch.end_time == 86_400

    def test_time_remaining(self, scheduler):
        scheduler.genesis(0)
        assert scheduler.time_remaining(86_000) == 400
        assert scheduler.time_remaining(90_000) == 0


class TestConcurrentCrank:
    def test_exactly_one_crank_wins(self, scheduler, ledger):
        scheduler.genesis(0)
        barrier = threading.Barrier(8)
        outcomes = []
        outcomes_lock = threading.Lock()

        def crank():
            barrier.wait()
            try:
                scheduler.try_advance(86_400, 1_000, expected_index=1)
                outcome = "settled"
            except AlreadySettled:
                outcome = "already_settled"
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=crank) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("settled") == 1
        assert outcomes.count("already_settled") == 7
        assert ledger.cumulative_pnl == 1_000
        assert scheduler.settled_count == 1
