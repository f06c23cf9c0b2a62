"""
Tests for JSON Schema Contract Validators

Комплексное тестирование JSON Schema валидаторов:
- Валидность самих схем
- Валидация снапшотов, полученных из Pydantic моделей
- Детекция нарушений required полей
- Детекция нарушений типов и constraints (min/max/enum)
- Полный снапшот движка
"""

import pytest
from jsonschema import ValidationError

from kinetic_vault.core.contracts import (
    EpochValidator,
    LadderRungValidator,
    SchemaLoader,
    ShieldPoolValidator,
    VaultSnapshotValidator,
    validate_epoch,
    validate_fee_rates,
    validate_ladder_rung,
    validate_shield_pool,
    validate_teleport_pool,
    validate_tranche_state,
    validate_vault_snapshot,
)
from kinetic_vault.core.domain import Epoch, EpochState, Tranche
from kinetic_vault.shield import DrawdownShieldPool
from kinetic_vault.tranches import DEFAULT_FEE_RATES, TrancheLedger
from kinetic_vault.vault import VaultEngine


SCHEMA_NAMES = [
    "epoch",
    "tranche_state",
    "fee_rates",
    "shield_pool",
    "teleport_pool",
    "ladder_rung",
    "vault_snapshot",
]


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def active_epoch():
    return Epoch(
        index=1,
        start_time=0,
        end_time=86_400,
        senior_assets_at_start=500_000,
        junior_assets_at_start=250_000,
    ).model_dump(mode="json")


@pytest.fixture
def engine():
    engine = VaultEngine()
    engine.deposit(500_000, Tranche.SENIOR)
    engine.deposit(250_000, Tranche.JUNIOR)
    engine.start(0)
    return engine


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class TestSchemaLoader:
    @pytest.mark.parametrize("name", SCHEMA_NAMES)
    def test_schemas_load_and_meta_validate(self, name):
        schema = SchemaLoader().load_schema(name)
        assert schema["$schema"] == "https://json-schema.org/draft/2020-12/schema"
        assert schema["additionalProperties"] is False

    def test_schema_cached(self):
        loader = SchemaLoader()
        assert loader.load_schema("epoch") is loader.load_schema("epoch")

    def test_missing_schema(self):
        with pytest.raises(FileNotFoundError):
            SchemaLoader().load_schema("does_not_exist")

    def test_missing_directory(self, tmp_path):
        with pytest.raises(RuntimeError):
            SchemaLoader(tmp_path / "nope")

    def test_invalid_schema_rejected(self, tmp_path):
        (tmp_path / "broken.json").write_text('{"type": 12}', encoding="utf-8")
        with pytest.raises(ValueError):
            SchemaLoader(tmp_path).load_schema("broken")


# =============================================================================
# EPOCH
# =============================================================================


class TestEpochContract:
    def test_valid_active_epoch(self, active_epoch):
        validate_epoch(active_epoch)

    def test_valid_settled_epoch(self):
        epoch = Epoch(
            index=2,
            start_time=0,
            end_time=100,
            state=EpochState.SETTLED,
            realized_return_bps=-45,
            pnl=-3_375,
            flash_triggered=True,
        )
        validate_epoch(epoch.model_dump(mode="json"))

    def test_missing_required(self, active_epoch):
        del active_epoch["state"]
        with pytest.raises(ValidationError):
            validate_epoch(active_epoch)

    def test_bad_state_enum(self, active_epoch):
        active_epoch["state"] = "PENDING"
        assert not EpochValidator().is_valid(active_epoch)

    def test_index_minimum(self, active_epoch):
        active_epoch["index"] = 0
        errors = list(EpochValidator().iter_errors(active_epoch))
        assert len(errors) == 1

    def test_extra_property(self, active_epoch):
        active_epoch["note"] = "x"
        with pytest.raises(ValidationError):
            validate_epoch(active_epoch)


# =============================================================================
# COMPONENT SNAPSHOTS
# =============================================================================


class TestComponentContracts:
    def test_tranche_state_includes_total(self):
        ledger = TrancheLedger()
        ledger.deposit(100, Tranche.SENIOR)
        data = ledger.state.model_dump(mode="json")

        assert data["total_assets"] == 100
        validate_tranche_state(data)

    def test_negative_assets_rejected(self):
        with pytest.raises(ValidationError):
            validate_tranche_state({"senior_assets": -1, "junior_assets": 0, "total_assets": -1})

    def test_fee_rates(self):
        validate_fee_rates(DEFAULT_FEE_RATES.model_dump(mode="json"))

    def test_fee_rate_above_max(self):
        data = DEFAULT_FEE_RATES.model_dump(mode="json")
        data["exit_fee_bps"] = 10_001
        with pytest.raises(ValidationError):
            validate_fee_rates(data)

    def test_shield_pool(self):
        pool = DrawdownShieldPool()
        pool.fund_pool(10_000)
        pool.purchase_shield("alice", 100, 25_000, 3)
        validate_shield_pool(pool.pool_state().model_dump(mode="json"))

    def test_shield_utilization_above_full(self):
        data = DrawdownShieldPool().pool_state().model_dump(mode="json")
        data["utilization_bps"] = 10_001
        assert not ShieldPoolValidator().is_valid(data)

    def test_teleport_pool(self, engine):
        validate_teleport_pool(engine.teleport.pool_state().model_dump(mode="json"))

    def test_ladder_rung(self, engine):
        for rung in engine.ladder.rung_states():
            validate_ladder_rung(rung.model_dump(mode="json"))

    def test_ladder_weight_above_max(self, engine):
        data = engine.ladder.rung_states()[0].model_dump(mode="json")
        data["weight_bps"] = 20_000
        assert not LadderRungValidator().is_valid(data)


# =============================================================================
# FULL SNAPSHOT
# =============================================================================


class TestVaultSnapshotContract:
    def test_snapshot_valid(self, engine):
        engine.record_volatility(4_000, 10)
        engine.crank(86_400, 10_000)
        validate_vault_snapshot(engine.snapshot(90_000).model_dump(mode="json"))

    def test_snapshot_before_genesis(self):
        data = VaultEngine().snapshot(0).model_dump(mode="json")
        assert data["epoch"] is None
        validate_vault_snapshot(data)

    def test_nested_section_checked(self, engine):
        data = engine.snapshot(1).model_dump(mode="json")
        data["fee_rates"]["entry_fee_bps"] = -5

        assert not VaultSnapshotValidator().is_valid(data)
        with pytest.raises(ValidationError):
            validate_vault_snapshot(data)

    def test_nested_epoch_checked(self, engine):
        data = engine.snapshot(1).model_dump(mode="json")
        data["epoch"]["state"] = "UNKNOWN"
        with pytest.raises(ValidationError):
            validate_vault_snapshot(data)
