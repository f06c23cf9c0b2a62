"""
Commands — tagged variants для всех write-операций движка

Одна модель на команду, дискриминатор — поле `kind`. Каждый компонент
обрабатывает свой union через единственный метод handle(); VaultEngine.execute()
маршрутизирует полный VaultCommand.

Диапазоны значений здесь не ограничиваются: их проверяют компоненты, чтобы
ошибка имела вид из kinetic_vault.core.errors.
"""

from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from .tranche import Tranche


class _Command(BaseModel):
    model_config = {"frozen": True}


# =============================================================================
# LEDGER
# =============================================================================


class Deposit(_Command):
    kind: Literal["deposit"] = "deposit"
    amount: int
    tranche: Tranche


class Withdraw(_Command):
    kind: Literal["withdraw"] = "withdraw"
    amount: int
    tranche: Tranche


class ContributeToShield(_Command):
    kind: Literal["contribute_to_shield"] = "contribute_to_shield"
    amount: int


# =============================================================================
# EPOCH
# =============================================================================


class AdvanceEpoch(_Command):
    """Crank: расчёт текущей эпохи. expected_index защищает от устаревших вызовов."""

    kind: Literal["advance_epoch"] = "advance_epoch"
    now: int
    pnl: int
    expected_index: int | None = None


# =============================================================================
# SHIELD
# =============================================================================


class PurchaseShield(_Command):
    kind: Literal["purchase_shield"] = "purchase_shield"
    owner: str
    threshold_bps: int
    notional: int
    duration_epochs: int


class ClaimShield(_Command):
    kind: Literal["claim_shield"] = "claim_shield"
    policy_id: int
    owner: str


class CancelShield(_Command):
    kind: Literal["cancel_shield"] = "cancel_shield"
    policy_id: int
    owner: str


# =============================================================================
# TELEPORT
# =============================================================================


class AdvanceYield(_Command):
    kind: Literal["advance_yield"] = "advance_yield"
    owner: str
    epochs: int
    amount: int
    now: int = 0


class RedeemNote(_Command):
    kind: Literal["redeem_note"] = "redeem_note"
    token_id: int
    owner: str


class EarlyRedeem(_Command):
    kind: Literal["early_redeem"] = "early_redeem"
    token_id: int
    owner: str
    partial_amount: int


class TransferNote(_Command):
    kind: Literal["transfer_note"] = "transfer_note"
    token_id: int
    owner: str
    new_owner: str


# =============================================================================
# LADDER
# =============================================================================


class DepositLadder(_Command):
    kind: Literal["deposit_ladder"] = "deposit_ladder"
    amount: int
    weights_bps: list[int] | None = None
    tranche: Tranche = Tranche.SENIOR


class SettleRung(_Command):
    kind: Literal["settle_rung"] = "settle_rung"
    index: int
    now: int
    pnl: int
    expected_index: int | None = None


class RebalanceLadder(_Command):
    kind: Literal["rebalance_ladder"] = "rebalance_ladder"
    weights_bps: list[int]


# =============================================================================
# UNIONS
# =============================================================================

LedgerCommand = Annotated[
    Union[Deposit, Withdraw, ContributeToShield], Field(discriminator="kind")
]
ShieldCommand = Annotated[
    Union[PurchaseShield, ClaimShield, CancelShield], Field(discriminator="kind")
]
TeleportCommand = Annotated[
    Union[AdvanceYield, RedeemNote, EarlyRedeem, TransferNote], Field(discriminator="kind")
]
LadderCommand = Annotated[
    Union[DepositLadder, SettleRung, RebalanceLadder], Field(discriminator="kind")
]
VaultCommand = Annotated[
    Union[
        Deposit,
        Withdraw,
        ContributeToShield,
        AdvanceEpoch,
        PurchaseShield,
        ClaimShield,
        CancelShield,
        AdvanceYield,
        RedeemNote,
        EarlyRedeem,
        TransferNote,
        DepositLadder,
        SettleRung,
        RebalanceLadder,
    ],
    Field(discriminator="kind"),
]

_VAULT_COMMAND_ADAPTER: TypeAdapter = TypeAdapter(VaultCommand)


def parse_command(data: Dict[str, Any]) -> Any:
    """
    Разбор команды из dict (например, из JSON от внешнего коллаборатора).

    Raises:
        pydantic.ValidationError: неизвестный kind или неверные типы полей
    """
    return _VAULT_COMMAND_ADAPTER.validate_python(data)
