"""YieldTeleportPool — аванс будущей junior-доходности под ноты.

Ёмкость пула:
    available_advance = junior_yield_buffer * (1 - default_rate) - total_outstanding
(не меньше 0). Пул никогда не выдаёт больше, чем буфер может покрыть с
учётом дефолтов: total_outstanding <= buffer * (1 - default_rate).

Ставка и collateral ratio выбираются по таблице вариантов (step: вариант с
наибольшим epochs <= запрошенного). Длинный срок — выше ставка за эпоху,
ниже collateral ratio.

Нота передаваема: владелец — поле записи, перевод — перезапись поля.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from kinetic_vault.config import AdvanceOption, TeleportConfig
from kinetic_vault.core.domain.commands import (
    AdvanceYield,
    EarlyRedeem,
    RedeemNote,
    TeleportCommand,
    TransferNote,
)
from kinetic_vault.core.domain.teleport import (
    AdvanceOptionView,
    TeleportPoolState,
    YieldNote,
)
from kinetic_vault.core.errors import (
    InsufficientLiquidity,
    InvalidParameter,
    NotEligible,
    NotMatured,
    NotOwner,
)
from kinetic_vault.core.math.fixed_point import (
    BPS,
    Rounding,
    bps_of,
    mul_div,
    require_bps,
    require_int,
    require_non_negative,
    require_positive,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EarlyRedemption:
    """Результат досрочного погашения части ноты."""

    token_id: int
    claims_burned: int
    gross: int
    penalty: int
    payout: int
    remaining_claims: int


def _require_owner(owner: object, name: str = "owner") -> str:
    if not isinstance(owner, str) or not owner:
        raise InvalidParameter(f"{name} must be a non-empty string, got {owner!r}")
    return owner


class YieldTeleportPool:
    def __init__(self, config: Optional[TeleportConfig] = None):
        self.config = config or TeleportConfig()
        self._notes: Dict[int, YieldNote] = {}
        self._next_token_id = 1
        self._buffer = 0
        self._default_rate_bps = self.config.default_rate_bps
        self._total_outstanding = 0
        self._current_epoch = 0
        self._lock = threading.RLock()

        self.total_advanced = 0
        self.total_yield_paid = 0
        self.total_penalties = 0

    # =========================================================================
    # READ ACCESSORS
    # =========================================================================

    @property
    def junior_yield_buffer(self) -> int:
        return self._buffer

    @property
    def default_rate_bps(self) -> int:
        return self._default_rate_bps

    @property
    def total_outstanding(self) -> int:
        return self._total_outstanding

    @property
    def current_epoch(self) -> int:
        return self._current_epoch

    def haircut_buffer(self) -> int:
        """Буфер за вычетом ожидаемых дефолтов (вниз)."""
        return bps_of(self._buffer, BPS - self._default_rate_bps)

    def available_advance(self) -> int:
        with self._lock:
            return max(0, self.haircut_buffer() - self._total_outstanding)

    def option_for(self, epochs: int) -> AdvanceOption:
        """Вариант аванса для срока epochs (step lookup).

        Raises:
            InvalidParameter: срок короче минимального варианта
        """
        require_int(epochs, "epochs")
        options = self.config.advance_options
        if epochs < options[0].epochs:
            raise InvalidParameter(
                f"advance must span at least {options[0].epochs} epochs, got {epochs}",
                epochs=epochs,
            )
        chosen = options[0]
        for option in options:
            if option.epochs <= epochs:
                chosen = option
        return chosen

    def advance_options(self) -> List[AdvanceOptionView]:
        available = self.available_advance()
        return [
            AdvanceOptionView(
                epochs=o.epochs,
                yield_rate_bps=o.yield_rate_bps,
                collateral_ratio_permille=o.collateral_ratio_permille,
                max_advance=available,
                description=o.description,
            )
            for o in self.config.advance_options
        ]

    def note(self, token_id: int) -> YieldNote:
        with self._lock:
            try:
                return self._notes[token_id]
            except KeyError:
                raise InvalidParameter(f"unknown note {token_id}", token_id=token_id) from None

    def user_notes(self, owner: str) -> List[YieldNote]:
        with self._lock:
            return [n for _, n in sorted(self._notes.items()) if n.owner == owner]

    def pool_state(self) -> TeleportPoolState:
        with self._lock:
            active = [n for n in self._notes.values() if n.is_active]
            if active:
                average_maturity = sum(
                    max(0, n.maturity_epoch - self._current_epoch) for n in active
                ) // len(active)
            else:
                average_maturity = 0
            return TeleportPoolState(
                total_advanced=self.total_advanced,
                total_outstanding=self._total_outstanding,
                available_advance=self.available_advance(),
                junior_yield_buffer=self._buffer,
                default_rate_bps=self._default_rate_bps,
                active_notes=len(active),
                average_maturity=average_maturity,
                current_epoch=self._current_epoch,
            )

    # =========================================================================
    # BUFFER / RISK
    # =========================================================================

    def _covering_buffer(self, default_rate_bps: int) -> int:
        """Минимальный буфер, покрывающий outstanding при данной ставке дефолта."""
        return mul_div(self._total_outstanding, BPS, BPS - default_rate_bps, Rounding.UP)

    def update_junior_yield_buffer(self, amount: int) -> int:
        """Обновление буфера прогнозной junior-доходности.

        Буфер не опускается ниже уровня, покрывающего уже выданные авансы.

        Returns:
            Установленный буфер
        """
        require_non_negative(amount, "amount")
        with self._lock:
            floor = self._covering_buffer(self._default_rate_bps)
            if amount < floor:
                logger.warning(
                    "junior yield buffer %d below outstanding cover, held at %d", amount, floor
                )
                amount = floor
            self._buffer = amount
        logger.debug("junior yield buffer set to %d", amount)
        return amount

    def set_default_rate(self, default_rate_bps: int) -> None:
        """Новая ставка дефолта.

        Raises:
            InvalidParameter: ставка вне [0, 10000) или оставила бы outstanding
                без покрытия
        """
        require_bps(default_rate_bps, "default_rate_bps")
        if default_rate_bps >= BPS:
            raise InvalidParameter("default rate of 100% leaves no advance capacity")
        with self._lock:
            if bps_of(self._buffer, BPS - default_rate_bps) < self._total_outstanding:
                raise InvalidParameter(
                    "default rate would leave outstanding advances uncovered",
                    default_rate_bps=default_rate_bps,
                    outstanding=self._total_outstanding,
                )
            self._default_rate_bps = default_rate_bps
        logger.info("teleport default rate set to %d bps", default_rate_bps)

    def on_epoch_settled(self, epoch_index: int) -> int:
        """Продвижение текущей эпохи пула.

        Returns:
            Число нот, достигших погашения в этой эпохе
        """
        require_non_negative(epoch_index, "epoch_index")
        with self._lock:
            self._current_epoch = max(self._current_epoch, epoch_index)
            matured = sum(
                1
                for n in self._notes.values()
                if n.is_active and n.maturity_epoch == self._current_epoch
            )
        if matured:
            logger.debug("%d yield notes matured at epoch %d", matured, epoch_index)
        return matured

    # =========================================================================
    # NOTES
    # =========================================================================

    def advance_yield(self, owner: str, epochs: int, amount: int, now: int = 0) -> YieldNote:
        """Выпуск ноты: немедленный аванс против будущей junior-доходности.

        Raises:
            InvalidParameter: amount <= 0 или срок короче минимального
            InsufficientLiquidity: amount больше available_advance
        """
        _require_owner(owner)
        require_positive(amount, "amount")
        require_non_negative(now, "now")
        option = self.option_for(epochs)

        with self._lock:
            available = self.available_advance()
            if amount > available:
                logger.warning("advance of %d rejected, available=%d", amount, available)
                raise InsufficientLiquidity(
                    f"advance {amount} exceeds available {available}",
                    requested=amount,
                    available=available,
                )

            note = YieldNote(
                token_id=self._next_token_id,
                owner=owner,
                notional=amount,
                future_epochs=epochs,
                current_epoch=self._current_epoch,
                maturity_epoch=self._current_epoch + epochs,
                yield_rate_bps=option.yield_rate_bps,
                collateral_ratio_permille=option.collateral_ratio_permille,
                total_expected_yield=mul_div(amount, option.yield_rate_bps * epochs, BPS),
                remaining_claims=epochs,
                outstanding=amount,
                is_active=True,
                created_at=now,
            )
            self._notes[note.token_id] = note
            self._next_token_id += 1
            self._total_outstanding += amount
            self.total_advanced += amount

        logger.info(
            "yield note %d issued to %s: amount=%d epochs=%d rate=%d maturity=%d",
            note.token_id,
            owner,
            amount,
            epochs,
            note.yield_rate_bps,
            note.maturity_epoch,
        )
        return note

    def _owned_active(self, token_id: int, owner: str) -> YieldNote:
        note = self.note(token_id)
        if note.owner != owner:
            raise NotOwner(f"note {token_id} is not owned by {owner}", token_id=token_id)
        if not note.is_active:
            raise NotEligible(f"note {token_id} is not active", token_id=token_id)
        return note

    def redeem_note(self, token_id: int, owner: str) -> int:
        """Погашение ноты после maturity.

        Returns:
            Выплата: total_expected_yield * remaining_claims / future_epochs

        Raises:
            NotOwner, NotEligible (нота неактивна), NotMatured
        """
        with self._lock:
            note = self._owned_active(token_id, owner)
            if not note.is_matured(self._current_epoch):
                raise NotMatured(
                    f"note {token_id} matures at epoch {note.maturity_epoch}",
                    token_id=token_id,
                    maturity_epoch=note.maturity_epoch,
                    current_epoch=self._current_epoch,
                )

            payout = note.remaining_value
            self._total_outstanding -= note.outstanding
            self._notes[token_id] = note.model_copy(
                update={"remaining_claims": 0, "outstanding": 0, "is_active": False}
            )
            self.total_yield_paid += payout

        logger.info("yield note %d redeemed by %s for %d", token_id, owner, payout)
        return payout

    def early_redeem(self, token_id: int, owner: str, partial_amount: int) -> EarlyRedemption:
        """Досрочное погашение части ноты со штрафом.

        Сжигает ceil(partial * future_epochs / total_expected_yield) claims,
        выплачивает partial минус штраф (вверх).

        Raises:
            NotOwner, NotEligible (нота неактивна или уже погашаема)
            InvalidParameter: partial_amount <= 0 или больше остатка ноты
        """
        require_positive(partial_amount, "partial_amount")
        with self._lock:
            note = self._owned_active(token_id, owner)
            if note.is_matured(self._current_epoch):
                raise NotEligible(
                    f"note {token_id} has matured; use redeem_note", token_id=token_id
                )
            if partial_amount > note.remaining_value:
                raise InvalidParameter(
                    f"partial amount {partial_amount} exceeds remaining value {note.remaining_value}",
                    token_id=token_id,
                    remaining_value=note.remaining_value,
                )

            burned = mul_div(
                partial_amount, note.future_epochs, note.total_expected_yield, Rounding.UP
            )
            penalty = bps_of(partial_amount, self.config.early_redeem_penalty_bps, Rounding.UP)
            remaining = note.remaining_claims - burned
            outstanding = note.notional * remaining // note.future_epochs

            self._total_outstanding -= note.outstanding - outstanding
            self._notes[token_id] = note.model_copy(
                update={
                    "remaining_claims": remaining,
                    "outstanding": outstanding,
                    "is_active": remaining > 0,
                }
            )
            self.total_yield_paid += partial_amount - penalty
            self.total_penalties += penalty

        logger.info(
            "yield note %d early redeemed: %d claims burned, payout=%d penalty=%d",
            token_id,
            burned,
            partial_amount - penalty,
            penalty,
        )
        return EarlyRedemption(
            token_id=token_id,
            claims_burned=burned,
            gross=partial_amount,
            penalty=penalty,
            payout=partial_amount - penalty,
            remaining_claims=remaining,
        )

    def transfer_note(self, token_id: int, owner: str, new_owner: str) -> YieldNote:
        """Перевод ноты новому владельцу (только поле owner)."""
        _require_owner(new_owner, "new_owner")
        with self._lock:
            note = self._owned_active(token_id, owner)
            note = note.model_copy(update={"owner": new_owner})
            self._notes[token_id] = note

        logger.info("yield note %d transferred %s -> %s", token_id, owner, new_owner)
        return note

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def handle(self, command: TeleportCommand):
        """Единая точка обработки TeleportCommand."""
        if isinstance(command, AdvanceYield):
            return self.advance_yield(command.owner, command.epochs, command.amount, command.now)
        if isinstance(command, RedeemNote):
            return self.redeem_note(command.token_id, command.owner)
        if isinstance(command, EarlyRedeem):
            return self.early_redeem(command.token_id, command.owner, command.partial_amount)
        if isinstance(command, TransferNote):
            return self.transfer_note(command.token_id, command.owner, command.new_owner)
        raise InvalidParameter(f"unsupported teleport command: {type(command).__name__}")
