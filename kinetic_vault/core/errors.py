"""
Errors — единая иерархия ошибок движка

Каждая команда либо возвращает результат, либо поднимает ровно один вид ошибки
из этого модуля. Частичных успехов нет: все проверки выполняются до первой
мутации состояния ("validate, then commit").

Вид ошибки определяет поведение для пользователя; машинно-читаемый код
доступен через атрибут `code`.
"""

from typing import Any, Dict


class VaultError(Exception):
    """
    Базовая ошибка движка.

    Attributes:
        code: машинно-читаемый код ошибки (snake_case)
        context: диагностический контекст (значения, пороги)
    """

    code: str = "vault_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        """Представление ошибки для внешних коллабораторов."""
        return {"code": self.code, "message": self.message, "context": dict(self.context)}


class InvalidParameter(VaultError, ValueError):
    """Параметр вне допустимого диапазона (порог, вес, сумма, длительность)."""

    code = "invalid_parameter"


class InvalidAmount(InvalidParameter):
    """Неположительная сумма депозита/вывода."""

    code = "invalid_amount"


class EpochNotReady(VaultError):
    """Расчёт эпохи запрошен до end_time, и flash trigger не сработал."""

    code = "epoch_not_ready"


class AlreadySettled(VaultError):
    """Устаревший или повторный crank: эпоха уже не ACTIVE."""

    code = "already_settled"


class Insolvent(VaultError):
    """
    Waterfall загнал бы транш в минус даже после spillover на senior.

    Восстанавливается только внешним действием (например, вливанием капитала),
    поэтому движок никогда не поглощает эту ошибку.
    """

    code = "insolvent"


class PoolSaturated(VaultError):
    """Новый полис поднял бы утилизацию shield-пула выше 100%."""

    code = "pool_saturated"


class InsufficientLiquidity(VaultError):
    """Запрошенная сумма превышает доступную ликвидность."""

    code = "insufficient_liquidity"


class NotMatured(VaultError):
    """Погашение ноты до maturity_epoch."""

    code = "not_matured"


class NotEligible(VaultError):
    """Полис/нота не удовлетворяет условиям операции."""

    code = "not_eligible"


class NotOwner(VaultError):
    """Вызывающий не является владельцем полиса/ноты."""

    code = "not_owner"


class StaleInput(VaultError):
    """Входные данные с timestamp раньше последнего принятого."""

    code = "stale_input"
