"""
Fixed-Point Arithmetic — целочисленные примитивы для сумм и ставок

Все суммы выражены в минимальных единицах валюты (int), все ставки — в basis
points (1 bps = 1/10000) или ppm (1/1_000_000). Float не используется ни в
одном расчёте, влияющем на балансы.

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Каждое деление имеет явное направление округления
2. Суммы, которые выплачивает движок, округляются вниз (Rounding.DOWN)
3. Суммы, которые платит пользователь, округляются вверх (Rounding.UP)
4. Все операции детерминированы и воспроизводимы
"""

from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from enum import Enum
from numbers import Real
from typing import Final, Sequence, Tuple

from kinetic_vault.core.errors import InvalidAmount, InvalidParameter

# =============================================================================
# МАСШТАБЫ
# =============================================================================

# Basis points: 10000 bps = 100%
BPS: Final[int] = 10_000

# Parts per million: для ставок мельче 1 bps (премии shield-пула)
PPM: Final[int] = 1_000_000

# Per-mille: множители скорости эпох и collateral ratio
PERMILLE: Final[int] = 1_000


class Rounding(str, Enum):
    """Направление округления целочисленного деления."""

    DOWN = "down"  # к нулю
    UP = "up"  # от нуля


# =============================================================================
# ДЕЛЕНИЕ
# =============================================================================


def mul_div(a: int, b: int, denominator: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    Вычисление a * b / denominator без потери точности.

    Произведение считается точно (int произвольной длины), затем делится
    с явным направлением округления. Знак результата = знак a * b.

    Args:
        a: первый множитель
        b: второй множитель
        denominator: делитель (строго положительный)
        rounding: направление округления модуля результата

    Returns:
        Целый результат

    Raises:
        InvalidParameter: если denominator <= 0

    Examples:
        >>> mul_div(500_000, 50, BPS)
        2500
        >>> mul_div(7, 1, 2, Rounding.UP)
        4
        >>> mul_div(-7, 1, 2)
        -3
    """
    if denominator <= 0:
        raise InvalidParameter(f"denominator must be positive, got {denominator}")

    product = a * b
    quotient, remainder = divmod(abs(product), denominator)
    if remainder and rounding == Rounding.UP:
        quotient += 1

    return -quotient if product < 0 else quotient


def div_trunc(numerator: int, denominator: int) -> int:
    """
    Целочисленное деление с усечением к нулю (в отличие от // в Python).

    Examples:
        >>> div_trunc(-7, 2)
        -3
        >>> div_trunc(7, 2)
        3
    """
    return mul_div(numerator, 1, denominator, Rounding.DOWN)


def bps_of(amount: int, rate_bps: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    Доля суммы по ставке в basis points.

    Examples:
        >>> bps_of(500_000, 50)
        2500
        >>> bps_of(999, 10, Rounding.UP)
        1
    """
    return mul_div(amount, rate_bps, BPS, rounding)


def ratio_bps(numerator: int, denominator: int, rounding: Rounding = Rounding.DOWN) -> int:
    """
    Отношение numerator / denominator в basis points.

    При denominator == 0 возвращает 0 (пустой пул не имеет утилизации).
    """
    if denominator == 0:
        return 0
    return mul_div(numerator, BPS, denominator, rounding)


def fraction_to_bps(value: object) -> int:
    """
    Конверсия доли [0, 1] во внешнем представлении (float/Decimal/int) в bps.

    Граница, через которую float от коллабораторов (market data) попадает
    в движок. Округление вниз.

    Raises:
        InvalidParameter: если значение не число, NaN или вне [0, 1]

    Examples:
        >>> fraction_to_bps(0.5)
        5000
        >>> fraction_to_bps(1)
        10000
    """
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise InvalidParameter(f"fraction must be numeric, got {value!r}")

    try:
        dec = Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidParameter(f"fraction is not a valid number: {value!r}") from e

    if dec.is_nan() or dec < 0 or dec > 1:
        raise InvalidParameter(f"fraction must be in [0, 1], got {value!r}", value=str(value))

    return int((dec * BPS).to_integral_value(rounding=ROUND_FLOOR))


# =============================================================================
# УТИЛИТЫ
# =============================================================================


def clamp(value: int, min_value: int, max_value: int) -> int:
    """
    Ограничение значения диапазоном [min_value, max_value].

    Raises:
        InvalidParameter: если min_value > max_value
    """
    if min_value > max_value:
        raise InvalidParameter(f"min_value ({min_value}) > max_value ({max_value})")
    return max(min_value, min(value, max_value))


def interpolate_table(
    table: Sequence[Tuple[int, int]],
    x: int,
    mode: str = "linear",
    rounding: Rounding = Rounding.DOWN,
) -> int:
    """
    Значение упорядоченной таблицы (key → value) в точке x.

    Правила на границах:
    - x <= первого ключа → значение первой точки
    - x >= последнего ключа → значение последней точки
    - между ключами:
      * "linear": линейная интерполяция между соседними точками
      * "step": значение точки с наибольшим ключом <= x

    Args:
        table: точки (key, value), ключи строго возрастают
        x: аргумент
        mode: "linear" или "step"
        rounding: округление интерполированного значения

    Examples:
        >>> interpolate_table([(100, 4000), (200, 9000)], 120)
        5000
        >>> interpolate_table([(3, 450), (6, 550)], 5, mode="step")
        450
    """
    if not table:
        raise InvalidParameter("lookup table is empty")
    if mode not in ("linear", "step"):
        raise InvalidParameter(f"unknown interpolation mode: {mode}")

    if x <= table[0][0]:
        return table[0][1]
    if x >= table[-1][0]:
        return table[-1][1]

    for (k0, v0), (k1, v1) in zip(table, table[1:]):
        if k0 <= x < k1:
            if mode == "step":
                return v0
            return v0 + mul_div(v1 - v0, x - k0, k1 - k0, rounding)

    # Недостижимо для корректно упорядоченной таблицы
    raise InvalidParameter(f"lookup table keys are not ordered: {list(table)}")


# =============================================================================
# ВАЛИДАЦИЯ
# =============================================================================


def require_int(value: object, name: str) -> int:
    """Проверка, что значение — целое число (bool не допускается)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    return value


def require_positive(value: object, name: str) -> int:
    """
    Проверка, что сумма — положительное целое.

    Raises:
        InvalidAmount: если value <= 0 или не целое
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer amount, got {value!r}")
    if value <= 0:
        raise InvalidAmount(f"{name} must be positive, got {value}", **{name: value})
    return value


def require_non_negative(value: object, name: str) -> int:
    """Проверка, что значение — неотрицательное целое."""
    require_int(value, name)
    if value < 0:  # type: ignore[operator]
        raise InvalidParameter(f"{name} cannot be negative, got {value}", **{name: value})
    return value  # type: ignore[return-value]


def require_bps(value: object, name: str) -> int:
    """Проверка, что ставка лежит в [0, 10000] bps."""
    require_int(value, name)
    if not 0 <= value <= BPS:  # type: ignore[operator]
        raise InvalidParameter(f"{name} must be in [0, {BPS}] bps, got {value}", **{name: value})
    return value  # type: ignore[return-value]


def require_weights(weights: Sequence[int], expected_len: int | None = None) -> Tuple[int, ...]:
    """
    Проверка весов лестницы: каждый в [0, 10000], сумма ровно 10000.

    Args:
        weights: веса в bps
        expected_len: ожидаемое число весов (число ступеней)

    Returns:
        Веса как tuple

    Raises:
        InvalidParameter: при нарушении любого условия
    """
    if weights is None or isinstance(weights, (str, bytes)):
        raise InvalidParameter(f"weights must be a sequence of bps, got {weights!r}")

    result = tuple(require_bps(w, "weight_bps") for w in weights)

    if expected_len is not None and len(result) != expected_len:
        raise InvalidParameter(
            f"expected {expected_len} weights, got {len(result)}",
            weights=list(result),
        )

    total = sum(result)
    if total != BPS:
        raise InvalidParameter(
            f"weights must sum to {BPS} bps, got {total}",
            weights=list(result),
            total=total,
        )

    return result
