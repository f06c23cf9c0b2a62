"""
Конфигурация компонентов движка

Каждый компонент принимает свой frozen dataclass с значениями по умолчанию.
VaultConfig собирает их вместе и умеет загружаться из YAML/dict.

Все длительности в секундах, ставки в bps (если не указано иное).
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import yaml

from kinetic_vault.core.errors import InvalidParameter
from kinetic_vault.core.math.fixed_point import BPS, PERMILLE, PPM


def _check_table(name: str, table: Tuple[Tuple[int, int], ...], max_value: int) -> None:
    """Таблица lookup: непустая, ключи строго возрастают, значения монотонно не убывают."""
    if not table:
        raise InvalidParameter(f"{name} must not be empty")
    for key, value in table:
        if key < 0 or not 0 <= value <= max_value:
            raise InvalidParameter(f"{name} entry out of range: ({key}, {value})")
    for (k0, v0), (k1, v1) in zip(table, table[1:]):
        if k1 <= k0:
            raise InvalidParameter(f"{name} keys must be strictly increasing: {k0} -> {k1}")
        if v1 < v0:
            raise InvalidParameter(f"{name} values must be non-decreasing: {v0} -> {v1}")


def _as_table(raw: Any) -> Tuple[Tuple[int, int], ...]:
    return tuple((int(k), int(v)) for k, v in raw)


# =============================================================================
# VOLATILITY
# =============================================================================


@dataclass(frozen=True)
class VolatilityConfig:
    """
    Конфигурация VolatilityMonitor.

    historical' = historical * (1 - α) + current * α, α в bps.
    """

    smoothing_alpha_bps: int = 2000

    def __post_init__(self) -> None:
        if not 0 < self.smoothing_alpha_bps <= BPS:
            raise InvalidParameter(
                f"smoothing_alpha_bps must be in (0, {BPS}], got {self.smoothing_alpha_bps}"
            )


# =============================================================================
# EPOCHS
# =============================================================================


@dataclass(frozen=True)
class EpochConfig:
    """
    Конфигурация адаптивной длительности эпох.

    Инварианты:
    - 0 < min_duration <= base_duration <= max_duration
    - low_vol_threshold < high_vol_threshold (bps волатильности)
    - speed_multiplier > 0 (per-mille, 1000 = 1.0x)
    - flash_guard: минимальный возраст эпохи до flash trigger (anti-thrashing)
    """

    base_duration: int = 86_400
    min_duration: int = 3_600
    max_duration: int = 172_800
    low_vol_threshold: int = 2_000
    high_vol_threshold: int = 6_000
    speed_multiplier: int = 1_000
    flash_guard: int = 300

    def __post_init__(self) -> None:
        if not 0 < self.min_duration <= self.base_duration <= self.max_duration:
            raise InvalidParameter(
                "epoch durations must satisfy 0 < min <= base <= max, got "
                f"min={self.min_duration} base={self.base_duration} max={self.max_duration}"
            )
        if self.low_vol_threshold < 0 or self.low_vol_threshold >= self.high_vol_threshold:
            raise InvalidParameter(
                "volatility thresholds must satisfy 0 <= low < high, got "
                f"low={self.low_vol_threshold} high={self.high_vol_threshold}"
            )
        if self.speed_multiplier <= 0:
            raise InvalidParameter(f"speed_multiplier must be positive, got {self.speed_multiplier}")
        if self.flash_guard < 0:
            raise InvalidParameter(f"flash_guard cannot be negative, got {self.flash_guard}")

    @classmethod
    def fixed(cls, duration: int, **overrides: Any) -> "EpochConfig":
        """Конфигурация с фиксированной длительностью (ступени лестницы)."""
        return cls(
            base_duration=duration,
            min_duration=duration,
            max_duration=duration,
            **overrides,
        )


# =============================================================================
# FEES
# =============================================================================


@dataclass(frozen=True)
class FeeRule:
    """
    Линейный отклик одной комиссии.

    fee = base + utilization_bps * utilization_slope / 10000
               + performance_bps * performance_slope / 10000,
    затем clamp в [floor, cap].
    """

    base_bps: int
    utilization_slope_bps: int = 0
    performance_slope_bps: int = 0
    floor_bps: int = 0
    cap_bps: int = BPS

    def __post_init__(self) -> None:
        if not 0 <= self.floor_bps <= self.cap_bps <= BPS:
            raise InvalidParameter(
                f"fee bounds must satisfy 0 <= floor <= cap <= {BPS}, "
                f"got floor={self.floor_bps} cap={self.cap_bps}"
            )


@dataclass(frozen=True)
class FeeCurveConfig:
    """Правила всех пяти комиссий KineticFeeCurve."""

    management: FeeRule = field(
        default_factory=lambda: FeeRule(base_bps=50, utilization_slope_bps=100, cap_bps=200)
    )
    performance: FeeRule = field(
        default_factory=lambda: FeeRule(base_bps=1000, performance_slope_bps=20_000, cap_bps=3000)
    )
    senior_coupon: FeeRule = field(
        default_factory=lambda: FeeRule(base_bps=50, utilization_slope_bps=100, cap_bps=500)
    )
    entry: FeeRule = field(
        default_factory=lambda: FeeRule(base_bps=0, utilization_slope_bps=50, cap_bps=100)
    )
    exit: FeeRule = field(
        default_factory=lambda: FeeRule(base_bps=10, utilization_slope_bps=90, cap_bps=200)
    )


# =============================================================================
# SHIELD
# =============================================================================


@dataclass(frozen=True)
class ShieldConfig:
    """
    Конфигурация DrawdownShieldPool.

    pricing_table: порог (bps) → премия за эпоху (ppm от notional)
    payout_curve: просадка (bps) → доля notional к выплате (bps)
    cap_ratio_bps: max_claim = notional * cap_ratio
    """

    min_threshold_bps: int = 50
    max_threshold_bps: int = 1000
    cap_ratio_bps: int = 1000
    pricing_table: Tuple[Tuple[int, int], ...] = (
        (50, 1_250),
        (100, 2_500),
        (200, 6_000),
        (500, 20_000),
        (1000, 45_000),
    )
    pricing_interpolation: str = "linear"
    payout_curve: Tuple[Tuple[int, int], ...] = (
        (0, 0),
        (50, 1_500),
        (100, 4_000),
        (200, 9_000),
        (500, 10_000),
    )
    max_recent_events: int = 50

    def __post_init__(self) -> None:
        if not 0 < self.min_threshold_bps <= self.max_threshold_bps <= BPS:
            raise InvalidParameter(
                f"shield thresholds must satisfy 0 < min <= max <= {BPS}, got "
                f"min={self.min_threshold_bps} max={self.max_threshold_bps}"
            )
        if not 0 < self.cap_ratio_bps <= BPS:
            raise InvalidParameter(f"cap_ratio_bps must be in (0, {BPS}], got {self.cap_ratio_bps}")
        if self.pricing_interpolation not in ("linear", "step"):
            raise InvalidParameter(f"unknown pricing_interpolation: {self.pricing_interpolation}")
        if self.max_recent_events <= 0:
            raise InvalidParameter("max_recent_events must be positive")
        _check_table("pricing_table", self.pricing_table, PPM)
        _check_table("payout_curve", self.payout_curve, BPS)


# =============================================================================
# TELEPORT
# =============================================================================


@dataclass(frozen=True)
class AdvanceOption:
    """
    Вариант аванса, ключ — число эпох.

    Длинные сроки: выше ставка за эпоху, ниже collateral ratio.
    """

    epochs: int
    yield_rate_bps: int
    collateral_ratio_permille: int
    description: str = ""


def _default_advance_options() -> Tuple[AdvanceOption, ...]:
    return (
        AdvanceOption(3, 450, 1200, "Short-term advance with high liquidity"),
        AdvanceOption(6, 550, 1150, "Medium-term advance, balanced risk/reward"),
        AdvanceOption(12, 720, 1100, "Long-term advance with premium rates"),
        AdvanceOption(24, 850, 1050, "Maximum advance with highest yield"),
    )


@dataclass(frozen=True)
class TeleportConfig:
    """
    Конфигурация YieldTeleportPool.

    advance_options упорядочены по epochs; для промежуточных сроков
    применяется вариант с наибольшим epochs <= запрошенного (step).
    """

    advance_options: Tuple[AdvanceOption, ...] = field(default_factory=_default_advance_options)
    early_redeem_penalty_bps: int = 1000
    default_rate_bps: int = 200
    forecast_horizon: int = 12
    forecast_window: int = 8

    def __post_init__(self) -> None:
        if not self.advance_options:
            raise InvalidParameter("advance_options must not be empty")
        for prev, nxt in zip(self.advance_options, self.advance_options[1:]):
            if nxt.epochs <= prev.epochs:
                raise InvalidParameter("advance_options must be ordered by epochs")
            if nxt.yield_rate_bps < prev.yield_rate_bps:
                raise InvalidParameter("longer advances must not carry lower rates")
            if nxt.collateral_ratio_permille > prev.collateral_ratio_permille:
                raise InvalidParameter("longer advances must not carry higher collateral ratio")
        for opt in self.advance_options:
            if opt.epochs <= 0 or not 0 <= opt.yield_rate_bps <= BPS:
                raise InvalidParameter(f"invalid advance option: {opt}")
            if opt.collateral_ratio_permille < PERMILLE:
                raise InvalidParameter(f"collateral ratio below 1.0: {opt}")
        if not 0 <= self.early_redeem_penalty_bps <= BPS:
            raise InvalidParameter("early_redeem_penalty_bps must be in [0, 10000]")
        if not 0 <= self.default_rate_bps < BPS:
            raise InvalidParameter("default_rate_bps must be in [0, 10000)")
        if self.forecast_horizon <= 0 or self.forecast_window <= 0:
            raise InvalidParameter("forecast horizon and window must be positive")


# =============================================================================
# LADDER
# =============================================================================


@dataclass(frozen=True)
class LadderConfig:
    """Ступени лестницы: длительности (сек) и начальные веса (bps)."""

    rung_durations: Tuple[int, ...] = (3_600, 21_600, 86_400)
    initial_weights_bps: Tuple[int, ...] = (3_000, 4_500, 2_500)

    def __post_init__(self) -> None:
        if not self.rung_durations:
            raise InvalidParameter("ladder must have at least one rung")
        if any(d <= 0 for d in self.rung_durations):
            raise InvalidParameter(f"rung durations must be positive: {self.rung_durations}")
        if len(self.initial_weights_bps) != len(self.rung_durations):
            raise InvalidParameter("one initial weight per rung is required")
        if sum(self.initial_weights_bps) != BPS or any(w < 0 for w in self.initial_weights_bps):
            raise InvalidParameter(f"initial weights must sum to {BPS}: {self.initial_weights_bps}")


# =============================================================================
# VAULT
# =============================================================================


@dataclass(frozen=True)
class VaultConfig:
    """Полная конфигурация VaultEngine."""

    volatility: VolatilityConfig = field(default_factory=VolatilityConfig)
    epoch: EpochConfig = field(default_factory=EpochConfig)
    fees: FeeCurveConfig = field(default_factory=FeeCurveConfig)
    shield: ShieldConfig = field(default_factory=ShieldConfig)
    teleport: TeleportConfig = field(default_factory=TeleportConfig)
    ladder: LadderConfig = field(default_factory=LadderConfig)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "VaultConfig":
        """
        Сборка конфигурации из dict (секции необязательны).

        Raises:
            InvalidParameter: неизвестная секция/ключ или недопустимое значение
        """
        raw = dict(raw or {})
        unknown = set(raw) - {f.name for f in fields(cls)}
        if unknown:
            raise InvalidParameter(f"unknown config sections: {sorted(unknown)}")

        try:
            fees_raw = raw.get("fees") or {}
            fee_rules = {
                name: FeeRule(**rule) for name, rule in _checked(FeeCurveConfig, fees_raw).items()
            }

            shield_raw = _checked(ShieldConfig, raw.get("shield") or {})
            for table in ("pricing_table", "payout_curve"):
                if table in shield_raw:
                    shield_raw[table] = _as_table(shield_raw[table])

            teleport_raw = _checked(TeleportConfig, raw.get("teleport") or {})
            if "advance_options" in teleport_raw:
                teleport_raw["advance_options"] = tuple(
                    AdvanceOption(**opt) for opt in teleport_raw["advance_options"]
                )

            ladder_raw = _checked(LadderConfig, raw.get("ladder") or {})
            for key in ("rung_durations", "initial_weights_bps"):
                if key in ladder_raw:
                    ladder_raw[key] = tuple(int(v) for v in ladder_raw[key])

            return cls(
                volatility=VolatilityConfig(**_checked(VolatilityConfig, raw.get("volatility") or {})),
                epoch=EpochConfig(**_checked(EpochConfig, raw.get("epoch") or {})),
                fees=FeeCurveConfig(**fee_rules),
                shield=ShieldConfig(**shield_raw),
                teleport=TeleportConfig(**teleport_raw),
                ladder=LadderConfig(**ladder_raw),
            )
        except TypeError as e:
            raise InvalidParameter(f"malformed config: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> "VaultConfig":
        """
        Загрузка конфигурации из YAML файла.

        Raises:
            FileNotFoundError: если файл не найден
            InvalidParameter: если содержимое не является mapping
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if raw is not None and not isinstance(raw, dict):
            raise InvalidParameter(f"config root must be a mapping, got {type(raw).__name__}")

        return cls.from_dict(raw)


def _checked(section_cls: type, raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Проверка, что секция содержит только известные ключи."""
    if not isinstance(raw, Mapping):
        raise InvalidParameter(f"{section_cls.__name__} section must be a mapping")
    known = {f.name for f in fields(section_cls)}
    unknown = set(raw) - known
    if unknown:
        raise InvalidParameter(f"unknown {section_cls.__name__} keys: {sorted(unknown)}")
    return dict(raw)
