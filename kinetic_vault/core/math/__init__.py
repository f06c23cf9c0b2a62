"""
Core math modules для Kinetic Vault

Целочисленные fixed-point примитивы с явным направлением округления.
"""

from kinetic_vault.core.math.fixed_point import (
    # Scales
    BPS,
    PERMILLE,
    PPM,
    Rounding,
    # Division
    bps_of,
    div_trunc,
    fraction_to_bps,
    mul_div,
    ratio_bps,
    # Utilities
    clamp,
    interpolate_table,
    # Validation
    require_bps,
    require_int,
    require_non_negative,
    require_positive,
    require_weights,
)

__all__ = [
    "BPS",
    "PERMILLE",
    "PPM",
    "Rounding",
    "bps_of",
    "div_trunc",
    "fraction_to_bps",
    "mul_div",
    "ratio_bps",
    "clamp",
    "interpolate_table",
    "require_bps",
    "require_int",
    "require_non_negative",
    "require_positive",
    "require_weights",
]
