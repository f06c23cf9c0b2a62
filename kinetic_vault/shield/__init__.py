"""Shield — пул страхования просадки."""

from .pool import DrawdownShieldPool, ShieldClaim

__all__ = ["DrawdownShieldPool", "ShieldClaim"]
