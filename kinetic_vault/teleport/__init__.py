"""Teleport — аванс будущей junior-доходности."""

from .pool import EarlyRedemption, YieldTeleportPool

__all__ = ["YieldTeleportPool", "EarlyRedemption"]
