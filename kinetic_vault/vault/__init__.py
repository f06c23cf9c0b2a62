"""Vault — фасад движка."""

from .engine import CrankResult, VaultEngine

__all__ = ["VaultEngine", "CrankResult"]
