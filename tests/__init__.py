"""
Test suite for kinetic_vault

Contains:
- tests/unit/          : Unit tests per component + engine integration
"""
