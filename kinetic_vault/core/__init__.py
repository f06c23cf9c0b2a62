"""
Core domain models, errors, fixed-point primitives, and contracts.

This module contains the foundational building blocks that are independent
of the stateful components (scheduler, ledger, pools).
"""
