"""Fees — кинетическая кривая комиссий."""

from .kinetic_curve import KineticFeeCurve

__all__ = ["KineticFeeCurve"]
