"""Structured warning classes for the :mod:`ionbalance` package."""
from __future__ import annotations


class IonBalanceWarning(UserWarning):
    """Base warning class for ionbalance."""


class PhysicsWarning(IonBalanceWarning):
    """Physical quantity outside its expected range."""


class NumericalWarning(IonBalanceWarning):
    """Fit or solve that fell back to previous values."""


class ConvergenceWarning(IonBalanceWarning):
    """Abundance routine reported non-convergence."""


__all__ = [
    "IonBalanceWarning",
    "PhysicsWarning",
    "NumericalWarning",
    "ConvergenceWarning",
]
