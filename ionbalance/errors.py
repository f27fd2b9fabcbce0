"""Custom exceptions for the :mod:`ionbalance` package."""
from __future__ import annotations


class IonBalanceError(Exception):
    """Base exception for ionization and thermal balance errors."""


class ConfigurationError(IonBalanceError, ValueError):
    """Invalid configuration file, band table or parameter."""


class PhysicsError(IonBalanceError, ValueError):
    """Unphysical or unusable value produced by a physics routine."""


class NumericalError(IonBalanceError, RuntimeError):
    """Numerical failure such as a root solve that does not converge."""


class BracketError(NumericalError):
    """Root-finder interval does not straddle a sign change."""


class FatalIonizationError(IonBalanceError, RuntimeError):
    """Unrecoverable state: unknown mode or a radiation temperature that is too small.

    The cycle driver never catches this; the CLI turns it into a non-zero exit.
    """


__all__ = [
    "IonBalanceError",
    "ConfigurationError",
    "PhysicsError",
    "NumericalError",
    "BracketError",
    "FatalIonizationError",
]
