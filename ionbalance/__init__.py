"""Per-cell ionization and thermal balance for Monte Carlo radiative transfer."""
from . import constants, convergence, cycle, ionization, parallel
from .errors import IonBalanceError
from .modes import IonizationMode, NebularMode

__all__ = [
    "constants",
    "convergence",
    "cycle",
    "ionization",
    "parallel",
    "IonBalanceError",
    "IonizationMode",
    "NebularMode",
]
