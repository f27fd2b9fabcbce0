"""Bundle of the physics routines the ionization core consumes.

The abundance solvers, macro-atom heating and cooling rates belong to the
wider radiative-transfer code.  The ionization core only sees them through a
:class:`PhysicsCallables` instance, so a test can replace any of them with a
closed-form stand-in.  The abundance routines and ``total_emission`` must
be supplied; the other defaults are neutral: no macro-atom heating, no
dielectronic, Compton or adiabatic cooling, and no Auger pass.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:  # pragma: no cover
    from ..plasma import PlasmaCell, WindCell

__all__ = ["PhysicsCallables", "is_unusable"]


def is_unusable(value: Any) -> bool:
    """Return True when ``value`` is NaN, infinite or not a number at all."""

    try:
        return not math.isfinite(float(value))
    except (TypeError, ValueError):
        return True


def _zero_heating(cell: "PlasmaCell", t: float) -> float:
    return 0.0


def _zero_cooling(wind: "WindCell", t: float) -> float:
    return 0.0


def _no_dr_coeffs(t: float) -> None:
    return None


def _no_auger(cell: "PlasmaCell") -> None:
    return None


@dataclass
class PhysicsCallables:
    """Physics routines used by the temperature solver and the abundance update.

    Attributes
    ----------
    nebular_concentrations:
        ``(cell, submode) -> status``; updates ``density``, ``ne``, ``ioniz``
        and ``recomb`` at the cell's current temperatures.  Zero means success.
    fix_concentrations:
        ``(cell, 0) -> status``; hardwired abundances.
    macro_bb_heating, macro_bf_heating:
        ``(cell, t) -> erg/s``; macro-atom line and bound-free heating at a
        trial temperature.
    adiabatic_cooling, total_dr, total_comp:
        ``(wind, t) -> erg/s``; cooling terms at a trial temperature.
    total_emission:
        ``(wind, numin, numax) -> erg/s``; radiative cooling at the cell's
        current ``t_e``.
    compute_dr_coeffs:
        ``(t) -> None``; prepares dielectronic rate coefficients.
    auger_ionization:
        ``(cell) -> None``; optional post-pass.
    sane_check:
        ``(x) -> bool``; True if ``x`` is unusable.
    """

    nebular_concentrations: Callable[["PlasmaCell", int], int]
    fix_concentrations: Callable[["PlasmaCell", int], int]
    total_emission: Callable[["WindCell", float, float], float]
    macro_bb_heating: Callable[["PlasmaCell", float], float] = _zero_heating
    macro_bf_heating: Callable[["PlasmaCell", float], float] = _zero_heating
    adiabatic_cooling: Callable[["WindCell", float], float] = _zero_cooling
    total_dr: Callable[["WindCell", float], float] = _zero_cooling
    total_comp: Callable[["WindCell", float], float] = _zero_cooling
    compute_dr_coeffs: Callable[[float], None] = _no_dr_coeffs
    auger_ionization: Callable[["PlasmaCell"], None] = _no_auger
    sane_check: Callable[[Any], bool] = is_unusable
