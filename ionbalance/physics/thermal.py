"""Electron temperature from the balance of heating and cooling.

:func:`solve_temperature` finds the temperature at which the total heating of
a cell equals its total cooling (radiative, adiabatic, dielectronic and
Compton) for the current ion abundances.  The abundances are not updated
here, so the result is only self-consistent once the outer damped iteration
in :func:`ionbalance.ionization.one_shot` has converged.

The residual is *stateful*: macro-atom heating depends on temperature, so
every evaluation rewrites the cached heating decomposition of the cell
(``heat_lines_macro``, ``heat_photo_macro`` and the totals that include
them) as well as ``t_e`` and the cooling terms.  After a solve the cell holds
the terms evaluated at the returned temperature.

The cell reaches the residual through a closure built by
:func:`make_residual`; there is no module-level scratch handle.  One closure
serves one cell on one thread.
"""
from __future__ import annotations

import logging
from typing import Callable

from .. import constants
from ..plasma import PlasmaCell, WindCell
from .callables import PhysicsCallables
from .rootfind import find_root

logger = logging.getLogger(__name__)

__all__ = [
    "refresh_macro_heating",
    "heating_minus_cooling",
    "make_residual",
    "solve_temperature",
]


def refresh_macro_heating(cell: PlasmaCell, t: float, physics: PhysicsCallables) -> None:
    """Replace the macro-atom heating terms of ``cell`` by their values at ``t``."""

    cell.heat_tot -= cell.heat_lines_macro
    cell.heat_lines -= cell.heat_lines_macro
    cell.heat_lines_macro = float(physics.macro_bb_heating(cell, t))
    cell.heat_tot += cell.heat_lines_macro
    cell.heat_lines += cell.heat_lines_macro

    cell.heat_tot -= cell.heat_photo_macro
    cell.heat_photo -= cell.heat_photo_macro
    cell.heat_photo_macro = float(physics.macro_bf_heating(cell, t))
    cell.heat_tot += cell.heat_photo_macro
    cell.heat_photo += cell.heat_photo_macro


def heating_minus_cooling(cell: PlasmaCell, wind: WindCell, t: float, physics: PhysicsCallables) -> float:
    """Return total heating minus total cooling of ``cell`` at electron temperature ``t``.

    Mutates ``cell``: ``t_e`` is set to ``t``, the macro-atom heating is
    recomputed, and ``lum_adiabatic``, ``lum_dr``, ``lum_comp`` and
    ``lum_rad`` are stored.
    """

    cell.t_e = t
    refresh_macro_heating(cell, t, physics)
    cell.lum_adiabatic = float(physics.adiabatic_cooling(wind, t))
    physics.compute_dr_coeffs(t)
    cell.lum_dr = float(physics.total_dr(wind, t))
    cell.lum_comp = float(physics.total_comp(wind, t))
    cell.lum_rad = float(physics.total_emission(wind, 0.0, constants.VERY_BIG))
    return cell.heat_tot - cell.lum_adiabatic - cell.lum_dr - cell.lum_comp - cell.lum_rad


def make_residual(cell: PlasmaCell, wind: WindCell, physics: PhysicsCallables) -> Callable[[float], float]:
    """Bind ``cell`` into a one-argument residual for the root solver."""

    def residual(t: float) -> float:
        return heating_minus_cooling(cell, wind, t, physics)

    return residual


def solve_temperature(
    cell: PlasmaCell,
    wind: WindCell,
    tmin: float,
    tmax: float,
    physics: PhysicsCallables,
    *,
    tol: float = constants.TE_ROOT_TOL,
) -> float:
    """Return the electron temperature in ``[tmin, tmax]`` that balances heating and cooling.

    When the residual does not change sign across the interval, the end point
    with the smaller imbalance is returned instead of failing; the damped
    outer iteration corrects the step on the next cycle.  ``cell.t_e`` is left
    at the returned value with all heating and cooling terms evaluated there.
    """

    residual = make_residual(cell, wind, physics)
    z_min = residual(tmin)
    z_max = residual(tmax)

    if z_min * z_max < 0.0:
        t_new = find_root(residual, tmin, tmax, tol)
    elif abs(z_min) < abs(z_max):
        logger.debug(
            "cell %d: heating-cooling not bracketed in [%.4g, %.4g] K, moving to lower bound",
            cell.nplasma, tmin, tmax,
        )
        t_new = tmin
    else:
        logger.debug(
            "cell %d: heating-cooling not bracketed in [%.4g, %.4g] K, moving to upper bound",
            cell.nplasma, tmin, tmax,
        )
        t_new = tmax

    residual(t_new)
    return t_new
