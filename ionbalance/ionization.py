"""Per-cell ionization update.

:func:`ion_abundances` is the steering routine for all abundance
calculations of a single cell.  Depending on the mode it either calls the
abundance routine at fixed temperatures, or runs :func:`one_shot`, which
first moves the electron temperature towards thermal balance with a damped
step and then recomputes the abundances at the new temperature.

Within a cell the order is fixed: the power-law fit (mode 5), the history
shift, the temperature solve, the abundance update and finally the
convergence check.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Sequence, Union

from .bands import FrequencyBands
from .convergence import convergence
from .errors import FatalIonizationError
from .modes import IonizationMode, NebularMode, nebular_submode
from .physics.callables import PhysicsCallables
from .physics.powerlaw import BandFit, fit_spectral_model
from .physics.thermal import solve_temperature
from .plasma import PlasmaCell, WindCell
from .schema import IonizationSettings
from .warnings import ConvergenceWarning, PhysicsWarning

logger = logging.getLogger(__name__)

__all__ = ["IonizationContext", "shift_history", "one_shot", "ion_abundances"]


@dataclass
class IonizationContext:
    """Everything a cell update needs besides the cell itself.

    Attributes
    ----------
    physics:
        Abundance, heating and cooling routines.
    wind:
        Wind cells indexed by ``PlasmaCell.nwind``.
    bands:
        Band table for the power-law fit (required for mode 5 only).
    settings:
        Tolerances, gain controls and the Auger switch.
    """

    physics: PhysicsCallables
    wind: Sequence[WindCell]
    bands: FrequencyBands | None = None
    settings: IonizationSettings = field(default_factory=IonizationSettings)

    def wind_cell(self, cell: PlasmaCell) -> WindCell:
        return self.wind[cell.nwind]


def shift_history(cell: PlasmaCell) -> None:
    """Move the current temperatures and luminosity into the ``*_old`` slots.

    ``dt_e`` must be computed before ``t_e_old`` is overwritten.
    """

    cell.dt_e_old = cell.dt_e
    cell.dt_e = cell.t_e - cell.t_e_old
    cell.t_e_old = cell.t_e
    cell.t_r_old = cell.t_r
    cell.lum_rad_old = cell.lum_rad


def _log_nebular_failure(cell: PlasmaCell, caller: str) -> None:
    logger.error(
        "%s: nebular_concentrations failed to converge in cell %d (j %8.2e t_e %8.2e t_r %8.2e w %8.2e)",
        caller, cell.nplasma, cell.j, cell.t_e, cell.t_r, cell.w,
    )
    warnings.warn(f"abundances did not converge in cell {cell.nplasma}", ConvergenceWarning, stacklevel=3)


def one_shot(cell: PlasmaCell, mode: Union[IonizationMode, int], ctx: IonizationContext) -> int:
    """Damped temperature update followed by an abundance update.

    Returns the status of the abundance routine (zero on success).

    Raises
    ------
    FatalIonizationError
        For a mode the abundance routine cannot handle, or a radiation
        temperature at or below ``settings.tr_min``.
    """

    settings = ctx.settings
    submode = nebular_submode(mode)

    gain = cell.gain
    te_old = cell.t_e
    lo, hi = settings.te_bracket
    te_new = solve_temperature(
        cell, ctx.wind_cell(cell), lo * te_old, hi * te_old, ctx.physics, tol=settings.te_root_tol
    )
    cell.t_e = (1.0 - gain) * te_old + gain * te_new
    logger.debug(
        "one_shot: cell %d t_e %.2f -> %.2f (balance %.2f, gain %.3f)", cell.nplasma, te_old, cell.t_e, te_new, gain
    )

    if cell.t_r <= settings.tr_min:
        logger.critical("one_shot: t_r exceptionally small %g in cell %d", cell.t_r, cell.nplasma)
        raise FatalIonizationError(f"t_r exceptionally small ({cell.t_r:g} K) in cell {cell.nplasma}")

    status = int(ctx.physics.nebular_concentrations(cell, submode))
    if status:
        _log_nebular_failure(cell, "one_shot")
    if not cell.ne_in_range():
        logger.error("one_shot: ne = %8.2e out of range in cell %d", cell.ne, cell.nplasma)
        warnings.warn(f"electron density {cell.ne:.3e} out of range in cell {cell.nplasma}", PhysicsWarning, stacklevel=2)
    return status


def _fit_bands(cell: PlasmaCell, ctx: IonizationContext) -> List[BandFit]:
    if ctx.bands is None:
        raise FatalIonizationError("power-law mode requires a frequency band table")
    settings = ctx.settings
    return fit_spectral_model(
        cell,
        ctx.bands,
        tol=settings.alpha_root_tol,
        alpha_clamp=settings.alpha_clamp,
        max_expansions=settings.max_bracket_expansions,
        sane_check=ctx.physics.sane_check,
    )


def ion_abundances(cell: PlasmaCell, mode: Union[IonizationMode, int, str], ctx: IonizationContext) -> int:
    """Update the ionization state of ``cell`` according to ``mode``.

    ``FROZEN_OTS`` (0)
        On-the-spot abundances at the existing ``t_e``; heating and cooling
        are not matched.
    ``LTE_TR`` (1)
        LTE abundances at ``t_r``.
    ``FIXED`` (2)
        Hardwired concentrations.
    ``DAMPED_OTS`` (3)
        History shift, :func:`one_shot` with on-the-spot abundances,
        convergence check.
    ``LTE_TR_PL`` (4)
        LTE with the power-law correction, using the current ``sim_alpha``
        and ``sim_w``.
    ``DAMPED_PL`` (5)
        Power-law fit in every band, history shift, :func:`one_shot` with
        power-law abundances, convergence check.

    Returns the status of the abundance routine.  Recoverable problems (fit
    failures, non-converged abundances, ``ne`` out of range) are logged and
    never raised.

    Raises
    ------
    FatalIonizationError
        For an unknown mode.
    """

    try:
        selected = IonizationMode.coerce(mode)
    except FatalIonizationError:
        logger.critical("ion_abundances: could not calculate abundances for mode %r", mode)
        raise
    physics = ctx.physics

    if selected is IonizationMode.FROZEN_OTS:
        status = int(physics.nebular_concentrations(cell, NebularMode.ON_THE_SPOT))
        if status:
            _log_nebular_failure(cell, "ion_abundances")
    elif selected is IonizationMode.LTE_TR:
        status = int(physics.nebular_concentrations(cell, NebularMode.LTE_TR))
    elif selected is IonizationMode.FIXED:
        status = int(physics.fix_concentrations(cell, 0))
    elif selected is IonizationMode.DAMPED_OTS:
        shift_history(cell)
        status = one_shot(cell, selected, ctx)
        convergence(cell, ctx.settings)
    elif selected is IonizationMode.LTE_TR_PL:
        status = int(physics.nebular_concentrations(cell, NebularMode.POWER_LAW))
    else:
        _fit_bands(cell, ctx)
        shift_history(cell)
        status = one_shot(cell, selected, ctx)
        convergence(cell, ctx.settings)

    # Auger ionization only affects minor ions, so it runs after the main balance.
    if ctx.settings.auger_ionization:
        physics.auger_ionization(cell)

    return status
