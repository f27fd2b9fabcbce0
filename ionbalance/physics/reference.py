r"""Pure-hydrogen reference implementation of the physics callables.

The production abundance solvers and macro-atom machinery live outside this
package.  :class:`ReferencePhysics` provides a small, self-contained model
with the same call signatures so that the ionization cycle can run end to
end from the command line and in tests:

* LTE abundances from the Saha equation at ``t_r``;
* dilute on-the-spot abundances, :math:`W \sqrt{T_e/T_r}\,\Phi(T_r)`;
* photoionization equilibrium from the fitted band power laws with case-B
  recombination, :math:`\alpha_B = 2.59\times10^{-13} (T_e/10^4)^{-0.7}`;
* free-free, recombination, Compton and adiabatic cooling.

There are no dielectronic or macro-atom terms.  Per-band estimators hold the
band-integrated mean intensity, so the fitted weight gives
:math:`J_\nu = W \nu^\alpha` directly.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, Sequence, Tuple

import numpy as np

from .. import constants
from ..bands import FrequencyBands
from ..modes import NebularMode
from ..plasma import PlasmaCell, WindCell
from ..schema import SourceSpectrum
from .callables import PhysicsCallables
from .powerlaw import band_moments

logger = logging.getLogger(__name__)

__all__ = [
    "NIONS",
    "saha_phi",
    "case_b_recombination",
    "ionized_fraction",
    "band_photo_rates",
    "ReferencePhysics",
]

NIONS = 2
ALPHA_B_1E4 = 2.59e-13
ALPHA_B_SLOPE = -0.7
GAUNT_FF = 1.3
FREE_FREE = 1.426e-27
RECOMB_ENERGY_FACTOR = 0.8


def saha_phi(t: float) -> float:
    """Return ``n_e n_II / n_I`` for hydrogen in LTE at temperature ``t``."""

    return constants.SAHA * t ** 1.5 * math.exp(-constants.H * constants.NU_H_EDGE / (constants.BOLTZMANN * t))


def case_b_recombination(t: float) -> float:
    """Case-B recombination coefficient of hydrogen in cm^3 s^-1."""

    return ALPHA_B_1E4 * (t / 1.0e4) ** ALPHA_B_SLOPE


def ionized_fraction(q: float) -> float:
    """Solve ``x**2 / (1 - x) = q`` for the ionized fraction ``x``."""

    if q <= 0.0:
        return 0.0
    if math.isinf(q):
        return 1.0
    return 2.0 / (1.0 + math.sqrt(1.0 + 4.0 / q))


def _power_integral(p: float, a: float, b: float) -> float:
    k = p + 1.0
    log_ratio = math.log(b / a)
    if abs(k) < 1e-12:
        return log_ratio
    return a ** k * math.expm1(k * log_ratio) / k


def band_photo_rates(alpha: float, weight: float, numin: float, numax: float) -> Tuple[float, float]:
    """Photoionization rate [s^-1] and heating [erg s^-1] per neutral atom from one band.

    The cross-section is hydrogenic, ``sigma_0 (nu/nu_0)**-3`` above the
    Lyman edge ``nu_0``; the band contributes only above the edge.
    """

    lo = max(numin, constants.NU_H_EDGE)
    if weight <= 0.0 or lo >= numax:
        return 0.0, 0.0
    nu0 = constants.NU_H_EDGE
    prefactor = 4.0 * constants.PI * constants.SIGMA_H_EDGE * nu0 ** 3 * weight / constants.H
    rate = prefactor * _power_integral(alpha - 4.0, lo, numax)
    heat = prefactor * constants.H * (_power_integral(alpha - 3.0, lo, numax) - nu0 * _power_integral(alpha - 4.0, lo, numax))
    return rate, heat


class ReferencePhysics:
    """Hydrogen-only physics bound to one cell array.

    The cooling callables receive a :class:`WindCell`; the matching plasma
    cell is looked up through ``wind.nplasma``.
    """

    def __init__(self, cells: Iterable[PlasmaCell], wind: Sequence[WindCell], bands: FrequencyBands) -> None:
        self.cells: Dict[int, PlasmaCell] = {cell.nplasma: cell for cell in cells}
        self.wind = wind
        self.bands = bands
        for cell in self.cells.values():
            if cell.density.size != NIONS:
                raise ValueError(f"cell {cell.nplasma} has {cell.density.size} ions; the hydrogen model needs {NIONS}")

    def callables(self) -> PhysicsCallables:
        return PhysicsCallables(
            nebular_concentrations=self.nebular_concentrations,
            fix_concentrations=self.fix_concentrations,
            adiabatic_cooling=self.adiabatic_cooling,
            total_comp=self.total_comp,
            total_emission=self.total_emission,
        )

    def _plasma(self, wind: WindCell) -> PlasmaCell:
        return self.cells[wind.nplasma]

    # abundances

    def photoionization_rate(self, cell: PlasmaCell) -> float:
        """Rate from the fitted band models of ``cell``."""

        total = 0.0
        for band in range(self.bands.nbands):
            numin, numax = self.bands.band(band)
            rate, _ = band_photo_rates(float(cell.sim_alpha[band]), float(cell.sim_w[band]), numin, numax)
            total += rate
        return total

    def _set_fraction(self, cell: PlasmaCell, x: float) -> int:
        if not math.isfinite(x) or not 0.0 <= x <= 1.0:
            logger.error("cell %d: ionized fraction %r not usable, abundances unchanged", cell.nplasma, x)
            return 1
        cell.density[0] = (1.0 - x) * cell.nh
        cell.density[1] = x * cell.nh
        cell.ne = cell.density[1]
        alpha_b = case_b_recombination(cell.t_e)
        cell.recomb[0] = alpha_b * cell.ne
        cell.ioniz[0] = cell.recomb[0] * cell.density[1] / cell.density[0] if cell.density[0] > 0.0 else 0.0
        return 0

    def nebular_concentrations(self, cell: PlasmaCell, submode: int) -> int:
        """Update hydrogen abundances of ``cell``; returns 0 on success."""

        mode = NebularMode(int(submode))
        if mode is NebularMode.LTE_TR:
            q = saha_phi(cell.t_r) / cell.nh
        elif mode in (NebularMode.ON_THE_SPOT, NebularMode.ON_THE_SPOT_EXACT):
            q = cell.w * math.sqrt(cell.t_e / cell.t_r) * saha_phi(cell.t_r) / cell.nh
        else:
            q = self.photoionization_rate(cell) / (case_b_recombination(cell.t_e) * cell.nh)
        return self._set_fraction(cell, ionized_fraction(q))

    def fix_concentrations(self, cell: PlasmaCell, submode: int) -> int:
        return self._set_fraction(cell, 1.0)

    # cooling

    def adiabatic_cooling(self, wind: WindCell, t: float) -> float:
        cell = self._plasma(wind)
        return 1.5 * constants.BOLTZMANN * t * (cell.ne + cell.nh) * wind.div_v * wind.volume

    def total_comp(self, wind: WindCell, t: float) -> float:
        cell = self._plasma(wind)
        return (
            16.0 * constants.PI * constants.THOMPSON * constants.BOLTZMANN * t * cell.ne * cell.j * wind.volume
            / (constants.M_E * constants.C ** 2)
        )

    def total_emission(self, wind: WindCell, numin: float, numax: float) -> float:
        """Free-free plus recombination cooling at the cell's ``t_e``.

        The emission is frequency integrated; ``numin`` and ``numax`` are
        accepted for call compatibility.
        """

        cell = self._plasma(wind)
        t = cell.t_e
        n_ion = cell.density[1]
        free_free = FREE_FREE * GAUNT_FF * math.sqrt(t) * cell.ne * n_ion
        recombination = RECOMB_ENERGY_FACTOR * case_b_recombination(t) * constants.BOLTZMANN * t * cell.ne * n_ion
        return (free_free + recombination) * wind.volume

    # estimators

    def deposit_estimators(self, cell: PlasmaCell, source: SourceSpectrum) -> None:
        """Fill the radiation estimators of ``cell`` from a power-law source.

        Every band outside ``source.empty_bands`` receives
        ``photons_per_band`` photons with the analytic moments of
        ``source.weight * nu**source.alpha``.  Photoionization heating of the
        current neutral density replaces ``heat_photo`` and ``heat_tot``;
        macro-atom heating restarts from zero.
        """

        empty = set(source.empty_bands)
        heating = 0.0
        for band in range(self.bands.nbands):
            if band in empty:
                cell.xj[band] = 0.0
                cell.xave_freq[band] = 0.0
                cell.nxtot[band] = 0
                continue
            numin, numax = self.bands.band(band)
            j, mean_freq = band_moments(source.alpha, source.weight, numin, numax)
            cell.xj[band] = j
            cell.xave_freq[band] = mean_freq
            cell.nxtot[band] = source.photons_per_band
            heating += band_photo_rates(source.alpha, source.weight, numin, numax)[1]

        cell.j = float(np.sum(cell.xj))
        cell.ave_freq = float(np.sum(cell.xj * cell.xave_freq) / cell.j) if cell.j > 0.0 else 0.0
        volume = self.wind[cell.nwind].volume
        cell.heat_photo = heating * cell.density[0] * volume
        cell.heat_lines = 0.0
        cell.heat_lines_macro = 0.0
        cell.heat_photo_macro = 0.0
        cell.heat_tot = cell.heat_photo + cell.heat_lines
