r"""Power-law spectral model fitted to the per-band radiation estimators.

In each band the mean intensity is modelled as :math:`J_\nu = W \nu^\alpha`
between ``numin`` and ``numax``.  The slope follows from the observed mean
frequency,

.. math::

    \langle\nu\rangle = \frac{\alpha+1}{\alpha+2}
        \frac{\nu_{max}^{\alpha+2} - \nu_{min}^{\alpha+2}}
             {\nu_{max}^{\alpha+1} - \nu_{min}^{\alpha+1}},

and the weight from the band-integrated intensity,
:math:`W = J (\alpha+1) / (\nu_{max}^{\alpha+1} - \nu_{min}^{\alpha+1})`.

Both expressions are evaluated in a scaled ``expm1`` form, which is exact at
the removable singularities ``alpha = -1`` and ``alpha = -2`` and does not
overflow for the several-unit brackets the fitter can reach.
"""
from __future__ import annotations

import logging
import math
import warnings
from typing import Callable, List, NamedTuple, Tuple

from .. import constants
from ..bands import FrequencyBands
from ..errors import NumericalError
from ..plasma import PlasmaCell
from ..warnings import NumericalWarning
from .callables import is_unusable
from .rootfind import find_root

logger = logging.getLogger(__name__)

__all__ = [
    "BandFit",
    "power_law_mean_frequency",
    "mean_frequency_residual",
    "power_law_weight",
    "band_moments",
    "fit_band_slope",
    "fit_spectral_model",
]

BRACKET_HALF_WIDTH = 0.1
BRACKET_STEP = 1.0
MAX_BRACKET_EXPANSIONS = 50
_SMALL_EXPONENT = 1e-12


class BandFit(NamedTuple):
    band: int
    alpha: float
    weight: float
    status: str


def _scaled_integral(k: float, x: float) -> float:
    """Return ``expm1(k*x)/k`` with its ``k -> 0`` limit ``x``."""

    if abs(k) < _SMALL_EXPONENT:
        return x
    return math.expm1(k * x) / k


def _log_scaled_integral(k: float, x: float) -> float:
    """Return ``log(expm1(k*x)/k)`` for ``x > 0`` without overflow."""

    kx = k * x
    if abs(k) < _SMALL_EXPONENT:
        return math.log(x)
    if kx > 50.0:
        return kx - math.log(k)
    if kx < -50.0:
        return -math.log(-k)
    return math.log(math.expm1(kx) / k)


def power_law_mean_frequency(alpha: float, numin: float, numax: float) -> float:
    """Return the mean frequency of ``nu**alpha`` truncated to ``[numin, numax]``."""

    log_ratio = math.log(numax / numin)
    if alpha >= -1.5:
        return numax * _scaled_integral(alpha + 2.0, -log_ratio) / _scaled_integral(alpha + 1.0, -log_ratio)
    return numin * _scaled_integral(alpha + 2.0, log_ratio) / _scaled_integral(alpha + 1.0, log_ratio)


def mean_frequency_residual(alpha: float, numin: float, numax: float, mean_freq: float) -> float:
    """Analytic mean frequency of the truncated power law minus the observed one."""

    return power_law_mean_frequency(alpha, numin, numax) - mean_freq


def power_law_weight(j: float, alpha: float, numin: float, numax: float) -> float:
    """Return the weight ``W`` such that ``W * nu**alpha`` integrates to ``j`` over the band.

    ``j`` already includes the cell volume and the ``4 pi`` of the estimator
    normalisation, so the weight uses unit volume.
    """

    if j == 0.0:
        return 0.0
    if j < 0.0 or not math.isfinite(j):
        return math.nan
    k = alpha + 1.0
    log_integral = k * math.log(numin) + _log_scaled_integral(k, math.log(numax / numin))
    try:
        return math.exp(math.log(j) - log_integral)
    except OverflowError:
        return math.inf


def band_moments(alpha: float, weight: float, numin: float, numax: float) -> Tuple[float, float]:
    """Return ``(j, mean_freq)`` of ``weight * nu**alpha`` over ``[numin, numax]``."""

    k = alpha + 1.0
    log_integral = k * math.log(numin) + _log_scaled_integral(k, math.log(numax / numin))
    j = weight * math.exp(log_integral)
    return j, power_law_mean_frequency(alpha, numin, numax)


def fit_band_slope(
    numin: float,
    numax: float,
    mean_freq: float,
    alpha_guess: float,
    *,
    tol: float = constants.ALPHA_ROOT_TOL,
    max_expansions: int = MAX_BRACKET_EXPANSIONS,
) -> float:
    """Solve for the slope that reproduces ``mean_freq`` in ``[numin, numax]``.

    The search starts from ``alpha_guess +/- 0.1`` and widens by one unit on
    each side until the residual changes sign.

    Raises
    ------
    NumericalError
        If no sign change is found within ``max_expansions`` widenings.
    """

    def residual(alpha: float) -> float:
        return mean_frequency_residual(alpha, numin, numax, mean_freq)

    alpha_min = alpha_guess - BRACKET_HALF_WIDTH
    alpha_max = alpha_guess + BRACKET_HALF_WIDTH
    expansions = 0
    while residual(alpha_min) * residual(alpha_max) > 0.0:
        if expansions >= max_expansions:
            raise NumericalError(
                f"mean frequency {mean_freq:.4e} not bracketed in [{numin:.4e}, {numax:.4e}] "
                f"after {expansions} expansions (alpha in [{alpha_min:.1f}, {alpha_max:.1f}])"
            )
        alpha_min -= BRACKET_STEP
        alpha_max += BRACKET_STEP
        expansions += 1
    if expansions:
        logger.debug("fit_band_slope: bracket widened %d times to [%.2f, %.2f]", expansions, alpha_min, alpha_max)
    return find_root(residual, alpha_min, alpha_max, tol)


def fit_spectral_model(
    cell: PlasmaCell,
    bands: FrequencyBands,
    *,
    tol: float = constants.ALPHA_ROOT_TOL,
    alpha_clamp: Tuple[float, float] = constants.ALPHA_CLAMP,
    max_expansions: int = MAX_BRACKET_EXPANSIONS,
    sane_check: Callable[[float], bool] = is_unusable,
) -> List[BandFit]:
    """Fit ``sim_alpha`` and ``sim_w`` in every band of ``cell``.

    Bands without photons get zero weight and keep their slope; they are
    reported with a single warning per cell.  A fit is committed only when
    both slope and weight pass ``sane_check``; otherwise the previous values
    stay in place.
    """

    if cell.nbands != bands.nbands:
        raise ValueError(f"cell {cell.nplasma} has {cell.nbands} bands but the table has {bands.nbands}")
    lo_clamp, hi_clamp = alpha_clamp
    results: List[BandFit] = []
    empty: List[int] = []
    for band in range(bands.nbands):
        if cell.nxtot[band] == 0:
            empty.append(band)
            cell.sim_w[band] = 0.0
            results.append(BandFit(band, float(cell.sim_alpha[band]), 0.0, "empty"))
            continue

        numin, numax = bands.band(band)
        mean_freq = float(cell.xave_freq[band])
        j = float(cell.xj[band])
        logger.debug(
            "cell %d band %d: j=%.2e mean_freq=%.2e numin=%.2e numax=%.2e nphot=%d",
            cell.nplasma, band, j, mean_freq, numin, numax, int(cell.nxtot[band]),
        )
        try:
            alpha = fit_band_slope(
                numin, numax, mean_freq, float(cell.sim_alpha[band]), tol=tol, max_expansions=max_expansions
            )
        except NumericalError as exc:
            logger.error("cell %d band %d: power-law fit failed, keeping previous parameters: %s", cell.nplasma, band, exc)
            warnings.warn(f"power-law fit failed in cell {cell.nplasma} band {band}", NumericalWarning, stacklevel=2)
            results.append(BandFit(band, float(cell.sim_alpha[band]), float(cell.sim_w[band]), "unbracketed"))
            continue

        alpha = min(max(alpha, lo_clamp), hi_clamp)
        weight = power_law_weight(j, alpha, numin, numax)
        if sane_check(alpha) or sane_check(weight):
            logger.error(
                "cell %d band %d: new power-law parameters unreasonable (alpha=%s, w=%s), "
                "keeping previous ones; check the number of photons in this cell",
                cell.nplasma, band, alpha, weight,
            )
            warnings.warn(
                f"unusable power-law parameters in cell {cell.nplasma} band {band}", NumericalWarning, stacklevel=2
            )
            results.append(BandFit(band, float(cell.sim_alpha[band]), float(cell.sim_w[band]), "rejected"))
            continue
        cell.sim_alpha[band] = alpha
        cell.sim_w[band] = weight
        results.append(BandFit(band, alpha, weight, "fit"))

    if empty:
        lo, hi = bands.coarse
        logger.warning(
            "cell %d: no photons in band(s) %s for power-law estimators; weight set to zero "
            "(coarse band %.3e-%.3e, mean frequency %.3e)",
            cell.nplasma, empty, lo, hi, cell.ave_freq,
        )
    return results
