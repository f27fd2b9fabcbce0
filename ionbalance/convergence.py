"""Convergence checks for single cells and for the whole cell array.

A cell counts as converged when its radiation temperature, electron
temperature and heating/cooling balance have all changed by less than
``epsilon`` (relative) since the previous cycle.  Independently, the
relaxation gain of the temperature update is adapted: it shrinks by
``gain_damp`` when the last two temperature steps overshoot with growing
magnitude and grows by ``gain_boost`` otherwise, always within
``[gain_min, gain_max]``.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

from .plasma import PlasmaCell
from .schema import IonizationSettings

logger = logging.getLogger(__name__)

__all__ = ["relative_change", "convergence", "ConvergenceSummary", "check_convergence"]

_DEFAULT_SETTINGS = IonizationSettings()


def relative_change(old: float, new: float) -> float:
    """Return ``|old - new| / (old + new)``, or 0 when the denominator vanishes."""

    denom = old + new
    if denom == 0.0:
        return 0.0
    return abs(old - new) / denom


def convergence(cell: PlasmaCell, settings: Optional[IonizationSettings] = None) -> int:
    """Update the convergence flags and relaxation gain of ``cell``.

    Returns ``converge_whole``, the number of criteria (0-3) that failed.
    """

    settings = settings or _DEFAULT_SETTINGS
    epsilon = settings.epsilon

    cell.converge_t_r = relative_change(cell.t_r_old, cell.t_r)
    cell.converge_t_e = relative_change(cell.t_e_old, cell.t_e)
    cell.converge_hc = relative_change(cell.heat_tot, cell.lum_rad + cell.lum_adiabatic)

    cell.trcheck = int(cell.converge_t_r > epsilon)
    cell.techeck = int(cell.converge_t_e > epsilon)
    cell.hccheck = int(cell.converge_hc > epsilon)
    cell.converge_whole = cell.trcheck + cell.techeck + cell.hccheck

    oscillating = cell.dt_e_old * cell.dt_e < 0.0 and abs(cell.dt_e) > abs(cell.dt_e_old)
    cell.converging = int(oscillating)
    if oscillating:
        cell.gain = max(settings.gain_min, cell.gain * settings.gain_damp)
    else:
        cell.gain = min(settings.gain_max, cell.gain * settings.gain_boost)

    return cell.converge_whole


@dataclass(frozen=True)
class ConvergenceSummary:
    """Counts from a global convergence scan.

    ``n_converging`` counts cells whose temperature is *not* oscillating
    (``converging == 0``).
    """

    n_cells: int
    n_converged: int
    n_converging: int
    n_tr: int
    n_te: int
    n_hc: int

    @property
    def fraction_converged(self) -> float:
        return self.n_converged / self.n_cells if self.n_cells else 0.0

    @property
    def fraction_converging(self) -> float:
        return self.n_converging / self.n_cells if self.n_cells else 0.0

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["fraction_converged"] = self.fraction_converged
        payload["fraction_converging"] = self.fraction_converging
        return payload


def check_convergence(cells: Iterable[PlasmaCell]) -> ConvergenceSummary:
    """Scan all cells, log a convergence summary and return the counts.

    Never raises on the cell contents; an empty array yields zero fractions.
    """

    n_cells = n_converged = n_converging = n_tr = n_te = n_hc = 0
    for cell in cells:
        n_cells += 1
        n_converged += cell.converge_whole == 0
        n_tr += cell.trcheck == 0
        n_te += cell.techeck == 0
        n_hc += cell.hccheck == 0
        n_converging += cell.converging == 0

    summary = ConvergenceSummary(
        n_cells=n_cells,
        n_converged=int(n_converged),
        n_converging=int(n_converging),
        n_tr=int(n_tr),
        n_te=int(n_te),
        n_hc=int(n_hc),
    )
    logger.info(
        "check_convergence: %4d (%.3f) converged and %4d (%.3f) converging of %d cells",
        summary.n_converged, summary.fraction_converged,
        summary.n_converging, summary.fraction_converging, summary.n_cells,
    )
    logger.info("check_convergence breakdown: t_r %4d t_e %4d hc %4d", summary.n_tr, summary.n_te, summary.n_hc)
    if summary.n_cells and math.isclose(summary.fraction_converged, 1.0):
        logger.info("check_convergence: all cells converged")
    return summary
