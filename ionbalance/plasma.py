"""Per-cell plasma and wind state.

A :class:`PlasmaCell` is owned by the cell array and mutated only by
:func:`ionbalance.ionization.ion_abundances` (and the physics callables it
invokes) for its own cell.  :class:`WindCell` carries the geometric
quantities the cooling callables need.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List

import numpy as np

from . import constants


@dataclass
class WindCell:
    """Geometry of one wind cell.

    Attributes
    ----------
    nwind:
        Index of this cell in the wind array.
    nplasma:
        Index of the plasma cell holding its ionization state.
    volume:
        Cell volume in cm^3.
    div_v:
        Velocity divergence in s^-1 (drives adiabatic cooling).
    """

    nwind: int
    nplasma: int
    volume: float = 1.0
    div_v: float = 0.0


@dataclass(eq=False)
class PlasmaCell:
    """Ionization and thermal state of one plasma cell.

    Temperatures are in K, heating and cooling terms in erg s^-1 for the whole
    cell, frequencies in Hz.  Per-band arrays have one entry per band of the
    run's :class:`~ionbalance.bands.FrequencyBands`; per-ion arrays one entry
    per ion.
    """

    nplasma: int
    nwind: int
    t_e: float = 1.0e4
    t_r: float = 1.0e4
    t_e_old: float = 0.0
    t_r_old: float = 0.0
    dt_e: float = 0.0
    dt_e_old: float = 0.0
    gain: float = 0.5
    w: float = 1.0
    nh: float = 1.0
    ne: float = 0.0

    heat_tot: float = 0.0
    heat_lines: float = 0.0
    heat_photo: float = 0.0
    heat_lines_macro: float = 0.0
    heat_photo_macro: float = 0.0
    lum_rad: float = 0.0
    lum_rad_old: float = 0.0
    lum_adiabatic: float = 0.0
    lum_dr: float = 0.0
    lum_comp: float = 0.0

    j: float = 0.0
    ave_freq: float = 0.0
    xj: np.ndarray = field(default_factory=lambda: np.zeros(0))
    xave_freq: np.ndarray = field(default_factory=lambda: np.zeros(0))
    nxtot: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    sim_alpha: np.ndarray = field(default_factory=lambda: np.zeros(0))
    sim_w: np.ndarray = field(default_factory=lambda: np.zeros(0))

    density: np.ndarray = field(default_factory=lambda: np.zeros(0))
    ioniz: np.ndarray = field(default_factory=lambda: np.zeros(0))
    recomb: np.ndarray = field(default_factory=lambda: np.zeros(0))

    converge_t_r: float = 0.0
    converge_t_e: float = 0.0
    converge_hc: float = 0.0
    trcheck: int = 1
    techeck: int = 1
    hccheck: int = 1
    converge_whole: int = 3
    converging: int = 0

    @classmethod
    def create(
        cls,
        nplasma: int,
        nwind: int | None = None,
        *,
        nbands: int,
        nions: int,
        alpha0: float = 0.0,
        **values: Any,
    ) -> "PlasmaCell":
        """Return a cell with per-band and per-ion arrays sized for the run.

        ``alpha0`` seeds ``sim_alpha``; the fitter brackets around it on the
        first call.  Scalar fields can be set through ``values``.
        """

        cell = cls(
            nplasma=int(nplasma),
            nwind=int(nplasma if nwind is None else nwind),
            xj=np.zeros(nbands),
            xave_freq=np.zeros(nbands),
            nxtot=np.zeros(nbands, dtype=np.int64),
            sim_alpha=np.full(nbands, float(alpha0)),
            sim_w=np.zeros(nbands),
            density=np.zeros(nions),
            ioniz=np.zeros(nions),
            recomb=np.zeros(nions),
            **values,
        )
        if cell.t_e_old == 0.0:
            cell.t_e_old = cell.t_e
        if cell.t_r_old == 0.0:
            cell.t_r_old = cell.t_r
        return cell

    @property
    def nbands(self) -> int:
        return int(self.sim_alpha.size)

    @property
    def converged(self) -> bool:
        return self.converge_whole == 0

    def ne_in_range(self) -> bool:
        return bool(np.isfinite(self.ne) and 0.0 <= self.ne <= constants.VERY_BIG)

    def to_record(self) -> Dict[str, Any]:
        """Return a plain mapping of every field (arrays as lists)."""

        record: Dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, np.ndarray):
                record[item.name] = value.tolist()
            else:
                record[item.name] = value
        return record

    def flat_record(self) -> Dict[str, Any]:
        """Return a single-level mapping with one column per band and ion entry."""

        row: Dict[str, Any] = {}
        for key, value in self.to_record().items():
            if isinstance(value, list):
                for idx, entry in enumerate(value):
                    row[f"{key}_{idx}"] = entry
            else:
                row[key] = value
        return row


def make_wind(cells: List[PlasmaCell], volume: float = 1.0, div_v: float = 0.0) -> List[WindCell]:
    """Return one :class:`WindCell` per plasma cell, indexed by ``nwind``."""

    size = max((cell.nwind for cell in cells), default=-1) + 1
    wind = [WindCell(nwind=i, nplasma=-1, volume=volume, div_v=div_v) for i in range(size)]
    for cell in cells:
        wind[cell.nwind].nplasma = cell.nplasma
    return wind


__all__ = ["PlasmaCell", "WindCell", "make_wind"]
