"""Spectral accumulators shared across ranks at the end of a cycle."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .bands import FrequencyBands
from .plasma import PlasmaCell

__all__ = ["SpectrumSet"]


@dataclass(eq=False)
class SpectrumSet:
    """Four parallel ``(nspec, nwave)`` accumulators.

    ``f`` and ``lf`` hold the total spectrum on linear and logarithmic
    frequency grids, ``f_wind`` and ``lf_wind`` the wind-only part.  Bin
    centres of the two grids are ``freq_lin`` and ``freq_log``.
    """

    f: np.ndarray
    lf: np.ndarray
    f_wind: np.ndarray
    lf_wind: np.ndarray
    freq_lin: np.ndarray
    freq_log: np.ndarray

    @classmethod
    def create(cls, nspec: int, nwave: int, numin: float, numax: float) -> "SpectrumSet":
        if nspec < 1 or nwave < 2:
            raise ValueError(f"spectra need nspec >= 1 and nwave >= 2 (got {nspec}, {nwave})")
        if not 0.0 < numin < numax:
            raise ValueError(f"spectral range must satisfy 0 < numin < numax (got {numin}, {numax})")
        lin_edges = np.linspace(numin, numax, nwave + 1)
        log_edges = np.logspace(np.log10(numin), np.log10(numax), nwave + 1)
        shape = (nspec, nwave)
        return cls(
            f=np.zeros(shape),
            lf=np.zeros(shape),
            f_wind=np.zeros(shape),
            lf_wind=np.zeros(shape),
            freq_lin=0.5 * (lin_edges[:-1] + lin_edges[1:]),
            freq_log=np.sqrt(log_edges[:-1] * log_edges[1:]),
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return tuple(self.f.shape)  # type: ignore[return-value]

    def quantities(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Return the accumulators in exchange order."""

        return self.f, self.lf, self.f_wind, self.lf_wind

    def clear(self) -> None:
        for array in self.quantities():
            array.fill(0.0)

    def copy(self) -> "SpectrumSet":
        return SpectrumSet(
            f=self.f.copy(),
            lf=self.lf.copy(),
            f_wind=self.f_wind.copy(),
            lf_wind=self.lf_wind.copy(),
            freq_lin=self.freq_lin.copy(),
            freq_log=self.freq_log.copy(),
        )

    def add_cell_model(self, cell: PlasmaCell, bands: FrequencyBands, ispec: int = 0) -> None:
        """Add the fitted band power laws of ``cell`` as ``nu J_nu`` to spectrum ``ispec``.

        Bins outside the band table, and bands with zero weight, contribute
        nothing.  The contribution goes to both the total and the wind arrays.
        """

        for freq, total, wind in ((self.freq_lin, self.f, self.f_wind), (self.freq_log, self.lf, self.lf_wind)):
            index = np.searchsorted(bands.edges, freq, side="right") - 1
            valid = (index >= 0) & (index < bands.nbands)
            if not np.any(valid):
                continue
            idx = index[valid]
            nu = freq[valid]
            values = cell.sim_w[idx] * nu ** (cell.sim_alpha[idx] + 1.0)
            total[ispec, valid] += values
            wind[ispec, valid] += values
