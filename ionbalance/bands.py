"""Frequency band table for the power-law radiation estimators.

The table is built once per run and shared read-only by every cell.  Band
``b`` covers ``[edges[b], edges[b+1])``; the coarse band spans the whole
photon-generation range and is the fallback for empty bands.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

import numpy as np

from .errors import ConfigurationError


@dataclass(frozen=True, eq=False)
class FrequencyBands:
    """Ordered frequency band edges.

    Parameters
    ----------
    edges:
        Strictly increasing band edges in Hz; length ``nbands + 1``.
    coarse:
        ``(f1[0], f2[last])`` of the coarse band.  Defaults to the outer
        edges of ``edges``.
    """

    edges: np.ndarray
    coarse: Tuple[float, float] = field(default=(0.0, 0.0))

    def __post_init__(self) -> None:
        edges = np.asarray(self.edges, dtype=float)
        if edges.ndim != 1 or edges.size < 2:
            raise ConfigurationError("band edges must be a one dimensional array with >=2 entries")
        if not np.all(np.isfinite(edges)) or edges[0] <= 0.0:
            raise ConfigurationError("band edges must be finite and positive")
        if np.any(np.diff(edges) <= 0.0):
            raise ConfigurationError("band edges must be strictly increasing")
        edges.setflags(write=False)
        object.__setattr__(self, "edges", edges)
        lo, hi = self.coarse
        if lo == 0.0 and hi == 0.0:
            lo, hi = float(edges[0]), float(edges[-1])
        if not (0.0 < lo < hi):
            raise ConfigurationError(f"coarse band ({lo}, {hi}) must satisfy 0 < f1 < f2")
        object.__setattr__(self, "coarse", (float(lo), float(hi)))

    @property
    def nbands(self) -> int:
        return int(self.edges.size - 1)

    def __len__(self) -> int:
        return self.nbands

    def band(self, index: int) -> Tuple[float, float]:
        """Return ``(numin, numax)`` for band ``index``."""

        if not 0 <= index < self.nbands:
            raise IndexError(f"band index {index} out of range for {self.nbands} bands")
        return float(self.edges[index]), float(self.edges[index + 1])

    @classmethod
    def from_edges(
        cls, edges: Iterable[float], coarse: Optional[Tuple[float, float]] = None
    ) -> "FrequencyBands":
        return cls(np.asarray(list(edges), dtype=float), coarse or (0.0, 0.0))

    @classmethod
    def logspaced(
        cls,
        numin: float,
        numax: float,
        nbands: int,
        coarse: Optional[Tuple[float, float]] = None,
    ) -> "FrequencyBands":
        """Generate ``nbands`` bands with logarithmically spaced edges."""

        if nbands < 1:
            raise ConfigurationError("nbands must be at least 1")
        if not (0.0 < numin < numax):
            raise ConfigurationError(f"log-spaced bands need 0 < numin < numax (got {numin}, {numax})")
        edges = np.logspace(np.log10(numin), np.log10(numax), nbands + 1)
        return cls(edges, coarse or (0.0, 0.0))


__all__ = ["FrequencyBands"]
