"""One ionization cycle over the whole cell array.

Each rank updates the cells of its partition with
:func:`~ionbalance.ionization.ion_abundances`, then all ranks exchange the
updated cells, average the model spectra and run the global convergence
check.  A :class:`~ionbalance.errors.PhysicsError` or
:class:`~ionbalance.errors.NumericalError` raised for one cell is logged, the
cell is restored to its state before the update and skipped for the cycle; a
:class:`~ionbalance.errors.FatalIonizationError` propagates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np

from .convergence import ConvergenceSummary, check_convergence
from .errors import NumericalError, PhysicsError
from .ionization import IonizationContext, ion_abundances
from .parallel import (
    Communicator,
    SerialCommunicator,
    cell_state_vector,
    exchange_cell_states,
    gather_extracted_spectrum,
    get_parallel_nrange,
    load_cell_state_vector,
)
from .plasma import PlasmaCell
from .spectra import SpectrumSet

logger = logging.getLogger(__name__)

__all__ = ["CycleResult", "run_ionization_cycle"]


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one cycle, identical on every rank."""

    summary: ConvergenceSummary
    n_failed: int
    n_status_nonzero: int

    def as_dict(self) -> Dict[str, Any]:
        payload = self.summary.as_dict()
        payload["n_failed"] = self.n_failed
        payload["n_status_nonzero"] = self.n_status_nonzero
        return payload


def run_ionization_cycle(
    cells: Sequence[PlasmaCell],
    ctx: IonizationContext,
    comm: Optional[Communicator] = None,
    spectra: Optional[SpectrumSet] = None,
) -> CycleResult:
    """Update every cell once with ``ctx.settings.mode`` and synchronise the ranks.

    When ``spectra`` is given it is cleared, every rank adds the band models
    of all cells after the exchange, and the result is averaged across ranks.
    """

    comm = comm or SerialCommunicator()
    mode = ctx.settings.mode
    nmin, nmax = get_parallel_nrange(comm.rank, len(cells), comm.size)
    logger.debug("rank %d/%d: updating cells [%d, %d) in mode %s", comm.rank, comm.size, nmin, nmax, mode.name)

    failed = 0
    nonzero = 0
    for cell in cells[nmin:nmax]:
        saved = cell_state_vector(cell)
        try:
            status = ion_abundances(cell, mode, ctx)
        except (PhysicsError, NumericalError) as exc:
            failed += 1
            load_cell_state_vector(cell, saved)
            logger.error("cell %d: update failed and is skipped this cycle: %s", cell.nplasma, exc)
            continue
        if status:
            nonzero += 1

    exchange_cell_states(cells, comm)

    if spectra is not None:
        if ctx.bands is None:
            raise ValueError("model spectra need a frequency band table")
        spectra.clear()
        for cell in cells:
            spectra.add_cell_model(cell, ctx.bands)
        gather_extracted_spectrum(spectra, comm)

    counts = np.array([failed, nonzero], dtype=float)
    totals = np.zeros_like(counts)
    comm.reduce_sum(counts, totals, root=0)
    comm.bcast_array(totals, root=0)

    summary = check_convergence(cells)
    return CycleResult(summary=summary, n_failed=int(totals[0]), n_status_nonzero=int(totals[1]))
