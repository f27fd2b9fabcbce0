"""Command line driver for ionization cycles with the reference hydrogen model.

Usage::

    python -m ionbalance.run --config configs/reference_cloud.yml \
        --override ionization.mode=damped_pl --cycles 30

Each cycle deposits the configured source spectrum into every cell, runs
:func:`~ionbalance.cycle.run_ionization_cycle` on the selected rank group
and records the convergence counts.  Rank 0 writes the outputs.
"""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .bands import FrequencyBands
from .config_utils import configure_logging, load_config, read_overrides_file
from .cycle import CycleResult, run_ionization_cycle
from .errors import FatalIonizationError
from .history import ConvergenceHistory
from .io import writer
from .ionization import IonizationContext
from .modes import NebularMode
from .parallel import Communicator, LocalGroup, MPICommunicator, SerialCommunicator
from .physics.reference import NIONS, ReferencePhysics
from .plasma import PlasmaCell, WindCell
from .schema import Config, SourceSpectrum
from .spectra import SpectrumSet

logger = logging.getLogger(__name__)

__all__ = ["RunResult", "build_cells", "run_cycles", "run", "main"]


@dataclass
class RunResult:
    """Final state of a run on one rank."""

    rank: int
    nranks: int
    cells: List[PlasmaCell]
    history: ConvergenceHistory
    spectra: Optional[SpectrumSet]
    last: Optional[CycleResult]


def build_cells(
    cfg: Config, bands: FrequencyBands
) -> Tuple[List[PlasmaCell], List[WindCell], List[SourceSpectrum]]:
    """Expand the ``cells`` section into plasma cells, wind cells and their sources."""

    cells: List[PlasmaCell] = []
    wind: List[WindCell] = []
    sources: List[SourceSpectrum] = []
    for group in cfg.cells:
        for _ in range(group.count):
            index = len(cells)
            cells.append(
                PlasmaCell.create(
                    index,
                    nbands=bands.nbands,
                    nions=NIONS,
                    alpha0=group.alpha0,
                    t_e=group.t_e,
                    t_r=group.t_r,
                    w=group.w,
                    nh=group.nh,
                    gain=cfg.ionization.initial_gain,
                )
            )
            wind.append(WindCell(nwind=index, nplasma=index, volume=group.volume, div_v=group.div_v))
            sources.append(group.source)
    return cells, wind, sources


def run_cycles(cfg: Config, comm: Communicator) -> RunResult:
    """Run ``cfg.cycles`` cycles on this rank; every rank builds its own copy of the cells."""

    bands = cfg.bands.build()
    cells, wind, sources = build_cells(cfg, bands)
    physics = ReferencePhysics(cells, wind, bands)
    for cell in cells:
        physics.nebular_concentrations(cell, NebularMode.LTE_TR)

    ctx = IonizationContext(physics=physics.callables(), wind=wind, bands=bands, settings=cfg.ionization)
    spectra = None
    if cfg.spectra.enabled:
        spectra = SpectrumSet.create(cfg.spectra.nspec, cfg.spectra.nwave, float(bands.edges[0]), float(bands.edges[-1]))

    history = ConvergenceHistory()
    last: Optional[CycleResult] = None
    for cycle in range(cfg.cycles):
        for cell, source in zip(cells, sources):
            physics.deposit_estimators(cell, source)
        last = run_ionization_cycle(cells, ctx, comm, spectra)
        row = history.record(cycle, last, cells)
        if comm.rank == 0:
            logger.info(
                "cycle %d: %d/%d converged, t_e in [%.4g, %.4g] K",
                cycle, row["n_converged"], row["n_cells"], row.get("t_e_min", 0.0), row.get("t_e_max", 0.0),
            )
    return RunResult(rank=comm.rank, nranks=comm.size, cells=cells, history=history, spectra=spectra, last=last)


def _write_outputs(cfg: Config, result: RunResult) -> None:
    outdir = Path(cfg.output.outdir)
    if cfg.output.write_cells:
        writer.write_cells(result.cells, outdir / "cells.parquet")
    if cfg.output.write_history:
        writer.write_history(result.history.records, outdir / "history.csv")
    if cfg.output.write_spectra and result.spectra is not None:
        writer.write_spectra(result.spectra, outdir / "spectra.csv")
    summary: Dict[str, Any] = {
        "mode": cfg.ionization.mode.name.lower(),
        "cycles": cfg.cycles,
        "backend": cfg.parallel.backend,
        "nranks": result.nranks,
        "n_cells": len(result.cells),
        "converged": result.history.converged,
        "final": result.last.as_dict() if result.last is not None else None,
        "config": cfg.model_dump(mode="json"),
    }
    writer.write_summary(summary, outdir / "summary.json")
    logger.info("outputs written to %s", outdir)


def run(cfg: Config) -> RunResult:
    """Run the configured backend and write outputs from rank 0; returns rank 0's result."""

    backend = cfg.parallel.backend
    if backend == "local":
        group = LocalGroup(cfg.parallel.nranks)
        result = group.run(lambda comm: run_cycles(cfg, comm))[0]
    else:
        comm: Communicator = MPICommunicator() if backend == "mpi" else SerialCommunicator()
        result = run_cycles(cfg, comm)
    if result.rank == 0:
        _write_outputs(cfg, result)
    return result


def main(argv: Optional[List[str]] = None) -> None:
    """Command line entry point."""

    parser = argparse.ArgumentParser(description="Run ionization cycles with the reference hydrogen model")
    parser.add_argument("--config", type=Path, required=True, help="Path to YAML configuration")
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override ionization.mode=damped_pl",
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument("--cycles", type=int, help="Override the number of cycles")
    parser.add_argument("--outdir", type=Path, help="Override the output directory")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Root logging level",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress Python warnings")
    args = parser.parse_args(argv)

    configure_logging(getattr(logging, args.log_level), suppress_warnings=args.quiet)

    override_list: List[str] = []
    if args.overrides_file:
        for override_path in args.overrides_file:
            override_list.extend(read_overrides_file(override_path))
    if args.override:
        for group in args.override:
            override_list.extend(group)
    if args.cycles is not None:
        override_list.append(f"cycles={args.cycles}")
    if args.outdir is not None:
        override_list.append(f"output.outdir={args.outdir}")
    cfg = load_config(args.config, overrides=override_list)

    try:
        run(cfg)
    except FatalIonizationError as exc:
        logger.critical("aborting run: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    main()
