"""Output helper utilities.

Thin wrappers around :mod:`pandas` that serialise a run.  Parquet holds the
final cell table, JSON the run summary and CSV the convergence history and
model spectra.  All functions create destination directories as needed.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ..plasma import PlasmaCell
from ..spectra import SpectrumSet

UNITS = {
    "t_e": "K",
    "t_r": "K",
    "t_e_old": "K",
    "t_r_old": "K",
    "dt_e": "K",
    "dt_e_old": "K",
    "gain": "dimensionless",
    "w": "dimensionless",
    "nh": "cm^-3",
    "ne": "cm^-3",
    "heat_tot": "erg s^-1",
    "heat_lines": "erg s^-1",
    "heat_photo": "erg s^-1",
    "heat_lines_macro": "erg s^-1",
    "heat_photo_macro": "erg s^-1",
    "lum_rad": "erg s^-1",
    "lum_rad_old": "erg s^-1",
    "lum_adiabatic": "erg s^-1",
    "lum_dr": "erg s^-1",
    "lum_comp": "erg s^-1",
    "j": "erg cm^-2 s^-1 sr^-1",
    "ave_freq": "Hz",
    "converge_t_r": "dimensionless",
    "converge_t_e": "dimensionless",
    "converge_hc": "dimensionless",
    "converge_whole": "count",
}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def cells_frame(cells: Iterable[PlasmaCell]) -> pd.DataFrame:
    """Return one row per cell with per-band and per-ion entries as separate columns."""

    return pd.DataFrame([cell.flat_record() for cell in cells])


def write_parquet(df: pd.DataFrame, path: Path, *, compression: str = "snappy") -> None:
    """Write a DataFrame to a Parquet file using ``pyarrow``.

    Column units are stored in the schema metadata under ``units``.
    """
    _ensure_parent(path)
    units = {name: unit for name, unit in UNITS.items() if name in df.columns}
    table = pa.Table.from_pandas(df, preserve_index=False)
    metadata = dict(table.schema.metadata or {})
    metadata[b"units"] = json.dumps(units, sort_keys=True).encode("utf-8")
    table = table.replace_schema_metadata(metadata)
    compression_arg = None if compression == "none" else compression
    pq.write_table(table, path, compression=compression_arg)


def write_cells(cells: Iterable[PlasmaCell], path: Path) -> None:
    write_parquet(cells_frame(cells), path)


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write a summary dictionary to ``summary.json``.

    The JSON file is formatted with a small indentation for human
    readability.
    """
    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2, sort_keys=True, default=str)


def write_history(records: Iterable[Mapping[str, Any]], path: Path) -> None:
    """Write the per-cycle convergence history to a CSV file."""
    _ensure_parent(path)
    df = pd.DataFrame(list(records))
    df.to_csv(path, index=False)


def write_spectra(spectra: SpectrumSet, path: Path) -> None:
    """Write the averaged model spectra to CSV, one row per frequency bin and spectrum."""

    nspec, nwave = spectra.shape
    frames = []
    for ispec in range(nspec):
        frames.append(
            pd.DataFrame(
                {
                    "spectrum": ispec,
                    "bin": range(nwave),
                    "freq_lin": spectra.freq_lin,
                    "f": spectra.f[ispec],
                    "f_wind": spectra.f_wind[ispec],
                    "freq_log": spectra.freq_log,
                    "lf": spectra.lf[ispec],
                    "lf_wind": spectra.lf_wind[ispec],
                }
            )
        )
    _ensure_parent(path)
    pd.concat(frames, ignore_index=True).to_csv(path, index=False)


__all__ = [
    "cells_frame",
    "write_parquet",
    "write_cells",
    "write_summary",
    "write_history",
    "write_spectra",
]
