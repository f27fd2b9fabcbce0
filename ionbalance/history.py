"""Per-cycle convergence history."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from .cycle import CycleResult
from .plasma import PlasmaCell


@dataclass
class ConvergenceHistory:
    """One row per cycle with the convergence counts and temperature ranges."""

    records: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def record(
        self,
        cycle: int,
        result: CycleResult,
        cells: List[PlasmaCell],
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        row: Dict[str, Any] = {"cycle": int(cycle)}
        row.update(result.as_dict())
        if cells:
            t_e = np.array([cell.t_e for cell in cells])
            gain = np.array([cell.gain for cell in cells])
            row.update(
                {
                    "t_e_min": float(t_e.min()),
                    "t_e_max": float(t_e.max()),
                    "t_e_mean": float(t_e.mean()),
                    "gain_mean": float(gain.mean()),
                }
            )
        if extra:
            row.update(extra)
        self.records.append(row)
        return row

    @property
    def converged(self) -> bool:
        """True if the last recorded cycle had every cell converged."""

        if not self.records:
            return False
        last = self.records[-1]
        return last["n_cells"] > 0 and last["n_converged"] == last["n_cells"]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.records)


__all__ = ["ConvergenceHistory"]
