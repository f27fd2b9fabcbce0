from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ionbalance.bands import FrequencyBands
from ionbalance.ionization import IonizationContext
from ionbalance.modes import IonizationMode
from ionbalance.physics.callables import PhysicsCallables
from ionbalance.plasma import PlasmaCell, WindCell, make_wind
from ionbalance.schema import IonizationSettings

HEATING = 1.0e30
T_BALANCE = 1.0e4


class LinearPhysics:
    """Constant heating and radiative cooling proportional to ``t_e``.

    Heating balances cooling at ``t_balance``.  Every abundance call is
    recorded in ``calls`` as ``(name, nplasma, submode)``.
    """

    def __init__(self, cells: List[PlasmaCell], heating: float = HEATING, t_balance: float = T_BALANCE) -> None:
        self.cells: Dict[int, PlasmaCell] = {cell.nplasma: cell for cell in cells}
        self.heating = heating
        self.t_balance = t_balance
        self.calls: List[Tuple[str, int, int]] = []
        self.nebular_status = 0

    def nebular(self, cell: PlasmaCell, submode: int) -> int:
        self.calls.append(("nebular", cell.nplasma, int(submode)))
        cell.ne = cell.nh
        return self.nebular_status

    def fixed(self, cell: PlasmaCell, submode: int) -> int:
        self.calls.append(("fixed", cell.nplasma, int(submode)))
        cell.ne = cell.nh
        return 0

    def auger(self, cell: PlasmaCell) -> None:
        self.calls.append(("auger", cell.nplasma, -1))

    def emission(self, wind: WindCell, numin: float, numax: float) -> float:
        cell = self.cells[wind.nplasma]
        return self.heating * cell.t_e / self.t_balance

    def callables(self) -> PhysicsCallables:
        return PhysicsCallables(
            nebular_concentrations=self.nebular,
            fix_concentrations=self.fixed,
            total_emission=self.emission,
            auger_ionization=self.auger,
        )


@pytest.fixture
def bands() -> FrequencyBands:
    return FrequencyBands.logspaced(1.0e14, 1.0e18, 4)


@pytest.fixture
def make_cell(bands: FrequencyBands) -> Callable[..., PlasmaCell]:
    def factory(nplasma: int = 0, **values) -> PlasmaCell:
        values.setdefault("nh", 1.0e8)
        return PlasmaCell.create(nplasma, nbands=bands.nbands, nions=2, **values)

    return factory


@pytest.fixture
def linear_world(make_cell, bands):
    """Build ``(cells, ctx, physics)`` for cells driven by :class:`LinearPhysics`."""

    def build(
        ncells: int = 1,
        mode: IonizationMode = IonizationMode.DAMPED_OTS,
        heating: float = HEATING,
        settings: IonizationSettings | None = None,
        **values,
    ):
        cells = [make_cell(i, heat_tot=heating, **values) for i in range(ncells)]
        physics = LinearPhysics(cells, heating)
        settings = settings or IonizationSettings(mode=mode)
        ctx = IonizationContext(physics=physics.callables(), wind=make_wind(cells), bands=bands, settings=settings)
        return cells, ctx, physics

    return build
