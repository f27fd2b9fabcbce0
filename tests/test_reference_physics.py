"""Sanity checks for the pure-hydrogen reference model."""

from __future__ import annotations

import math

import numpy as np
import pytest

from ionbalance.modes import NebularMode
from ionbalance.physics.callables import PhysicsCallables
from ionbalance.physics.powerlaw import fit_spectral_model
from ionbalance.physics.reference import (
    ReferencePhysics,
    band_photo_rates,
    case_b_recombination,
    ionized_fraction,
    saha_phi,
)
from ionbalance.plasma import PlasmaCell, make_wind
from ionbalance.schema import SourceSpectrum


def _model(make_cell, bands, n=1, volume=1.0, div_v=0.0, **values):
    cells = [make_cell(i, **values) for i in range(n)]
    wind = make_wind(cells, volume=volume, div_v=div_v)
    return cells, wind, ReferencePhysics(cells, wind, bands)


@pytest.mark.parametrize("q", [1e-8, 0.3, 1.0, 50.0, 1e9])
def test_ionized_fraction_solves_balance(q: float) -> None:
    x = ionized_fraction(q)
    assert 0.0 < x < 1.0 or x == pytest.approx(1.0)
    if x < 1.0:
        assert x * x / (1.0 - x) == pytest.approx(q, rel=1e-6)


def test_ionized_fraction_limits() -> None:
    assert ionized_fraction(0.0) == 0.0
    assert ionized_fraction(math.inf) == 1.0


def test_saha_grows_with_temperature() -> None:
    assert saha_phi(5.0e3) < saha_phi(1.0e4) < saha_phi(2.0e4)
    assert case_b_recombination(1.0e4) == pytest.approx(2.59e-13)
    assert case_b_recombination(2.0e4) < case_b_recombination(1.0e4)


def test_lte_abundances_conserve_hydrogen(make_cell, bands) -> None:
    cells, _, physics = _model(make_cell, bands, t_r=8.0e3, nh=1.0e10)
    cell = cells[0]

    assert physics.nebular_concentrations(cell, NebularMode.LTE_TR) == 0

    assert cell.density.sum() == pytest.approx(1.0e10)
    assert cell.ne == cell.density[1]
    x = cell.density[1] / cell.nh
    assert x * x * cell.nh / (1.0 - x) == pytest.approx(saha_phi(8.0e3), rel=1e-6)


def test_dilution_lowers_ionization(make_cell, bands) -> None:
    cells, _, physics = _model(make_cell, bands, n=2, t_e=1.0e4, t_r=1.0e4, nh=1.0e12)
    cells[1].w = 1.0e-3

    physics.nebular_concentrations(cells[0], NebularMode.ON_THE_SPOT)
    physics.nebular_concentrations(cells[1], NebularMode.ON_THE_SPOT)

    assert cells[1].ne < cells[0].ne


def test_power_law_abundances_follow_fitted_field(make_cell, bands) -> None:
    cells, _, physics = _model(make_cell, bands, n=2, t_e=1.0e4)
    bright, dark = cells
    bright.sim_alpha[:] = -1.0
    bright.sim_w[:] = 1.0e6

    physics.nebular_concentrations(bright, NebularMode.POWER_LAW)
    physics.nebular_concentrations(dark, NebularMode.POWER_LAW)

    assert bright.ne > 0.5 * bright.nh
    assert dark.ne == 0.0
    assert dark.density[0] == dark.nh


def test_fixed_concentrations_fully_ionize(make_cell, bands) -> None:
    cells, _, physics = _model(make_cell, bands)
    assert physics.fix_concentrations(cells[0], 0) == 0
    assert cells[0].ne == cells[0].nh
    assert cells[0].density[0] == 0.0


def test_band_photo_rates_below_edge_vanish() -> None:
    assert band_photo_rates(-1.0, 1.0, 1.0e14, 1.0e15) == (0.0, 0.0)
    rate, heat = band_photo_rates(-1.0, 1.0, 1.0e15, 1.0e16)
    assert rate > 0.0 and heat > 0.0


def test_deposit_then_fit_recovers_source(make_cell, bands) -> None:
    cells, _, physics = _model(make_cell, bands, volume=1.0e45)
    cell = cells[0]
    physics.nebular_concentrations(cell, NebularMode.LTE_TR)
    source = SourceSpectrum(alpha=-1.5, weight=2.0e6, photons_per_band=500)

    physics.deposit_estimators(cell, source)
    fit_spectral_model(cell, bands)

    np.testing.assert_allclose(cell.sim_alpha, -1.5, atol=1e-4)
    np.testing.assert_allclose(cell.sim_w, 2.0e6, rtol=1e-2)
    assert cell.j == pytest.approx(cell.xj.sum())
    assert bands.edges[0] < cell.ave_freq < bands.edges[-1]
    assert cell.heat_tot == cell.heat_photo > 0.0
    assert np.all(cell.nxtot == 500)


def test_deposit_leaves_empty_bands_without_photons(make_cell, bands) -> None:
    cells, _, physics = _model(make_cell, bands)
    cell = cells[0]
    physics.deposit_estimators(cell, SourceSpectrum(empty_bands=[0, 3]))
    assert list(cell.nxtot) == [0, 10000, 10000, 0]
    assert cell.xj[0] == 0.0 and cell.xj[3] == 0.0


def test_cooling_terms(make_cell, bands) -> None:
    cells, wind, physics = _model(make_cell, bands, volume=2.0, div_v=1.0e-6, t_e=1.0e4)
    cell = cells[0]
    physics.fix_concentrations(cell, 0)
    cell.j = 1.0e6

    assert physics.total_emission(wind[0], 0.0, 1.0e50) > 0.0
    assert physics.total_comp(wind[0], 1.0e4) > 0.0
    expected_adiabatic = 1.5 * 1.380649e-16 * 1.0e4 * (cell.ne + cell.nh) * 1.0e-6 * 2.0
    assert physics.adiabatic_cooling(wind[0], 1.0e4) == pytest.approx(expected_adiabatic)

    hotter = physics.total_emission(wind[0], 0.0, 1.0e50)
    cell.t_e = 4.0e4
    assert physics.total_emission(wind[0], 0.0, 1.0e50) > hotter


def test_callables_bundle(make_cell, bands) -> None:
    _, _, physics = _model(make_cell, bands)
    bundle = physics.callables()
    assert bundle.nebular_concentrations == physics.nebular_concentrations
    assert bundle.macro_bb_heating(None, 1.0e4) == 0.0


def test_bundle_requires_abundance_and_emission_routines() -> None:
    with pytest.raises(TypeError):
        PhysicsCallables()
    with pytest.raises(TypeError):
        PhysicsCallables(nebular_concentrations=lambda cell, submode: 0, fix_concentrations=lambda cell, submode: 0)


def test_reference_model_needs_two_ions(bands) -> None:
    cell = PlasmaCell.create(0, nbands=bands.nbands, nions=3)
    with pytest.raises(ValueError):
        ReferencePhysics([cell], make_wind([cell]), bands)
