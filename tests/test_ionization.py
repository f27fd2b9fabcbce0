"""Per-cell ionization modes, the damped temperature update and history bookkeeping."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from ionbalance.errors import FatalIonizationError
from ionbalance.ionization import ion_abundances, one_shot, shift_history
from ionbalance.modes import IonizationMode, NebularMode, nebular_submode
from ionbalance.physics.powerlaw import band_moments
from ionbalance.schema import IonizationSettings
from ionbalance.warnings import ConvergenceWarning, PhysicsWarning


def test_shift_history_order(make_cell) -> None:
    cell = make_cell(t_e=5000.0, t_e_old=3000.0, dt_e=100.0, t_r=8000.0, lum_rad=4.0)

    shift_history(cell)

    assert cell.dt_e_old == 100.0
    assert cell.dt_e == 2000.0
    assert cell.t_e_old == 5000.0
    assert cell.t_r_old == 8000.0
    assert cell.lum_rad_old == 4.0


def test_frozen_mode_keeps_temperature_and_convergence(linear_world) -> None:
    cells, ctx, physics = linear_world(mode=IonizationMode.FROZEN_OTS, t_e=2.0e4, t_r=1.0e4)
    cell = cells[0]
    converge_before = cell.converge_whole

    status = ion_abundances(cell, IonizationMode.FROZEN_OTS, ctx)

    assert status == 0
    assert cell.t_e == 2.0e4
    assert cell.converge_whole == converge_before
    assert physics.calls == [("nebular", 0, NebularMode.ON_THE_SPOT)]


@pytest.mark.parametrize(
    "mode, expected",
    [
        (IonizationMode.LTE_TR, ("nebular", 0, NebularMode.LTE_TR)),
        (IonizationMode.FIXED, ("fixed", 0, 0)),
        (IonizationMode.LTE_TR_PL, ("nebular", 0, NebularMode.POWER_LAW)),
    ],
)
def test_fixed_temperature_modes_dispatch(linear_world, mode, expected) -> None:
    cells, ctx, physics = linear_world(mode=mode, t_e=1.5e4)

    ion_abundances(cells[0], mode, ctx)

    assert physics.calls == [expected]
    assert cells[0].t_e == 1.5e4


def test_damped_mode_converges_to_balance(linear_world) -> None:
    cells, ctx, _ = linear_world(t_e=2.0e4, t_r=1.0e4)
    cell = cells[0]

    for _ in range(20):
        ion_abundances(cell, IonizationMode.DAMPED_OTS, ctx)
        assert 0.1 <= cell.gain <= 0.8

    assert cell.t_e == pytest.approx(1.0e4, abs=100.0)
    assert cell.trcheck == 0
    assert cell.techeck == 0
    assert cell.hccheck == 0
    assert cell.converge_whole == 0


def test_damped_mode_uses_on_the_spot_submode(linear_world) -> None:
    cells, ctx, physics = linear_world()

    ion_abundances(cells[0], 3, ctx)

    assert physics.calls == [("nebular", 0, NebularMode.ON_THE_SPOT)]


def test_power_law_mode_fits_before_history_shift(linear_world, bands) -> None:
    cells, ctx, physics = linear_world(mode=IonizationMode.DAMPED_PL, t_e=1.2e4)
    cell = cells[0]
    for band in range(bands.nbands):
        numin, numax = bands.band(band)
        cell.xj[band], cell.xave_freq[band] = band_moments(-1.0, 1.0e6, numin, numax)
        cell.nxtot[band] = 100

    ion_abundances(cell, "damped_pl", ctx)

    np.testing.assert_allclose(cell.sim_alpha, -1.0, atol=1e-4)
    assert np.all(cell.sim_w > 0.0)
    assert cell.t_e_old == 1.2e4
    assert physics.calls == [("nebular", 0, NebularMode.POWER_LAW)]


def test_power_law_mode_requires_band_table(linear_world) -> None:
    cells, ctx, _ = linear_world(mode=IonizationMode.DAMPED_PL)
    ctx.bands = None
    with pytest.raises(FatalIonizationError):
        ion_abundances(cells[0], IonizationMode.DAMPED_PL, ctx)


@pytest.mark.parametrize("mode", [6, -1, "bogus", 2.5, 3.7, True, np.float64(1.5)])
def test_unknown_mode_is_fatal(linear_world, mode, caplog) -> None:
    cells, ctx, _ = linear_world()
    with caplog.at_level(logging.CRITICAL, logger="ionbalance.ionization"):
        with pytest.raises(FatalIonizationError):
            ion_abundances(cells[0], mode, ctx)
    assert caplog.records


@pytest.mark.parametrize("mode", [0, 1, 6])
def test_one_shot_rejects_modes_it_cannot_translate(linear_world, mode) -> None:
    cells, ctx, physics = linear_world(t_e=1.5e4)
    with pytest.raises(FatalIonizationError):
        one_shot(cells[0], mode, ctx)
    assert cells[0].t_e == 1.5e4
    assert physics.calls == []


def test_nebular_submode_translation() -> None:
    assert nebular_submode(IonizationMode.DAMPED_OTS) is NebularMode.ON_THE_SPOT
    assert nebular_submode(2) is NebularMode.ON_THE_SPOT
    assert nebular_submode(4) is NebularMode.ON_THE_SPOT_EXACT
    assert nebular_submode(5) is NebularMode.POWER_LAW


def test_one_shot_cold_radiation_field_is_fatal(linear_world) -> None:
    cells, ctx, physics = linear_world(t_r=10.0)
    with pytest.raises(FatalIonizationError):
        one_shot(cells[0], IonizationMode.DAMPED_OTS, ctx)
    assert physics.calls == []


def test_one_shot_damps_the_temperature_step(linear_world) -> None:
    cells, ctx, _ = linear_world(t_e=1.2e4, gain=0.5)
    cell = cells[0]

    one_shot(cell, IonizationMode.DAMPED_OTS, ctx)

    assert cell.t_e == pytest.approx(0.5 * 1.2e4 + 0.5 * 1.0e4, abs=30.0)


def test_non_converged_abundances_are_reported(linear_world) -> None:
    cells, ctx, physics = linear_world()
    physics.nebular_status = 3

    with pytest.warns(ConvergenceWarning):
        status = ion_abundances(cells[0], IonizationMode.DAMPED_OTS, ctx)

    assert status == 3


def test_electron_density_out_of_range_is_reported(linear_world, caplog) -> None:
    cells, ctx, _ = linear_world(nh=1.0e60)

    with caplog.at_level(logging.ERROR, logger="ionbalance.ionization"):
        with pytest.warns(PhysicsWarning):
            status = ion_abundances(cells[0], IonizationMode.DAMPED_OTS, ctx)

    assert status == 0
    assert any("out of range" in rec.message for rec in caplog.records)


def test_auger_runs_after_the_main_update(linear_world) -> None:
    settings = IonizationSettings(mode=IonizationMode.DAMPED_OTS, auger_ionization=True)
    cells, ctx, physics = linear_world(settings=settings)

    ion_abundances(cells[0], IonizationMode.DAMPED_OTS, ctx)

    assert [call[0] for call in physics.calls] == ["nebular", "auger"]


def test_auger_is_off_by_default(linear_world) -> None:
    cells, ctx, physics = linear_world()
    ion_abundances(cells[0], IonizationMode.LTE_TR, ctx)
    assert all(call[0] != "auger" for call in physics.calls)


def test_mode_properties() -> None:
    assert IonizationMode.DAMPED_OTS.updates_temperature
    assert IonizationMode.DAMPED_PL.updates_temperature
    assert not IonizationMode.LTE_TR_PL.updates_temperature
    assert IonizationMode.DAMPED_PL.fits_power_law
    assert IonizationMode.coerce("3") is IonizationMode.DAMPED_OTS
    assert IonizationMode.coerce(" lte_tr ") is IonizationMode.LTE_TR
    assert IonizationMode.coerce(5.0) is IonizationMode.DAMPED_PL
    assert IonizationMode.coerce(np.int64(2)) is IonizationMode.FIXED
