"""Power-law band fits."""

from __future__ import annotations

import logging
import math

import numpy as np
import pytest

from ionbalance.bands import FrequencyBands
from ionbalance.errors import NumericalError
from ionbalance.plasma import PlasmaCell
from ionbalance.physics.powerlaw import (
    band_moments,
    fit_band_slope,
    fit_spectral_model,
    power_law_mean_frequency,
    power_law_weight,
)
from ionbalance.warnings import NumericalWarning

NUMIN = 1.0e15
NUMAX = 4.0e15


def _single_band_cell():
    return PlasmaCell.create(0, nbands=1, nions=2, nh=1.0e8)


def _fill_band(cell, bands, band, alpha, weight, nphot=1000):
    numin, numax = bands.band(band)
    j, mean_freq = band_moments(alpha, weight, numin, numax)
    cell.xj[band] = j
    cell.xave_freq[band] = mean_freq
    cell.nxtot[band] = nphot


def test_mean_frequency_limits_at_removable_singularities() -> None:
    ratio = math.log(NUMAX / NUMIN)
    flat_in_log = (NUMAX - NUMIN) / ratio
    flat_in_inverse = ratio / (1.0 / NUMIN - 1.0 / NUMAX)

    assert power_law_mean_frequency(-1.0, NUMIN, NUMAX) == pytest.approx(flat_in_log, rel=1e-12)
    assert power_law_mean_frequency(-2.0, NUMIN, NUMAX) == pytest.approx(flat_in_inverse, rel=1e-12)
    assert power_law_mean_frequency(-1.0 + 1e-7, NUMIN, NUMAX) == pytest.approx(flat_in_log, rel=1e-6)
    assert power_law_mean_frequency(-2.0 - 1e-7, NUMIN, NUMAX) == pytest.approx(flat_in_inverse, rel=1e-6)


def test_mean_frequency_matches_closed_form_and_stays_in_band() -> None:
    alpha = 0.5
    expected = (
        (alpha + 1.0) / (alpha + 2.0)
        * (NUMAX ** (alpha + 2.0) - NUMIN ** (alpha + 2.0))
        / (NUMAX ** (alpha + 1.0) - NUMIN ** (alpha + 1.0))
    )
    assert power_law_mean_frequency(alpha, NUMIN, NUMAX) == pytest.approx(expected, rel=1e-10)
    for steep in (-60.0, 60.0):
        mean = power_law_mean_frequency(steep, NUMIN, NUMAX)
        assert NUMIN <= mean <= NUMAX


def test_weight_special_cases() -> None:
    assert power_law_weight(0.0, 1.0, NUMIN, NUMAX) == 0.0
    assert math.isnan(power_law_weight(-1.0, 1.0, NUMIN, NUMAX))
    assert power_law_weight(2.0, -1.0, NUMIN, NUMAX) == pytest.approx(2.0 / math.log(NUMAX / NUMIN), rel=1e-12)


def test_weight_closed_form() -> None:
    alpha, j = 1.0, 3.0
    expected = j * (alpha + 1.0) / (NUMAX ** (alpha + 1.0) - NUMIN ** (alpha + 1.0))
    assert power_law_weight(j, alpha, NUMIN, NUMAX) == pytest.approx(expected, rel=1e-10)


@pytest.mark.parametrize("alpha", [-2.0, -1.0, 0.0, 1.0, 2.0])
def test_fit_band_slope_recovers_alpha(alpha: float) -> None:
    mean_freq = power_law_mean_frequency(alpha, NUMIN, NUMAX)
    fitted = fit_band_slope(NUMIN, NUMAX, mean_freq, alpha_guess=0.3)
    assert fitted == pytest.approx(alpha, abs=1e-4)


def test_fit_band_slope_widens_bracket_for_steep_spectrum(caplog) -> None:
    mean_freq = power_law_mean_frequency(2.5, NUMIN, NUMAX)
    with caplog.at_level(logging.DEBUG, logger="ionbalance.physics.powerlaw"):
        fitted = fit_band_slope(NUMIN, NUMAX, mean_freq, alpha_guess=0.0)
    assert fitted == pytest.approx(2.5, abs=1e-4)
    assert any("widened" in rec.message for rec in caplog.records)


def test_fit_band_slope_gives_up_after_expansion_cap() -> None:
    with pytest.raises(NumericalError):
        fit_band_slope(NUMIN, NUMAX, 2.0 * NUMAX, alpha_guess=0.0, max_expansions=3)


def test_fit_spectral_model_recovers_steep_band() -> None:
    bands = FrequencyBands.from_edges([NUMIN, NUMAX])
    cell = _single_band_cell()
    _fill_band(cell, bands, 0, alpha=2.5, weight=1.0e-40)

    fits = fit_spectral_model(cell, bands)

    assert fits[0].status == "fit"
    assert cell.sim_alpha[0] == pytest.approx(2.5, abs=1e-4)
    assert cell.sim_w[0] == pytest.approx(1.0e-40, rel=1e-2)


def test_fit_spectral_model_clamps_slope() -> None:
    bands = FrequencyBands.from_edges([NUMIN, NUMAX])
    cell = _single_band_cell()
    _fill_band(cell, bands, 0, alpha=4.5, weight=1.0e-50)

    fit_spectral_model(cell, bands, max_expansions=10)

    assert cell.sim_alpha[0] == 3.0
    assert cell.sim_w[0] >= 0.0


def test_empty_band_zeroes_weight_and_keeps_slope(make_cell, bands, caplog) -> None:
    cell = make_cell()
    for band in range(bands.nbands):
        _fill_band(cell, bands, band, alpha=-1.0, weight=1.0e6)
    cell.ave_freq = 1.0e16
    cell.nxtot[1] = 0
    cell.sim_alpha[1] = 0.7
    cell.sim_w[1] = 5.0

    with caplog.at_level(logging.WARNING, logger="ionbalance.physics.powerlaw"):
        fits = fit_spectral_model(cell, bands)

    assert fits[1].status == "empty"
    assert cell.sim_w[1] == 0.0
    assert cell.sim_alpha[1] == 0.7
    assert [fit.status for fit in fits if fit.band != 1] == ["fit", "fit", "fit"]
    warnings_logged = [rec for rec in caplog.records if rec.levelno == logging.WARNING]
    assert len(warnings_logged) == 1


def test_unbracketed_band_keeps_previous_values() -> None:
    bands = FrequencyBands.from_edges([NUMIN, NUMAX])
    cell = _single_band_cell()
    cell.xj[0] = 1.0
    cell.xave_freq[0] = 3.0 * NUMAX
    cell.nxtot[0] = 10
    cell.sim_alpha[0] = -0.5
    cell.sim_w[0] = 7.0

    with pytest.warns(NumericalWarning):
        fits = fit_spectral_model(cell, bands, max_expansions=2)

    assert fits[0].status == "unbracketed"
    assert cell.sim_alpha[0] == -0.5
    assert cell.sim_w[0] == 7.0


def test_unusable_parameters_are_rejected() -> None:
    bands = FrequencyBands.from_edges([NUMIN, NUMAX])
    cell = _single_band_cell()
    _fill_band(cell, bands, 0, alpha=1.0, weight=1.0e-30)
    cell.sim_alpha[0] = 0.25
    cell.sim_w[0] = 9.0

    with pytest.warns(NumericalWarning):
        fits = fit_spectral_model(cell, bands, sane_check=lambda value: True)

    assert fits[0].status == "rejected"
    assert cell.sim_alpha[0] == 0.25
    assert cell.sim_w[0] == 9.0


def test_fit_rejects_band_count_mismatch(make_cell) -> None:
    cell = make_cell()
    with pytest.raises(ValueError):
        fit_spectral_model(cell, FrequencyBands.from_edges([NUMIN, NUMAX]))


def test_band_moments_are_consistent_with_weight() -> None:
    j, mean = band_moments(0.7, 2.0e-10, NUMIN, NUMAX)
    assert power_law_weight(j, 0.7, NUMIN, NUMAX) == pytest.approx(2.0e-10, rel=1e-12)
    assert NUMIN < mean < NUMAX
    assert np.isfinite(j)
