"""Configuration schema for ionization runs.

Pydantic models mirroring the YAML configuration read by
:mod:`ionbalance.run`.  :class:`IonizationSettings` is also the settings
object the ionization core receives directly, so library users can build it
in code without any YAML.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from . import constants
from .bands import FrequencyBands
from .errors import ConfigurationError, FatalIonizationError
from .modes import IonizationMode


class IonizationSettings(BaseModel):
    """Mode selection and numerical controls of the per-cell update."""

    mode: IonizationMode = Field(
        IonizationMode.DAMPED_OTS,
        description="Ionization mode 0-5 or its name (e.g. 'damped_pl')",
    )
    auger_ionization: bool = Field(False, description="Run the Auger post-pass after every update")
    epsilon: float = Field(constants.EPSILON_CONVERGENCE, gt=0.0, description="Convergence tolerance")
    te_root_tol: float = Field(constants.TE_ROOT_TOL, gt=0.0, description="Temperature root tolerance [K]")
    alpha_root_tol: float = Field(constants.ALPHA_ROOT_TOL, gt=0.0, description="Power-law slope root tolerance")
    alpha_clamp: Tuple[float, float] = Field(constants.ALPHA_CLAMP, description="Allowed power-law slope range")
    gain_min: float = Field(constants.GAIN_RANGE[0], gt=0.0, le=1.0)
    gain_max: float = Field(constants.GAIN_RANGE[1], gt=0.0, le=1.0)
    gain_damp: float = Field(constants.GAIN_DAMP, gt=0.0, lt=1.0, description="Gain multiplier when oscillating")
    gain_boost: float = Field(constants.GAIN_BOOST, gt=1.0, description="Gain multiplier otherwise")
    initial_gain: float = Field(0.5, gt=0.0, le=1.0)
    te_bracket: Tuple[float, float] = Field(constants.TE_BRACKET, description="Temperature search bracket factors")
    tr_min: float = Field(constants.TR_MIN, gt=0.0, description="Smallest radiation temperature accepted [K]")
    max_bracket_expansions: int = Field(50, ge=0, description="Unit widenings allowed in the slope search")

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, value: Any) -> IonizationMode:
        try:
            return IonizationMode.coerce(value)
        except FatalIonizationError as exc:
            raise ConfigurationError(str(exc)) from exc

    @field_validator("alpha_clamp")
    @classmethod
    def _check_clamp(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        lo, hi = value
        if not lo < hi:
            raise ConfigurationError(f"alpha_clamp lower bound {lo} must be below upper bound {hi}")
        return value

    @field_validator("te_bracket")
    @classmethod
    def _check_bracket(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        lo, hi = value
        if not (0.0 < lo < 1.0 < hi):
            raise ConfigurationError(f"te_bracket must satisfy 0 < low < 1 < high (got {value})")
        return value

    @model_validator(mode="after")
    def _check_gain(self) -> "IonizationSettings":
        if self.gain_min > self.gain_max:
            raise ConfigurationError(f"gain_min ({self.gain_min}) must not exceed gain_max ({self.gain_max})")
        if not (self.gain_min <= self.initial_gain <= self.gain_max):
            raise ConfigurationError(
                f"initial_gain {self.initial_gain} outside [{self.gain_min}, {self.gain_max}]"
            )
        return self


class BandsConfig(BaseModel):
    """Frequency bands of the power-law estimators.

    Example:
        bands:
          numin: 1.0e14
          numax: 1.0e18
          nbands: 4
    """

    edges: Optional[List[float]] = Field(None, description="Explicit band edges [Hz]")
    numin: Optional[float] = Field(None, gt=0.0, description="Lowest edge for log spacing [Hz]")
    numax: Optional[float] = Field(None, gt=0.0, description="Highest edge for log spacing [Hz]")
    nbands: Optional[int] = Field(None, ge=1, description="Number of log-spaced bands")
    coarse: Optional[Tuple[float, float]] = Field(None, description="Coarse fallback band [Hz]")

    @model_validator(mode="after")
    def _check_source(self) -> "BandsConfig":
        explicit = self.edges is not None
        spaced = self.numin is not None or self.numax is not None or self.nbands is not None
        if explicit and spaced:
            raise ConfigurationError("bands: give either 'edges' or 'numin/numax/nbands', not both")
        if not explicit and not (self.numin is not None and self.numax is not None and self.nbands is not None):
            raise ConfigurationError("bands: 'numin', 'numax' and 'nbands' are all required without 'edges'")
        return self

    def build(self) -> FrequencyBands:
        if self.edges is not None:
            return FrequencyBands.from_edges(self.edges, self.coarse)
        return FrequencyBands.logspaced(float(self.numin), float(self.numax), int(self.nbands), self.coarse)


class SourceSpectrum(BaseModel):
    """Power-law radiation field deposited into a cell each cycle."""

    alpha: float = Field(-1.0, description="Spectral slope of J_nu")
    weight: float = Field(1.0e6, ge=0.0, description="Normalisation W of J_nu = W nu^alpha")
    photons_per_band: int = Field(10000, ge=0, description="Photon count recorded per band")
    empty_bands: List[int] = Field(default_factory=list, description="Bands that receive no photons")


class CellConfig(BaseModel):
    """Initial state of one cell (or ``count`` identical cells)."""

    count: int = Field(1, ge=1)
    t_e: float = Field(1.0e4, gt=0.0, description="Electron temperature [K]")
    t_r: float = Field(1.0e4, gt=0.0, description="Radiation temperature [K]")
    w: float = Field(1.0, gt=0.0, le=1.0, description="Dilution factor")
    nh: float = Field(1.0e8, gt=0.0, description="Hydrogen number density [cm^-3]")
    volume: float = Field(1.0e45, gt=0.0, description="Cell volume [cm^3]")
    div_v: float = Field(0.0, ge=0.0, description="Velocity divergence [s^-1]")
    alpha0: float = Field(0.0, description="Initial power-law slope guess")
    source: SourceSpectrum = SourceSpectrum()


class SpectraConfig(BaseModel):
    """Shape of the spectral accumulators averaged across ranks."""

    enabled: bool = True
    nspec: int = Field(1, ge=1)
    nwave: int = Field(1000, ge=2, le=constants.NWAVE_MAX)


class ParallelConfig(BaseModel):
    """Rank group used for the cycle."""

    backend: Literal["serial", "mpi", "local"] = "serial"
    nranks: int = Field(1, ge=1, description="Number of in-process ranks for backend='local'")


class OutputConfig(BaseModel):
    """Output locations and switches."""

    outdir: Path = Path("out")
    write_cells: bool = True
    write_history: bool = True
    write_spectra: bool = True


class Config(BaseModel):
    """Top-level configuration object."""

    ionization: IonizationSettings = IonizationSettings()
    bands: BandsConfig
    cells: List[CellConfig] = Field(..., min_length=1)
    cycles: int = Field(20, ge=1, description="Number of ionization cycles")
    spectra: SpectraConfig = SpectraConfig()
    parallel: ParallelConfig = ParallelConfig()
    output: OutputConfig = OutputConfig()

    @model_validator(mode="after")
    def _check_empty_bands(self) -> "Config":
        nbands = self.bands.build().nbands
        for idx, cell in enumerate(self.cells):
            bad = [b for b in cell.source.empty_bands if not 0 <= b < nbands]
            if bad:
                raise ConfigurationError(f"cells[{idx}].source.empty_bands {bad} outside 0..{nbands - 1}")
        return self


__all__ = [
    "IonizationSettings",
    "BandsConfig",
    "SourceSpectrum",
    "CellConfig",
    "SpectraConfig",
    "ParallelConfig",
    "OutputConfig",
    "Config",
]
