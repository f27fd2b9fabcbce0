"""Physical constants and default solver parameters.

Values are in cgs units, the convention of the radiative-transfer code the
cells come from.  Solver defaults mirror :class:`ionbalance.schema.IonizationSettings`.
"""
from __future__ import annotations

import math
from typing import Tuple

PI: float = math.pi

# Planck constant (erg s)
H: float = 6.62607015e-27

# Boltzmann constant (erg K^-1)
BOLTZMANN: float = 1.380649e-16

# Speed of light (cm s^-1)
C: float = 2.99792458e10

# Electron mass (g)
M_E: float = 9.1093837015e-28

# Thomson cross section (cm^2)
THOMPSON: float = 6.6524587321e-25

# Planck constant in eV s
HEV: float = 4.135667696e-15

# Hydrogen ionization edge (Hz) and threshold cross section (cm^2)
NU_H_EDGE: float = 3.28805e15
SIGMA_H_EDGE: float = 6.30e-18

# (2 pi m_e k / h^2)^(3/2) (cm^-3 K^-3/2)
SAHA: float = 2.4146830e15

# Upper bound for any density or luminosity that is still considered sane
VERY_BIG: float = 1e50

# Default number of wavelength bins in a spectrum
NWAVE_MAX: int = 10000

# Solver defaults
EPSILON_CONVERGENCE: float = 0.05
TE_ROOT_TOL: float = 50.0
ALPHA_ROOT_TOL: float = 1e-5
ALPHA_CLAMP: Tuple[float, float] = (-3.0, 3.0)
GAIN_RANGE: Tuple[float, float] = (0.1, 0.8)
GAIN_DAMP: float = 0.7
GAIN_BOOST: float = 1.1
TE_BRACKET: Tuple[float, float] = (0.7, 1.3)
TR_MIN: float = 10.0
