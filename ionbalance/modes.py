"""Ionization modes understood by :func:`ionbalance.ionization.ion_abundances`.

The historical integer codes conflate two axes: which abundance physics is
used and whether the electron temperature is updated.  :class:`IonizationMode`
keeps the integer values for compatibility with existing inputs and exposes
both axes as properties.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Union

import numpy as np

from .errors import FatalIonizationError


class NebularMode(IntEnum):
    """Sub-modes passed to the external abundance routine."""

    LTE_TR = 1
    ON_THE_SPOT = 2
    ON_THE_SPOT_EXACT = 4
    POWER_LAW = 5


class IonizationMode(IntEnum):
    """Per-cell ionization mode."""

    FROZEN_OTS = 0
    LTE_TR = 1
    FIXED = 2
    DAMPED_OTS = 3
    LTE_TR_PL = 4
    DAMPED_PL = 5

    @property
    def updates_temperature(self) -> bool:
        return self in (IonizationMode.DAMPED_OTS, IonizationMode.DAMPED_PL)

    @property
    def fits_power_law(self) -> bool:
        return self is IonizationMode.DAMPED_PL

    @classmethod
    def coerce(cls, value: Union["IonizationMode", int, str]) -> "IonizationMode":
        """Return the mode for an enum member, integer code or member name.

        Unknown modes are fatal.
        """

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            if key.lstrip("-").isdigit():
                value = int(key)
            else:
                raise FatalIonizationError(f"Could not calculate abundances for mode {value!r}")
        fractional = isinstance(value, (float, np.floating)) and not float(value).is_integer()
        if fractional or isinstance(value, (bool, np.bool_)):
            raise FatalIonizationError(f"Could not calculate abundances for mode {value!r}")
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise FatalIonizationError(f"Could not calculate abundances for mode {value!r}") from None


def nebular_submode(mode: Union[IonizationMode, int]) -> NebularMode:
    """Translate a driver mode into the abundance-routine sub-mode used by ``one_shot``.

    Mode 3 maps to the on-the-spot sub-mode; modes 2, 4 and 5 pass through.
    Anything else is fatal.
    """

    code = int(mode)
    if code == IonizationMode.DAMPED_OTS:
        return NebularMode.ON_THE_SPOT
    if code in (2, 4, 5):
        return NebularMode(code)
    raise FatalIonizationError(f"one_shot: don't know how to process mode {code}")


__all__ = ["IonizationMode", "NebularMode", "nebular_submode"]
