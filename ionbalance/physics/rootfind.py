"""Bracketed one-dimensional root solver.

Brent's method: inverse quadratic interpolation and secant steps, with a
bisection step whenever the fast step leaves the bracket or fails to shrink
it fast enough.  The bracket is never widened here; callers that need a
wider interval (the power-law fitter) expand it themselves.
"""
from __future__ import annotations

import logging
import math
from typing import Callable

from scipy.optimize import brentq

from ..errors import BracketError, NumericalError

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 200

__all__ = ["find_root"]


def find_root(
    func: Callable[[float], float],
    a: float,
    b: float,
    tol: float,
    *,
    maxiter: int = MAX_ITERATIONS,
) -> float:
    """Return a root of ``func`` inside ``[a, b]``.

    Parameters
    ----------
    func:
        Continuous scalar function.  It may be stateful; it is evaluated at
        the endpoints first and then at the interior trial points in order.
    a, b:
        Interval end points; the order does not matter.
    tol:
        Absolute tolerance on the root location.

    Raises
    ------
    BracketError
        If ``func(a)`` and ``func(b)`` have the same sign or either is not finite.
    NumericalError
        If the iteration does not converge within ``maxiter`` steps.
    """

    if tol <= 0.0 or not math.isfinite(tol):
        raise ValueError(f"tolerance must be positive and finite (got {tol})")
    lo, hi = (float(a), float(b)) if a <= b else (float(b), float(a))
    f_lo = float(func(lo))
    f_hi = float(func(hi))
    if not (math.isfinite(f_lo) and math.isfinite(f_hi)):
        raise BracketError(f"non-finite function value at bracket ends: f({lo})={f_lo}, f({hi})={f_hi}")
    if f_lo == 0.0:
        return lo
    if f_hi == 0.0:
        return hi
    if f_lo * f_hi > 0.0:
        raise BracketError(f"root not bracketed in [{lo}, {hi}]: f(a)={f_lo:.3e}, f(b)={f_hi:.3e}")
    try:
        root, info = brentq(func, lo, hi, xtol=tol, maxiter=maxiter, full_output=True, disp=False)
    except ValueError as exc:
        raise BracketError(str(exc)) from exc
    if not info.converged:
        raise NumericalError(
            f"root solve in [{lo}, {hi}] did not converge after {info.iterations} iterations ({info.flag})"
        )
    logger.debug("find_root: x=%.6g after %d iterations", root, info.iterations)
    return float(root)
