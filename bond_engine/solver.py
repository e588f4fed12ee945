from __future__ import annotations

import logging
import math
from typing import Callable, Optional, Tuple

from scipy.optimize import brentq

from .config import PricerConfig
from .errors import SolverError

logger = logging.getLogger(__name__)


def _evaluate(func: Callable[[float], float], x: float) -> float:
    fx = float(func(x))
    if math.isnan(fx):
        raise SolverError(f"Objective returned NaN at x={x}.")
    return fx


def bracket_root(
    func: Callable[[float], float],
    lower: float,
    upper: float,
    max_expansions: int,
    floor: Optional[float] = None,
) -> Tuple[float, float]:
    """
    Widen [lower, upper] geometrically until func changes sign across it.

    floor is an exclusive lower limit the bracket may approach but never
    reach (e.g. -frequency for yields, where the price blows up).
    """
    if floor is not None and lower <= floor:
        lower = floor + 0.5 * (upper - floor)

    f_lo = _evaluate(func, lower)
    f_hi = _evaluate(func, upper)

    for i in range(max_expansions + 1):
        if f_lo == 0.0 or f_hi == 0.0 or f_lo * f_hi < 0.0:
            if i > 0:
                logger.warning("Root bracket widened %d times to [%g, %g]", i, lower, upper)
            return lower, upper
        if i == max_expansions:
            break

        width = upper - lower
        # step toward the side with the smaller residual first
        if abs(f_lo) < abs(f_hi):
            new_lower = lower - width
            if floor is not None and new_lower <= floor:
                new_lower = floor + 0.5 * (lower - floor)
            lower = new_lower
            f_lo = _evaluate(func, lower)
        else:
            upper = upper + width
            f_hi = _evaluate(func, upper)

    raise SolverError(
        f"Unable to bracket root after {max_expansions} expansions "
        f"(last bracket [{lower:g}, {upper:g}], residuals {f_lo:g}, {f_hi:g})."
    )


def solve(
    func: Callable[[float], float],
    config: PricerConfig,
    bracket: Tuple[float, float],
    floor: Optional[float] = None,
    what: str = "root",
) -> float:
    """
    Root of a monotone one-dimensional function: adaptive bracket, then
    scipy brentq (secant / inverse quadratic steps with bisection fallback).
    Raises SolverError instead of returning a best guess.
    """
    lower, upper = bracket_root(func, bracket[0], bracket[1], config.max_bracket_expansions, floor)

    try:
        root, result = brentq(
            func,
            lower,
            upper,
            xtol=config.solver_xtol,
            rtol=config.solver_rtol,
            maxiter=config.solver_maxiter,
            full_output=True,
            disp=False,
        )
    except (ValueError, RuntimeError) as e:
        raise SolverError(f"Failed to solve for {what}: {e}") from e

    if not result.converged:
        raise SolverError(f"Failed to solve for {what}: {result.flag} after {result.iterations} iterations.")

    logger.debug("Solved %s = %.12g in %d iterations", what, root, result.iterations)
    return float(root)
