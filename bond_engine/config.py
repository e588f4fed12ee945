from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, Tuple


@dataclass(frozen=True)
class PricerConfig:
    """
    Explicit pricer configuration. Passed to each BondPricer at construction;
    there is no process-wide default instance that can be mutated.

    Bump sizes are in basis points. Brackets are the starting search intervals
    for the root finder, which widens them when the root lies outside.

    yield_risk_step is the yield half-width of the central differences behind
    PV01, duration and convexity; 0 uses the analytic derivatives.
    """
    discounting_accrued: bool = True
    rate_bump_bp: float = 25.0
    zspread_bump_bp: float = 25.0
    spread_bump_bp: float = 5.0
    spread_convexity_bump_bp: float = 25.0
    yield_risk_step: float = 0.0025

    solver_xtol: float = 1e-14
    solver_rtol: float = 1e-12
    solver_maxiter: int = 300
    max_bracket_expansions: int = 60
    yield_bracket: Tuple[float, float] = (-0.05, 0.50)
    spread_bracket: Tuple[float, float] = (-0.05, 0.50)

    money_market_final_period: bool = True
    price_rounding_digits: Optional[int] = None

    def __post_init__(self):
        for name in ("rate_bump_bp", "zspread_bump_bp", "spread_bump_bp", "spread_convexity_bump_bp"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.yield_risk_step < 0:
            raise ValueError("yield_risk_step must be non-negative")
        if self.solver_maxiter <= 0 or self.max_bracket_expansions < 0:
            raise ValueError("solver iteration budgets must be positive")
        for name in ("yield_bracket", "spread_bracket"):
            lo, hi = getattr(self, name)
            if not lo < hi:
                raise ValueError(f"{name} must be an increasing (lower, upper) pair")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "PricerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown pricer config keys: {unknown}")

        kwargs = dict(values)
        for name in ("yield_bracket", "spread_bracket"):
            if name in kwargs:
                kwargs[name] = tuple(float(x) for x in kwargs[name])
        return cls(**kwargs)

    def replace(self, **changes) -> "PricerConfig":
        return replace(self, **changes)

    def round_price(self, price: float) -> float:
        if self.price_rounding_digits is None:
            return price
        return round(price, self.price_rounding_digits)
