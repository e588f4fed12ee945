"""
Bond Pricing Engine

Modules:
- daycount: day count bases, year fractions, period fractions
- calendars: holiday calendars + business-day rolling
- terms: bond terms (fixed, step-up, amortizing, floating, callable) + validation
- schedule: accrual period generation (stubs, cycle rules, payment lags)
- curves: discount / survival curves the engine queries + parallel bumps
- exdiv: ex-dividend windows and product/trade/forward settlement
- cashflows: lazy, restartable cashflow streams
- yields: yield-discounting formulas and closed-form derivatives
- solver: adaptive bracketing + brentq root finder
- quotes: quoting conventions (price, yield, DM, Z-spread, ASW ...)
- risk: yield-based and curve-bumped sensitivities
- pricer: immutable BondPricer tying it together
- config: explicit pricer configuration
"""
from .config import PricerConfig
from .curves import SurvivalCurve, ZeroCurve, flat_curve
from .daycount import DayCount, day_diff, period_fraction, yearfrac
from .errors import BondEngineError, CurveError, InvalidTermsError, QuoteConventionError, SolverError
from .pricer import BondPricer
from .quotes import QuotingConvention
from .schedule import Schedule
from .terms import BondTerms, BondType, CycleRule, ExDivRule, FloatingTerms, RateIndex

__all__ = [
    "BondEngineError",
    "BondPricer",
    "BondTerms",
    "BondType",
    "CurveError",
    "CycleRule",
    "DayCount",
    "ExDivRule",
    "FloatingTerms",
    "InvalidTermsError",
    "PricerConfig",
    "QuoteConventionError",
    "QuotingConvention",
    "RateIndex",
    "Schedule",
    "SolverError",
    "SurvivalCurve",
    "ZeroCurve",
    "day_diff",
    "flat_curve",
    "period_fraction",
    "yearfrac",
]
