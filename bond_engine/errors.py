from __future__ import annotations


class BondEngineError(Exception):
    """Base class for errors raised by the bond engine."""


class InvalidTermsError(BondEngineError, ValueError):
    """Bond terms are malformed (bad dates, amortization over 100%, unordered step-ups...)."""


class QuoteConventionError(BondEngineError, ValueError):
    """A quoting convention was used on a bond it does not apply to."""


class CurveError(BondEngineError, ValueError):
    """A curve operation produced an unusable curve (e.g. non-positive discount factors)."""


class SolverError(BondEngineError, RuntimeError):
    """The root finder could not bracket or converge on a solution."""
