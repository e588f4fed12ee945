from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd

from .cashflows import Cashflow
from .daycount import DayCountLike, period_fraction, yearfrac
from .schedule import PeriodKind, Schedule


@dataclass(frozen=True)
class YieldBasis:
    """
    Cashflow amounts and their discount exponents (in compounding periods)
    for yield-to-price conversion:

        P(y) = sum_k A_k (1 + y/f)^(-e_k)

    money_market: a single remaining cashflow priced with simple interest,
        P(y) = A / (1 + y e / f)
    """
    amounts: np.ndarray
    exponents: np.ndarray
    freq: int
    money_market: bool = False

    @property
    def is_empty(self) -> bool:
        return len(self.amounts) == 0

    def _v(self, y: float) -> float:
        base = 1.0 + y / self.freq
        if base <= 0.0:
            raise ValueError(f"Yield {y} at or below -frequency ({-self.freq}) has no price.")
        return 1.0 / base

    def price(self, y: float) -> float:
        if self.is_empty:
            return 0.0
        if self.money_market:
            t = self.exponents[0] / self.freq
            return float(self.amounts[0] / (1.0 + y * t))
        v = self._v(y)
        return float(np.sum(self.amounts * v ** self.exponents))

    def dprice(self, y: float) -> float:
        """dP/dy."""
        if self.is_empty:
            return 0.0
        if self.money_market:
            t = self.exponents[0] / self.freq
            return float(-self.amounts[0] * t / (1.0 + y * t) ** 2)
        v = self._v(y)
        e = self.exponents
        return float(-np.sum(self.amounts * e / self.freq * v ** (e + 1.0)))

    def d2price(self, y: float) -> float:
        """d2P/dy2."""
        if self.is_empty:
            return 0.0
        if self.money_market:
            t = self.exponents[0] / self.freq
            return float(2.0 * self.amounts[0] * t * t / (1.0 + y * t) ** 3)
        v = self._v(y)
        e = self.exponents
        return float(np.sum(self.amounts * e * (e + 1.0) / self.freq ** 2 * v ** (e + 2.0)))

    def derivatives(self, y: float, step: float = 0.0) -> Tuple[float, float]:
        """
        (dP/dy, d2P/dy2) at y: central differences of P with half-width step,
        or the analytic derivatives when step is 0.
        """
        if step <= 0.0:
            return self.dprice(y), self.d2price(y)
        up, down = self.price(y + step), self.price(y - step)
        return (up - down) / (2.0 * step), (up + down - 2.0 * self.price(y)) / (step * step)

    def macaulay_duration(self, y: float) -> float:
        p = self.price(y)
        if self.is_empty or p == 0.0:
            return 0.0
        if self.money_market:
            return float(self.exponents[0] / self.freq)
        v = self._v(y)
        e = self.exponents
        return float(np.sum(e / self.freq * self.amounts * v ** e) / p)


def period_exponents(schedule: Schedule, settle: pd.Timestamp, basis: DayCountLike) -> Dict[int, float]:
    """
    Discount exponent, in coupon periods from settle, of every period still
    running after settle, keyed by period index.

    The first exponent is the fraction of the current period left to run
    (measured against its regular reference period, so long first and long
    last periods span more than one); each later period adds 1, or its own
    length in regular periods when it is irregular (a final stub, or the
    period after an off-grid first coupon).
    """
    terms = schedule.terms
    settle = pd.Timestamp(settle)
    f = terms.compounding_freq

    out: Dict[int, float] = {}
    e = 0.0
    first = True
    for p in schedule.periods_from(settle):
        if p.is_degenerate:
            continue
        if terms.freq == 0:
            step = yearfrac(max(settle, p.accrual_start), p.accrual_end, basis)
        elif first:
            start = max(settle, p.accrual_start)
            step = f * period_fraction(p.ref_start, p.ref_end, start, p.accrual_end, basis, terms.freq)
        elif p.kind is not PeriodKind.REGULAR:
            step = f * period_fraction(p.ref_start, p.ref_end, p.accrual_start, p.accrual_end, basis, terms.freq)
        else:
            step = 1.0
        e += step
        out[p.index] = e
        first = False
    return out


def yield_basis(
    schedule: Schedule,
    cashflows: Sequence[Cashflow],
    settle: pd.Timestamp,
    basis: DayCountLike,
    money_market_final_period: bool = True,
    notional_factor: float = 1.0,
) -> YieldBasis:
    """
    Market yield basis for a cashflow sequence, with amounts rescaled per
    unit of outstanding notional.
    """
    exps = period_exponents(schedule, settle, basis)
    f = schedule.terms.compounding_freq
    scale = 1.0 / notional_factor if notional_factor > 0 else 0.0

    amounts = np.array([cf.amount * scale for cf in cashflows], dtype=float)
    exponents = np.array([exps[cf.period.index] for cf in cashflows], dtype=float)

    remaining = sum(1 for p in schedule.periods_from(settle) if not p.is_degenerate)
    money_market = money_market_final_period and remaining == 1 and len(cashflows) == 1
    return YieldBasis(amounts, exponents, f, money_market)


def time_basis(
    cashflows: Sequence[Cashflow],
    settle: pd.Timestamp,
    day_count: DayCountLike,
    freq: int,
    notional_factor: float = 1.0,
) -> YieldBasis:
    """Yield basis with exponents from payment-date year fractions (for IRR)."""
    settle = pd.Timestamp(settle)
    f = freq if freq > 0 else 1
    scale = 1.0 / notional_factor if notional_factor > 0 else 0.0
    amounts = np.array([cf.amount * scale for cf in cashflows], dtype=float)
    exponents = np.array([f * yearfrac(settle, cf.payment, day_count) for cf in cashflows], dtype=float)
    return YieldBasis(amounts, exponents, f, False)
