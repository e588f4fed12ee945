from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import pandas as pd

from .curves import SurvivalCurve, ZeroCurve, forward_rate
from .daycount import period_fraction
from .exdiv import SettlementWindow
from .schedule import Period, Schedule
from .terms import BondTerms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cashflow:
    """
    One cash event, per unit of original notional.

    accrued is the part of the coupon earned before the stream's start date
    (non-zero only for the first, partially elapsed period). df and survival
    are the raw curve values at the payment date (1.0 without a curve).
    """
    period: Period
    notional: float
    coupon_rate: float
    coupon: float
    principal: float
    accrued: float
    loss: float
    df: float
    survival: float

    @property
    def payment(self) -> pd.Timestamp:
        return self.period.payment

    @property
    def amount(self) -> float:
        return self.coupon + self.principal


@dataclass(frozen=True)
class _Economics:
    notional: float
    coupon_rate: float
    coupon: float
    principal: float


class CashflowStream:
    """
    Lazy, finite, restartable sequence of cashflows for periods ending after
    `from_date`.

    Per-period economics (coupon rate, outstanding notional, coupon and
    principal amounts) do not depend on the start date and are memoised by
    period index; restart() shares that memo, so moving the start date only
    re-derives the partially elapsed first period.
    """

    def __init__(
        self,
        schedule: Schedule,
        from_date: pd.Timestamp,
        as_of: Optional[pd.Timestamp] = None,
        window: Optional[SettlementWindow] = None,
        discount_curve: Optional[ZeroCurve] = None,
        survival_curve: Optional[SurvivalCurve] = None,
        reference_curve: Optional[ZeroCurve] = None,
        current_reset: Optional[float] = None,
        _memo: Optional[Dict[int, _Economics]] = None,
    ):
        self.schedule = schedule
        self.terms: BondTerms = schedule.terms
        self.from_date = pd.Timestamp(from_date)
        self.as_of = pd.Timestamp(as_of) if as_of is not None else self.from_date
        self.window = window
        self.discount_curve = discount_curve
        self.survival_curve = survival_curve
        self.reference_curve = reference_curve
        self.current_reset = current_reset
        self._memo: Dict[int, _Economics] = {} if _memo is None else _memo

    def restart(self, from_date: pd.Timestamp, window: Optional[SettlementWindow] = None) -> "CashflowStream":
        return CashflowStream(
            self.schedule,
            from_date,
            as_of=self.as_of,
            window=window if window is not None else self.window,
            discount_curve=self.discount_curve,
            survival_curve=self.survival_curve,
            reference_curve=self.reference_curve,
            current_reset=self.current_reset,
            _memo=self._memo,
        )

    def __iter__(self) -> Iterator[Cashflow]:
        first = True
        for period in self.schedule.periods_from(self.from_date):
            if period.is_degenerate:
                continue
            if self.window is not None and period.payment <= self.window.cashflow_cutoff:
                continue
            yield self._cashflow(period, first)
            first = False

    def to_list(self) -> List[Cashflow]:
        return list(self)

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "accrual_start": cf.period.accrual_start,
                "accrual_end": cf.period.accrual_end,
                "payment": cf.payment,
                "notional": cf.notional,
                "coupon_rate": cf.coupon_rate,
                "coupon": cf.coupon,
                "principal": cf.principal,
                "accrued": cf.accrued,
                "loss": cf.loss,
                "df": cf.df,
                "survival": cf.survival,
            }
            for cf in self
        ]
        return pd.DataFrame(rows, columns=[
            "accrual_start", "accrual_end", "payment", "notional", "coupon_rate",
            "coupon", "principal", "accrued", "loss", "df", "survival",
        ])

    def notional_factor(self, date: Optional[pd.Timestamp] = None) -> float:
        return notional_factor(self.terms, self.from_date if date is None else date)

    # ---- per-period economics ----

    def economics(self, period: Period) -> _Economics:
        econ = self._memo.get(period.index)
        if econ is None:
            econ = self._derive_economics(period)
            self._memo[period.index] = econ
        return econ

    def _derive_economics(self, period: Period) -> _Economics:
        terms = self.terms
        notional = notional_factor(terms, period.start)
        rate = self._coupon_rate(period)

        principal = sum(a for d, a in terms.amortization if period.start < d <= period.end)
        if period.index == len(self.schedule) - 1:
            principal += max(notional - principal, 0.0) * terms.redemption

        coupon = notional * rate * period.fraction
        return _Economics(notional, rate, coupon, principal)

    def _coupon_rate(self, period: Period) -> float:
        terms = self.terms

        if terms.floating is not None:
            return self._floating_rate(period) + terms.floating.spread

        rate = terms.coupon
        for d, r in terms.coupon_schedule:
            if d <= period.end:
                rate = r
            else:
                break
        return rate

    def _floating_rate(self, period: Period) -> float:
        index = self.terms.floating.index
        start, end = period.accrual_start, period.accrual_end

        if start <= self.as_of < end and self.current_reset is not None:
            return self.current_reset
        if start <= self.as_of:
            fixing = index.fixing(start)
            if fixing is not None:
                return fixing
            if self.current_reset is not None:
                return self.current_reset

        curve = self.reference_curve or self.discount_curve
        if curve is None:
            raise ValueError(
                f"{self.terms.bond_id}: no fixing or reference curve to project the "
                f"{index.name} rate for period starting {start.date()}."
            )
        fix_start = max(start, curve.val_date)
        fix_end = fix_start + pd.DateOffset(months=index.tenor_months)
        logger.debug("%s: projecting %s fixing for %s off curve", self.terms.bond_id, index.name, start.date())
        return forward_rate(curve, fix_start, fix_end, index.day_count)

    # ---- cashflow assembly ----

    def _cashflow(self, period: Period, first: bool) -> Cashflow:
        econ = self.economics(period)
        coupon = econ.coupon

        if self.window is not None and self.window.excluded_coupon_date == period.payment:
            coupon = 0.0

        accrued = 0.0
        if first and period.accrual_start < self.from_date < period.accrual_end and period.fraction > 0:
            elapsed = period_fraction(
                period.ref_start, period.ref_end, period.accrual_start, self.from_date,
                self.terms.coupon_basis, self.terms.freq,
            )
            accrued = coupon * elapsed / period.fraction

        df = 1.0
        if self.discount_curve is not None:
            df = self.discount_curve.discount_factor(period.payment)

        survival = 1.0
        loss = 0.0
        if self.survival_curve is not None:
            start = max(period.accrual_start, self.from_date)
            s_start, s_end, s_pay = self.survival_curve.survival([start, period.accrual_end, period.payment])
            survival = float(s_pay)
            loss = econ.notional * (1.0 - self.survival_curve.recovery) * float(s_start - s_end)

        return Cashflow(
            period=period,
            notional=econ.notional,
            coupon_rate=econ.coupon_rate,
            coupon=coupon,
            principal=econ.principal,
            accrued=accrued,
            loss=loss,
            df=df,
            survival=survival,
        )


def notional_factor(terms: BondTerms, date: pd.Timestamp) -> float:
    """Outstanding fraction of the original notional after amortizations paid on or before date."""
    d = pd.Timestamp(date)
    paid = sum(a for when, a in terms.amortization if when <= d)
    return max(1.0 - paid, 0.0)


def generate_cashflows(
    schedule: Schedule,
    from_date: pd.Timestamp,
    **kwargs,
) -> Tuple[Cashflow, ...]:
    """Materialise a CashflowStream into a tuple."""
    return tuple(CashflowStream(schedule, from_date, **kwargs))
