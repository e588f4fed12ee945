from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import pandas as pd
from pandas.tseries.offsets import MonthEnd

from .calendars import BusinessDayConvention, get_calendar
from .daycount import DayCountLike, day_diff, period_fraction
from .terms import BondTerms, CycleRule

logger = logging.getLogger(__name__)


class PeriodKind(str, Enum):
    REGULAR = "REGULAR"
    SHORT_FIRST = "SHORT_FIRST"
    LONG_FIRST = "LONG_FIRST"
    SHORT_LAST = "SHORT_LAST"
    LONG_LAST = "LONG_LAST"
    DEGENERATE = "DEGENERATE"


@dataclass(frozen=True)
class Period:
    """
    One accrual period. start/end are unadjusted schedule dates; accrual_*
    are the dates accrual is measured on (rolled when the bond uses period
    adjustment); payment is the rolled end date plus any payment lag.

    ref_start/ref_end is the regular (quasi-coupon) period the accrual is
    measured against. It differs from start/end only for stub periods.
    accrual_days is the day count of the accrual dates on the coupon basis.
    """
    index: int
    start: pd.Timestamp
    end: pd.Timestamp
    accrual_start: pd.Timestamp
    accrual_end: pd.Timestamp
    payment: pd.Timestamp
    ref_start: pd.Timestamp
    ref_end: pd.Timestamp
    kind: PeriodKind
    accrual_days: int
    fraction: float

    @property
    def is_degenerate(self) -> bool:
        return self.kind is PeriodKind.DEGENERATE


def _cycle_date(anchor: pd.Timestamp, months: int, rule: CycleRule) -> pd.Timestamp:
    d = anchor + pd.DateOffset(months=months)
    if rule is CycleRule.EOM and anchor.is_month_end:
        d = d + MonthEnd(0)
    elif rule is CycleRule.FIRST:
        d = d.replace(day=1)
    return pd.Timestamp(d)


def _degenerate(index: int, date: pd.Timestamp) -> Period:
    return Period(
        index=index,
        start=date,
        end=date,
        accrual_start=date,
        accrual_end=date,
        payment=date,
        ref_start=date,
        ref_end=date,
        kind=PeriodKind.DEGENERATE,
        accrual_days=0,
        fraction=0.0,
    )


@dataclass(frozen=True)
class Schedule:
    """
    Immutable coupon schedule. Build with Schedule.from_terms(terms).
    A settlement date change never edits a schedule; callers take a
    different window of it through periods_from().
    """
    terms: BondTerms
    periods: Tuple[Period, ...]

    @classmethod
    def from_terms(cls, terms: BondTerms) -> "Schedule":
        return cls(terms, tuple(_generate_periods(terms)))

    def __len__(self) -> int:
        return len(self.periods)

    def __iter__(self):
        return iter(self.periods)

    @property
    def effective(self) -> pd.Timestamp:
        return self.terms.effective

    @property
    def maturity(self) -> pd.Timestamp:
        return self.periods[-1].accrual_end

    def next_coupon_index(self, date: pd.Timestamp) -> int:
        """Index of the first period ending strictly after date, -1 if none."""
        d = pd.Timestamp(date)
        for p in self.periods:
            if p.accrual_end > d:
                return p.index
        return -1

    def period_at(self, date: pd.Timestamp) -> Optional[Period]:
        idx = self.next_coupon_index(date)
        return self.periods[idx] if idx >= 0 else None

    def previous_coupon_date(self, date: pd.Timestamp) -> pd.Timestamp:
        p = self.period_at(date)
        if p is None:
            return self.periods[-1].accrual_end
        return p.accrual_start

    def next_coupon_date(self, date: pd.Timestamp) -> Optional[pd.Timestamp]:
        p = self.period_at(date)
        return None if p is None else p.accrual_end

    def remaining_coupons(self, date: pd.Timestamp) -> int:
        d = pd.Timestamp(date)
        return sum(1 for p in self.periods if p.accrual_end > d and not p.is_degenerate)

    def periods_from(self, date: pd.Timestamp) -> Tuple[Period, ...]:
        """
        Periods still running after `date`. Exactly on maturity this is a
        single zero-length terminal period; after maturity it is empty.
        """
        d = pd.Timestamp(date)
        last = self.periods[-1]
        if d > last.accrual_end:
            return ()
        if d == last.accrual_end:
            return (_degenerate(last.index, last.accrual_end),)
        return tuple(p for p in self.periods if p.accrual_end > d)

    def accrual_fraction(self, date: pd.Timestamp, basis: DayCountLike) -> float:
        """Fraction accrued from the current period start to date."""
        d = pd.Timestamp(date)
        p = self.period_at(d)
        if p is None or p.is_degenerate or d <= p.accrual_start:
            return 0.0
        return period_fraction(p.ref_start, p.ref_end, p.accrual_start, d, basis, self.terms.freq)

    def fraction_to_next(self, date: pd.Timestamp, basis: DayCountLike) -> float:
        """Fraction from date to the end of the current period."""
        d = pd.Timestamp(date)
        p = self.period_at(d)
        if p is None or p.is_degenerate:
            return 0.0
        start = max(d, p.accrual_start)
        return period_fraction(p.ref_start, p.ref_end, start, p.accrual_end, basis, self.terms.freq)

    def accrual_days(self, date: pd.Timestamp, basis: DayCountLike) -> int:
        d = pd.Timestamp(date)
        p = self.period_at(d)
        if p is None or p.is_degenerate or d <= p.accrual_start:
            return 0
        return day_diff(p.accrual_start, d, basis)

    def days_to_next(self, date: pd.Timestamp, basis: DayCountLike) -> int:
        d = pd.Timestamp(date)
        p = self.period_at(d)
        if p is None or p.is_degenerate:
            return 0
        return day_diff(max(d, p.accrual_start), p.accrual_end, basis)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "start": [p.start for p in self.periods],
                "end": [p.end for p in self.periods],
                "accrual_start": [p.accrual_start for p in self.periods],
                "accrual_end": [p.accrual_end for p in self.periods],
                "payment": [p.payment for p in self.periods],
                "kind": [p.kind.value for p in self.periods],
                "accrual_days": [p.accrual_days for p in self.periods],
                "fraction": [p.fraction for p in self.periods],
            }
        )


def _unadjusted_dates(terms: BondTerms) -> Tuple[List[pd.Timestamp], Dict[pd.Timestamp, int]]:
    """
    Coupon dates generated backward from the last regular coupon (last coupon
    override or maturity). Returns the ascending date list from effective to
    maturity, and each grid date's number of periods back from the anchor.
    """
    months = terms.months_per_period
    anchor = terms.last_coupon or terms.maturity
    stop = terms.first_coupon or terms.effective
    rule = terms.cycle_rule

    grid: Dict[pd.Timestamp, int] = {anchor: 0}
    backward = [anchor]
    k = 1
    while True:
        d = _cycle_date(anchor, -k * months, rule)
        if d <= stop:
            break
        grid[d] = k
        backward.append(d)
        k += 1

    dates = list(reversed(backward))
    if terms.first_coupon is not None and dates[0] != terms.first_coupon:
        dates.insert(0, terms.first_coupon)
    dates.insert(0, terms.effective)
    if anchor < terms.maturity:
        dates.append(terms.maturity)

    return dates, grid


def _generate_periods(terms: BondTerms) -> List[Period]:
    if terms.effective == terms.maturity:
        return [_degenerate(0, terms.effective)]

    cal = get_calendar(terms.calendar)
    conv = BusinessDayConvention.parse(terms.roll)
    basis = terms.coupon_basis
    months = terms.months_per_period
    rule = terms.cycle_rule

    if terms.freq == 0:
        dates, grid = [terms.effective, terms.maturity], {terms.maturity: 0}
    else:
        dates, grid = _unadjusted_dates(terms)

    anchor = terms.last_coupon or terms.maturity
    n = len(dates) - 1
    periods: List[Period] = []

    for i in range(n):
        start, end = dates[i], dates[i + 1]
        kind = PeriodKind.REGULAR
        ref_start, ref_end = start, end

        if terms.freq == 0:
            pass
        elif i == 0:
            if end in grid:
                ref_start = _cycle_date(anchor, -(grid[end] + 1) * months, rule)
            else:
                ref_start = _cycle_date(end, -months, rule)
            if start > ref_start:
                kind = PeriodKind.SHORT_FIRST
            elif start < ref_start:
                kind = PeriodKind.LONG_FIRST
        elif start not in grid and end in grid:
            # first coupon off the grid: runs up to the next grid date
            ref_start = _cycle_date(anchor, -(grid[end] + 1) * months, rule)
            if start > ref_start:
                kind = PeriodKind.SHORT_FIRST
        elif i == n - 1 and anchor < terms.maturity:
            ref_end = _cycle_date(start, months, rule)
            if end < ref_end:
                kind = PeriodKind.SHORT_LAST
            elif end > ref_end:
                kind = PeriodKind.LONG_LAST

        if terms.period_adjustment:
            acc_start = start if i == 0 else cal.roll(start, conv)
            acc_end = cal.roll(end, conv)
        else:
            acc_start, acc_end = start, end

        payment = cal.add_business_days(cal.roll(end, conv), terms.payment_lag)
        fraction = period_fraction(ref_start, ref_end, acc_start, acc_end, basis, terms.freq)

        periods.append(
            Period(
                index=i,
                start=start,
                end=end,
                accrual_start=acc_start,
                accrual_end=acc_end,
                payment=payment,
                ref_start=ref_start,
                ref_end=ref_end,
                kind=kind,
                accrual_days=day_diff(acc_start, acc_end, basis),
                fraction=fraction,
            )
        )

    logger.debug(
        "%s: generated %d periods (%s first, %s last)",
        terms.bond_id,
        len(periods),
        periods[0].kind.value,
        periods[-1].kind.value,
    )
    return periods
