from __future__ import annotations

import calendar
from enum import Enum
from typing import Union

import pandas as pd


class DayCount(str, Enum):
    """
    Day count bases. Members compare equal to their string value so callers
    can keep passing plain strings such as "30/360" or "ACT/360".
    """
    ACT_360 = "ACT/360"
    ACT_365F = "ACT/365F"
    ACT_365L = "ACT/365L"
    ACT_366 = "ACT/366"
    THIRTY_360 = "30/360"
    THIRTY_360_ISMA = "30/360-ISMA"
    THIRTY_E_360 = "30E/360"
    THIRTY_EP_360 = "30E+/360"
    ACT_ACT_ISDA = "ACT/ACT-ISDA"
    ACT_ACT_BOND = "ACT/ACT-BOND"
    ACT_ACT_EURO = "ACT/ACT-EURO"

    @classmethod
    def parse(cls, value: Union[str, "DayCount"]) -> "DayCount":
        if isinstance(value, cls):
            return value
        key = _normalise(str(value))
        dc = _LOOKUP.get(key)
        if dc is None:
            raise ValueError(f"Unsupported day count convention: {value}")
        return dc

    @property
    def is_thirty(self) -> bool:
        return self in _THIRTY

    @property
    def uses_reference_period(self) -> bool:
        return self in _PERIOD_SENSITIVE


DayCountLike = Union[str, DayCount]


def _normalise(value: str) -> str:
    return value.upper().replace(" ", "").replace("_", "").replace("-", "")


_ALIASES = {
    "ACT/365": DayCount.ACT_365F,
    "ACT/365FIXED": DayCount.ACT_365F,
    "30/360US": DayCount.THIRTY_360,
    "30/360ISDA": DayCount.THIRTY_360,
    "30/360SIA": DayCount.THIRTY_360_ISMA,
    "30/360BOND": DayCount.THIRTY_360_ISMA,
    "30E/360ISDA": DayCount.THIRTY_E_360,
    "ACT/ACT": DayCount.ACT_ACT_ISDA,
    "ACT/ACTICMA": DayCount.ACT_ACT_BOND,
    "ACT/ACTISMA": DayCount.ACT_ACT_BOND,
    "ACT/ACTAFB": DayCount.ACT_ACT_EURO,
}

_LOOKUP = {_normalise(dc.value): dc for dc in DayCount}
_LOOKUP.update({_normalise(k): v for k, v in _ALIASES.items()})

_THIRTY = frozenset(
    {DayCount.THIRTY_360, DayCount.THIRTY_360_ISMA, DayCount.THIRTY_E_360, DayCount.THIRTY_EP_360}
)
_PERIOD_SENSITIVE = frozenset(
    {DayCount.ACT_ACT_BOND, DayCount.ACT_ACT_EURO, DayCount.ACT_ACT_ISDA, DayCount.ACT_365L}
)


def _is_end_of_feb(d: pd.Timestamp) -> bool:
    return d.month == 2 and d.day == calendar.monthrange(d.year, 2)[1]


def _thirty_days(start: pd.Timestamp, end: pd.Timestamp, dc: DayCount) -> int:
    y1, m1, d1 = start.year, start.month, start.day
    y2, m2, d2 = end.year, end.month, end.day

    if dc is DayCount.THIRTY_360_ISMA:
        # SIA bond basis, end-of-February rules first
        if _is_end_of_feb(end) and _is_end_of_feb(start):
            d2 = 30
        if _is_end_of_feb(start):
            d1 = 30
        if (d2 > 30 or _is_end_of_feb(end)) and d1 >= 30:
            d2 = 30
        if d1 == 31:
            d1 = 30
    elif dc is DayCount.THIRTY_360:
        # 30/360 US
        if d1 > 30:
            d1 = 30
        if d2 > 30 and d1 >= 30:
            d2 = 30
    elif dc is DayCount.THIRTY_E_360:
        d1 = min(d1, 30)
        d2 = min(d2, 30)
    else:
        # 30E+/360: a 31st end date rolls into the following month
        d1 = min(d1, 30)
        if d2 > 30:
            m2 += 1
            d2 = 1

    return (y2 - y1) * 360 + (m2 - m1) * 30 + (d2 - d1)


def day_diff(start: pd.Timestamp, end: pd.Timestamp, basis: DayCountLike) -> int:
    """
    Number of days between two dates under a day count basis (not annualised).
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)
    dc = DayCount.parse(basis)

    if end < start:
        raise ValueError(f"end < start: {start=} {end=}")

    if dc.is_thirty:
        return _thirty_days(start, end, dc)
    return (end - start).days


def _days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def _reference_months(ref_start: pd.Timestamp, ref_end: pd.Timestamp) -> int:
    months = int(0.5 + (ref_end - ref_start).days / 365.0 * 12.0)
    return max(months, 1)


def _implied_freq(ref_start: pd.Timestamp, ref_end: pd.Timestamp) -> int:
    months = int(0.5 + (ref_end - ref_start).days / 365.0 * 12.0)
    if months < 1:
        raise ValueError("Reference period cannot be shorter than half a month.")
    if months > 12:
        raise ValueError("Reference period cannot be longer than 12 months.")
    return 12 // months


def _contains_feb29(start: pd.Timestamp, end: pd.Timestamp) -> bool:
    """True when 29 Feb falls in (start, end]."""
    for year in range(start.year, end.year + 1):
        if calendar.isleap(year):
            feb29 = pd.Timestamp(year=year, month=2, day=29)
            if start < feb29 <= end:
                return True
    return False


def _simple_fraction(
    ref_start: pd.Timestamp,
    ref_end: pd.Timestamp,
    start: pd.Timestamp,
    end: pd.Timestamp,
    dc: DayCount,
    freq: int,
) -> float:
    """Fraction of [start, end) lying inside a single regular reference period."""
    days = (end - start).days

    if dc is DayCount.ACT_360:
        return days / 360.0
    if dc is DayCount.ACT_365F:
        return days / 365.0
    if dc is DayCount.ACT_366:
        return days / 366.0
    if dc.is_thirty:
        return _thirty_days(start, end, dc) / 360.0

    if dc is DayCount.ACT_ACT_BOND:
        if freq <= 0:
            freq = _implied_freq(ref_start, ref_end)
        return days / ((ref_end - ref_start).days * float(freq))

    if dc is DayCount.ACT_365L:
        if freq <= 0:
            freq = _implied_freq(ref_start, ref_end)
        if freq == 1:
            year_days = 366 if _contains_feb29(ref_start, ref_end) else 365
        else:
            year_days = _days_in_year(ref_end.year)
        return days / float(year_days)

    if dc is DayCount.ACT_ACT_EURO:
        year_days = 366 if _contains_feb29(start - pd.Timedelta(days=1), end) else 365
        return days / float(year_days)

    # ACT/ACT ISDA: split at calendar year boundaries
    if start.year == end.year:
        return days / float(_days_in_year(start.year))
    first = (pd.Timestamp(year=start.year + 1, month=1, day=1) - start).days / float(_days_in_year(start.year))
    last = (end - pd.Timestamp(year=end.year, month=1, day=1)).days / float(_days_in_year(end.year))
    return first + (end.year - start.year - 1) + last


def period_fraction(
    ref_start: pd.Timestamp,
    ref_end: pd.Timestamp,
    start: pd.Timestamp,
    end: pd.Timestamp,
    basis: DayCountLike,
    freq: int = 0,
) -> float:
    """
    Accrual fraction of [start, end) measured against the regular reference
    period [ref_start, ref_end).

    For the reference-period bases (ACT/ACT BOND, ACT/ACT EURO, ACT/ACT ISDA,
    ACT/365L) an accrual that extends before ref_start or after ref_end is
    split into regular sub-periods stepping by the reference period length,
    which is how long first and long last coupons are measured. Other bases
    ignore the reference period.

    freq=0 implies the frequency from the reference period length.
    """
    ref_start = pd.Timestamp(ref_start)
    ref_end = pd.Timestamp(ref_end)
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)
    dc = DayCount.parse(basis)

    if end < start:
        raise ValueError(f"end < start: {start=} {end=}")
    if end == start:
        return 0.0

    if not dc.uses_reference_period:
        return _simple_fraction(ref_start, ref_end, start, end, dc, freq)

    if ref_end <= ref_start:
        raise ValueError(f"Invalid reference period: {ref_start=} {ref_end=}")

    months = _reference_months(ref_start, ref_end)
    total = 0.0

    k = 0
    p_end = ref_start
    while start < p_end:
        k += 1
        p_start = ref_start - pd.DateOffset(months=k * months)
        s, e = max(start, p_start), min(end, p_end)
        if s < e:
            total += _simple_fraction(p_start, p_end, s, e, dc, freq)
        p_end = p_start

    k = 0
    p_start = ref_end
    while end > p_start:
        k += 1
        p_end = ref_end + pd.DateOffset(months=k * months)
        s, e = max(start, p_start), min(end, p_end)
        if s < e:
            total += _simple_fraction(p_start, p_end, s, e, dc, freq)
        p_start = p_end

    s, e = max(start, ref_start), min(end, ref_end)
    if s < e:
        total += _simple_fraction(ref_start, ref_end, s, e, dc, freq)

    return total


def yearfrac(start: pd.Timestamp, end: pd.Timestamp, convention: DayCountLike) -> float:
    """
    Year fraction between two dates under a day count convention.

    ACT/ACT BOND and ACT/365L have no natural reference period here; they are
    measured against annual reference periods anchored on `end`.
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)
    dc = DayCount.parse(convention)

    if end < start:
        raise ValueError(f"end < start: {start=} {end=}")
    if end == start:
        return 0.0

    if dc in (DayCount.ACT_ACT_BOND, DayCount.ACT_365L):
        return period_fraction(end - pd.DateOffset(years=1), end, start, end, dc, 1)

    return _simple_fraction(start, end, start, end, dc, 0)
