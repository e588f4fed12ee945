from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Tuple

import pandas as pd

from .calendars import BusinessDayConvention, get_calendar
from .daycount import DayCount
from .errors import InvalidTermsError


SUPPORTED_FREQUENCIES = (0, 1, 2, 3, 4, 6, 12)


class BondType(str, Enum):
    US_CORP = "US_CORP"
    UK_GILT = "UK_GILT"
    AUS_GOVT = "AUS_GOVT"
    OTHER = "OTHER"


class CycleRule(str, Enum):
    NONE = "NONE"    # keep the anchor's day of month
    EOM = "EOM"      # month end when the anchor is a month end
    FIRST = "FIRST"  # first of the month


@dataclass(frozen=True)
class ExDivRule:
    """Bond goes ex-dividend `days` before each coupon (business or calendar days)."""
    days: int
    business_days: bool = True

    def __post_init__(self):
        if self.days < 0:
            raise InvalidTermsError("ex-div days must be non-negative")


@dataclass(frozen=True)
class RateIndex:
    """
    Floating rate index definition. `fixings` holds historical resets keyed by
    reset date; forward fixings are projected off a reference curve over
    `tenor_months` from the reset date.
    """
    name: str
    tenor_months: int = 3
    day_count: str = "ACT/360"
    fixings: Mapping[pd.Timestamp, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.tenor_months <= 0:
            raise InvalidTermsError(f"{self.name}: index tenor must be a positive number of months.")

    def fixing(self, date: pd.Timestamp) -> Optional[float]:
        d = pd.Timestamp(date)
        known = [k for k in self.fixings if pd.Timestamp(k) <= d]
        if not known:
            return None
        return float(self.fixings[max(known, key=pd.Timestamp)])


@dataclass(frozen=True)
class FloatingTerms:
    spread: float
    index: RateIndex


@dataclass(frozen=True)
class BondTerms:
    """
    Immutable description of a bond. Validated on construction; anything
    malformed raises InvalidTermsError (a ValueError).

    coupon_schedule: ((date, rate), ...) step-ups, dates strictly increasing
    amortization:    ((date, fraction of original notional), ...)
    call_schedule:   ((date, call price per unit), ...)
    """
    bond_id: str
    effective: pd.Timestamp
    maturity: pd.Timestamp
    coupon: float
    freq: int = 2
    day_count: str = "30/360"
    accrual_day_count: Optional[str] = None
    currency: str = "USD"
    calendar: str = "NONE"
    roll: str = "NONE"
    cycle_rule: CycleRule = CycleRule.NONE
    first_coupon: Optional[pd.Timestamp] = None
    last_coupon: Optional[pd.Timestamp] = None
    coupon_schedule: Tuple[Tuple[pd.Timestamp, float], ...] = ()
    amortization: Tuple[Tuple[pd.Timestamp, float], ...] = ()
    floating: Optional[FloatingTerms] = None
    ex_div_rule: Optional[ExDivRule] = None
    bond_type: BondType = BondType.US_CORP
    payment_lag: int = 0
    period_adjustment: bool = False
    call_schedule: Tuple[Tuple[pd.Timestamp, float], ...] = ()
    redemption: float = 1.0

    def __post_init__(self):
        # normalise date-likes so callers can pass strings
        set_ = object.__setattr__
        set_(self, "effective", pd.Timestamp(self.effective))
        set_(self, "maturity", pd.Timestamp(self.maturity))
        if self.first_coupon is not None:
            set_(self, "first_coupon", pd.Timestamp(self.first_coupon))
        if self.last_coupon is not None:
            set_(self, "last_coupon", pd.Timestamp(self.last_coupon))
        set_(self, "coupon_schedule", tuple((pd.Timestamp(d), float(r)) for d, r in self.coupon_schedule))
        set_(self, "amortization", tuple((pd.Timestamp(d), float(a)) for d, a in self.amortization))
        set_(self, "call_schedule", tuple((pd.Timestamp(d), float(p)) for d, p in self.call_schedule))
        set_(self, "cycle_rule", CycleRule(self.cycle_rule))
        set_(self, "bond_type", BondType(self.bond_type))
        self.validate()

    @property
    def accrual_basis(self) -> DayCount:
        return DayCount.parse(self.accrual_day_count or self.day_count)

    @property
    def coupon_basis(self) -> DayCount:
        return DayCount.parse(self.day_count)

    @property
    def is_floating(self) -> bool:
        return self.floating is not None

    @property
    def is_zero_coupon(self) -> bool:
        return (
            not self.is_floating
            and self.coupon == 0.0
            and all(rate == 0.0 for _, rate in self.coupon_schedule)
        )

    @property
    def months_per_period(self) -> int:
        if self.freq == 0:
            return 12
        return 12 // self.freq

    @property
    def compounding_freq(self) -> int:
        return self.freq if self.freq > 0 else 1

    def validate(self) -> None:
        bid = self.bond_id

        if self.maturity < self.effective:
            raise InvalidTermsError(f"{bid}: maturity before effective date.")
        if self.freq not in SUPPORTED_FREQUENCIES:
            raise InvalidTermsError(f"{bid}: unsupported frequency {self.freq}; expected one of {SUPPORTED_FREQUENCIES}.")
        if not (-0.05 <= self.coupon <= 1.0):
            raise InvalidTermsError(f"{bid}: coupon out of plausible range.")
        if self.payment_lag < 0:
            raise InvalidTermsError(f"{bid}: payment lag must be non-negative.")
        if self.redemption <= 0:
            raise InvalidTermsError(f"{bid}: redemption must be positive.")

        try:
            DayCount.parse(self.day_count)
            DayCount.parse(self.accrual_day_count or self.day_count)
            BusinessDayConvention.parse(self.roll)
            get_calendar(self.calendar)
        except ValueError as e:
            raise InvalidTermsError(f"{bid}: {e}") from e

        if self.first_coupon is not None:
            if not (self.effective < self.first_coupon <= self.maturity):
                raise InvalidTermsError(f"{bid}: first coupon must fall in (effective, maturity].")
        if self.last_coupon is not None:
            if not (self.effective < self.last_coupon <= self.maturity):
                raise InvalidTermsError(f"{bid}: last coupon must fall in (effective, maturity].")
        if self.first_coupon is not None and self.last_coupon is not None:
            if self.last_coupon < self.first_coupon:
                raise InvalidTermsError(f"{bid}: last coupon before first coupon.")

        _check_increasing(bid, "coupon schedule", [d for d, _ in self.coupon_schedule])
        for d, _ in self.coupon_schedule:
            if not (self.effective <= d <= self.maturity):
                raise InvalidTermsError(f"{bid}: coupon schedule date {d.date()} outside [effective, maturity].")

        _check_increasing(bid, "amortization schedule", [d for d, _ in self.amortization])
        total = 0.0
        for d, amount in self.amortization:
            if not (self.effective < d <= self.maturity):
                raise InvalidTermsError(f"{bid}: amortization date {d.date()} outside (effective, maturity].")
            if amount < 0:
                raise InvalidTermsError(f"{bid}: negative amortization amount.")
            total += amount
        if total > 1.0 + 1e-12:
            raise InvalidTermsError(f"{bid}: amortization exceeds notional ({total:.6f} > 1).")

        _check_increasing(bid, "call schedule", [d for d, _ in self.call_schedule])
        for d, price in self.call_schedule:
            if not (self.effective < d <= self.maturity) or price <= 0:
                raise InvalidTermsError(f"{bid}: invalid call schedule entry ({d.date()}, {price}).")

        if self.floating is not None and self.coupon_schedule:
            raise InvalidTermsError(f"{bid}: floating bonds cannot carry a fixed coupon schedule.")


def _check_increasing(bond_id: str, what: str, dates) -> None:
    if any(dates[i] >= dates[i + 1] for i in range(len(dates) - 1)):
        raise InvalidTermsError(f"{bond_id}: non-increasing {what}.")
