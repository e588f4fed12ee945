from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import cached_property, lru_cache
from typing import Optional, Union

import pandas as pd
from pandas.tseries.holiday import (
    MO,
    AbstractHolidayCalendar,
    EasterMonday,
    GoodFriday,
    Holiday,
    USFederalHolidayCalendar,
    next_monday,
    next_monday_or_tuesday,
)
from pandas.tseries.offsets import CustomBusinessDay, DateOffset


class BusinessDayConvention(str, Enum):
    NONE = "NONE"
    FOLLOWING = "F"
    MODIFIED_FOLLOWING = "MF"
    PRECEDING = "P"
    MODIFIED_PRECEDING = "MP"

    @classmethod
    def parse(cls, value: Union[str, "BusinessDayConvention"]) -> "BusinessDayConvention":
        if isinstance(value, cls):
            return value
        key = str(value).upper().replace(" ", "").replace("_", "")
        aliases = {
            "UNADJUSTED": cls.NONE,
            "FOLLOWING": cls.FOLLOWING,
            "MODIFIEDFOLLOWING": cls.MODIFIED_FOLLOWING,
            "PRECEDING": cls.PRECEDING,
            "MODIFIEDPRECEDING": cls.MODIFIED_PRECEDING,
        }
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unsupported business day convention: {value}") from None


class UKBankHolidayCalendar(AbstractHolidayCalendar):
    """England & Wales bank holidays (London settlement, LNB)."""
    rules = [
        Holiday("New Year's Day", month=1, day=1, observance=next_monday),
        GoodFriday,
        EasterMonday,
        Holiday("Early May Bank Holiday", month=5, day=1, offset=DateOffset(weekday=MO(1))),
        Holiday("Spring Bank Holiday", month=5, day=31, offset=DateOffset(weekday=MO(-1))),
        Holiday("Summer Bank Holiday", month=8, day=31, offset=DateOffset(weekday=MO(-1))),
        Holiday("Christmas Day", month=12, day=25, observance=next_monday),
        Holiday("Boxing Day", month=12, day=26, observance=next_monday_or_tuesday),
    ]


class TargetHolidayCalendar(AbstractHolidayCalendar):
    """TARGET2 closing days (EUR settlement, TGT)."""
    rules = [
        Holiday("New Year's Day", month=1, day=1),
        GoodFriday,
        EasterMonday,
        Holiday("Labour Day", month=5, day=1),
        Holiday("Christmas Day", month=12, day=25),
        Holiday("St. Stephen's Day", month=12, day=26),
    ]


_HOLIDAY_CALENDARS = {
    "NONE": None,
    "NYB": USFederalHolidayCalendar,
    "LNB": UKBankHolidayCalendar,
    "TGT": TargetHolidayCalendar,
}


@dataclass(frozen=True)
class BusinessCalendar:
    """
    Weekend + holiday calendar backed by pandas CustomBusinessDay.
    Immutable and safe to share between pricers.
    """
    name: str
    holidays: Optional[AbstractHolidayCalendar] = None

    @cached_property
    def offset(self) -> CustomBusinessDay:
        if self.holidays is None:
            return CustomBusinessDay()
        return CustomBusinessDay(calendar=self.holidays)

    def is_business_day(self, date: pd.Timestamp) -> bool:
        return bool(self.offset.is_on_offset(pd.Timestamp(date).normalize()))

    def roll(self, date: pd.Timestamp, convention: Union[str, BusinessDayConvention]) -> pd.Timestamp:
        d = pd.Timestamp(date).normalize()
        conv = BusinessDayConvention.parse(convention)

        if conv is BusinessDayConvention.NONE or self.is_business_day(d):
            return d

        if conv in (BusinessDayConvention.FOLLOWING, BusinessDayConvention.MODIFIED_FOLLOWING):
            rolled = self.offset.rollforward(d)
            if conv is BusinessDayConvention.MODIFIED_FOLLOWING and rolled.month != d.month:
                rolled = self.offset.rollback(d)
            return pd.Timestamp(rolled)

        rolled = self.offset.rollback(d)
        if conv is BusinessDayConvention.MODIFIED_PRECEDING and rolled.month != d.month:
            rolled = self.offset.rollforward(d)
        return pd.Timestamp(rolled)

    def add_business_days(self, date: pd.Timestamp, n: int) -> pd.Timestamp:
        """Step n business days (n < 0 steps backward). n == 0 returns the date unchanged."""
        d = pd.Timestamp(date).normalize()
        if n == 0:
            return d
        return pd.Timestamp(d + int(n) * self.offset)


@lru_cache(maxsize=None)
def get_calendar(name: str = "NONE") -> BusinessCalendar:
    key = str(name).upper()
    if key not in _HOLIDAY_CALENDARS:
        raise ValueError(f"Unknown calendar: {name}")
    factory = _HOLIDAY_CALENDARS[key]
    return BusinessCalendar(key, factory() if factory is not None else None)


CalendarLike = Union[str, BusinessCalendar]


def as_calendar(calendar: CalendarLike) -> BusinessCalendar:
    if isinstance(calendar, BusinessCalendar):
        return calendar
    return get_calendar(calendar)


def roll(
    date: pd.Timestamp,
    convention: Union[str, BusinessDayConvention],
    calendar: CalendarLike = "NONE",
) -> pd.Timestamp:
    """Roll a date onto a business day of `calendar` under `convention`."""
    return as_calendar(calendar).roll(date, convention)


def add_business_days(date: pd.Timestamp, n: int, calendar: CalendarLike = "NONE") -> pd.Timestamp:
    return as_calendar(calendar).add_business_days(date, n)


def is_business_day(date: pd.Timestamp, calendar: CalendarLike = "NONE") -> bool:
    return as_calendar(calendar).is_business_day(date)
