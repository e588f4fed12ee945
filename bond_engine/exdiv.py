from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import pandas as pd

from .calendars import get_calendar
from .schedule import Schedule
from .terms import BondTerms, BondType, ExDivRule


# Market defaults when the bond carries no explicit rule
DEFAULT_EX_DIV_RULES = {
    BondType.UK_GILT: (ExDivRule(days=6, business_days=True), "LNB"),
    BondType.AUS_GOVT: (ExDivRule(days=7, business_days=False), None),
}


class TradeSettleTiming(str, Enum):
    BEFORE = "BEFORE"
    ON = "ON"
    AFTER = "AFTER"


def ex_div_date(terms: BondTerms, next_coupon: pd.Timestamp) -> pd.Timestamp:
    """
    First settlement date that no longer receives the coupon paid on
    next_coupon. With no rule this is the coupon date itself.
    """
    next_coupon = pd.Timestamp(next_coupon)

    if terms.ex_div_rule is not None:
        rule, calendar = terms.ex_div_rule, terms.calendar
    elif terms.bond_type in DEFAULT_EX_DIV_RULES:
        rule, calendar = DEFAULT_EX_DIV_RULES[terms.bond_type]
        calendar = calendar or terms.calendar
    else:
        return next_coupon

    if rule.days == 0:
        return next_coupon
    if rule.business_days:
        return get_calendar(calendar).add_business_days(next_coupon, -rule.days)
    return next_coupon - pd.Timedelta(days=rule.days)


def is_ex_div(
    schedule: Schedule,
    settle: pd.Timestamp,
    cum_div: bool = False,
) -> bool:
    """True when settle falls in the ex-dividend window before the next coupon."""
    if cum_div:
        return False
    settle = pd.Timestamp(settle)
    next_coupon = schedule.next_coupon_date(settle)
    if next_coupon is None or settle <= schedule.effective:
        return False
    return ex_div_date(schedule.terms, next_coupon) <= settle


def classify_trade_settle(product_settle: pd.Timestamp, trade_settle: Optional[pd.Timestamp]) -> TradeSettleTiming:
    if trade_settle is None:
        return TradeSettleTiming.ON
    product_settle = pd.Timestamp(product_settle)
    trade_settle = pd.Timestamp(trade_settle)
    if trade_settle < product_settle:
        return TradeSettleTiming.BEFORE
    if trade_settle > product_settle:
        return TradeSettleTiming.AFTER
    return TradeSettleTiming.ON


@dataclass(frozen=True)
class SettlementWindow:
    """
    The dates a pricing request works with.

    settle         product (spot) settlement; accrued interest is measured here
    trade_settle   when the trade actually settles; payments on or before it
                   belong to the seller
    forward_settle forward delivery date for forward prices (optional)

    excluded_coupon_date is the payment date of a coupon the buyer does not
    receive because settle is ex-dividend. cashflow_cutoff drops every
    payment on or before it.
    """
    settle: pd.Timestamp
    trade_settle: pd.Timestamp
    forward_settle: Optional[pd.Timestamp]
    next_coupon: Optional[pd.Timestamp]
    ex_div_date: Optional[pd.Timestamp]
    ex_div: bool
    cum_div: bool
    excluded_coupon_date: Optional[pd.Timestamp]
    cashflow_cutoff: pd.Timestamp

    @property
    def trade_timing(self) -> TradeSettleTiming:
        return classify_trade_settle(self.settle, self.trade_settle)

    @property
    def is_forward_settle(self) -> bool:
        return self.forward_settle is not None and self.forward_settle > self.settle


def settlement_window(
    schedule: Schedule,
    settle: pd.Timestamp,
    trade_settle: Optional[pd.Timestamp] = None,
    forward_settle: Optional[pd.Timestamp] = None,
    cum_div: bool = False,
) -> SettlementWindow:
    settle = pd.Timestamp(settle)
    trade = pd.Timestamp(trade_settle) if trade_settle is not None else settle
    fwd = pd.Timestamp(forward_settle) if forward_settle is not None else None

    period = schedule.period_at(settle)
    next_coupon = None if period is None or period.is_degenerate else period.accrual_end
    xd_date = ex_div_date(schedule.terms, next_coupon) if next_coupon is not None else None
    ex_div = is_ex_div(schedule, settle, cum_div)

    return SettlementWindow(
        settle=settle,
        trade_settle=trade,
        forward_settle=fwd,
        next_coupon=next_coupon,
        ex_div_date=xd_date,
        ex_div=ex_div,
        cum_div=cum_div,
        excluded_coupon_date=period.payment if ex_div else None,
        cashflow_cutoff=max(settle, trade),
    )
