from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .cashflows import Cashflow, CashflowStream, notional_factor
from .config import PricerConfig
from .curves import SurvivalCurve, ZeroCurve, forward_rate
from .daycount import DayCount, yearfrac
from .errors import SolverError
from .exdiv import SettlementWindow, is_ex_div, settlement_window
from .quotes import QuotingConvention, from_full_price, to_full_price
from .risk import rate_bump, spread_bump, yield_risk, zspread_bump
from .schedule import Schedule
from .solver import solve
from .terms import BondTerms
from .yields import YieldBasis, period_exponents, time_basis, yield_basis

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class BondPricer:
    """
    Prices one bond position from a market quote.

    The pricer is immutable: every derived value (schedule, cashflows, full
    price, solved yield and spreads) is computed on first use and memoised
    on the instance. Use replace(**changes) to reprice with different
    inputs; it returns a fresh pricer with empty caches.

    Prices are per unit of outstanding notional (1.0 == 100%). Money
    measures (pv, pv01, rate01, spread01 ...) scale by the effective
    notional, i.e. notional x outstanding factor at settle.
    """
    terms: BondTerms
    as_of: pd.Timestamp
    settle: pd.Timestamp
    quote: float
    convention: QuotingConvention = QuotingConvention.FLAT_PRICE
    notional: float = 1.0
    discount_curve: Optional[ZeroCurve] = None
    survival_curve: Optional[SurvivalCurve] = None
    reference_curve: Optional[ZeroCurve] = None
    repo_curve: Optional[ZeroCurve] = None
    current_reset: Optional[float] = None
    trade_settle: Optional[pd.Timestamp] = None
    forward_settle: Optional[pd.Timestamp] = None
    cum_div: bool = False
    config: PricerConfig = field(default_factory=PricerConfig)

    def __post_init__(self):
        set_ = object.__setattr__
        set_(self, "as_of", pd.Timestamp(self.as_of))
        set_(self, "settle", pd.Timestamp(self.settle))
        set_(self, "quote", float(self.quote))
        set_(self, "convention", QuotingConvention.parse(self.convention))
        if self.trade_settle is not None:
            set_(self, "trade_settle", pd.Timestamp(self.trade_settle))
        if self.forward_settle is not None:
            set_(self, "forward_settle", pd.Timestamp(self.forward_settle))

        if self.settle < self.as_of:
            raise ValueError(f"Settle {self.settle.date()} before as-of date {self.as_of.date()}.")
        if self.trade_settle is not None and self.trade_settle < self.as_of:
            raise ValueError(f"Trade settle {self.trade_settle.date()} before as-of date {self.as_of.date()}.")
        if self.forward_settle is not None and self.forward_settle < self.settle:
            raise ValueError(f"Forward settle {self.forward_settle.date()} before settle {self.settle.date()}.")
        if self.notional <= 0:
            raise ValueError("Notional must be positive.")
        if not np.isfinite(self.quote):
            raise ValueError(f"Quote must be finite, got {self.quote}.")

    def replace(self, **changes) -> "BondPricer":
        return replace(self, **changes)

    # ---- structure ----

    @cached_property
    def schedule(self) -> Schedule:
        return Schedule.from_terms(self.terms)

    @property
    def maturity(self) -> pd.Timestamp:
        return self.schedule.maturity

    @property
    def is_active(self) -> bool:
        """
        False once settle reaches maturity or the notional is fully amortized:
        market measures are then defined zeros.
        """
        return self.settle < self.maturity and self.notional_factor > 0.0

    @cached_property
    def window(self) -> SettlementWindow:
        return settlement_window(
            self.schedule,
            self.settle,
            trade_settle=self.trade_settle,
            forward_settle=self.forward_settle,
            cum_div=self.cum_div,
        )

    @cached_property
    def stream(self) -> CashflowStream:
        return CashflowStream(
            self.schedule,
            self.settle,
            as_of=self.as_of,
            window=self.window,
            discount_curve=self.discount_curve,
            survival_curve=self.survival_curve,
            reference_curve=self.reference_curve,
            current_reset=self.current_reset,
        )

    @cached_property
    def _cashflows(self) -> Tuple[Cashflow, ...]:
        return tuple(self.stream)

    @cached_property
    def notional_factor(self) -> float:
        return notional_factor(self.terms, self.settle)

    @property
    def effective_notional(self) -> float:
        return self.notional * self.notional_factor

    @cached_property
    def yield_basis(self) -> YieldBasis:
        return yield_basis(
            self.schedule,
            self._cashflows,
            self.settle,
            self.terms.accrual_basis,
            money_market_final_period=self.config.money_market_final_period,
            notional_factor=self.notional_factor,
        )

    def require_discount_curve(self) -> ZeroCurve:
        if self.discount_curve is None:
            raise ValueError(f"{self.terms.bond_id}: this measure requires a discount curve.")
        return self.discount_curve

    # ---- prices ----

    @cached_property
    def _full_price(self) -> float:
        if self.settle > self.maturity:
            logger.warning("%s: settle %s after maturity, full price is zero", self.terms.bond_id, self.settle.date())
            return 0.0
        if self.settle == self.maturity:
            logger.warning("%s: settle on maturity, full price is par", self.terms.bond_id)
            return 1.0
        if self.notional_factor <= 0.0:
            logger.warning("%s: notional fully amortized by %s, full price is zero", self.terms.bond_id, self.settle.date())
            return 0.0
        return self.config.round_price(to_full_price(self, self.convention, self.quote))

    def full_price(self) -> float:
        return self._full_price

    def flat_price(self) -> float:
        return self._full_price - self.accrued_interest()

    def _accrual_factor(self, date: pd.Timestamp) -> float:
        """
        Signed accrued fraction at date per unit of notional outstanding on
        that date: elapsed fraction cum-div, minus the fraction still to run
        when ex-div.
        """
        date = pd.Timestamp(date)
        if date <= self.terms.effective or date >= self.maturity:
            return 0.0
        period = self.schedule.period_at(date)
        if period is None or period.is_degenerate:
            return 0.0

        basis = self.terms.accrual_basis
        nf = notional_factor(self.terms, date)
        scale = self.stream.economics(period).notional / nf if nf > 0 else 0.0
        if is_ex_div(self.schedule, date, self.cum_div):
            return -scale * self.schedule.fraction_to_next(date, basis)
        return scale * self.schedule.accrual_fraction(date, basis)

    def accrued_at(self, date: pd.Timestamp) -> float:
        date = pd.Timestamp(date)
        factor = self._accrual_factor(date)
        if factor == 0.0:
            return 0.0
        period = self.schedule.period_at(date)
        return self.stream.economics(period).coupon_rate * factor

    def accrued_interest(self) -> float:
        return self.accrued_at(self.settle)

    def accrual_days(self) -> int:
        if not self.is_active or self.settle <= self.terms.effective:
            return 0
        basis = self.terms.accrual_basis
        if self.window.ex_div:
            return -self.schedule.days_to_next(self.settle, basis)
        return self.schedule.accrual_days(self.settle, basis)

    # ---- model (curve) pricing ----

    def model_price(
        self,
        curve: ZeroCurve,
        survival: Optional[SurvivalCurve] = None,
        spread: float = 0.0,
    ) -> float:
        """
        Full price per unit from the cashflows discounted on curve (plus a
        continuously-compounded spread), weighted by survival and paying
        recovery on default within each period when a survival curve is given.
        """
        cfs = self._cashflows
        if not cfs or self.notional_factor <= 0.0:
            return 0.0

        settle = self.settle
        pays = [cf.payment for cf in cfs]
        taus = np.array([yearfrac(settle, d, curve.zero_day_count) for d in pays], dtype=float)
        dfs = curve.df(pays) / curve.discount_factor(settle) * np.exp(-spread * taus)

        coupons = np.array([cf.coupon for cf in cfs], dtype=float)
        principals = np.array([cf.principal for cf in cfs], dtype=float)
        accrued = np.array([cf.accrued for cf in cfs], dtype=float)

        if survival is not None:
            s_settle = survival.survival_prob(settle)
            surv = survival.survival(pays) / s_settle
            starts = [max(cf.period.accrual_start, settle) for cf in cfs]
            ends = [cf.period.accrual_end for cf in cfs]
            default_in_period = (survival.survival(starts) - survival.survival(ends)) / s_settle
            notionals = np.array([cf.notional for cf in cfs], dtype=float)
            recovery_pv = float(np.sum(survival.recovery * notionals * default_in_period * dfs))
        else:
            surv = np.ones(len(cfs))
            recovery_pv = 0.0

        if self.config.discounting_accrued:
            coupon_pv = float(np.sum(coupons * dfs * surv))
        else:
            coupon_pv = float(np.sum(accrued + (coupons - accrued) * dfs * surv))

        pv = coupon_pv + float(np.sum(principals * dfs * surv)) + recovery_pv
        return pv / self.notional_factor

    def zspread_price(self, z: float, curve: Optional[ZeroCurve] = None) -> float:
        return self.model_price(curve if curve is not None else self.require_discount_curve(), None, z)

    def risk_free_model_price(self) -> float:
        return self.model_price(self.require_discount_curve())

    def full_model_price(self) -> float:
        if self.settle > self.maturity:
            return 0.0
        if self.settle == self.maturity:
            return 1.0
        if self.notional_factor <= 0.0:
            return 0.0
        return self.model_price(self.require_discount_curve(), self.survival_curve)

    def pv(self) -> float:
        return self.full_model_price() * self.effective_notional

    def annuity(self) -> float:
        """
        Clean value per unit of a 1.0 coupon: discounted accrual fractions of
        the coupons still received, less the accrual fraction at settle.
        """
        curve = self.require_discount_curve()
        cfs = [cf for cf in self._cashflows if cf.payment != self.window.excluded_coupon_date]
        if not cfs or self.notional_factor <= 0.0:
            return 0.0
        pays = [cf.payment for cf in cfs]
        dfs = curve.df(pays) / curve.discount_factor(self.settle)
        weights = np.array([cf.notional * cf.period.fraction for cf in cfs], dtype=float)
        return float(np.sum(weights * dfs)) / self.notional_factor - self._accrual_factor(self.settle)

    def coupon01(self) -> float:
        """Flat price change per unit for a 1bp increase in coupon."""
        if not self.is_active:
            return 0.0
        return self.annuity() * 1e-4

    # ---- floater discount margin ----

    @cached_property
    def _dm_rates(self) -> Tuple[float, float]:
        """(current index level, stub rate from settle to the next coupon)."""
        floating = self.terms.floating
        first = self._cashflows[0]
        index_rate = self.current_reset if self.current_reset is not None else first.coupon_rate - floating.spread

        stub = index_rate
        if self.discount_curve is not None:
            stub = forward_rate(self.discount_curve, self.settle, first.period.accrual_end, floating.index.day_count)
        return index_rate, stub

    def _dm_periods(self):
        dc = self.terms.floating.index.day_count
        index_rate, stub = self._dm_rates
        for k, cf in enumerate(self._cashflows):
            p = cf.period
            if k == 0:
                yield cf, stub, yearfrac(self.settle, p.accrual_end, dc), cf.coupon
            else:
                coupon = cf.notional * (index_rate + self.terms.floating.spread) * p.fraction
                yield cf, index_rate, yearfrac(p.accrual_start, p.accrual_end, dc), coupon

    def discount_margin_price(self, dm: float) -> float:
        """
        Full price per unit with every future fixing at the current index
        level and each period discounted at (index + dm), simply compounded.
        """
        if not self._cashflows or self.notional_factor <= 0.0:
            return 0.0
        pv = 0.0
        disc = 1.0
        for cf, rate, tau, coupon in self._dm_periods():
            disc /= 1.0 + (rate + dm) * tau
            pv += (coupon + cf.principal) * disc
        return pv / self.notional_factor

    def discount_margin_floor(self) -> Optional[float]:
        limits = [-rate - 1.0 / tau for _, rate, tau, _ in self._dm_periods() if tau > 0]
        return max(limits) if limits else None

    # ---- forward settlement ----

    def require_forward_settle(self) -> pd.Timestamp:
        if self.forward_settle is None:
            raise ValueError(f"{self.terms.bond_id}: forward price needs a forward settle date.")
        return self.forward_settle

    def _carry(self) -> Tuple[float, float]:
        """(repo discount factor settle -> forward, PV per unit of cashflows paid up to forward)."""
        fwd = self.require_forward_settle()
        curve = self.repo_curve if self.repo_curve is not None else self.require_discount_curve()
        df_settle = curve.discount_factor(self.settle)

        interim = [cf for cf in self._cashflows if cf.payment <= fwd]
        pv_interim = 0.0
        if interim:
            dfs = curve.df([cf.payment for cf in interim]) / df_settle
            pv_interim = float(np.sum(np.array([cf.amount for cf in interim]) * dfs)) / self.notional_factor

        return curve.discount_factor(fwd) / df_settle, pv_interim

    def spot_full_to_forward(self, full: float) -> float:
        fwd = self.require_forward_settle()
        df_fwd, pv_interim = self._carry()
        nf_fwd = notional_factor(self.terms, fwd)
        if nf_fwd <= 0:
            return 0.0
        return (full - pv_interim) / df_fwd * self.notional_factor / nf_fwd

    def forward_full_to_spot(self, fwd_full: float) -> float:
        fwd = self.require_forward_settle()
        df_fwd, pv_interim = self._carry()
        nf_fwd = notional_factor(self.terms, fwd)
        return fwd_full * df_fwd * nf_fwd / self.notional_factor + pv_interim

    def fwd_full_price(self) -> float:
        if not self.is_active:
            return 0.0
        return self.spot_full_to_forward(self._full_price)

    def fwd_flat_price(self) -> float:
        if not self.is_active:
            return 0.0
        return self.fwd_full_price() - self.accrued_at(self.require_forward_settle())

    def discount_rate_tau(self) -> float:
        return yearfrac(self.settle, self.maturity, self.terms.coupon_basis)

    # ---- quotes ----

    def quote_as(self, convention: QuotingConvention) -> float:
        """The market quote under another convention, consistent with the full price."""
        convention = QuotingConvention.parse(convention)
        if convention is QuotingConvention.FULL_PRICE:
            return self.full_price()
        if convention is QuotingConvention.FLAT_PRICE:
            return self.flat_price()
        if not self.is_active or not self._cashflows:
            return 0.0
        if convention is self.convention and self.config.price_rounding_digits is None:
            return self.quote
        return from_full_price(self, convention, self._full_price)

    @cached_property
    def _ytm(self) -> float:
        return self.quote_as(QuotingConvention.YIELD)

    def yield_to_maturity(self) -> float:
        return self._ytm

    def discount_margin(self) -> float:
        return self.quote_as(QuotingConvention.DISCOUNT_MARGIN)

    @cached_property
    def _zspread(self) -> float:
        return self.quote_as(QuotingConvention.ZSPREAD)

    def implied_zspread(self) -> float:
        return self._zspread

    def asset_swap_spread(self, market: bool = False) -> float:
        return self.quote_as(QuotingConvention.ASW_MKT if market else QuotingConvention.ASW_PAR)

    def discount_rate(self) -> float:
        return self.quote_as(QuotingConvention.DISCOUNT_RATE)

    @cached_property
    def _rspread(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        curve = self.require_discount_curve()
        target = self._full_price
        return solve(
            lambda r: self.model_price(curve, self.survival_curve, r) - target,
            self.config,
            self.config.spread_bracket,
            what="R-spread",
        )

    def implied_rspread(self) -> float:
        """Discount spread on top of the credit model that reprices the market full price."""
        return self._rspread

    @cached_property
    def _cds_level(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        curve = self.require_discount_curve()
        recovery = 0.4
        if self.survival_curve is not None and self.survival_curve.recovery > 0.0:
            recovery = self.survival_curve.recovery

        target = self._full_price
        if self.model_price(curve) < target:
            raise SolverError(
                f"{self.terms.bond_id}: full price {target:.6f} is above the risk-free model value, "
                f"no CDS level reprices it."
            )
        return solve(
            lambda s: self.model_price(curve, SurvivalCurve.from_cds_spread(self.as_of, s, recovery)) - target,
            self.config,
            (0.0, self.config.spread_bracket[1]),
            what="implied CDS level",
        )

    def implied_cds_level(self) -> float:
        """
        Flat CDS spread whose survival curve (recovery of the pricer's survival
        curve, 0.4 without one) makes the credit model reprice the market full
        price.
        """
        return self._cds_level

    def implied_cds_spread(self) -> float:
        """CDS level of the survival curve to maturity less the bond-implied CDS level."""
        if not self.is_active or not self._cashflows:
            return 0.0
        if self.survival_curve is None:
            raise ValueError(f"{self.terms.bond_id}: the implied CDS spread needs a survival curve.")
        return self.survival_curve.implied_spread(self.maturity) - self._cds_level

    # ---- yield risk ----

    @cached_property
    def _yield_risk(self):
        return yield_risk(self)

    def pv01(self) -> float:
        return self._yield_risk.pv01

    def duration(self) -> float:
        return self._yield_risk.duration

    def mod_duration(self) -> float:
        return self._yield_risk.mod_duration

    def convexity(self) -> float:
        return self._yield_risk.convexity

    # ---- curve risk ----

    @cached_property
    def _rate_bump(self):
        return rate_bump(self, self.config.rate_bump_bp)

    def rate01(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        return -self._rate_bump.delta_per_bp * self.effective_notional

    def rate_duration(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        return 1e4 * self.rate01() / self.effective_notional / self._full_price

    def rate_convexity(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        return self._rate_bump.gamma_per_bp2 * 1e8 / self._full_price

    @cached_property
    def _zspread_bump(self):
        return zspread_bump(self, self.config.zspread_bump_bp)

    def zspread01(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        return -self._zspread_bump.delta_per_bp * self.effective_notional

    def zspread_duration(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        return 1e4 * self.zspread01() / self.effective_notional / self._full_price

    def spread01(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        return spread_bump(self, self.config.spread_bump_bp).delta_per_bp * self.effective_notional

    def spread_duration(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        return -1e4 * self.spread01() / self.effective_notional / self._full_price

    def spread_convexity(self) -> float:
        if not self.is_active or not self._cashflows:
            return 0.0
        bump = spread_bump(self, self.config.spread_convexity_bump_bp)
        return bump.gamma_per_bp2 * 1e8 / self._full_price

    # ---- other measures ----

    def wal(self) -> float:
        if not self.is_active:
            return 0.0
        return sum(
            cf.principal / self.notional_factor * yearfrac(self.settle, cf.payment, DayCount.ACT_365F)
            for cf in self._cashflows
        )

    def irr(self) -> float:
        """Yield on actual payment dates, compounding at the coupon frequency."""
        if not self.is_active or not self._cashflows:
            return 0.0
        basis = self.terms.coupon_basis
        if basis is DayCount.ACT_ACT_BOND:
            basis = DayCount.ACT_365F
        tb = time_basis(self._cashflows, self.settle, basis, self.terms.freq, self.notional_factor)
        target = self._full_price
        return solve(
            lambda y: tb.price(y) - target,
            self.config,
            self.config.yield_bracket,
            floor=-float(tb.freq),
            what="IRR",
        )

    def expected_loss(self) -> float:
        """Undiscounted default loss on the position over the remaining life."""
        if self.survival_curve is None or not self.is_active:
            return 0.0
        return sum(cf.loss for cf in self._cashflows) / self.notional_factor * self.effective_notional

    def yield_to_call(self, call_date: pd.Timestamp, call_price: float = 1.0) -> float:
        """Yield to a redemption at call_price on the last coupon date on or before call_date."""
        if not self.is_active:
            return 0.0
        call_date = pd.Timestamp(call_date)
        cfs = [cf for cf in self._cashflows if cf.period.accrual_end <= call_date]
        if not cfs:
            raise ValueError(f"{self.terms.bond_id}: no coupon date between settle and call date {call_date.date()}.")

        exps = period_exponents(self.schedule, self.settle, self.terms.accrual_basis)
        last = cfs[-1].period
        amortized = sum(a for d, a in self.terms.amortization if last.start < d <= last.end)
        remaining = notional_factor(self.terms, last.end)

        amounts = [cf.amount for cf in cfs[:-1]]
        amounts.append(cfs[-1].coupon + amortized + remaining * call_price)
        basis = YieldBasis(
            amounts=np.array(amounts, dtype=float) / self.notional_factor,
            exponents=np.array([exps[cf.period.index] for cf in cfs], dtype=float),
            freq=self.terms.compounding_freq,
            money_market=self.config.money_market_final_period and len(cfs) == 1,
        )
        target = self._full_price
        return solve(
            lambda y: basis.price(y) - target,
            self.config,
            self.config.yield_bracket,
            floor=-float(basis.freq),
            what="yield to call",
        )

    def yield_to_worst(self) -> float:
        if not self.is_active:
            return 0.0
        first_end = self._cashflows[0].period.accrual_end if self._cashflows else self.maturity
        yields = [self.yield_to_maturity()]
        for d, price in self.terms.call_schedule:
            if self.settle < d < self.maturity and d >= first_end:
                yields.append(self.yield_to_call(d, price))
        return min(yields)

    # ---- schedule information ----

    def previous_coupon_date(self) -> pd.Timestamp:
        return self.schedule.previous_coupon_date(self.settle)

    def next_coupon_date(self) -> Optional[pd.Timestamp]:
        return self.schedule.next_coupon_date(self.settle)

    def remaining_coupons(self) -> int:
        return self.schedule.remaining_coupons(self.settle)

    def current_coupon(self) -> float:
        period = self.schedule.period_at(self.settle)
        if period is None or period.is_degenerate:
            return 0.0
        return self.stream.economics(period).coupon_rate

    def ex_div_date(self) -> Optional[pd.Timestamp]:
        return self.window.ex_div_date

    def is_ex_div(self) -> bool:
        return self.window.ex_div

    def cashflows(self) -> pd.DataFrame:
        return self.stream.to_frame()
