import numpy as np
import pandas as pd
import pytest

from bond_engine.cashflows import CashflowStream, generate_cashflows, notional_factor
from bond_engine.curves import SurvivalCurve, flat_curve, forward_rate
from bond_engine.errors import InvalidTermsError
from bond_engine.exdiv import settlement_window
from bond_engine.schedule import Schedule
from bond_engine.terms import BondTerms, FloatingTerms, RateIndex


def ts(s):
    return pd.Timestamp(s)


@pytest.fixture(scope="module")
def as_of():
    return ts("2008-01-14")


@pytest.fixture(scope="module")
def settle():
    return ts("2008-01-16")


@pytest.fixture(scope="module")
def curve(as_of):
    return flat_curve(as_of, 0.04)


@pytest.fixture(scope="module")
def bullet():
    return BondTerms(bond_id="BULLET_5_2011", effective="2006-05-15", maturity="2011-05-15", coupon=0.05)


@pytest.fixture(scope="module")
def amortizer():
    return BondTerms(
        bond_id="AMORT_5_2011",
        effective="2006-05-15",
        maturity="2011-05-15",
        coupon=0.05,
        amortization=(("2009-05-15", 0.25), ("2010-05-15", 0.25)),
    )


def test_bullet_stream(bullet, settle):
    cfs = generate_cashflows(Schedule.from_terms(bullet), settle)
    assert len(cfs) == 7
    assert cfs[0].payment == ts("2008-05-15")
    assert abs(cfs[0].coupon - 0.025) < 1e-12
    assert all(cf.principal == 0.0 for cf in cfs[:-1])
    assert abs(cfs[-1].principal - 1.0) < 1e-12, "bullet repays all principal at maturity"
    # 2007-11-15 -> 2008-01-16 is 61 days on 30/360
    assert abs(cfs[0].accrued - 0.05 * 61 / 360.0) < 1e-12
    assert all(cf.accrued == 0.0 for cf in cfs[1:])
    assert all(cf.df == 1.0 and cf.survival == 1.0 for cf in cfs), "no curves, no discounting"


def test_amortization_reduces_notional(amortizer):
    sched = Schedule.from_terms(amortizer)
    cfs = generate_cashflows(sched, amortizer.effective)
    assert abs(sum(cf.principal for cf in cfs) - 1.0) < 1e-12, "principal repaid sums to the notional"

    by_date = {cf.payment: cf for cf in cfs}
    assert abs(by_date[ts("2009-05-15")].principal - 0.25) < 1e-12
    assert abs(by_date[ts("2009-11-15")].notional - 0.75) < 1e-12
    assert abs(by_date[ts("2009-11-15")].coupon - 0.75 * 0.025) < 1e-12
    assert abs(by_date[ts("2011-05-15")].principal - 0.5) < 1e-12

    assert notional_factor(amortizer, ts("2009-05-14")) == 1.0
    assert notional_factor(amortizer, ts("2009-05-15")) == 0.75
    assert notional_factor(amortizer, ts("2011-01-01")) == 0.5


def test_step_up_applies_to_the_period_ending_on_its_date(settle):
    terms = BondTerms(
        bond_id="STEP_2011",
        effective="2006-05-15",
        maturity="2011-05-15",
        coupon=0.05,
        coupon_schedule=(("2009-05-15", 0.06),),
    )
    by_date = {cf.payment: cf for cf in generate_cashflows(Schedule.from_terms(terms), settle)}
    assert by_date[ts("2008-11-15")].coupon_rate == 0.05
    assert by_date[ts("2009-05-15")].coupon_rate == 0.06
    assert by_date[ts("2009-11-15")].coupon_rate == 0.06
    assert abs(by_date[ts("2011-05-15")].coupon - 0.03) < 1e-12


def test_step_up_on_a_coupon_date_reprices_that_coupon():
    terms = BondTerms(
        bond_id="STEP_2024",
        effective="2019-07-15",
        maturity="2024-07-15",
        coupon=0.04,
        coupon_schedule=(("2022-01-15", 0.05),),
    )
    schedule = Schedule.from_terms(terms)
    rates = {cf.period.end: cf.coupon_rate for cf in generate_cashflows(schedule, ts("2021-03-01"))}
    assert rates[ts("2021-07-15")] == 0.04
    assert rates[ts("2022-01-15")] == 0.05
    assert rates[ts("2022-07-15")] == 0.05


def test_floater_uses_current_reset_then_projects(as_of, settle, curve):
    terms = BondTerms(
        bond_id="FRN_2010",
        effective="2007-03-20",
        maturity="2010-03-20",
        coupon=0.0,
        freq=4,
        day_count="ACT/360",
        floating=FloatingTerms(0.01, RateIndex("USD-LIBOR-3M")),
    )
    sched = Schedule.from_terms(terms)
    cfs = generate_cashflows(sched, settle, as_of=as_of, reference_curve=curve, current_reset=0.05)

    assert abs(cfs[0].coupon_rate - 0.06) < 1e-12, "current period pays reset + spread"
    assert abs(cfs[0].coupon - 0.06 * 91 / 360.0) < 1e-12
    # a flat 4% cc curve projects a simple ACT/360 forward a little under 4%
    assert all(0.045 < cf.coupon_rate < 0.051 for cf in cfs[1:])

    with pytest.raises(ValueError):
        generate_cashflows(sched, settle, as_of=as_of)


def test_floater_projects_over_the_index_tenor(as_of, settle, curve):
    def frn(tenor_months):
        return BondTerms(
            bond_id=f"FRN_{tenor_months}M",
            effective="2007-03-20",
            maturity="2010-03-20",
            coupon=0.0,
            freq=4,
            day_count="ACT/360",
            floating=FloatingTerms(0.01, RateIndex("USD-LIBOR", tenor_months=tenor_months)),
        )

    three = generate_cashflows(Schedule.from_terms(frn(3)), settle, as_of=as_of, reference_curve=curve)
    six = generate_cashflows(Schedule.from_terms(frn(6)), settle, as_of=as_of, reference_curve=curve)
    for cf3, cf6 in zip(three[1:], six[1:]):
        start = cf6.period.accrual_start
        expected = forward_rate(curve, start, start + pd.DateOffset(months=6), "ACT/360") + 0.01
        assert abs(cf6.coupon_rate - expected) < 1e-12
        assert cf6.coupon_rate > cf3.coupon_rate, "simple forwards grow with tenor on a flat cc curve"

    with pytest.raises(InvalidTermsError):
        RateIndex("USD-LIBOR", tenor_months=0)


def test_floater_historical_fixing_wins_over_projection(as_of, settle):
    index = RateIndex("USD-LIBOR-3M", fixings={ts("2007-12-20"): 0.0485})
    terms = BondTerms(
        bond_id="FRN_FIX",
        effective="2007-03-20",
        maturity="2008-03-20",
        coupon=0.0,
        freq=4,
        day_count="ACT/360",
        floating=FloatingTerms(0.005, index),
    )
    cfs = generate_cashflows(Schedule.from_terms(terms), settle, as_of=as_of)
    assert len(cfs) == 1
    assert abs(cfs[0].coupon_rate - 0.0535) < 1e-12


def test_survival_and_loss(bullet, as_of, settle, curve):
    survival = SurvivalCurve.from_cds_spread(as_of, 0.02, recovery=0.4)
    cfs = generate_cashflows(
        Schedule.from_terms(bullet), settle, as_of=as_of, discount_curve=curve, survival_curve=survival
    )
    surv = np.array([cf.survival for cf in cfs])
    assert np.all(np.diff(surv) < 0), "survival decreases with payment date"
    assert np.all(surv < 1.0)
    assert all(cf.loss > 0.0 for cf in cfs)
    expected = 0.6 * (survival.survival_prob(ts("2010-11-15")) - survival.survival_prob(ts("2011-05-15")))
    assert abs(cfs[-1].loss - expected) < 1e-12
    assert abs(cfs[-1].df - curve.discount_factor(ts("2011-05-15"))) < 1e-15


def test_restart_shares_period_economics(amortizer, settle):
    stream = CashflowStream(Schedule.from_terms(amortizer), settle)
    first = stream.to_list()
    later = stream.restart(ts("2009-06-01"))

    assert later._memo is stream._memo, "restart must reuse memoised per-period economics"
    moved = later.to_list()
    assert moved[0].payment == ts("2009-11-15")
    assert len(moved) == len(first) - 3
    assert moved[0].accrued > 0.0
    assert moved[-1].principal == first[-1].principal


def test_ex_div_window_zeroes_next_coupon():
    terms = BondTerms(
        bond_id="GILT_4.75_2015",
        effective="2005-09-07",
        maturity="2015-09-07",
        coupon=0.0475,
        day_count="ACT/ACT-BOND",
        calendar="LNB",
        bond_type="UK_GILT",
    )
    sched = Schedule.from_terms(terms)
    settle = ts("2008-03-03")
    window = settlement_window(sched, settle)
    assert window.ex_div

    cfs = generate_cashflows(sched, settle, window=window)
    assert cfs[0].payment == ts("2008-03-07")
    assert cfs[0].coupon == 0.0, "ex-div buyer does not receive the next coupon"
    assert cfs[1].coupon > 0.0


def test_trade_settle_cutoff_drops_earlier_payments(bullet, settle):
    sched = Schedule.from_terms(bullet)
    window = settlement_window(sched, settle, trade_settle=ts("2008-05-20"))
    cfs = generate_cashflows(sched, settle, window=window)
    assert cfs[0].payment == ts("2008-11-15"), "coupon paid before trade settlement belongs to the seller"


def test_to_frame(bullet, settle):
    df = CashflowStream(Schedule.from_terms(bullet), settle).to_frame()
    assert len(df) == 7
    assert abs(df["principal"].sum() - 1.0) < 1e-12
    assert "survival" in df.columns and "loss" in df.columns
