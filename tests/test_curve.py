import numpy as np
import pandas as pd
import pytest

from bond_engine.curves import SurvivalCurve, ZeroCurve, flat_curve, forward_rate
from bond_engine.errors import CurveError


@pytest.fixture(scope="module")
def val_date():
    return pd.Timestamp("2008-01-14")


@pytest.fixture(scope="module")
def curve(val_date):
    dates = [val_date + pd.DateOffset(months=m) for m in (3, 6, 12, 24, 60, 120, 240, 360)]
    zeros = [0.0310, 0.0315, 0.0320, 0.0335, 0.0370, 0.0420, 0.0470, 0.0480]
    return ZeroCurve.from_zero_rates(val_date, dates, zeros)


def test_curve_knots_increasing(curve):
    knot_dates = pd.to_datetime(curve.knot_dates)
    assert knot_dates.is_monotonic_increasing, "Knot dates must be strictly increasing"


def test_curve_discount_factors_positive_and_monotone(curve):
    dfs = np.exp(curve.knot_log_dfs)
    assert np.all(dfs > 0.0), "All discount factors must be positive"
    assert np.all(np.diff(dfs) <= 1e-10), "Discount factors should be non-increasing across knots"


def test_zero_rates_round_trip_at_knots(curve):
    knots = pd.to_datetime(curve.knot_dates)
    zeros = curve.zero_rate_cc(knots)
    assert abs(zeros[0] - 0.0310) < 1e-12
    assert abs(zeros[-1] - 0.0480) < 1e-12


def test_df_short_end_extrapolation_between_val_and_first_knot(curve, val_date):
    first_knot = pd.Timestamp(pd.to_datetime(curve.knot_dates[0]))
    t = val_date + pd.Timedelta(days=1)

    df_t = curve.df([t])[0]
    df_first = curve.df([first_knot])[0]

    assert 0.999 < df_t <= 1.0, "Very short-end DF should be close to 1"
    assert df_t >= df_first - 1e-12, "Earlier date should have DF >= DF(first knot)"
    assert curve.discount_factor(val_date) == 1.0


def test_df_raises_on_long_end_extrapolation(curve):
    last_knot = pd.Timestamp(pd.to_datetime(curve.knot_dates[-1]))
    with pytest.raises(ValueError):
        _ = curve.df([last_knot + pd.DateOffset(days=1)])


def test_df_raises_before_valuation_date(curve, val_date):
    with pytest.raises(ValueError):
        curve.df([val_date - pd.Timedelta(days=1)])


def test_invalid_knots_rejected(val_date):
    with pytest.raises(CurveError):
        ZeroCurve.from_zero_rates(val_date, [val_date], [0.03])
    with pytest.raises(CurveError):
        ZeroCurve.from_zero_rates(
            val_date,
            [val_date + pd.DateOffset(years=2), val_date + pd.DateOffset(years=1)],
            [0.03, 0.03],
        )


def test_flat_curve_and_parallel_shift(val_date):
    flat = flat_curve(val_date, 0.04)
    t = val_date + pd.Timedelta(days=730)
    assert abs(flat.discount_factor(t) - np.exp(-0.04 * 2.0)) < 1e-12

    before = flat.discount_factor(t)
    up = flat.shifted(25.0)
    assert abs(up.discount_factor(t) - np.exp(-0.0425 * 2.0)) < 1e-12
    assert flat.discount_factor(t) == before, "shifting returns a new curve and leaves the original alone"


def test_shift_rejected_when_discount_factors_break(curve):
    with pytest.raises(CurveError):
        curve.shifted(1e7)
    with pytest.raises(CurveError):
        curve.shifted(-1e7)


def test_forward_rate_matches_discount_factors(curve, val_date):
    start = val_date + pd.DateOffset(years=1)
    end = val_date + pd.DateOffset(years=2)
    fwd = forward_rate(curve, start, end, "ACT/360")
    tau = (end - start).days / 360.0
    assert abs((1.0 + fwd * tau) * curve.forward_df(start, end) - 1.0) < 1e-12


def test_survival_from_cds_spread(val_date):
    surv = SurvivalCurve.from_cds_spread(val_date, 0.02, recovery=0.4)
    hazard = 0.02 / 0.6
    one_year = val_date + pd.Timedelta(days=365)
    assert abs(surv.survival_prob(one_year) - np.exp(-hazard)) < 1e-12
    assert surv.survival_prob(val_date) == 1.0
    p = surv.default_prob(one_year, val_date + pd.Timedelta(days=730))
    assert abs(p - (1.0 - np.exp(-hazard))) < 1e-12


def test_survival_bumps(val_date):
    surv = SurvivalCurve.from_cds_spread(val_date, 0.02, recovery=0.4)
    up = surv.bumped(5.0)
    assert abs(up.hazards[0] - 0.0205 / 0.6) < 1e-15
    with pytest.raises(CurveError):
        surv.bumped(-500.0)
    with pytest.raises(CurveError):
        SurvivalCurve.from_cds_spread(val_date, 0.02, recovery=1.0)


def test_survival_implied_spread(val_date):
    flat = SurvivalCurve.from_cds_spread(val_date, 0.02, recovery=0.4)
    assert abs(flat.implied_spread(val_date + pd.DateOffset(years=7)) - 0.02) < 1e-14
    assert abs(flat.implied_spread(val_date) - 0.02) < 1e-14

    one, two = val_date + pd.Timedelta(days=365), val_date + pd.Timedelta(days=730)
    stepped = SurvivalCurve(val_date, pd.to_datetime([one, two]).values, np.array([0.01, 0.03]), recovery=0.4)
    assert abs(stepped.implied_spread(two) - 0.6 * 0.02) < 1e-14, "average hazard over two years"
