import pandas as pd
import pytest

from bond_engine.config import PricerConfig
from bond_engine.curves import SurvivalCurve, flat_curve
from bond_engine.errors import QuoteConventionError, SolverError
from bond_engine.pricer import BondPricer
from bond_engine.quotes import CONVENTIONS, QuotingConvention
from bond_engine.terms import BondTerms, FloatingTerms, RateIndex

QC = QuotingConvention
RTOL = 1e-6


def ts(s):
    return pd.Timestamp(s)


@pytest.fixture(scope="module")
def as_of():
    return ts("2008-01-11")


@pytest.fixture(scope="module")
def settle():
    return ts("2008-01-16")


@pytest.fixture(scope="module")
def curve(as_of):
    return flat_curve(as_of, 0.04)


@pytest.fixture(scope="module")
def survival(as_of):
    return SurvivalCurve.from_cds_spread(as_of, 0.02, recovery=0.4)


@pytest.fixture(scope="module")
def gm():
    return BondTerms(
        bond_id="GM_6.75_2028",
        effective="1998-04-21",
        maturity="2028-05-01",
        coupon=0.0675,
        freq=2,
        day_count="30/360",
        calendar="NYB",
        roll="F",
    )


@pytest.fixture(scope="module")
def gm_pricer(gm, as_of, settle, curve, survival):
    return BondPricer(
        gm,
        as_of=as_of,
        settle=settle,
        quote=1.000083,
        convention=QC.FLAT_PRICE,
        discount_curve=curve,
        survival_curve=survival,
        forward_settle=ts("2008-06-16"),
    )


@pytest.fixture(scope="module")
def frn():
    return BondTerms(
        bond_id="FRN_L+100_2012",
        effective="2007-03-20",
        maturity="2012-03-20",
        coupon=0.0,
        freq=4,
        day_count="ACT/360",
        floating=FloatingTerms(0.01, RateIndex("USD-LIBOR-3M", day_count="ACT/360")),
    )


def assert_round_trip(pricer, convention):
    value = pricer.quote_as(convention)
    again = pricer.replace(quote=value, convention=convention)
    a, b = pricer.full_price(), again.full_price()
    assert abs(a - b) <= RTOL * abs(a), f"{convention.value} round trip: {a} -> {value} -> {b}"
    return value


def test_every_convention_has_both_directions():
    assert set(CONVENTIONS) == set(QuotingConvention)
    for fns in CONVENTIONS.values():
        assert callable(fns.to_full_price) and callable(fns.from_full_price)


def test_parse():
    assert QC.parse("FlatPrice") is QC.FLAT_PRICE
    assert QC.parse("flat_price") is QC.FLAT_PRICE
    assert QC.parse("ASW_Par") is QC.ASW_PAR
    assert QC.parse("zspread") is QC.ZSPREAD
    with pytest.raises(ValueError):
        QC.parse("OAS")


@pytest.mark.parametrize(
    "convention",
    [QC.FULL_PRICE, QC.YIELD, QC.ZSPREAD, QC.ASW_PAR, QC.ASW_MKT, QC.FORWARD_FLAT_PRICE],
)
def test_fixed_rate_round_trips(gm_pricer, convention):
    assert_round_trip(gm_pricer, convention)


def test_round_trip_through_every_convention_in_turn(gm_pricer):
    pricer = gm_pricer
    for convention in (QC.YIELD, QC.ZSPREAD, QC.ASW_PAR, QC.FORWARD_FLAT_PRICE, QC.FLAT_PRICE):
        pricer = pricer.replace(quote=pricer.quote_as(convention), convention=convention)
    assert abs(pricer.quote - 1.000083) < 1e-6, "chained conversions return to the original flat price"


def test_flat_and_full_identity(gm_pricer):
    assert abs(gm_pricer.full_price() - gm_pricer.flat_price() - gm_pricer.accrued_interest()) < 1e-15
    assert gm_pricer.quote_as(QC.FLAT_PRICE) == gm_pricer.flat_price()


def test_yield_price_monotone(gm_pricer):
    y = gm_pricer.yield_to_maturity()
    higher = gm_pricer.replace(quote=y + 0.01, convention=QC.YIELD)
    assert higher.full_price() < gm_pricer.full_price(), "price falls as yield rises"


def test_distressed_price_needs_a_wider_bracket(gm_pricer):
    distressed = gm_pricer.replace(quote=0.08)
    y = assert_round_trip(distressed, QC.YIELD)
    assert y > gm_pricer.config.yield_bracket[1], "solved yield lies outside the initial bracket"
    z = assert_round_trip(distressed, QC.ZSPREAD)
    assert z > gm_pricer.config.spread_bracket[1]


def test_negative_yield_round_trip(gm_pricer):
    rich = gm_pricer.replace(quote=-0.005, convention=QC.YIELD)
    assert rich.full_price() > 2.0
    assert abs(rich.yield_to_maturity() + 0.005) < 1e-15
    back = rich.replace(quote=rich.flat_price(), convention=QC.FLAT_PRICE)
    assert abs(back.yield_to_maturity() + 0.005) < 1e-9


def test_unreachable_price_raises(gm_pricer):
    bad = gm_pricer.replace(quote=-0.5, convention=QC.FULL_PRICE, config=PricerConfig(max_bracket_expansions=5))
    with pytest.raises(SolverError):
        bad.yield_to_maturity()


def test_asw_relationship(gm_pricer):
    par = gm_pricer.asset_swap_spread()
    mkt = gm_pricer.asset_swap_spread(market=True)
    assert abs(mkt - par / gm_pricer.full_price()) < 1e-12, "market ASW rescales par ASW by the full price"


def test_floater_discount_margin_round_trip(frn, settle, curve):
    pricer = BondPricer(
        frn,
        as_of=settle,
        settle=settle,
        quote=0.995,
        convention=QC.FLAT_PRICE,
        discount_curve=curve,
        current_reset=0.05,
    )
    dm = assert_round_trip(pricer, QC.DISCOUNT_MARGIN)
    assert dm > 0.01, "a floater below par has a margin above its quoted spread"
    assert_round_trip(pricer, QC.ZSPREAD)


def test_floater_at_quoted_margin_prices_to_par_at_reset(frn, settle, curve):
    pricer = BondPricer(
        frn,
        as_of=settle,
        settle=settle,
        quote=0.01,
        convention=QC.DISCOUNT_MARGIN,
        reference_curve=curve,
        current_reset=0.05,
    )
    c1 = 0.06 * 91 / 360.0
    expected = (1.0 + c1) / (1.0 + 0.06 * 64 / 360.0)
    assert abs(pricer.full_price() - expected) < 1e-12


def test_zero_coupon_discount_rate(as_of, curve):
    bill = BondTerms(
        bond_id="BILL_2008_07",
        effective="2008-01-03",
        maturity="2008-07-03",
        coupon=0.0,
        freq=0,
        day_count="ACT/360",
    )
    settle = ts("2008-01-16")
    pricer = BondPricer(bill, as_of=as_of, settle=settle, quote=0.03, convention=QC.DISCOUNT_RATE, discount_curve=curve)
    assert abs(pricer.full_price() - (1.0 - 0.03 * 169 / 360.0)) < 1e-15
    assert pricer.accrued_interest() == 0.0
    assert_round_trip(pricer, QC.YIELD)
    assert_round_trip(pricer, QC.ZSPREAD)


def test_inapplicable_conventions_raise(gm_pricer, frn, settle, curve):
    with pytest.raises(QuoteConventionError):
        gm_pricer.discount_margin()
    with pytest.raises(QuoteConventionError):
        gm_pricer.discount_rate()

    floater = BondPricer(frn, as_of=settle, settle=settle, quote=1.0, discount_curve=curve, current_reset=0.05)
    with pytest.raises(QuoteConventionError):
        floater.asset_swap_spread()


def test_forward_price_needs_forward_settle(gm, as_of, settle, curve):
    spot = BondPricer(gm, as_of=as_of, settle=settle, quote=1.0, discount_curve=curve)
    with pytest.raises(ValueError):
        spot.quote_as(QC.FORWARD_FLAT_PRICE)
