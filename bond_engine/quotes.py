"""
Quoting conventions.

Every convention maps a market quote to the bond's full (dirty) price per
unit of outstanding notional and back. The mapping set is closed: each
QuotingConvention member has exactly one (to_full_price, from_full_price)
pair in CONVENTIONS, checked at import.

The functions take a pricing context (a BondPricer) which supplies the
pieces each formula needs: accrued interest, the yield basis, spread-curve
pricing and the risk-free model price.
"""
from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, NamedTuple, Union

from .errors import QuoteConventionError, SolverError
from .solver import solve


class QuotingConvention(str, Enum):
    FLAT_PRICE = "FlatPrice"
    FULL_PRICE = "FullPrice"
    YIELD = "Yield"
    DISCOUNT_MARGIN = "DiscountMargin"
    ZSPREAD = "ZSpread"
    ASW_PAR = "ASW_Par"
    ASW_MKT = "ASW_Mkt"
    FORWARD_FLAT_PRICE = "ForwardFlatPrice"
    DISCOUNT_RATE = "DiscountRate"

    @classmethod
    def parse(cls, value: Union[str, "QuotingConvention"]) -> "QuotingConvention":
        if isinstance(value, cls):
            return value
        key = str(value).replace(" ", "").replace("_", "").upper()
        for member in cls:
            if key in (member.name.replace("_", ""), member.value.replace("_", "").upper()):
                return member
        raise ValueError(f"Unknown quoting convention: {value}")


class ConventionFunctions(NamedTuple):
    to_full_price: Callable[[object, float], float]
    from_full_price: Callable[[object, float], float]


# ---- price conventions ----

def _flat_to_full(ctx, quote: float) -> float:
    return quote + ctx.accrued_interest()


def _full_to_flat(ctx, full: float) -> float:
    return full - ctx.accrued_interest()


def _full_to_full(ctx, value: float) -> float:
    return value


# ---- yield ----

def _yield_to_full(ctx, y: float) -> float:
    return ctx.yield_basis.price(y)


def _full_to_yield(ctx, full: float) -> float:
    basis = ctx.yield_basis
    return solve(
        lambda y: basis.price(y) - full,
        ctx.config,
        ctx.config.yield_bracket,
        floor=-float(basis.freq),
        what="yield",
    )


# ---- floater discount margin ----

def _require_floating(ctx, what: str) -> None:
    if not ctx.terms.is_floating:
        raise QuoteConventionError(f"{ctx.terms.bond_id}: {what} applies to floating rate bonds only.")


def _dm_to_full(ctx, dm: float) -> float:
    _require_floating(ctx, "discount margin")
    return ctx.discount_margin_price(dm)


def _full_to_dm(ctx, full: float) -> float:
    _require_floating(ctx, "discount margin")
    return solve(
        lambda dm: ctx.discount_margin_price(dm) - full,
        ctx.config,
        ctx.config.spread_bracket,
        floor=ctx.discount_margin_floor(),
        what="discount margin",
    )


# ---- Z-spread ----

def _zspread_to_full(ctx, z: float) -> float:
    return ctx.zspread_price(z)


def _full_to_zspread(ctx, full: float) -> float:
    try:
        return solve(
            lambda z: ctx.zspread_price(z) - full,
            ctx.config,
            ctx.config.spread_bracket,
            what="Z-spread",
        )
    except SolverError as e:
        raise SolverError(f"Unable to imply a Z-spread for market price {full}: {e}") from e


# ---- asset swap spreads (fixed rate only) ----

def _require_fixed(ctx) -> None:
    if ctx.terms.is_floating:
        raise QuoteConventionError(f"{ctx.terms.bond_id}: asset swap spreads apply to fixed rate bonds only.")


def _asw_par_to_full(ctx, asw: float) -> float:
    _require_fixed(ctx)
    return ctx.risk_free_model_price() - asw * ctx.annuity()


def _full_to_asw_par(ctx, full: float) -> float:
    _require_fixed(ctx)
    return (ctx.risk_free_model_price() - full) / ctx.annuity()


def _asw_mkt_to_full(ctx, asw: float) -> float:
    _require_fixed(ctx)
    return ctx.risk_free_model_price() / (1.0 + asw * ctx.annuity())


def _full_to_asw_mkt(ctx, full: float) -> float:
    _require_fixed(ctx)
    return (ctx.risk_free_model_price() - full) / (full * ctx.annuity())


# ---- forward flat price ----

def _fwd_flat_to_full(ctx, quote: float) -> float:
    fwd = ctx.require_forward_settle()
    return ctx.forward_full_to_spot(quote + ctx.accrued_at(fwd))


def _full_to_fwd_flat(ctx, full: float) -> float:
    fwd = ctx.require_forward_settle()
    return ctx.spot_full_to_forward(full) - ctx.accrued_at(fwd)


# ---- discount rate (zero coupon bills) ----

def _require_zero_coupon(ctx) -> None:
    if not ctx.terms.is_zero_coupon:
        raise QuoteConventionError(f"{ctx.terms.bond_id}: discount rate quoting applies to zero coupon bonds only.")


def _discount_rate_to_full(ctx, d: float) -> float:
    _require_zero_coupon(ctx)
    return ctx.terms.redemption * (1.0 - d * ctx.discount_rate_tau())


def _full_to_discount_rate(ctx, full: float) -> float:
    _require_zero_coupon(ctx)
    tau = ctx.discount_rate_tau()
    if tau <= 0:
        return 0.0
    return (1.0 - full / ctx.terms.redemption) / tau


CONVENTIONS: Dict[QuotingConvention, ConventionFunctions] = {
    QuotingConvention.FLAT_PRICE: ConventionFunctions(_flat_to_full, _full_to_flat),
    QuotingConvention.FULL_PRICE: ConventionFunctions(_full_to_full, _full_to_full),
    QuotingConvention.YIELD: ConventionFunctions(_yield_to_full, _full_to_yield),
    QuotingConvention.DISCOUNT_MARGIN: ConventionFunctions(_dm_to_full, _full_to_dm),
    QuotingConvention.ZSPREAD: ConventionFunctions(_zspread_to_full, _full_to_zspread),
    QuotingConvention.ASW_PAR: ConventionFunctions(_asw_par_to_full, _full_to_asw_par),
    QuotingConvention.ASW_MKT: ConventionFunctions(_asw_mkt_to_full, _full_to_asw_mkt),
    QuotingConvention.FORWARD_FLAT_PRICE: ConventionFunctions(_fwd_flat_to_full, _full_to_fwd_flat),
    QuotingConvention.DISCOUNT_RATE: ConventionFunctions(_discount_rate_to_full, _full_to_discount_rate),
}

_missing = set(QuotingConvention) - set(CONVENTIONS)
if _missing:
    raise RuntimeError(f"Quoting conventions without pricing functions: {sorted(m.name for m in _missing)}")


def to_full_price(ctx, convention: QuotingConvention, quote: float) -> float:
    return CONVENTIONS[QuotingConvention.parse(convention)].to_full_price(ctx, quote)


def from_full_price(ctx, convention: QuotingConvention, full: float) -> float:
    return CONVENTIONS[QuotingConvention.parse(convention)].from_full_price(ctx, full)
