from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BumpResult:
    """Full prices (per unit notional) from a symmetric parallel bump of bump_bp."""
    base: float
    up: float
    down: float
    bump_bp: float

    @property
    def delta_per_bp(self) -> float:
        return (self.up - self.down) / (2.0 * self.bump_bp)

    @property
    def gamma_per_bp2(self) -> float:
        return (self.up + self.down - 2.0 * self.base) / (self.bump_bp * self.bump_bp)


@dataclass(frozen=True)
class YieldRisk:
    yield_: float
    pv01: float
    duration: float
    mod_duration: float
    convexity: float


ZERO_YIELD_RISK = YieldRisk(0.0, 0.0, 0.0, 0.0, 0.0)


def yield_risk(pricer) -> YieldRisk:
    """
    Yield measures at the pricer's yield to maturity.

    pv01 is the price gain of the effective notional for a 1bp fall in
    yield; duration is Macaulay (years), convexity is d2P/dy2 / P. The
    derivatives are central differences over config.yield_risk_step
    (analytic when the step is 0), so Macaulay is modified x (1 + y/f).
    """
    if not pricer.is_active:
        return ZERO_YIELD_RISK

    basis = pricer.yield_basis
    y = pricer.yield_to_maturity()
    p = basis.price(y)
    if basis.is_empty or p == 0.0:
        return ZERO_YIELD_RISK

    step = pricer.config.yield_risk_step
    dp, d2p = basis.derivatives(y, step)
    mod = -dp / p
    if step > 0.0:
        duration = mod * (1.0 + y / basis.freq)
    else:
        duration = basis.macaulay_duration(y)

    return YieldRisk(
        yield_=y,
        pv01=-dp * 1e-4 * pricer.effective_notional,
        duration=duration,
        mod_duration=mod,
        convexity=d2p / p,
    )


def rate_bump(pricer, bump_bp: float) -> BumpResult:
    """
    Parallel shift of the discount curve with the implied Z-spread held
    fixed, so the base reprices the market full price.
    """
    curve = pricer.require_discount_curve()
    z = pricer.implied_zspread()

    up_curve = curve.shifted(+bump_bp)
    down_curve = curve.shifted(-bump_bp)

    result = BumpResult(
        base=pricer.zspread_price(z, curve),
        up=pricer.zspread_price(z, up_curve),
        down=pricer.zspread_price(z, down_curve),
        bump_bp=bump_bp,
    )
    logger.debug("%s rate bump %sbp: %s", pricer.terms.bond_id, bump_bp, result)
    return result


def zspread_bump(pricer, bump_bp: float) -> BumpResult:
    curve = pricer.require_discount_curve()
    z = pricer.implied_zspread()
    shift = bump_bp / 10000.0

    return BumpResult(
        base=pricer.zspread_price(z, curve),
        up=pricer.zspread_price(z + shift, curve),
        down=pricer.zspread_price(z - shift, curve),
        bump_bp=bump_bp,
    )


def spread_bump(pricer, bump_bp: float) -> BumpResult:
    """
    Parallel bump of the CDS spread behind the survival curve with the
    implied R-spread (discount spread on top of the credit model) held fixed.
    """
    survival = pricer.survival_curve
    if survival is None:
        raise ValueError(f"{pricer.terms.bond_id}: a survival curve is required for credit spread sensitivities.")
    curve = pricer.require_discount_curve()
    r = pricer.implied_rspread()

    return BumpResult(
        base=pricer.model_price(curve, survival, r),
        up=pricer.model_price(curve, survival.bumped(+bump_bp), r),
        down=pricer.model_price(curve, survival.bumped(-bump_bp), r),
        bump_bp=bump_bp,
    )
