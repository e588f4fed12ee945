from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from .daycount import yearfrac
from .errors import CurveError

logger = logging.getLogger(__name__)


def _to_datetime64(dates: Iterable[pd.Timestamp]) -> np.ndarray:
    return np.array([pd.Timestamp(d).to_datetime64() for d in dates], dtype="datetime64[ns]")


@dataclass(frozen=True)
class ZeroCurve:
    """
    Discount curve represented by knot discount factors,
    interpolated linearly in log discount factor space.

    - Within knot range: log-linear interpolation on DF.
    - Short-end extrapolation: flat cc zero implied by first knot.
    - Long-end extrapolation: NOT allowed (raises).

    Curves are read-only collaborators: the engine queries df() and builds
    bumped copies through shifted(), it never edits a curve.
    """
    val_date: pd.Timestamp
    knot_dates: np.ndarray          # dtype datetime64[ns]
    knot_log_dfs: np.ndarray        # log(D)
    zero_day_count: str = "ACT/365F"

    def __post_init__(self):
        if len(self.knot_dates) == 0 or len(self.knot_dates) != len(self.knot_log_dfs):
            raise CurveError("Curve needs matching, non-empty knot dates and discount factors.")
        if not np.all(np.isfinite(self.knot_log_dfs)):
            raise CurveError("Non-finite log discount factor in curve knots.")
        if np.any(np.diff(self.knot_dates.astype("datetime64[ns]").astype("int64")) <= 0):
            raise CurveError("Curve knot dates must be strictly increasing.")

    @classmethod
    def from_zero_rates(
        cls,
        val_date: pd.Timestamp,
        dates: Sequence[pd.Timestamp],
        zero_rates: Sequence[float],
        zero_day_count: str = "ACT/365F",
    ) -> "ZeroCurve":
        """Curve from continuously-compounded zero rates at the given dates."""
        val_date = pd.Timestamp(val_date)
        dates = [pd.Timestamp(d) for d in dates]
        taus = np.array([yearfrac(val_date, d, zero_day_count) for d in dates], dtype=float)
        if np.any(taus <= 0):
            raise CurveError("Curve knots must be after the valuation date.")
        log_dfs = -np.asarray(zero_rates, dtype=float) * taus
        return cls(val_date, _to_datetime64(dates), log_dfs, zero_day_count)

    def df(self, dates: Iterable[pd.Timestamp]) -> np.ndarray:
        dates_list = [pd.Timestamp(d) for d in dates]
        if not dates_list:
            return np.empty(0, dtype=float)
        x = _to_datetime64(dates_list).astype("int64")
        kx = self.knot_dates.astype("datetime64[ns]").astype("int64")
        kv = self.knot_log_dfs

        x_max = x.max()
        k_min, k_max = kx.min(), kx.max()

        if x_max > k_max:
            raise ValueError("Requested date beyond curve knot range (no long-end extrapolation).")

        # first knot implied flat cc zero for short-end extrapolation
        first_date = pd.Timestamp(self.knot_dates[0])
        tau1 = yearfrac(self.val_date, first_date, self.zero_day_count)
        if tau1 <= 0:
            raise ValueError("First knot must be after valuation date.")
        z1 = -kv[0] / tau1

        out = np.empty_like(x, dtype=float)

        mask_short = x < k_min
        if np.any(mask_short):
            idxs = np.where(mask_short)[0]
            if any(dates_list[i] < self.val_date for i in idxs):
                raise ValueError("Requested date before valuation date.")
            taus = np.array([yearfrac(self.val_date, dates_list[i], self.zero_day_count) for i in idxs], dtype=float)
            out[mask_short] = np.exp(-z1 * taus)

        mask_in = ~mask_short
        if np.any(mask_in):
            log_df = np.interp(x[mask_in], kx, kv)
            out[mask_in] = np.exp(log_df)

        return out

    def discount_factor(self, date: pd.Timestamp) -> float:
        return float(self.df([date])[0])

    def forward_df(self, start: pd.Timestamp, end: pd.Timestamp) -> float:
        """D(end) / D(start)."""
        d = self.df([start, end])
        return float(d[1] / d[0])

    def zero_rate_cc(self, dates: Iterable[pd.Timestamp]) -> np.ndarray:
        dates_list = [pd.Timestamp(d) for d in dates]
        dfs = self.df(dates_list)

        taus = np.array([yearfrac(self.val_date, d, self.zero_day_count) for d in dates_list], dtype=float)
        if np.any(taus <= 0):
            raise ValueError("Non-positive tau encountered in zero rate computation.")

        return -np.log(dfs) / taus

    def shifted(self, shift_bp: float) -> "ZeroCurve":
        """
        Parallel shift in continuously-compounded zero rates by shift_bp.
        Raises CurveError if any shifted discount factor is not positive and finite.
        """
        shift = shift_bp / 10000.0

        dates = pd.to_datetime(self.knot_dates)
        taus = np.array([yearfrac(self.val_date, d, self.zero_day_count) for d in dates], dtype=float)
        logdfs_shifted = self.knot_log_dfs - shift * taus

        dfs = np.exp(logdfs_shifted)
        if not np.all(np.isfinite(dfs)) or np.any(dfs <= 0.0):
            raise CurveError(f"Shift of {shift_bp}bp produces non-positive or non-finite discount factors.")

        logger.debug("Shifted discount curve by %sbp", shift_bp)
        return ZeroCurve(self.val_date, self.knot_dates.copy(), logdfs_shifted, self.zero_day_count)


def flat_curve(
    val_date: pd.Timestamp,
    rate: float,
    horizon_years: int = 60,
    zero_day_count: str = "ACT/365F",
) -> ZeroCurve:
    """Flat continuously-compounded zero curve with annual knots out to horizon_years."""
    val_date = pd.Timestamp(val_date)
    dates = [val_date + pd.DateOffset(years=k) for k in range(1, horizon_years + 1)]
    return ZeroCurve.from_zero_rates(val_date, dates, [rate] * len(dates), zero_day_count)


def forward_rate(curve: ZeroCurve, start: pd.Timestamp, end: pd.Timestamp, day_count: str) -> float:
    """Simply-compounded forward rate for [start, end) projected off curve."""
    tau = yearfrac(start, end, day_count)
    if tau <= 0:
        raise ValueError("Forward rate needs end after start.")
    return (1.0 / curve.forward_df(start, end) - 1.0) / tau


@dataclass(frozen=True)
class SurvivalCurve:
    """
    Piecewise-constant hazard rate curve. hazards[i] applies from the previous
    knot (or val_date) up to knot_dates[i]; the last hazard extends flat.
    """
    val_date: pd.Timestamp
    knot_dates: np.ndarray          # dtype datetime64[ns]
    hazards: np.ndarray
    recovery: float = 0.4
    day_count: str = "ACT/365F"

    def __post_init__(self):
        if len(self.knot_dates) == 0 or len(self.knot_dates) != len(self.hazards):
            raise CurveError("Survival curve needs matching, non-empty knots and hazard rates.")
        if not 0.0 <= self.recovery < 1.0:
            raise CurveError("Recovery rate must be in [0, 1).")
        if np.any(~np.isfinite(self.hazards)) or np.any(np.asarray(self.hazards) < 0):
            raise CurveError("Hazard rates must be finite and non-negative.")

    @classmethod
    def from_cds_spread(
        cls,
        val_date: pd.Timestamp,
        spread: float,
        recovery: float = 0.4,
        horizon_years: int = 60,
    ) -> "SurvivalCurve":
        """Flat curve from a flat CDS spread (credit triangle: h = s / (1 - R))."""
        val_date = pd.Timestamp(val_date)
        if spread < 0:
            raise CurveError("CDS spread must be non-negative.")
        if not 0.0 <= recovery < 1.0:
            raise CurveError("Recovery rate must be in [0, 1).")
        hazard = spread / (1.0 - recovery)
        end = val_date + pd.DateOffset(years=horizon_years)
        return cls(val_date, _to_datetime64([end]), np.array([hazard]), recovery)

    def _taus(self, dates: Sequence[pd.Timestamp]) -> np.ndarray:
        return np.array(
            [yearfrac(self.val_date, d, self.day_count) if d > self.val_date else 0.0 for d in dates],
            dtype=float,
        )

    def survival(self, dates: Iterable[pd.Timestamp]) -> np.ndarray:
        dates_list = [pd.Timestamp(d) for d in dates]
        taus = self._taus(dates_list)
        knot_taus = self._taus(pd.to_datetime(self.knot_dates))

        out = np.empty(len(dates_list), dtype=float)
        for i, t in enumerate(taus):
            integral = 0.0
            prev = 0.0
            for kt, h in zip(knot_taus, self.hazards):
                seg_end = min(t, kt)
                if seg_end > prev:
                    integral += h * (seg_end - prev)
                prev = kt
                if t <= kt:
                    break
            if t > knot_taus[-1]:
                integral += self.hazards[-1] * (t - knot_taus[-1])
            out[i] = np.exp(-integral)
        return out

    def survival_prob(self, date: pd.Timestamp) -> float:
        return float(self.survival([date])[0])

    def implied_spread(self, date: pd.Timestamp) -> float:
        """CDS level to date by the credit triangle: (1 - R) x average hazard rate."""
        t = self._taus([pd.Timestamp(date)])[0]
        if t <= 0.0:
            return float(self.hazards[0]) * (1.0 - self.recovery)
        return float(-np.log(self.survival_prob(date)) / t * (1.0 - self.recovery))

    def default_prob(self, start: pd.Timestamp, end: pd.Timestamp) -> float:
        """Probability of default in (start, end] given survival to start."""
        s = self.survival([start, end])
        if s[0] <= 0:
            return 1.0
        return float(1.0 - s[1] / s[0])

    def bumped(self, spread_bp: float) -> "SurvivalCurve":
        """Shift the implied par CDS spread by spread_bp (hazard shift = bump / (1 - R))."""
        shift = spread_bp / 10000.0 / (1.0 - self.recovery)
        hazards = np.asarray(self.hazards, dtype=float) + shift
        if np.any(hazards < 0):
            raise CurveError(f"Spread bump of {spread_bp}bp produces negative hazard rates.")
        return SurvivalCurve(self.val_date, self.knot_dates.copy(), hazards, self.recovery, self.day_count)
