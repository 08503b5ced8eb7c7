from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


MS_PER_DAY = 24 * 60 * 60 * 1000
DAYS_PER_YEAR = 365


class OptionType(str, Enum):
    CALL = "call"
    PUT = "put"


@dataclass(frozen=True)
class Greeks:
    delta: float
    gamma: float
    vega: float
    theta: float
    rho: float


def cumulative_normal(x: float) -> float:
    # Abramowitz & Stegun 26.2.17
    t = 1.0 / (1.0 + 0.2316419 * abs(x))
    d = 0.3989423 * math.exp(-x * x / 2.0)
    prob = d * t * (0.3193815 + t * (-0.3565638 + t * (1.781478 + t * (-1.821256 + t * 1.330274))))
    return 1.0 - prob if x > 0 else prob


def _d1_d2(spot: float, strike: float, years: float, rate: float, sigma_percent: float) -> tuple[float, float]:
    if spot <= 0 or strike <= 0:
        raise ValueError("spot and strike must be positive.")
    if years <= 0:
        raise ValueError("years must be positive.")
    if sigma_percent <= 0:
        raise ValueError("sigma_percent must be positive.")
    sigma = sigma_percent / 100.0
    sqrt_t = math.sqrt(years)
    d1 = (math.log(spot / strike) + (rate + sigma**2 / 2.0) * years) / (sigma * sqrt_t)
    return d1, d1 - sigma * sqrt_t


def black_scholes(
    *,
    spot: float,
    strike: float,
    years: float,
    rate: float,
    sigma_percent: float,
    option_type: OptionType,
) -> float:
    d1, d2 = _d1_d2(spot, strike, years, rate, sigma_percent)
    discount = math.exp(-rate * years)
    if option_type is OptionType.CALL:
        return spot * cumulative_normal(d1) - strike * discount * cumulative_normal(d2)
    return strike * discount * (1.0 - cumulative_normal(d2)) - spot * (1.0 - cumulative_normal(d1))


def greeks(
    *,
    spot: float,
    strike: float,
    years: float,
    rate: float,
    sigma_percent: float,
    option_type: OptionType,
) -> Greeks:
    """Vega is per 1 vol point, theta per calendar day, rho per 1% rate move."""
    d1, d2 = _d1_d2(spot, strike, years, rate, sigma_percent)
    sigma = sigma_percent / 100.0
    sqrt_t = math.sqrt(years)
    discount = math.exp(-rate * years)
    nd1 = cumulative_normal(d1)
    nd2 = cumulative_normal(d2)
    density_d1 = math.exp(-d1 * d1 / 2.0) / math.sqrt(2.0 * math.pi)
    signed_nd2 = nd2 if option_type is OptionType.CALL else -nd2

    return Greeks(
        delta=nd1 if option_type is OptionType.CALL else nd1 - 1.0,
        gamma=density_d1 / (spot * sigma * sqrt_t),
        vega=spot * density_d1 * sqrt_t / 100.0,
        theta=(
            -(spot * sigma * density_d1) / (2.0 * sqrt_t) / DAYS_PER_YEAR
            - rate * strike * discount * signed_nd2 / DAYS_PER_YEAR
        ),
        rho=strike * years * discount * signed_nd2 / 100.0,
    )


def days_to_expiry(open_timestamp: int, close_timestamp: int) -> float:
    days = (close_timestamp - open_timestamp) / MS_PER_DAY
    return math.ceil(days * 10) / 10


def adjust_strike_multiplier(*, spot: float, strike_multiplier: float, step_size: float) -> float:
    if step_size <= 0:
        raise ValueError("step_size must be positive.")
    rounded = math.floor(strike_multiplier * spot / step_size + 0.5) * step_size
    return rounded / spot


def max_theta_per_day(*, pnl_percent: float, dte: float) -> float:
    # Straddle: two legs decay against the position's move.
    if dte <= 0:
        return 0.0
    return abs(pnl_percent) / (dte * 2)
