from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, localcontext

from lp_backtest.domain.services.univ3_math import MATH_CONTEXT


Q128 = 2**128
UINT256_MOD = 2**256


@dataclass(frozen=True)
class FeeGrowthAccumulators:
    fee_growth_global: int
    fee_growth_outside_lower: int
    fee_growth_outside_upper: int
    fee_growth_inside_last: int


@dataclass(frozen=True)
class PositionFees:
    token0: Decimal
    token1: Decimal
    fee_growth_inside0: int
    fee_growth_inside1: int


def sub_uint256(a: int, b: int) -> int:
    return (a - b) % UINT256_MOD


def parse_uint256(value: int | str | Decimal | None) -> int:
    if value is None:
        raise ValueError("Missing uint256 value.")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValueError("Empty uint256 string.")
        parsed = int(raw)
    elif isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError("Decimal uint256 value must be integral.")
        parsed = int(value)
    else:
        raise ValueError("Unsupported uint256 value type.")

    if parsed < 0:
        raise ValueError("uint256 value must be non-negative.")
    return parsed


def fee_growth_inside(
    *,
    fee_growth_global: int,
    fee_growth_outside_lower: int,
    fee_growth_outside_upper: int,
    tick_current: int,
    tick_lower: int,
    tick_upper: int,
) -> int:
    below = (
        fee_growth_outside_lower
        if tick_current >= tick_lower
        else sub_uint256(fee_growth_global, fee_growth_outside_lower)
    )
    above = (
        fee_growth_outside_upper
        if tick_current < tick_upper
        else sub_uint256(fee_growth_global, fee_growth_outside_upper)
    )
    return sub_uint256(sub_uint256(fee_growth_global, below), above)


def fees_from_delta_inside(*, delta_inside: int, liquidity: Decimal) -> Decimal:
    if delta_inside < 0:
        raise ValueError("delta_inside must be non-negative.")
    if liquidity < 0:
        raise ValueError("liquidity must be non-negative.")
    with localcontext(MATH_CONTEXT):
        return (liquidity * Decimal(delta_inside)) / Decimal(Q128)


def position_fees(
    *,
    liquidity: Decimal,
    tick_current: int,
    tick_lower: int,
    tick_upper: int,
    token0: FeeGrowthAccumulators,
    token1: FeeGrowthAccumulators,
    token0_decimals: int,
    token1_decimals: int,
) -> PositionFees:
    """Uncollected fees of a live position from the pool's fee-growth accumulators.

    Amounts are returned in token units (scaled down by each token's decimals).
    Accumulators wrap modulo 2**256 like the on-chain counters.
    """
    if tick_lower >= tick_upper:
        raise ValueError("tick_lower must be lower than tick_upper.")

    inside0 = fee_growth_inside(
        fee_growth_global=token0.fee_growth_global,
        fee_growth_outside_lower=token0.fee_growth_outside_lower,
        fee_growth_outside_upper=token0.fee_growth_outside_upper,
        tick_current=tick_current,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
    )
    inside1 = fee_growth_inside(
        fee_growth_global=token1.fee_growth_global,
        fee_growth_outside_lower=token1.fee_growth_outside_lower,
        fee_growth_outside_upper=token1.fee_growth_outside_upper,
        tick_current=tick_current,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
    )
    raw0 = fees_from_delta_inside(
        delta_inside=sub_uint256(inside0, token0.fee_growth_inside_last),
        liquidity=liquidity,
    )
    raw1 = fees_from_delta_inside(
        delta_inside=sub_uint256(inside1, token1.fee_growth_inside_last),
        liquidity=liquidity,
    )
    with localcontext(MATH_CONTEXT):
        return PositionFees(
            token0=raw0 / (Decimal(10) ** token0_decimals),
            token1=raw1 / (Decimal(10) ** token1_decimals),
            fee_growth_inside0=inside0,
            fee_growth_inside1=inside1,
        )
