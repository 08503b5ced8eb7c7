from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, localcontext

from lp_backtest.domain.services.univ3_math import MATH_CONTEXT, ONE, ZERO


FEE_TIER_DENOMINATOR = Decimal("1000000")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ImpermanentLoss:
    hold_value_usd: Decimal
    position_value_usd: Decimal
    il_percentage: Decimal


def fee_tier_percentage(fee_tier: int | str | Decimal | None) -> Decimal:
    if fee_tier is None:
        return ZERO
    value = Decimal(str(fee_tier))
    if not value.is_finite() or value < 0:
        raise ValueError("fee_tier must be a non-negative number.")
    return value / FEE_TIER_DENOMINATOR


def estimate_fee(
    *,
    liquidity_delta: Decimal | None,
    pool_liquidity: Decimal | None,
    volume_usd: Decimal | None,
    fee_tier_fraction: Decimal | None,
) -> Decimal:
    if liquidity_delta is None or pool_liquidity is None:
        return ZERO
    if volume_usd is None or fee_tier_fraction is None:
        return ZERO
    values = (liquidity_delta, pool_liquidity, volume_usd, fee_tier_fraction)
    if not all(value.is_finite() for value in values):
        return ZERO
    if liquidity_delta <= 0 or volume_usd <= 0 or fee_tier_fraction <= 0:
        return ZERO

    denominator = pool_liquidity + liquidity_delta
    if denominator <= 0:
        return ZERO
    with localcontext(MATH_CONTEXT):
        return volume_usd * fee_tier_fraction * (liquidity_delta / denominator)


def impermanent_loss(
    *,
    close_price: Decimal,
    price_low: Decimal,
    price_high: Decimal,
    liquidity_delta: Decimal,
    amount0: Decimal,
    amount1: Decimal,
    price0_usd: Decimal,
    price1_usd: Decimal,
) -> ImpermanentLoss:
    with localcontext(MATH_CONTEXT) as ctx:
        hold_value = amount0 * price0_usd + amount1 * price1_usd

        price = min(max(close_price, price_low), price_high)
        sqrt_price = price.sqrt(ctx)
        amount0_lp = liquidity_delta * (ONE / sqrt_price - ONE / price_high.sqrt(ctx))
        amount1_lp = liquidity_delta * (sqrt_price - price_low.sqrt(ctx))
        position_value = max(amount0_lp, ZERO) * price0_usd + max(amount1_lp, ZERO) * price1_usd

        if hold_value <= 0:
            il_percentage = ZERO
        else:
            il_percentage = abs(hold_value - position_value) / hold_value * HUNDRED

    return ImpermanentLoss(
        hold_value_usd=hold_value,
        position_value_usd=position_value,
        il_percentage=il_percentage,
    )


def pnl_percent(*, position_value_usd: Decimal, deposit_usd: Decimal) -> Decimal:
    if deposit_usd <= 0:
        return ZERO
    with localcontext(MATH_CONTEXT):
        return (position_value_usd / deposit_usd - ONE) * HUNDRED
