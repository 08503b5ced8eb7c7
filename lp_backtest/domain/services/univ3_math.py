from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, Context, Decimal, localcontext
from functools import lru_cache

from lp_backtest.domain.exceptions import InvalidSimulationInputError


MIN_TICK = -887272
MAX_TICK = 887272
TICK_BASE = Decimal("1.0001")
Q96 = 2**96
# Q96 values reach ~2^160; 80 significant digits keeps the squared price exact enough.
MATH_CONTEXT = Context(prec=80, rounding=ROUND_FLOOR)
ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True)
class DepositAllocation:
    amount0: Decimal
    amount1: Decimal
    liquidity_delta: Decimal


def tick_to_sqrt_price(tick: int | Decimal) -> Decimal:
    with localcontext(MATH_CONTEXT) as ctx:
        return (TICK_BASE ** Decimal(tick)).sqrt(ctx)


def tick_to_sqrt_price_x96(tick: int | Decimal) -> int:
    sqrt_price = tick_to_sqrt_price(tick)
    with localcontext(MATH_CONTEXT):
        return int((sqrt_price * Q96).to_integral_value(rounding=ROUND_FLOOR))


def tick_to_price(tick: int | Decimal, token0_decimals: int, token1_decimals: int) -> Decimal:
    sqrt_price = tick_to_sqrt_price(tick)
    with localcontext(MATH_CONTEXT):
        return sqrt_price * sqrt_price * _decimal_adjust(token0_decimals, token1_decimals)


def price_to_tick(price: Decimal, token0_decimals: int, token1_decimals: int) -> Decimal:
    if price <= 0:
        raise ValueError("price must be positive.")
    with localcontext(MATH_CONTEXT) as ctx:
        raw_price = price / _decimal_adjust(token0_decimals, token1_decimals)
        return raw_price.ln(ctx) / TICK_BASE.ln(ctx)


def price_to_tick_floor(price: Decimal, token0_decimals: int, token1_decimals: int) -> int:
    tick = price_to_tick(price, token0_decimals, token1_decimals)
    return _clamp_tick(int(tick.to_integral_value(rounding=ROUND_FLOOR)))


def price_to_tick_ceil(price: Decimal, token0_decimals: int, token1_decimals: int) -> int:
    tick = price_to_tick(price, token0_decimals, token1_decimals)
    return _clamp_tick(int(tick.to_integral_value(rounding=ROUND_CEILING)))


def encode_sqrt_price_x96(raw_price: Decimal) -> int:
    if raw_price < 0:
        raise ValueError("raw_price must be non-negative.")
    with localcontext(MATH_CONTEXT) as ctx:
        return int((raw_price.sqrt(ctx) * Q96).to_integral_value(rounding=ROUND_FLOOR))


def sqrt_price_x96_to_sqrt_price(sqrt_price_x96: int) -> Decimal:
    if sqrt_price_x96 <= 0:
        raise ValueError("Invalid sqrt_price_x96.")
    with localcontext(MATH_CONTEXT):
        return Decimal(sqrt_price_x96) / Q96


def decode_sqrt_price_x96(sqrt_price_x96: int) -> Decimal:
    sqrt_price = sqrt_price_x96_to_sqrt_price(sqrt_price_x96)
    with localcontext(MATH_CONTEXT):
        return sqrt_price * sqrt_price


def sqrt_price_x96_to_price(
    sqrt_price_x96: int,
    token0_decimals: int,
    token1_decimals: int,
) -> Decimal:
    raw_price = decode_sqrt_price_x96(sqrt_price_x96)
    with localcontext(MATH_CONTEXT):
        return raw_price * _decimal_adjust(token0_decimals, token1_decimals)


def price_to_sqrt_price_x96(price: Decimal, token0_decimals: int, token1_decimals: int) -> int:
    with localcontext(MATH_CONTEXT):
        raw_price = price / _decimal_adjust(token0_decimals, token1_decimals)
    return encode_sqrt_price_x96(raw_price)


@lru_cache(maxsize=64)
def price_bounds(token0_decimals: int, token1_decimals: int) -> tuple[Decimal, Decimal]:
    return (
        tick_to_price(MIN_TICK, token0_decimals, token1_decimals),
        tick_to_price(MAX_TICK, token0_decimals, token1_decimals),
    )


def tokens_from_deposit_usd(
    *,
    price: Decimal,
    price_low: Decimal,
    price_high: Decimal,
    price0_usd: Decimal,
    price1_usd: Decimal,
    deposit_usd: Decimal,
) -> DepositAllocation:
    if deposit_usd <= 0:
        raise InvalidSimulationInputError("deposit_usd must be positive.")
    if price <= 0 or price_low <= 0 or price_high <= 0:
        raise InvalidSimulationInputError("prices must be positive.")
    if price_low >= price_high:
        raise InvalidSimulationInputError("price_low must be lower than price_high.")
    if price0_usd <= 0 or price1_usd <= 0:
        raise InvalidSimulationInputError("token USD prices must be positive.")

    with localcontext(MATH_CONTEXT) as ctx:
        sqrt_low = price_low.sqrt(ctx)
        sqrt_high = price_high.sqrt(ctx)
        max_amount0 = deposit_usd / price0_usd
        max_amount1 = deposit_usd / price1_usd

        if price <= price_low:
            liquidity = max_amount0 / (ONE / sqrt_low - ONE / sqrt_high)
            return DepositAllocation(amount0=max_amount0, amount1=ZERO, liquidity_delta=liquidity)
        if price >= price_high:
            liquidity = max_amount1 / (sqrt_high - sqrt_low)
            return DepositAllocation(amount0=ZERO, amount1=max_amount1, liquidity_delta=liquidity)

        sqrt_price = price.sqrt(ctx)
        amount0_per_l = ONE / sqrt_price - ONE / sqrt_high
        amount1_per_l = sqrt_price - sqrt_low
        liquidity = deposit_usd / (amount1_per_l * price1_usd + amount0_per_l * price0_usd)
        return DepositAllocation(
            amount0=_clamp(liquidity * amount0_per_l, max_amount0),
            amount1=_clamp(liquidity * amount1_per_l, max_amount1),
            liquidity_delta=liquidity,
        )


def liquidity_delta(
    *,
    price: Decimal,
    price_low: Decimal,
    price_high: Decimal,
    amount0: Decimal,
    amount1: Decimal,
    token0_decimals: int,
    token1_decimals: int,
) -> Decimal:
    if price <= 0 or price_low <= 0 or price_high <= 0:
        return ZERO
    if price_low >= price_high:
        return ZERO

    with localcontext(MATH_CONTEXT) as ctx:
        decimal_adjust = _decimal_adjust(token0_decimals, token1_decimals)
        amount0_raw = amount0 * (Decimal(10) ** token0_decimals)
        amount1_raw = amount1 * (Decimal(10) ** token1_decimals)
        sa = (price_low / decimal_adjust).sqrt(ctx)
        sb = (price_high / decimal_adjust).sqrt(ctx)
        sp = (price / decimal_adjust).sqrt(ctx)

        if sp <= sa:
            denom = (ONE / sa) - (ONE / sb)
            return amount0_raw / denom if denom > 0 else ZERO
        if sp >= sb:
            denom = sb - sa
            return amount1_raw / denom if denom > 0 else ZERO

        amount0_per_l = (ONE / sp) - (ONE / sb)
        amount1_per_l = sp - sa
        liquidity0 = amount0_raw / amount0_per_l if amount0_per_l > 0 else ZERO
        liquidity1 = amount1_raw / amount1_per_l if amount1_per_l > 0 else ZERO
        if liquidity0 > 0 and liquidity1 > 0:
            return min(liquidity0, liquidity1)
        return liquidity0 if liquidity0 > 0 else liquidity1


def _decimal_adjust(token0_decimals: int, token1_decimals: int) -> Decimal:
    return Decimal(10) ** (token0_decimals - token1_decimals)


def _clamp(value: Decimal, upper: Decimal) -> Decimal:
    if value < 0:
        return ZERO
    return min(value, upper)


def _clamp_tick(tick: int) -> int:
    return max(MIN_TICK, min(MAX_TICK, tick))
