from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from lp_backtest.domain.entities.lp_position import (
    LpPositionConfig,
    LpSimulationDiagnostics,
    LpSimulationResult,
    PositionState,
    PriceRange,
    PriceRangeSpec,
    RebalanceSpec,
    SimulatedLpPosition,
)
from lp_backtest.domain.entities.market_data import PricePoint, Trade
from lp_backtest.domain.entities.pool import Pool
from lp_backtest.domain.exceptions import InvalidSimulationInputError, SimulationDataNotFoundError
from lp_backtest.domain.services.position_math import (
    estimate_fee,
    fee_tier_percentage,
    impermanent_loss,
    pnl_percent,
)
from lp_backtest.domain.services.trading_overlay import TapePoint, simulate_trading_overlay
from lp_backtest.domain.services.univ3_math import (
    DepositAllocation,
    liquidity_delta,
    price_bounds,
    price_to_tick_ceil,
    price_to_tick_floor,
    sqrt_price_x96_to_price,
    tokens_from_deposit_usd,
)


HUNDRED = Decimal("100")
ONE = Decimal("1")
ZERO = Decimal("0")
logger = logging.getLogger(__name__)


@dataclass
class _ActivePosition:
    open_timestamp: int
    open_price: Decimal
    price_range: PriceRange
    rebalance_band: PriceRange
    allocation: DepositAllocation
    deposit_usd: Decimal
    fees_collected: Decimal = ZERO
    state: PositionState = PositionState.OPEN_IN_RANGE
    trades_in_range: int = 0
    trades_out_of_range: int = 0


@dataclass
class _ReplayCounters:
    processed: int = 0
    zero_amount: int = 0
    duplicate: int = 0
    malformed: int = 0
    rebalances: int = 0
    in_range: int = 0
    in_range_with_liquidity: int = 0
    warnings: list[str] = field(default_factory=list)


def derive_price_range(
    *,
    pivot_price: Decimal,
    range_spec: PriceRangeSpec,
    bounds: tuple[Decimal, Decimal],
) -> PriceRange:
    if range_spec.full_range:
        return PriceRange(low=bounds[0], high=bounds[1])
    if range_spec.is_fixed:
        return PriceRange(low=range_spec.price_low, high=range_spec.price_high)
    if range_spec.uptick_percent is None or range_spec.downtick_percent is None:
        raise InvalidSimulationInputError(
            "Range needs full_range, price_low/price_high or uptick/downtick percents."
        )
    low = max(pivot_price * (ONE - range_spec.downtick_percent / HUNDRED), bounds[0])
    high = min(pivot_price * (ONE + range_spec.uptick_percent / HUNDRED), bounds[1])
    if low >= high:
        raise InvalidSimulationInputError("Derived price range is empty.")
    return PriceRange(low=low, high=high)


def derive_rebalance_band(
    *,
    pivot_price: Decimal,
    rebalance: RebalanceSpec | None,
    bounds: tuple[Decimal, Decimal],
) -> PriceRange:
    if rebalance is None:
        return PriceRange(low=bounds[0], high=bounds[1])
    return PriceRange(
        low=pivot_price * (ONE - rebalance.downtick_percent / HUNDRED),
        high=pivot_price * (ONE + rebalance.uptick_percent / HUNDRED),
    )


def relative_range_spec(*, range_spec: PriceRangeSpec, open_price: Decimal) -> PriceRangeSpec:
    """Turn a fixed range into the equivalent percentage band around its opening price."""
    if not range_spec.is_fixed:
        return range_spec
    return PriceRangeSpec(
        uptick_percent=(range_spec.price_high / open_price - ONE) * HUNDRED,
        downtick_percent=(ONE - range_spec.price_low / open_price) * HUNDRED,
    )


def simulate_lp_position(
    *,
    pool: Pool,
    config: LpPositionConfig,
    open_point: PricePoint,
    close_point: PricePoint,
    trades: list[Trade],
    min_trade_usd: Decimal = ZERO,
) -> LpSimulationResult:
    if config.close_timestamp <= config.open_timestamp:
        raise InvalidSimulationInputError("close_timestamp must be after open_timestamp.")
    if config.deposit_usd <= 0:
        raise InvalidSimulationInputError("deposit_usd must be positive.")

    bounds = price_bounds(pool.token0_decimals, pool.token1_decimals)
    open_price = _decode_price(pool, open_point.sqrt_price_x96)
    close_price = _decode_price(pool, close_point.sqrt_price_x96)
    if open_price is None or close_price is None:
        raise InvalidSimulationInputError("Boundary price points carry an invalid sqrt price.")

    range_spec = config.price_range
    active = _open_position(
        pool=pool,
        config=config,
        range_spec=range_spec,
        timestamp=config.open_timestamp,
        price=open_price,
        price0_usd=open_point.price0_usd,
        price1_usd=open_point.price1_usd,
        bounds=bounds,
    )
    # Re-centred positions keep the width of a fixed range.
    range_spec = relative_range_spec(range_spec=range_spec, open_price=open_price)

    closed: list[SimulatedLpPosition] = []
    counters = _ReplayCounters()
    tape: list[TapePoint] = []
    last_timestamp: int | None = None
    trades_total = 0

    for trade in trades:
        if trade.timestamp >= config.close_timestamp:
            break
        trades_total += 1
        if trade.amount0 == 0 or trade.amount1 == 0:
            counters.zero_amount += 1
            continue

        price = _decode_price(pool, trade.sqrt_price_x96)
        if _is_malformed(trade, price):
            counters.malformed += 1
            logger.warning(
                "lp_simulation: malformed_trade txid=%s timestamp=%s",
                trade.txid,
                trade.timestamp,
            )
            continue

        if last_timestamp is not None and trade.timestamp <= last_timestamp:
            counters.duplicate += 1
            continue
        last_timestamp = trade.timestamp
        counters.processed += 1
        tape.append(TapePoint(timestamp=trade.timestamp, price=price, amount_usd=trade.amount_usd))

        if not active.rebalance_band.contains(price):
            closed.append(
                _close_position(
                    pool=pool,
                    active=active,
                    timestamp=trade.timestamp,
                    price=price,
                    price0_usd=trade.price0_usd,
                    price1_usd=trade.price1_usd,
                )
            )
            counters.rebalances += 1
            logger.info(
                "lp_simulation: rebalance pool=%s timestamp=%s price=%s",
                pool.address,
                trade.timestamp,
                price,
            )
            active = _open_position(
                pool=pool,
                config=config,
                range_spec=range_spec,
                timestamp=trade.timestamp,
                price=price,
                price0_usd=trade.price0_usd,
                price1_usd=trade.price1_usd,
                bounds=bounds,
            )

        if not active.price_range.contains(price):
            active.state = PositionState.OPEN_OUT_OF_RANGE
            active.trades_out_of_range += 1
            continue

        active.state = PositionState.OPEN_IN_RANGE
        active.trades_in_range += 1
        counters.in_range += 1
        if trade.pool_liquidity is None:
            _warn_once(counters, "missing_pool_liquidity")
            continue
        counters.in_range_with_liquidity += 1
        fee_tier = trade.fee_tier if trade.fee_tier is not None else pool.fee_tier
        if fee_tier is None:
            _warn_once(counters, "missing_fee_tier")
            continue
        try:
            fee_fraction = fee_tier_percentage(fee_tier)
        except ValueError:
            _warn_once(counters, "invalid_fee_tier")
            logger.warning(
                "lp_simulation: invalid_fee_tier txid=%s fee_tier=%s",
                trade.txid,
                fee_tier,
            )
            continue
        user_liquidity = liquidity_delta(
            price=price,
            price_low=active.price_range.low,
            price_high=active.price_range.high,
            amount0=active.allocation.amount0,
            amount1=active.allocation.amount1,
            token0_decimals=pool.token0_decimals,
            token1_decimals=pool.token1_decimals,
        )
        active.fees_collected += estimate_fee(
            liquidity_delta=user_liquidity,
            pool_liquidity=trade.pool_liquidity,
            volume_usd=trade.amount_usd,
            fee_tier_fraction=fee_fraction,
        )

    if counters.in_range and not counters.in_range_with_liquidity:
        logger.warning("lp_simulation: no_pool_liquidity pool=%s in_range_trades=%s", pool.address, counters.in_range)
        raise SimulationDataNotFoundError(
            "No pool liquidity for the in-range trades - try fetching data.",
            code="pool_liquidity_not_found",
            context={"pool": pool.address, "timestamp": config.open_timestamp},
        )

    closed.append(
        _close_position(
            pool=pool,
            active=active,
            timestamp=config.close_timestamp,
            price=close_price,
            price0_usd=close_point.price0_usd,
            price1_usd=close_point.price1_usd,
        )
    )

    trading_positions = simulate_trading_overlay(
        tape=tape,
        strategies=config.trading_strategies,
        reference_price=closed[0].open_price,
        entry_amount_usd=config.deposit_usd,
        min_trade_usd=min_trade_usd,
    )

    logger.info(
        "lp_simulation: done pool=%s trades=%s processed=%s positions=%s trading_positions=%s",
        pool.address,
        trades_total,
        counters.processed,
        len(closed),
        len(trading_positions),
    )
    return LpSimulationResult(
        lp_positions=closed,
        trading_positions=trading_positions,
        diagnostics=LpSimulationDiagnostics(
            trades_total=trades_total,
            trades_processed=counters.processed,
            trades_skipped_zero_amount=counters.zero_amount,
            trades_skipped_duplicate=counters.duplicate,
            trades_skipped_malformed=counters.malformed,
            rebalances=counters.rebalances,
            warnings=counters.warnings,
        ),
    )


def _open_position(
    *,
    pool: Pool,
    config: LpPositionConfig,
    range_spec: PriceRangeSpec,
    timestamp: int,
    price: Decimal,
    price0_usd: Decimal,
    price1_usd: Decimal,
    bounds: tuple[Decimal, Decimal],
) -> _ActivePosition:
    price_range = derive_price_range(pivot_price=price, range_spec=range_spec, bounds=bounds)
    allocation = tokens_from_deposit_usd(
        price=price,
        price_low=price_range.low,
        price_high=price_range.high,
        price0_usd=price0_usd,
        price1_usd=price1_usd,
        deposit_usd=config.deposit_usd,
    )
    return _ActivePosition(
        open_timestamp=timestamp,
        open_price=price,
        price_range=price_range,
        rebalance_band=derive_rebalance_band(
            pivot_price=price,
            rebalance=config.rebalance,
            bounds=bounds,
        ),
        allocation=allocation,
        deposit_usd=config.deposit_usd,
        state=(
            PositionState.OPEN_IN_RANGE
            if price_range.contains(price)
            else PositionState.OPEN_OUT_OF_RANGE
        ),
    )


def _close_position(
    *,
    pool: Pool,
    active: _ActivePosition,
    timestamp: int,
    price: Decimal,
    price0_usd: Decimal,
    price1_usd: Decimal,
) -> SimulatedLpPosition:
    loss = impermanent_loss(
        close_price=price,
        price_low=active.price_range.low,
        price_high=active.price_range.high,
        liquidity_delta=active.allocation.liquidity_delta,
        amount0=active.allocation.amount0,
        amount1=active.allocation.amount1,
        price0_usd=price0_usd,
        price1_usd=price1_usd,
    )
    return SimulatedLpPosition(
        open_timestamp=active.open_timestamp,
        close_timestamp=timestamp,
        open_price=active.open_price,
        close_price=price,
        price_low=active.price_range.low,
        price_high=active.price_range.high,
        tick_lower=price_to_tick_floor(active.price_range.low, pool.token0_decimals, pool.token1_decimals),
        tick_upper=price_to_tick_ceil(active.price_range.high, pool.token0_decimals, pool.token1_decimals),
        amount_usd=active.deposit_usd,
        amount0=active.allocation.amount0,
        amount1=active.allocation.amount1,
        fees_collected=active.fees_collected,
        il_percentage=loss.il_percentage,
        pnl_percent=pnl_percent(position_value_usd=loss.position_value_usd, deposit_usd=active.deposit_usd),
        trades_in_range=active.trades_in_range,
        trades_out_of_range=active.trades_out_of_range,
        state=PositionState.CLOSED,
    )


def _decode_price(pool: Pool, sqrt_price_x96: int) -> Decimal | None:
    try:
        return sqrt_price_x96_to_price(sqrt_price_x96, pool.token0_decimals, pool.token1_decimals)
    except (ArithmeticError, TypeError, ValueError):
        return None


def _warn_once(counters: _ReplayCounters, warning: str) -> None:
    if warning not in counters.warnings:
        counters.warnings.append(warning)


def _is_malformed(trade: Trade, price: Decimal | None) -> bool:
    if price is None:
        return True
    if not all(value.is_finite() for value in (trade.amount0, trade.amount1, trade.amount_usd)):
        return True
    if trade.amount_usd <= 0:
        return True
    for token_price in (trade.price0_usd, trade.price1_usd):
        if token_price is None or not token_price.is_finite() or token_price <= 0:
            return True
    return False
