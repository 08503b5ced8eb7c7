from __future__ import annotations

import logging
from decimal import Decimal

from lp_backtest.application.dto.simulate_lp import (
    SimulateLpInput,
    SimulateLpOutput,
    TradingStrategyInput,
)
from lp_backtest.application.ports.simulate_lp_port import SimulateLpPort
from lp_backtest.domain.entities.lp_position import (
    LpPositionConfig,
    LpSimulationResult,
    PositionType,
    PriceRangeSpec,
    RebalanceSpec,
    TradingStrategySpec,
)
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.domain.exceptions import (
    InvalidSimulationInputError,
    PoolNotFoundError,
    SimulationDataNotFoundError,
)
from lp_backtest.domain.services.lp_simulation import simulate_lp_position


HUNDRED = Decimal("100")
logger = logging.getLogger(__name__)


def parse_pool_protocol(value: str) -> PoolProtocol:
    try:
        return PoolProtocol(value.strip().lower())
    except ValueError as exc:
        supported = ", ".join(item.value for item in PoolProtocol)
        raise InvalidSimulationInputError(
            f"Unsupported pool protocol '{value}'. Supported: {supported}."
        ) from exc


def build_range_spec(
    *,
    full_range: bool,
    uptick_percent: Decimal | None,
    downtick_percent: Decimal | None,
    price_low: Decimal | None,
    price_high: Decimal | None,
) -> PriceRangeSpec:
    if full_range:
        return PriceRangeSpec(full_range=True)
    if price_low is not None or price_high is not None:
        if price_low is None or price_high is None:
            raise InvalidSimulationInputError("price_low and price_high must be provided together.")
        if price_low <= 0 or price_high <= price_low:
            raise InvalidSimulationInputError("price_low must be positive and lower than price_high.")
        return PriceRangeSpec(price_low=price_low, price_high=price_high)
    if uptick_percent is None or downtick_percent is None:
        raise InvalidSimulationInputError(
            "Provide full_range, price_low/price_high or uptick_percent/downtick_percent."
        )
    if uptick_percent <= 0 or downtick_percent <= 0 or downtick_percent >= HUNDRED:
        raise InvalidSimulationInputError("uptick_percent must be > 0 and downtick_percent in (0, 100).")
    return PriceRangeSpec(uptick_percent=uptick_percent, downtick_percent=downtick_percent)


def build_rebalance_spec(
    *,
    uptick_percent: Decimal | None,
    downtick_percent: Decimal | None,
) -> RebalanceSpec | None:
    if uptick_percent is None and downtick_percent is None:
        return None
    if uptick_percent is None or downtick_percent is None:
        raise InvalidSimulationInputError("Rebalance needs both uptick_percent and downtick_percent.")
    if uptick_percent <= 0 or downtick_percent <= 0 or downtick_percent >= HUNDRED:
        raise InvalidSimulationInputError("Rebalance percents must be > 0 and downtick below 100.")
    return RebalanceSpec(uptick_percent=uptick_percent, downtick_percent=downtick_percent)


def build_trading_strategy(item: TradingStrategyInput) -> TradingStrategySpec:
    try:
        position_type = PositionType(item.position_type.strip().lower())
    except ValueError as exc:
        raise InvalidSimulationInputError(
            f"Trading position type must be long or short, got '{item.position_type}'."
        ) from exc
    for name, value in (
        ("take_profit_percent", item.take_profit_percent),
        ("stop_loss_percent", item.stop_loss_percent),
    ):
        if value is not None and value <= 0:
            raise InvalidSimulationInputError(f"{name} must be positive.")
    return TradingStrategySpec(
        position_type=position_type,
        entry_price_percent=item.entry_price_percent,
        take_profit_percent=item.take_profit_percent,
        stop_loss_percent=item.stop_loss_percent,
    )


class SimulateLpUseCase:
    def __init__(
        self,
        *,
        simulate_lp_port: SimulateLpPort,
        default_position_usd: Decimal = Decimal("1000"),
        min_trade_usd: Decimal = Decimal("10"),
        price_point_min_usd: Decimal = Decimal("1"),
    ):
        self._simulate_lp_port = simulate_lp_port
        self._default_position_usd = default_position_usd
        self._min_trade_usd = min_trade_usd
        self._price_point_min_usd = price_point_min_usd

    def execute(self, command: SimulateLpInput) -> SimulateLpOutput:
        logger.info(
            "simulate_lp: start protocol=%s pool=%s open=%s close=%s full_range=%s",
            command.pool_protocol,
            command.pool_address,
            command.open_timestamp,
            command.close_timestamp,
            command.full_range,
        )
        protocol = parse_pool_protocol(command.pool_protocol)
        if not command.pool_address or not command.pool_address.lower().startswith("0x"):
            raise InvalidSimulationInputError("pool_address must start with 0x.")

        deposit_usd = command.deposit_usd if command.deposit_usd is not None else self._default_position_usd
        config = LpPositionConfig(
            open_timestamp=command.open_timestamp,
            close_timestamp=command.close_timestamp,
            price_range=build_range_spec(
                full_range=command.full_range,
                uptick_percent=command.uptick_percent,
                downtick_percent=command.downtick_percent,
                price_low=command.price_low,
                price_high=command.price_high,
            ),
            deposit_usd=deposit_usd,
            rebalance=build_rebalance_spec(
                uptick_percent=command.rebalance_uptick_percent,
                downtick_percent=command.rebalance_downtick_percent,
            ),
            trading_strategies=[build_trading_strategy(item) for item in command.trading_strategies],
        )

        pool = self._simulate_lp_port.get_pool(protocol=protocol, address=command.pool_address.lower())
        if pool is None:
            raise PoolNotFoundError("Pool not found.")

        result = self.simulate(pool=pool, config=config)
        return SimulateLpOutput(
            pool=pool,
            lp_positions=result.lp_positions,
            trading_positions=result.trading_positions,
            diagnostics=result.diagnostics,
        )

    def simulate(self, *, pool: Pool, config: LpPositionConfig) -> LpSimulationResult:
        if config.close_timestamp <= config.open_timestamp:
            raise InvalidSimulationInputError("close_timestamp must be after open_timestamp.")
        if config.deposit_usd <= 0:
            raise InvalidSimulationInputError("deposit_usd must be positive.")

        open_point = self._simulate_lp_port.get_price_point(
            pool_id=pool.id,
            timestamp=config.open_timestamp,
            min_amount_usd=self._price_point_min_usd,
        )
        if open_point is None:
            self._raise_data_not_found("open_price_not_found", pool=pool, timestamp=config.open_timestamp)
        close_point = self._simulate_lp_port.get_price_point(
            pool_id=pool.id,
            timestamp=config.close_timestamp,
            min_amount_usd=self._price_point_min_usd,
        )
        if close_point is None:
            self._raise_data_not_found("close_price_not_found", pool=pool, timestamp=config.close_timestamp)

        trades = self._simulate_lp_port.get_trades(
            pool_id=pool.id,
            start_timestamp=config.open_timestamp,
            end_timestamp=config.close_timestamp,
        )
        result = simulate_lp_position(
            pool=pool,
            config=config,
            open_point=open_point,
            close_point=close_point,
            trades=trades,
            min_trade_usd=self._min_trade_usd,
        )
        logger.info(
            "simulate_lp: done pool=%s positions=%s trading_positions=%s trades=%s warnings=%s",
            pool.address,
            len(result.lp_positions),
            len(result.trading_positions),
            result.diagnostics.trades_total,
            result.diagnostics.warnings,
        )
        return result

    def _raise_data_not_found(self, code: str, *, pool: Pool, timestamp: int) -> None:
        context = {"pool": pool.address, "timestamp": timestamp}
        logger.warning("simulate_lp: data_not_found code=%s context=%s", code, context)
        raise SimulationDataNotFoundError(
            "Trades query returned no results - try fetching data.",
            code=code,
            context=context,
        )
