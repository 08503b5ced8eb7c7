from __future__ import annotations

import logging

from lp_backtest.application.dto.fetch_pool_data import FetchPoolDataInput, FetchPoolDataOutput
from lp_backtest.application.ports.market_data_port import MarketDataPort
from lp_backtest.application.ports.subgraph_port import SubgraphPort
from lp_backtest.application.use_cases.simulate_lp import parse_pool_protocol
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.domain.exceptions import InvalidSimulationInputError, PoolNotFoundError
from lp_backtest.domain.services.univ3_math import sqrt_price_x96_to_price
from lp_backtest.domain.services.volatility import rolling_realized_volatility


MS_PER_HOUR = 60 * 60 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR
logger = logging.getLogger(__name__)


class FetchPoolDataUseCase:
    def __init__(
        self,
        *,
        subgraph_port: SubgraphPort,
        market_data_port: MarketDataPort,
        fetch_pad_ms: int = MS_PER_HOUR,
    ):
        self._subgraph_port = subgraph_port
        self._market_data_port = market_data_port
        self._fetch_pad_ms = max(0, fetch_pad_ms)

    def ensure_pool(self, *, protocol: PoolProtocol, address: str) -> Pool:
        address = address.lower()
        pool = self._market_data_port.get_pool(protocol=protocol, address=address)
        if pool is not None:
            return pool
        fetched = self._subgraph_port.fetch_pool(protocol=protocol, address=address)
        if fetched is None:
            raise PoolNotFoundError(f"Pool {address} not found on {protocol.value} subgraph.")
        saved = self._market_data_port.save_pool(fetched)
        logger.info(
            "fetch_pool_data: pool_saved protocol=%s pool=%s id=%s symbol=%s",
            protocol.value,
            address,
            saved.id,
            saved.symbol,
        )
        return saved

    def has_complete_data(self, *, pool: Pool, start_timestamp: int, end_timestamp: int) -> bool:
        hours = (end_timestamp - start_timestamp) // MS_PER_HOUR
        count = self._market_data_port.count_liquidity_points(
            pool_id=pool.id,
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
        )
        complete = count >= hours - 1
        if not complete:
            logger.info(
                "fetch_pool_data: incomplete_liquidity pool=%s expected=%s found=%s",
                pool.address,
                hours - 1,
                count,
            )
        return complete

    def execute(self, command: FetchPoolDataInput) -> FetchPoolDataOutput:
        protocol = parse_pool_protocol(command.pool_protocol)
        if command.end_timestamp <= command.start_timestamp:
            raise InvalidSimulationInputError("end_timestamp must be after start_timestamp.")

        pool = self.ensure_pool(protocol=protocol, address=command.pool_address)
        start = command.start_timestamp - self._fetch_pad_ms
        end = command.end_timestamp + self._fetch_pad_ms
        logger.info(
            "fetch_pool_data: start protocol=%s pool=%s start=%s end=%s",
            protocol.value,
            pool.address,
            start,
            end,
        )

        liquidity = self._subgraph_port.fetch_liquidity(pool=pool, start_timestamp=start, end_timestamp=end)
        self._market_data_port.insert_liquidity(liquidity)

        fee_tiers = []
        if protocol.dynamic_fee:
            fee_tiers = self._subgraph_port.fetch_fee_tiers(pool=pool, start_timestamp=start, end_timestamp=end)
            self._market_data_port.insert_fee_tiers(fee_tiers)

        trades_fetched = 0
        day_start = start
        while day_start < end:
            day_end = min(day_start + MS_PER_DAY, end)
            trades = self._subgraph_port.fetch_trades(
                pool=pool,
                start_timestamp=day_start,
                end_timestamp=day_end,
            )
            self._market_data_port.insert_trades(trades)
            trades_fetched += len(trades)
            day_start = day_end

        volatility_points = self.refresh_realized_volatility(pool=pool, start_timestamp=start, end_timestamp=end)

        logger.info(
            "fetch_pool_data: done pool=%s trades=%s liquidity=%s fee_tiers=%s volatility=%s",
            pool.address,
            trades_fetched,
            len(liquidity),
            len(fee_tiers),
            volatility_points,
        )
        return FetchPoolDataOutput(
            pool=pool,
            start_timestamp=start,
            end_timestamp=end,
            trades_fetched=trades_fetched,
            liquidity_points_fetched=len(liquidity),
            fee_tier_points_fetched=len(fee_tiers),
            volatility_points_written=volatility_points,
        )

    def refresh_realized_volatility(self, *, pool: Pool, start_timestamp: int, end_timestamp: int) -> int:
        raw_samples = self._market_data_port.get_price_samples(
            pool_id=pool.id,
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
        )
        samples = []
        for timestamp, sqrt_price_x96 in raw_samples:
            try:
                price = sqrt_price_x96_to_price(sqrt_price_x96, pool.token0_decimals, pool.token1_decimals)
            except ValueError:
                continue
            samples.append((timestamp, price))

        points = rolling_realized_volatility(
            samples,
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
        )
        if not points:
            return 0
        return self._market_data_port.upsert_realized_volatility(pool_id=pool.id, points=points)
