from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from lp_backtest.application.dto.fetch_pool_data import FetchPoolDataInput
from lp_backtest.application.use_cases.fetch_pool_data import MS_PER_DAY, MS_PER_HOUR, FetchPoolDataUseCase
from lp_backtest.domain.entities.market_data import FeeTierSnapshot, LiquiditySnapshot, Trade
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.domain.exceptions import InvalidSimulationInputError, PoolNotFoundError
from lp_backtest.domain.services.univ3_math import price_to_sqrt_price_x96

D0 = 1_704_067_200_000

REMOTE_POOL = Pool(
    id=None,
    protocol=PoolProtocol.UNISWAP_V3,
    address="0xpool",
    token0_symbol="WETH",
    token1_symbol="USDC",
    token0_decimals=18,
    token1_decimals=6,
    fee_tier=500,
)


class FakeSubgraph:
    def __init__(self, *, pool: Pool | None = REMOTE_POOL):
        self.pool = pool
        self.trade_windows = []
        self.fee_tier_calls = 0
        self.pool_calls = 0

    def fetch_pool(self, *, protocol, address):
        self.pool_calls += 1
        return replace(self.pool, protocol=protocol) if self.pool else None

    def fetch_trades(self, *, pool, start_timestamp, end_timestamp):
        self.trade_windows.append((start_timestamp, end_timestamp))
        return [
            Trade(
                txid=f"0x{start_timestamp}",
                pool_id=pool.id,
                timestamp=start_timestamp,
                amount0=Decimal("1"),
                amount1=Decimal("-2000"),
                amount_usd=Decimal("2000"),
                sqrt_price_x96=price_to_sqrt_price_x96(Decimal("2000"), 18, 6),
            )
        ]

    def fetch_liquidity(self, *, pool, start_timestamp, end_timestamp):
        return [LiquiditySnapshot(pool_id=pool.id, timestamp=start_timestamp, liquidity=Decimal("1"))]

    def fetch_fee_tiers(self, *, pool, start_timestamp, end_timestamp):
        self.fee_tier_calls += 1
        return [FeeTierSnapshot(pool_id=pool.id, timestamp=start_timestamp, fee_tier=Decimal("450"))]


class FakeMarketData:
    def __init__(self, *, stored: Pool | None = None, liquidity_points: int = 0):
        self.stored = stored
        self.liquidity_points = liquidity_points
        self.trades = []
        self.liquidity = []
        self.fee_tiers = []
        self.volatility = []

    def get_pool(self, *, protocol, address):
        return self.stored

    def save_pool(self, pool):
        self.stored = replace(pool, id=11)
        return self.stored

    def insert_trades(self, trades):
        self.trades.extend(trades)
        return len(trades)

    def insert_liquidity(self, snapshots):
        self.liquidity.extend(snapshots)
        return len(snapshots)

    def insert_fee_tiers(self, snapshots):
        self.fee_tiers.extend(snapshots)
        return len(snapshots)

    def count_liquidity_points(self, *, pool_id, start_timestamp, end_timestamp):
        return self.liquidity_points

    def get_price_samples(self, *, pool_id, start_timestamp, end_timestamp):
        return [(trade.timestamp, trade.sqrt_price_x96) for trade in self.trades]

    def upsert_realized_volatility(self, *, pool_id, points):
        self.volatility.extend(points)
        return len(points)


def _command(protocol: str = "uniswapv3") -> FetchPoolDataInput:
    return FetchPoolDataInput(
        pool_protocol=protocol,
        pool_address="0xPOOL",
        start_timestamp=D0,
        end_timestamp=D0 + 2 * MS_PER_DAY,
    )


def test_execute_fetches_trades_day_by_day():
    subgraph = FakeSubgraph()
    market_data = FakeMarketData()
    use_case = FetchPoolDataUseCase(subgraph_port=subgraph, market_data_port=market_data, fetch_pad_ms=0)

    output = use_case.execute(_command())

    assert subgraph.trade_windows == [(D0, D0 + MS_PER_DAY), (D0 + MS_PER_DAY, D0 + 2 * MS_PER_DAY)]
    assert output.pool.id == 11
    assert output.trades_fetched == 2
    assert output.liquidity_points_fetched == 1
    assert output.fee_tier_points_fetched == 0
    assert subgraph.fee_tier_calls == 0
    assert output.volatility_points_written == len(market_data.volatility)
    assert output.volatility_points_written > 0


def test_execute_pads_window_and_fetches_fee_tiers_for_dynamic_fee_pools():
    subgraph = FakeSubgraph()
    market_data = FakeMarketData()
    use_case = FetchPoolDataUseCase(subgraph_port=subgraph, market_data_port=market_data)

    output = use_case.execute(_command("thena"))

    assert output.start_timestamp == D0 - MS_PER_HOUR
    assert output.end_timestamp == D0 + 2 * MS_PER_DAY + MS_PER_HOUR
    assert subgraph.fee_tier_calls == 1
    assert len(market_data.fee_tiers) == 1
    assert len(subgraph.trade_windows) == 3


def test_ensure_pool_prefers_local_store():
    stored = replace(REMOTE_POOL, id=5)
    subgraph = FakeSubgraph()
    use_case = FetchPoolDataUseCase(subgraph_port=subgraph, market_data_port=FakeMarketData(stored=stored))

    assert use_case.ensure_pool(protocol=PoolProtocol.UNISWAP_V3, address="0xPOOL") == stored
    assert subgraph.pool_calls == 0


def test_ensure_pool_raises_when_subgraph_has_no_pool():
    use_case = FetchPoolDataUseCase(subgraph_port=FakeSubgraph(pool=None), market_data_port=FakeMarketData())
    with pytest.raises(PoolNotFoundError):
        use_case.ensure_pool(protocol=PoolProtocol.UNISWAP_V3, address="0xmissing")


def test_has_complete_data_compares_hourly_points():
    pool = replace(REMOTE_POOL, id=5)
    window = dict(pool=pool, start_timestamp=D0, end_timestamp=D0 + 10 * MS_PER_HOUR)

    complete = FetchPoolDataUseCase(subgraph_port=FakeSubgraph(), market_data_port=FakeMarketData(liquidity_points=9))
    sparse = FetchPoolDataUseCase(subgraph_port=FakeSubgraph(), market_data_port=FakeMarketData(liquidity_points=8))

    assert complete.has_complete_data(**window)
    assert not sparse.has_complete_data(**window)


def test_execute_rejects_inverted_window():
    use_case = FetchPoolDataUseCase(subgraph_port=FakeSubgraph(), market_data_port=FakeMarketData())
    with pytest.raises(InvalidSimulationInputError):
        use_case.execute(
            FetchPoolDataInput(
                pool_protocol="uniswapv3",
                pool_address="0xpool",
                start_timestamp=D0,
                end_timestamp=D0,
            )
        )
