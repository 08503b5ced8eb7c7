from __future__ import annotations

from decimal import Decimal

from lp_backtest.application.dto.run_strategy import RunStrategyInput
from lp_backtest.application.use_cases.fetch_pool_data import FetchPoolDataUseCase
from lp_backtest.application.use_cases.run_strategy import RunStrategyUseCase
from lp_backtest.application.use_cases.simulate_lp import SimulateLpUseCase
from lp_backtest.domain.entities.lp_position import PriceRangeSpec
from lp_backtest.domain.entities.market_data import PricePoint
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.domain.entities.strategy import PoolWindow, StrategySpec
from lp_backtest.domain.services.univ3_math import price_to_sqrt_price_x96

D0 = 1_704_067_200_000
DAY = 86_400_000

POOL = Pool(
    id=4,
    protocol=PoolProtocol.UNISWAP_V3,
    address="0xpool",
    token0_symbol="WETH",
    token1_symbol="USDC",
    token0_decimals=18,
    token1_decimals=6,
    fee_tier=500,
)


class FakeStore:
    def __init__(self, *, missing_points: set[int] | None = None):
        self.missing_points = missing_points or set()

    def get_pool(self, *, protocol, address):
        return POOL if address == POOL.address else None

    def count_liquidity_points(self, *, pool_id, start_timestamp, end_timestamp):
        return 10_000

    def get_price_point(self, *, pool_id, timestamp, min_amount_usd):
        if timestamp in self.missing_points:
            return None
        return PricePoint(
            timestamp=timestamp,
            sqrt_price_x96=price_to_sqrt_price_x96(Decimal("2000"), 18, 6),
            price0_usd=Decimal("2000"),
            price1_usd=Decimal("1"),
        )

    def get_trades(self, *, pool_id, start_timestamp, end_timestamp):
        return []


class FakeSubgraph:
    def fetch_pool(self, *, protocol, address):
        return None


class FakeSeries:
    def get_implied_volatility(self, *, symbol, timestamp):
        return None


def _use_case(store: FakeStore) -> RunStrategyUseCase:
    return RunStrategyUseCase(
        simulate_lp_use_case=SimulateLpUseCase(simulate_lp_port=store),
        fetch_pool_data_use_case=FetchPoolDataUseCase(subgraph_port=FakeSubgraph(), market_data_port=store),
        series_port=FakeSeries(),
    )


def _strategy() -> StrategySpec:
    return StrategySpec(
        name="daily",
        price_range=PriceRangeSpec(uptick_percent=Decimal("5"), downtick_percent=Decimal("5")),
        amount_usd=Decimal("1000"),
        position_open_days=1,
        hours_check_open=[0],
        hours_check_close=[0],
    )


def _window(address: str = "0xpool") -> PoolWindow:
    return PoolWindow(
        protocol=PoolProtocol.UNISWAP_V3,
        address=address,
        start_timestamp=D0,
        end_timestamp=D0 + 3 * DAY,
    )


def test_strategy_simulates_every_scheduled_position():
    output = _use_case(FakeStore()).execute(RunStrategyInput(strategy=_strategy(), pools=[_window()]))

    assert output.failed_pools == []
    report = output.reports[0]
    assert report.strategy_name == "daily"
    assert report.pool == POOL
    assert [group[0].open_timestamp for group in report.lp_positions] == [D0, D0 + DAY, D0 + 2 * DAY]
    assert report.skipped_positions == []
    assert report.lp_total_fees_usd == 0
    assert [item.position_type for item in report.trading_summary] == ["long", "short", "total"]


def test_positions_without_price_data_are_skipped():
    store = FakeStore(missing_points={D0 + DAY})
    report = _use_case(store).execute(RunStrategyInput(strategy=_strategy(), pools=[_window()])).reports[0]

    # D0 + DAY is the close of the first and the open of the second position.
    assert len(report.lp_positions) == 1
    assert [item.reason for item in report.skipped_positions] == [
        "close_price_not_found",
        "open_price_not_found",
    ]


def test_unknown_pool_is_reported_as_failed():
    output = _use_case(FakeStore()).execute(
        RunStrategyInput(strategy=_strategy(), pools=[_window("0xother"), _window()])
    )

    assert output.failed_pools == ["0xother"]
    assert len(output.reports) == 1
