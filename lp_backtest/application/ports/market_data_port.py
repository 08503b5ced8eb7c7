from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from lp_backtest.domain.entities.market_data import (
    FeeTierSnapshot,
    LiquiditySnapshot,
    SeriesPoint,
    Trade,
)
from lp_backtest.domain.entities.pool import Pool, PoolProtocol


class MarketDataPort(Protocol):
    def get_pool(self, *, protocol: PoolProtocol, address: str) -> Pool | None:
        ...

    def save_pool(self, pool: Pool) -> Pool:
        ...

    def insert_trades(self, trades: list[Trade]) -> int:
        ...

    def insert_liquidity(self, snapshots: list[LiquiditySnapshot]) -> int:
        ...

    def insert_fee_tiers(self, snapshots: list[FeeTierSnapshot]) -> int:
        ...

    def count_liquidity_points(
        self,
        *,
        pool_id: int,
        start_timestamp: int,
        end_timestamp: int,
    ) -> int:
        ...

    def get_price_samples(
        self,
        *,
        pool_id: int,
        start_timestamp: int,
        end_timestamp: int,
    ) -> list[tuple[int, int]]:
        ...

    def upsert_realized_volatility(self, *, pool_id: int, points: list[tuple[int, Decimal]]) -> int:
        ...


class SeriesPort(Protocol):
    def get_implied_volatility(self, *, symbol: str, timestamp: int) -> Decimal | None:
        ...

    def get_spot_price(self, *, symbol: str, timestamp: int) -> Decimal | None:
        ...

    def insert_implied_volatility(self, points: list[SeriesPoint]) -> int:
        ...

    def insert_spot_prices(self, points: list[SeriesPoint]) -> int:
        ...
