from __future__ import annotations

from typing import Protocol

from lp_backtest.domain.entities.market_data import FeeTierSnapshot, LiquiditySnapshot, Trade
from lp_backtest.domain.entities.pool import Pool, PoolCandidate, PoolProtocol


class SubgraphPort(Protocol):
    def search_pools(
        self,
        *,
        protocol: PoolProtocol,
        symbol0: str | None,
        symbol1: str | None,
        fee_tier: int | None = None,
    ) -> list[PoolCandidate]:
        ...

    def fetch_pool(self, *, protocol: PoolProtocol, address: str) -> Pool | None:
        ...

    def fetch_trades(
        self,
        *,
        pool: Pool,
        start_timestamp: int,
        end_timestamp: int,
    ) -> list[Trade]:
        ...

    def fetch_liquidity(
        self,
        *,
        pool: Pool,
        start_timestamp: int,
        end_timestamp: int,
    ) -> list[LiquiditySnapshot]:
        ...

    def fetch_fee_tiers(
        self,
        *,
        pool: Pool,
        start_timestamp: int,
        end_timestamp: int,
    ) -> list[FeeTierSnapshot]:
        ...
