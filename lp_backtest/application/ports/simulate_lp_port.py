from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from lp_backtest.domain.entities.market_data import PricePoint, Trade
from lp_backtest.domain.entities.pool import Pool, PoolProtocol


class SimulateLpPort(Protocol):
    def get_pool(self, *, protocol: PoolProtocol, address: str) -> Pool | None:
        ...

    def get_price_point(
        self,
        *,
        pool_id: int,
        timestamp: int,
        min_amount_usd: Decimal,
    ) -> PricePoint | None:
        ...

    def get_trades(
        self,
        *,
        pool_id: int,
        start_timestamp: int,
        end_timestamp: int,
    ) -> list[Trade]:
        ...
