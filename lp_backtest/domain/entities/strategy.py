from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from lp_backtest.domain.entities.lp_position import (
    PriceRangeSpec,
    RebalanceSpec,
    TradingStrategySpec,
)
from lp_backtest.domain.entities.pool import PoolProtocol


@dataclass(frozen=True)
class StrategySpec:
    name: str
    price_range: PriceRangeSpec
    amount_usd: Decimal
    position_open_days: int
    hours_check_open: list[int]
    hours_check_close: list[int]
    one_pos_per_pool: bool = True
    rebalance: RebalanceSpec | None = None
    volatility_threshold: Decimal | None = None
    iv_symbol: str = "EVIV"
    trading_strategies: list[TradingStrategySpec] = field(default_factory=list)


@dataclass(frozen=True)
class PoolWindow:
    protocol: PoolProtocol
    address: str
    start_timestamp: int
    end_timestamp: int


@dataclass(frozen=True)
class ScheduledPosition:
    open_timestamp: int
    close_timestamp: int
