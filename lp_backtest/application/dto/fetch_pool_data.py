from __future__ import annotations

from dataclasses import dataclass

from lp_backtest.domain.entities.pool import Pool


@dataclass(frozen=True)
class FetchPoolDataInput:
    pool_protocol: str
    pool_address: str
    start_timestamp: int
    end_timestamp: int


@dataclass(frozen=True)
class FetchPoolDataOutput:
    pool: Pool
    start_timestamp: int
    end_timestamp: int
    trades_fetched: int
    liquidity_points_fetched: int
    fee_tier_points_fetched: int
    volatility_points_written: int
