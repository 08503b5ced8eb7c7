from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from lp_backtest.domain.entities.lp_position import SimulatedLpPosition, TradingPosition
from lp_backtest.domain.entities.pool import Pool
from lp_backtest.domain.entities.strategy import PoolWindow, ScheduledPosition, StrategySpec
from lp_backtest.domain.services.statistics import TradingSummary


@dataclass(frozen=True)
class RunStrategyInput:
    strategy: StrategySpec
    pools: list[PoolWindow]
    check_data: bool = True


@dataclass(frozen=True)
class SkippedPosition:
    scheduled: ScheduledPosition
    reason: str


@dataclass(frozen=True)
class StrategyPoolReport:
    strategy_name: str
    pool: Pool
    lp_positions: list[list[SimulatedLpPosition]]
    trading_positions: list[TradingPosition]
    skipped_positions: list[SkippedPosition]
    lp_average_pnl_percent: Decimal
    lp_sharpe_ratio: Decimal
    lp_total_fees_usd: Decimal
    trading_summary: list[TradingSummary]


@dataclass(frozen=True)
class RunStrategyOutput:
    reports: list[StrategyPoolReport]
    failed_pools: list[str]
