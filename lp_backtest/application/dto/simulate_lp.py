from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from lp_backtest.domain.entities.lp_position import (
    LpSimulationDiagnostics,
    SimulatedLpPosition,
    TradingPosition,
)
from lp_backtest.domain.entities.pool import Pool


@dataclass(frozen=True)
class TradingStrategyInput:
    position_type: str
    entry_price_percent: Decimal
    take_profit_percent: Decimal | None = None
    stop_loss_percent: Decimal | None = None


@dataclass(frozen=True)
class SimulateLpInput:
    pool_protocol: str
    pool_address: str
    open_timestamp: int
    close_timestamp: int
    deposit_usd: Decimal | None = None
    full_range: bool = False
    uptick_percent: Decimal | None = None
    downtick_percent: Decimal | None = None
    price_low: Decimal | None = None
    price_high: Decimal | None = None
    rebalance_uptick_percent: Decimal | None = None
    rebalance_downtick_percent: Decimal | None = None
    trading_strategies: list[TradingStrategyInput] = field(default_factory=list)


@dataclass(frozen=True)
class SimulateLpOutput:
    pool: Pool
    lp_positions: list[SimulatedLpPosition]
    trading_positions: list[TradingPosition]
    diagnostics: LpSimulationDiagnostics
