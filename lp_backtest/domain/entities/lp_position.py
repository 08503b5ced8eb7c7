from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class PositionState(str, Enum):
    OPEN_IN_RANGE = "open_in_range"
    OPEN_OUT_OF_RANGE = "open_out_of_range"
    CLOSED = "closed"


class PositionType(str, Enum):
    LONG = "long"
    SHORT = "short"


class ClosedBy(str, Enum):
    TAKE_PROFIT = "takeProfit"
    STOP_LOSS = "stopLoss"
    END_OF_PERIOD = "endOfPeriod"


@dataclass(frozen=True)
class PriceRange:
    low: Decimal
    high: Decimal

    def contains(self, price: Decimal) -> bool:
        return self.low <= price <= self.high


@dataclass(frozen=True)
class PriceRangeSpec:
    full_range: bool = False
    uptick_percent: Decimal | None = None
    downtick_percent: Decimal | None = None
    price_low: Decimal | None = None
    price_high: Decimal | None = None

    @property
    def is_fixed(self) -> bool:
        return self.price_low is not None and self.price_high is not None


@dataclass(frozen=True)
class RebalanceSpec:
    uptick_percent: Decimal
    downtick_percent: Decimal


@dataclass(frozen=True)
class TradingStrategySpec:
    position_type: PositionType
    entry_price_percent: Decimal
    take_profit_percent: Decimal | None = None
    stop_loss_percent: Decimal | None = None

    @property
    def key(self) -> tuple[PositionType, Decimal]:
        return (self.position_type, self.entry_price_percent)


@dataclass(frozen=True)
class LpPositionConfig:
    open_timestamp: int
    close_timestamp: int
    price_range: PriceRangeSpec
    deposit_usd: Decimal
    rebalance: RebalanceSpec | None = None
    trading_strategies: list[TradingStrategySpec] = field(default_factory=list)


@dataclass(frozen=True)
class SimulatedLpPosition:
    open_timestamp: int
    close_timestamp: int
    open_price: Decimal
    close_price: Decimal
    price_low: Decimal
    price_high: Decimal
    tick_lower: int
    tick_upper: int
    amount_usd: Decimal
    amount0: Decimal
    amount1: Decimal
    fees_collected: Decimal
    il_percentage: Decimal
    pnl_percent: Decimal
    trades_in_range: int
    trades_out_of_range: int
    state: PositionState = PositionState.CLOSED


@dataclass(frozen=True)
class TradingPosition:
    position_type: PositionType
    open_timestamp: int
    close_timestamp: int
    open_price: Decimal
    close_price: Decimal
    entry_amount: Decimal
    entry_price_percent: Decimal
    take_profit_percent: Decimal | None
    stop_loss_percent: Decimal | None
    pnl_percent: Decimal
    pnl_usd: Decimal
    closed_by: ClosedBy


@dataclass(frozen=True)
class LpSimulationDiagnostics:
    trades_total: int
    trades_processed: int
    trades_skipped_zero_amount: int
    trades_skipped_duplicate: int
    trades_skipped_malformed: int
    rebalances: int
    warnings: list[str]


@dataclass(frozen=True)
class LpSimulationResult:
    lp_positions: list[SimulatedLpPosition]
    trading_positions: list[TradingPosition]
    diagnostics: LpSimulationDiagnostics
