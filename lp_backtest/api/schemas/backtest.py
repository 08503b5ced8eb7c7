from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class TradingStrategyRequest(BaseModel):
    position_type: Literal["long", "short"] = Field(..., description="Direction of the overlay trade.")
    entry_price_percent: Decimal = Field(
        ...,
        description="Entry offset in percent from the LP open price (negative = below).",
    )
    take_profit_percent: Decimal | None = Field(None, gt=0, description="Take-profit distance in percent.")
    stop_loss_percent: Decimal | None = Field(None, gt=0, description="Stop-loss distance in percent.")


class BacktestLpRequest(BaseModel):
    pool_protocol: str = Field("uniswapv3", description="Pool protocol: uniswapv3 or thena.")
    pool_address: str = Field(..., description="Pool address (0x...).")
    open_timestamp: int | datetime = Field(..., description="Open time, epoch ms or ISO-8601 (UTC if naive).")
    close_timestamp: int | datetime = Field(..., description="Close time, epoch ms or ISO-8601 (UTC if naive).")
    deposit_usd: Decimal | None = Field(None, gt=0, description="Deposit in USD; server default when omitted.")

    full_range: bool = Field(False, description="Provide liquidity across the whole tick range.")
    uptick_percent: Decimal | None = Field(None, description="Upper bound distance from the open price, in percent.")
    downtick_percent: Decimal | None = Field(None, description="Lower bound distance from the open price, in percent.")
    price_low: Decimal | None = Field(None, description="Fixed lower price (token1 per token0).")
    price_high: Decimal | None = Field(None, description="Fixed upper price (token1 per token0).")

    rebalance_uptick_percent: Decimal | None = Field(None, description="Rebalance band above the open price.")
    rebalance_downtick_percent: Decimal | None = Field(None, description="Rebalance band below the open price.")
    trading_strategies: list[TradingStrategyRequest] = Field(default_factory=list)


class PoolResponse(BaseModel):
    id: int
    protocol: str
    address: str
    token0_symbol: str
    token1_symbol: str
    token0_decimals: int
    token1_decimals: int
    fee_tier: int | None


class LpPositionResponse(BaseModel):
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


class TradingPositionResponse(BaseModel):
    position_type: str
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
    closed_by: str


class BacktestDiagnosticsResponse(BaseModel):
    trades_total: int
    trades_processed: int
    trades_skipped_zero_amount: int
    trades_skipped_duplicate: int
    trades_skipped_malformed: int
    rebalances: int
    warnings: list[str]


class BacktestLpResponse(BaseModel):
    pool: PoolResponse
    lp_positions: list[LpPositionResponse]
    trading_positions: list[TradingPositionResponse]
    total_fees_usd: Decimal
    diagnostics: BacktestDiagnosticsResponse
