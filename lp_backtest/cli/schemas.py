from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Literal

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from lp_backtest.application.dto.simulate_lp import TradingStrategyInput
from lp_backtest.application.use_cases.simulate_lp import (
    build_range_spec,
    build_rebalance_spec,
    build_trading_strategy,
)
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.domain.entities.strategy import StrategySpec


def to_timestamp_ms(value: str) -> int:
    stamp = pd.Timestamp(value)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return round(stamp.timestamp() * 1000)


class _FileModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PriceRangeDefinition(_FileModel):
    full_range: bool = Field(False, alias="fullRange")
    uptick_percent: Decimal | None = Field(None, alias="uptickPercent")
    downtick_percent: Decimal | None = Field(None, alias="downtickPercent")
    price_low: Decimal | None = Field(None, alias="priceLow")
    price_high: Decimal | None = Field(None, alias="priceHigh")


class RebalanceDefinition(_FileModel):
    uptick_percent: Decimal = Field(..., alias="uptickPercent")
    downtick_percent: Decimal = Field(..., alias="downtickPercent")


class TradingDefinition(_FileModel):
    position_type: Literal["long", "short"] = Field(..., alias="type")
    entry_price_percent: Decimal = Field(..., alias="entryPricePercent")
    take_profit_percent: Decimal | None = Field(None, alias="takeProfitPercent")
    stop_loss_percent: Decimal | None = Field(None, alias="stopLossPercent")


class StrategyDefinition(_FileModel):
    name: str = Field(..., alias="strategyName", min_length=1)
    price_range: PriceRangeDefinition = Field(..., alias="priceRange")
    rebalance: RebalanceDefinition | None = None
    amount_usd: Decimal | None = Field(None, alias="amountUSD", gt=0)
    position_open_days: int = Field(..., alias="positionOpenDays", ge=1)
    hours_check_open: list[int] = Field(..., alias="hoursCheckOpen")
    hours_check_close: list[int] = Field(..., alias="hoursCheckClose")
    one_pos_per_pool: bool = Field(True, alias="onePosPerPool")
    volatility_threshold: Decimal | None = Field(None, alias="volatilityThreshold")
    iv_symbol: str = Field("EVIV", alias="ivSymbol")
    trading: list[TradingDefinition] = Field(default_factory=list)

    def to_spec(self, *, default_amount_usd: Decimal) -> StrategySpec:
        return StrategySpec(
            name=self.name,
            price_range=build_range_spec(
                full_range=self.price_range.full_range,
                uptick_percent=self.price_range.uptick_percent,
                downtick_percent=self.price_range.downtick_percent,
                price_low=self.price_range.price_low,
                price_high=self.price_range.price_high,
            ),
            amount_usd=self.amount_usd if self.amount_usd is not None else default_amount_usd,
            position_open_days=self.position_open_days,
            hours_check_open=list(self.hours_check_open),
            hours_check_close=list(self.hours_check_close),
            one_pos_per_pool=self.one_pos_per_pool,
            rebalance=build_rebalance_spec(
                uptick_percent=self.rebalance.uptick_percent if self.rebalance else None,
                downtick_percent=self.rebalance.downtick_percent if self.rebalance else None,
            ),
            volatility_threshold=self.volatility_threshold,
            iv_symbol=self.iv_symbol,
            trading_strategies=[
                build_trading_strategy(
                    TradingStrategyInput(
                        position_type=item.position_type,
                        entry_price_percent=item.entry_price_percent,
                        take_profit_percent=item.take_profit_percent,
                        stop_loss_percent=item.stop_loss_percent,
                    )
                )
                for item in self.trading
            ],
        )


class PoolRowDefinition(_FileModel):
    pool_type: str = Field(..., alias="poolType")
    pool_address: str = Field(..., alias="poolAddress")
    start_date: str | None = Field(None, alias="startDate")
    end_date: str | None = Field(None, alias="endDate")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @property
    def start_timestamp(self) -> int | None:
        return to_timestamp_ms(self.start_date) if self.start_date else None

    @property
    def end_timestamp(self) -> int | None:
        return to_timestamp_ms(self.end_date) if self.end_date else None


class PoolTableRow(_FileModel):
    id: int | None = None
    type: PoolProtocol
    address: str = Field(..., min_length=1)
    token0_symbol: str
    token1_symbol: str
    token0_decimals: int = Field(..., ge=0)
    token1_decimals: int = Field(..., ge=0)
    fee_tier: int | None = None
    created: int | None = None

    @field_validator("id", "fee_tier", "created", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    def to_pool(self) -> Pool:
        return Pool(
            id=self.id,
            protocol=self.type,
            address=self.address.lower(),
            token0_symbol=self.token0_symbol,
            token1_symbol=self.token1_symbol,
            token0_decimals=self.token0_decimals,
            token1_decimals=self.token1_decimals,
            fee_tier=self.fee_tier,
            created_at=self.created,
        )


_STRATEGIES = TypeAdapter(list[StrategyDefinition])


def load_strategies(path: str | Path) -> list[StrategyDefinition]:
    return _STRATEGIES.validate_json(Path(path).read_text(encoding="utf-8"))


def load_pool_rows(path: str | Path) -> list[PoolRowDefinition]:
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    rows = []
    for record in frame.to_dict(orient="records"):
        # Blank lines come through as empty poolType.
        if not str(record.get("poolType", "")).strip():
            continue
        rows.append(PoolRowDefinition.model_validate(record))
    return rows


def load_pool_table(path: str | Path) -> list[Pool]:
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    return [
        PoolTableRow.model_validate(record).to_pool()
        for record in frame.to_dict(orient="records")
        if str(record.get("address", "")).strip()
    ]
