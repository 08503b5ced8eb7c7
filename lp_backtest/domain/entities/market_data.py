from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Trade:
    txid: str
    pool_id: int
    timestamp: int
    amount0: Decimal
    amount1: Decimal
    amount_usd: Decimal
    sqrt_price_x96: int
    tick: int | None = None
    pool_liquidity: Decimal | None = None
    fee_tier: Decimal | None = None

    @property
    def price0_usd(self) -> Decimal | None:
        if self.amount0 == 0:
            return None
        return abs(self.amount_usd / self.amount0)

    @property
    def price1_usd(self) -> Decimal | None:
        if self.amount1 == 0:
            return None
        return abs(self.amount_usd / self.amount1)


@dataclass(frozen=True)
class PricePoint:
    timestamp: int
    sqrt_price_x96: int
    price0_usd: Decimal
    price1_usd: Decimal


@dataclass(frozen=True)
class LiquiditySnapshot:
    pool_id: int
    timestamp: int
    liquidity: Decimal


@dataclass(frozen=True)
class FeeTierSnapshot:
    pool_id: int
    timestamp: int
    fee_tier: Decimal


@dataclass(frozen=True)
class SeriesPoint:
    key: str
    timestamp: int
    value: Decimal

