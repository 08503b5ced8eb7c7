from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class PoolProtocol(str, Enum):
    UNISWAP_V3 = "uniswapv3"
    THENA = "thena"

    @property
    def dynamic_fee(self) -> bool:
        return self is PoolProtocol.THENA


@dataclass(frozen=True)
class Pool:
    id: int | None
    protocol: PoolProtocol
    address: str
    token0_symbol: str
    token1_symbol: str
    token0_decimals: int
    token1_decimals: int
    fee_tier: int | None
    created_at: int | None = None

    @property
    def symbol(self) -> str:
        return f"{self.token0_symbol}/{self.token1_symbol}"


@dataclass(frozen=True)
class PoolCandidate:
    """Search hit from the subgraph, ranked by total value locked."""

    protocol: PoolProtocol
    address: str
    token0_symbol: str
    token1_symbol: str
    fee_tier: int | None
    total_value_locked_usd: Decimal
    volume_usd: Decimal
