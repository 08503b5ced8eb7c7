from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from lp_backtest.domain.entities.market_data import PricePoint, Trade
from lp_backtest.domain.entities.pool import Pool, PoolProtocol


def _decimal_or_none(value: Any) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def map_row_to_pool(row: Mapping[str, Any]) -> Pool:
    return Pool(
        id=int(row["id"]),
        protocol=PoolProtocol(str(row["type"])),
        address=str(row["address"]).lower(),
        token0_symbol=str(row["token0_symbol"]),
        token1_symbol=str(row["token1_symbol"]),
        token0_decimals=int(row["token0_decimals"] or 0),
        token1_decimals=int(row["token1_decimals"] or 0),
        fee_tier=int(row["fee_tier"]) if row["fee_tier"] is not None else None,
        created_at=int(row["created"]) if row["created"] is not None else None,
    )


def map_pool_to_row(pool: Pool) -> dict[str, Any]:
    return {
        "id": pool.id,
        "type": pool.protocol.value,
        "address": pool.address.lower(),
        "token0_symbol": pool.token0_symbol,
        "token1_symbol": pool.token1_symbol,
        "token0_decimals": pool.token0_decimals,
        "token1_decimals": pool.token1_decimals,
        "fee_tier": pool.fee_tier,
        "created": pool.created_at,
    }


def map_row_to_trade(row: Mapping[str, Any]) -> Trade:
    return Trade(
        txid=str(row["txid"]),
        pool_id=int(row["pool_id"]),
        timestamp=int(row["timestamp"]),
        amount0=Decimal(str(row["amount0"])),
        amount1=Decimal(str(row["amount1"])),
        amount_usd=Decimal(str(row["amount_usd"])),
        sqrt_price_x96=int(row["sqrt_price_x96"]),
        tick=int(row["tick"]) if row["tick"] is not None else None,
        pool_liquidity=_decimal_or_none(row.get("current_liquidity")),
        fee_tier=_decimal_or_none(row.get("current_fee_tier")),
    )


def map_row_to_price_point(row: Mapping[str, Any]) -> PricePoint:
    amount_usd = Decimal(str(row["amount_usd"]))
    amount0 = Decimal(str(row["amount0"]))
    amount1 = Decimal(str(row["amount1"]))
    return PricePoint(
        timestamp=int(row["timestamp"]),
        sqrt_price_x96=int(row["sqrt_price_x96"]),
        price0_usd=abs(amount_usd / amount0),
        price1_usd=abs(amount_usd / amount1),
    )


def map_trade_to_row(trade: Trade) -> dict[str, Any]:
    return {
        "txid": trade.txid,
        "pool_id": trade.pool_id,
        "timestamp": trade.timestamp,
        "amount0": str(trade.amount0),
        "amount1": str(trade.amount1),
        "amount_usd": str(trade.amount_usd),
        "sqrt_price_x96": str(trade.sqrt_price_x96),
        "tick": trade.tick,
    }
