from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from lp_backtest.domain.entities.market_data import (
    FeeTierSnapshot,
    LiquiditySnapshot,
    SeriesPoint,
    Trade,
)
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.infrastructure.db.engine import init_schema
from lp_backtest.infrastructure.db.repositories.market_data_repository import SqlMarketDataRepository


@pytest.fixture()
def repo() -> SqlMarketDataRepository:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_schema(engine)
    return SqlMarketDataRepository(engine)


def _pool(protocol: PoolProtocol = PoolProtocol.UNISWAP_V3, address: str = "0xPOOL") -> Pool:
    return Pool(
        id=None,
        protocol=protocol,
        address=address,
        token0_symbol="WETH",
        token1_symbol="USDC",
        token0_decimals=18,
        token1_decimals=6,
        fee_tier=3000,
        created_at=1_620_000_000_000,
    )


def _trade(pool_id: int, txid: str, timestamp: int, *, amount_usd: str = "2000", amount0: str = "1") -> Trade:
    return Trade(
        txid=txid,
        pool_id=pool_id,
        timestamp=timestamp,
        amount0=Decimal(amount0),
        amount1=Decimal("-2000"),
        amount_usd=Decimal(amount_usd),
        sqrt_price_x96=3543191142285914205922034323214,
        tick=200000,
    )


def test_save_pool_is_idempotent_and_lowercases_address(repo):
    first = repo.save_pool(_pool())
    second = repo.save_pool(_pool())

    assert first.id is not None
    assert first == second
    assert first.address == "0xpool"
    assert repo.get_pool(protocol=PoolProtocol.UNISWAP_V3, address="0xPoOl") == first
    assert repo.get_pool(protocol=PoolProtocol.THENA, address="0xpool") is None


def test_save_pool_under_another_protocol_raises(repo):
    repo.save_pool(_pool())
    with pytest.raises(RuntimeError):
        repo.save_pool(_pool(protocol=PoolProtocol.THENA))


def test_trades_are_deduplicated_by_txid(repo):
    pool = repo.save_pool(_pool())
    repo.insert_trades([_trade(pool.id, "0x1", 1000), _trade(pool.id, "0x2", 2000)])
    repo.insert_trades([_trade(pool.id, "0x1", 1000)])

    trades = repo.get_trades(pool_id=pool.id, start_timestamp=0, end_timestamp=10_000)

    assert [trade.txid for trade in trades] == ["0x1", "0x2"]
    assert trades[0].sqrt_price_x96 == 3543191142285914205922034323214
    assert trades[0].amount_usd == Decimal("2000")


def test_trades_carry_latest_liquidity_and_fee_tier(repo):
    pool = repo.save_pool(_pool())
    repo.insert_trades([_trade(pool.id, "0x1", 1500), _trade(pool.id, "0x2", 500)])
    repo.insert_liquidity(
        [
            LiquiditySnapshot(pool_id=pool.id, timestamp=1000, liquidity=Decimal("111")),
            LiquiditySnapshot(pool_id=pool.id, timestamp=2000, liquidity=Decimal("222")),
        ]
    )
    repo.insert_fee_tiers([FeeTierSnapshot(pool_id=pool.id, timestamp=1000, fee_tier=Decimal("450"))])

    trades = repo.get_trades(pool_id=pool.id, start_timestamp=0, end_timestamp=10_000)

    assert [trade.txid for trade in trades] == ["0x2", "0x1"]
    assert trades[0].pool_liquidity is None
    assert trades[0].fee_tier is None
    assert trades[1].pool_liquidity == Decimal("111")
    assert trades[1].fee_tier == Decimal("450")
    assert repo.count_liquidity_points(pool_id=pool.id, start_timestamp=0, end_timestamp=1500) == 1


def test_price_point_picks_nearest_qualifying_trade(repo):
    pool = repo.save_pool(_pool())
    repo.insert_trades(
        [
            _trade(pool.id, "0xsmall", 1000, amount_usd="5"),
            _trade(pool.id, "0xzero", 1001, amount0="0"),
            _trade(pool.id, "0xfar", 5000),
        ]
    )

    point = repo.get_price_point(pool_id=pool.id, timestamp=1000, min_amount_usd=Decimal("10"))

    assert point.timestamp == 5000
    assert point.price0_usd == Decimal("2000")
    assert point.price1_usd == Decimal("1")
    assert repo.get_price_point(pool_id=pool.id, timestamp=1000, min_amount_usd=Decimal("1e9")) is None


def test_series_lookups_return_latest_value_at_or_before(repo):
    repo.insert_implied_volatility(
        [
            SeriesPoint(key="EVIV", timestamp=1000, value=Decimal("55.5")),
            SeriesPoint(key="EVIV", timestamp=2000, value=Decimal("60")),
        ]
    )
    repo.insert_spot_prices([SeriesPoint(key="ETH", timestamp=1000, value=Decimal("2000"))])

    assert repo.get_implied_volatility(symbol="EVIV", timestamp=1500) == Decimal("55.5")
    assert repo.get_implied_volatility(symbol="EVIV", timestamp=999) is None
    assert repo.get_spot_price(symbol="ETH", timestamp=5000) == Decimal("2000")


def test_realized_volatility_upsert_overwrites(repo):
    pool = repo.save_pool(_pool())
    repo.upsert_realized_volatility(pool_id=pool.id, points=[(1000, Decimal("40"))])
    repo.upsert_realized_volatility(pool_id=pool.id, points=[(1000, Decimal("45"))])

    with repo._engine.connect() as conn:
        rows = conn.execute(text("SELECT timestamp, realized_volatility FROM volatility")).all()
    assert [(row[0], Decimal(row[1])) for row in rows] == [(1000, Decimal("45"))]


def test_price_samples_are_ordered(repo):
    pool = repo.save_pool(_pool())
    repo.insert_trades([_trade(pool.id, "0xb", 2000), _trade(pool.id, "0xa", 1000)])

    samples = repo.get_price_samples(pool_id=pool.id, start_timestamp=0, end_timestamp=5000)

    assert [timestamp for timestamp, _ in samples] == [1000, 2000]
    assert repo.insert_trades([]) == 0


def test_replace_pools_overwrites_table_and_keeps_ids(repo):
    repo.save_pool(_pool(address="0xold"))
    imported = [
        replace(_pool(address="0xeth"), id=7),
        replace(_pool(protocol=PoolProtocol.THENA, address="0xbnb"), id=3, fee_tier=None),
    ]

    assert repo.replace_pools(imported) == 2

    pools = repo.list_pools()
    assert [(pool.id, pool.address) for pool in pools] == [(3, "0xbnb"), (7, "0xeth")]
    assert pools[0].fee_tier is None
    assert pools[1].created_at == 1_620_000_000_000
    assert repo.get_pool(protocol=PoolProtocol.UNISWAP_V3, address="0xold") is None
