from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import text

from lp_backtest.application.ports.market_data_port import MarketDataPort, SeriesPort
from lp_backtest.application.ports.simulate_lp_port import SimulateLpPort
from lp_backtest.domain.entities.market_data import (
    FeeTierSnapshot,
    LiquiditySnapshot,
    PricePoint,
    SeriesPoint,
    Trade,
)
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.infrastructure.db.mappers.market_data_mapper import (
    map_pool_to_row,
    map_row_to_pool,
    map_row_to_price_point,
    map_row_to_trade,
    map_trade_to_row,
)


BATCH_SIZE = 999
logger = logging.getLogger(__name__)


class SqlMarketDataRepository(SimulateLpPort, MarketDataPort, SeriesPort):
    def __init__(self, engine):
        self._engine = engine

    def get_pool(self, *, protocol: PoolProtocol, address: str) -> Pool | None:
        sql = """
            SELECT id, type, address, token0_symbol, token1_symbol,
                   token0_decimals, token1_decimals, fee_tier, created
            FROM pools
            WHERE type = :type
              AND address = :address
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(
                text(sql),
                {"type": protocol.value, "address": address.lower()},
            ).mappings().first()
        if not row:
            logger.info(
                "market_data_repo: pool_not_found protocol=%s pool=%s",
                protocol.value,
                address.lower(),
            )
            return None
        return map_row_to_pool(row)

    def save_pool(self, pool: Pool) -> Pool:
        sql = """
            INSERT INTO pools (
                type, address, token0_symbol, token1_symbol,
                token0_decimals, token1_decimals, fee_tier, created
            )
            VALUES (
                :type, :address, :token0_symbol, :token1_symbol,
                :token0_decimals, :token1_decimals, :fee_tier, :created
            )
            ON CONFLICT (address) DO NOTHING
        """
        with self._engine.begin() as conn:
            conn.execute(text(sql), map_pool_to_row(pool))
        saved = self.get_pool(protocol=pool.protocol, address=pool.address)
        if saved is None:
            raise RuntimeError(f"Pool {pool.address} is stored under another protocol.")
        return saved

    def list_pools(self) -> list[Pool]:
        sql = """
            SELECT id, type, address, token0_symbol, token1_symbol,
                   token0_decimals, token1_decimals, fee_tier, created
            FROM pools
            ORDER BY id
        """
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql)).mappings().all()
        return [map_row_to_pool(row) for row in rows]

    def replace_pools(self, pools: list[Pool]) -> int:
        """Overwrite the pool table. Stored market data keeps its pool ids."""
        columns = "type, address, token0_symbol, token1_symbol, token0_decimals, token1_decimals, fee_tier, created"
        values = ":type, :address, :token0_symbol, :token1_symbol, :token0_decimals, :token1_decimals, :fee_tier, :created"
        with_id = text(f"INSERT INTO pools (id, {columns}) VALUES (:id, {values})")
        without_id = text(f"INSERT INTO pools ({columns}) VALUES ({values})")
        with self._engine.begin() as conn:
            conn.execute(text("DELETE FROM pools"))
            for pool in pools:
                row = map_pool_to_row(pool)
                conn.execute(with_id if pool.id is not None else without_id, row)
        logger.info("market_data_repo: pools_replaced rows=%s", len(pools))
        return len(pools)

    def insert_trades(self, trades: list[Trade]) -> int:
        sql = """
            INSERT INTO trades (
                txid, pool_id, timestamp, amount0, amount1, amount_usd, sqrt_price_x96, tick
            )
            VALUES (
                :txid, :pool_id, :timestamp, :amount0, :amount1, :amount_usd, :sqrt_price_x96, :tick
            )
            ON CONFLICT (txid) DO NOTHING
        """
        return self._insert_batches(sql, [map_trade_to_row(trade) for trade in trades], table="trades")

    def insert_liquidity(self, snapshots: list[LiquiditySnapshot]) -> int:
        sql = """
            INSERT INTO liquidity (pool_id, timestamp, liquidity)
            VALUES (:pool_id, :timestamp, :liquidity)
            ON CONFLICT (pool_id, timestamp) DO NOTHING
        """
        rows = [
            {"pool_id": item.pool_id, "timestamp": item.timestamp, "liquidity": str(item.liquidity)}
            for item in snapshots
        ]
        return self._insert_batches(sql, rows, table="liquidity")

    def insert_fee_tiers(self, snapshots: list[FeeTierSnapshot]) -> int:
        sql = """
            INSERT INTO fee_tiers (pool_id, timestamp, fee_tier)
            VALUES (:pool_id, :timestamp, :fee_tier)
            ON CONFLICT (pool_id, timestamp) DO NOTHING
        """
        rows = [
            {"pool_id": item.pool_id, "timestamp": item.timestamp, "fee_tier": str(item.fee_tier)}
            for item in snapshots
        ]
        return self._insert_batches(sql, rows, table="fee_tiers")

    def insert_spot_prices(self, points: list[SeriesPoint]) -> int:
        sql = """
            INSERT INTO spot_prices (symbol, timestamp, price)
            VALUES (:key, :timestamp, :value)
            ON CONFLICT (symbol, timestamp) DO NOTHING
        """
        return self._insert_batches(sql, _series_rows(points), table="spot_prices")

    def insert_implied_volatility(self, points: list[SeriesPoint]) -> int:
        sql = """
            INSERT INTO iv_hist (symbol, timestamp, value)
            VALUES (:key, :timestamp, :value)
            ON CONFLICT (symbol, timestamp) DO NOTHING
        """
        return self._insert_batches(sql, _series_rows(points), table="iv_hist")

    def upsert_realized_volatility(self, *, pool_id: int, points: list[tuple[int, Decimal]]) -> int:
        sql = """
            INSERT INTO volatility (pool_id, timestamp, realized_volatility)
            VALUES (:pool_id, :timestamp, :realized_volatility)
            ON CONFLICT (pool_id, timestamp)
            DO UPDATE SET realized_volatility = excluded.realized_volatility
        """
        rows = [
            {"pool_id": pool_id, "timestamp": timestamp, "realized_volatility": str(value)}
            for timestamp, value in points
        ]
        return self._insert_batches(sql, rows, table="volatility")

    def count_liquidity_points(self, *, pool_id: int, start_timestamp: int, end_timestamp: int) -> int:
        sql = """
            SELECT COUNT(*) AS total
            FROM liquidity
            WHERE pool_id = :pool_id
              AND timestamp BETWEEN :start_ts AND :end_ts
        """
        with self._engine.connect() as conn:
            total = conn.execute(
                text(sql),
                {"pool_id": pool_id, "start_ts": start_timestamp, "end_ts": end_timestamp},
            ).scalar_one()
        return int(total or 0)

    def get_price_point(self, *, pool_id: int, timestamp: int, min_amount_usd: Decimal) -> PricePoint | None:
        sql = """
            SELECT timestamp, sqrt_price_x96, amount0, amount1, amount_usd
            FROM trades
            WHERE pool_id = :pool_id
              AND CAST(amount_usd AS REAL) >= :min_amount_usd
              AND CAST(amount0 AS REAL) <> 0
              AND CAST(amount1 AS REAL) <> 0
            ORDER BY ABS(timestamp - :target_ts) ASC, timestamp ASC
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(
                text(sql),
                {
                    "pool_id": pool_id,
                    "min_amount_usd": float(min_amount_usd),
                    "target_ts": timestamp,
                },
            ).mappings().first()
        if not row:
            logger.warning(
                "market_data_repo: price_point_not_found pool_id=%s timestamp=%s",
                pool_id,
                timestamp,
            )
            return None
        return map_row_to_price_point(row)

    def get_trades(self, *, pool_id: int, start_timestamp: int, end_timestamp: int) -> list[Trade]:
        sql = """
            SELECT
                t.txid,
                t.pool_id,
                t.timestamp,
                t.amount0,
                t.amount1,
                t.amount_usd,
                t.sqrt_price_x96,
                t.tick,
                (
                    SELECT l.liquidity
                    FROM liquidity l
                    WHERE l.pool_id = t.pool_id
                      AND l.timestamp <= t.timestamp
                    ORDER BY l.timestamp DESC
                    LIMIT 1
                ) AS current_liquidity,
                (
                    SELECT f.fee_tier
                    FROM fee_tiers f
                    WHERE f.pool_id = t.pool_id
                      AND f.timestamp <= t.timestamp
                    ORDER BY f.timestamp DESC
                    LIMIT 1
                ) AS current_fee_tier
            FROM trades t
            WHERE t.pool_id = :pool_id
              AND t.timestamp BETWEEN :start_ts AND :end_ts
            ORDER BY t.timestamp ASC, t.id ASC
        """
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(sql),
                {"pool_id": pool_id, "start_ts": start_timestamp, "end_ts": end_timestamp},
            ).mappings().all()
        return [map_row_to_trade(row) for row in rows]

    def get_price_samples(self, *, pool_id: int, start_timestamp: int, end_timestamp: int) -> list[tuple[int, int]]:
        sql = """
            SELECT timestamp, sqrt_price_x96
            FROM trades
            WHERE pool_id = :pool_id
              AND timestamp BETWEEN :start_ts AND :end_ts
            ORDER BY timestamp ASC, id ASC
        """
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(sql),
                {"pool_id": pool_id, "start_ts": start_timestamp, "end_ts": end_timestamp},
            ).mappings().all()
        return [(int(row["timestamp"]), int(row["sqrt_price_x96"])) for row in rows]

    def get_implied_volatility(self, *, symbol: str, timestamp: int) -> Decimal | None:
        return self._latest_series_value(table="iv_hist", column="value", symbol=symbol, timestamp=timestamp)

    def get_spot_price(self, *, symbol: str, timestamp: int) -> Decimal | None:
        return self._latest_series_value(table="spot_prices", column="price", symbol=symbol, timestamp=timestamp)

    def _latest_series_value(self, *, table: str, column: str, symbol: str, timestamp: int) -> Decimal | None:
        sql = f"""
            SELECT {column}
            FROM {table}
            WHERE symbol = :symbol
              AND timestamp <= :target_ts
            ORDER BY timestamp DESC
            LIMIT 1
        """
        with self._engine.connect() as conn:
            value = conn.execute(text(sql), {"symbol": symbol, "target_ts": timestamp}).scalar()
        return Decimal(str(value)) if value is not None else None

    def _insert_batches(self, sql: str, rows: list[dict], *, table: str) -> int:
        if not rows:
            return 0
        with self._engine.begin() as conn:
            for start in range(0, len(rows), BATCH_SIZE):
                conn.execute(text(sql), rows[start : start + BATCH_SIZE])
        logger.info("market_data_repo: inserted table=%s rows=%s", table, len(rows))
        return len(rows)


def _series_rows(points: list[SeriesPoint]) -> list[dict]:
    return [{"key": item.key, "timestamp": item.timestamp, "value": str(item.value)} for item in points]
