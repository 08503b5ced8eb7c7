from __future__ import annotations

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lp_backtest.infrastructure.db.engine import Base


class PoolModel(Base):
    __tablename__ = "pools"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    token0_symbol: Mapped[str] = mapped_column(Text, nullable=False)
    token1_symbol: Mapped[str] = mapped_column(Text, nullable=False)
    token0_decimals: Mapped[int] = mapped_column(Integer, nullable=False)
    token1_decimals: Mapped[int] = mapped_column(Integer, nullable=False)
    fee_tier: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


class TradeModel(Base):
    __tablename__ = "trades"
    __table_args__ = (Index("ix_trades_pool_timestamp", "pool_id", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    txid: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    pool_id: Mapped[int] = mapped_column(Integer, ForeignKey("pools.id"), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount0: Mapped[str] = mapped_column(Text, nullable=False)
    amount1: Mapped[str] = mapped_column(Text, nullable=False)
    amount_usd: Mapped[str] = mapped_column(Text, nullable=False)
    sqrt_price_x96: Mapped[str] = mapped_column(Text, nullable=False)
    tick: Mapped[int | None] = mapped_column(Integer, nullable=True)


class LiquidityModel(Base):
    __tablename__ = "liquidity"
    __table_args__ = (UniqueConstraint("pool_id", "timestamp", name="uq_liquidity_pool_timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pool_id: Mapped[int] = mapped_column(Integer, ForeignKey("pools.id"), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    liquidity: Mapped[str] = mapped_column(Text, nullable=False)


class FeeTierModel(Base):
    __tablename__ = "fee_tiers"
    __table_args__ = (UniqueConstraint("pool_id", "timestamp", name="uq_fee_tiers_pool_timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pool_id: Mapped[int] = mapped_column(Integer, ForeignKey("pools.id"), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_tier: Mapped[str] = mapped_column(Text, nullable=False)


class SpotPriceModel(Base):
    __tablename__ = "spot_prices"
    __table_args__ = (UniqueConstraint("symbol", "timestamp", name="uq_spot_prices_symbol_timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price: Mapped[str] = mapped_column(Text, nullable=False)


class ImpliedVolatilityModel(Base):
    __tablename__ = "iv_hist"
    __table_args__ = (UniqueConstraint("symbol", "timestamp", name="uq_iv_hist_symbol_timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)


class RealizedVolatilityModel(Base):
    __tablename__ = "volatility"
    __table_args__ = (UniqueConstraint("pool_id", "timestamp", name="uq_volatility_pool_timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pool_id: Mapped[int] = mapped_column(Integer, ForeignKey("pools.id"), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    realized_volatility: Mapped[str] = mapped_column(Text, nullable=False)
