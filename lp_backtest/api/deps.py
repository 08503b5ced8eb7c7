from __future__ import annotations

from functools import lru_cache

from lp_backtest.application.use_cases.simulate_lp import SimulateLpUseCase
from lp_backtest.infrastructure.db.engine import get_engine, init_schema
from lp_backtest.infrastructure.db.repositories.market_data_repository import SqlMarketDataRepository
from lp_backtest.shared.config import Settings, get_settings


@lru_cache(maxsize=1)
def _get_settings() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def _get_db_engine():
    engine = get_engine(_get_settings().database_url)
    init_schema(engine)
    return engine


def get_simulate_lp_use_case() -> SimulateLpUseCase:
    settings = _get_settings()
    return SimulateLpUseCase(
        simulate_lp_port=SqlMarketDataRepository(_get_db_engine()),
        default_position_usd=settings.default_position_usd,
        min_trade_usd=settings.min_trade_usd,
        price_point_min_usd=settings.price_point_min_usd,
    )
