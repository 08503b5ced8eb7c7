from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


@dataclass(frozen=True)
class Settings:
    database_url: str
    graph_api_key: str
    graph_gateway_base: str
    graph_subgraph_ids: dict
    fetch_batch_size: int
    fetch_min_interval_ms: int
    fetch_max_retries: int
    fetch_timeout_seconds: float
    fetch_pad_ms: int
    default_position_usd: Decimal
    min_trade_usd: Decimal
    price_point_min_usd: Decimal
    log_level: str


def get_settings() -> Settings:
    subgraphs = {
        "uniswapv3": _env("SUBGRAPH_ID_UNISWAPV3", ""),
        "thena": _env("SUBGRAPH_ID_THENA", ""),
    }
    return Settings(
        database_url=_env("DATABASE_URL", "sqlite:///lp_backtest.db"),
        graph_api_key=_env("GRAPH_API_KEY", ""),
        graph_gateway_base=_env("GRAPH_GATEWAY_BASE", "https://gateway.thegraph.com/api"),
        graph_subgraph_ids=subgraphs,
        fetch_batch_size=int(_env("FETCH_BATCH_SIZE", "1000")),
        fetch_min_interval_ms=int(_env("FETCH_MIN_INTERVAL_MS", "1000")),
        fetch_max_retries=int(_env("FETCH_MAX_RETRIES", "5")),
        fetch_timeout_seconds=float(_env("FETCH_TIMEOUT_SECONDS", "30")),
        fetch_pad_ms=int(_env("FETCH_PAD_MS", "3600000")),
        default_position_usd=Decimal(_env("DEFAULT_POSITION_USD", "1000")),
        min_trade_usd=Decimal(_env("MIN_TRADE_USD", "10")),
        price_point_min_usd=Decimal(_env("PRICE_POINT_MIN_USD", "1")),
        log_level=_env("LOG_LEVEL", "INFO"),
    )
