from __future__ import annotations

from decimal import Decimal

import numpy as np
import pandas as pd

from lp_backtest.domain.services.statistics import to_decimal


SAMPLE_INTERVAL_MS = 5 * 60 * 1000
ROLLING_STEP_MS = 600_000
ROLLING_WINDOW_MS = 3_600_000
YEAR_MS = 365 * 24 * 60 * 60 * 1000
ZERO = Decimal("0")


def _price_series(samples: list[tuple[int, Decimal]]) -> pd.Series:
    if not samples:
        return pd.Series([], dtype="float64", index=pd.Index([], dtype="int64"))
    timestamps, prices = zip(*samples)
    return pd.Series([float(price) for price in prices], index=pd.Index(timestamps, dtype="int64"), dtype="float64")


def _sample(series: pd.Series, *, start_timestamp: int, interval_ms: int) -> pd.Series:
    series = series[series.index >= start_timestamp]
    buckets = (series.index - start_timestamp) // interval_ms
    return series.groupby(buckets).first()


def sample_prices(
    samples: list[tuple[int, Decimal]],
    *,
    start_timestamp: int,
    interval_ms: int = SAMPLE_INTERVAL_MS,
) -> list[Decimal]:
    """First price of every ``interval_ms`` bucket counted from ``start_timestamp``."""
    sampled = _sample(_price_series(samples), start_timestamp=start_timestamp, interval_ms=interval_ms)
    return [to_decimal(price) for price in sampled]


def _annualized(series: pd.Series, *, start_timestamp: int, end_timestamp: int, interval_ms: int) -> float:
    sampled = _sample(series, start_timestamp=start_timestamp, interval_ms=interval_ms)
    sampled = sampled[sampled > 0]
    if len(sampled) < 2:
        return 0.0
    log_returns = np.log(sampled).diff().dropna()
    years = (end_timestamp - start_timestamp) / YEAR_MS
    return float(log_returns.std(ddof=0)) * np.sqrt(1 / years) * 100


def realized_volatility(
    samples: list[tuple[int, Decimal]],
    *,
    start_timestamp: int,
    end_timestamp: int,
    interval_ms: int = SAMPLE_INTERVAL_MS,
) -> Decimal:
    """Annualized realized volatility in percent.

    ``samples`` are (timestamp_ms, price) pairs sorted by timestamp. Prices are
    sampled once per interval, the standard deviation of the log returns is
    scaled by sqrt(1 / window_in_years).
    """
    if end_timestamp <= start_timestamp or len(samples) < 2:
        return ZERO
    return to_decimal(
        _annualized(
            _price_series(samples),
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
            interval_ms=interval_ms,
        )
    )


def rolling_realized_volatility(
    samples: list[tuple[int, Decimal]],
    *,
    start_timestamp: int,
    end_timestamp: int,
    step_ms: int = ROLLING_STEP_MS,
    window_ms: int = ROLLING_WINDOW_MS,
) -> list[tuple[int, Decimal]]:
    if step_ms <= 0 or window_ms <= 0:
        raise ValueError("step_ms and window_ms must be positive.")
    series = _price_series(samples).sort_index()
    points: list[tuple[int, Decimal]] = []
    window_end = end_timestamp
    while window_end >= start_timestamp + window_ms:
        window_start = window_end - window_ms
        window = series.loc[window_start:window_end]
        value = ZERO
        if len(window) >= 2:
            value = to_decimal(
                _annualized(
                    window,
                    start_timestamp=window_start,
                    end_timestamp=window_end,
                    interval_ms=SAMPLE_INTERVAL_MS,
                )
            )
        points.append((window_end, value))
        window_end -= step_ms
    points.reverse()
    return points
