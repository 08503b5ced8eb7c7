from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal

import numpy as np
import pandas as pd

from lp_backtest.domain.entities.lp_position import PositionType, TradingPosition
from lp_backtest.domain.exceptions import StatisticsInputError


ZERO = Decimal("0")


@dataclass(frozen=True)
class RegressionStats:
    alpha: Decimal
    beta: Decimal
    r_squared: Decimal


@dataclass(frozen=True)
class ReturnStats:
    count: int
    average: Decimal
    sharpe_ratio: Decimal
    max_drawdown: Decimal
    total_return: Decimal


@dataclass(frozen=True)
class TradingSummary:
    position_type: str
    count: int
    average_pnl_percent: Decimal
    total_pnl_usd: Decimal
    sharpe_ratio: Decimal
    wins: int
    losses: int


def to_decimal(value) -> Decimal:
    """Float result back to Decimal; NaN and inf become zero."""
    value = float(value)
    if not math.isfinite(value):
        return ZERO
    return Decimal(repr(value))


def _series(values: list[Decimal]) -> pd.Series:
    return pd.Series([float(value) for value in values], dtype="float64")


def mean(values: list[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return to_decimal(_series(values).mean())


def population_std(values: list[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return to_decimal(_series(values).std(ddof=0))


def sharpe_ratio(returns: list[Decimal]) -> Decimal:
    if not returns:
        return ZERO
    series = _series(returns)
    deviation = series.std(ddof=0)
    if deviation == 0:
        return ZERO
    return to_decimal(series.mean() / deviation)


def regression_stats(returns: list[Decimal], reference: list[Decimal]) -> RegressionStats:
    """Least-squares fit of ``returns`` against ``reference``."""
    if not returns or not reference:
        raise StatisticsInputError("Return series must not be empty.")
    if len(returns) != len(reference):
        raise StatisticsInputError("Input and reference series have different lengths.")

    y = np.array([float(value) for value in returns])
    x = np.array([float(value) for value in reference])
    if np.var(x) == 0:
        return RegressionStats(alpha=to_decimal(y.mean()), beta=ZERO, r_squared=ZERO)

    beta, alpha = np.polyfit(x, y, 1)
    total_sum_squares = float(((y - y.mean()) ** 2).sum())
    residual_sum_squares = float(((y - (beta * x + alpha)) ** 2).sum())
    r_squared = 1 - residual_sum_squares / total_sum_squares if total_sum_squares != 0 else 0.0
    return RegressionStats(
        alpha=to_decimal(alpha),
        beta=to_decimal(beta),
        r_squared=to_decimal(r_squared),
    )


def return_stats(returns: list[Decimal]) -> ReturnStats:
    """Compounds percent returns in order; drawdown is a fraction of the running peak."""
    if not returns:
        return ReturnStats(count=0, average=ZERO, sharpe_ratio=ZERO, max_drawdown=ZERO, total_return=ZERO)
    growth = (1 + _series(returns) / 100).cumprod()
    peak = growth.cummax()
    drawdown = ((peak - growth) / peak).where(peak > 0, 0.0)
    return ReturnStats(
        count=len(returns),
        average=mean(returns),
        sharpe_ratio=sharpe_ratio(returns),
        max_drawdown=to_decimal(max(drawdown.max(), 0.0)),
        total_return=to_decimal((growth.iloc[-1] - 1) * 100),
    )


def monthly_returns(rows: list[tuple[int, Decimal]]) -> dict[str, Decimal]:
    if not rows:
        return {}
    frame = pd.DataFrame(rows, columns=["timestamp", "value"])
    frame["value"] = frame["value"].astype("float64")
    months = pd.to_datetime(frame["timestamp"], unit="ms", utc=True).dt.strftime("%Y-%m")
    totals = frame.groupby(months)["value"].sum().sort_index()
    return {month: to_decimal(total) for month, total in totals.items()}


def summarize_trading_positions(positions: list[TradingPosition]) -> list[TradingSummary]:
    groups: dict[str, list[TradingPosition]] = {
        PositionType.LONG.value: [p for p in positions if p.position_type is PositionType.LONG],
        PositionType.SHORT.value: [p for p in positions if p.position_type is PositionType.SHORT],
        "total": list(positions),
    }
    summaries = []
    for label, items in groups.items():
        returns = [item.pnl_percent for item in items]
        summaries.append(
            TradingSummary(
                position_type=label,
                count=len(items),
                average_pnl_percent=mean(returns),
                total_pnl_usd=sum((item.pnl_usd for item in items), ZERO),
                sharpe_ratio=sharpe_ratio(returns),
                wins=sum(1 for item in items if item.pnl_usd > 0),
                losses=sum(1 for item in items if item.pnl_usd < 0),
            )
        )
    return summaries
