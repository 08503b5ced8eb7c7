from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal

from lp_backtest.domain.entities.strategy import ScheduledPosition, StrategySpec
from lp_backtest.domain.exceptions import InvalidStrategyError


MS_PER_HOUR = 60 * 60 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR
logger = logging.getLogger(__name__)


def plan_positions(
    *,
    strategy: StrategySpec,
    start_timestamp: int,
    end_timestamp: int,
    implied_volatility_at: Callable[[int], Decimal | None] | None = None,
) -> list[ScheduledPosition]:
    if end_timestamp <= start_timestamp:
        raise InvalidStrategyError("end_timestamp must be after start_timestamp.")
    if strategy.position_open_days <= 0:
        raise InvalidStrategyError("position_open_days must be positive.")
    for hour in [*strategy.hours_check_open, *strategy.hours_check_close]:
        if not 0 <= hour <= 23:
            raise InvalidStrategyError(f"Check hour out of range: {hour}")
    if strategy.volatility_threshold is not None and implied_volatility_at is None:
        raise InvalidStrategyError("volatility_threshold needs an implied volatility source.")

    max_age = strategy.position_open_days * MS_PER_DAY
    planned: list[ScheduledPosition] = []
    open_timestamps: list[int] = []
    day = start_timestamp - (start_timestamp % MS_PER_DAY)

    while day <= end_timestamp:
        for hour in sorted(strategy.hours_check_close):
            check_time = day + hour * MS_PER_HOUR
            if check_time > end_timestamp:
                break
            still_open = []
            for opened_at in open_timestamps:
                if check_time - opened_at >= max_age:
                    planned.append(ScheduledPosition(open_timestamp=opened_at, close_timestamp=check_time))
                else:
                    still_open.append(opened_at)
            open_timestamps = still_open

        for hour in sorted(strategy.hours_check_open):
            check_time = day + hour * MS_PER_HOUR
            if check_time > end_timestamp:
                break
            if check_time < start_timestamp:
                continue
            if strategy.one_pos_per_pool and open_timestamps:
                if check_time - open_timestamps[-1] < max_age:
                    continue
            if strategy.volatility_threshold is not None:
                implied_volatility = implied_volatility_at(check_time)
                if implied_volatility is None or implied_volatility <= strategy.volatility_threshold:
                    continue
                logger.info(
                    "strategy_schedule: iv_gate_passed strategy=%s timestamp=%s iv=%s",
                    strategy.name,
                    check_time,
                    implied_volatility,
                )
            open_timestamps.append(check_time)

        day += MS_PER_DAY

    for opened_at in open_timestamps:
        if opened_at < end_timestamp:
            planned.append(ScheduledPosition(open_timestamp=opened_at, close_timestamp=end_timestamp))

    planned.sort(key=lambda item: item.open_timestamp)
    return planned
