from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from lp_backtest.domain.entities.lp_position import (
    ClosedBy,
    PositionType,
    TradingPosition,
    TradingStrategySpec,
)


HUNDRED = Decimal("100")
ONE = Decimal("1")
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TapePoint:
    timestamp: int
    price: Decimal
    amount_usd: Decimal


@dataclass
class _OverlayInstance:
    spec: TradingStrategySpec
    target_price: Decimal
    open_timestamp: int | None = None
    open_price: Decimal | None = None
    position: TradingPosition | None = None

    @property
    def is_open(self) -> bool:
        return self.open_timestamp is not None and self.position is None

    @property
    def is_waiting(self) -> bool:
        return self.open_timestamp is None

    def entry_reached(self, price: Decimal) -> bool:
        offset = self.spec.entry_price_percent
        if offset > 0:
            return price >= self.target_price
        if offset < 0:
            return price <= self.target_price
        if self.spec.position_type is PositionType.LONG:
            return price >= self.target_price
        return price <= self.target_price

    def exit_reason(self, price: Decimal) -> ClosedBy | None:
        entry = self.open_price
        take_profit = self.spec.take_profit_percent
        stop_loss = self.spec.stop_loss_percent
        if self.spec.position_type is PositionType.LONG:
            if take_profit is not None and price >= entry * (ONE + take_profit / HUNDRED):
                return ClosedBy.TAKE_PROFIT
            if stop_loss is not None and price <= entry * (ONE - stop_loss / HUNDRED):
                return ClosedBy.STOP_LOSS
            return None
        if take_profit is not None and price <= entry * (ONE - take_profit / HUNDRED):
            return ClosedBy.TAKE_PROFIT
        if stop_loss is not None and price >= entry * (ONE + stop_loss / HUNDRED):
            return ClosedBy.STOP_LOSS
        return None


def trading_pnl_percent(
    *,
    position_type: PositionType,
    open_price: Decimal,
    close_price: Decimal,
) -> Decimal:
    if open_price <= 0 or close_price <= 0:
        return Decimal("0")
    if position_type is PositionType.LONG:
        return (close_price / open_price - ONE) * HUNDRED
    return (open_price / close_price - ONE) * HUNDRED


def simulate_trading_overlay(
    *,
    tape: list[TapePoint],
    strategies: list[TradingStrategySpec],
    reference_price: Decimal,
    entry_amount_usd: Decimal,
    min_trade_usd: Decimal,
) -> list[TradingPosition]:
    points = [point for point in tape if point.amount_usd >= min_trade_usd]
    if not points or not strategies:
        return []

    instances: dict[tuple[PositionType, Decimal], _OverlayInstance] = {}
    for spec in strategies:
        if spec.key in instances:
            logger.warning(
                "trading_overlay: duplicate_strategy type=%s entry_percent=%s",
                spec.position_type.value,
                spec.entry_price_percent,
            )
            continue
        instances[spec.key] = _OverlayInstance(
            spec=spec,
            target_price=reference_price * (ONE + spec.entry_price_percent / HUNDRED),
        )

    used_timestamps: set[int] = set()
    final_index = len(points) - 1
    for index, point in enumerate(points):
        for instance in instances.values():
            if point.timestamp in used_timestamps:
                break
            if instance.is_open:
                if point.timestamp <= instance.open_timestamp:
                    continue
                reason = instance.exit_reason(point.price)
                if reason is not None:
                    instance.position = _close(instance, point, reason, entry_amount_usd)
                    used_timestamps.add(point.timestamp)
            elif instance.is_waiting and index < final_index:
                if instance.entry_reached(point.price):
                    instance.open_timestamp = point.timestamp
                    instance.open_price = point.price
                    used_timestamps.add(point.timestamp)

    last_point = points[final_index]
    for instance in instances.values():
        if instance.is_open:
            instance.position = _close(instance, last_point, ClosedBy.END_OF_PERIOD, entry_amount_usd)

    positions = [instance.position for instance in instances.values() if instance.position is not None]
    positions.sort(key=lambda item: (item.open_timestamp, item.position_type.value))
    logger.info(
        "trading_overlay: done strategies=%s positions=%s trades=%s",
        len(instances),
        len(positions),
        len(points),
    )
    return positions


def _close(
    instance: _OverlayInstance,
    point: TapePoint,
    reason: ClosedBy,
    entry_amount_usd: Decimal,
) -> TradingPosition:
    pnl_percent = trading_pnl_percent(
        position_type=instance.spec.position_type,
        open_price=instance.open_price,
        close_price=point.price,
    )
    return TradingPosition(
        position_type=instance.spec.position_type,
        open_timestamp=instance.open_timestamp,
        close_timestamp=point.timestamp,
        open_price=instance.open_price,
        close_price=point.price,
        entry_amount=entry_amount_usd,
        entry_price_percent=instance.spec.entry_price_percent,
        take_profit_percent=instance.spec.take_profit_percent,
        stop_loss_percent=instance.spec.stop_loss_percent,
        pnl_percent=pnl_percent,
        pnl_usd=entry_amount_usd * pnl_percent / HUNDRED,
        closed_by=reason,
    )
