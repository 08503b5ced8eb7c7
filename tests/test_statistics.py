from __future__ import annotations

import unittest
from decimal import Decimal

import pytest

from lp_backtest.domain.entities.lp_position import ClosedBy, PositionType, TradingPosition
from lp_backtest.domain.exceptions import StatisticsInputError
from lp_backtest.domain.services.statistics import (
    mean,
    monthly_returns,
    population_std,
    regression_stats,
    return_stats,
    sharpe_ratio,
    summarize_trading_positions,
    to_decimal,
)


def _d(*values: str) -> list[Decimal]:
    return [Decimal(value) for value in values]


class TestBasicStatistics(unittest.TestCase):
    def test_mean_and_std(self):
        self.assertEqual(mean(_d("1", "3")), Decimal("2"))
        self.assertEqual(population_std(_d("1", "3")), Decimal("1"))
        self.assertEqual(mean([]), 0)
        self.assertEqual(population_std([]), 0)

    def test_sharpe_ratio(self):
        self.assertEqual(sharpe_ratio(_d("1", "3")), Decimal("2"))
        self.assertEqual(sharpe_ratio(_d("2", "2")), 0)


def test_regression_recovers_linear_relation():
    stats = regression_stats(_d("1", "2", "3"), _d("3", "5", "7"))

    assert abs(stats.beta - Decimal("0.5")) < Decimal("1e-9")
    assert abs(stats.alpha - Decimal("-0.5")) < Decimal("1e-9")
    assert abs(stats.r_squared - Decimal("1")) < Decimal("1e-9")


def test_regression_rejects_bad_input():
    with pytest.raises(StatisticsInputError):
        regression_stats([], [])
    with pytest.raises(StatisticsInputError):
        regression_stats(_d("1", "2"), _d("1"))


def test_return_stats_compounds_and_tracks_drawdown():
    stats = return_stats(_d("10", "-50", "20"))

    assert stats.count == 3
    assert abs(stats.max_drawdown - Decimal("0.5")) < Decimal("1e-12")
    assert abs(stats.total_return - Decimal("-34")) < Decimal("1e-9")


def test_monthly_returns_groups_by_utc_month():
    january = 1_704_067_200_000
    february = 1_706_745_600_000
    totals = monthly_returns([(january, Decimal("1")), (january + 1000, Decimal("2")), (february, Decimal("-1"))])

    assert totals == {"2024-01": Decimal("3"), "2024-02": Decimal("-1")}


def _position(position_type: PositionType, pnl_percent: str) -> TradingPosition:
    pnl = Decimal(pnl_percent)
    return TradingPosition(
        position_type=position_type,
        open_timestamp=1,
        close_timestamp=2,
        open_price=Decimal("100"),
        close_price=Decimal("100"),
        entry_amount=Decimal("100"),
        entry_price_percent=Decimal("0"),
        take_profit_percent=None,
        stop_loss_percent=None,
        pnl_percent=pnl,
        pnl_usd=pnl,
        closed_by=ClosedBy.END_OF_PERIOD,
    )


def test_trading_summary_splits_long_short_and_total():
    summaries = summarize_trading_positions(
        [
            _position(PositionType.LONG, "5"),
            _position(PositionType.LONG, "-1"),
            _position(PositionType.SHORT, "3"),
        ]
    )

    long_summary, short_summary, total = summaries
    assert long_summary.position_type == "long"
    assert long_summary.count == 2
    assert long_summary.wins == 1
    assert long_summary.losses == 1
    assert long_summary.average_pnl_percent == Decimal("2")
    assert short_summary.total_pnl_usd == Decimal("3")
    assert total.position_type == "total"
    assert total.count == 3
    assert total.total_pnl_usd == Decimal("7")


def test_flat_reference_has_no_beta():
    stats = regression_stats(_d("1", "2", "3"), _d("4", "4", "4"))

    assert stats.beta == 0
    assert stats.alpha == Decimal("2")
    assert stats.r_squared == 0


def test_empty_returns_give_zero_stats():
    stats = return_stats([])

    assert stats.count == 0
    assert stats.total_return == 0
    assert monthly_returns([]) == {}


def test_to_decimal_maps_non_finite_to_zero():
    assert to_decimal(float("nan")) == 0
    assert to_decimal(float("inf")) == 0
    assert to_decimal(0.25) == Decimal("0.25")
