from __future__ import annotations

from decimal import Decimal, localcontext

import pytest

from lp_backtest.domain.services.univ3_math import MATH_CONTEXT
from lp_backtest.domain.services.volatility import (
    YEAR_MS,
    realized_volatility,
    rolling_realized_volatility,
    sample_prices,
)


def test_constant_price_has_zero_volatility():
    samples = [(t * 300_000, Decimal("2000")) for t in range(10)]
    assert realized_volatility(samples, start_timestamp=0, end_timestamp=3_000_000) == 0


def test_realized_volatility_annualizes_log_return_deviation():
    samples = [(0, Decimal("100")), (300_000, Decimal("110")), (600_000, Decimal("100"))]

    result = realized_volatility(samples, start_timestamp=0, end_timestamp=900_000)

    with localcontext(MATH_CONTEXT) as ctx:
        expected = Decimal("1.1").ln(ctx) * (Decimal(YEAR_MS) / Decimal(900_000)).sqrt(ctx) * 100
    assert abs(result - expected) / expected < Decimal("1e-12")


def test_sampling_keeps_first_price_per_interval():
    samples = [(0, Decimal("1")), (100, Decimal("2")), (300_000, Decimal("3")), (300_001, Decimal("4"))]
    assert sample_prices(samples, start_timestamp=0) == [Decimal("1"), Decimal("3")]


def test_too_few_samples_yield_zero():
    assert realized_volatility([(0, Decimal("1"))], start_timestamp=0, end_timestamp=10) == 0
    assert realized_volatility([], start_timestamp=10, end_timestamp=0) == 0


def test_rolling_volatility_steps_backwards_and_returns_ascending():
    samples = [(t * 60_000, Decimal(100 + (t % 3))) for t in range(121)]

    points = rolling_realized_volatility(samples, start_timestamp=0, end_timestamp=7_200_000)

    assert [timestamp for timestamp, _ in points] == [3_600_000 + i * 600_000 for i in range(7)]
    assert all(value >= 0 for _, value in points)


def test_rolling_volatility_rejects_non_positive_windows():
    with pytest.raises(ValueError):
        rolling_realized_volatility([], start_timestamp=0, end_timestamp=1, step_ms=0)


def test_samples_before_window_start_are_ignored():
    samples = [(-1, Decimal("50")), (0, Decimal("100")), (300_000, Decimal("100"))]

    assert sample_prices(samples, start_timestamp=0) == [Decimal("100"), Decimal("100")]
    assert realized_volatility(samples, start_timestamp=0, end_timestamp=600_000) == 0


def test_rolling_windows_without_enough_samples_report_zero():
    samples = [(0, Decimal("100")), (4_000_000, Decimal("120"))]

    points = rolling_realized_volatility(
        samples, start_timestamp=0, end_timestamp=4_200_000, step_ms=600_000, window_ms=3_600_000
    )

    assert points == [(3_600_000, Decimal("0")), (4_200_000, Decimal("0"))]
