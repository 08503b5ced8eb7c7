from __future__ import annotations

from decimal import Decimal

import pytest

from lp_backtest.application.dto.hedge_positions import HedgePositionsInput
from lp_backtest.application.use_cases.hedge_positions import HedgePositionsUseCase
from lp_backtest.domain.entities.lp_position import SimulatedLpPosition
from lp_backtest.domain.exceptions import InvalidSimulationInputError
from lp_backtest.domain.services.options import MS_PER_DAY, OptionType, black_scholes

D0 = 1_704_067_200_000


class FakeSeries:
    def __init__(self, *, iv: Decimal | None = Decimal("80"), spot: Decimal | None = None):
        self.iv = iv
        self.spot = spot
        self.spot_lookups = []

    def get_implied_volatility(self, *, symbol, timestamp):
        return self.iv

    def get_spot_price(self, *, symbol, timestamp):
        self.spot_lookups.append(symbol)
        return self.spot


def _position(**overrides) -> SimulatedLpPosition:
    values = dict(
        open_timestamp=D0,
        close_timestamp=D0 + MS_PER_DAY,
        open_price=Decimal("2000"),
        close_price=Decimal("2000"),
        price_low=Decimal("1900"),
        price_high=Decimal("2100"),
        tick_lower=-1,
        tick_upper=1,
        amount_usd=Decimal("100"),
        amount0=Decimal("0.025"),
        amount1=Decimal("50"),
        fees_collected=Decimal("1"),
        il_percentage=Decimal("0"),
        pnl_percent=Decimal("0"),
        trades_in_range=1,
        trades_out_of_range=0,
    )
    values.update(overrides)
    return SimulatedLpPosition(**values)


def test_at_the_money_straddle_is_priced_from_implied_volatility():
    output = HedgePositionsUseCase(series_port=FakeSeries()).execute(HedgePositionsInput(positions=[_position()]))

    assert output.priced == 1
    assert output.unpriced == 0
    hedged = output.positions[0]
    assert hedged.dte == pytest.approx(1.0)
    kwargs = dict(spot=2000.0, strike=2000.0, years=1.0 / 365, rate=0.0, sigma_percent=80.0)
    premium = black_scholes(option_type=OptionType.CALL, **kwargs) + black_scholes(option_type=OptionType.PUT, **kwargs)
    assert hedged.straddle_premium == pytest.approx(premium)
    # Flat price: fees minus the premium paid.
    assert hedged.hedged_pnl_percent == pytest.approx(1.0 - premium / 2000.0 * 100)
    assert hedged.straddle_theta_per_day < 0


def test_missing_implied_volatility_leaves_position_unpriced():
    output = HedgePositionsUseCase(series_port=FakeSeries(iv=None)).execute(
        HedgePositionsInput(positions=[_position(pnl_percent=Decimal("-4"))])
    )

    assert output.priced == 0
    assert output.unpriced == 1
    hedged = output.positions[0]
    assert hedged.straddle_premium is None
    assert hedged.max_theta_per_day == pytest.approx(2.0)


def test_spot_series_overrides_pool_price():
    series = FakeSeries(spot=Decimal("2500"))
    output = HedgePositionsUseCase(series_port=series).execute(
        HedgePositionsInput(positions=[_position()], spot_symbol="ETH", strike_multiplier=1.02, strike_step=50.0)
    )

    assert series.spot_lookups == ["ETH"]
    assert output.positions[0].spot_price == 2500.0


def test_non_positive_strike_multiplier_raises():
    with pytest.raises(InvalidSimulationInputError):
        HedgePositionsUseCase(series_port=FakeSeries()).execute(
            HedgePositionsInput(positions=[_position()], strike_multiplier=0.0)
        )
