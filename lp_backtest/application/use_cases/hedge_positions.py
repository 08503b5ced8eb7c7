from __future__ import annotations

import logging

from lp_backtest.application.dto.hedge_positions import (
    HedgedPosition,
    HedgePositionsInput,
    HedgePositionsOutput,
)
from lp_backtest.application.ports.market_data_port import SeriesPort
from lp_backtest.domain.entities.lp_position import SimulatedLpPosition
from lp_backtest.domain.exceptions import InvalidSimulationInputError
from lp_backtest.domain.services.options import (
    DAYS_PER_YEAR,
    OptionType,
    adjust_strike_multiplier,
    black_scholes,
    days_to_expiry,
    greeks,
    max_theta_per_day,
)


logger = logging.getLogger(__name__)


class HedgePositionsUseCase:
    def __init__(self, *, series_port: SeriesPort):
        self._series_port = series_port

    def execute(self, command: HedgePositionsInput) -> HedgePositionsOutput:
        if command.strike_multiplier <= 0:
            raise InvalidSimulationInputError("strike_multiplier must be positive.")

        hedged = [self._hedge(position, command) for position in command.positions]
        priced = sum(1 for item in hedged if item.straddle_premium is not None)
        logger.info(
            "hedge_positions: done positions=%s priced=%s iv_symbol=%s",
            len(hedged),
            priced,
            command.iv_symbol,
        )
        return HedgePositionsOutput(positions=hedged, priced=priced, unpriced=len(hedged) - priced)

    def _hedge(self, position: SimulatedLpPosition, command: HedgePositionsInput) -> HedgedPosition:
        dte = days_to_expiry(position.open_timestamp, position.close_timestamp)
        pnl_percent = float(position.pnl_percent)
        max_theta = max_theta_per_day(pnl_percent=pnl_percent, dte=dte)
        implied_volatility = self._series_port.get_implied_volatility(
            symbol=command.iv_symbol,
            timestamp=position.open_timestamp,
        )
        spot = None
        if command.spot_symbol:
            spot = self._series_port.get_spot_price(symbol=command.spot_symbol, timestamp=position.open_timestamp)
        spot_price = float(spot) if spot is not None else float(position.open_price)

        unpriced = HedgedPosition(
            position=position,
            dte=dte,
            max_theta_per_day=max_theta,
            implied_volatility=implied_volatility,
            spot_price=spot_price,
            straddle_premium=None,
            straddle_premium_percent=None,
            straddle_theta_per_day=None,
            hedged_pnl_percent=None,
        )
        if implied_volatility is None or implied_volatility <= 0 or dte <= 0 or spot_price <= 0:
            logger.debug(
                "hedge_positions: unpriced open=%s iv=%s dte=%s",
                position.open_timestamp,
                implied_volatility,
                dte,
            )
            return unpriced

        multiplier = command.strike_multiplier
        if command.strike_step:
            multiplier = adjust_strike_multiplier(
                spot=spot_price,
                strike_multiplier=multiplier,
                step_size=command.strike_step,
            )
        strike = spot_price * multiplier
        years = dte / DAYS_PER_YEAR
        sigma = float(implied_volatility)
        legs = {
            option_type: dict(
                spot=spot_price,
                strike=strike,
                years=years,
                rate=command.risk_free_rate,
                sigma_percent=sigma,
                option_type=option_type,
            )
            for option_type in (OptionType.CALL, OptionType.PUT)
        }
        premium = sum(black_scholes(**params) for params in legs.values())
        theta = sum(greeks(**params).theta for params in legs.values())

        # Underlying moved by the same ratio as the pool price.
        close_spot = spot_price * float(position.close_price / position.open_price)
        payoff = abs(close_spot - strike)
        fees_percent = float(position.fees_collected / position.amount_usd) * 100 if position.amount_usd else 0.0
        premium_percent = premium / spot_price * 100
        hedged_pnl = pnl_percent + fees_percent + (payoff - premium) / spot_price * 100

        return HedgedPosition(
            position=position,
            dte=dte,
            max_theta_per_day=max_theta,
            implied_volatility=implied_volatility,
            spot_price=spot_price,
            straddle_premium=premium,
            straddle_premium_percent=premium_percent,
            straddle_theta_per_day=theta / spot_price * 100,
            hedged_pnl_percent=hedged_pnl,
        )
