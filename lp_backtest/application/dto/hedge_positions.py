from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from lp_backtest.domain.entities.lp_position import SimulatedLpPosition


@dataclass(frozen=True)
class HedgePositionsInput:
    positions: list[SimulatedLpPosition]
    iv_symbol: str = "EVIV"
    spot_symbol: str | None = None
    risk_free_rate: float = 0.0
    strike_multiplier: float = 1.0
    strike_step: float | None = None


@dataclass(frozen=True)
class HedgedPosition:
    position: SimulatedLpPosition
    dte: float
    max_theta_per_day: float
    implied_volatility: Decimal | None
    spot_price: float
    straddle_premium: float | None
    straddle_premium_percent: float | None
    straddle_theta_per_day: float | None
    hedged_pnl_percent: float | None


@dataclass(frozen=True)
class HedgePositionsOutput:
    positions: list[HedgedPosition]
    priced: int
    unpriced: int
