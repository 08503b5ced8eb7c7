from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from lp_backtest.api.schemas.position_fees import (
    FeeGrowthRequest,
    PositionFeesRequest,
    PositionFeesResponse,
)
from lp_backtest.domain.services.univ3_fee_growth import (
    FeeGrowthAccumulators,
    parse_uint256,
    position_fees,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _accumulators(item: FeeGrowthRequest) -> FeeGrowthAccumulators:
    return FeeGrowthAccumulators(
        fee_growth_global=parse_uint256(item.fee_growth_global),
        fee_growth_outside_lower=parse_uint256(item.fee_growth_outside_lower),
        fee_growth_outside_upper=parse_uint256(item.fee_growth_outside_upper),
        fee_growth_inside_last=parse_uint256(item.fee_growth_inside_last),
    )


@router.post("/v1/positions/fees", response_model=PositionFeesResponse)
def estimate_position_fees(req: PositionFeesRequest):
    try:
        fees = position_fees(
            liquidity=req.liquidity,
            tick_current=req.tick_current,
            tick_lower=req.tick_lower,
            tick_upper=req.tick_upper,
            token0=_accumulators(req.token0),
            token1=_accumulators(req.token1),
            token0_decimals=req.token0_decimals,
            token1_decimals=req.token1_decimals,
        )
    except ValueError as exc:
        logger.warning(
            "position_fees_router: invalid_input tick_lower=%s tick_upper=%s detail=%s",
            req.tick_lower,
            req.tick_upper,
            exc,
        )
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return PositionFeesResponse(
        token0_fees=fees.token0,
        token1_fees=fees.token1,
        fee_growth_inside0=str(fees.fee_growth_inside0),
        fee_growth_inside1=str(fees.fee_growth_inside1),
    )
