from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class FeeGrowthRequest(BaseModel):
    fee_growth_global: str = Field(..., description="feeGrowthGlobalX128 of the token (uint256 as string).")
    fee_growth_outside_lower: str = Field(..., description="feeGrowthOutsideX128 of the lower tick.")
    fee_growth_outside_upper: str = Field(..., description="feeGrowthOutsideX128 of the upper tick.")
    fee_growth_inside_last: str = Field("0", description="feeGrowthInsideLastX128 stored on the position.")


class PositionFeesRequest(BaseModel):
    liquidity: Decimal = Field(..., ge=0, description="Position liquidity (raw units).")
    tick_current: int
    tick_lower: int
    tick_upper: int
    token0_decimals: int = Field(..., ge=0)
    token1_decimals: int = Field(..., ge=0)
    token0: FeeGrowthRequest
    token1: FeeGrowthRequest


class PositionFeesResponse(BaseModel):
    token0_fees: Decimal
    token1_fees: Decimal
    fee_growth_inside0: str
    fee_growth_inside1: str
