from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException

from lp_backtest.api.deps import get_simulate_lp_use_case
from lp_backtest.api.schemas.backtest import (
    BacktestDiagnosticsResponse,
    BacktestLpRequest,
    BacktestLpResponse,
    LpPositionResponse,
    PoolResponse,
    TradingPositionResponse,
)
from lp_backtest.application.dto.simulate_lp import SimulateLpInput, TradingStrategyInput
from lp_backtest.application.use_cases.simulate_lp import SimulateLpUseCase
from lp_backtest.domain.exceptions import (
    InvalidSimulationInputError,
    PoolNotFoundError,
    SimulationDataNotFoundError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_ms(value: int | datetime) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return int(value)


@router.post("/v1/backtest/lp", response_model=BacktestLpResponse)
def backtest_lp(
    req: BacktestLpRequest,
    use_case: SimulateLpUseCase = Depends(get_simulate_lp_use_case),
):
    try:
        result = use_case.execute(
            SimulateLpInput(
                pool_protocol=req.pool_protocol,
                pool_address=req.pool_address,
                open_timestamp=_to_ms(req.open_timestamp),
                close_timestamp=_to_ms(req.close_timestamp),
                deposit_usd=req.deposit_usd,
                full_range=req.full_range,
                uptick_percent=req.uptick_percent,
                downtick_percent=req.downtick_percent,
                price_low=req.price_low,
                price_high=req.price_high,
                rebalance_uptick_percent=req.rebalance_uptick_percent,
                rebalance_downtick_percent=req.rebalance_downtick_percent,
                trading_strategies=[
                    TradingStrategyInput(
                        position_type=item.position_type,
                        entry_price_percent=item.entry_price_percent,
                        take_profit_percent=item.take_profit_percent,
                        stop_loss_percent=item.stop_loss_percent,
                    )
                    for item in req.trading_strategies
                ],
            )
        )
    except PoolNotFoundError as exc:
        logger.warning(
            "backtest_router: pool_not_found protocol=%s pool=%s detail=%s",
            req.pool_protocol,
            req.pool_address,
            exc,
        )
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SimulationDataNotFoundError as exc:
        logger.warning(
            "backtest_router: data_not_found pool=%s code=%s context=%s",
            req.pool_address,
            exc.code,
            exc.context,
        )
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(exc),
                "code": exc.code,
                "context": exc.context,
            },
        ) from exc
    except InvalidSimulationInputError as exc:
        logger.warning(
            "backtest_router: invalid_input pool=%s detail=%s",
            req.pool_address,
            exc,
        )
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    pool = result.pool
    return BacktestLpResponse(
        pool=PoolResponse(
            id=pool.id,
            protocol=pool.protocol.value,
            address=pool.address,
            token0_symbol=pool.token0_symbol,
            token1_symbol=pool.token1_symbol,
            token0_decimals=pool.token0_decimals,
            token1_decimals=pool.token1_decimals,
            fee_tier=pool.fee_tier,
        ),
        lp_positions=[
            LpPositionResponse(
                open_timestamp=item.open_timestamp,
                close_timestamp=item.close_timestamp,
                open_price=item.open_price,
                close_price=item.close_price,
                price_low=item.price_low,
                price_high=item.price_high,
                tick_lower=item.tick_lower,
                tick_upper=item.tick_upper,
                amount_usd=item.amount_usd,
                amount0=item.amount0,
                amount1=item.amount1,
                fees_collected=item.fees_collected,
                il_percentage=item.il_percentage,
                pnl_percent=item.pnl_percent,
                trades_in_range=item.trades_in_range,
                trades_out_of_range=item.trades_out_of_range,
            )
            for item in result.lp_positions
        ],
        trading_positions=[
            TradingPositionResponse(
                position_type=item.position_type.value,
                open_timestamp=item.open_timestamp,
                close_timestamp=item.close_timestamp,
                open_price=item.open_price,
                close_price=item.close_price,
                entry_amount=item.entry_amount,
                entry_price_percent=item.entry_price_percent,
                take_profit_percent=item.take_profit_percent,
                stop_loss_percent=item.stop_loss_percent,
                pnl_percent=item.pnl_percent,
                pnl_usd=item.pnl_usd,
                closed_by=item.closed_by.value,
            )
            for item in result.trading_positions
        ],
        total_fees_usd=sum((item.fees_collected for item in result.lp_positions), Decimal("0")),
        diagnostics=BacktestDiagnosticsResponse(
            trades_total=result.diagnostics.trades_total,
            trades_processed=result.diagnostics.trades_processed,
            trades_skipped_zero_amount=result.diagnostics.trades_skipped_zero_amount,
            trades_skipped_duplicate=result.diagnostics.trades_skipped_duplicate,
            trades_skipped_malformed=result.diagnostics.trades_skipped_malformed,
            rebalances=result.diagnostics.rebalances,
            warnings=result.diagnostics.warnings,
        ),
    )
