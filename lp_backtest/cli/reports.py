from __future__ import annotations

import json
import logging
from decimal import Decimal
from pathlib import Path

import pandas as pd

from lp_backtest.application.dto.hedge_positions import HedgePositionsOutput
from lp_backtest.application.dto.run_strategy import RunStrategyOutput, StrategyPoolReport
from lp_backtest.cli.schemas import to_timestamp_ms
from lp_backtest.domain.entities.lp_position import SimulatedLpPosition, TradingPosition
from lp_backtest.domain.entities.pool import Pool, PoolCandidate
from lp_backtest.domain.services.position_math import fee_tier_percentage


logger = logging.getLogger(__name__)

LP_COLUMNS = [
    "lpPositionId",
    "poolType",
    "poolAddress",
    "openTimestamp",
    "closeTimestamp",
    "openPrice",
    "closePrice",
    "priceLow",
    "priceHigh",
    "amountUSD",
    "amount0",
    "amount1",
    "feesCollected",
    "ILPercentage",
    "pnlPercent",
    "tradesInRange",
    "tradesOutOfRange",
]

POOL_COLUMNS = [
    "id",
    "type",
    "address",
    "token0_symbol",
    "token1_symbol",
    "token0_decimals",
    "token1_decimals",
    "fee_tier",
    "created",
]


def _iso(timestamp: int) -> str:
    return pd.Timestamp(timestamp, unit="ms", tz="UTC").isoformat()


def unique_report_path(directory: Path, stem: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    increment = 1
    while True:
        path = directory / f"{stem}_{increment}.csv"
        if not path.exists():
            return path
        increment += 1


def lp_positions_frame(groups: list[list[SimulatedLpPosition]], pool: Pool) -> pd.DataFrame:
    rows = []
    for position_id, group in enumerate(groups, start=1):
        for item in group:
            rows.append(
                {
                    "lpPositionId": position_id,
                    "poolType": pool.protocol.value,
                    "poolAddress": pool.address,
                    "openTimestamp": _iso(item.open_timestamp),
                    "closeTimestamp": _iso(item.close_timestamp),
                    "openPrice": str(item.open_price),
                    "closePrice": str(item.close_price),
                    "priceLow": str(item.price_low),
                    "priceHigh": str(item.price_high),
                    "amountUSD": str(item.amount_usd),
                    "amount0": str(item.amount0),
                    "amount1": str(item.amount1),
                    "feesCollected": str(item.fees_collected),
                    "ILPercentage": str(item.il_percentage),
                    "pnlPercent": str(item.pnl_percent),
                    "tradesInRange": item.trades_in_range,
                    "tradesOutOfRange": item.trades_out_of_range,
                }
            )
    return pd.DataFrame(rows, columns=LP_COLUMNS)


def pools_frame(pools: list[Pool]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "id": pool.id,
                "type": pool.protocol.value,
                "address": pool.address,
                "token0_symbol": pool.token0_symbol,
                "token1_symbol": pool.token1_symbol,
                "token0_decimals": pool.token0_decimals,
                "token1_decimals": pool.token1_decimals,
                "fee_tier": pool.fee_tier,
                "created": pool.created_at,
            }
            for pool in pools
        ],
        columns=POOL_COLUMNS,
        dtype=object,
    )


def pool_candidates_frame(candidates: list[PoolCandidate]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "poolType": item.protocol.value,
                "poolAddress": item.address,
                "pair": f"{item.token0_symbol}/{item.token1_symbol}",
                "feeTier": "" if item.fee_tier is None else item.fee_tier,
                "feePercent": "" if item.fee_tier is None else str(fee_tier_percentage(item.fee_tier) * 100),
                "tvlUSD": f"{item.total_value_locked_usd:,.2f}",
                "volumeUSD": f"{item.volume_usd:,.2f}",
            }
            for item in candidates
        ],
        columns=["poolType", "poolAddress", "pair", "feeTier", "feePercent", "tvlUSD", "volumeUSD"],
    )


def trading_positions_frame(positions: list[TradingPosition]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "type": item.position_type.value,
                "openTimestamp": _iso(item.open_timestamp),
                "closeTimestamp": _iso(item.close_timestamp),
                "openPrice": str(item.open_price),
                "closePrice": str(item.close_price),
                "entryAmount": str(item.entry_amount),
                "entryPricePercent": str(item.entry_price_percent),
                "takeProfitPercent": "" if item.take_profit_percent is None else str(item.take_profit_percent),
                "stopLossPercent": "" if item.stop_loss_percent is None else str(item.stop_loss_percent),
                "pnlPercent": str(item.pnl_percent),
                "pnlUSD": str(item.pnl_usd),
                "closedBy": item.closed_by.value,
            }
            for item in positions
        ]
    )


def write_pool_report(report: StrategyPoolReport, output_dir: Path) -> list[Path]:
    pool = report.pool
    stem = f"{report.strategy_name}_{pool.token0_symbol}{pool.token1_symbol}_{pool.id}"
    lp_path = unique_report_path(output_dir / "lp", f"{stem}_{pool.protocol.value}")
    lp_positions_frame(report.lp_positions, pool).to_csv(lp_path, index=False)
    logger.info("reports: lp_written path=%s groups=%s", lp_path, len(report.lp_positions))
    written = [lp_path]

    if report.trading_positions:
        trades_path = unique_report_path(output_dir / "trades", f"{stem}_trades")
        trading_positions_frame(report.trading_positions).to_csv(trades_path, index=False)
        logger.info("reports: trades_written path=%s rows=%s", trades_path, len(report.trading_positions))
        written.append(trades_path)
    return written


def strategy_summary(output: RunStrategyOutput) -> dict:
    return {
        "reports": [
            {
                "strategyName": report.strategy_name,
                "poolType": report.pool.protocol.value,
                "poolAddress": report.pool.address,
                "lpPositions": sum(len(group) for group in report.lp_positions),
                "skippedPositions": [
                    {
                        "openTimestamp": _iso(item.scheduled.open_timestamp),
                        "closeTimestamp": _iso(item.scheduled.close_timestamp),
                        "reason": item.reason,
                    }
                    for item in report.skipped_positions
                ],
                "lpStats": {
                    "avgPnL": str(report.lp_average_pnl_percent),
                    "sharpe": str(report.lp_sharpe_ratio),
                    "totalFeesUSD": str(report.lp_total_fees_usd),
                },
                "tradeStats": {
                    item.position_type: {
                        "count": item.count,
                        "avgPnL": str(item.average_pnl_percent),
                        "totalPnLUSD": str(item.total_pnl_usd),
                        "sharpe": str(item.sharpe_ratio),
                        "wins": item.wins,
                        "losses": item.losses,
                    }
                    for item in report.trading_summary
                },
            }
            for report in output.reports
        ],
        "failedPools": list(output.failed_pools),
    }


def write_summary(output: RunStrategyOutput, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / "summary.json"
    path.write_text(json.dumps(strategy_summary(output), indent=2), encoding="utf-8")
    return path


def _csv_files(path: Path) -> list[Path]:
    if path.is_dir():
        return sorted(path.glob("*.csv"))
    return [path]


def read_lp_positions(path: str | Path) -> list[SimulatedLpPosition]:
    positions = []
    for csv_path in _csv_files(Path(path)):
        frame = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
        for record in frame.to_dict(orient="records"):
            positions.append(
                SimulatedLpPosition(
                    open_timestamp=to_timestamp_ms(record["openTimestamp"]),
                    close_timestamp=to_timestamp_ms(record["closeTimestamp"]),
                    open_price=Decimal(record["openPrice"]),
                    close_price=Decimal(record["closePrice"]),
                    price_low=Decimal(record.get("priceLow") or "0"),
                    price_high=Decimal(record.get("priceHigh") or "0"),
                    tick_lower=0,
                    tick_upper=0,
                    amount_usd=Decimal(record["amountUSD"]),
                    amount0=Decimal(record.get("amount0") or "0"),
                    amount1=Decimal(record.get("amount1") or "0"),
                    fees_collected=Decimal(record.get("feesCollected") or "0"),
                    il_percentage=Decimal(record.get("ILPercentage") or "0"),
                    pnl_percent=Decimal(record["pnlPercent"]),
                    trades_in_range=int(record.get("tradesInRange") or 0),
                    trades_out_of_range=int(record.get("tradesOutOfRange") or 0),
                )
            )
    logger.info("reports: lp_read path=%s rows=%s", path, len(positions))
    return positions


def read_returns(
    path: str | Path,
    *,
    start_timestamp: int | None = None,
    end_timestamp: int | None = None,
) -> list[tuple[int, Decimal]]:
    """(close timestamp, pnl percent) rows of a report, filtered to the window."""
    rows = []
    for csv_path in _csv_files(Path(path)):
        frame = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
        for record in frame.to_dict(orient="records"):
            closed = to_timestamp_ms(record["closeTimestamp"])
            if start_timestamp is not None and closed < start_timestamp:
                continue
            if end_timestamp is not None and closed > end_timestamp:
                continue
            rows.append((closed, Decimal(record["pnlPercent"])))
    return rows


def hedge_frame(output: HedgePositionsOutput) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "openTimestamp": _iso(item.position.open_timestamp),
                "closeTimestamp": _iso(item.position.close_timestamp),
                "pnlPercent": str(item.position.pnl_percent),
                "dte": item.dte,
                "maxThetaPerDay": item.max_theta_per_day,
                "impliedVolatility": "" if item.implied_volatility is None else str(item.implied_volatility),
                "spotPrice": item.spot_price,
                "straddlePremium": item.straddle_premium,
                "straddlePremiumPercent": item.straddle_premium_percent,
                "straddleThetaPerDay": item.straddle_theta_per_day,
                "hedgedPnlPercent": item.hedged_pnl_percent,
            }
            for item in output.positions
        ]
    )


def read_series(path: str | Path, *, value_column: str = "value") -> list[tuple[int, Decimal]]:
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    points = []
    for record in frame.to_dict(orient="records"):
        raw_time = str(record.get("timestamp", "")).strip()
        raw_value = str(record.get(value_column, "")).strip()
        if not raw_time or not raw_value:
            continue
        timestamp = int(raw_time) if raw_time.isdigit() else to_timestamp_ms(raw_time)
        points.append((timestamp, Decimal(raw_value)))
    return points
