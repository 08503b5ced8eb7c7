from __future__ import annotations

import argparse
import json
import logging
from decimal import Decimal
from pathlib import Path

import pandas as pd

from lp_backtest.application.dto.fetch_pool_data import FetchPoolDataInput
from lp_backtest.application.dto.hedge_positions import HedgePositionsInput
from lp_backtest.application.dto.run_strategy import RunStrategyInput, RunStrategyOutput
from lp_backtest.application.dto.simulate_lp import SimulateLpInput, TradingStrategyInput
from lp_backtest.application.use_cases.fetch_pool_data import FetchPoolDataUseCase
from lp_backtest.application.use_cases.hedge_positions import HedgePositionsUseCase
from lp_backtest.application.use_cases.run_strategy import RunStrategyUseCase
from lp_backtest.application.use_cases.simulate_lp import SimulateLpUseCase, parse_pool_protocol
from lp_backtest.cli import reports
from lp_backtest.cli.schemas import load_pool_rows, load_pool_table, load_strategies, to_timestamp_ms
from lp_backtest.domain.entities.market_data import SeriesPoint
from lp_backtest.domain.entities.strategy import PoolWindow
from lp_backtest.domain.exceptions import DomainError
from lp_backtest.domain.services.statistics import monthly_returns, regression_stats, return_stats
from lp_backtest.infrastructure.clients.subgraph_client import SubgraphClient, SubgraphClientSettings
from lp_backtest.infrastructure.db.engine import get_engine, init_schema
from lp_backtest.infrastructure.db.repositories.market_data_repository import SqlMarketDataRepository
from lp_backtest.shared.config import Settings, get_settings


logger = logging.getLogger(__name__)


def _decimal(value: str) -> Decimal:
    return Decimal(value)


def _trading_argument(value: str) -> TradingStrategyInput:
    """Parse ``type:entry[:take_profit[:stop_loss]]``, e.g. ``long:-2:5:3``."""
    parts = [part.strip() for part in value.split(":")]
    if len(parts) < 2 or len(parts) > 4 or not parts[1]:
        raise argparse.ArgumentTypeError(f"expected type:entry[:take_profit[:stop_loss]], got {value!r}")
    parts += [""] * (4 - len(parts))
    try:
        return TradingStrategyInput(
            position_type=parts[0],
            entry_price_percent=Decimal(parts[1]),
            take_profit_percent=Decimal(parts[2]) if parts[2] else None,
            stop_loss_percent=Decimal(parts[3]) if parts[3] else None,
        )
    except ArithmeticError as exc:
        raise argparse.ArgumentTypeError(f"invalid number in {value!r}") from exc


def _build_repository(settings: Settings) -> SqlMarketDataRepository:
    engine = get_engine(settings.database_url)
    init_schema(engine)
    return SqlMarketDataRepository(engine)


def _build_subgraph_client(settings: Settings) -> SubgraphClient:
    return SubgraphClient(
        SubgraphClientSettings(
            graph_gateway_base=settings.graph_gateway_base,
            graph_api_key=settings.graph_api_key,
            graph_subgraph_ids=settings.graph_subgraph_ids,
            timeout_seconds=settings.fetch_timeout_seconds,
            max_retries=settings.fetch_max_retries,
            min_interval_ms=settings.fetch_min_interval_ms,
            page_size=settings.fetch_batch_size,
        )
    )


def _build_simulate_lp_use_case(settings: Settings, repository: SqlMarketDataRepository) -> SimulateLpUseCase:
    return SimulateLpUseCase(
        simulate_lp_port=repository,
        default_position_usd=settings.default_position_usd,
        min_trade_usd=settings.min_trade_usd,
        price_point_min_usd=settings.price_point_min_usd,
    )


def _build_fetch_use_case(settings: Settings, repository: SqlMarketDataRepository) -> FetchPoolDataUseCase:
    return FetchPoolDataUseCase(
        subgraph_port=_build_subgraph_client(settings),
        market_data_port=repository,
        fetch_pad_ms=settings.fetch_pad_ms,
    )


def _cmd_fetch(args, settings: Settings) -> int:
    repository = _build_repository(settings)
    result = _build_fetch_use_case(settings, repository).execute(
        FetchPoolDataInput(
            pool_protocol=args.pool_type,
            pool_address=args.pool_address,
            start_timestamp=to_timestamp_ms(args.start),
            end_timestamp=to_timestamp_ms(args.end),
        )
    )
    print(
        f"{result.pool.symbol} trades={result.trades_fetched} liquidity={result.liquidity_points_fetched} "
        f"fee_tiers={result.fee_tier_points_fetched} volatility={result.volatility_points_written}"
    )
    return 0


def _cmd_simulate(args, settings: Settings) -> int:
    repository = _build_repository(settings)
    result = _build_simulate_lp_use_case(settings, repository).execute(
        SimulateLpInput(
            pool_protocol=args.pool_type,
            pool_address=args.pool_address,
            open_timestamp=to_timestamp_ms(args.open),
            close_timestamp=to_timestamp_ms(args.close),
            deposit_usd=args.deposit_usd,
            full_range=args.full_range,
            uptick_percent=args.uptick,
            downtick_percent=args.downtick,
            price_low=args.price_low,
            price_high=args.price_high,
            rebalance_uptick_percent=args.rebalance_uptick,
            rebalance_downtick_percent=args.rebalance_downtick,
            trading_strategies=list(args.trade or []),
        )
    )
    frame = reports.lp_positions_frame([result.lp_positions], result.pool)
    if args.output:
        frame.to_csv(args.output, index=False)
        logger.info("cli: simulate_written path=%s rows=%s", args.output, len(frame))
    else:
        print(frame.to_string(index=False))

    if args.trade:
        trades = reports.trading_positions_frame(result.trading_positions)
        if args.trades_output:
            trades.to_csv(args.trades_output, index=False)
            logger.info("cli: simulate_trades_written path=%s rows=%s", args.trades_output, len(trades))
        elif result.trading_positions:
            print(trades.to_string(index=False))
        else:
            print("No trading positions opened.")
    if result.diagnostics.warnings:
        logger.warning("cli: simulate_warnings warnings=%s", ",".join(result.diagnostics.warnings))
    return 0


def _resolve_windows(rows, fetch_use_case: FetchPoolDataUseCase) -> list[PoolWindow]:
    now = round(pd.Timestamp.now(tz="UTC").timestamp() * 1000)
    windows = []
    for row in rows:
        try:
            protocol = parse_pool_protocol(row.pool_type)
            start = row.start_timestamp
            if start is None:
                pool = fetch_use_case.ensure_pool(protocol=protocol, address=row.pool_address)
                start = pool.created_at if pool.created_at is not None else now
        except (DomainError, RuntimeError) as exc:
            logger.error("cli: pool_skipped pool=%s error=%s", row.pool_address, exc)
            continue
        end = row.end_timestamp if row.end_timestamp is not None else now
        windows.append(
            PoolWindow(
                protocol=protocol,
                address=row.pool_address.lower(),
                start_timestamp=start,
                end_timestamp=end,
            )
        )
    return windows


def _cmd_strategy(args, settings: Settings) -> int:
    repository = _build_repository(settings)
    fetch_use_case = _build_fetch_use_case(settings, repository)
    use_case = RunStrategyUseCase(
        simulate_lp_use_case=_build_simulate_lp_use_case(settings, repository),
        fetch_pool_data_use_case=fetch_use_case,
        series_port=repository,
    )
    windows = _resolve_windows(load_pool_rows(args.input), fetch_use_case)
    output_dir = Path(args.output)

    reports_all = []
    failed = []
    for definition in load_strategies(args.strategy):
        logger.info("cli: strategy_start name=%s pools=%s", definition.name, len(windows))
        result = use_case.execute(
            RunStrategyInput(
                strategy=definition.to_spec(default_amount_usd=settings.default_position_usd),
                pools=windows,
                check_data=not args.no_checks,
            )
        )
        for report in result.reports:
            reports.write_pool_report(report, output_dir)
            print(
                f"{report.strategy_name} {report.pool.address} lp_groups={len(report.lp_positions)} "
                f"avg_pnl={report.lp_average_pnl_percent:.2f} sharpe={report.lp_sharpe_ratio:.2f} "
                f"skipped={len(report.skipped_positions)}"
            )
        reports_all.extend(result.reports)
        failed.extend(result.failed_pools)

    summary_path = reports.write_summary(RunStrategyOutput(reports=reports_all, failed_pools=failed), output_dir)
    logger.info("cli: strategy_done summary=%s failed_pools=%s", summary_path, len(failed))
    return 1 if failed and not reports_all else 0


def _cmd_hedge(args, settings: Settings) -> int:
    repository = _build_repository(settings)
    result = HedgePositionsUseCase(series_port=repository).execute(
        HedgePositionsInput(
            positions=reports.read_lp_positions(args.input),
            iv_symbol=args.iv_symbol,
            spot_symbol=args.spot_symbol,
            risk_free_rate=args.rate,
            strike_multiplier=args.strike_multiplier,
            strike_step=args.strike_step,
        )
    )
    frame = reports.hedge_frame(result)
    if args.output:
        frame.to_csv(args.output, index=False)
    else:
        print(frame.to_string(index=False))
    logger.info("cli: hedge_done priced=%s unpriced=%s", result.priced, result.unpriced)
    return 0


def _cmd_stats(args, settings: Settings) -> int:
    start = to_timestamp_ms(args.start) if args.start else None
    end = to_timestamp_ms(args.end) if args.end else None
    rows = reports.read_returns(args.input, start_timestamp=start, end_timestamp=end)
    returns = [value for _, value in rows]
    summary = return_stats(returns)
    payload = {
        "count": summary.count,
        "average": str(summary.average),
        "sharpeRatio": str(summary.sharpe_ratio),
        "maxDrawdown": str(summary.max_drawdown),
        "totalReturn": str(summary.total_return),
        "monthly": {month: str(value) for month, value in monthly_returns(rows).items()},
    }
    if args.reference:
        reference = reports.read_returns(args.reference, start_timestamp=start, end_timestamp=end)
        regression = regression_stats(returns, [value for _, value in reference])
        payload.update(
            alpha=str(regression.alpha),
            beta=str(regression.beta),
            rSquared=str(regression.r_squared),
        )
    print(json.dumps(payload, indent=2))
    return 0


def _cmd_find_pools(args, settings: Settings) -> int:
    protocol = parse_pool_protocol(args.pool_type)
    candidates = _build_subgraph_client(settings).search_pools(
        protocol=protocol,
        symbol0=None if args.token0 == "_" else args.token0,
        symbol1=None if args.token1 == "_" else args.token1,
        fee_tier=args.fee_tier,
    )
    if not candidates:
        print("No pools found.")
        return 0
    print(reports.pool_candidates_frame(candidates).to_string(index=False))
    return 0


def _cmd_pools(args, settings: Settings) -> int:
    repository = _build_repository(settings)
    if args.import_path:
        written = repository.replace_pools(load_pool_table(args.import_path))
        print(f"Imported {written} pools from {args.import_path}")
        return 0

    frame = reports.pools_frame(repository.list_pools())
    if frame.empty:
        print("Pools table is empty.")
        return 0
    if args.export_path:
        frame.to_csv(args.export_path, index=False)
        logger.info("cli: pools_exported path=%s rows=%s", args.export_path, len(frame))
    if args.print or not args.export_path:
        print(frame.to_csv(index=False), end="")
    if not args.no_total:
        print(f"Pool count: {len(frame)}")
    return 0


def _cmd_import_series(args, settings: Settings) -> int:
    repository = _build_repository(settings)
    points = [
        SeriesPoint(key=args.symbol, timestamp=timestamp, value=value)
        for timestamp, value in reports.read_series(args.input, value_column=args.column)
    ]
    if args.kind == "iv":
        written = repository.insert_implied_volatility(points)
    else:
        written = repository.insert_spot_prices(points)
    logger.info("cli: series_imported kind=%s symbol=%s rows=%s", args.kind, args.symbol, written)
    return 0


def _add_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--full-range", action="store_true", help="Use the whole tick range")
    parser.add_argument("--uptick", type=_decimal, help="Upper bound distance in percent")
    parser.add_argument("--downtick", type=_decimal, help="Lower bound distance in percent")
    parser.add_argument("--price-low", type=_decimal, help="Fixed lower price (token1 per token0)")
    parser.add_argument("--price-high", type=_decimal, help="Fixed upper price (token1 per token0)")
    parser.add_argument("--rebalance-uptick", type=_decimal, help="Rebalance band above open price, percent")
    parser.add_argument("--rebalance-downtick", type=_decimal, help="Rebalance band below open price, percent")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lp-backtest", description="Concentrated-liquidity LP backtester")
    commands = parser.add_subparsers(dest="command", required=True)

    fetch = commands.add_parser("fetch", help="Fetch pool history from the subgraph into the store")
    fetch.add_argument("--pool-type", required=True, help="uniswapv3 or thena")
    fetch.add_argument("--pool-address", required=True)
    fetch.add_argument("--start", required=True, help="ISO date/time (UTC if naive)")
    fetch.add_argument("--end", required=True, help="ISO date/time (UTC if naive)")
    fetch.set_defaults(handler=_cmd_fetch)

    simulate = commands.add_parser("simulate", help="Simulate one LP position from stored data")
    simulate.add_argument("--pool-type", required=True)
    simulate.add_argument("--pool-address", required=True)
    simulate.add_argument("--open", required=True, help="Open time, ISO (UTC if naive)")
    simulate.add_argument("--close", required=True, help="Close time, ISO (UTC if naive)")
    simulate.add_argument("--deposit-usd", type=_decimal)
    simulate.add_argument("--output", help="CSV path; prints a table when omitted")
    simulate.add_argument(
        "--trade",
        action="append",
        type=_trading_argument,
        help="Trading overlay as type:entry[:take_profit[:stop_loss]] in percent; repeatable",
    )
    simulate.add_argument("--trades-output", help="CSV path for trading positions")
    _add_range_arguments(simulate)
    simulate.set_defaults(handler=_cmd_simulate)

    strategy = commands.add_parser("strategy", help="Run strategies over a list of pools")
    strategy.add_argument("-s", "--strategy", required=True, help="Strategy JSON file")
    strategy.add_argument("-i", "--input", required=True, help="Pools CSV (poolType,poolAddress,startDate,endDate)")
    strategy.add_argument("-o", "--output", default="output", help="Report directory")
    strategy.add_argument("--no-checks", action="store_true", help="Skip the data integrity check and fetch")
    strategy.set_defaults(handler=_cmd_strategy)

    hedge = commands.add_parser("hedge", help="Price straddle hedges for LP report rows")
    hedge.add_argument("-i", "--input", required=True, help="LP report CSV or directory of CSVs")
    hedge.add_argument("-o", "--output", help="CSV path; prints a table when omitted")
    hedge.add_argument("--iv-symbol", default="EVIV")
    hedge.add_argument("--spot-symbol")
    hedge.add_argument("--rate", type=float, default=0.0, help="Risk-free rate as a fraction")
    hedge.add_argument("--strike-multiplier", type=float, default=1.0)
    hedge.add_argument("--strike-step", type=float)
    hedge.set_defaults(handler=_cmd_hedge)

    stats = commands.add_parser("stats", help="Return statistics of an LP report")
    stats.add_argument("-i", "--input", required=True, help="LP report CSV or directory")
    stats.add_argument("-r", "--reference", help="Reference report for alpha/beta/R2")
    stats.add_argument("--start", help="Only rows closed at or after this date")
    stats.add_argument("--end", help="Only rows closed at or before this date")
    stats.set_defaults(handler=_cmd_stats)

    find_pools = commands.add_parser("find-pools", help="Search subgraph pools by token symbols")
    find_pools.add_argument("token0", help="Token0 symbol, _ for any")
    find_pools.add_argument("token1", help="Token1 symbol, _ for any")
    find_pools.add_argument("fee_tier", nargs="?", type=int, help="Fee tier in hundredths of a bip")
    find_pools.add_argument("-t", "--pool-type", default="uniswapv3", help="uniswapv3 or thena")
    find_pools.set_defaults(handler=_cmd_find_pools)

    pools = commands.add_parser("pools", help="Print, export or import the stored pool table")
    pools.add_argument("-e", "--export", dest="export_path", help="Write the pool table to this CSV")
    pools.add_argument("-i", "--import", dest="import_path", help="Replace the pool table with this CSV")
    pools.add_argument("-p", "--print", action="store_true", help="Print the CSV even when exporting")
    pools.add_argument("-n", "--no-total", action="store_true", help="Do not print the pool count")
    pools.set_defaults(handler=_cmd_pools)

    series = commands.add_parser("import-series", help="Load an implied-volatility or spot price CSV")
    series.add_argument("--kind", choices=["iv", "spot"], required=True)
    series.add_argument("--symbol", required=True)
    series.add_argument("-i", "--input", required=True, help="CSV with timestamp (ms or ISO) and a value column")
    series.add_argument("--column", default="value", help="Value column name")
    series.set_defaults(handler=_cmd_import_series)
    return parser


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args, settings)
    except (DomainError, RuntimeError, OSError, ValueError) as exc:
        logger.error("cli: command_failed command=%s error=%s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
