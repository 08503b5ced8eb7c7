from __future__ import annotations

import argparse
import json
from decimal import Decimal

import pandas as pd
import pytest

from lp_backtest.application.dto.run_strategy import RunStrategyOutput, SkippedPosition, StrategyPoolReport
from lp_backtest.application.dto.simulate_lp import SimulateLpOutput, TradingStrategyInput
from lp_backtest.application.use_cases.simulate_lp import SimulateLpUseCase
from lp_backtest.cli import reports
from lp_backtest.cli.main import _trading_argument, main
from lp_backtest.cli.schemas import load_pool_rows, load_strategies, to_timestamp_ms
from lp_backtest.domain.entities.lp_position import (
    ClosedBy,
    LpSimulationDiagnostics,
    PositionType,
    SimulatedLpPosition,
    TradingPosition,
)
from lp_backtest.domain.entities.pool import Pool, PoolProtocol
from lp_backtest.domain.entities.strategy import ScheduledPosition
from lp_backtest.domain.services.statistics import summarize_trading_positions
from lp_backtest.infrastructure.clients.subgraph_client import SubgraphClient
from lp_backtest.infrastructure.db.engine import get_engine, init_schema
from lp_backtest.infrastructure.db.repositories.market_data_repository import SqlMarketDataRepository

D0 = 1_704_067_200_000
DAY = 86_400_000

POOL = Pool(
    id=9,
    protocol=PoolProtocol.THENA,
    address="0xpool",
    token0_symbol="WBNB",
    token1_symbol="USDT",
    token0_decimals=18,
    token1_decimals=18,
    fee_tier=None,
)


def _position(day: int, pnl: str) -> SimulatedLpPosition:
    return SimulatedLpPosition(
        open_timestamp=D0 + day * DAY,
        close_timestamp=D0 + (day + 1) * DAY,
        open_price=Decimal("300"),
        close_price=Decimal("301"),
        price_low=Decimal("285"),
        price_high=Decimal("315"),
        tick_lower=56000,
        tick_upper=57500,
        amount_usd=Decimal("1000"),
        amount0=Decimal("1.6"),
        amount1=Decimal("520"),
        fees_collected=Decimal("0.5"),
        il_percentage=Decimal("0.001"),
        pnl_percent=Decimal(pnl),
        trades_in_range=10,
        trades_out_of_range=2,
    )


def _report(groups) -> StrategyPoolReport:
    return StrategyPoolReport(
        strategy_name="daily",
        pool=POOL,
        lp_positions=groups,
        trading_positions=[],
        skipped_positions=[
            SkippedPosition(
                scheduled=ScheduledPosition(open_timestamp=D0 + 5 * DAY, close_timestamp=D0 + 6 * DAY),
                reason="open_price_not_found",
            )
        ],
        lp_average_pnl_percent=Decimal("1"),
        lp_sharpe_ratio=Decimal("0.5"),
        lp_total_fees_usd=Decimal("1.5"),
        trading_summary=summarize_trading_positions([]),
    )


def test_to_timestamp_ms_treats_naive_times_as_utc():
    assert to_timestamp_ms("2024-01-01") == D0
    assert to_timestamp_ms("2024-01-01T01:00:00+01:00") == D0


def test_load_strategies_reads_camel_case_definitions(tmp_path):
    path = tmp_path / "strategies.json"
    path.write_text(
        json.dumps(
            [
                {
                    "strategyName": "weekly",
                    "priceRange": {"uptickPercent": 10, "downtickPercent": 5},
                    "rebalance": {"uptickPercent": 8, "downtickPercent": 4},
                    "positionOpenDays": 7,
                    "hoursCheckOpen": [0, 12],
                    "hoursCheckClose": [0],
                    "onePosPerPool": False,
                    "volatilityThreshold": 60,
                    "trading": [{"type": "short", "entryPricePercent": 2, "stopLossPercent": 5}],
                }
            ]
        ),
        encoding="utf-8",
    )

    [definition] = load_strategies(path)
    spec = definition.to_spec(default_amount_usd=Decimal("250"))

    assert spec.name == "weekly"
    assert spec.amount_usd == Decimal("250")
    assert spec.price_range.uptick_percent == Decimal("10")
    assert spec.rebalance.downtick_percent == Decimal("4")
    assert spec.hours_check_open == [0, 12]
    assert not spec.one_pos_per_pool
    assert spec.volatility_threshold == Decimal("60")
    assert spec.iv_symbol == "EVIV"
    assert spec.trading_strategies[0].position_type is PositionType.SHORT


def test_load_pool_rows_handles_blank_dates_and_lines(tmp_path):
    path = tmp_path / "pools.csv"
    path.write_text(
        "poolType,poolAddress,startDate,endDate\n"
        "uniswapv3,0xAAA,2024-01-01,2024-01-03\n"
        ",,,\n"
        "thena,0xBBB,,\n",
        encoding="utf-8",
    )

    rows = load_pool_rows(path)

    assert [row.pool_address for row in rows] == ["0xAAA", "0xBBB"]
    assert rows[0].start_timestamp == D0
    assert rows[0].end_timestamp == D0 + 2 * DAY
    assert rows[1].start_timestamp is None
    assert rows[1].end_timestamp is None


def test_report_paths_increment(tmp_path):
    first = reports.unique_report_path(tmp_path / "lp", "daily")
    first.write_text("x", encoding="utf-8")
    second = reports.unique_report_path(tmp_path / "lp", "daily")

    assert first.name == "daily_1.csv"
    assert second.name == "daily_2.csv"


def test_write_pool_report_and_summary(tmp_path):
    groups = [[_position(0, "1.5")], [_position(1, "-0.5"), _position(2, "2")]]
    report = _report(groups)

    [lp_path] = reports.write_pool_report(report, tmp_path)
    summary_path = reports.write_summary(RunStrategyOutput(reports=[report], failed_pools=["0xbad"]), tmp_path)

    assert lp_path == tmp_path / "lp" / "daily_WBNBUSDT_9_thena_1.csv"
    frame = pd.read_csv(lp_path)
    assert list(frame.columns) == reports.LP_COLUMNS
    assert list(frame["lpPositionId"]) == [1, 2, 2]

    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["failedPools"] == ["0xbad"]
    entry = summary["reports"][0]
    assert entry["lpPositions"] == 3
    assert entry["skippedPositions"][0]["reason"] == "open_price_not_found"
    assert set(entry["tradeStats"]) == {"long", "short", "total"}

    returns = reports.read_returns(lp_path, start_timestamp=D0 + 2 * DAY)
    assert [value for _, value in returns] == [Decimal("-0.5"), Decimal("2")]


def test_read_series_accepts_ms_and_iso_timestamps(tmp_path):
    path = tmp_path / "iv.csv"
    path.write_text(f"timestamp,close\n{D0},55.5\n2024-01-02,60\n,\n", encoding="utf-8")

    assert reports.read_series(path, value_column="close") == [
        (D0, Decimal("55.5")),
        (D0 + DAY, Decimal("60")),
    ]


def test_stats_command_prints_return_summary(tmp_path, capsys):
    report = _report([[_position(0, "10")], [_position(1, "-50")], [_position(2, "20")]])
    [lp_path] = reports.write_pool_report(report, tmp_path)

    assert main(["stats", "-i", str(lp_path.parent)]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["count"] == 3
    assert abs(Decimal(payload["maxDrawdown"]) - Decimal("0.5")) < Decimal("1e-12")
    assert {month: Decimal(value) for month, value in payload["monthly"].items()} == {"2024-01": Decimal("-20")}


def test_import_series_command_writes_to_store(tmp_path, monkeypatch: pytest.MonkeyPatch):
    dsn = f"sqlite:///{tmp_path / 'store.db'}"
    monkeypatch.setenv("DATABASE_URL", dsn)
    path = tmp_path / "iv.csv"
    path.write_text(f"timestamp,value\n{D0},55.5\n", encoding="utf-8")

    assert main(["import-series", "--kind", "iv", "--symbol", "EVIV", "-i", str(path)]) == 0

    repository = SqlMarketDataRepository(get_engine(dsn))
    assert repository.get_implied_volatility(symbol="EVIV", timestamp=D0 + 1) == Decimal("55.5")


def test_failed_command_returns_non_zero(tmp_path):
    assert main(["stats", "-i", str(tmp_path / "missing.csv")]) == 1


def test_pools_command_exports_and_imports_the_table(tmp_path, monkeypatch: pytest.MonkeyPatch, capsys):
    source = f"sqlite:///{tmp_path / 'source.db'}"
    engine = get_engine(source)
    init_schema(engine)
    SqlMarketDataRepository(engine).replace_pools([POOL])
    monkeypatch.setenv("DATABASE_URL", source)
    exported = tmp_path / "pools.csv"

    assert main(["pools", "-e", str(exported)]) == 0
    assert capsys.readouterr().out == "Pool count: 1\n"

    target = f"sqlite:///{tmp_path / 'target.db'}"
    monkeypatch.setenv("DATABASE_URL", target)
    assert main(["pools", "-i", str(exported)]) == 0
    assert capsys.readouterr().out == f"Imported 1 pools from {exported}\n"

    [pool] = SqlMarketDataRepository(get_engine(target)).list_pools()
    assert pool == POOL


def test_pools_command_reports_an_empty_table(tmp_path, monkeypatch: pytest.MonkeyPatch, capsys):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'empty.db'}")

    assert main(["pools", "-n"]) == 0
    assert capsys.readouterr().out == "Pools table is empty.\n"


def test_find_pools_command_prints_candidates(monkeypatch: pytest.MonkeyPatch, capsys):
    monkeypatch.setenv("SUBGRAPH_ID_UNISWAPV3", "univ3-id")
    searched = []

    def fake_post_graphql(self, *, url, query, variables):
        searched.append(variables["where"])
        return {
            "data": {
                "pools": [
                    {
                        "id": "0xABC",
                        "totalValueLockedUSD": "1234567.891",
                        "volumeUSD": "10",
                        "feeTier": "500",
                        "token0": {"symbol": "WETH"},
                        "token1": {"symbol": "USDC"},
                    }
                ]
            }
        }

    monkeypatch.setattr(SubgraphClient, "_post_graphql", fake_post_graphql)

    assert main(["find-pools", "weth", "_", "500"]) == 0

    out = capsys.readouterr().out
    assert "0xabc" in out
    assert "WETH/USDC" in out
    assert "1,234,567.89" in out
    assert searched == [
        {"token0_": {"derivedETH_gt": "0", "symbol": "WETH"}, "token1_": {"derivedETH_gt": "0"}, "feeTier": "500"}
    ]


def test_trading_argument_parses_optional_exits():
    assert _trading_argument("long:-2:5") == TradingStrategyInput(
        position_type="long",
        entry_price_percent=Decimal("-2"),
        take_profit_percent=Decimal("5"),
        stop_loss_percent=None,
    )
    assert _trading_argument("short:1::3").take_profit_percent is None

    with pytest.raises(argparse.ArgumentTypeError):
        _trading_argument("long")
    with pytest.raises(argparse.ArgumentTypeError):
        _trading_argument("long:abc")


def test_simulate_command_passes_trading_overlays(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'store.db'}")
    received = []
    trade = TradingPosition(
        position_type=PositionType.LONG,
        open_timestamp=D0,
        close_timestamp=D0 + DAY,
        open_price=Decimal("294"),
        close_price=Decimal("301"),
        entry_amount=Decimal("1000"),
        entry_price_percent=Decimal("-2"),
        take_profit_percent=Decimal("5"),
        stop_loss_percent=None,
        pnl_percent=Decimal("2.38"),
        pnl_usd=Decimal("23.8"),
        closed_by=ClosedBy.END_OF_PERIOD,
    )

    def fake_execute(self, data):
        received.append(data)
        return SimulateLpOutput(
            pool=POOL,
            lp_positions=[_position(0, "1")],
            trading_positions=[trade],
            diagnostics=LpSimulationDiagnostics(
                trades_total=0,
                trades_processed=0,
                trades_skipped_zero_amount=0,
                trades_skipped_duplicate=0,
                trades_skipped_malformed=0,
                rebalances=0,
                warnings=[],
            ),
        )

    monkeypatch.setattr(SimulateLpUseCase, "execute", fake_execute)
    trades_path = tmp_path / "trades.csv"

    exit_code = main(
        [
            "simulate",
            "--pool-type", "thena",
            "--pool-address", "0xpool",
            "--open", "2024-01-01",
            "--close", "2024-01-02",
            "--full-range",
            "--trade", "long:-2:5",
            "--trade", "short:3",
            "--trades-output", str(trades_path),
        ]
    )

    assert exit_code == 0
    assert [item.position_type for item in received[0].trading_strategies] == ["long", "short"]
    frame = pd.read_csv(trades_path, dtype=str)
    assert frame["closedBy"].tolist() == ["endOfPeriod"]
    assert frame["pnlUSD"].tolist() == ["23.8"]
