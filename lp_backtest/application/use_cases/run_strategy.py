from __future__ import annotations

import logging
from decimal import Decimal

from lp_backtest.application.dto.fetch_pool_data import FetchPoolDataInput
from lp_backtest.application.dto.run_strategy import (
    RunStrategyInput,
    RunStrategyOutput,
    SkippedPosition,
    StrategyPoolReport,
)
from lp_backtest.application.ports.market_data_port import SeriesPort
from lp_backtest.application.use_cases.fetch_pool_data import FetchPoolDataUseCase
from lp_backtest.application.use_cases.simulate_lp import SimulateLpUseCase
from lp_backtest.domain.entities.lp_position import (
    LpPositionConfig,
    SimulatedLpPosition,
    TradingPosition,
)
from lp_backtest.domain.entities.strategy import PoolWindow, StrategySpec
from lp_backtest.domain.exceptions import DomainError, SimulationDataNotFoundError
from lp_backtest.domain.services.statistics import mean, sharpe_ratio, summarize_trading_positions
from lp_backtest.domain.services.strategy_schedule import plan_positions


logger = logging.getLogger(__name__)


class RunStrategyUseCase:
    def __init__(
        self,
        *,
        simulate_lp_use_case: SimulateLpUseCase,
        fetch_pool_data_use_case: FetchPoolDataUseCase,
        series_port: SeriesPort,
    ):
        self._simulate_lp_use_case = simulate_lp_use_case
        self._fetch_pool_data_use_case = fetch_pool_data_use_case
        self._series_port = series_port

    def execute(self, command: RunStrategyInput) -> RunStrategyOutput:
        reports: list[StrategyPoolReport] = []
        failed: list[str] = []
        for window in command.pools:
            try:
                reports.append(
                    self._run_pool(
                        strategy=command.strategy,
                        window=window,
                        check_data=command.check_data,
                    )
                )
            except (DomainError, RuntimeError) as exc:
                logger.error(
                    "run_strategy: pool_failed strategy=%s pool=%s error=%s",
                    command.strategy.name,
                    window.address,
                    exc,
                )
                failed.append(window.address)
        return RunStrategyOutput(reports=reports, failed_pools=failed)

    def _run_pool(
        self,
        *,
        strategy: StrategySpec,
        window: PoolWindow,
        check_data: bool,
    ) -> StrategyPoolReport:
        pool = self._fetch_pool_data_use_case.ensure_pool(protocol=window.protocol, address=window.address)
        if check_data and not self._fetch_pool_data_use_case.has_complete_data(
            pool=pool,
            start_timestamp=window.start_timestamp,
            end_timestamp=window.end_timestamp,
        ):
            self._fetch_pool_data_use_case.execute(
                FetchPoolDataInput(
                    pool_protocol=window.protocol.value,
                    pool_address=window.address,
                    start_timestamp=window.start_timestamp,
                    end_timestamp=window.end_timestamp,
                )
            )

        schedule = plan_positions(
            strategy=strategy,
            start_timestamp=window.start_timestamp,
            end_timestamp=window.end_timestamp,
            implied_volatility_at=lambda timestamp: self._series_port.get_implied_volatility(
                symbol=strategy.iv_symbol,
                timestamp=timestamp,
            ),
        )
        logger.info(
            "run_strategy: scheduled strategy=%s pool=%s positions=%s",
            strategy.name,
            pool.address,
            len(schedule),
        )

        lp_positions: list[list[SimulatedLpPosition]] = []
        trading_positions: list[TradingPosition] = []
        skipped: list[SkippedPosition] = []
        for scheduled in schedule:
            config = LpPositionConfig(
                open_timestamp=scheduled.open_timestamp,
                close_timestamp=scheduled.close_timestamp,
                price_range=strategy.price_range,
                deposit_usd=strategy.amount_usd,
                rebalance=strategy.rebalance,
                trading_strategies=strategy.trading_strategies,
            )
            try:
                result = self._simulate_lp_use_case.simulate(pool=pool, config=config)
            except SimulationDataNotFoundError as exc:
                skipped.append(SkippedPosition(scheduled=scheduled, reason=exc.code))
                continue
            lp_positions.append(result.lp_positions)
            trading_positions.extend(result.trading_positions)

        returns = [position.pnl_percent for group in lp_positions for position in group]
        return StrategyPoolReport(
            strategy_name=strategy.name,
            pool=pool,
            lp_positions=lp_positions,
            trading_positions=trading_positions,
            skipped_positions=skipped,
            lp_average_pnl_percent=mean(returns),
            lp_sharpe_ratio=sharpe_ratio(returns),
            lp_total_fees_usd=sum(
                (position.fees_collected for group in lp_positions for position in group),
                Decimal("0"),
            ),
            trading_summary=summarize_trading_positions(trading_positions),
        )
