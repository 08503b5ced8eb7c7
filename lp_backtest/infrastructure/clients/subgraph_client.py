from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from threading import Lock

import httpx

from lp_backtest.application.ports.subgraph_port import SubgraphPort
from lp_backtest.domain.entities.market_data import FeeTierSnapshot, LiquiditySnapshot, Trade
from lp_backtest.domain.entities.pool import Pool, PoolCandidate, PoolProtocol
from lp_backtest.infrastructure.clients.protocol_adapters import GraphQLQuery, adapter_for


logger = logging.getLogger(__name__)


class SubgraphResolutionError(RuntimeError):
    pass


class SubgraphRequestError(RuntimeError):
    pass


@dataclass(frozen=True)
class SubgraphClientSettings:
    graph_gateway_base: str
    graph_api_key: str
    graph_subgraph_ids: dict
    timeout_seconds: float
    max_retries: int
    min_interval_ms: int
    page_size: int = 1000
    search_limit: int = 100


class SubgraphClient(SubgraphPort):
    def __init__(self, settings: SubgraphClientSettings):
        self._settings = settings
        self._lock = Lock()
        self._last_request_at = 0.0

    def search_pools(
        self,
        *,
        protocol: PoolProtocol,
        symbol0: str | None,
        symbol1: str | None,
        fee_tier: int | None = None,
    ) -> list[PoolCandidate]:
        query = adapter_for(protocol).build_pool_search_query(
            symbol0=symbol0,
            symbol1=symbol1,
            fee_tier=fee_tier,
            first=self._settings.search_limit,
        )
        payload = self._post_graphql(
            url=self._resolve_subgraph_url(protocol),
            query=query.query,
            variables=query.variables,
        )
        candidates = []
        for row in (payload.get("data") or {}).get(query.root_field) or []:
            try:
                fee = row.get("feeTier")
                candidates.append(
                    PoolCandidate(
                        protocol=protocol,
                        address=str(row["id"]).lower(),
                        token0_symbol=str(row["token0"]["symbol"]),
                        token1_symbol=str(row["token1"]["symbol"]),
                        fee_tier=int(Decimal(str(fee))) if fee is not None else None,
                        total_value_locked_usd=Decimal(str(row.get("totalValueLockedUSD") or "0")),
                        volume_usd=Decimal(str(row.get("volumeUSD") or "0")),
                    )
                )
            except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
                logger.warning("subgraph_client: malformed_pool id=%s error=%s", row.get("id"), exc)
        logger.info(
            "subgraph_client: searched_pools protocol=%s symbol0=%s symbol1=%s fee_tier=%s rows=%s",
            protocol.value,
            symbol0,
            symbol1,
            fee_tier,
            len(candidates),
        )
        return candidates

    def fetch_pool(self, *, protocol: PoolProtocol, address: str) -> Pool | None:
        adapter = adapter_for(protocol)
        query = adapter.build_metadata_query(pool_address=address)
        payload = self._post_graphql(
            url=self._resolve_subgraph_url(protocol),
            query=query.query,
            variables=query.variables,
        )
        row = (payload.get("data") or {}).get(query.root_field)
        if not row:
            logger.warning(
                "subgraph_client: pool_not_found protocol=%s pool=%s",
                protocol.value,
                address.lower(),
            )
            return None
        fee_tier = row.get("feeTier")
        created = row.get("createdAtTimestamp")
        return Pool(
            id=None,
            protocol=protocol,
            address=str(row["id"]).lower(),
            token0_symbol=str(row["token0"]["symbol"]),
            token1_symbol=str(row["token1"]["symbol"]),
            token0_decimals=int(row["token0"]["decimals"]),
            token1_decimals=int(row["token1"]["decimals"]),
            fee_tier=None if protocol.dynamic_fee or fee_tier is None else int(fee_tier),
            created_at=int(created) * 1000 if created is not None else None,
        )

    def fetch_trades(self, *, pool: Pool, start_timestamp: int, end_timestamp: int) -> list[Trade]:
        adapter = adapter_for(pool.protocol)
        rows = self._fetch_paginated(
            protocol=pool.protocol,
            pool_address=pool.address,
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
            build=adapter.build_trades_query,
        )
        trades: list[Trade] = []
        for row in rows:
            try:
                trades.append(
                    Trade(
                        txid=str(row["id"]),
                        pool_id=pool.id,
                        timestamp=int(row["timestamp"]) * 1000,
                        amount0=Decimal(str(row["amount0"])),
                        amount1=Decimal(str(row["amount1"])),
                        amount_usd=Decimal(str(row["amountUSD"])),
                        sqrt_price_x96=int(row["sqrtPriceX96"]),
                        tick=int(row["tick"]) if row.get("tick") is not None else None,
                    )
                )
            except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
                logger.warning("subgraph_client: malformed_swap id=%s error=%s", row.get("id"), exc)
        logger.info(
            "subgraph_client: fetched_trades pool=%s start=%s end=%s rows=%s",
            pool.address,
            start_timestamp,
            end_timestamp,
            len(trades),
        )
        return trades

    def fetch_liquidity(
        self,
        *,
        pool: Pool,
        start_timestamp: int,
        end_timestamp: int,
    ) -> list[LiquiditySnapshot]:
        adapter = adapter_for(pool.protocol)
        rows = self._fetch_paginated(
            protocol=pool.protocol,
            pool_address=pool.address,
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
            build=adapter.build_liquidity_query,
        )
        snapshots = [
            LiquiditySnapshot(
                pool_id=pool.id,
                timestamp=int(row["periodStartUnix"]) * 1000,
                liquidity=Decimal(str(row["liquidity"])),
            )
            for row in rows
            if row.get("periodStartUnix") is not None and row.get("liquidity") is not None
        ]
        logger.info(
            "subgraph_client: fetched_liquidity pool=%s start=%s end=%s rows=%s",
            pool.address,
            start_timestamp,
            end_timestamp,
            len(snapshots),
        )
        return snapshots

    def fetch_fee_tiers(
        self,
        *,
        pool: Pool,
        start_timestamp: int,
        end_timestamp: int,
    ) -> list[FeeTierSnapshot]:
        adapter = adapter_for(pool.protocol)
        rows = self._fetch_paginated(
            protocol=pool.protocol,
            pool_address=pool.address,
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
            build=adapter.build_fee_tier_query,
        )
        snapshots = []
        for row in rows:
            if row.get("timestamp") is None or row.get("minFee") is None or row.get("maxFee") is None:
                continue
            snapshots.append(
                FeeTierSnapshot(
                    pool_id=pool.id,
                    timestamp=int(row["timestamp"]) * 1000,
                    fee_tier=(Decimal(str(row["minFee"])) + Decimal(str(row["maxFee"]))) / 2,
                )
            )
        logger.info(
            "subgraph_client: fetched_fee_tiers pool=%s start=%s end=%s rows=%s",
            pool.address,
            start_timestamp,
            end_timestamp,
            len(snapshots),
        )
        return snapshots

    def _fetch_paginated(
        self,
        *,
        protocol: PoolProtocol,
        pool_address: str,
        start_timestamp: int,
        end_timestamp: int,
        build: Callable[..., GraphQLQuery | None],
    ) -> list[dict]:
        page_size = max(1, self._settings.page_size)
        url = self._resolve_subgraph_url(protocol)
        rows: list[dict] = []
        skip = 0
        while True:
            query = build(
                pool_address=pool_address,
                start_seconds=start_timestamp // 1000,
                end_seconds=end_timestamp // 1000,
                first=page_size,
                skip=skip,
            )
            if query is None:
                return rows
            payload = self._post_graphql(url=url, query=query.query, variables=query.variables)
            page = (payload.get("data") or {}).get(query.root_field) or []
            rows.extend(page)
            if len(page) < page_size:
                return rows
            skip += page_size

    def _post_graphql(self, *, url: str, query: str, variables: dict) -> dict:
        max_retries = self._settings.max_retries
        delay = 0.25
        last_exc: Exception | None = None
        attempt = 0

        while max_retries <= 0 or attempt < max_retries:
            attempt += 1
            self._respect_rate_limit()
            try:
                with httpx.Client(timeout=self._settings.timeout_seconds) as client:
                    response = client.post(
                        url,
                        json={"query": query, "variables": variables},
                    )
                    response.raise_for_status()
                    payload = response.json()

                errors = payload.get("errors") or []
                if errors:
                    message = " | ".join(str(err.get("message", err)) for err in errors)
                    raise SubgraphRequestError(message)

                return payload
            except (httpx.HTTPError, SubgraphRequestError, ValueError) as exc:
                last_exc = exc
                if max_retries > 0 and attempt >= max_retries:
                    break
                logger.warning(
                    "subgraph_client: graphql_retry attempt=%s/%s error=%s",
                    attempt,
                    max_retries if max_retries > 0 else "unbounded",
                    exc,
                )
                time.sleep(delay)
                delay = min(delay * 2, 60.0)

        raise SubgraphRequestError(f"GraphQL request failed after retries: {last_exc}") from last_exc

    def _respect_rate_limit(self) -> None:
        min_interval = max(0, self._settings.min_interval_ms) / 1000.0
        if min_interval <= 0:
            return

        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_at
            if elapsed < min_interval:
                time.sleep(min_interval - elapsed)
            self._last_request_at = time.monotonic()

    def _resolve_subgraph_url(self, protocol: PoolProtocol) -> str:
        subgraph_id = str(self._settings.graph_subgraph_ids.get(protocol.value) or "").strip()
        if not subgraph_id:
            raise SubgraphResolutionError(
                f"Missing SUBGRAPH_ID for protocol '{protocol.value}'."
            )
        return self._build_gateway_url(subgraph_id)

    def _build_gateway_url(self, subgraph_id: str) -> str:
        if subgraph_id.startswith("http://") or subgraph_id.startswith("https://"):
            return subgraph_id.rstrip("/")
        base = self._settings.graph_gateway_base.rstrip("/")
        api_key = self._settings.graph_api_key.strip()
        if api_key:
            return f"{base}/{api_key}/subgraphs/id/{subgraph_id}"
        return f"{base}/subgraphs/id/{subgraph_id}"
