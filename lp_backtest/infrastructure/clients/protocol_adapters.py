from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from lp_backtest.domain.entities.pool import PoolProtocol


@dataclass(frozen=True)
class GraphQLQuery:
    query: str
    variables: dict
    root_field: str


class ProtocolAdapter(Protocol):
    protocol: PoolProtocol

    def build_pool_search_query(
        self,
        *,
        symbol0: str | None,
        symbol1: str | None,
        fee_tier: int | None,
        first: int,
    ) -> GraphQLQuery:
        ...

    def build_metadata_query(self, *, pool_address: str) -> GraphQLQuery:
        ...

    def build_trades_query(
        self,
        *,
        pool_address: str,
        start_seconds: int,
        end_seconds: int,
        first: int,
        skip: int,
    ) -> GraphQLQuery:
        ...

    def build_liquidity_query(
        self,
        *,
        pool_address: str,
        start_seconds: int,
        end_seconds: int,
        first: int,
        skip: int,
    ) -> GraphQLQuery | None:
        ...

    def build_fee_tier_query(
        self,
        *,
        pool_address: str,
        start_seconds: int,
        end_seconds: int,
        first: int,
        skip: int,
    ) -> GraphQLQuery | None:
        ...


_POOL_HOUR_DATAS_QUERY = """
query PoolHourDatas($pool: String!, $start: Int!, $end: Int!, $first: Int!, $skip: Int!) {
  poolHourDatas(
    where: { pool: $pool, periodStartUnix_gte: $start, periodStartUnix_lt: $end }
    orderBy: periodStartUnix
    orderDirection: asc
    first: $first
    skip: $skip
  ) {
    periodStartUnix
    liquidity
    volumeUSD
    feesUSD
  }
}
"""


def _swaps_query(price_field: str) -> str:
    return f"""
query Swaps($pool: String!, $start: BigInt!, $end: BigInt!, $first: Int!, $skip: Int!) {{
  swaps(
    where: {{ pool: $pool, timestamp_gte: $start, timestamp_lt: $end }}
    orderBy: timestamp
    orderDirection: asc
    first: $first
    skip: $skip
  ) {{
    id
    timestamp
    amount0
    amount1
    amountUSD
    sqrtPriceX96: {price_field}
    tick
  }}
}}
"""


def _metadata_query(fee_field: str) -> str:
    return f"""
query PoolMetadata($pool: ID!) {{
  pool(id: $pool) {{
    id
    createdAtTimestamp
    token0 {{ symbol decimals }}
    token1 {{ symbol decimals }}
    feeTier: {fee_field}
  }}
}}
"""


def _pool_search_query(fee_field: str) -> str:
    return f"""
query Pools($where: Pool_filter!, $first: Int!) {{
  pools(where: $where, orderBy: totalValueLockedUSD, orderDirection: desc, first: $first) {{
    id
    totalValueLockedUSD
    volumeUSD
    feeTier: {fee_field}
    token0 {{ symbol }}
    token1 {{ symbol }}
  }}
}}
"""


def _symbol_filter(symbol: str | None, **extra) -> dict:
    token = dict(extra)
    if symbol:
        token["symbol"] = symbol.upper()
    return token


def _window_variables(*, pool_address: str, start_seconds: int, end_seconds: int, first: int, skip: int) -> dict:
    return {
        "pool": pool_address.lower(),
        "start": int(start_seconds),
        "end": int(end_seconds),
        "first": int(first),
        "skip": int(skip),
    }


@dataclass(frozen=True)
class UniswapV3Adapter:
    protocol: PoolProtocol = PoolProtocol.UNISWAP_V3

    def build_pool_search_query(
        self,
        *,
        symbol0: str | None,
        symbol1: str | None,
        fee_tier: int | None,
        first: int,
    ) -> GraphQLQuery:
        # Tokens without an ETH price are spam copies of real symbols.
        where: dict = {
            "token0_": _symbol_filter(symbol0, derivedETH_gt="0"),
            "token1_": _symbol_filter(symbol1, derivedETH_gt="0"),
        }
        if fee_tier is not None:
            where["feeTier"] = str(int(fee_tier))
        return GraphQLQuery(
            query=_pool_search_query("feeTier"),
            variables={"where": where, "first": int(first)},
            root_field="pools",
        )

    def build_metadata_query(self, *, pool_address: str) -> GraphQLQuery:
        return GraphQLQuery(
            query=_metadata_query("feeTier"),
            variables={"pool": pool_address.lower()},
            root_field="pool",
        )

    def build_trades_query(self, **window) -> GraphQLQuery:
        return GraphQLQuery(
            query=_swaps_query("sqrtPriceX96"),
            variables=_window_variables(**window),
            root_field="swaps",
        )

    def build_liquidity_query(self, **window) -> GraphQLQuery:
        return GraphQLQuery(
            query=_POOL_HOUR_DATAS_QUERY,
            variables=_window_variables(**window),
            root_field="poolHourDatas",
        )

    def build_fee_tier_query(self, **window) -> GraphQLQuery | None:
        return None


@dataclass(frozen=True)
class ThenaAdapter:
    protocol: PoolProtocol = PoolProtocol.THENA

    def build_pool_search_query(
        self,
        *,
        symbol0: str | None,
        symbol1: str | None,
        fee_tier: int | None,
        first: int,
    ) -> GraphQLQuery:
        where: dict = {}
        if symbol0:
            where["token0_"] = _symbol_filter(symbol0)
        if symbol1:
            where["token1_"] = _symbol_filter(symbol1)
        return GraphQLQuery(
            query=_pool_search_query("fee"),
            variables={"where": where, "first": int(first)},
            root_field="pools",
        )

    def build_metadata_query(self, *, pool_address: str) -> GraphQLQuery:
        return GraphQLQuery(
            query=_metadata_query("fee"),
            variables={"pool": pool_address.lower()},
            root_field="pool",
        )

    def build_trades_query(self, **window) -> GraphQLQuery:
        return GraphQLQuery(
            query=_swaps_query("price"),
            variables=_window_variables(**window),
            root_field="swaps",
        )

    def build_liquidity_query(self, **window) -> GraphQLQuery:
        return GraphQLQuery(
            query=_POOL_HOUR_DATAS_QUERY,
            variables=_window_variables(**window),
            root_field="poolHourDatas",
        )

    def build_fee_tier_query(self, **window) -> GraphQLQuery:
        return GraphQLQuery(
            query="""
query FeeHourDatas($pool: String!, $start: BigInt!, $end: BigInt!, $first: Int!, $skip: Int!) {
  feeHourDatas(
    where: { pool: $pool, timestamp_gte: $start, timestamp_lt: $end }
    orderBy: timestamp
    orderDirection: asc
    first: $first
    skip: $skip
  ) {
    timestamp
    minFee
    maxFee
  }
}
""",
            variables=_window_variables(**window),
            root_field="feeHourDatas",
        )


ADAPTERS: dict[PoolProtocol, ProtocolAdapter] = {
    PoolProtocol.UNISWAP_V3: UniswapV3Adapter(),
    PoolProtocol.THENA: ThenaAdapter(),
}


def adapter_for(protocol: PoolProtocol) -> ProtocolAdapter:
    return ADAPTERS[protocol]
