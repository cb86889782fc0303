"""Gas price oracle with an RPC primary source and an Etherscan fallback.

Sources, in order:
1. On-chain RPC (``eth_gasPrice``)
2. Etherscan v2 gas tracker (only when an API key is configured)

There is no hardcoded last-resort price: if both sources fail the oracle
returns None and callers must treat the gas price as unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import time
from typing import Literal

import httpx
import structlog
from web3 import AsyncWeb3

log = structlog.get_logger()

ETHERSCAN_V2_URL = "https://api.etherscan.io/v2/api"
WEI_PER_GWEI = Decimal(10) ** 9

# Tier multipliers, percent of the standard price
SLOW_PCT = 90
FAST_PCT = 120


@dataclass(frozen=True)
class GasPrice:
    """Gas price snapshot in wei with slow/standard/fast tiers."""

    wei: int  # standard tier
    source: str
    confidence: Literal["high", "medium", "low"]
    slow_wei: int
    fast_wei: int

    @classmethod
    def from_standard(
        cls, wei: int, source: str, confidence: Literal["high", "medium", "low"]
    ) -> GasPrice:
        return cls(
            wei=wei,
            source=source,
            confidence=confidence,
            slow_wei=wei * SLOW_PCT // 100,
            fast_wei=wei * FAST_PCT // 100,
        )

    @property
    def gwei(self) -> Decimal:
        return Decimal(self.wei) / WEI_PER_GWEI

    def cost_wei(self, gas_units: int) -> int:
        """Cost of ``gas_units`` at the standard tier."""
        return self.wei * gas_units


class GasOracle:
    """Two-source gas oracle with a short-lived cache."""

    def __init__(
        self,
        w3: AsyncWeb3 | None,
        *,
        chain_id: int = 8453,
        etherscan_api_key: str | None = None,
        cache_ttl_seconds: float = 2.0,  # Base block time
        http_timeout: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize gas oracle.

        Args:
            w3: Web3 instance for the RPC source (None disables it)
            chain_id: Chain queried on the Etherscan v2 multichain API
            etherscan_api_key: Enables the Etherscan fallback
            cache_ttl_seconds: How long to cache prices
            http_timeout: Timeout for the Etherscan request
            transport: Optional httpx transport (tests)
        """
        self.w3 = w3
        self.chain_id = chain_id
        self.etherscan_api_key = etherscan_api_key
        self.cache_ttl_seconds = cache_ttl_seconds
        self.http_timeout = http_timeout
        self._transport = transport

        self._cache: tuple[GasPrice, float] | None = None

    async def get_gas_price(self) -> GasPrice | None:
        """Current gas price, or None when no source answered."""
        cached = self._get_cached()
        if cached:
            return cached

        price = await self._try_rpc() or await self._try_etherscan()
        if price is None:
            log.warning("gas_oracle.unavailable", chain_id=self.chain_id)
            return None

        self._cache = (price, time.monotonic())
        log.debug(
            "gas_oracle.fetched",
            gwei=str(price.gwei),
            source=price.source,
            confidence=price.confidence,
        )
        return price

    async def is_acceptable(self, max_gwei: Decimal) -> bool:
        """True when the standard gas price is known and at or below ``max_gwei``."""
        price = await self.get_gas_price()
        return price is not None and price.gwei <= max_gwei

    def _get_cached(self) -> GasPrice | None:
        """Get cached price if still valid."""
        if self._cache is None:
            return None

        price, timestamp = self._cache
        age = time.monotonic() - timestamp

        if age < self.cache_ttl_seconds:
            log.debug("gas_oracle.cache_hit", age_seconds=age)
            return price

        return None

    async def _try_rpc(self) -> GasPrice | None:
        """Try on-chain RPC first."""
        if self.w3 is None:
            return None

        try:
            gas_price_wei = await self.w3.eth.gas_price
        except Exception as e:
            log.debug("gas_oracle.rpc_failed", error=str(e))
            return None

        if not gas_price_wei:
            return None
        return GasPrice.from_standard(int(gas_price_wei), source="rpc", confidence="high")

    async def _try_etherscan(self) -> GasPrice | None:
        """Try the Etherscan v2 gas tracker."""
        if not self.etherscan_api_key:
            return None

        params = {
            "chainid": str(self.chain_id),
            "module": "gastracker",
            "action": "gasoracle",
            "apikey": self.etherscan_api_key,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.http_timeout, transport=self._transport
            ) as client:
                response = await client.get(ETHERSCAN_V2_URL, params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log.debug("gas_oracle.etherscan_failed", error=str(e))
            return None

        if data.get("status") != "1" or not isinstance(data.get("result"), dict):
            log.debug("gas_oracle.etherscan_rejected", message=data.get("message"))
            return None

        result = data["result"]
        try:
            standard = _gwei_to_wei(result["ProposeGasPrice"])
            slow = _gwei_to_wei(result.get("SafeGasPrice") or result["ProposeGasPrice"])
            fast = _gwei_to_wei(result.get("FastGasPrice") or result["ProposeGasPrice"])
        except (KeyError, ArithmeticError) as e:
            log.debug("gas_oracle.etherscan_malformed", error=str(e))
            return None

        if standard <= 0:
            return None

        return GasPrice(
            wei=standard,
            source="etherscan",
            confidence="medium",
            slow_wei=slow,
            fast_wei=fast,
        )

    def clear_cache(self) -> None:
        self._cache = None


def _gwei_to_wei(value: str | float) -> int:
    return int(Decimal(str(value)) * WEI_PER_GWEI)
