"""USD price of the chain's gas token.

Used to express gas cost and the USD thresholds (minimum profit, quote
size, fallback liquidity) in the flash-loaned token. A configured
``NATIVE_PRICE_USD`` wins; otherwise the price comes from CoinGecko and
is cached. A last good price is reused for a bounded time when the API
is down; after that the price is unknown and callers must reject.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import asyncio
import time
from collections.abc import Callable

import httpx
import structlog

log = structlog.get_logger()

COINGECKO_SIMPLE_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"


class NativePriceOracle:
    """ETH/USD with an override, a short cache and a bounded stale fallback."""

    def __init__(
        self,
        *,
        override_usd: Decimal | None = None,
        asset_id: str = "ethereum",
        url: str = COINGECKO_SIMPLE_PRICE_URL,
        cache_ttl_seconds: float = 60.0,
        max_stale_seconds: float = 600.0,
        http_timeout: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.override_usd = override_usd
        self.asset_id = asset_id
        self.url = url
        self.cache_ttl_seconds = cache_ttl_seconds
        self.max_stale_seconds = max_stale_seconds
        self.http_timeout = http_timeout
        self._transport = transport
        self._clock = clock

        self._last: tuple[Decimal, float] | None = None
        self._lock = asyncio.Lock()

    async def get_native_usd(self) -> Decimal | None:
        """Current USD price of one native token, or None when unknown."""
        if self.override_usd is not None:
            return self.override_usd

        # Concurrent pair scans share one request
        async with self._lock:
            now = self._clock()
            if self._last is not None and now - self._last[1] < self.cache_ttl_seconds:
                return self._last[0]
            price = await self._fetch()
            if price is not None:
                self._last = (price, now)

        if price is not None:
            log.debug("price_oracle.fetched", asset=self.asset_id, usd=str(price))
            return price

        if self._last is not None:
            age = now - self._last[1]
            if age < self.max_stale_seconds:
                log.info("price_oracle.stale", asset=self.asset_id, age_seconds=round(age, 1))
                return self._last[0]

        log.warning("price_oracle.unavailable", asset=self.asset_id)
        return None

    async def _fetch(self) -> Decimal | None:
        params = {"ids": self.asset_id, "vs_currencies": "usd"}
        try:
            async with httpx.AsyncClient(
                timeout=self.http_timeout, transport=self._transport
            ) as client:
                response = await client.get(self.url, params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            log.debug("price_oracle.request_failed", error=str(e))
            return None

        try:
            price = Decimal(str(data[self.asset_id]["usd"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            log.debug("price_oracle.malformed", error=str(e))
            return None

        if not price.is_finite() or price <= 0:
            return None
        return price

    def clear_cache(self) -> None:
        self._last = None
