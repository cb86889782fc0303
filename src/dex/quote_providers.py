"""Venue quote adapters and the concurrent quote collector.

Each venue type exposes a different read interface on the DEX aggregator
(Aerodrome takes a stable-pool flag, Uniswap V3 does not). Providers hide
that behind one ``QuoteProvider`` protocol; ``QuoteService`` fans a pair out
to every venue and classifies each answer as ok, skipped or failed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Protocol

import structlog
from web3 import AsyncWeb3, Web3
from web3.contract.async_contract import AsyncContract
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from src.core.results import StageResult
from src.core.types import Address, BaseUnits, PriceQuote, TradingPair, VenueConfig
from src.dex.config import ZERO_ADDRESS, KeeperConfigError
from src.utils.resilience import CircuitBreaker, CircuitBreakerError, with_timeout

log = structlog.get_logger()

# DEX aggregator ABI (minimal - quote reads only)
AGGREGATOR_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "tokenIn", "type": "address"},
            {"internalType": "address", "name": "tokenOut", "type": "address"},
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "bool", "name": "stable", "type": "bool"},
        ],
        "name": "getAerodromeQuote",
        "outputs": [{"internalType": "uint256", "name": "amountOut", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "tokenIn", "type": "address"},
            {"internalType": "address", "name": "tokenOut", "type": "address"},
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
        ],
        "name": "getUniswapQuote",
        "outputs": [{"internalType": "uint256", "name": "amountOut", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Aerodrome PoolFactory ABI (minimal - getPool with stable flag)
AERODROME_FACTORY_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "tokenA", "type": "address"},
            {"internalType": "address", "name": "tokenB", "type": "address"},
            {"internalType": "bool", "name": "stable", "type": "bool"},
        ],
        "name": "getPool",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    }
]

# Uniswap V3 Factory ABI (minimal - getPool with fee tier)
UNISWAP_V3_FACTORY_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "tokenA", "type": "address"},
            {"internalType": "address", "name": "tokenB", "type": "address"},
            {"internalType": "uint24", "name": "fee", "type": "uint24"},
        ],
        "name": "getPool",
        "outputs": [{"internalType": "address", "name": "pool", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    }
]

# ERC20 ABI (minimal - pool balance as liquidity estimate)
ERC20_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]


class NoRouteError(Exception):
    """The venue has no route or liquidity for the requested pair."""


# Exceptions that mean "this venue cannot quote this pair", not "the RPC failed"
NO_ROUTE_ERRORS: tuple[type[Exception], ...] = (
    NoRouteError,
    ContractLogicError,
    BadFunctionCallOutput,
)


class QuoteProvider(Protocol):
    """Read-only price source for one venue."""

    venue: VenueConfig

    async def get_quote(
        self, token_in: Address, token_out: Address, amount_in: BaseUnits
    ) -> BaseUnits: ...

    async def get_liquidity(self, token_in: Address, token_out: Address) -> BaseUnits | None: ...


class _AggregatorQuoteProvider:
    """Shared plumbing: aggregator contract for quotes, factory + ERC20 for liquidity."""

    factory_abi: list[dict] = []

    def __init__(self, w3: AsyncWeb3, venue: VenueConfig, quoter: Address):
        self.w3 = w3
        self.venue = venue
        self.aggregator: AsyncContract = w3.eth.contract(
            address=Web3.to_checksum_address(quoter), abi=AGGREGATOR_ABI
        )
        self.factory: AsyncContract | None = None
        if venue.factory:
            self.factory = w3.eth.contract(
                address=Web3.to_checksum_address(venue.factory), abi=self.factory_abi
            )
        self._pools: dict[tuple[str, str], str | None] = {}

    async def _lookup_pool(self, token_a: Address, token_b: Address) -> str:
        raise NotImplementedError

    async def _pool_for(self, token_in: Address, token_out: Address) -> str | None:
        key = (token_in.lower(), token_out.lower())
        if key not in self._pools:
            pool = await self._lookup_pool(
                Web3.to_checksum_address(token_in), Web3.to_checksum_address(token_out)
            )
            self._pools[key] = None if pool == ZERO_ADDRESS else pool
        return self._pools[key]

    async def get_liquidity(self, token_in: Address, token_out: Address) -> BaseUnits | None:
        """Balance of ``token_in`` held by the venue's pool, or None if unknown."""
        if self.factory is None:
            return None

        pool = await self._pool_for(token_in, token_out)
        if pool is None:
            return None

        token: AsyncContract = self.w3.eth.contract(
            address=Web3.to_checksum_address(token_in), abi=ERC20_ABI
        )
        balance = await token.functions.balanceOf(pool).call()
        return int(balance)


class AerodromeQuoteProvider(_AggregatorQuoteProvider):
    """Aerodrome (constant-product, stable/volatile pools)."""

    factory_abi = AERODROME_FACTORY_ABI

    async def get_quote(
        self, token_in: Address, token_out: Address, amount_in: BaseUnits
    ) -> BaseUnits:
        amount_out = await self.aggregator.functions.getAerodromeQuote(
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            int(amount_in),
            self.venue.stable,
        ).call()
        return int(amount_out)

    async def _lookup_pool(self, token_a: Address, token_b: Address) -> str:
        assert self.factory is not None
        return await self.factory.functions.getPool(token_a, token_b, self.venue.stable).call()


class UniswapV3QuoteProvider(_AggregatorQuoteProvider):
    """Uniswap V3 (concentrated liquidity, one pool per fee tier)."""

    factory_abi = UNISWAP_V3_FACTORY_ABI

    async def get_quote(
        self, token_in: Address, token_out: Address, amount_in: BaseUnits
    ) -> BaseUnits:
        amount_out = await self.aggregator.functions.getUniswapQuote(
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            int(amount_in),
        ).call()
        return int(amount_out)

    async def _lookup_pool(self, token_a: Address, token_b: Address) -> str:
        assert self.factory is not None
        return await self.factory.functions.getPool(token_a, token_b, self.venue.fee_tier).call()


PROVIDER_TYPES: dict[str, type[_AggregatorQuoteProvider]] = {
    "aerodrome": AerodromeQuoteProvider,
    "uniswap_v3": UniswapV3QuoteProvider,
}


def build_quote_provider(
    w3: AsyncWeb3, venue: VenueConfig, default_quoter: Address | None = None
) -> QuoteProvider:
    """Create the provider matching ``venue.venue_type``."""
    provider_cls = PROVIDER_TYPES.get(venue.venue_type)
    if provider_cls is None:
        raise KeeperConfigError(
            f"Unsupported venue type {venue.venue_type!r} for venue {venue.name}"
        )

    quoter = venue.quoter or default_quoter
    if not quoter:
        raise KeeperConfigError(f"Venue {venue.name} has no quoter address")

    return provider_cls(w3, venue, quoter)


class QuoteService:
    """Collect one quote per venue for a pair, concurrently.

    Never raises for venue problems: a reverted or empty quote becomes
    ``Skip("no_route")``, a timeout or RPC failure becomes ``Error``, and a
    venue whose breaker is open becomes ``Skip("circuit_open")``.
    """

    def __init__(
        self,
        providers: Mapping[str, QuoteProvider],
        quote_timeout: float = 4.0,
        breaker_failure_threshold: int = 3,
        breaker_cooldown: float = 30.0,
    ):
        self.providers = dict(providers)
        self.quote_timeout = quote_timeout
        self.breakers = {
            name: CircuitBreaker(
                failure_threshold=breaker_failure_threshold,
                cooldown=breaker_cooldown,
                name=f"quotes.{name}",
            )
            for name in self.providers
        }

    async def collect_quotes(
        self,
        pair: TradingPair,
        venues: Sequence[VenueConfig],
        amount_in: BaseUnits,
        native_usd: Decimal | None = None,
    ) -> list[StageResult[PriceQuote]]:
        """Quote ``amount_in`` of token_a -> token_b on every venue.

        ``native_usd`` prices the USD fallback liquidity of gas-token-based pairs.
        """
        if amount_in <= 0:
            raise ValueError(f"amount_in must be positive, got {amount_in}")
        if pair.token_a.lower() == pair.token_b.lower():
            raise ValueError(f"Cannot quote {pair.symbol}: token_in equals token_out")

        return list(
            await asyncio.gather(
                *(self._quote_venue(pair, venue, amount_in, native_usd) for venue in venues)
            )
        )

    async def _quote_venue(
        self,
        pair: TradingPair,
        venue: VenueConfig,
        amount_in: BaseUnits,
        native_usd: Decimal | None,
    ) -> StageResult[PriceQuote]:
        provider = self.providers.get(venue.name)
        if provider is None:
            log.warning("quotes.no_provider", pair=pair.symbol, venue=venue.name)
            return StageResult.error("no_provider")

        try:
            async with self.breakers[venue.name]:
                try:
                    amount_out = await with_timeout(
                        provider.get_quote(pair.token_a, pair.token_b, amount_in),
                        self.quote_timeout,
                        f"{venue.name} quote timed out",
                    )
                except NO_ROUTE_ERRORS as e:
                    log.debug(
                        "quotes.no_route", pair=pair.symbol, venue=venue.name, error=str(e)
                    )
                    return StageResult.skip("no_route")
        except CircuitBreakerError:
            log.debug("quotes.circuit_open", pair=pair.symbol, venue=venue.name)
            return StageResult.skip("circuit_open")
        except Exception as e:
            log.warning(
                "quotes.venue_failed",
                pair=pair.symbol,
                venue=venue.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return StageResult.error(f"{type(e).__name__}: {e}")

        if amount_out <= 0:
            log.debug("quotes.no_route", pair=pair.symbol, venue=venue.name, amount_out=amount_out)
            return StageResult.skip("no_route")

        liquidity = await self._liquidity(provider, pair, venue, native_usd)
        quote = PriceQuote(
            venue=venue,
            price=Decimal(amount_out) / Decimal(amount_in),
            liquidity=liquidity,
            amount_in=amount_in,
            amount_out=amount_out,
        )
        log.debug(
            "quotes.received",
            pair=pair.symbol,
            venue=venue.name,
            price=str(quote.price),
            liquidity=liquidity,
        )
        return StageResult.ok(quote)

    async def _liquidity(
        self,
        provider: QuoteProvider,
        pair: TradingPair,
        venue: VenueConfig,
        native_usd: Decimal | None,
    ) -> BaseUnits:
        """Pool balance of token_a, falling back to the venue's USD default.

        An unpriceable fallback is zero, which sizes the loan to nothing.
        """
        fallback = pair.usd_to_base_units(venue.default_liquidity, native_usd) or 0
        try:
            liquidity = await with_timeout(
                provider.get_liquidity(pair.token_a, pair.token_b),
                self.quote_timeout,
                f"{venue.name} liquidity lookup timed out",
            )
        except Exception as e:
            log.debug(
                "quotes.liquidity_fallback",
                pair=pair.symbol,
                venue=venue.name,
                error=str(e),
            )
            return fallback

        if not liquidity:
            return fallback
        return int(liquidity)
