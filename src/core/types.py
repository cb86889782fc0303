"""Shared type definitions for the arbitrage keeper."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

# Type aliases using PEP 695 syntax
type Address = str
type Symbol = str
type BaseUnits = int  # token amount in its smallest unit
type Timestamp = int  # unix seconds

WEI_PER_ETHER = Decimal(10) ** 18


class PriceBasis(StrEnum):
    """How one whole unit of a flash-loaned token is valued in USD."""

    USD = "usd"  # dollar stablecoin, worth $1
    NATIVE = "native"  # wrapped gas token, worth the native USD price


@dataclass(frozen=True, slots=True)
class TradingPair:
    """Token pair scanned every tick; token_a is the flash-loaned asset."""

    token_a: Address
    token_b: Address
    symbol: Symbol
    token_a_decimals: int = 6
    basis: PriceBasis | None = PriceBasis.USD  # None: token_a cannot be priced

    def __post_init__(self) -> None:
        if self.token_a.lower() == self.token_b.lower():
            msg = f"Trading pair {self.symbol} uses the same token on both sides"
            raise ValueError(msg)

    def to_base_units(self, amount: Decimal | int | float) -> BaseUnits:
        """Convert a whole-unit token_a amount into base units."""
        return int(Decimal(str(amount)) * (Decimal(10) ** self.token_a_decimals))

    def unit_price_usd(self, native_usd: Decimal | None) -> Decimal | None:
        """USD value of one whole token_a, or None if it cannot be priced."""
        if self.basis is PriceBasis.USD:
            return Decimal("1")
        if self.basis is PriceBasis.NATIVE:
            return native_usd
        return None

    def usd_to_base_units(
        self, usd: Decimal | int | float, native_usd: Decimal | None
    ) -> BaseUnits | None:
        """Convert a USD amount into token_a base units."""
        price = self.unit_price_usd(native_usd)
        if price is None or price <= 0:
            return None
        return self.to_base_units(Decimal(str(usd)) / price)

    def wei_to_base_units(self, amount_wei: int, native_usd: Decimal | None) -> BaseUnits | None:
        """Convert a gas token amount into token_a base units, rounded up."""
        if self.basis is PriceBasis.NATIVE:
            rate = Decimal("1")
        else:
            price = self.unit_price_usd(native_usd)
            if price is None or native_usd is None or price <= 0:
                return None
            rate = native_usd / price
        native = Decimal(amount_wei) / WEI_PER_ETHER
        return math.ceil(native * rate * (Decimal(10) ** self.token_a_decimals))


@dataclass(frozen=True, slots=True)
class VenueConfig:
    """A price source / swap target."""

    name: str
    venue_type: str  # "aerodrome" or "uniswap_v3"
    router: Address
    quoter: Address | None = None
    factory: Address | None = None
    stable: bool = False  # Aerodrome pool flavour
    fee_tier: int = 3000  # Uniswap V3 pool fee
    default_liquidity: Decimal = Decimal("1000000")  # USD, used when the pool can't be read


@dataclass(slots=True)
class PriceQuote:
    """One venue's answer for one pair at one instant."""

    venue: VenueConfig
    price: Decimal  # amount_out / amount_in, both in base units
    liquidity: BaseUnits
    amount_in: BaseUnits = 0
    amount_out: BaseUnits = 0


@dataclass(slots=True)
class ArbitrageOpportunity:
    """Closed-loop flash loan trade candidate, matching the strategy's struct."""

    pair: TradingPair
    input_token: Address
    swap_path: tuple[Address, ...]
    venue_sequence: tuple[Address, ...]
    flash_loan_amount: BaseUnits
    estimated_profit: BaseUnits
    deadline: Timestamp
    buy_venue: str = ""
    sell_venue: str = ""
    spread_pct: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if len(self.swap_path) < 3:
            msg = f"Swap path needs at least 3 hops, got {len(self.swap_path)}"
            raise ValueError(msg)
        if self.swap_path[0].lower() != self.swap_path[-1].lower():
            msg = "Swap path must start and end on the same token"
            raise ValueError(msg)
        if len(self.venue_sequence) != len(self.swap_path) - 1:
            msg = "Venue sequence must have one venue per swap leg"
            raise ValueError(msg)

    def as_contract_tuple(
        self,
    ) -> tuple[Address, list[Address], list[Address], int, int, int]:
        """Render the (tokenIn, swapPath, dexAddresses, amount, profit, deadline) tuple."""
        return (
            self.input_token,
            list(self.swap_path),
            list(self.venue_sequence),
            int(self.flash_loan_amount),
            int(self.estimated_profit),
            int(self.deadline),
        )
