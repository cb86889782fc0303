"""Keeper configuration loaded from the environment and ``.env``.

Every numeric threshold is a configurable default; none of them is a
business rule baked into the evaluator or the gate.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

import structlog
from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.types import PriceBasis, TradingPair, VenueConfig

log = structlog.get_logger()

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Token decimals by symbol; anything not listed defaults to 18
TOKEN_DECIMALS: dict[str, int] = {
    "USDC": 6,
    "USDT": 6,
    "DAI": 18,
    "WETH": 18,
    "WBTC": 8,
}

# How each flash-loaned token is valued; unlisted tokens cannot be priced
PRICE_BASIS: dict[str, PriceBasis] = {
    "USDC": PriceBasis.USD,
    "USDT": PriceBasis.USD,
    "DAI": PriceBasis.USD,
    "WETH": PriceBasis.NATIVE,
}


class KeeperConfigError(RuntimeError):
    """Fatal startup configuration problem. The keeper refuses to start."""


class KeeperSettings(BaseSettings):
    """Configuration for the arbitrage keeper."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Connection and signer
    rpc_url: Optional[SecretStr] = Field(default=None, alias="RPC_URL")
    keeper_private_key: Optional[SecretStr] = Field(default=None, alias="KEEPER_PRIVATE_KEY")
    chain_id: int = Field(default=8453, alias="CHAIN_ID")  # Base mainnet

    # Contracts
    arbitrage_strategy_address: Optional[str] = Field(
        default=None, alias="ARBITRAGE_STRATEGY_ADDRESS"
    )
    dex_aggregator_address: Optional[str] = Field(default=None, alias="DEX_AGGREGATOR_ADDRESS")
    aerodrome_router: str = Field(
        default="0xcF77a3Ba9A5CA399B7c97c74d54e5b1Beb874E43",  # Base Aerodrome Router
        alias="AERODROME_ROUTER",
    )
    aerodrome_factory: str = Field(
        default="0x420DD381b31aEf6683db6B902084cB0FFECe40Da",  # Base Aerodrome PoolFactory
        alias="AERODROME_FACTORY",
    )
    aerodrome_stable: bool = Field(default=False, alias="AERODROME_STABLE")
    uniswap_v3_router: str = Field(
        default="0x2626664c2603336E57B271c5C0b26F421741e481",  # Base SwapRouter02
        alias="UNISWAP_V3_ROUTER",
    )
    uniswap_v3_factory: str = Field(
        default="0x33128a8fC17869897dcE68Ed026d694621f6FDfD",  # Base UniswapV3Factory
        alias="UNISWAP_V3_FACTORY",
    )
    uniswap_v3_fee_tier: int = Field(default=3000, alias="UNISWAP_V3_FEE_TIER")

    # Tokens
    usdc_address: str = Field(
        default="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",  # Base USDC
        alias="USDC_ADDRESS",
    )
    weth_address: str = Field(
        default="0x4200000000000000000000000000000000000006",  # Base WETH
        alias="WETH_ADDRESS",
    )
    dai_address: str = Field(
        default="0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb",  # Base DAI
        alias="DAI_ADDRESS",
    )
    wbtc_address: str = Field(
        default="0x0555E30da8f98308EdB960aa94C0Db47230d2B9c",  # Base WBTC
        alias="WBTC_ADDRESS",
    )
    keeper_pairs: str = Field(default="USDC/WETH,USDC/DAI,WETH/WBTC", alias="KEEPER_PAIRS")

    # Scheduling
    poll_interval_seconds: float = Field(default=5.0, alias="POLL_INTERVAL_SECONDS")
    stats_interval_seconds: float = Field(default=60.0, alias="STATS_INTERVAL_SECONDS")
    quote_timeout_seconds: float = Field(default=4.0, alias="QUOTE_TIMEOUT_SECONDS")
    receipt_timeout_seconds: float = Field(default=120.0, alias="RECEIPT_TIMEOUT_SECONDS")
    shutdown_grace_seconds: float = Field(default=30.0, alias="SHUTDOWN_GRACE_SECONDS")

    # Evaluation
    min_spread_pct: Decimal = Field(default=Decimal("0.5"), alias="MIN_SPREAD_PCT")
    max_liquidity_fraction: Decimal = Field(
        default=Decimal("0.30"), alias="MAX_LIQUIDITY_FRACTION"
    )
    venue_fee_pct: Decimal = Field(default=Decimal("0.30"), alias="VENUE_FEE_PCT")
    flash_loan_fee_pct: Decimal = Field(default=Decimal("0"), alias="FLASH_LOAN_FEE_PCT")
    # USD amounts, converted into each pair's input token
    min_profit: Decimal = Field(default=Decimal("10"), alias="MIN_PROFIT")
    quote_amount: Decimal = Field(default=Decimal("1000"), alias="QUOTE_AMOUNT")
    default_liquidity: Decimal = Field(default=Decimal("1000000"), alias="DEFAULT_LIQUIDITY")
    deadline_seconds: int = Field(default=300, alias="DEADLINE_SECONDS")

    # Gas and execution
    max_gas_price_gwei: Decimal = Field(default=Decimal("100"), alias="MAX_GAS_PRICE_GWEI")
    max_gas_limit: int = Field(default=500_000, alias="MAX_GAS_LIMIT")
    gas_estimate: int = Field(default=350_000, alias="GAS_ESTIMATE")
    enable_execution: bool = Field(default=False, alias="ENABLE_EXECUTION")
    # Fixed ETH/USD price; unset means the live price feed is used
    native_price_usd: Optional[Decimal] = Field(default=None, alias="NATIVE_PRICE_USD")
    native_price_cache_seconds: float = Field(default=60.0, alias="NATIVE_PRICE_CACHE_SECONDS")
    min_keeper_balance_eth: Decimal = Field(
        default=Decimal("0.01"), alias="MIN_KEEPER_BALANCE_ETH"
    )
    etherscan_api_key: Optional[SecretStr] = Field(default=None, alias="ETHERSCAN_API_KEY")

    @field_validator(
        "rpc_url",
        "keeper_private_key",
        "arbitrage_strategy_address",
        "dex_aggregator_address",
        "etherscan_api_key",
        "native_price_usd",
        mode="before",
    )
    @classmethod
    def strip_whitespace(cls, v):
        """Strip whitespace and treat empty strings as unset."""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def _validate_required_fields(self) -> "KeeperSettings":
        """Ensure that required environment variables are set and sane."""
        if self.rpc_url is None:
            raise ValueError("RPC_URL must be set in environment or .env file")
        if self.keeper_private_key is None:
            raise ValueError("KEEPER_PRIVATE_KEY must be set in environment or .env file")
        if not self.arbitrage_strategy_address:
            raise ValueError("ARBITRAGE_STRATEGY_ADDRESS must be set in environment or .env file")
        if not self.dex_aggregator_address:
            raise ValueError("DEX_AGGREGATOR_ADDRESS must be set in environment or .env file")
        if self.min_spread_pct <= 0:
            raise ValueError("MIN_SPREAD_PCT must be positive")
        if not Decimal("0") < self.max_liquidity_fraction <= Decimal("1"):
            raise ValueError("MAX_LIQUIDITY_FRACTION must be in (0, 1]")
        if self.quote_amount <= 0:
            raise ValueError("QUOTE_AMOUNT must be positive")
        if self.native_price_usd is not None and self.native_price_usd <= 0:
            raise ValueError("NATIVE_PRICE_USD must be positive when set")
        if self.poll_interval_seconds <= 0:
            raise ValueError("POLL_INTERVAL_SECONDS must be positive")
        return self

    def token_addresses(self) -> dict[str, str]:
        return {
            "USDC": self.usdc_address,
            "WETH": self.weth_address,
            "DAI": self.dai_address,
            "WBTC": self.wbtc_address,
        }

    def build_pairs(self) -> list[TradingPair]:
        """Parse ``KEEPER_PAIRS`` ("USDC/WETH,WETH/WBTC") into trading pairs."""
        addresses = self.token_addresses()
        pairs: list[TradingPair] = []

        for raw in self.keeper_pairs.split(","):
            symbol = raw.strip().upper()
            if not symbol:
                continue
            parts = symbol.split("/")
            if len(parts) != 2:
                raise KeeperConfigError(f"Malformed pair {raw!r} in KEEPER_PAIRS")

            base, quote = parts
            for token in (base, quote):
                if token not in addresses:
                    raise KeeperConfigError(f"Unknown token {token!r} in KEEPER_PAIRS")

            try:
                pairs.append(
                    TradingPair(
                        token_a=addresses[base],
                        token_b=addresses[quote],
                        symbol=symbol,
                        token_a_decimals=TOKEN_DECIMALS.get(base, 18),
                        basis=PRICE_BASIS.get(base),
                    )
                )
            except ValueError as e:
                raise KeeperConfigError(str(e)) from e

        if not pairs:
            raise KeeperConfigError("KEEPER_PAIRS does not name any pair")
        return pairs

    def build_venues(self) -> list[VenueConfig]:
        """Aerodrome and Uniswap V3, both quoted through the DEX aggregator."""
        return [
            VenueConfig(
                name="Aerodrome",
                venue_type="aerodrome",
                router=self.aerodrome_router,
                quoter=self.dex_aggregator_address,
                factory=self.aerodrome_factory,
                stable=self.aerodrome_stable,
                default_liquidity=self.default_liquidity,
            ),
            VenueConfig(
                name="UniswapV3",
                venue_type="uniswap_v3",
                router=self.uniswap_v3_router,
                quoter=self.dex_aggregator_address,
                factory=self.uniswap_v3_factory,
                fee_tier=self.uniswap_v3_fee_tier,
                default_liquidity=self.default_liquidity,
            ),
        ]


def load_settings(**overrides) -> KeeperSettings:
    """Load settings, turning validation failures into ``KeeperConfigError``."""
    try:
        return KeeperSettings(**overrides)
    except ValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        log.error("config.invalid", errors=errors)
        raise KeeperConfigError(f"Invalid keeper configuration: {errors}") from e
