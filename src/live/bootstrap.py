"""Wire settings into a ready-to-run keeper."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3

from src.core.statistics import KeeperStatistics
from src.dex.arbitrage_strategy import ArbitrageStrategyClient
from src.dex.config import KeeperConfigError, KeeperSettings
from src.dex.opportunity_evaluator import OpportunityEvaluator
from src.dex.quote_providers import QuoteService, build_quote_provider
from src.live.execution_gate import ExecutionGate
from src.live.executor import ArbitrageExecutor
from src.live.gas_oracle import GasOracle
from src.live.health_monitor import HealthMonitor
from src.live.keeper_runner import KeeperRunner
from src.live.price_oracle import NativePriceOracle

log = structlog.get_logger()


@dataclass
class Keeper:
    """Everything the entry script needs to start and stop the keeper."""

    runner: KeeperRunner
    health_monitor: HealthMonitor
    strategy: ArbitrageStrategyClient
    statistics: KeeperStatistics
    w3: AsyncWeb3


def build_web3(rpc_url: str, timeout: float = 10.0) -> AsyncWeb3:
    """AsyncWeb3 client for the configured RPC endpoint."""
    return AsyncWeb3(AsyncHTTPProvider(rpc_url.strip(), request_kwargs={"timeout": timeout}))


def build_keeper(settings: KeeperSettings, w3: AsyncWeb3 | None = None) -> Keeper:
    """Construct every keeper component from ``settings``.

    Raises:
        KeeperConfigError: On missing settings, an unusable signer key or venue configuration
    """
    missing = [
        name
        for name, value in (
            ("RPC_URL", settings.rpc_url),
            ("KEEPER_PRIVATE_KEY", settings.keeper_private_key),
            ("ARBITRAGE_STRATEGY_ADDRESS", settings.arbitrage_strategy_address),
            ("DEX_AGGREGATOR_ADDRESS", settings.dex_aggregator_address),
        )
        if not value
    ]
    if missing:
        raise KeeperConfigError(f"Missing required settings: {', '.join(missing)}")

    if w3 is None:
        w3 = build_web3(settings.rpc_url.get_secret_value())

    try:
        account = Account.from_key(settings.keeper_private_key.get_secret_value())
    except (ValueError, TypeError) as e:
        raise KeeperConfigError("KEEPER_PRIVATE_KEY is not a valid private key") from e

    pairs = settings.build_pairs()
    venues = settings.build_venues()

    statistics = KeeperStatistics()
    strategy = ArbitrageStrategyClient(
        w3,
        settings.arbitrage_strategy_address,
        account,
        chain_id=settings.chain_id,
    )
    providers = {
        venue.name: build_quote_provider(w3, venue, settings.dex_aggregator_address)
        for venue in venues
    }
    quote_service = QuoteService(providers, quote_timeout=settings.quote_timeout_seconds)
    evaluator = OpportunityEvaluator(
        min_spread_pct=settings.min_spread_pct,
        max_liquidity_fraction=settings.max_liquidity_fraction,
        venue_fee_pct=settings.venue_fee_pct,
        flash_loan_fee_pct=settings.flash_loan_fee_pct,
        min_profit=settings.min_profit,
        deadline_seconds=settings.deadline_seconds,
    )
    etherscan_key = (
        settings.etherscan_api_key.get_secret_value() if settings.etherscan_api_key else None
    )
    gas_oracle = GasOracle(w3, chain_id=settings.chain_id, etherscan_api_key=etherscan_key)
    price_oracle = NativePriceOracle(
        override_usd=settings.native_price_usd,
        cache_ttl_seconds=settings.native_price_cache_seconds,
    )
    gate = ExecutionGate(
        strategy,
        gas_oracle,
        max_gas_price_gwei=settings.max_gas_price_gwei,
        gas_estimate=settings.gas_estimate,
    )
    executor = ArbitrageExecutor(
        strategy,
        statistics,
        max_gas_limit=settings.max_gas_limit,
        receipt_timeout=settings.receipt_timeout_seconds,
    )
    runner = KeeperRunner(
        pairs=pairs,
        venues=venues,
        quote_service=quote_service,
        evaluator=evaluator,
        gate=gate,
        executor=executor,
        statistics=statistics,
        price_oracle=price_oracle,
        quote_amount=settings.quote_amount,
        poll_interval=settings.poll_interval_seconds,
        stats_interval=settings.stats_interval_seconds,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
        enable_execution=settings.enable_execution,
    )
    health_monitor = HealthMonitor(
        w3,
        strategy,
        keeper_address=account.address,
        expected_chain_id=settings.chain_id,
        min_keeper_balance_eth=settings.min_keeper_balance_eth,
    )

    log.info(
        "keeper.built",
        keeper=account.address,
        strategy=strategy.address,
        chain_id=settings.chain_id,
        pairs=[p.symbol for p in pairs],
        venues=[v.name for v in venues],
        enable_execution=settings.enable_execution,
        native_price=str(settings.native_price_usd) if settings.native_price_usd else "live",
    )
    return Keeper(
        runner=runner,
        health_monitor=health_monitor,
        strategy=strategy,
        statistics=statistics,
        w3=w3,
    )
