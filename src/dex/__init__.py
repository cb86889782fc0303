"""DEX-side components: configuration, venue quotes, evaluation, strategy client."""

from src.dex.arbitrage_strategy import ArbitrageStrategyClient
from src.dex.config import KeeperConfigError, KeeperSettings, load_settings
from src.dex.opportunity_evaluator import OpportunityEvaluator
from src.dex.quote_providers import (
    AerodromeQuoteProvider,
    QuoteProvider,
    QuoteService,
    UniswapV3QuoteProvider,
    build_quote_provider,
)

__all__ = [
    "AerodromeQuoteProvider",
    "ArbitrageStrategyClient",
    "KeeperConfigError",
    "KeeperSettings",
    "OpportunityEvaluator",
    "QuoteProvider",
    "QuoteService",
    "UniswapV3QuoteProvider",
    "build_quote_provider",
    "load_settings",
]
