"""Core keeper types, stage results and statistics."""

from src.core.results import Outcome, StageResult
from src.core.statistics import KeeperStatistics
from src.core.types import (
    ArbitrageOpportunity,
    PriceQuote,
    TradingPair,
    VenueConfig,
)

__all__ = [
    "ArbitrageOpportunity",
    "KeeperStatistics",
    "Outcome",
    "PriceQuote",
    "StageResult",
    "TradingPair",
    "VenueConfig",
]
