"""Cross-venue spread detection and flash loan sizing.

Pure and synchronous: given the quotes collected for one pair in one tick,
decide whether a closed-loop flash loan trade is worth re-verifying on-chain.
All arithmetic is Decimal; amounts are integers in token_a base units.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from decimal import ROUND_FLOOR, Decimal

import structlog

from src.core.types import ArbitrageOpportunity, BaseUnits, PriceQuote, TradingPair

log = structlog.get_logger()

HUNDRED = Decimal("100")


def spread_pct(buy_price: Decimal, sell_price: Decimal) -> Decimal:
    """Percentage by which ``sell_price`` exceeds ``buy_price``."""
    if buy_price <= 0:
        return Decimal("0")
    return (sell_price - buy_price) / buy_price * HUNDRED


def size_flash_loan(
    buy_liquidity: BaseUnits,
    sell_liquidity: BaseUnits,
    spread: Decimal,
    min_spread_pct: Decimal,
    max_liquidity_fraction: Decimal,
) -> BaseUnits:
    """Flash loan amount for a spread, bounded by the thinner venue.

    The scaling factor grows linearly with the spread and saturates at 1.0
    once the spread reaches twice the minimum, so thin margins borrow less.
    """
    if spread <= 0 or min_spread_pct <= 0:
        return 0

    scale = min(spread / (2 * min_spread_pct), Decimal("1"))
    capacity = Decimal(min(buy_liquidity, sell_liquidity))
    amount = (capacity * max_liquidity_fraction * scale).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(amount), 0)


class OpportunityEvaluator:
    """Turn one tick's quotes for a pair into an ``ArbitrageOpportunity`` or None."""

    def __init__(
        self,
        min_spread_pct: Decimal | float | str = Decimal("0.5"),
        max_liquidity_fraction: Decimal | float | str = Decimal("0.30"),
        venue_fee_pct: Decimal | float | str = Decimal("0.30"),
        flash_loan_fee_pct: Decimal | float | str = Decimal("0"),
        min_profit: Decimal | float | str = Decimal("10"),
        deadline_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the evaluator.

        Args:
            min_spread_pct: Spread (percent) below which nothing is proposed
            max_liquidity_fraction: Largest share of the thinner venue's liquidity to borrow
            venue_fee_pct: Total swap fees across both legs, percent of the loan
            flash_loan_fee_pct: Flash loan premium, percent of the loan
            min_profit: Minimum estimated profit in USD, converted per pair
            deadline_seconds: Lifetime of a proposed opportunity
            clock: Source of unix time, injectable for tests
        """
        self.min_spread_pct = Decimal(str(min_spread_pct))
        self.max_liquidity_fraction = Decimal(str(max_liquidity_fraction))
        self.venue_fee_pct = Decimal(str(venue_fee_pct))
        self.flash_loan_fee_pct = Decimal(str(flash_loan_fee_pct))
        self.min_profit = Decimal(str(min_profit))
        self.deadline_seconds = deadline_seconds
        self.clock = clock

        if self.min_spread_pct <= 0:
            raise ValueError("min_spread_pct must be positive")
        if not Decimal("0") < self.max_liquidity_fraction <= Decimal("1"):
            raise ValueError("max_liquidity_fraction must be in (0, 1]")

    def estimate_profit(self, flash_loan_amount: BaseUnits, spread: Decimal) -> BaseUnits:
        """Gross spread capture minus venue and flash loan fees, in base units."""
        amount = Decimal(flash_loan_amount)
        gross = amount * spread / HUNDRED
        fees = amount * (self.venue_fee_pct + self.flash_loan_fee_pct) / HUNDRED
        return int((gross - fees).to_integral_value(rounding=ROUND_FLOOR))

    def evaluate(
        self,
        pair: TradingPair,
        quotes: Sequence[PriceQuote],
        native_usd: Decimal | None = None,
    ) -> ArbitrageOpportunity | None:
        """Best closed loop for ``pair``; ``native_usd`` values gas-token-based pairs."""
        if len(quotes) < 2:
            log.debug("evaluator.insufficient_quotes", pair=pair.symbol, quotes=len(quotes))
            return None

        ordered = sorted(quotes, key=lambda q: q.price)
        buy, sell = ordered[0], ordered[-1]

        spread = spread_pct(buy.price, sell.price)
        if spread < self.min_spread_pct:
            log.debug(
                "evaluator.spread_too_small",
                pair=pair.symbol,
                spread_pct=str(spread),
                min_spread_pct=str(self.min_spread_pct),
            )
            return None

        flash_loan_amount = size_flash_loan(
            buy.liquidity,
            sell.liquidity,
            spread,
            self.min_spread_pct,
            self.max_liquidity_fraction,
        )
        if flash_loan_amount <= 0:
            log.debug("evaluator.zero_size", pair=pair.symbol, spread_pct=str(spread))
            return None

        estimated_profit = self.estimate_profit(flash_loan_amount, spread)
        min_profit_units = pair.usd_to_base_units(self.min_profit, native_usd)
        if min_profit_units is None:
            log.debug("evaluator.unpriced", pair=pair.symbol, basis=pair.basis)
            return None
        if estimated_profit < min_profit_units:
            log.debug(
                "evaluator.below_min_profit",
                pair=pair.symbol,
                estimated_profit=estimated_profit,
                min_profit=min_profit_units,
            )
            return None

        opportunity = ArbitrageOpportunity(
            pair=pair,
            input_token=pair.token_a,
            swap_path=(pair.token_a, pair.token_b, pair.token_a),
            venue_sequence=(buy.venue.router, sell.venue.router),
            flash_loan_amount=flash_loan_amount,
            estimated_profit=estimated_profit,
            deadline=int(self.clock()) + self.deadline_seconds,
            buy_venue=buy.venue.name,
            sell_venue=sell.venue.name,
            spread_pct=spread,
        )
        log.info(
            "evaluator.opportunity_found",
            pair=pair.symbol,
            buy_venue=buy.venue.name,
            sell_venue=sell.venue.name,
            spread_pct=str(spread.quantize(Decimal("0.0001"))),
            flash_loan_amount=flash_loan_amount,
            estimated_profit=estimated_profit,
        )
        return opportunity
