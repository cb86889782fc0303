"""Submit admitted opportunities and account for their outcome.

One attempt per opportunity: submit, wait for the receipt, record the result.
Failed or timed-out transactions are counted and logged, never retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from web3.exceptions import TimeExhausted

from src.core.results import StageResult
from src.core.statistics import KeeperStatistics
from src.core.types import ArbitrageOpportunity

log = structlog.get_logger()


class StrategyWriter(Protocol):
    async def submit(
        self,
        opportunity: ArbitrageOpportunity,
        gas_limit: int,
        gas_price_wei: int | None = None,
    ) -> str: ...

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> Any: ...

    def parse_execution_events(self, receipt: Any) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class ExecutionReport:
    tx_hash: str
    success: bool
    realized_profit: int
    gas_used: int
    block_number: int | None


class ArbitrageExecutor:
    """Execute opportunities through the strategy contract and update statistics."""

    def __init__(
        self,
        strategy: StrategyWriter,
        statistics: KeeperStatistics,
        max_gas_limit: int = 500_000,
        receipt_timeout: float = 120.0,
    ):
        self.strategy = strategy
        self.statistics = statistics
        self.max_gas_limit = max_gas_limit
        self.receipt_timeout = receipt_timeout

    async def execute(
        self,
        opportunity: ArbitrageOpportunity,
        gas_price_wei: int | None = None,
    ) -> StageResult[ExecutionReport]:
        symbol = opportunity.pair.symbol
        await self.statistics.record_attempt()

        try:
            tx_hash = await self.strategy.submit(opportunity, self.max_gas_limit, gas_price_wei)
        except Exception as e:
            log.error(
                "executor.submit_failed",
                pair=symbol,
                error_type=type(e).__name__,
                error=str(e),
            )
            await self.statistics.record_failure()
            return StageResult.error(f"submit_failed: {e}")

        log.info(
            "executor.tx_submitted",
            pair=symbol,
            tx_hash=tx_hash,
            flash_loan_amount=opportunity.flash_loan_amount,
            estimated_profit=opportunity.estimated_profit,
        )

        try:
            receipt = await self.strategy.wait_for_receipt(tx_hash, self.receipt_timeout)
        except (TimeExhausted, TimeoutError):
            log.error(
                "executor.receipt_timeout",
                pair=symbol,
                tx_hash=tx_hash,
                timeout=self.receipt_timeout,
            )
            await self.statistics.record_failure()
            return StageResult.error("receipt_timeout")
        except Exception as e:
            log.error(
                "executor.receipt_failed",
                pair=symbol,
                tx_hash=tx_hash,
                error_type=type(e).__name__,
                error=str(e),
            )
            await self.statistics.record_failure()
            return StageResult.error(f"receipt_failed: {e}")

        gas_used = int(receipt.get("gasUsed", 0) or 0)
        block_number = receipt.get("blockNumber")

        if receipt.get("status") != 1:
            log.error(
                "executor.tx_reverted",
                pair=symbol,
                tx_hash=tx_hash,
                gas_used=gas_used,
                block_number=block_number,
            )
            await self.statistics.record_failure(gas_used)
            return StageResult.error("tx_reverted")

        events = self.strategy.parse_execution_events(receipt)
        if not events:
            log.warning("executor.no_execution_event", pair=symbol, tx_hash=tx_hash)
        realized_profit = sum(int(event.get("profit", 0)) for event in events)

        await self.statistics.record_success(realized_profit, gas_used)
        log.info(
            "executor.tx_confirmed",
            pair=symbol,
            tx_hash=tx_hash,
            realized_profit=realized_profit,
            gas_used=gas_used,
            block_number=block_number,
        )
        return StageResult.ok(
            ExecutionReport(
                tx_hash=tx_hash,
                success=True,
                realized_profit=realized_profit,
                gas_used=gas_used,
                block_number=block_number,
            )
        )
