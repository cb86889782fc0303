"""Keeper loop: scan every pair each tick, execute what survives the gate.

Each tick moves IDLE -> SCANNING -> IDLE. Pairs are scanned concurrently;
within a pair the stages (quote, evaluate, admit, execute) run strictly in
sequence. Failures stop at the pair boundary and never end the loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

import structlog

from src.core.results import StageResult
from src.core.statistics import KeeperStatistics
from src.core.types import TradingPair, VenueConfig
from src.dex.opportunity_evaluator import OpportunityEvaluator
from src.dex.quote_providers import QuoteService
from src.live.execution_gate import ExecutionGate
from src.live.executor import ArbitrageExecutor
from src.live.price_oracle import NativePriceOracle

log = structlog.get_logger()


class KeeperState(StrEnum):
    IDLE = "idle"
    SCANNING = "scanning"


@dataclass
class ScanCounters:
    """Scan-side counts reported next to the execution statistics."""

    ticks: int = 0
    opportunities_found: int = 0
    rejected: int = 0

    def snapshot(self) -> dict[str, int]:
        return {
            "ticks": self.ticks,
            "opportunities_found": self.opportunities_found,
            "rejected": self.rejected,
        }


@dataclass
class KeeperRunner:
    """Poll quotes for configured pairs and route opportunities to execution."""

    pairs: Sequence[TradingPair]
    venues: Sequence[VenueConfig]
    quote_service: QuoteService
    evaluator: OpportunityEvaluator
    gate: ExecutionGate
    executor: ArbitrageExecutor
    statistics: KeeperStatistics
    price_oracle: NativePriceOracle
    quote_amount: Decimal = Decimal("1000")  # USD
    poll_interval: float = 5.0
    stats_interval: float = 60.0
    shutdown_grace_seconds: float = 30.0
    enable_execution: bool = False

    state: KeeperState = field(default=KeeperState.IDLE, init=False)
    counters: ScanCounters = field(default_factory=ScanCounters, init=False)
    _stop: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _tick_task: asyncio.Task | None = field(default=None, init=False, repr=False)
    _executions: set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    async def run(self) -> None:
        """Main loop: tick every ``poll_interval`` until ``stop()`` is called."""
        log.info(
            "keeper.started",
            pairs=[p.symbol for p in self.pairs],
            venues=[v.name for v in self.venues],
            poll_interval=self.poll_interval,
            dry_run=not self.enable_execution,
        )
        stats_task = asyncio.create_task(self._report_statistics())

        try:
            while not self._stop.is_set():
                self._tick_task = asyncio.create_task(self.tick())
                try:
                    await self._tick_task
                except asyncio.CancelledError:
                    if not self._stop.is_set():
                        raise
                    log.info("keeper.tick_cancelled")
                except Exception:
                    log.exception("keeper.tick_failed")
                finally:
                    self._tick_task = None

                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    continue
        finally:
            stats_task.cancel()
            await asyncio.gather(stats_task, return_exceptions=True)
            await self._drain_executions()
            self.state = KeeperState.IDLE
            log.info("keeper.stopped", **self._report())

    def stop(self) -> None:
        """Request a graceful shutdown; the in-flight tick is abandoned."""
        if self._stop.is_set():
            return
        log.info("keeper.stop_requested", in_flight_executions=len(self._executions))
        self._stop.set()
        if self._tick_task is not None and not self._tick_task.done():
            self._tick_task.cancel()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def tick(self) -> None:
        """Scan every pair once, concurrently."""
        self.state = KeeperState.SCANNING
        self.counters.ticks += 1
        try:
            await asyncio.gather(*(self.scan_pair(pair) for pair in self.pairs))
        finally:
            self.state = KeeperState.IDLE

    async def scan_pair(self, pair: TradingPair) -> StageResult[Any]:
        """Run the full pipeline for one pair. Never raises (except on cancellation)."""
        try:
            return await self._scan_pair(pair)
        except Exception as e:
            log.exception("keeper.pair_failed", pair=pair.symbol)
            return StageResult.error(f"{type(e).__name__}: {e}")

    async def _scan_pair(self, pair: TradingPair) -> StageResult[Any]:
        native_usd = await self.price_oracle.get_native_usd()
        amount_in = pair.usd_to_base_units(self.quote_amount, native_usd)
        if amount_in is None or amount_in <= 0:
            log.info("keeper.pair_unpriced", pair=pair.symbol, basis=pair.basis)
            return StageResult.skip("pair_unpriced")

        results = await self.quote_service.collect_quotes(
            pair, self.venues, amount_in, native_usd=native_usd
        )
        quotes = [result.value for result in results if result.is_ok and result.value]

        opportunity = self.evaluator.evaluate(pair, quotes, native_usd=native_usd)
        if opportunity is None:
            return StageResult.skip("no_opportunity")
        self.counters.opportunities_found += 1

        admission = await self.gate.admit(opportunity, native_usd=native_usd)
        if not admission.is_ok:
            self.counters.rejected += 1
            return admission
        admitted = admission.unwrap()

        if not self.enable_execution:
            log.info(
                "keeper.dry_run",
                pair=pair.symbol,
                buy_venue=opportunity.buy_venue,
                sell_venue=opportunity.sell_venue,
                flash_loan_amount=opportunity.flash_loan_amount,
                estimated_profit=opportunity.estimated_profit,
                simulated_profit=admitted.simulated_profit,
            )
            return StageResult.skip("dry_run")

        if self._stop.is_set():
            return StageResult.skip("shutting_down")

        # Shielded so a cancelled tick never abandons a submitted transaction
        task = asyncio.create_task(
            self.executor.execute(opportunity, gas_price_wei=admitted.gas_price.fast_wei)
        )
        self._executions.add(task)
        task.add_done_callback(self._on_execution_done)
        return await asyncio.shield(task)

    def _on_execution_done(self, task: asyncio.Task) -> None:
        self._executions.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("keeper.execution_crashed", error_type=type(exc).__name__, error=str(exc))

    async def _drain_executions(self) -> None:
        if not self._executions:
            return

        pending_tasks = set(self._executions)
        log.info("keeper.draining", in_flight=len(pending_tasks))
        _, pending = await asyncio.wait(pending_tasks, timeout=self.shutdown_grace_seconds)
        if pending:
            log.warning("keeper.drain_timeout", abandoned=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def _report(self) -> dict[str, Any]:
        return {**self.counters.snapshot(), **self.statistics.snapshot()}

    def log_statistics(self) -> None:
        log.info("keeper.statistics", state=str(self.state), **self._report())

    async def _report_statistics(self) -> None:
        while True:
            await asyncio.sleep(self.stats_interval)
            self.log_statistics()
