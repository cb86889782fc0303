"""Final pre-flight checks before an opportunity is allowed to spend gas.

Checks run in a fixed order and each one is a hard reject:
pause flags, deadline, gas price ceiling, gas cost pricing, then an on-chain
simulation whose net profit must exceed the gas cost. A gas cost that cannot
be expressed in the input token is a rejection. Nothing is retried or queued.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import time
from typing import Callable, Protocol

import structlog
from web3.exceptions import ContractLogicError

from src.core.results import StageResult
from src.core.types import ArbitrageOpportunity
from src.live.gas_oracle import GasOracle, GasPrice
from src.utils.resilience import with_timeout

log = structlog.get_logger()

class StrategyReader(Protocol):
    async def paused(self) -> bool: ...

    async def simulate(self, opportunity: ArbitrageOpportunity) -> tuple[bool, int]: ...


@dataclass(frozen=True)
class Admission:
    """An opportunity that passed every gate check."""

    opportunity: ArbitrageOpportunity
    gas_price: GasPrice
    simulated_profit: int
    gas_cost: int  # token_a base units


class ExecutionGate:
    """Admit or reject opportunities right before execution."""

    def __init__(
        self,
        strategy: StrategyReader,
        gas_oracle: GasOracle,
        max_gas_price_gwei: Decimal | float | str = Decimal("100"),
        gas_estimate: int = 350_000,
        rpc_timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self.strategy = strategy
        self.gas_oracle = gas_oracle
        self.max_gas_price_gwei = Decimal(str(max_gas_price_gwei))
        self.gas_estimate = gas_estimate
        self.rpc_timeout = rpc_timeout
        self.clock = clock
        self._paused = False

    def pause(self) -> None:
        log.info("gate.paused_locally")
        self._paused = True

    def resume(self) -> None:
        log.info("gate.resumed_locally")
        self._paused = False

    async def admit(
        self, opportunity: ArbitrageOpportunity, native_usd: Decimal | None = None
    ) -> StageResult[Admission]:
        """Run every check in order; ``native_usd`` prices gas for dollar-based pairs."""
        symbol = opportunity.pair.symbol

        if self._paused:
            return self._reject(symbol, "paused", source="local")

        try:
            paused_onchain = await with_timeout(
                self.strategy.paused(), self.rpc_timeout, "paused() timed out"
            )
        except Exception as e:
            return self._error(symbol, "paused_check_failed", e)
        if paused_onchain:
            return self._reject(symbol, "paused", source="strategy")

        now = int(self.clock())
        if opportunity.deadline <= now:
            return self._reject(
                symbol, "deadline_expired", deadline=opportunity.deadline, now=now
            )

        gas_price = await self.gas_oracle.get_gas_price()
        if gas_price is None:
            return self._reject(symbol, "gas_price_unavailable")
        if gas_price.gwei > self.max_gas_price_gwei:
            return self._reject(
                symbol,
                "gas_price_above_ceiling",
                gas_gwei=str(gas_price.gwei),
                max_gwei=str(self.max_gas_price_gwei),
            )

        gas_cost = opportunity.pair.wei_to_base_units(
            gas_price.cost_wei(self.gas_estimate), native_usd
        )
        if gas_cost is None:
            return self._reject(symbol, "gas_cost_unpriced", gas_gwei=str(gas_price.gwei))

        try:
            profitable, net_profit = await with_timeout(
                self.strategy.simulate(opportunity),
                self.rpc_timeout,
                "simulateArbitrage timed out",
            )
        except ContractLogicError as e:
            return self._reject(symbol, "simulation_reverted", error=str(e))
        except Exception as e:
            return self._error(symbol, "simulation_failed", e)

        if not profitable or net_profit <= gas_cost:
            return self._reject(
                symbol,
                "simulation_unprofitable",
                profitable=profitable,
                net_profit=net_profit,
                gas_cost=gas_cost,
            )

        log.info(
            "gate.admitted",
            pair=symbol,
            net_profit=net_profit,
            gas_cost=gas_cost,
            gas_gwei=str(gas_price.gwei),
        )
        return StageResult.ok(
            Admission(
                opportunity=opportunity,
                gas_price=gas_price,
                simulated_profit=net_profit,
                gas_cost=gas_cost,
            )
        )

    def _reject(self, symbol: str, reason: str, **context) -> StageResult[Admission]:
        log.info("gate.rejected", pair=symbol, reason=reason, **context)
        return StageResult.skip(reason)

    def _error(self, symbol: str, reason: str, exc: Exception) -> StageResult[Admission]:
        log.warning(
            "gate.rpc_error",
            pair=symbol,
            reason=reason,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return StageResult.error(f"{reason}: {exc}")
