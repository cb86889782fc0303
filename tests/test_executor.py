"""Tests for transaction submission and outcome accounting."""

import pytest
from web3.exceptions import TimeExhausted

from src.core.statistics import KeeperStatistics
from src.core.types import ArbitrageOpportunity, TradingPair
from src.live.executor import ArbitrageExecutor

USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
WETH = "0x4200000000000000000000000000000000000006"

PAIR = TradingPair(token_a=USDC, token_b=WETH, symbol="USDC/WETH", token_a_decimals=6)


def make_opportunity() -> ArbitrageOpportunity:
    return ArbitrageOpportunity(
        pair=PAIR,
        input_token=USDC,
        swap_path=(USDC, WETH, USDC),
        venue_sequence=(
            "0x1111111111111111111111111111111111111111",
            "0x2222222222222222222222222222222222222222",
        ),
        flash_loan_amount=180_000 * 10**6,
        estimated_profit=540 * 10**6,
        deadline=1_700_000_300,
    )


class DummyStrategy:
    def __init__(self, receipts=None, events=None, submit_error=None, receipt_error=None):
        self.receipts = list(receipts or [])
        self.events = list(events or [])
        self.submit_error = submit_error
        self.receipt_error = receipt_error
        self.submissions = []

    async def submit(self, opportunity, gas_limit, gas_price_wei=None):
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append((opportunity, gas_limit, gas_price_wei))
        return f"0x{len(self.submissions):064x}"

    async def wait_for_receipt(self, tx_hash, timeout):
        if self.receipt_error is not None:
            raise self.receipt_error
        return self.receipts.pop(0)

    def parse_execution_events(self, receipt):
        return self.events.pop(0) if self.events else []


def receipt(status: int = 1, gas_used: int = 210_000, block: int = 100) -> dict:
    return {"status": status, "gasUsed": gas_used, "blockNumber": block}


@pytest.mark.asyncio
async def test_successful_execution_records_event_profit() -> None:
    strategy = DummyStrategy(receipts=[receipt()], events=[[{"profit": 42 * 10**6}]])
    statistics = KeeperStatistics()
    executor = ArbitrageExecutor(strategy, statistics, max_gas_limit=500_000)

    result = await executor.execute(make_opportunity(), gas_price_wei=2 * 10**9)

    assert result.is_ok
    report = result.unwrap()
    assert report.success
    assert report.realized_profit == 42 * 10**6
    assert report.gas_used == 210_000
    assert report.block_number == 100
    assert strategy.submissions[0][1:] == (500_000, 2 * 10**9)
    assert statistics.executions_attempted == 1
    assert statistics.successes == 1
    assert statistics.total_profit == 42 * 10**6


@pytest.mark.asyncio
async def test_total_profit_is_sum_of_realized_profits() -> None:
    profits = [10 * 10**6, 25 * 10**6, 7 * 10**6]
    strategy = DummyStrategy(
        receipts=[receipt() for _ in profits],
        events=[[{"profit": p}] for p in profits],
    )
    statistics = KeeperStatistics()
    executor = ArbitrageExecutor(strategy, statistics)

    for _ in profits:
        await executor.execute(make_opportunity())

    assert statistics.total_profit == sum(profits)
    assert statistics.successes == 3
    assert statistics.average_profit == sum(profits) / 3


@pytest.mark.asyncio
async def test_success_without_event_counts_zero_profit() -> None:
    strategy = DummyStrategy(receipts=[receipt()])
    statistics = KeeperStatistics()

    result = await ArbitrageExecutor(strategy, statistics).execute(make_opportunity())

    assert result.is_ok
    assert result.unwrap().realized_profit == 0
    assert statistics.successes == 1
    assert statistics.total_profit == 0


@pytest.mark.asyncio
async def test_reverted_transaction_is_a_failure() -> None:
    strategy = DummyStrategy(receipts=[receipt(status=0, gas_used=90_000)])
    statistics = KeeperStatistics()

    result = await ArbitrageExecutor(strategy, statistics).execute(make_opportunity())

    assert result.is_error
    assert result.reason == "tx_reverted"
    assert statistics.failures == 1
    assert statistics.successes == 0
    assert statistics.total_gas_used == 90_000


@pytest.mark.asyncio
async def test_receipt_timeout_is_a_failure() -> None:
    strategy = DummyStrategy(receipt_error=TimeExhausted("not mined"))
    statistics = KeeperStatistics()

    result = await ArbitrageExecutor(strategy, statistics, receipt_timeout=1).execute(
        make_opportunity()
    )

    assert result.is_error
    assert result.reason == "receipt_timeout"
    assert statistics.executions_attempted == 1
    assert statistics.failures == 1


@pytest.mark.asyncio
async def test_submit_error_is_a_failure_without_retry() -> None:
    strategy = DummyStrategy(submit_error=ValueError("nonce too low"))
    statistics = KeeperStatistics()

    result = await ArbitrageExecutor(strategy, statistics).execute(make_opportunity())

    assert result.is_error
    assert statistics.executions_attempted == 1
    assert statistics.failures == 1
    assert strategy.submissions == []
