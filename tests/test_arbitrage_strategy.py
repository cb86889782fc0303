"""Tests for the strategy contract client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.types import ArbitrageOpportunity, TradingPair
from src.dex.arbitrage_strategy import ArbitrageStrategyClient, encode_opportunity

USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
WETH = "0x4200000000000000000000000000000000000006"
ROUTER_X = "0x1111111111111111111111111111111111111111"
ROUTER_Y = "0x2222222222222222222222222222222222222222"
STRATEGY = "0x7777777777777777777777777777777777777777"
KEEPER = "0x9999999999999999999999999999999999999999"


def make_opportunity() -> ArbitrageOpportunity:
    pair = TradingPair(token_a=USDC, token_b=WETH, symbol="USDC/WETH")
    return ArbitrageOpportunity(
        pair=pair,
        input_token=USDC,
        swap_path=(USDC, WETH, USDC),
        venue_sequence=(ROUTER_X, ROUTER_Y),
        flash_loan_amount=180_000 * 10**6,
        estimated_profit=540 * 10**6,
        deadline=1_700_000_300,
    )


def make_client() -> tuple[ArbitrageStrategyClient, MagicMock, MagicMock]:
    contract = MagicMock()
    w3 = MagicMock()
    w3.eth.contract.return_value = contract
    w3.eth.get_transaction_count = AsyncMock(return_value=7)
    w3.eth.send_raw_transaction = AsyncMock(return_value=b"\xab" * 32)
    account = MagicMock()
    account.address = KEEPER
    account.sign_transaction.return_value = SimpleNamespace(raw_transaction=b"signed")
    client = ArbitrageStrategyClient(w3, STRATEGY, account, chain_id=8453)
    return client, w3, contract


def test_encode_opportunity_checksums_addresses() -> None:
    token_in, path, venues, amount, profit, deadline = encode_opportunity(make_opportunity())

    assert token_in == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    assert path == [token_in, WETH, token_in]
    assert venues == [ROUTER_X, ROUTER_Y]
    assert (amount, profit, deadline) == (180_000 * 10**6, 540 * 10**6, 1_700_000_300)


@pytest.mark.asyncio
async def test_simulate_is_called_from_keeper_address() -> None:
    client, _, contract = make_client()
    call = AsyncMock(return_value=(True, 123))
    contract.functions.simulateArbitrage.return_value.call = call

    result = await client.simulate(make_opportunity())

    assert result == (True, 123)
    call.assert_awaited_once_with({"from": KEEPER})


@pytest.mark.asyncio
async def test_submit_signs_and_broadcasts_with_pending_nonce() -> None:
    client, w3, contract = make_client()
    build = AsyncMock(return_value={"to": STRATEGY, "data": "0x"})
    contract.functions.executeArbitrage.return_value.build_transaction = build

    tx_hash = await client.submit(make_opportunity(), gas_limit=500_000, gas_price_wei=10**9)

    assert tx_hash == "0x" + "ab" * 32
    w3.eth.get_transaction_count.assert_awaited_once_with(KEEPER, "pending")
    params = build.await_args.args[0]
    assert params["gas"] == 500_000
    assert params["nonce"] == 7
    assert params["chainId"] == 8453
    assert params["gasPrice"] == 10**9
    w3.eth.send_raw_transaction.assert_awaited_once_with(b"signed")


def test_parse_execution_events_returns_args() -> None:
    client, _, contract = make_client()
    contract.events.ArbitrageExecuted.return_value.process_receipt.return_value = [
        {"args": {"tokenIn": USDC, "profit": 5}},
        {"args": {"tokenIn": USDC, "profit": 7}},
    ]

    events = client.parse_execution_events({"logs": []})

    assert [e["profit"] for e in events] == [5, 7]
