"""Async client for the deployed ArbitrageStrategy contract.

Wraps the three calls the keeper needs (``paused``, ``simulateArbitrage``,
``executeArbitrage``) and decodes ``ArbitrageExecuted`` events from receipts.
"""

from __future__ import annotations

from typing import Any

import structlog
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.contract.async_contract import AsyncContract
from web3.logs import DISCARD
from web3.types import TxParams, TxReceipt

from src.core.types import ArbitrageOpportunity

log = structlog.get_logger()

# (tokenIn, swapPath, dexAddresses, flashLoanAmount, estimatedProfit, deadline)
OPPORTUNITY_COMPONENTS = [
    {"internalType": "address", "name": "tokenIn", "type": "address"},
    {"internalType": "address[]", "name": "swapPath", "type": "address[]"},
    {"internalType": "address[]", "name": "dexAddresses", "type": "address[]"},
    {"internalType": "uint256", "name": "flashLoanAmount", "type": "uint256"},
    {"internalType": "uint256", "name": "estimatedProfit", "type": "uint256"},
    {"internalType": "uint256", "name": "deadline", "type": "uint256"},
]

_OPPORTUNITY_INPUT = {
    "components": OPPORTUNITY_COMPONENTS,
    "internalType": "struct ArbitrageStrategy.ArbitrageOpportunity",
    "name": "opportunity",
    "type": "tuple",
}

_RESULT_OUTPUTS = [
    {"internalType": "bool", "name": "profitable", "type": "bool"},
    {"internalType": "uint256", "name": "netProfit", "type": "uint256"},
]

# ArbitrageStrategy ABI (minimal - keeper surface only)
STRATEGY_ABI = [
    {
        "inputs": [],
        "name": "paused",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_OPPORTUNITY_INPUT],
        "name": "simulateArbitrage",
        "outputs": _RESULT_OUTPUTS,
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [_OPPORTUNITY_INPUT],
        "name": "executeArbitrage",
        "outputs": _RESULT_OUTPUTS,
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "tokenIn", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "flashLoanAmount", "type": "uint256"},
            {"indexed": False, "internalType": "uint256", "name": "profit", "type": "uint256"},
            {"indexed": False, "internalType": "uint256", "name": "timestamp", "type": "uint256"},
        ],
        "name": "ArbitrageExecuted",
        "type": "event",
    },
]


def encode_opportunity(opportunity: ArbitrageOpportunity) -> tuple:
    """Contract tuple with checksummed addresses."""
    token_in, path, venues, amount, profit, deadline = opportunity.as_contract_tuple()
    return (
        Web3.to_checksum_address(token_in),
        [Web3.to_checksum_address(a) for a in path],
        [Web3.to_checksum_address(a) for a in venues],
        amount,
        profit,
        deadline,
    )


class ArbitrageStrategyClient:
    """Keeper-side view of the ArbitrageStrategy contract."""

    def __init__(
        self,
        w3: AsyncWeb3,
        address: str,
        account: LocalAccount,
        chain_id: int | None = None,
    ):
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.account = account
        self.chain_id = chain_id
        self.contract: AsyncContract = w3.eth.contract(address=self.address, abi=STRATEGY_ABI)

    async def paused(self) -> bool:
        return bool(await self.contract.functions.paused().call())

    async def simulate(self, opportunity: ArbitrageOpportunity) -> tuple[bool, int]:
        """Run ``simulateArbitrage`` as a read-only call: (profitable, net_profit)."""
        profitable, net_profit = await self.contract.functions.simulateArbitrage(
            encode_opportunity(opportunity)
        ).call({"from": self.account.address})
        return bool(profitable), int(net_profit)

    async def submit(
        self,
        opportunity: ArbitrageOpportunity,
        gas_limit: int,
        gas_price_wei: int | None = None,
    ) -> str:
        """Sign and broadcast ``executeArbitrage``; returns the tx hash."""
        tx_params: TxParams = {
            "from": self.account.address,
            "gas": gas_limit,
            "nonce": await self.w3.eth.get_transaction_count(self.account.address, "pending"),
        }
        if self.chain_id is not None:
            tx_params["chainId"] = self.chain_id
        if gas_price_wei is not None:
            tx_params["gasPrice"] = gas_price_wei

        tx = await self.contract.functions.executeArbitrage(
            encode_opportunity(opportunity)
        ).build_transaction(tx_params)

        signed_tx = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TxReceipt:
        return await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)

    def parse_execution_events(self, receipt: TxReceipt) -> list[dict[str, Any]]:
        """Decoded ``ArbitrageExecuted`` args emitted in ``receipt``."""
        events = self.contract.events.ArbitrageExecuted().process_receipt(
            receipt, errors=DISCARD
        )
        return [dict(event["args"]) for event in events]
