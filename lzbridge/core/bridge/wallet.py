"""
Transaction submission for the send path.

The orchestrator only needs two ways to submit: the normal estimated-gas
transaction, and a legacy type-0 transaction with explicit gas for nodes that
cannot estimate.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from eth_account import Account
from eth_utils import to_checksum_address

from ...providers.rpc import RpcClient


logger = logging.getLogger(__name__)

GAS_LIMIT_MULTIPLIER = 1.2


class Wallet(Protocol):
    """Anything able to sign and broadcast on the source chain."""

    address: str

    async def send_transaction(self, to: str, data: str, value: int) -> str:
        """Submit with estimated gas; return the tx hash."""
        ...

    async def send_legacy(self, to: str, data: str, value: int, *, gas_limit: int, gas_price: int) -> str:
        """Submit a type-0 transaction with explicit gas; return the tx hash."""
        ...


class LocalWallet:
    """Private-key wallet signing locally with eth_account."""

    def __init__(self, rpc: RpcClient, private_key: str, chain_id: int) -> None:
        self.rpc = rpc
        self.chain_id = chain_id
        self._account = Account.from_key(private_key)
        self.address: str = self._account.address

    async def _broadcast(self, tx: Dict[str, Any]) -> str:
        signed = self._account.sign_transaction(tx)
        raw = signed.raw_transaction
        raw_hex = raw.hex() if isinstance(raw, (bytes, bytearray)) else str(raw)
        if not raw_hex.startswith("0x"):
            raw_hex = "0x" + raw_hex
        tx_hash = await self.rpc.send_raw_transaction(raw_hex)
        logger.info("Transaction sent: %s", tx_hash)
        return tx_hash

    async def send_transaction(self, to: str, data: str, value: int) -> str:
        to = to_checksum_address(to)
        nonce = await self.rpc.get_transaction_count(self.address)
        estimated = await self.rpc.estimate_gas({
            "from": self.address,
            "to": to,
            "data": data,
            "value": hex(value),
        })
        fee_data = await self.rpc.get_fee_data()

        tx: Dict[str, Any] = {
            "chainId": self.chain_id,
            "nonce": nonce,
            "to": to,
            "data": data,
            "value": value,
            "gas": int(estimated * GAS_LIMIT_MULTIPLIER),
        }
        if fee_data.get("max_fee_per_gas") is not None:
            tx["type"] = 2
            tx["maxFeePerGas"] = fee_data["max_fee_per_gas"]
            tx["maxPriorityFeePerGas"] = fee_data["max_priority_fee_per_gas"]
        else:
            tx["gasPrice"] = fee_data["gas_price"]
        return await self._broadcast(tx)

    async def send_legacy(self, to: str, data: str, value: int, *, gas_limit: int, gas_price: int) -> str:
        nonce = await self.rpc.get_transaction_count(self.address)
        tx = {
            "chainId": self.chain_id,
            "nonce": nonce,
            "to": to_checksum_address(to),
            "data": data,
            "value": value,
            "gas": gas_limit,
            "gasPrice": gas_price,
        }
        return await self._broadcast(tx)


def wallet_from_key(rpc: RpcClient, private_key: Optional[str], chain_id: int) -> Optional[LocalWallet]:
    if not private_key:
        return None
    return LocalWallet(rpc, private_key, chain_id)


__all__ = ["Wallet", "LocalWallet", "wallet_from_key"]
