"""Minimal async JSON-RPC client for EVM nodes."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.errors import ChainCallFailure, TransientNodeGap


logger = logging.getLogger(__name__)

NODE_GAP_SYMPTOM = "missing trie node"


class RpcError(ChainCallFailure):
    """JSON-RPC error object returned by the node."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    return int(value, 16) if isinstance(value, str) else int(value)


class RpcClient:
    """JSON-RPC over httpx; one instance per chain endpoint."""

    _ids = itertools.count(1)

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: float = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s
        self._transport = transport

    @classmethod
    def for_network(cls, network: Any, *, timeout_s: float = 20, transport=None) -> "RpcClient":
        return cls(network.rpc_http, timeout_s=timeout_s, transport=transport)

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as exc:
            raise ChainCallFailure(f"RPC {method} failed: {exc}") from exc
        except ValueError as exc:
            raise ChainCallFailure(f"RPC {method} returned invalid JSON") from exc

        if result.get("error"):
            error = result["error"]
            message = str(error.get("message") or error)
            if NODE_GAP_SYMPTOM in message:
                raise TransientNodeGap(message)
            raise RpcError(message, code=error.get("code"), data=error.get("data"))

        return result.get("result")

    # ─────────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────────

    async def chain_id(self) -> int:
        return _to_int(await self.call("eth_chainId"))

    async def get_block_number(self) -> int:
        return _to_int(await self.call("eth_blockNumber"))

    async def get_block(self, block: Any = "latest") -> Optional[Dict[str, Any]]:
        tag = hex(block) if isinstance(block, int) else block
        return await self.call("eth_getBlockByNumber", [tag, False])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def get_logs(
        self,
        *,
        address: str,
        topics: List[Any],
        from_block: int,
        to_block: Any = "latest",
    ) -> List[Dict[str, Any]]:
        params = {
            "address": address,
            "topics": topics,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block) if isinstance(to_block, int) else to_block,
        }
        return await self.call("eth_getLogs", [params]) or []

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return _to_int(await self.call("eth_getBalance", [address, block]))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return _to_int(await self.call("eth_getTransactionCount", [address, block]))

    async def eth_call(self, to: str, data: str, *, from_address: Optional[str] = None) -> str:
        call_obj: Dict[str, Any] = {"to": to, "data": data}
        if from_address:
            call_obj["from"] = from_address
        return await self.call("eth_call", [call_obj, "latest"])

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return _to_int(await self.call("eth_estimateGas", [tx]))

    async def gas_price(self) -> int:
        return _to_int(await self.call("eth_gasPrice"))

    async def get_fee_data(self) -> Dict[str, Optional[int]]:
        """``gas_price`` plus EIP-1559 caps when the chain reports a base fee."""

        gas_price = await self.gas_price()
        block = await self.get_block("latest") or {}
        base_fee = _to_int(block.get("baseFeePerGas"))
        if base_fee is None:
            return {"gas_price": gas_price, "max_fee_per_gas": None, "max_priority_fee_per_gas": None}

        try:
            priority_fee = _to_int(await self.call("eth_maxPriorityFeePerGas"))
        except ChainCallFailure:
            priority_fee = 1_000_000_000
        return {
            "gas_price": gas_price,
            "max_fee_per_gas": base_fee * 2 + priority_fee,
            "max_priority_fee_per_gas": priority_fee,
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────────

    async def send_raw_transaction(self, raw_tx: str) -> str:
        return await self.call("eth_sendRawTransaction", [raw_tx])

    async def wait_for_receipt(
        self,
        tx_hash: str,
        *,
        timeout_s: float = 300,
        poll_interval_s: float = 3.0,
    ) -> Optional[Dict[str, Any]]:
        """Poll for a receipt; ``None`` on timeout."""

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while loop.time() < deadline:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
                if receipt:
                    return receipt
            except ChainCallFailure as exc:
                logger.warning("Receipt poll for %s failed: %s", tx_hash, exc)
            await asyncio.sleep(poll_interval_s)
        return None


__all__ = ["RpcClient", "RpcError", "NODE_GAP_SYMPTOM"]
