"""
OFT send orchestrator.

Runs one send through its lifecycle:
- Validate the request against the registry (no network calls)
- Resolve decimals and, when a sender is known, the spendable balance
- Build executor options and merge them with the contract's enforced options
- Quote the native fee
- Submit, retrying once as a legacy transaction when the node reports a
  missing trie node during gas estimation
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

from eth_utils import is_hex_address

from ..errors import ConfigurationError, ValidationError
from ..registry import NetworkConfig, NetworkRegistry, TokenDescriptor
from ...providers.oft import OftContract
from ...providers.rpc import NODE_GAP_SYMPTOM, RpcClient
from ...services.history import HistoryEntry, TransferHistory
from .error_decoder import describe_error
from .models import FeeQuote, SendParam, SendRequest, SendResult, SendState
from .options import DEFAULT_LZ_RECEIVE_GAS, build_lz_receive_options
from .units import (
    address_to_bytes32,
    format_units,
    is_amount_syntax_valid,
    min_amount,
    parse_units,
    resolve_amount,
)
from .wallet import Wallet


logger = logging.getLogger(__name__)

NATIVE_DECIMALS = 18
DEFAULT_DECIMALS = 18
LEGACY_GAS_LIMIT = 600_000
ZERO_ADDRESS = "0x" + "00" * 20

RpcFactory = Callable[[NetworkConfig], RpcClient]


def _receipt_ok(receipt: dict) -> bool:
    status = receipt.get("status")
    if isinstance(status, str):
        return int(status, 16) == 1
    return status == 1


class SendOrchestrator:
    """Quote and submit OFT sends for one registry."""

    def __init__(
        self,
        registry: NetworkRegistry,
        *,
        rpc_factory: Optional[RpcFactory] = None,
        wallet: Optional[Wallet] = None,
        history: Optional[TransferHistory] = None,
        lz_receive_gas: int = DEFAULT_LZ_RECEIVE_GAS,
        timeout_s: float = 20,
    ) -> None:
        self.registry = registry
        self.wallet = wallet
        self.history = history
        self.lz_receive_gas = lz_receive_gas
        self._rpc_factory: RpcFactory = rpc_factory or (
            lambda network: RpcClient.for_network(network, timeout_s=timeout_s)
        )
        self.state = SendState.IDLE
        self.last_error: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────────
    # Validation
    # ─────────────────────────────────────────────────────────────────────────

    def validate(self, request: SendRequest) -> Tuple[NetworkConfig, NetworkConfig, TokenDescriptor, str]:
        """Reject bad input before any network call."""

        if not self.registry.is_pair_supported(request.source, request.destination):
            raise ValidationError(
                f"Unsupported transfer direction {request.source} -> {request.destination}"
            )
        src = self.registry.network(request.source)
        dst = self.registry.network(request.destination)
        token = self.registry.token(request.token_id)
        oft_address = self.registry.token_address(request.token_id, request.source)

        receiver = (request.receiver or "").strip()
        if not (receiver.startswith("0x") and is_hex_address(receiver)):
            raise ValidationError(f"Invalid receiver address: {request.receiver}")
        if not is_amount_syntax_valid(request.amount):
            raise ValidationError("Amount must be greater than zero")
        return src, dst, token, oft_address

    # ─────────────────────────────────────────────────────────────────────────
    # Stages
    # ─────────────────────────────────────────────────────────────────────────

    async def resolve_decimals(self, oft: OftContract, token: TokenDescriptor) -> Tuple[int, Optional[str]]:
        """Return ``(decimals, underlying_token_address)``."""

        if token.native_adapter:
            return NATIVE_DECIMALS, None
        try:
            underlying = await oft.token()
            decimals = await oft.decimals_of(underlying)
            return decimals, underlying
        except Exception as exc:
            logger.warning("Could not read token decimals for %s, defaulting to %d: %s", oft.address, DEFAULT_DECIMALS, exc)
            return DEFAULT_DECIMALS, None

    async def fetch_balance(
        self,
        rpc: RpcClient,
        oft: OftContract,
        token: TokenDescriptor,
        underlying: Optional[str],
        owner: Optional[str],
    ) -> Optional[int]:
        if not owner:
            return None
        try:
            if token.native_adapter:
                return await rpc.get_balance(owner)
            if underlying:
                return await oft.balance_of(underlying, owner)
        except Exception as exc:
            logger.warning("Balance lookup for %s failed: %s", owner, exc)
        return None

    async def build_options(self, oft: OftContract, dst_eid: int) -> str:
        local = build_lz_receive_options(self.lz_receive_gas, 0)
        try:
            msg_type = await oft.send_message_type()
            enforced = await oft.enforced_options(dst_eid, msg_type)
            logger.info("Enforced options for eid=%s msgType=%s: %s", dst_eid, msg_type, enforced)
            combined = await oft.combine_options(dst_eid, msg_type, local)
            logger.info("Combined options: %s", combined)
            return combined
        except Exception as exc:
            logger.warning("combineOptions failed, using local options: %s", exc)
            return local

    async def _prepare(self, request: SendRequest, sender: Optional[str]) -> Tuple[FeeQuote, NetworkConfig, OftContract]:
        src, dst, token, oft_address = self.validate(request)
        rpc = self._rpc_factory(src)
        oft = OftContract(rpc, oft_address)

        self.state = SendState.RESOLVING_DECIMALS
        decimals, underlying = await self.resolve_decimals(oft, token)
        balance = await self.fetch_balance(rpc, oft, token, underlying, sender)
        balance_formatted = format_units(balance, decimals) if balance is not None else None

        amount = resolve_amount(request.amount, balance_formatted)
        amount_ld = parse_units(amount, decimals)
        if amount_ld <= 0:
            raise ValidationError("Amount must be greater than zero")
        if balance is not None and amount_ld > balance:
            raise ValidationError("Amount exceeds balance")

        self.state = SendState.BUILDING_OPTIONS
        options = await self.build_options(oft, dst.eid)

        send_param = SendParam(
            dst_eid=dst.eid,
            to=address_to_bytes32(request.receiver.strip()),
            amount_ld=amount_ld,
            min_amount_ld=min_amount(amount_ld),
            extra_options=options,
        )

        self.state = SendState.QUOTING_FEE
        # Always pay in native; lzTokenFee is informational only
        fee = await oft.quote_send(send_param, False)
        logger.info("Quoted native fee %s for %s -> %s", fee.native_fee, src.key, dst.key)

        quote = FeeQuote(
            send_param=send_param,
            fee=fee,
            decimals=decimals,
            oft_address=oft_address,
            native_adapter=token.native_adapter,
        )
        return quote, src, oft

    def _fail(self, exc: BaseException) -> None:
        self.state = SendState.FAILED
        self.last_error = describe_error(exc)
        logger.error("Send failed: %s", self.last_error)

    # ─────────────────────────────────────────────────────────────────────────
    # Public operations
    # ─────────────────────────────────────────────────────────────────────────

    async def quote(self, request: SendRequest) -> FeeQuote:
        self.state = SendState.IDLE
        self.last_error = None
        sender = request.sender or (self.wallet.address if self.wallet else None)
        try:
            quote, _src, _oft = await self._prepare(request, sender)
        except Exception as exc:
            self._fail(exc)
            raise
        self.state = SendState.IDLE
        return quote

    async def send(self, request: SendRequest) -> SendResult:
        if self.wallet is None:
            raise ConfigurationError("A wallet is required to send")

        self.state = SendState.IDLE
        self.last_error = None
        try:
            quote, src, oft = await self._prepare(request, self.wallet.address)

            self.state = SendState.SUBMITTING
            data = oft.encode_send(quote.send_param, quote.fee, self.wallet.address)
            value = quote.total_value
            used_fallback = False
            try:
                tx_hash = await self.wallet.send_transaction(oft.address, data, value)
            except Exception as exc:
                if NODE_GAP_SYMPTOM not in str(exc):
                    raise
                logger.warning("Primary send hit a node gap, retrying as legacy tx: %s", exc)
                fee_data = await oft.rpc.get_fee_data()
                gas_price = fee_data.get("gas_price") or fee_data.get("max_fee_per_gas")
                tx_hash = await self.wallet.send_legacy(
                    oft.address,
                    data,
                    value,
                    gas_limit=LEGACY_GAS_LIMIT,
                    gas_price=gas_price,
                )
                used_fallback = True
        except Exception as exc:
            self._fail(exc)
            raise

        self.state = SendState.SUBMITTED
        logger.info("Send submitted on %s: %s", src.key, tx_hash)
        return SendResult(tx_hash=tx_hash, request=request, quote=quote, used_legacy_fallback=used_fallback)

    async def confirm(self, result: SendResult, timeout_s: float = 300) -> Optional[dict]:
        """Wait for the source receipt and record the outcome in history."""

        src = self.registry.network(result.request.source)
        receipt = await self._rpc_factory(src).wait_for_receipt(result.tx_hash, timeout_s=timeout_s)
        if receipt is None:
            status = "Pending"
        elif _receipt_ok(receipt):
            status = "Success"
        else:
            status = "Failed"
        logger.info("Send %s receipt status: %s", result.tx_hash, status)

        if self.history is not None:
            self.history.record(HistoryEntry(
                source_network=result.request.source,
                dest_network=result.request.destination,
                amount=result.request.amount,
                receiver=result.request.receiver,
                tx_hash=result.tx_hash,
                status=status,
            ))
        return receipt


__all__ = ["SendOrchestrator", "LEGACY_GAS_LIMIT", "ZERO_ADDRESS"]
