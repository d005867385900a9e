"""
On-chain packet correlation.

Given a source transaction hash, learn the packet identity it produced and
look for the matching ``PacketVerified`` / ``PacketDelivered`` events emitted
by the destination endpoint.

A packet is identified by its origin ``(srcEid, sender, nonce)``. Nonces are
per-channel counters, so a match always requires ``srcEid`` and ``sender``;
the nonce is compared as well whenever it could be read from the source
``PacketSent`` log. Destination logs are only consulted once the source
transaction is mined and succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from ..errors import ChainCallFailure
from ..registry import NetworkConfig, NetworkRegistry
from ...providers.rpc import RpcClient
from .models import StageDetail, TransferStatus


logger = logging.getLogger(__name__)


def _topic(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


ORIGIN_TYPE = "(uint32,bytes32,uint64)"

PACKET_DELIVERED_TOPIC = _topic(f"PacketDelivered({ORIGIN_TYPE},address)")
PACKET_VERIFIED_TOPIC = _topic(f"PacketVerified({ORIGIN_TYPE},address,bytes32)")
PACKET_SENT_TOPIC = _topic("PacketSent(bytes,bytes,address)")

DVN_EVENT_TOPICS: Dict[str, str] = {
    _topic("VerifierFeePaid(uint256)"): "VerifierFeePaid",
    _topic("VerifySignaturesFailed(uint256)"): "VerifySignaturesFailed",
    _topic("ExecuteFailed(uint256,bytes)"): "ExecuteFailed",
    _topic("HashAlreadyUsed((uint32,address,bytes,uint256,bytes),bytes32)"): "HashAlreadyUsed",
}

DEFAULT_SCAN_WINDOW = 20_000

# Encoded packet header: version(1) nonce(8) srcEid(4) sender(32) dstEid(4) receiver(32)
_PACKET_HEADER_LENGTH = 81


def pad32(address: str) -> str:
    return "0x" + address.lower()[2:].rjust(64, "0")


def _hex_to_bytes(value: Optional[str]) -> bytes:
    if not value:
        return b""
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value, 16) if isinstance(value, str) else int(value)


@dataclass(frozen=True)
class PacketOrigin:
    src_eid: int
    sender: str          # bytes32 hex
    nonce: int

    def to_dict(self) -> Dict[str, Any]:
        # nonce is uint64; keep it a string for JSON clients
        return {"srcEid": self.src_eid, "sender": self.sender, "nonce": str(self.nonce)}


@dataclass(frozen=True)
class SentPacket:
    """Header fields read from the source ``PacketSent`` log."""
    nonce: int
    src_eid: int
    sender: str
    dst_eid: int
    receiver: str
    guid: Optional[str] = None


@dataclass
class PacketMatch:
    tx_hash: Optional[str]
    origin: PacketOrigin
    receiver: Optional[str] = None


@dataclass
class CorrelationResult:
    stage: str
    tx_hash: str
    source_status: str
    destination_status: str
    network_base: str
    from_block: int
    to_block: int
    destination_tx: Optional[str] = None
    origin: Optional[PacketOrigin] = None
    receiver: Optional[str] = None
    verification: Optional[Dict[str, Any]] = None
    expected_nonce: Optional[int] = None
    nonce_checked: bool = False
    destination_chain_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "source": {"status": self.source_status, "txHash": self.tx_hash},
            "destination": {"status": self.destination_status, "txHash": self.destination_tx},
            "origin": self.origin.to_dict() if self.origin else None,
            "receiver": self.receiver,
            "verification": self.verification,
            "networkBase": self.network_base,
            "window": {"fromBlock": self.from_block, "toBlock": self.to_block},
            "nonceChecked": self.nonce_checked,
        }

    def to_transfer_status(self) -> TransferStatus:
        steps: Dict[str, StageDetail] = {}
        if self.destination_tx:
            steps[self.stage] = StageDetail(tx_hash=self.destination_tx, chain_id=self.destination_chain_id)
        return TransferStatus(
            tx_hash=self.tx_hash,
            stage=self.stage,
            source="onchain",
            steps=steps,
            detail=self.to_dict(),
        )


def parse_packet_sent(log: Dict[str, Any]) -> Optional[SentPacket]:
    try:
        encoded_payload, _options, _library = abi_decode(
            ["bytes", "bytes", "address"], _hex_to_bytes(log.get("data"))
        )
    except (DecodingError, ValueError):
        return None
    if len(encoded_payload) < _PACKET_HEADER_LENGTH:
        return None
    guid = encoded_payload[81:113]
    return SentPacket(
        nonce=int.from_bytes(encoded_payload[1:9], "big"),
        src_eid=int.from_bytes(encoded_payload[9:13], "big"),
        sender="0x" + encoded_payload[13:45].hex(),
        dst_eid=int.from_bytes(encoded_payload[45:49], "big"),
        receiver="0x" + encoded_payload[49:81].hex(),
        guid="0x" + guid.hex() if len(guid) == 32 else None,
    )


def _decode_origin_log(log: Dict[str, Any], types: List[str]) -> Optional[PacketMatch]:
    try:
        decoded = abi_decode(types, _hex_to_bytes(log.get("data")))
    except (DecodingError, ValueError):
        return None
    src_eid, sender, nonce = decoded[0]
    return PacketMatch(
        tx_hash=log.get("transactionHash"),
        origin=PacketOrigin(src_eid=int(src_eid), sender="0x" + bytes(sender).hex(), nonce=int(nonce)),
        receiver=decoded[1],
    )


def find_match(
    logs: List[Dict[str, Any]],
    types: List[str],
    *,
    expected_src_eid: int,
    expected_sender: str,
    expected_nonce: Optional[int] = None,
) -> Optional[PacketMatch]:
    """First log whose origin matches; stops scanning once found."""

    for log in logs:
        match = _decode_origin_log(log, types)
        if match is None:
            continue
        if match.origin.src_eid != expected_src_eid:
            continue
        if match.origin.sender.lower() != expected_sender.lower():
            continue
        if expected_nonce is not None and match.origin.nonce != expected_nonce:
            continue
        return match
    return None


class PacketCorrelator:
    """Source receipt + destination endpoint logs -> correlation stage."""

    def __init__(
        self,
        registry: NetworkRegistry,
        *,
        rpc_factory: Optional[Callable[[NetworkConfig], RpcClient]] = None,
        timeout_s: float = 20,
    ) -> None:
        self.registry = registry
        self._rpc_factory = rpc_factory or (
            lambda network: RpcClient.for_network(network, timeout_s=timeout_s)
        )

    async def _safe_logs(self, rpc: RpcClient, **kwargs: Any) -> List[Dict[str, Any]]:
        try:
            return await rpc.get_logs(**kwargs)
        except ChainCallFailure as exc:
            logger.warning("getLogs failed on %s: %s", rpc.rpc_url, exc)
            return []

    async def _source_receipt(self, rpc: RpcClient, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            return await rpc.get_transaction_receipt(tx_hash)
        except ChainCallFailure as exc:
            # A slow node is not a negative answer
            logger.warning("Source receipt lookup for %s failed: %s", tx_hash, exc)
            return None

    def _learn_sent_packet(
        self,
        receipt: Dict[str, Any],
        src: NetworkConfig,
        dst: NetworkConfig,
        expected_sender: str,
    ) -> Optional[SentPacket]:
        for log in receipt.get("logs") or []:
            topics = log.get("topics") or []
            if not topics or topics[0].lower() != PACKET_SENT_TOPIC:
                continue
            if (log.get("address") or "").lower() != src.endpoint_v2.lower():
                continue
            packet = parse_packet_sent(log)
            if packet is None:
                continue
            if packet.sender.lower() == expected_sender.lower() and packet.dst_eid == dst.eid:
                return packet
        return None

    async def _match_destination(
        self,
        rpc: RpcClient,
        src: NetworkConfig,
        dst: NetworkConfig,
        expected_sender: str,
        expected_nonce: Optional[int],
        from_block: int,
        to_block: int,
    ) -> Tuple[Optional[PacketMatch], Optional[PacketMatch]]:
        delivered_logs = await self._safe_logs(
            rpc,
            address=dst.endpoint_v2,
            topics=[PACKET_DELIVERED_TOPIC],
            from_block=from_block,
            to_block=to_block,
        )
        delivered = find_match(
            delivered_logs,
            [ORIGIN_TYPE, "address"],
            expected_src_eid=src.eid,
            expected_sender=expected_sender,
            expected_nonce=expected_nonce,
        )
        if delivered is not None:
            return delivered, None

        verified_logs = await self._safe_logs(
            rpc,
            address=dst.endpoint_v2,
            topics=[PACKET_VERIFIED_TOPIC],
            from_block=from_block,
            to_block=to_block,
        )
        verified = find_match(
            verified_logs,
            [ORIGIN_TYPE, "address", "bytes32"],
            expected_src_eid=src.eid,
            expected_sender=expected_sender,
            expected_nonce=expected_nonce,
        )
        return None, verified

    async def _dvn_summary(self, rpc: RpcClient, dst: NetworkConfig, from_block: int, to_block: int) -> Dict[str, Any]:
        logs = await self._safe_logs(
            rpc,
            address=dst.dvn,
            topics=[list(DVN_EVENT_TOPICS)],
            from_block=from_block,
            to_block=to_block,
        )
        events = []
        for log in logs:
            topics = log.get("topics") or []
            name = DVN_EVENT_TOPICS.get(topics[0].lower()) if topics else None
            if name:
                events.append({"name": name, "txHash": log.get("transactionHash")})
        return {"dvn": {"events": events, "address": dst.dvn}}

    async def correlate(
        self,
        tx_hash: str,
        source: str,
        destination: str,
        token_id: str,
        scan_window: int = DEFAULT_SCAN_WINDOW,
        include_dvn: bool = False,
    ) -> CorrelationResult:
        src = self.registry.network(source)
        dst = self.registry.network(destination)
        oft_src = self.registry.token_address(token_id, source)
        expected_sender = pad32(oft_src)

        src_rpc = self._rpc_factory(src)
        dst_rpc = self._rpc_factory(dst)

        receipt = await self._source_receipt(src_rpc, tx_hash)
        sent_ok = bool(receipt) and _as_int(receipt.get("status")) == 1

        to_block = await dst_rpc.get_block_number()
        if receipt and receipt.get("blockNumber") is not None:
            from_block = _as_int(receipt["blockNumber"])
        else:
            from_block = max(0, to_block - int(scan_window))

        packet = self._learn_sent_packet(receipt, src, dst, expected_sender) if sent_ok else None
        expected_nonce = packet.nonce if packet else None

        # sender is the shared OFT address; never match before the source tx succeeded
        delivered = verified = None
        if sent_ok:
            delivered, verified = await self._match_destination(
                dst_rpc, src, dst, expected_sender, expected_nonce, from_block, to_block
            )

        verification = None
        if include_dvn and dst.dvn:
            verification = await self._dvn_summary(dst_rpc, dst, from_block, to_block)

        if delivered:
            stage = "executed"
        elif verified:
            stage = "verified"
        elif receipt:
            stage = "inflight" if sent_ok else "unknown"
        else:
            stage = "inflight"

        match = delivered or verified
        result = CorrelationResult(
            stage=stage,
            tx_hash=tx_hash,
            source_status=("Sent" if sent_ok else "Failed") if receipt else "PendingOrUnknown",
            destination_status="Delivered" if delivered else ("Verified" if verified else "NotFound"),
            destination_tx=match.tx_hash if match else None,
            origin=match.origin if match else None,
            receiver=delivered.receiver if delivered else None,
            verification=verification,
            network_base=f"{src.name}→{dst.name}",
            from_block=from_block,
            to_block=to_block,
            expected_nonce=expected_nonce,
            nonce_checked=expected_nonce is not None,
            destination_chain_id=dst.chain_id,
        )
        logger.debug(
            "Correlated %s: stage=%s window=%s..%s nonce=%s",
            tx_hash,
            stage,
            from_block,
            to_block,
            expected_nonce,
        )
        return result


__all__ = [
    "PacketCorrelator",
    "CorrelationResult",
    "PacketOrigin",
    "SentPacket",
    "find_match",
    "parse_packet_sent",
    "pad32",
    "PACKET_DELIVERED_TOPIC",
    "PACKET_VERIFIED_TOPIC",
    "PACKET_SENT_TOPIC",
]
