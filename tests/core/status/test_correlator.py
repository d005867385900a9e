"""
Tests for on-chain packet correlation.
"""

from typing import Any, Dict, List, Optional

import pytest
from eth_abi import encode

from lzbridge.core.errors import ChainCallFailure
from lzbridge.core.status.correlator import (
    DVN_EVENT_TOPICS,
    PACKET_DELIVERED_TOPIC,
    PACKET_SENT_TOPIC,
    PACKET_VERIFIED_TOPIC,
    PacketCorrelator,
    find_match,
    pad32,
    parse_packet_sent,
)
from lzbridge.core.status.models import TransferContext
from lzbridge.core.status.reconciler import StatusReconciler

from conftest import HII_EID, HII_ENDPOINT, HII_OFT, RECEIVER, SEPOLIA_DVN, SEPOLIA_EID, SEPOLIA_ENDPOINT


TX_HASH = "0x" + "ab" * 32
DELIVER_TX = "0x" + "cd" * 32
VERIFY_TX = "0x" + "ef" * 32
EXECUTOR = "0x" + "99" * 20
OTHER_OFT = "0x" + "77" * 20


class FakeRpc:
    """Serves one network's receipt, head and endpoint logs."""

    def __init__(
        self,
        url: str,
        *,
        receipt: Optional[Dict[str, Any]] = None,
        head: int = 1_000,
        logs: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        fail_logs: bool = False,
    ):
        self.rpc_url = url
        self.receipt = receipt
        self.head = head
        self.logs = logs or {}
        self.fail_logs = fail_logs
        self.log_queries: List[Dict[str, Any]] = []

    async def get_transaction_receipt(self, tx_hash):
        return self.receipt

    async def get_block_number(self):
        return self.head

    async def get_logs(self, *, address, topics, from_block, to_block="latest"):
        self.log_queries.append({"address": address, "topics": topics, "from": from_block, "to": to_block})
        if self.fail_logs:
            raise ChainCallFailure("getLogs range too large")
        first = topics[0]
        if isinstance(first, list):
            return [log for key in first for log in self.logs.get(key, [])]
        return self.logs.get(first, [])


def _origin_log(topic: str, *, sender: str = HII_OFT, nonce: int = 7, src_eid: int = HII_EID, tx_hash: str = DELIVER_TX):
    origin = (src_eid, bytes.fromhex(pad32(sender)[2:]), nonce)
    if topic == PACKET_DELIVERED_TOPIC:
        data = encode(["(uint32,bytes32,uint64)", "address"], [origin, RECEIVER])
    else:
        data = encode(["(uint32,bytes32,uint64)", "address", "bytes32"], [origin, RECEIVER, b"\x01" * 32])
    return {"topics": [topic], "data": "0x" + data.hex(), "transactionHash": tx_hash}


def _packet_sent_log(*, nonce: int = 7, sender: str = HII_OFT, dst_eid: int = SEPOLIA_EID, address: str = HII_ENDPOINT):
    payload = (
        b"\x01"
        + nonce.to_bytes(8, "big")
        + HII_EID.to_bytes(4, "big")
        + bytes.fromhex(pad32(sender)[2:])
        + dst_eid.to_bytes(4, "big")
        + bytes.fromhex(pad32(RECEIVER)[2:])
        + b"\x22" * 32
        + b"message"
    )
    data = encode(["bytes", "bytes", "address"], [payload, b"", "0x" + "88" * 20])
    return {"address": address, "topics": [PACKET_SENT_TOPIC], "data": "0x" + data.hex()}


def _receipt(status: str = "0x1", logs=None):
    return {"status": status, "blockNumber": hex(900), "logs": logs or []}


def _correlator(registry, src_rpc: FakeRpc, dst_rpc: FakeRpc) -> PacketCorrelator:
    by_key = {"hii": src_rpc, "sepolia": dst_rpc}
    return PacketCorrelator(registry, rpc_factory=lambda network: by_key[network.key])


def test_parse_packet_sent_reads_header():
    packet = parse_packet_sent(_packet_sent_log(nonce=42))

    assert packet.nonce == 42
    assert packet.src_eid == HII_EID
    assert packet.dst_eid == SEPOLIA_EID
    assert packet.sender == pad32(HII_OFT)
    assert packet.guid == "0x" + "22" * 32


def test_find_match_requires_sender_and_eid():
    logs = [
        _origin_log(PACKET_DELIVERED_TOPIC, sender=OTHER_OFT, tx_hash="0x01"),
        _origin_log(PACKET_DELIVERED_TOPIC, src_eid=30101, tx_hash="0x02"),
        _origin_log(PACKET_DELIVERED_TOPIC, tx_hash="0x03"),
    ]

    match = find_match(
        logs,
        ["(uint32,bytes32,uint64)", "address"],
        expected_src_eid=HII_EID,
        expected_sender=pad32(HII_OFT),
    )

    assert match.tx_hash == "0x03"
    assert match.origin.nonce == 7


@pytest.mark.asyncio
async def test_pending_receipt_is_inflight_and_reports_window(registry):
    src = FakeRpc("http://hii", receipt=None)
    dst = FakeRpc("http://sepolia", head=50_000)

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default", scan_window=1_000)

    assert result.stage == "inflight"
    assert result.source_status == "PendingOrUnknown"
    assert result.destination_status == "NotFound"
    assert (result.from_block, result.to_block) == (49_000, 50_000)
    assert dst.log_queries == []


@pytest.mark.asyncio
async def test_pending_receipt_ignores_older_delivery_on_same_channel(registry):
    src = FakeRpc("http://hii", receipt=None)
    dst = FakeRpc(
        "http://sepolia",
        logs={PACKET_DELIVERED_TOPIC: [_origin_log(PACKET_DELIVERED_TOPIC, nonce=3, tx_hash="0x03")]},
    )

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "inflight"
    assert result.destination_tx is None
    assert result.origin is None


@pytest.mark.asyncio
async def test_failed_receipt_ignores_delivery_on_same_channel(registry):
    src = FakeRpc("http://hii", receipt=_receipt(status="0x0"))
    dst = FakeRpc(
        "http://sepolia",
        logs={PACKET_DELIVERED_TOPIC: [_origin_log(PACKET_DELIVERED_TOPIC, nonce=3, tx_hash="0x03")]},
    )

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "unknown"
    assert result.destination_status == "NotFound"


@pytest.mark.asyncio
async def test_successful_receipt_without_packet_sent_matches_on_sender(registry):
    src = FakeRpc("http://hii", receipt=_receipt())
    dst = FakeRpc("http://sepolia", logs={PACKET_DELIVERED_TOPIC: [_origin_log(PACKET_DELIVERED_TOPIC)]})

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "executed"
    assert result.nonce_checked is False
    assert all(q["address"] == SEPOLIA_ENDPOINT for q in dst.log_queries)


@pytest.mark.asyncio
async def test_delivered_packet_is_executed(registry):
    src = FakeRpc("http://hii", receipt=_receipt(logs=[_packet_sent_log()]))
    dst = FakeRpc("http://sepolia", logs={PACKET_DELIVERED_TOPIC: [_origin_log(PACKET_DELIVERED_TOPIC)]})

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "executed"
    assert result.destination_tx == DELIVER_TX
    assert result.nonce_checked is True
    assert result.from_block == 900
    assert result.to_dict()["origin"] == {"srcEid": HII_EID, "sender": pad32(HII_OFT), "nonce": "7"}
    assert result.to_dict()["networkBase"] == "HII Testnet→Sepolia"

    status = result.to_transfer_status()
    assert status.source == "onchain"
    assert status.canonical == "executed"
    assert status.steps["executed"].tx_hash == DELIVER_TX


@pytest.mark.asyncio
async def test_delivery_from_another_sender_is_ignored(registry):
    src = FakeRpc("http://hii", receipt=_receipt())
    dst = FakeRpc(
        "http://sepolia",
        logs={PACKET_DELIVERED_TOPIC: [_origin_log(PACKET_DELIVERED_TOPIC, sender=OTHER_OFT)]},
    )

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "inflight"
    assert result.source_status == "Sent"
    assert result.nonce_checked is False


@pytest.mark.asyncio
async def test_verified_without_delivery(registry):
    src = FakeRpc("http://hii", receipt=_receipt())
    dst = FakeRpc(
        "http://sepolia",
        logs={PACKET_VERIFIED_TOPIC: [_origin_log(PACKET_VERIFIED_TOPIC, tx_hash=VERIFY_TX)]},
    )

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "verified"
    assert result.destination_status == "Verified"
    assert result.destination_tx == VERIFY_TX
    assert result.to_transfer_status().canonical == "committed"


@pytest.mark.asyncio
async def test_nonce_from_packet_sent_picks_the_right_delivery(registry):
    src = FakeRpc("http://hii", receipt=_receipt(logs=[_packet_sent_log(nonce=8)]))
    dst = FakeRpc(
        "http://sepolia",
        logs={
            PACKET_DELIVERED_TOPIC: [
                _origin_log(PACKET_DELIVERED_TOPIC, nonce=7, tx_hash="0x07"),
                _origin_log(PACKET_DELIVERED_TOPIC, nonce=8, tx_hash="0x08"),
            ]
        },
    )

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "executed"
    assert result.destination_tx == "0x08"
    assert result.origin.nonce == 8


@pytest.mark.asyncio
async def test_packet_sent_from_foreign_endpoint_is_not_trusted(registry):
    forged = _packet_sent_log(nonce=8, address="0x" + "12" * 20)
    src = FakeRpc("http://hii", receipt=_receipt(logs=[forged]))
    dst = FakeRpc("http://sepolia")

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.expected_nonce is None
    assert result.nonce_checked is False


@pytest.mark.asyncio
async def test_failed_source_receipt_is_unknown(registry):
    src = FakeRpc("http://hii", receipt=_receipt(status="0x0"))
    dst = FakeRpc("http://sepolia")

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "unknown"
    assert result.source_status == "Failed"


@pytest.mark.asyncio
async def test_log_failures_degrade_to_not_found(registry):
    src = FakeRpc("http://hii", receipt=_receipt())
    dst = FakeRpc("http://sepolia", fail_logs=True)

    result = await _correlator(registry, src, dst).correlate(TX_HASH, "hii", "sepolia", "default")

    assert result.stage == "inflight"
    assert result.destination_status == "NotFound"


@pytest.mark.asyncio
async def test_dvn_summary_only_when_requested(registry):
    fee_paid = next(topic for topic, name in DVN_EVENT_TOPICS.items() if name == "VerifierFeePaid")
    dst_logs = {fee_paid: [{"topics": [fee_paid], "data": "0x", "transactionHash": VERIFY_TX}]}

    src = FakeRpc("http://hii", receipt=_receipt())
    dst = FakeRpc("http://sepolia", logs=dst_logs)
    correlator = _correlator(registry, src, dst)

    plain = await correlator.correlate(TX_HASH, "hii", "sepolia", "default")
    assert plain.verification is None

    detailed = await correlator.correlate(TX_HASH, "hii", "sepolia", "default", include_dvn=True)
    assert detailed.verification == {
        "dvn": {"events": [{"name": "VerifierFeePaid", "txHash": VERIFY_TX}], "address": SEPOLIA_DVN}
    }


@pytest.mark.asyncio
async def test_reconciler_keeps_pending_transfer_in_flight(registry):
    src = FakeRpc("http://hii", receipt=None)
    dst = FakeRpc(
        "http://sepolia",
        logs={PACKET_DELIVERED_TOPIC: [_origin_log(PACKET_DELIVERED_TOPIC, nonce=3, tx_hash="0x03")]},
    )
    reconciler = StatusReconciler(correlator=_correlator(registry, src, dst))
    reconciler.track(TransferContext(tx_hash=TX_HASH, source="hii", destination="sepolia"))

    status = await reconciler.poll()

    assert status.canonical == "sent"
    assert status.is_final is False
