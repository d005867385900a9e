"""
OFT send models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SendState(str, Enum):
    """Send orchestrator lifecycle."""
    IDLE = "idle"
    RESOLVING_DECIMALS = "resolving_decimals"
    BUILDING_OPTIONS = "building_options"
    QUOTING_FEE = "quoting_fee"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"       # Broadcast accepted; confirmation is separate
    FAILED = "failed"


@dataclass
class SendRequest:
    """What the user asked to move."""
    source: str                   # Network key
    destination: str              # Network key
    token_id: str
    amount: str                   # Decimal string or "max"
    receiver: str                 # 20-byte hex address
    sender: Optional[str] = None  # Needed for balance checks when no wallet is attached


@dataclass
class SendParam:
    """ABI tuple ``(uint32,bytes32,uint256,uint256,bytes,bytes,bytes)``."""
    dst_eid: int
    to: bytes                     # Receiver left-padded to 32 bytes
    amount_ld: int
    min_amount_ld: int
    extra_options: str = "0x"
    compose_msg: str = "0x"
    oft_cmd: str = "0x"

    def as_abi_tuple(self) -> Tuple[Any, ...]:
        return (
            self.dst_eid,
            self.to,
            self.amount_ld,
            self.min_amount_ld,
            bytes.fromhex(self.extra_options[2:]),
            bytes.fromhex(self.compose_msg[2:]),
            bytes.fromhex(self.oft_cmd[2:]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dstEid": self.dst_eid,
            "to": "0x" + self.to.hex(),
            "amountLD": str(self.amount_ld),
            "minAmountLD": str(self.min_amount_ld),
            "extraOptions": self.extra_options,
            "composeMsg": self.compose_msg,
            "oftCmd": self.oft_cmd,
        }


@dataclass
class MessagingFee:
    native_fee: int
    lz_token_fee: int = 0

    def as_abi_tuple(self) -> Tuple[int, int]:
        return (self.native_fee, self.lz_token_fee)


@dataclass
class FeeQuote:
    """Result of a quote; also the input to a send."""
    send_param: SendParam
    fee: MessagingFee
    decimals: int
    oft_address: str
    native_adapter: bool = False

    @property
    def total_value(self) -> int:
        # Native adapters take the bridged amount as msg.value alongside the fee
        if self.native_adapter:
            return self.fee.native_fee + self.send_param.amount_ld
        return self.fee.native_fee


@dataclass
class SendResult:
    """Submitted send."""
    tx_hash: str
    request: SendRequest
    quote: FeeQuote
    used_legacy_fallback: bool = False
    submitted_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_value(self) -> int:
        return self.quote.total_value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "source": self.request.source,
            "destination": self.request.destination,
            "tokenId": self.request.token_id,
            "receiver": self.request.receiver,
            "sendParam": self.quote.send_param.to_dict(),
            "nativeFee": str(self.quote.fee.native_fee),
            "value": str(self.total_value),
            "usedLegacyFallback": self.used_legacy_fallback,
            "submittedAt": self.submitted_at.isoformat(),
        }
