"""
Transfer status models.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Stage(str, Enum):
    """Reconciled transfer lifecycle, in rank order."""
    UNKNOWN = "unknown"
    SENT = "sent"
    DVN_VERIFYING = "dvn_verifying"
    COMMITTED = "committed"
    EXECUTING = "executing"
    EXECUTED = "executed"


STAGE_RANK: Dict[str, int] = {
    Stage.UNKNOWN.value: 0,
    Stage.SENT.value: 1,
    Stage.DVN_VERIFYING.value: 2,
    Stage.COMMITTED.value: 3,
    Stage.EXECUTING.value: 4,
    Stage.EXECUTED.value: 5,
}

# Names the correlator and scanner report for the same milestones
STAGE_ALIASES: Dict[str, str] = {
    "inflight": Stage.SENT.value,
    "verified": Stage.COMMITTED.value,
    "delivered": Stage.EXECUTED.value,
    "payload_stored": Stage.EXECUTING.value,
}


def canonical_stage(name: Optional[str]) -> str:
    if not name:
        return Stage.UNKNOWN.value
    key = str(name).strip().lower()
    key = STAGE_ALIASES.get(key, key)
    return key if key in STAGE_RANK else Stage.UNKNOWN.value


def stage_rank(name: Optional[str]) -> int:
    return STAGE_RANK[canonical_stage(name)]


@dataclass(frozen=True)
class StageDetail:
    tx_hash: Optional[str] = None
    chain_id: Optional[int] = None
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"txHash": self.tx_hash, "chainId": self.chain_id, "timestamp": self.timestamp}


@dataclass(frozen=True)
class TransferStatus:
    """One source's (or the reconciled) view of a transfer.

    ``stage`` keeps the name the source reported; ranking goes through
    ``canonical_stage`` so ``verified`` and ``committed`` compare equal.
    """

    tx_hash: str
    stage: str = Stage.UNKNOWN.value
    source: str = "none"
    steps: Dict[str, StageDetail] = field(default_factory=dict)
    detail: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def initial(cls, tx_hash: str) -> "TransferStatus":
        return cls(tx_hash=tx_hash)

    @property
    def rank(self) -> int:
        return stage_rank(self.stage)

    @property
    def canonical(self) -> str:
        return canonical_stage(self.stage)

    @property
    def is_final(self) -> bool:
        return self.canonical == Stage.EXECUTED.value

    def with_stage(self, stage: str, **changes: Any) -> "TransferStatus":
        return replace(self, stage=stage, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "stage": self.canonical,
            "reportedStage": self.stage,
            "rank": self.rank,
            "source": self.source,
            "steps": {name: d.to_dict() for name, d in self.steps.items()},
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(),
            "final": self.is_final,
        }


@dataclass(frozen=True)
class TransferContext:
    """Everything the pollers need to look a transfer up."""
    tx_hash: str
    source: Optional[str] = None
    destination: Optional[str] = None
    token_id: str = "default"
    scan_window: int = 20_000
    scan_network: Optional[str] = None

    @property
    def can_correlate(self) -> bool:
        return bool(self.source and self.destination)
