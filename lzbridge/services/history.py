"""Local record of the most recent transfers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 5


@dataclass
class HistoryEntry:
    source_network: str
    dest_network: str
    amount: str
    receiver: str
    tx_hash: str
    status: str
    recorded_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceNetwork": self.source_network,
            "destNetwork": self.dest_network,
            "amount": self.amount,
            "receiver": self.receiver,
            "txHash": self.tx_hash,
            "status": self.status,
            "recordedAt": self.recorded_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            source_network=str(raw.get("sourceNetwork", "")),
            dest_network=str(raw.get("destNetwork", "")),
            amount=str(raw.get("amount", "")),
            receiver=str(raw.get("receiver", "")),
            tx_hash=str(raw.get("txHash", "")),
            status=str(raw.get("status", "")),
            recorded_at=raw.get("recordedAt"),
        )


class TransferHistory:
    """Newest-first JSON file capped at ``limit`` entries."""

    def __init__(self, path: Union[str, Path], limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.path = Path(path)
        self.limit = limit

    def entries(self) -> List[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Error reading history %s: %s", self.path, exc)
            return []
        if not isinstance(raw, list):
            return []
        return [HistoryEntry.from_dict(item) for item in raw if isinstance(item, dict)]

    def record(self, entry: HistoryEntry) -> List[HistoryEntry]:
        if entry.recorded_at is None:
            entry.recorded_at = datetime.utcnow().isoformat()
        # One row per tx hash; a later status replaces the earlier one
        existing = [e for e in self.entries() if e.tx_hash != entry.tx_hash]
        updated = [entry, *existing][: self.limit]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps([e.to_dict() for e in updated], indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Error saving to history %s: %s", self.path, exc)
        return updated


__all__ = ["HistoryEntry", "TransferHistory", "DEFAULT_HISTORY_LIMIT"]
