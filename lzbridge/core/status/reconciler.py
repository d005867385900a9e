"""
Status reconciliation across the aggregator, on-chain correlation and the
protocol scanner.

Each source reports a stage name; ``merge`` keeps whichever status ranks
higher, so the published stage for a transfer only ever moves forward and
the order in which sources answer does not matter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import (
    Stage,
    StageDetail,
    TransferContext,
    TransferStatus,
    stage_rank,
)


logger = logging.getLogger(__name__)


def merge(current: TransferStatus, candidate: Optional[TransferStatus]) -> TransferStatus:
    """Pure reducer: ``candidate`` wins only for the same transfer at >= rank.

    Completed steps are kept from both sides either way.
    """

    if candidate is None or candidate.tx_hash != current.tx_hash:
        return current
    if candidate.rank < current.rank:
        if set(candidate.steps) <= set(current.steps):
            return current
        return replace(current, steps={**candidate.steps, **current.steps})
    steps = {**current.steps, **candidate.steps}
    return replace(candidate, steps=steps)


# ─────────────────────────────────────────────────────────────────────────────
# Source payload -> TransferStatus
# ─────────────────────────────────────────────────────────────────────────────


def aggregator_status_from_payload(tx_hash: str, payload: Dict[str, Any]) -> TransferStatus:
    """Aggregator shape: ``{currentStatus?, steps: [{name, done, txHash?, chainId?, timestamp?}]}``."""

    steps: Dict[str, StageDetail] = {}
    best = Stage.UNKNOWN.value
    for step in payload.get("steps") or []:
        if not isinstance(step, dict) or not step.get("done"):
            continue
        name = str(step.get("name") or "")
        timestamp = step.get("timestamp")
        steps[name] = StageDetail(
            tx_hash=step.get("txHash"),
            chain_id=step.get("chainId"),
            timestamp=str(timestamp) if timestamp is not None else None,
        )
        if stage_rank(name) > stage_rank(best):
            best = name

    current = payload.get("currentStatus")
    if current and stage_rank(current) >= stage_rank(best):
        best = str(current)

    return TransferStatus(
        tx_hash=tx_hash,
        stage=best,
        source="aggregator",
        steps=steps,
        detail={
            "guid": payload.get("guid"),
            "srcChainId": payload.get("srcChainId"),
            "dstChainId": payload.get("dstChainId"),
            "currentStatus": current,
        },
    )


def _lower(value: Any) -> Optional[str]:
    return value.lower() if isinstance(value, str) and value else None


def derive_worker_stage(msg: Dict[str, Any]) -> str:
    """Map a scanner message onto worker-style stage names."""

    verification = msg.get("verification") or {}
    destination = msg.get("destination") or {}
    source = msg.get("source") or {}

    dvn = _lower((verification.get("dvn") or {}).get("status"))
    sealer = _lower((verification.get("sealer") or {}).get("status"))
    dest = _lower(destination.get("status"))
    dest_tx = (destination.get("tx") or {}).get("txHash")
    src_tx = (source.get("tx") or {}).get("txHash")

    if src_tx and not dvn and not sealer and not dest and not dest_tx:
        return "sent"
    if dvn and not sealer:
        return "dvn_verifying"
    # Sealer committed the verified message to the channel
    if sealer and not dest_tx:
        return "committed"
    if dest_tx and dest and "delivered" not in dest:
        return "executing"
    if dest_tx and dest and ("delivered" in dest or "success" in dest):
        return "executed"
    # Stored payload means lzReceive reverted and needs a retry
    if destination.get("payloadStoredTx"):
        return "payload_stored"
    name = _lower((msg.get("status") or {}).get("name"))
    return name or "unknown"


def primary_message(messages: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First message carrying destination info, else the first one."""

    for msg in messages:
        destination = msg.get("destination") or {}
        if destination.get("status") or (destination.get("tx") or {}).get("txHash"):
            return msg
    return messages[0] if messages else None


def summarize_scan_messages(messages: List[Dict[str, Any]], base_url: Optional[str]) -> Dict[str, Any]:
    primary = primary_message(messages)
    if primary is None:
        return {"found": False, "messages": [], "stage": Stage.UNKNOWN.value}
    return {
        "found": True,
        "networkBase": base_url,
        "stage": derive_worker_stage(primary),
        "guid": primary.get("guid"),
        "pathway": primary.get("pathway"),
        "source": primary.get("source"),
        "destination": primary.get("destination"),
        "verification": primary.get("verification"),
        "raw": messages,
    }


def scanner_status_from_messages(
    tx_hash: str,
    messages: List[Dict[str, Any]],
    base_url: Optional[str] = None,
) -> Optional[TransferStatus]:
    summary = summarize_scan_messages(messages, base_url)
    if not summary["found"]:
        return None
    steps: Dict[str, StageDetail] = {}
    dest_tx = ((summary.get("destination") or {}).get("tx") or {}).get("txHash")
    if dest_tx:
        steps[summary["stage"]] = StageDetail(tx_hash=dest_tx)
    return TransferStatus(
        tx_hash=tx_hash,
        stage=summary["stage"],
        source="scanner",
        steps=steps,
        detail={k: summary.get(k) for k in ("networkBase", "guid", "pathway", "verification")},
    )


# ─────────────────────────────────────────────────────────────────────────────
# Reconciler
# ─────────────────────────────────────────────────────────────────────────────


class StatusReconciler:
    """Owns the published status of the active transfer.

    Only one transfer is active at a time; ``track`` switches it and drops
    everything known about the previous hash.
    """

    def __init__(
        self,
        *,
        aggregator: Any = None,
        correlator: Any = None,
        scanner: Any = None,
    ) -> None:
        self.aggregator = aggregator
        self.correlator = correlator
        self.scanner = scanner
        self._context: Optional[TransferContext] = None
        self._status: Optional[TransferStatus] = None
        self.last_errors: Dict[str, str] = {}
        # Set once the on-chain source reports a reverted source tx
        self.source_failed = False

    @property
    def context(self) -> Optional[TransferContext]:
        return self._context

    @property
    def status(self) -> Optional[TransferStatus]:
        return self._status

    def track(self, context: TransferContext) -> TransferStatus:
        """Make ``context`` the active transfer.

        Re-tracking the active hash only refreshes the lookup context; the
        published status is kept.
        """
        if self._context is not None and self._status is not None:
            if self._context.tx_hash == context.tx_hash:
                self._context = context
                return self._status
            logger.info("Switching tracked transfer %s -> %s", self._context.tx_hash, context.tx_hash)
        self._context = context
        self._status = TransferStatus.initial(context.tx_hash)
        self.last_errors = {}
        self.source_failed = False
        return self._status

    async def _from_aggregator(self, context: TransferContext) -> Optional[TransferStatus]:
        payload = await self.aggregator.fetch_status(context.tx_hash)
        return aggregator_status_from_payload(context.tx_hash, payload)

    async def _from_correlator(self, context: TransferContext) -> Optional[TransferStatus]:
        result = await self.correlator.correlate(
            context.tx_hash,
            context.source,
            context.destination,
            context.token_id,
            scan_window=context.scan_window,
        )
        return result.to_transfer_status()

    async def _from_scanner(self, context: TransferContext) -> Optional[TransferStatus]:
        messages, base_url = await self.scanner.fetch_messages(context.tx_hash, context.scan_network)
        return scanner_status_from_messages(context.tx_hash, messages, base_url)

    async def poll(self, tx_hash: Optional[str] = None) -> TransferStatus:
        """Run one tick against every configured source and publish the merge."""

        if tx_hash is not None and (self._context is None or self._context.tx_hash != tx_hash):
            self.track(TransferContext(tx_hash=tx_hash))
        context = self._context
        if context is None:
            raise ValueError("No transfer is being tracked")

        names: List[str] = []
        calls = []
        if self.aggregator is not None:
            names.append("aggregator")
            calls.append(self._from_aggregator(context))
        if self.correlator is not None and context.can_correlate:
            names.append("onchain")
            calls.append(self._from_correlator(context))
        if self.scanner is not None:
            names.append("scanner")
            calls.append(self._from_scanner(context))

        results = await asyncio.gather(*calls, return_exceptions=True)

        # A newer transfer started while this tick was in flight
        if self._context is not context:
            logger.debug("Dropping stale tick results for %s", context.tx_hash)
            return self._status

        status = self._status
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                self.last_errors[name] = str(result)
                logger.warning("Status source %s failed for %s: %s", name, context.tx_hash, result)
                continue
            self.last_errors.pop(name, None)
            if name == "onchain" and (result.detail.get("source") or {}).get("status") == "Failed":
                self.source_failed = True
            status = merge(status, result)

        if status is not self._status:
            status = replace(status, updated_at=datetime.utcnow())
            if status.canonical != self._status.canonical:
                logger.info(
                    "Transfer %s advanced %s -> %s (via %s)",
                    context.tx_hash,
                    self._status.canonical,
                    status.canonical,
                    status.source,
                )
        self._status = status
        return status


__all__ = [
    "merge",
    "aggregator_status_from_payload",
    "derive_worker_stage",
    "primary_message",
    "summarize_scan_messages",
    "scanner_status_from_messages",
    "StatusReconciler",
]
