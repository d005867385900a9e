from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import Settings
from ..core.errors import TrackerFull
from ..core.status.models import TransferContext
from ..core.status.poller import StatusTracker
from .deps import get_settings, get_tracker

router = APIRouter(prefix="/transfers")


class TrackTransferRequest(BaseModel):
    txHash: Optional[str] = None
    sourceNetwork: Optional[str] = None
    destNetwork: Optional[str] = None
    tokenId: str = "default"
    scanWindow: Optional[int] = Field(default=None, ge=1, description="Defaults to ONCHAIN_SCAN_WINDOW")
    scanNetwork: Optional[str] = Field(default=None, description="'mainnet', 'testnet' or omitted for both")


@router.post("/track")
async def track_transfer(
    request: TrackTransferRequest,
    tracker: StatusTracker = Depends(get_tracker),
    settings: Settings = Depends(get_settings),
) -> Any:
    """Start (or join) background status polling for a source tx hash."""

    if not request.txHash:
        return JSONResponse({"error": "txHash is required"}, status_code=400)

    structlog.contextvars.bind_contextvars(
        tx_hash=request.txHash,
        source_network=request.sourceNetwork,
        dest_network=request.destNetwork,
    )
    try:
        poller = tracker.track(TransferContext(
            tx_hash=request.txHash,
            source=request.sourceNetwork,
            destination=request.destNetwork,
            token_id=request.tokenId,
            scan_window=request.scanWindow or settings.onchain_scan_window,
            scan_network=request.scanNetwork,
        ))
    except TrackerFull as exc:
        return JSONResponse({"error": str(exc)}, status_code=429)
    return JSONResponse(
        {"tracking": True, "txHash": poller.tx_hash, "status": tracker.snapshot(poller.tx_hash)},
        status_code=202,
    )


@router.get("/{tx_hash}")
async def get_transfer(tx_hash: str, tracker: StatusTracker = Depends(get_tracker)) -> Any:
    snapshot = tracker.snapshot(tx_hash)
    if snapshot is None:
        return JSONResponse({"error": "Transfer is not being tracked", "txHash": tx_hash}, status_code=404)
    return snapshot
