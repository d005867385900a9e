import logging
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import Settings
from ..core.errors import BridgeError, ConfigurationError
from ..core.status.correlator import PacketCorrelator
from .deps import get_correlator, get_settings

router = APIRouter()
logger = logging.getLogger(__name__)


class OnchainStatusRequest(BaseModel):
    txHash: Optional[str] = None
    sourceNetwork: Optional[str] = None
    destNetwork: Optional[str] = None
    tokenId: Optional[str] = None
    scanWindow: Optional[int] = Field(default=None, ge=1, description="Defaults to ONCHAIN_SCAN_WINDOW")
    includeDvn: bool = False


@router.get("/lz-status-onchain")
async def onchain_status_usage() -> Any:
    return {
        "ok": True,
        "message": "Use POST with { txHash, sourceNetwork, destNetwork, tokenId } to query on-chain status.",
    }


@router.post("/lz-status-onchain")
async def onchain_status(
    request: OnchainStatusRequest,
    correlator: PacketCorrelator = Depends(get_correlator),
    settings: Settings = Depends(get_settings),
) -> Any:
    if not (request.txHash and request.sourceNetwork and request.destNetwork and request.tokenId):
        return JSONResponse(
            {"error": "Missing txHash, sourceNetwork, destNetwork, or tokenId"},
            status_code=400,
        )

    structlog.contextvars.bind_contextvars(
        tx_hash=request.txHash,
        source_network=request.sourceNetwork,
        dest_network=request.destNetwork,
    )
    try:
        result = await correlator.correlate(
            request.txHash,
            request.sourceNetwork,
            request.destNetwork,
            request.tokenId,
            scan_window=request.scanWindow or settings.onchain_scan_window,
            include_dvn=request.includeDvn,
        )
    except ConfigurationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except BridgeError as exc:
        logger.warning("On-chain status for %s failed: %s", request.txHash, exc)
        return JSONResponse({"error": str(exc) or "Internal error"}, status_code=500)
    return result.to_dict()
