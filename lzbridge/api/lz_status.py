from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..core.status.reconciler import summarize_scan_messages
from ..providers.layerzero_scan import LayerZeroScanProvider
from .deps import get_scanner

router = APIRouter()


class ScanStatusRequest(BaseModel):
    txHash: Optional[str] = None
    network: Optional[Literal["mainnet", "testnet"]] = None


@router.post("/lz-status")
async def scan_status(
    request: ScanStatusRequest,
    scanner: LayerZeroScanProvider = Depends(get_scanner),
) -> Any:
    """Worker-style stage from the protocol scanner, testnet first when unspecified."""

    if not request.txHash:
        return JSONResponse({"error": "txHash is required"}, status_code=400)
    messages, base_url = await scanner.fetch_messages(request.txHash, request.network)
    return summarize_scan_messages(messages, base_url)
