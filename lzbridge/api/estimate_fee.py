import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.bridge.models import SendRequest
from ..core.bridge.orchestrator import ZERO_ADDRESS, SendOrchestrator
from ..core.bridge.units import format_units
from ..core.errors import ConfigurationError, ValidationError
from ..core.registry import NetworkRegistry
from .deps import get_registry, get_settings

router = APIRouter()
logger = logging.getLogger(__name__)


class EstimateFeeRequest(BaseModel):
    src: Optional[str] = Field(default=None, description="Source network key")
    dst: Optional[str] = Field(default=None, description="Destination network key")
    amount: Optional[str] = Field(default=None, description="Human amount, e.g. '1.5'")
    tokenId: Optional[str] = Field(default=None, description="Token id from the token registry")


def get_orchestrator(
    registry: NetworkRegistry = Depends(get_registry),
    settings=Depends(get_settings),
) -> SendOrchestrator:
    return SendOrchestrator(
        registry,
        lz_receive_gas=settings.lz_receive_gas,
        timeout_s=settings.request_timeout_seconds,
    )


@router.post("/estimate-fee")
async def estimate_fee(
    request: EstimateFeeRequest,
    orchestrator: SendOrchestrator = Depends(get_orchestrator),
) -> Any:
    if not (request.src and request.dst and request.amount and request.tokenId):
        return JSONResponse({"error": "Missing required parameters"}, status_code=400)

    send_request = SendRequest(
        source=request.src,
        destination=request.dst,
        token_id=request.tokenId,
        amount=request.amount,
        # Fee does not depend on the receiver
        receiver=ZERO_ADDRESS,
    )
    try:
        quote = await orchestrator.quote(send_request)
    except (ValidationError, ConfigurationError) as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except Exception as exc:
        logger.error("Error estimating fee: %s", exc)
        return JSONResponse({"error": orchestrator.last_error or "Failed to estimate fee"}, status_code=500)

    payload: Dict[str, Any] = {
        "fee": format_units(quote.fee.native_fee, 18),
        "nativeFeeWei": str(quote.fee.native_fee),
        "lzTokenFee": str(quote.fee.lz_token_fee),
        "decimals": quote.decimals,
        "sendParam": quote.send_param.to_dict(),
    }
    return payload
