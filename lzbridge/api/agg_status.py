from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..core.errors import UpstreamUnauthorized, UpstreamUnavailable
from ..providers.aggregator import AggregatorProvider
from .deps import get_aggregator

router = APIRouter()


class AggStatusRequest(BaseModel):
    txHash: Optional[str] = None


@router.get("/agg-status")
async def agg_status_usage() -> Any:
    return {"ok": True, "message": "Use POST with { txHash }"}


@router.post("/agg-status")
async def agg_status(
    request: AggStatusRequest,
    aggregator: Optional[AggregatorProvider] = Depends(get_aggregator),
) -> Any:
    """Credentialed passthrough to the aggregator's by-hash lookup."""

    if not request.txHash:
        return JSONResponse({"error": "txHash is required"}, status_code=400)
    if aggregator is None:
        return JSONResponse(
            {
                "error": "STATUS_API_BASE not configured",
                "hint": "Set STATUS_API_BASE in env, e.g. https://your-aggregator-host/v1",
            },
            status_code=500,
        )

    try:
        return await aggregator.fetch_status(request.txHash)
    except UpstreamUnauthorized as exc:
        return JSONResponse(
            {"error": "Unauthorized", "upstreamStatus": exc.status_code, "hint": exc.hint},
            status_code=exc.status_code,
        )
    except UpstreamUnavailable as exc:
        if exc.status_code is None:
            return JSONResponse({"error": str(exc)}, status_code=502)
        if exc.status_code == 404:
            return JSONResponse(
                {"found": False, "error": "Not found", "upstreamStatus": 404, "body": exc.body},
                status_code=404,
            )
        return JSONResponse(
            {"error": "Upstream error", "upstreamStatus": exc.status_code, "body": exc.body},
            status_code=exc.status_code,
        )
