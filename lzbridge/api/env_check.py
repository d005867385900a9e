from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from ..core.errors import ConfigurationError
from ..core.registry import load_networks
from .deps import get_settings

router = APIRouter()


@router.get("/env-check")
async def env_check(settings=Depends(get_settings)) -> Dict[str, Any]:
    """Presence-only diagnostics; never echoes configured values."""

    networks: Optional[Dict[str, Any]] = None
    networks_error: Optional[str] = None
    try:
        configs = load_networks(settings)
        networks = {
            key: {
                "name": cfg.name,
                "chainId": cfg.chain_id,
                "rpcHttpPresent": bool(cfg.rpc_http),
                "endpointV2Present": bool(cfg.endpoint_v2),
                "oftPresent": bool(cfg.oft),
                "explorerTxBasePresent": bool(cfg.explorer_tx_base),
            }
            for key, cfg in configs.items()
        }
    except ConfigurationError as exc:
        networks_error = str(exc)

    aggregator = {
        "basePresent": bool(settings.status_api_base),
        "usernamePresent": bool(settings.status_api_username),
        "passwordPresent": bool(settings.status_api_password),
    }
    return {"ok": True, "networks": networks, "networksError": networks_error, "aggregator": aggregator}
