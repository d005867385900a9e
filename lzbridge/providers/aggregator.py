"""Async client for the transfer-status aggregator API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..core.errors import UpstreamUnauthorized, UpstreamUnavailable


logger = logging.getLogger(__name__)

CREDENTIALS_HINT = "Check STATUS_API_USERNAME/PASSWORD"


class AggregatorProvider:
    """``GET {base}/api/tx/by-hash/{hash}`` with optional Basic auth."""

    def __init__(
        self,
        base_url: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout_s: float = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._auth = httpx.BasicAuth(username, password) if username and password else None
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Any, *, transport=None) -> Optional["AggregatorProvider"]:
        if not settings.status_api_base:
            return None
        return cls(
            settings.status_api_base,
            username=settings.status_api_username or None,
            password=settings.status_api_password or None,
            timeout_s=settings.request_timeout_seconds,
            transport=transport,
        )

    async def fetch_status(self, tx_hash: str) -> Dict[str, Any]:
        path = f"/api/tx/by-hash/{tx_hash}"
        # Never log the auth header
        logger.info("Aggregator request base=%s path=%s", self.base_url, path)
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                auth=self._auth,
                transport=self._transport,
            ) as client:
                response = await client.get(path, headers={"Accept": "application/json"})
        except httpx.RequestError as exc:
            raise UpstreamUnavailable(f"Aggregator unreachable: {exc}") from exc

        status = response.status_code
        if status in (401, 403):
            logger.warning("Aggregator rejected credentials status=%s base=%s", status, self.base_url)
            raise UpstreamUnauthorized("Unauthorized", status_code=status, hint=CREDENTIALS_HINT)
        if status == 404:
            raise UpstreamUnavailable("Not found", status_code=status, body=response.text)
        if not response.is_success:
            logger.warning("Aggregator non-OK status=%s base=%s path=%s", status, self.base_url, path)
            raise UpstreamUnavailable("Upstream error", status_code=status, body=response.text)

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Aggregator returned invalid JSON", status_code=status, body=response.text) from exc


__all__ = ["AggregatorProvider", "CREDENTIALS_HINT"]
