"""Async client for the LayerZero Scan messages API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx


logger = logging.getLogger(__name__)

MAINNET_BASE = "https://scan.layerzero-api.com/v1"
TESTNET_BASE = "https://scan-testnet.layerzero-api.com/v1"


class LayerZeroScanProvider:
    """Look messages up by source tx hash, trying each base URL in turn."""

    def __init__(
        self,
        *,
        mainnet_base: str = MAINNET_BASE,
        testnet_base: str = TESTNET_BASE,
        timeout_s: float = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.mainnet_base = mainnet_base.rstrip("/")
        self.testnet_base = testnet_base.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Any, *, transport=None) -> "LayerZeroScanProvider":
        return cls(
            mainnet_base=settings.scan_mainnet_base,
            testnet_base=settings.scan_testnet_base,
            timeout_s=settings.request_timeout_seconds,
            transport=transport,
        )

    def base_urls(self, network: Optional[str] = None) -> List[str]:
        if network == "mainnet":
            return [self.mainnet_base]
        if network == "testnet":
            return [self.testnet_base]
        return [self.testnet_base, self.mainnet_base]

    async def _fetch_by_tx(self, base_url: str, tx_hash: str) -> List[Dict[str, Any]]:
        try:
            async with httpx.AsyncClient(base_url=base_url, timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.get(f"/messages/tx/{tx_hash}")
        except httpx.RequestError as exc:
            logger.debug("Scanner %s unreachable: %s", base_url, exc)
            return []
        if not response.is_success:
            return []
        try:
            payload = response.json()
        except ValueError:
            return []
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            return payload["data"]
        if isinstance(payload, list):
            return payload
        return []

    async def fetch_messages(self, tx_hash: str, network: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Return ``(messages, base_url_used)``; empty list when nothing is found."""

        for base_url in self.base_urls(network):
            messages = await self._fetch_by_tx(base_url, tx_hash)
            if messages:
                return messages, base_url
        return [], None


__all__ = ["LayerZeroScanProvider", "MAINNET_BASE", "TESTNET_BASE"]
