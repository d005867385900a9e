"""Network, token and pair registry built once from settings.

Instead of module-level lookups, components receive a ``NetworkRegistry`` and
resolve everything they need for one transfer through it.

Usage:
    registry = NetworkRegistry.from_settings(settings)
    src = registry.network("hii")
    oft = registry.token_address("default", "hii")
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkConfig:
    """Immutable per-chain record."""

    key: str
    name: str
    chain_id: int
    rpc_http: str
    eid: int
    endpoint_v2: str
    dvn: str
    executor: str
    oft: str
    rpc_ws: Optional[str] = None
    explorer_tx_base: Optional[str] = None
    scan_network: Optional[str] = None  # "mainnet" | "testnet" | None (try both)

    def explorer_tx_url(self, tx_hash: str) -> Optional[str]:
        if not self.explorer_tx_base:
            return None
        return f"{self.explorer_tx_base.rstrip('/')}/{tx_hash}"


@dataclass(frozen=True)
class TokenDescriptor:
    id: str
    symbol: str
    name: str
    addresses: Mapping[str, str] = field(default_factory=dict)
    native_adapter: bool = False

    def address_on(self, network_key: str) -> Optional[str]:
        return self.addresses.get(network_key) or None

    @property
    def network_keys(self) -> List[str]:
        return [key for key, address in self.addresses.items() if address]


@dataclass(frozen=True)
class SupportedPair:
    src: str
    dst: str


# Env suffix -> (field, required)
_NETWORK_FIELDS = (
    ("NAME", "name", True),
    ("CHAIN_ID", "chain_id", True),
    ("RPC_HTTP", "rpc_http", True),
    ("EID", "eid", True),
    ("ENDPOINT_V2", "endpoint_v2", True),
    ("DVN", "dvn", True),
    ("EXECUTOR", "executor", True),
    ("OFT", "oft", True),
    ("RPC_WS", "rpc_ws", False),
    ("EXPLORER_TX_BASE", "explorer_tx_base", False),
    ("SCAN_NETWORK", "scan_network", False),
)

_INT_FIELDS = {"chain_id", "eid"}

# JSON configs written for the browser build use camelCase keys
_JSON_KEY_ALIASES = {
    "chainId": "chain_id",
    "rpcHttp": "rpc_http",
    "rpcWs": "rpc_ws",
    "endpointV2": "endpoint_v2",
    "explorerTxBase": "explorer_tx_base",
    "scanNetwork": "scan_network",
}

DEFAULT_PAIRS = (SupportedPair(src="hii", dst="sepolia"),)


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip(), 0)
    except (TypeError, ValueError):
        return None


def _build_network(key: str, raw: Mapping[str, Any]) -> Optional[NetworkConfig]:
    """Return a config only when every required field is present."""

    values: Dict[str, Any] = {}
    for _suffix, name, required in _NETWORK_FIELDS:
        value = raw.get(name)
        if name in _INT_FIELDS:
            value = _parse_int(value)
        elif isinstance(value, str):
            value = value.strip() or None
        if required and not value:
            return None
        values[name] = value
    return NetworkConfig(key=key, **values)


def load_networks(settings: Any, environ: Optional[Mapping[str, str]] = None) -> Dict[str, NetworkConfig]:
    """Read per-key network configs, falling back to the JSON blob."""

    env = os.environ if environ is None else environ
    networks: Dict[str, NetworkConfig] = {}
    keys = [k.strip() for k in (settings.network_keys or "").split(",") if k.strip()]
    for key in keys:
        prefix = key.upper()
        raw = {name: env.get(f"{prefix}_{suffix}") for suffix, name, _ in _NETWORK_FIELDS}
        config = _build_network(key, raw)
        if config is None:
            logger.debug("Network %s incomplete in environment; skipping", key)
            continue
        networks[key] = config

    if networks:
        return networks

    if settings.networks_config:
        try:
            blob = json.loads(settings.networks_config)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"networks_config is not valid JSON: {exc}") from exc
        if not isinstance(blob, dict):
            raise ConfigurationError("networks_config must be a JSON object keyed by network")
        for key, entry in blob.items():
            if not isinstance(entry, dict):
                continue
            normalized = {_JSON_KEY_ALIASES.get(k, k): v for k, v in entry.items()}
            config = _build_network(key, normalized)
            if config is None:
                logger.warning("Network %s in networks_config is incomplete; skipping", key)
                continue
            networks[key] = config

    if not networks:
        raise ConfigurationError("No network configuration found in environment variables")
    return networks


def parse_pairs(raw: Optional[str]) -> List[SupportedPair]:
    if not raw:
        return list(DEFAULT_PAIRS)
    pairs: List[SupportedPair] = []
    for item in raw.split(","):
        src, _, dst = item.partition(":")
        src, dst = src.strip(), dst.strip()
        if src and dst:
            pairs.append(SupportedPair(src=src, dst=dst))
    return pairs


def load_tokens(
    settings: Any,
    networks: Mapping[str, NetworkConfig],
    environ: Optional[Mapping[str, str]] = None,
) -> List[TokenDescriptor]:
    env = os.environ if environ is None else environ

    if settings.tokens_json:
        try:
            parsed = json.loads(settings.tokens_json)
        except json.JSONDecodeError as exc:
            logger.warning("tokens_json is not valid JSON, falling back to defaults: %s", exc)
            parsed = None
        if isinstance(parsed, list):
            return [
                TokenDescriptor(
                    id=str(item["id"]),
                    symbol=str(item.get("symbol") or item["id"]),
                    name=str(item.get("name") or item.get("symbol") or item["id"]),
                    addresses=dict(item.get("addresses") or {}),
                    native_adapter=bool(item.get("nativeAdapter") or item.get("native_adapter")),
                )
                for item in parsed
                if isinstance(item, dict) and item.get("id")
            ]

    defaults = [
        TokenDescriptor(
            id="default",
            symbol="OFT",
            name="OFT Token",
            addresses={key: cfg.oft for key, cfg in networks.items() if cfg.oft},
        )
    ]
    if not settings.enable_token_extras:
        return defaults

    extras: List[TokenDescriptor] = []
    for key in networks:
        prefix = key.upper()
        adapter = env.get(f"{prefix}_NATIVE_ADAPTER")
        if adapter:
            symbol = env.get(f"{prefix}_NATIVE_SYMBOL") or "ETH"
            # Native adapters move value only from their own chain
            extras.append(TokenDescriptor(
                id=f"{key}_native",
                symbol=symbol,
                name=env.get(f"{prefix}_NATIVE_NAME") or f"Native {symbol}",
                addresses={key: adapter},
                native_adapter=True,
            ))
    for key in networks:
        prefix = key.upper()
        wrapped = env.get(f"{prefix}_WRAPPED_OFT")
        if wrapped:
            symbol = env.get(f"{prefix}_WRAPPED_SYMBOL") or "WETH"
            extras.append(TokenDescriptor(
                id=f"{key}_wrapped",
                symbol=symbol,
                name=env.get(f"{prefix}_WRAPPED_NAME") or f"Wrapped {symbol}",
                addresses={key: wrapped},
            ))
    return [*defaults, *extras]


class NetworkRegistry:
    """Resolved networks, tokens and supported directions."""

    def __init__(
        self,
        networks: Mapping[str, NetworkConfig],
        tokens: List[TokenDescriptor],
        pairs: Optional[List[SupportedPair]] = None,
    ) -> None:
        self._networks: Dict[str, NetworkConfig] = dict(networks)
        self._tokens: Dict[str, TokenDescriptor] = {t.id: t for t in tokens}
        self._pairs: List[SupportedPair] = list(pairs) if pairs is not None else list(DEFAULT_PAIRS)

    @classmethod
    def from_settings(cls, settings: Any, environ: Optional[Mapping[str, str]] = None) -> "NetworkRegistry":
        networks = load_networks(settings, environ)
        tokens = load_tokens(settings, networks, environ)
        registry = cls(networks, tokens, parse_pairs(settings.supported_pairs))
        logger.info(
            "Network registry loaded: %d networks, %d tokens, %d pairs",
            len(networks),
            len(tokens),
            len(registry._pairs),
        )
        return registry

    # ─────────────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def network_keys(self) -> List[str]:
        return list(self._networks)

    @property
    def networks(self) -> Dict[str, NetworkConfig]:
        return dict(self._networks)

    @property
    def tokens(self) -> List[TokenDescriptor]:
        return list(self._tokens.values())

    @property
    def pairs(self) -> List[SupportedPair]:
        return list(self._pairs)

    def network(self, key: str) -> NetworkConfig:
        config = self._networks.get(key)
        if config is None:
            raise ConfigurationError(f"Network configuration for {key} not found")
        return config

    def token(self, token_id: str) -> TokenDescriptor:
        token = self._tokens.get(token_id)
        if token is None:
            raise ConfigurationError(f"Token {token_id} is not configured")
        return token

    def token_address(self, token_id: str, network_key: str) -> str:
        address = self.token(token_id).address_on(network_key)
        if not address:
            raise ConfigurationError(f"Token {token_id} is not supported on {network_key}")
        return address

    def network_by_chain_id(self, chain_id: Optional[int]) -> Optional[NetworkConfig]:
        if not chain_id:
            return None
        for config in self._networks.values():
            if config.chain_id == chain_id:
                return config
        return None

    def explorer_tx_url(self, chain_id: Optional[int], tx_hash: str) -> Optional[str]:
        config = self.network_by_chain_id(chain_id)
        return config.explorer_tx_url(tx_hash) if config else None

    # ─────────────────────────────────────────────────────────────────────────
    # Direction rules
    # ─────────────────────────────────────────────────────────────────────────

    def is_pair_supported(self, src: str, dst: str) -> bool:
        return any(p.src == src and p.dst == dst for p in self._pairs)

    def allowed_sources(self, token_id: Optional[str] = None) -> List[str]:
        sources: List[str] = []
        for pair in self._pairs:
            if pair.src in sources or pair.src not in self._networks:
                continue
            sources.append(pair.src)
        if token_id:
            supported = self.token(token_id).network_keys
            sources = [s for s in sources if s in supported]
        return sources

    def allowed_destinations(self, src: str, token_id: Optional[str] = None) -> List[str]:
        destinations = [p.dst for p in self._pairs if p.src == src]
        if token_id:
            supported = self.token(token_id).network_keys
            destinations = [d for d in destinations if d in supported]
        return destinations


__all__ = [
    "NetworkConfig",
    "TokenDescriptor",
    "SupportedPair",
    "NetworkRegistry",
    "load_networks",
    "load_tokens",
    "parse_pairs",
]
