import os

from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the browser-era ``NEXT_PUBLIC_*`` aliases when the plain names are unset."""

        super().model_post_init(__context)

        if not self.status_api_base:
            fallback = os.getenv("NEXT_PUBLIC_STATUS_API_BASE")
            if fallback:
                object.__setattr__(self, "status_api_base", fallback)

        if not self.supported_pairs:
            fallback = os.getenv("NEXT_PUBLIC_SUPPORTED_PAIRS")
            if fallback:
                object.__setattr__(self, "supported_pairs", fallback)

        if not self.networks_config:
            fallback = os.getenv("NEXT_PUBLIC_NETWORKS_CONFIG")
            if fallback:
                object.__setattr__(self, "networks_config", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="auto", description="'json', 'console' or 'auto' (console at DEBUG only)")
    request_timeout_seconds: int = Field(default=20, description="Per-call HTTP/RPC timeout")

    # Networks
    network_keys: str = Field(
        default="hii,sepolia",
        description="Comma separated network keys; each key reads <KEY>_* variables from the environment",
    )
    networks_config: str = Field(
        default="",
        description="JSON object of network configs, used when no per-key network is complete",
    )
    supported_pairs: str = Field(
        default="",
        description='Supported transfer directions, e.g. "hii:sepolia,sepolia:hii"',
    )

    # Tokens
    tokens_json: str = Field(default="", description="JSON array of token descriptors")
    enable_token_extras: bool = Field(
        default=False,
        description="Add native-adapter and wrapped tokens declared via <KEY>_NATIVE_ADAPTER / <KEY>_WRAPPED_OFT",
    )

    # Aggregator status API
    status_api_base: str = Field(
        default="",
        description="Aggregator base URL, e.g. https://your-aggregator-host/v1",
    )
    status_api_username: str = Field(default="", description="Aggregator Basic auth username")
    status_api_password: str = Field(default="", description="Aggregator Basic auth password")

    # Protocol scanner API
    scan_mainnet_base: str = Field(
        default="https://scan.layerzero-api.com/v1",
        description="Scanner API base for mainnet messages",
    )
    scan_testnet_base: str = Field(
        default="https://scan-testnet.layerzero-api.com/v1",
        description="Scanner API base for testnet messages",
    )

    # Status polling
    status_poll_ms: int = Field(default=5000, ge=250, description="Interval between status poll ticks")
    onchain_scan_window: int = Field(
        default=20_000,
        ge=1,
        description="Destination blocks scanned when the source receipt is not yet known",
    )
    status_use_scanner: bool = Field(default=True, description="Query the scanner API while polling")
    status_use_onchain: bool = Field(default=True, description="Correlate packets on-chain while polling")
    status_max_tracked: int = Field(default=100, ge=1, description="Transfers polled at the same time by the API")
    status_max_age_seconds: int = Field(
        default=6 * 3600,
        ge=1,
        description="Polling for a transfer stops after this long without reaching executed",
    )
    status_retention_seconds: int = Field(
        default=3600,
        ge=0,
        description="How long a finished transfer stays queryable under /api/transfers",
    )

    # Sending
    wallet_private_key: str = Field(default="", description="Private key used by the CLI to sign sends")
    lz_receive_gas: int = Field(default=200_000, description="Destination lzReceive gas added to enforced options")

    # Local history
    history_file: Path = Field(
        default=BASE_DIR / ".lzbridge_history.json",
        description="JSON file holding the last transfers",
    )
    history_limit: int = Field(default=5, ge=1, description="Transfers kept in local history")

    @property
    def has_aggregator(self) -> bool:
        return bool(self.status_api_base)

    @property
    def has_aggregator_credentials(self) -> bool:
        return bool(self.status_api_username and self.status_api_password)

    @property
    def has_wallet_key(self) -> bool:
        return bool(self.wallet_private_key)

    @property
    def status_poll_seconds(self) -> float:
        return self.status_poll_ms / 1000.0


# Global settings instance
settings = Settings()
