"""Error taxonomy shared by the send and status paths."""

from typing import Optional


class BridgeError(Exception):
    """Base exception for bridge errors."""
    pass


class ConfigurationError(BridgeError):
    """Missing or invalid network/token configuration."""
    pass


class ValidationError(BridgeError):
    """User input rejected before any network call."""
    pass


class EncodingOverflow(BridgeError):
    """A value does not fit the fixed-width field it is encoded into."""
    pass


class UpstreamUnavailable(BridgeError):
    """Aggregator or scanner answered non-2xx, or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UpstreamUnauthorized(UpstreamUnavailable):
    """Aggregator rejected our credentials (401/403)."""

    def __init__(self, message: str, status_code: int, hint: str):
        super().__init__(message, status_code=status_code)
        self.hint = hint


class ChainCallFailure(BridgeError):
    """A contract call or its decoding failed."""
    pass


class TransientNodeGap(ChainCallFailure):
    """The node is missing historical state ("missing trie node")."""
    pass


class ContractRevert(ChainCallFailure):
    """Contract reverted; ``reason`` holds the decoded error when known."""

    def __init__(self, message: str, data: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.data = data
        self.reason = reason


class TrackerFull(BridgeError):
    """Too many transfers are already being polled."""
    pass
