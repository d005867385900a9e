"""
OFT send layer

- Executor options encoding (type 3 TLV)
- SendOrchestrator: decimals, options, fee quote, submission with legacy fallback
- Error decoding for OFT reverts

Usage:
    from lzbridge.core.bridge.orchestrator import SendOrchestrator
    from lzbridge.core.bridge import SendRequest

    orchestrator = SendOrchestrator(registry, wallet=wallet)
    quote = await orchestrator.quote(request)
    result = await orchestrator.send(request)
"""

from .error_decoder import decode_error, describe_error
from .models import FeeQuote, MessagingFee, SendParam, SendRequest, SendResult, SendState
from .options import Compose, ExecutorOptions, LzReceive, NativeDrop, build_lz_receive_options

__all__ = [
    "SendRequest",
    "SendResult",
    "SendState",
    "SendParam",
    "MessagingFee",
    "FeeQuote",
    "ExecutorOptions",
    "LzReceive",
    "NativeDrop",
    "Compose",
    "build_lz_receive_options",
    "decode_error",
    "describe_error",
]
