"""Turn raw revert payloads into readable contract errors."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, is_hex


logger = logging.getLogger(__name__)


# (name, [(arg_name, abi_type), ...]) for errors the OFT stack can revert with
_ERROR_DEFINITIONS: List[Tuple[str, List[Tuple[str, str]]]] = [
    ("Error", [("message", "string")]),
    ("Panic", [("code", "uint256")]),
    ("SlippageExceeded", [("amountLD", "uint256"), ("minAmountLD", "uint256")]),
    ("InvalidLocalDecimals", []),
    ("InvalidAmount", []),
    ("AmountSDOverflowed", [("amountSD", "uint256")]),
    ("NoPeer", [("eid", "uint32")]),
    ("OnlyPeer", [("eid", "uint32"), ("sender", "bytes32")]),
    ("OnlyEndpoint", [("addr", "address")]),
    ("NotEnoughNative", [("msgValue", "uint256")]),
    ("LzTokenUnavailable", []),
    ("InvalidOptions", [("options", "bytes")]),
    ("InvalidOptionType", [("optionType", "uint16")]),
    ("InvalidWorkerOptions", [("cursor", "uint256")]),
    ("InvalidWorkerId", [("workerId", "uint8")]),
    ("InvalidEndpointCall", []),
    ("InvalidDelegate", []),
    ("ERC20InsufficientBalance", [("sender", "address"), ("balance", "uint256"), ("needed", "uint256")]),
    ("ERC20InsufficientAllowance", [("spender", "address"), ("allowance", "uint256"), ("needed", "uint256")]),
    ("ERC20InvalidReceiver", [("receiver", "address")]),
    ("OwnableUnauthorizedAccount", [("account", "address")]),
    ("SafeERC20FailedOperation", [("token", "address")]),
]

ERROR_ABI: Dict[str, Tuple[str, List[Tuple[str, str]]]] = {}
for _name, _args in _ERROR_DEFINITIONS:
    _signature = f"{_name}({','.join(t for _, t in _args)})"
    ERROR_ABI["0x" + function_signature_to_4byte_selector(_signature).hex()] = (_name, _args)

# Used when the payload does not decode against ERROR_ABI
KNOWN_SELECTORS: Dict[str, str] = {
    "0x6592671c": "InvalidOptions(bytes)",
}


def _as_revert_data(value: Any) -> Optional[str]:
    if isinstance(value, (bytes, bytearray)) and len(value) >= 4:
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("0x") and len(text) >= 10 and is_hex(text):
            return text.lower()
    return None


def _lookup(container: Any, key: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(key)
    return getattr(container, key, None)


def extract_revert_data(candidate: Any, _depth: int = 0) -> Optional[str]:
    """Find revert bytes in the usual places an RPC/library error keeps them."""

    if candidate is None or _depth > 4:
        return None

    direct = _as_revert_data(candidate)
    if direct:
        return direct

    data = _lookup(candidate, "data")
    found = _as_revert_data(data)
    if found:
        return found
    if data is not None and not isinstance(data, (str, bytes, bytearray)):
        found = _as_revert_data(_lookup(data, "data"))
        if found:
            return found

    info = _lookup(candidate, "info")
    if info is not None:
        error = _lookup(info, "error")
        if error is not None:
            found = _as_revert_data(_lookup(error, "data"))
            if found:
                return found

    error = _lookup(candidate, "error") if isinstance(candidate, Mapping) else None
    if error is not None:
        found = extract_revert_data(error, _depth + 1)
        if found:
            return found

    if isinstance(candidate, BaseException) and candidate.__cause__ is not None:
        return extract_revert_data(candidate.__cause__, _depth + 1)
    return None


def _render(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        # uint256 values overflow JSON number precision
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_render(v) for v in value]
    return value


def decode_revert_data(data: str) -> Optional[str]:
    selector = data[:10].lower()
    definition = ERROR_ABI.get(selector)
    if definition is not None:
        name, args = definition
        try:
            values = abi_decode([t for _, t in args], bytes.fromhex(data[10:])) if args else ()
        except (DecodingError, ValueError) as exc:
            logger.debug("Revert payload for %s did not decode: %s", name, exc)
        else:
            rendered = {arg: _render(value) for (arg, _), value in zip(args, values)}
            return f"{name} {json.dumps(rendered)}"

    return KNOWN_SELECTORS.get(selector)


def decode_error(candidate: Any) -> Optional[str]:
    """Readable ``Name {"arg": value}`` for a revert, or ``None`` if unknown."""

    data = extract_revert_data(candidate)
    if not data:
        return None
    return decode_revert_data(data)


def describe_error(exc: Any) -> str:
    """User-facing message: decoded reason or the raw message, plus any revert data."""

    decoded = decode_error(exc)
    message = decoded or str(exc) or exc.__class__.__name__
    data = extract_revert_data(exc)
    if data:
        message = f"{message} | data: {data}"
    return message


__all__ = [
    "ERROR_ABI",
    "KNOWN_SELECTORS",
    "extract_revert_data",
    "decode_revert_data",
    "decode_error",
    "describe_error",
]
