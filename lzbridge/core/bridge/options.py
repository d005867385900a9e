"""
Executor options (type 3) encoder.

Layout, all big-endian:

    0x0003 | worker_id:u8 | size:u16 | option_type:u8 | body | worker_id:u8 | ...

``size`` counts the option-type byte plus the body. Bodies are fixed-width
packed integers; an lzReceive/compose value field is present only when it is
non-zero, so its presence is signalled by ``size`` alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Union

from eth_utils import decode_hex, is_hex_address

from ..errors import EncodingOverflow


OPTIONS_TYPE_3 = 3
EXECUTOR_WORKER_ID = 1

OPTION_TYPE_LZRECEIVE = 1
OPTION_TYPE_NATIVE_DROP = 2
OPTION_TYPE_LZCOMPOSE = 3

MAX_OPTION_SIZE = 0xFFFF

DEFAULT_LZ_RECEIVE_GAS = 200_000


@dataclass(frozen=True)
class LzReceive:
    gas: int
    value: int = 0


@dataclass(frozen=True)
class NativeDrop:
    amount: int
    recipient: str


@dataclass(frozen=True)
class Compose:
    index: int
    gas: int
    value: int = 0


Directive = Union[LzReceive, NativeDrop, Compose]


def _pack_uint(value: int, width: int, field_name: str) -> bytes:
    if value < 0 or value >= 1 << (width * 8):
        raise EncodingOverflow(f"{field_name}={value} does not fit uint{width * 8}")
    return value.to_bytes(width, "big")


def _pack_recipient(recipient: str) -> bytes:
    if not is_hex_address(recipient):
        raise ValueError(f"Invalid native drop recipient: {recipient}")
    return decode_hex(recipient).rjust(32, b"\x00")


def _body(directive: Directive) -> tuple[int, bytes]:
    if isinstance(directive, LzReceive):
        body = _pack_uint(directive.gas, 16, "gas")
        if directive.value:
            body += _pack_uint(directive.value, 16, "value")
        return OPTION_TYPE_LZRECEIVE, body
    if isinstance(directive, NativeDrop):
        return OPTION_TYPE_NATIVE_DROP, _pack_uint(directive.amount, 16, "amount") + _pack_recipient(directive.recipient)
    if isinstance(directive, Compose):
        body = _pack_uint(directive.index, 2, "index") + _pack_uint(directive.gas, 16, "gas")
        if directive.value:
            body += _pack_uint(directive.value, 16, "value")
        return OPTION_TYPE_LZCOMPOSE, body
    raise TypeError(f"Unsupported executor directive: {directive!r}")


def _executor_option(option_type: int, body: bytes) -> bytes:
    size = len(body) + 1
    if size > MAX_OPTION_SIZE:
        raise EncodingOverflow(f"Option body of {len(body)} bytes exceeds the 16-bit size field")
    return bytes([EXECUTOR_WORKER_ID]) + size.to_bytes(2, "big") + bytes([option_type]) + body


class ExecutorOptions:
    """Append-only builder; entries are emitted in the order they were added."""

    def __init__(self) -> None:
        self._entries: List[bytes] = []

    @classmethod
    def new(cls) -> "ExecutorOptions":
        return cls()

    def add(self, directive: Directive) -> "ExecutorOptions":
        option_type, body = _body(directive)
        self._entries.append(_executor_option(option_type, body))
        return self

    def add_executor_lz_receive_option(self, gas: int, value: int = 0) -> "ExecutorOptions":
        return self.add(LzReceive(gas=gas, value=value))

    def add_executor_native_drop_option(self, amount: int, recipient: str) -> "ExecutorOptions":
        return self.add(NativeDrop(amount=amount, recipient=recipient))

    def add_executor_compose_option(self, index: int, gas: int, value: int = 0) -> "ExecutorOptions":
        return self.add(Compose(index=index, gas=gas, value=value))

    def to_bytes(self) -> bytes:
        return OPTIONS_TYPE_3.to_bytes(2, "big") + b"".join(self._entries)

    def to_hex(self) -> str:
        return "0x" + self.to_bytes().hex()


def encode(directives: Iterable[Directive]) -> str:
    options = ExecutorOptions.new()
    for directive in directives:
        options.add(directive)
    return options.to_hex()


def decode(options_hex: str) -> List[Directive]:
    """Parse type-3 executor options back into directives."""

    raw = decode_hex(options_hex)
    if len(raw) < 2 or int.from_bytes(raw[:2], "big") != OPTIONS_TYPE_3:
        raise ValueError("Options are not in type-3 format")

    directives: List[Directive] = []
    cursor = 2
    while cursor < len(raw):
        if cursor + 4 > len(raw):
            raise ValueError("Truncated option header")
        worker_id = raw[cursor]
        size = int.from_bytes(raw[cursor + 1:cursor + 3], "big")
        option_type = raw[cursor + 3]
        body = raw[cursor + 4:cursor + 3 + size]
        if size < 1 or len(body) != size - 1:
            raise ValueError("Truncated option body")
        cursor += 3 + size
        if worker_id != EXECUTOR_WORKER_ID:
            raise ValueError(f"Unsupported worker id {worker_id}")

        if option_type == OPTION_TYPE_LZRECEIVE and len(body) in (16, 32):
            value = int.from_bytes(body[16:32], "big") if len(body) == 32 else 0
            directives.append(LzReceive(gas=int.from_bytes(body[:16], "big"), value=value))
        elif option_type == OPTION_TYPE_NATIVE_DROP and len(body) == 48:
            directives.append(NativeDrop(
                amount=int.from_bytes(body[:16], "big"),
                recipient="0x" + body[-20:].hex(),
            ))
        elif option_type == OPTION_TYPE_LZCOMPOSE and len(body) in (18, 34):
            value = int.from_bytes(body[18:34], "big") if len(body) == 34 else 0
            directives.append(Compose(
                index=int.from_bytes(body[:2], "big"),
                gas=int.from_bytes(body[2:18], "big"),
                value=value,
            ))
        else:
            raise ValueError(f"Invalid executor option type={option_type} size={size}")
    return directives


def build_lz_receive_options(gas: int = DEFAULT_LZ_RECEIVE_GAS, value: int = 0) -> str:
    # 200k gas, 0 msg.value unless the destination needs more
    return encode([LzReceive(gas=gas, value=value)])


def build_compose_options(index: int, gas: int, value: int = 0) -> str:
    return encode([Compose(index=index, gas=gas, value=value)])


def build_native_drop_options(amount: int, recipient: str) -> str:
    return encode([NativeDrop(amount=amount, recipient=recipient)])


__all__ = [
    "LzReceive",
    "NativeDrop",
    "Compose",
    "Directive",
    "ExecutorOptions",
    "encode",
    "decode",
    "build_lz_receive_options",
    "build_compose_options",
    "build_native_drop_options",
    "DEFAULT_LZ_RECEIVE_GAS",
]
