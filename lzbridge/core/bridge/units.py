"""Amount and address helpers for OFT sends."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext
from typing import Optional

from eth_utils import decode_hex, is_hex_address

from ..errors import ValidationError


MAX_AMOUNT = "max"

# 1% slippage floor: minAmountLD = amountLD * 9900 / 10000
SLIPPAGE_NUMERATOR = 9900
SLIPPAGE_DENOMINATOR = 10000

# uint256 needs 78 digits; the default context keeps 28
_PRECISION = 100


def parse_units(amount: str, decimals: int) -> int:
    """Convert a human decimal string into base units without float rounding."""

    text = (amount or "").strip()
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        exponent = value.normalize().as_tuple().exponent
        if isinstance(exponent, int) and -exponent > decimals:
            raise ValidationError(f"Amount {amount} has more than {decimals} decimal places")
        return int(value.scaleb(decimals))


def format_units(value: int, decimals: int) -> str:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        quantized = Decimal(value).scaleb(-decimals)
    text = format(quantized, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def min_amount(amount_ld: int) -> int:
    return amount_ld * SLIPPAGE_NUMERATOR // SLIPPAGE_DENOMINATOR


def is_amount_syntax_valid(amount: Optional[str]) -> bool:
    """``"max"`` or a positive decimal string."""

    if not amount:
        return False
    text = amount.strip()
    if text.lower() == MAX_AMOUNT:
        return True
    try:
        value = Decimal(text)
    except InvalidOperation:
        return False
    return value.is_finite() and value > 0


def resolve_amount(amount: str, balance_formatted: Optional[str]) -> str:
    if amount.strip().lower() != MAX_AMOUNT:
        return amount.strip()
    if balance_formatted is None:
        raise ValidationError("Balance unavailable; cannot resolve max amount")
    return balance_formatted


def address_to_bytes32(address: str) -> bytes:
    if not is_hex_address(address):
        raise ValidationError(f"Invalid address: {address}")
    return decode_hex(address).rjust(32, b"\x00")
