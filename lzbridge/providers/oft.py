"""Read/encode helpers for an OFT (or OFT adapter) contract."""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from ..core.bridge.error_decoder import decode_revert_data, extract_revert_data
from ..core.bridge.models import MessagingFee, SendParam
from ..core.errors import ChainCallFailure, ContractRevert
from .rpc import RpcClient, RpcError


SEND_PARAM_TYPE = "(uint32,bytes32,uint256,uint256,bytes,bytes,bytes)"
MESSAGING_FEE_TYPE = "(uint256,uint256)"


def _selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


SIG_TOKEN = "token()"
SIG_DECIMALS = "decimals()"
SIG_BALANCE_OF = "balanceOf(address)"
SIG_SEND_TYPE = "SEND()"
SIG_ENFORCED_OPTIONS = "enforcedOptions(uint32,uint16)"
SIG_COMBINE_OPTIONS = "combineOptions(uint32,uint16,bytes)"
SIG_QUOTE_SEND = f"quoteSend({SEND_PARAM_TYPE},bool)"
SIG_SEND = f"send({SEND_PARAM_TYPE},{MESSAGING_FEE_TYPE},address)"


def encode_call(signature: str, types: List[str], args: List[Any]) -> str:
    body = abi_encode(types, args) if types else b""
    return "0x" + (_selector(signature) + body).hex()


def _hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class OftContract:
    """Typed wrappers around ``eth_call`` for one OFT address."""

    def __init__(self, rpc: RpcClient, address: str) -> None:
        self.rpc = rpc
        self.address = address

    async def _call(self, signature: str, types: List[str], args: List[Any], out: List[str], *, to: Optional[str] = None) -> Tuple[Any, ...]:
        data = encode_call(signature, types, args)
        try:
            result = await self.rpc.eth_call(to or self.address, data)
        except RpcError as exc:
            revert = extract_revert_data(exc)
            if revert is None:
                raise
            raise ContractRevert(str(exc), data=revert, reason=decode_revert_data(revert)) from exc
        try:
            return tuple(abi_decode(out, _hex_to_bytes(result or "0x")))
        except (DecodingError, ValueError) as exc:
            raise ChainCallFailure(f"Could not decode {signature} result: {exc}") from exc

    async def token(self) -> str:
        (address,) = await self._call(SIG_TOKEN, [], [], ["address"])
        return address

    async def decimals_of(self, token_address: str) -> int:
        (decimals,) = await self._call(SIG_DECIMALS, [], [], ["uint8"], to=token_address)
        return int(decimals)

    async def balance_of(self, token_address: str, owner: str) -> int:
        (balance,) = await self._call(SIG_BALANCE_OF, ["address"], [owner], ["uint256"], to=token_address)
        return int(balance)

    async def send_message_type(self) -> int:
        (msg_type,) = await self._call(SIG_SEND_TYPE, [], [], ["uint16"])
        return int(msg_type)

    async def enforced_options(self, dst_eid: int, msg_type: int) -> str:
        (options,) = await self._call(SIG_ENFORCED_OPTIONS, ["uint32", "uint16"], [dst_eid, msg_type], ["bytes"])
        return "0x" + options.hex()

    async def combine_options(self, dst_eid: int, msg_type: int, extra_options: str) -> str:
        (options,) = await self._call(
            SIG_COMBINE_OPTIONS,
            ["uint32", "uint16", "bytes"],
            [dst_eid, msg_type, _hex_to_bytes(extra_options)],
            ["bytes"],
        )
        return "0x" + options.hex()

    async def quote_send(self, send_param: SendParam, pay_in_lz_token: bool = False) -> MessagingFee:
        native_fee, lz_token_fee = (await self._call(
            SIG_QUOTE_SEND,
            [SEND_PARAM_TYPE, "bool"],
            [send_param.as_abi_tuple(), pay_in_lz_token],
            [MESSAGING_FEE_TYPE],
        ))[0]
        return MessagingFee(native_fee=int(native_fee), lz_token_fee=int(lz_token_fee))

    def encode_send(self, send_param: SendParam, fee: MessagingFee, refund_address: str) -> str:
        return encode_call(
            SIG_SEND,
            [SEND_PARAM_TYPE, MESSAGING_FEE_TYPE, "address"],
            [send_param.as_abi_tuple(), fee.as_abi_tuple(), refund_address],
        )


__all__ = ["OftContract", "encode_call"]
