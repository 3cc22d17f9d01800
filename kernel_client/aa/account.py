"""Kernel smart account: sender identity, nonce and call-data encoding."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from eth_abi import encode
from web3 import Web3

from ..chain import AccountReader
from ..errors import InvalidOperationKindError
from ..operation import Call, CallData, OperationKind, hex_to_bytes, to_hex
from ..validators.base import KernelValidator

if TYPE_CHECKING:  # pragma: no cover
    from ..multichain.plugins import PluginManager

EXECUTE_SELECTOR = bytes(Web3.keccak(text="execute(address,uint256,bytes,uint8)")[:4])
_EXECUTE_BATCH_SELECTOR = bytes(Web3.keccak(text="executeBatch((address,uint256,bytes)[])")[:4])


class KernelAccount:
    """A deployed (or counterfactual) Kernel account and its active validator."""

    def __init__(
        self,
        *,
        address: str,
        reader: AccountReader,
        validator: Optional[KernelValidator] = None,
        init_code: str = "0x",
        plugins: Optional["PluginManager"] = None,
    ) -> None:
        self.address = Web3.to_checksum_address(address)
        self.reader = reader
        self.validator = validator
        self.init_code = init_code
        self.plugins = plugins

    async def get_nonce(self) -> int:
        return await self.reader.get_nonce(self.address)

    async def get_init_code(self) -> str:
        return self.init_code

    def _execute(self, target: str, value: int, data: str, kind: OperationKind) -> str:
        encoded = encode(
            ["address", "uint256", "bytes", "uint8"],
            [Web3.to_checksum_address(target), value, hex_to_bytes(data), int(kind)],
        )
        return to_hex(EXECUTE_SELECTOR + encoded)

    def encode_execute(self, target: str, value: int, data: str) -> str:
        return self._execute(target, value, data, OperationKind.CALL)

    def encode_execute_delegate(self, target: str, value: int, data: str) -> str:
        return self._execute(target, value, data, OperationKind.DELEGATE_CALL)

    def encode_batch_execute(self, calls: Sequence[Call]) -> str:
        encoded = encode(
            ["(address,uint256,bytes)[]"],
            [[(Web3.to_checksum_address(c.target), c.value, hex_to_bytes(c.data)) for c in calls]],
        )
        return to_hex(_EXECUTE_BATCH_SELECTOR + encoded)

    def encode_call_data(self, data: CallData, kind: OperationKind = OperationKind.CALL) -> str:
        if isinstance(data, Call):
            if kind is OperationKind.DELEGATE_CALL:
                return self.encode_execute_delegate(data.target, data.value, data.data)
            return self.encode_execute(data.target, data.value, data.data)
        if kind is not OperationKind.CALL:
            raise InvalidOperationKindError()
        return self.encode_batch_execute(list(data))
