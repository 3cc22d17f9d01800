"""UserOperation draft model and EntryPoint v0.6 hashing."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from eth_abi import encode
from web3 import Web3


def int_from_quantity(value: Any) -> int:
    if value in (None, ""):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("0x"):
            return int(text, 16)
        return int(text)
    raise TypeError(f"cannot interpret {type(value).__name__} as a quantity")


def hex_to_bytes(value: Union[str, bytes, None]) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(text)


def to_hex(value: Union[bytes, bytearray, str]) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return "0x" + bytes(value).hex()


class OperationKind(enum.IntEnum):
    """Kernel ``Operation`` enum passed to ``execute``."""

    CALL = 0
    DELEGATE_CALL = 1


@dataclass(frozen=True)
class Call:
    """A single call executed by the smart account."""

    target: str
    data: str = "0x"
    value: int = 0


CallData = Union[Call, Sequence[Call]]


@dataclass(frozen=True)
class UserOperationOverrides:
    """Caller supplied fee caps; ``None`` lets the pipeline resolve them."""

    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None


_RPC_NAMES: Dict[str, str] = {
    "sender": "sender",
    "nonce": "nonce",
    "init_code": "initCode",
    "call_data": "callData",
    "call_gas_limit": "callGasLimit",
    "verification_gas_limit": "verificationGasLimit",
    "pre_verification_gas": "preVerificationGas",
    "max_fee_per_gas": "maxFeePerGas",
    "max_priority_fee_per_gas": "maxPriorityFeePerGas",
    "paymaster_and_data": "paymasterAndData",
    "signature": "signature",
}

_QUANTITY_FIELDS = frozenset(
    {
        "nonce",
        "call_gas_limit",
        "verification_gas_limit",
        "pre_verification_gas",
        "max_fee_per_gas",
        "max_priority_fee_per_gas",
    }
)


@dataclass
class UserOperation:
    """Mutable draft of an ERC-4337 (EntryPoint v0.6) user operation.

    Quantities are plain Python integers so fee arithmetic stays exact for any
    magnitude; byte fields are ``0x``-prefixed hex strings. ``None`` marks a
    field the pipeline still has to fill in.
    """

    sender: Optional[str] = None
    nonce: Optional[int] = None
    init_code: Optional[str] = "0x"
    call_data: Optional[str] = None
    call_gas_limit: Optional[int] = None
    verification_gas_limit: Optional[int] = None
    pre_verification_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    paymaster_and_data: Optional[str] = None
    signature: Optional[str] = None

    def copy(self) -> "UserOperation":
        return copy.deepcopy(self)

    def missing_fields(self) -> List[str]:
        return [name for name in _RPC_NAMES if getattr(self, name) is None]

    @property
    def selector(self) -> str:
        """First four bytes of the call data, as used by ``getExecution``."""

        data = self.call_data or "0x"
        return data[:10].lower()

    def to_rpc(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for name, rpc_name in _RPC_NAMES.items():
            value = getattr(self, name)
            if value is None:
                continue
            payload[rpc_name] = hex(value) if name in _QUANTITY_FIELDS else value
        return payload

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot that keeps ``None`` values; used for diagnostics."""

        return {rpc_name: getattr(self, name) for name, rpc_name in _RPC_NAMES.items()}

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "UserOperation":
        values: Dict[str, Any] = {}
        for name, rpc_name in _RPC_NAMES.items():
            if rpc_name not in data or data[rpc_name] is None:
                continue
            raw = data[rpc_name]
            values[name] = int_from_quantity(raw) if name in _QUANTITY_FIELDS else raw
        return cls(**values)

    def update_from_rpc(self, data: Dict[str, Any]) -> None:
        """Merge RPC-shaped fields (e.g. a gas estimate) into the draft."""

        for name, rpc_name in _RPC_NAMES.items():
            if rpc_name not in data or data[rpc_name] is None:
                continue
            raw = data[rpc_name]
            setattr(self, name, int_from_quantity(raw) if name in _QUANTITY_FIELDS else raw)


def pack_user_operation(user_op: UserOperation) -> bytes:
    missing = [name for name in user_op.missing_fields() if name != "signature"]
    if missing:
        raise ValueError(f"cannot hash user operation with unset fields: {', '.join(missing)}")
    return encode(
        [
            "address",
            "uint256",
            "bytes32",
            "bytes32",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "bytes32",
        ],
        [
            Web3.to_checksum_address(user_op.sender),
            user_op.nonce,
            Web3.keccak(hex_to_bytes(user_op.init_code)),
            Web3.keccak(hex_to_bytes(user_op.call_data)),
            user_op.call_gas_limit,
            user_op.verification_gas_limit,
            user_op.pre_verification_gas,
            user_op.max_fee_per_gas,
            user_op.max_priority_fee_per_gas,
            Web3.keccak(hex_to_bytes(user_op.paymaster_and_data)),
        ],
    )


def user_operation_hash(user_op: UserOperation, *, entry_point: str, chain_id: int) -> bytes:
    """Return the EntryPoint v0.6 ``getUserOpHash`` value (signature excluded)."""

    inner = Web3.keccak(pack_user_operation(user_op))
    encoded = encode(
        ["bytes32", "address", "uint256"],
        [inner, Web3.to_checksum_address(entry_point), chain_id],
    )
    return bytes(Web3.keccak(encoded))


@dataclass
class SendUserOperationResult:
    """Return value of :meth:`KernelProvider.send_user_operation`."""

    hash: str
    request: UserOperation
