"""Byte layouts for Kernel validator signatures.

Every signature handed to the Kernel account starts with a 4-byte mode tag.
``SUDO`` and ``PLUGIN`` signatures are simply ``tag || signature``. ``ENABLE``
signatures carry the full enable frame::

    offset  size  field
    0       4     mode tag
    4       6     validUntil (uint48, big-endian)
    10      6     validAfter (uint48, big-endian)
    16      20    validator address
    36      20    executor address
    56      32    len(enableData)
    88      n     enableData
    88+n    32    len(enableSignature)
    120+n   m     enableSignature
    120+n+m ...   user operation signature (remainder)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

from eth_abi import decode, encode

from ..operation import hex_to_bytes

_UINT48_MAX = 2**48 - 1
_LENGTH_SIZE = 32
_HEADER_SIZE = 4 + 6 + 6 + 20 + 20


class ValidatorMode(bytes, enum.Enum):
    SUDO = b"\x00\x00\x00\x00"
    PLUGIN = b"\x00\x00\x00\x01"
    ENABLE = b"\x00\x00\x00\x02"

    @property
    def tag(self) -> str:
        return "0x" + self.value.hex()

    @classmethod
    def from_tag(cls, tag: Union[str, bytes]) -> "ValidatorMode":
        raw = hex_to_bytes(tag)
        for mode in cls:
            if mode.value == raw:
                return mode
        raise ValueError(f"unknown validator mode tag: 0x{raw.hex()}")


def encode_uint48(value: int) -> bytes:
    if not 0 <= value <= _UINT48_MAX:
        raise ValueError(f"uint48 out of range: {value}")
    return value.to_bytes(6, "big")


def encode_address(address: Union[str, bytes]) -> bytes:
    raw = hex_to_bytes(address)
    if len(raw) != 20:
        raise ValueError(f"address must be 20 bytes, got {len(raw)}")
    return raw


def _encode_length(value: bytes) -> bytes:
    return len(value).to_bytes(_LENGTH_SIZE, "big")


def _read_length(blob: bytes, offset: int) -> int:
    end = offset + _LENGTH_SIZE
    if end > len(blob):
        raise ValueError("enable frame truncated inside a length prefix")
    return int.from_bytes(blob[offset:end], "big")


def encode_mode_signature(mode: ValidatorMode, signature: bytes) -> bytes:
    if mode is ValidatorMode.ENABLE:
        raise ValueError("enable mode signatures must be framed with EnableFrame")
    return mode.value + signature


@dataclass(frozen=True)
class EnableFrame:
    """Signature payload for a validator that is not yet enabled on the account."""

    valid_until: int
    valid_after: int
    validator: str
    executor: str
    enable_data: bytes
    enable_signature: bytes
    signature: bytes
    mode: ValidatorMode = ValidatorMode.ENABLE

    def encode(self) -> bytes:
        return b"".join(
            (
                self.mode.value,
                encode_uint48(self.valid_until),
                encode_uint48(self.valid_after),
                encode_address(self.validator),
                encode_address(self.executor),
                _encode_length(self.enable_data),
                self.enable_data,
                _encode_length(self.enable_signature),
                self.enable_signature,
                self.signature,
            )
        )

    @classmethod
    def decode(cls, blob: bytes) -> "EnableFrame":
        if len(blob) < _HEADER_SIZE + _LENGTH_SIZE:
            raise ValueError("enable frame shorter than its fixed header")
        mode = ValidatorMode(blob[0:4])
        valid_until = int.from_bytes(blob[4:10], "big")
        valid_after = int.from_bytes(blob[10:16], "big")
        validator = "0x" + blob[16:36].hex()
        executor = "0x" + blob[36:56].hex()

        offset = _HEADER_SIZE
        enable_data_length = _read_length(blob, offset)
        offset += _LENGTH_SIZE
        enable_data = blob[offset : offset + enable_data_length]
        offset += enable_data_length
        if len(enable_data) != enable_data_length:
            raise ValueError("enable frame truncated inside enableData")

        enable_signature_length = _read_length(blob, offset)
        offset += _LENGTH_SIZE
        enable_signature = blob[offset : offset + enable_signature_length]
        offset += enable_signature_length
        if len(enable_signature) != enable_signature_length:
            raise ValueError("enable frame truncated inside enableSignature")

        return cls(
            mode=mode,
            valid_until=valid_until,
            valid_after=valid_after,
            validator=validator,
            executor=executor,
            enable_data=enable_data,
            enable_signature=enable_signature,
            signature=blob[offset:],
        )


def encode_validator_data(valid_until: int, valid_after: int, validator: str) -> int:
    """Pack ``validUntil || validAfter || validator`` into the uint256 used by ``ValidatorApproved``."""

    packed = encode_uint48(valid_until) + encode_uint48(valid_after) + encode_address(validator)
    return int.from_bytes(packed, "big")


def encode_merkle_approval(root: bytes, proof: Sequence[bytes], signature: bytes) -> bytes:
    """ABI encode ``(bytes merkleData, bytes signature)``.

    ``merkleData`` is the 32-byte root followed by ``abi.encode(bytes32[] proof)``.
    """

    if len(root) != 32:
        raise ValueError("merkle root must be 32 bytes")
    merkle_data = root + encode(["bytes32[]"], [list(proof)])
    return encode(["bytes", "bytes"], [merkle_data, signature])


def decode_merkle_approval(blob: bytes) -> Tuple[bytes, List[bytes], bytes]:
    merkle_data, signature = decode(["bytes", "bytes"], blob)
    root = merkle_data[:32]
    (proof,) = decode(["bytes32[]"], merkle_data[32:])
    return root, list(proof), signature
