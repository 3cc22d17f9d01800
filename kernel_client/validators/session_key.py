"""ERC-165 session key validator.

The session key may only call contracts that advertise ``interface_id``; the
target address is read from the call data at ``address_offset``.
"""

from __future__ import annotations

from typing import Any

from ..errors import ConfigurationError
from ..operation import UserOperation, hex_to_bytes
from .base import DUMMY_ECDSA_SIGNATURE, KernelValidator
from .codec import encode_address, encode_uint48


class ERC165SessionKeyValidator(KernelValidator):
    kind = "ERC165_SESSION_KEY"

    def __init__(self, *, interface_id: str, address_offset: int, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if len(hex_to_bytes(interface_id)) != 4:
            raise ConfigurationError("interface_id must be a 4-byte value")
        if not 0 <= address_offset < 2**32:
            raise ConfigurationError("address_offset must fit in 4 bytes")
        if not self.selector or len(hex_to_bytes(self.selector)) != 4:
            raise ConfigurationError("session key validators need the 4-byte selector they are scoped to")
        self.interface_id = interface_id
        self.address_offset = address_offset

    async def get_enable_data(self) -> bytes:
        return b"".join(
            (
                encode_address(self.signer.address),
                hex_to_bytes(self.interface_id),
                hex_to_bytes(self.selector),
                encode_uint48(self.valid_until),
                encode_uint48(self.valid_after),
                self.address_offset.to_bytes(4, "big"),
            )
        )

    async def sign_user_operation(self, user_op: UserOperation) -> bytes:
        return await self.signer.sign_message(self.user_operation_hash(user_op))

    def dummy_user_operation_signature(self) -> bytes:
        return DUMMY_ECDSA_SIGNATURE
