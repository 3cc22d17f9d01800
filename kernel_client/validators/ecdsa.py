"""Primary-key (ECDSA owner) validator."""

from __future__ import annotations

from ..operation import UserOperation, hex_to_bytes
from .base import DUMMY_ECDSA_SIGNATURE, KernelValidator

ECDSA_VALIDATOR_ADDRESS = "0xd9AB5096a832b9ce79914329DAEE236f8Eea0390"


class ECDSAValidator(KernelValidator):
    """Authorizes operations with an EIP-191 signature from the account owner."""

    kind = "ECDSA"
    default_address = ECDSA_VALIDATOR_ADDRESS

    async def get_enable_data(self) -> bytes:
        return hex_to_bytes(self.signer.address)

    async def sign_user_operation(self, user_op: UserOperation) -> bytes:
        return await self.signer.sign_message(self.user_operation_hash(user_op))

    def dummy_user_operation_signature(self) -> bytes:
        return DUMMY_ECDSA_SIGNATURE
