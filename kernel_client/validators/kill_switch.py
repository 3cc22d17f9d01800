"""Kill switch (circuit breaker) validator.

A guardian can pause the account until ``paused_until``; the signature is
prefixed with that timestamp so the plugin can verify what was approved.
"""

from __future__ import annotations

from typing import Any

from web3 import Web3

from ..operation import UserOperation, hex_to_bytes
from .base import DUMMY_ECDSA_SIGNATURE, KernelValidator
from .codec import encode_uint48

KILL_SWITCH_VALIDATOR_ADDRESS = "0x7393A7dA58CCfFb78f52adb09705BE6E20F704BC"


class KillSwitchValidator(KernelValidator):
    kind = "KILL_SWITCH"
    default_address = KILL_SWITCH_VALIDATOR_ADDRESS

    def __init__(self, *, paused_until: int = 0, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.paused_until = paused_until

    async def get_enable_data(self) -> bytes:
        return hex_to_bytes(self.signer.address)

    async def sign_user_operation(self, user_op: UserOperation) -> bytes:
        paused_until = encode_uint48(self.paused_until)
        digest = bytes(Web3.keccak(paused_until + self.user_operation_hash(user_op)))
        return paused_until + await self.signer.sign_message(digest)

    def dummy_user_operation_signature(self) -> bytes:
        return encode_uint48(0) + DUMMY_ECDSA_SIGNATURE
