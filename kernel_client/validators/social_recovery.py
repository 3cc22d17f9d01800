"""Weighted-guardian social recovery validator."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from eth_abi import encode
from web3 import Web3

from ..errors import ConfigurationError
from ..operation import UserOperation
from .base import DUMMY_ECDSA_SIGNATURE, KernelValidator
from .signers import Signer

_UINT24_MAX = 2**24 - 1


class SocialRecoveryValidator(KernelValidator):
    """Collects guardian signatures, lowest address first, until ``threshold`` weight is met."""

    kind = "SOCIAL_RECOVERY"

    def __init__(
        self,
        *,
        guardians: Sequence[Tuple[Signer, int]],
        threshold: int,
        delay: int = 0,
        signer: Optional[Signer] = None,
        **kwargs: Any,
    ) -> None:
        if not guardians:
            raise ConfigurationError("social recovery needs at least one guardian")
        for _, weight in guardians:
            if not 0 < weight <= _UINT24_MAX:
                raise ConfigurationError("guardian weights must be positive uint24 values")
        if not 0 < threshold <= sum(weight for _, weight in guardians):
            raise ConfigurationError("threshold must be reachable by the configured guardian weights")
        super().__init__(signer=signer or guardians[0][0], **kwargs)
        self._guardians: List[Tuple[Signer, int]] = sorted(
            guardians, key=lambda item: item[0].address.lower()
        )
        self.threshold = threshold
        self.delay = delay

    def _quorum(self) -> List[Signer]:
        selected: List[Signer] = []
        total = 0
        for guardian, weight in self._guardians:
            selected.append(guardian)
            total += weight
            if total >= self.threshold:
                break
        return selected

    async def get_enable_data(self) -> bytes:
        return encode(
            ["address[]", "uint24[]", "uint24", "uint48"],
            [
                [Web3.to_checksum_address(guardian.address) for guardian, _ in self._guardians],
                [weight for _, weight in self._guardians],
                self.threshold,
                self.delay,
            ],
        )

    async def sign_user_operation(self, user_op: UserOperation) -> bytes:
        digest = self.user_operation_hash(user_op)
        signatures = [await guardian.sign_message(digest) for guardian in self._quorum()]
        return b"".join(signatures)

    def dummy_user_operation_signature(self) -> bytes:
        return DUMMY_ECDSA_SIGNATURE * len(self._quorum())
