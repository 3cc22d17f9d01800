"""Kernel validator capability contract and shared mode/signature logic.

Kernel splits validation from execution: a validator plugin authorizes user
operations, and the account decides per call-selector which validator is in
charge. A validator instance is long-lived; it is bound to one chain and one
account reader and reused across every operation it signs.
"""

from __future__ import annotations

import abc
import copy
import logging
from typing import Any, Dict, Optional, Protocol

from eth_abi import encode
from web3 import Web3

from ..chain import ZERO_ADDRESS, AccountReader
from ..errors import (
    AccountReadError,
    ConfigurationError,
    MissingEnableSignatureError,
    ValidatorChainMismatchError,
    ValidatorUninitializedError,
)
from ..operation import UserOperation, hex_to_bytes, to_hex, user_operation_hash
from .codec import EnableFrame, ValidatorMode, encode_mode_signature, encode_validator_data
from .signers import Signer

logger = logging.getLogger(__name__)

ENTRY_POINT_ADDRESS = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

# r = 0xfff..f000..0, s = 0x7aaa..a, v = 0x1c: a worst-case sized ECDSA signature
DUMMY_ECDSA_SIGNATURE = bytes.fromhex("f" * 31 + "0" * 33 + "7" + "a" * 63 + "1c")

_ENABLE_SELECTOR = bytes(Web3.keccak(text="enable(bytes)")[:4])
_DISABLE_SELECTOR = bytes(Web3.keccak(text="disable(bytes)")[:4])


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


class Validator(Protocol):
    """Capability contract shared by every credential variant."""

    @property
    def address(self) -> str:  # pragma: no cover - protocol
        ...

    async def resolve_mode(self, user_op: UserOperation) -> ValidatorMode:  # pragma: no cover - protocol
        ...

    async def sign_user_operation(self, user_op: UserOperation) -> bytes:  # pragma: no cover - protocol
        ...

    async def get_enable_data(self) -> bytes:  # pragma: no cover - protocol
        ...

    async def get_signature(self, user_op: UserOperation) -> bytes:  # pragma: no cover - protocol
        ...

    async def get_dummy_signature(self, user_op: UserOperation) -> bytes:  # pragma: no cover - protocol
        ...


class KernelValidator(abc.ABC):
    """Shared behaviour for Kernel validator plugins.

    Subclasses provide the credential specific pieces (``sign_user_operation``,
    ``get_enable_data`` and ``dummy_user_operation_signature``); mode resolution
    and signature framing live here.
    """

    kind = "BASE"
    default_address = ZERO_ADDRESS

    def __init__(
        self,
        *,
        signer: Signer,
        validator_address: Optional[str] = None,
        chain_id: Optional[int] = None,
        reader: Optional[AccountReader] = None,
        entry_point: str = ENTRY_POINT_ADDRESS,
        mode: ValidatorMode = ValidatorMode.SUDO,
        enable_signature: Optional[bytes] = None,
        valid_until: int = 0,
        valid_after: int = 0,
        executor: Optional[str] = None,
        selector: Optional[str] = None,
    ) -> None:
        self._signer = signer
        self._address = validator_address or self.default_address
        if same_address(self._address, ZERO_ADDRESS):
            raise ConfigurationError(f"{self.kind} validator needs a validator_address")
        self.chain_id = chain_id
        self._reader = reader
        self.entry_point = entry_point
        self.mode = mode
        self._enable_signature = enable_signature
        self.valid_until = valid_until
        self.valid_after = valid_after
        self.executor = executor
        self.selector = selector

    @property
    def address(self) -> str:
        return self._address

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def is_initialized(self) -> bool:
        return self.chain_id is not None and self._reader is not None

    def initialize(self, *, chain_id: int, reader: AccountReader) -> None:
        """Bind the validator to a chain.

        Binding again to the same chain keeps the existing reader; binding to
        another chain raises :class:`ValidatorChainMismatchError`.
        """

        if self.chain_id is not None and self.chain_id != chain_id:
            raise ValidatorChainMismatchError(self.address, self.chain_id, chain_id)
        self.chain_id = chain_id
        if self._reader is None:
            self._reader = reader

    def for_chain(self, *, chain_id: int, reader: AccountReader) -> "KernelValidator":
        """Return this validator bound to ``chain_id``.

        An unbound validator is bound in place. One already serving another
        chain is left untouched and a rebound shallow copy (same signer, same
        configuration) is returned, so one credential can sign for many chains.
        """

        if self.chain_id is None or self.chain_id == chain_id:
            self.initialize(chain_id=chain_id, reader=reader)
            return self
        bound = copy.copy(self)
        bound.chain_id = chain_id
        bound._reader = reader
        return bound

    def set_enable_signature(self, enable_signature: bytes) -> None:
        self._enable_signature = enable_signature

    @abc.abstractmethod
    async def get_enable_data(self) -> bytes:
        """Payload passed to the plugin's ``enable(bytes)`` call."""

    @abc.abstractmethod
    async def sign_user_operation(self, user_op: UserOperation) -> bytes:
        """Credential specific signature over the user operation."""

    @abc.abstractmethod
    def dummy_user_operation_signature(self) -> bytes:
        """Worst-case sized stand-in for :meth:`sign_user_operation` output."""

    async def sign_message(self, message: bytes) -> bytes:
        return await self._signer.sign_message(message)

    def encode_enable(self, enable_data: bytes) -> str:
        return to_hex(_ENABLE_SELECTOR + encode(["bytes"], [enable_data]))

    def encode_disable(self, disable_data: bytes = b"") -> str:
        return to_hex(_DISABLE_SELECTOR + encode(["bytes"], [disable_data]))

    def user_operation_hash(self, user_op: UserOperation) -> bytes:
        if self.chain_id is None:
            raise ValidatorUninitializedError()
        return user_operation_hash(user_op, entry_point=self.entry_point, chain_id=self.chain_id)

    async def resolve_mode(self, user_op: UserOperation) -> ValidatorMode:
        reader = self._reader
        if self.chain_id is None or reader is None:
            raise ValidatorUninitializedError()
        sender = user_op.sender or ""
        try:
            default_validator = await reader.get_default_validator(sender)
            execution = await reader.get_execution(sender, user_op.selector)
        except AccountReadError as exc:
            # undeployed accounts cannot answer; plugin validators must then enable themselves
            fallback = ValidatorMode.ENABLE if self.mode is ValidatorMode.PLUGIN else self.mode
            logger.debug("Mode lookup failed for %s (%s); using %s", sender, exc, fallback.name)
            return fallback
        if same_address(default_validator, self.address):
            return ValidatorMode.SUDO
        if same_address(execution.validator, self.address):
            return ValidatorMode.PLUGIN
        return ValidatorMode.ENABLE

    def _enable_frame(self, enable_data: bytes, enable_signature: bytes, signature: bytes) -> bytes:
        if not self.executor:
            raise ConfigurationError(f"validator {self.address} needs an executor to be enabled")
        return EnableFrame(
            valid_until=self.valid_until,
            valid_after=self.valid_after,
            validator=self.address,
            executor=self.executor,
            enable_data=enable_data,
            enable_signature=enable_signature,
            signature=signature,
        ).encode()

    async def get_signature(self, user_op: UserOperation) -> bytes:
        mode = await self.resolve_mode(user_op)
        if mode is not ValidatorMode.ENABLE:
            return encode_mode_signature(mode, await self.sign_user_operation(user_op))
        if self._enable_signature is None:
            raise MissingEnableSignatureError(self.address)
        return self._enable_frame(
            await self.get_enable_data(),
            self._enable_signature,
            await self.sign_user_operation(user_op),
        )

    async def get_dummy_signature(self, user_op: UserOperation) -> bytes:
        mode = await self.resolve_mode(user_op)
        dummy = self.dummy_user_operation_signature()
        if mode is not ValidatorMode.ENABLE:
            return encode_mode_signature(mode, dummy)
        return self._enable_frame(
            await self.get_enable_data(),
            self._enable_signature or DUMMY_ECDSA_SIGNATURE,
            dummy,
        )

    def enable_typed_data(
        self,
        *,
        kernel: str,
        selector: str,
        executor: str,
        valid_until: int,
        valid_after: int,
        validator_address: str,
        enable_data: bytes,
    ) -> Dict[str, Any]:
        """EIP-712 ``ValidatorApproved`` payload the account owner signs to enable a validator."""

        if self.chain_id is None:
            raise ValidatorUninitializedError()
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "ValidatorApproved": [
                    {"name": "sig", "type": "bytes4"},
                    {"name": "validatorData", "type": "uint256"},
                    {"name": "executor", "type": "address"},
                    {"name": "enableData", "type": "bytes"},
                ],
            },
            "primaryType": "ValidatorApproved",
            "domain": {
                "name": "Kernel",
                "version": "0.0.2",
                "chainId": self.chain_id,
                "verifyingContract": Web3.to_checksum_address(kernel),
            },
            "message": {
                "sig": hex_to_bytes(selector),
                "validatorData": encode_validator_data(valid_until, valid_after, validator_address),
                "executor": Web3.to_checksum_address(executor),
                "enableData": enable_data,
            },
        }

    async def approve_executor(
        self,
        kernel: str,
        selector: str,
        executor: str,
        valid_until: int,
        valid_after: int,
        validator: "KernelValidator",
    ) -> bytes:
        """Sign, as this (owning) validator, the approval that lets ``validator`` be enabled."""

        typed_data = self.enable_typed_data(
            kernel=kernel,
            selector=selector,
            executor=executor,
            valid_until=valid_until,
            valid_after=valid_after,
            validator_address=validator.address,
            enable_data=await validator.get_enable_data(),
        )
        return await self._signer.sign_typed_data(typed_data)
