"""Sudo/regular validator pairing used when one authority approves many chains."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..aa.account import EXECUTE_SELECTOR
from ..chain import ZERO_ADDRESS, AccountReader
from ..errors import AccountReadError
from ..operation import UserOperation, to_hex
from ..validators.base import KernelValidator, same_address
from ..validators.codec import EnableFrame


@dataclass(frozen=True)
class Action:
    """Selector and executor the regular validator is enabled for."""

    selector: str = to_hex(EXECUTE_SELECTOR)
    address: str = ZERO_ADDRESS


class PluginManager:
    """Pairs the owning (sudo) validator with an optional regular validator.

    Without a regular validator the sudo validator is the active one and
    every multi-chain batch is approved by signing a Merkle root of the
    user operation hashes.
    """

    def __init__(
        self,
        *,
        sudo: KernelValidator,
        regular: Optional[KernelValidator] = None,
        action: Optional[Action] = None,
        valid_until: int = 0,
        valid_after: int = 0,
    ) -> None:
        self.sudo = sudo
        self.regular = regular
        self.action = action or Action()
        self.valid_until = valid_until
        self.valid_after = valid_after

    @property
    def active_validator(self) -> KernelValidator:
        return self.regular or self.sudo

    def for_chain(self, *, chain_id: int, reader: AccountReader) -> "PluginManager":
        """Manager whose validators are bound to ``chain_id`` (see :meth:`KernelValidator.for_chain`)."""

        return PluginManager(
            sudo=self.sudo.for_chain(chain_id=chain_id, reader=reader),
            regular=self.regular.for_chain(chain_id=chain_id, reader=reader) if self.regular else None,
            action=self.action,
            valid_until=self.valid_until,
            valid_after=self.valid_after,
        )

    async def is_enabled(self, account: str, reader: AccountReader) -> bool:
        """Whether the account routes the action selector to the regular validator.

        An account that cannot answer (not deployed yet) has nothing enabled.
        """

        if self.regular is None:
            return False
        try:
            execution = await reader.get_execution(account, self.action.selector)
        except AccountReadError:
            return False
        return same_address(execution.validator, self.regular.address)

    async def is_plugin_initialized(self, account: str, reader: AccountReader) -> bool:
        if self.regular is None:
            return False
        return await reader.is_plugin_initialized(account, self.regular.address)

    async def is_active(self, account: str, reader: AccountReader) -> bool:
        return await self.is_enabled(account, reader) or await self.is_plugin_initialized(account, reader)

    def get_stub_signature(self) -> bytes:
        return self.active_validator.dummy_user_operation_signature()

    async def get_enable_data(self) -> bytes:
        if self.regular is None:
            return b""
        return await self.regular.get_enable_data()

    async def get_plugins_enable_typed_data(self, account: str) -> Dict[str, Any]:
        """``ValidatorApproved`` payload the sudo authority signs for ``account``."""

        if self.regular is None:
            raise ValueError("no regular validator to enable")
        return self.sudo.enable_typed_data(
            kernel=account,
            selector=self.action.selector,
            executor=self.action.address,
            valid_until=self.valid_until,
            valid_after=self.valid_after,
            validator_address=self.regular.address,
            enable_data=await self.regular.get_enable_data(),
        )

    async def sign_user_operation_with_active_validator(self, user_op: UserOperation) -> bytes:
        return await self.active_validator.sign_user_operation(user_op)

    async def sign_message(self, message: bytes) -> bytes:
        return await self.sudo.sign_message(message)

    def encode_plugins_data(
        self,
        *,
        enable_signature: bytes,
        user_op_signature: bytes,
        enable_data: bytes,
    ) -> bytes:
        if self.regular is None:
            raise ValueError("no regular validator to enable")
        return EnableFrame(
            valid_until=self.valid_until,
            valid_after=self.valid_after,
            validator=self.regular.address,
            executor=self.action.address,
            enable_data=enable_data,
            enable_signature=enable_signature,
            signature=user_op_signature,
        ).encode()
