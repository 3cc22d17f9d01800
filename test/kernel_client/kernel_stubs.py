"""Stub chain readers, bundlers and signers shared by the kernel_client tests."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from kernel_client.chain import ZERO_ADDRESS, ExecutionDetail
from kernel_client.errors import AccountReadError
from kernel_client.operation import UserOperation
from kernel_client.validators.signers import LocalAccountSigner

ACCOUNT_ADDRESS = "0x" + "ab" * 20
OWNER_KEY = "0x" + "11" * 32
SESSION_KEY = "0x" + "22" * 32


class StubReader:
    def __init__(
        self,
        *,
        default_validator: str = ZERO_ADDRESS,
        execution_validator: str = ZERO_ADDRESS,
        nonce: int = 7,
        initialized: bool = False,
        fail: bool = False,
        fail_initialized: bool = False,
    ) -> None:
        self.default_validator = default_validator
        self.execution_validator = execution_validator
        self.nonce = nonce
        self.initialized = initialized
        self.fail = fail
        self.fail_initialized = fail_initialized
        self.nonce_calls = 0

    async def get_default_validator(self, account: str) -> str:
        await asyncio.sleep(0)
        if self.fail:
            raise AccountReadError(f"{account} is not deployed")
        return self.default_validator

    async def get_execution(self, account: str, selector: str) -> ExecutionDetail:
        await asyncio.sleep(0)
        if self.fail:
            raise AccountReadError(f"{account} is not deployed")
        return ExecutionDetail(valid_until=0, valid_after=0, executor=ZERO_ADDRESS, validator=self.execution_validator)

    async def get_nonce(self, account: str, key: int = 0) -> int:
        self.nonce_calls += 1
        return self.nonce

    async def is_plugin_initialized(self, account: str, plugin: str) -> bool:
        await asyncio.sleep(0)
        if self.fail_initialized:
            raise AccountReadError(f"isInitialized reverted for {plugin}")
        return self.initialized


class StubBundler:
    url = "stub://bundler"

    def __init__(self, responses: Optional[List[Any]] = None, fee: Tuple[int, int] = (1000, 100)) -> None:
        self.responses = list(responses or [])
        self.fee = fee
        self.sent: List[Dict[str, Any]] = []
        self.fee_calls = 0
        self.estimates = 0

    async def send_user_operation(self, user_op: Dict[str, Any]) -> str:
        self.sent.append(user_op)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return "0x" + "cd" * 32

    async def estimate_user_operation_gas(self, user_op: Dict[str, Any]) -> Dict[str, Any]:
        self.estimates += 1
        return {"callGasLimit": "0x5208", "verificationGasLimit": "0x186a0", "preVerificationGas": "0xc350"}

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[Dict[str, Any]]:
        return None

    async def get_fee_data(self) -> Tuple[int, int]:
        self.fee_calls += 1
        return self.fee


class CountingSigner:
    """Wraps a local signer and counts every signature it hands out."""

    def __init__(self, private_key: str) -> None:
        self._inner = LocalAccountSigner(private_key)
        self.calls = 0

    @property
    def address(self) -> str:
        return self._inner.address

    async def sign_message(self, message: bytes) -> bytes:
        self.calls += 1
        return await self._inner.sign_message(message)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        self.calls += 1
        return await self._inner.sign_typed_data(typed_data)


def complete_user_operation(**overrides: Any) -> UserOperation:
    values: Dict[str, Any] = {
        "sender": ACCOUNT_ADDRESS,
        "nonce": 3,
        "init_code": "0x",
        "call_data": "0xb61d27f6" + "00" * 32,
        "call_gas_limit": 21000,
        "verification_gas_limit": 100000,
        "pre_verification_gas": 50000,
        "max_fee_per_gas": 1000,
        "max_priority_fee_per_gas": 100,
        "paymaster_and_data": "0x",
    }
    values.update(overrides)
    return UserOperation(**values)
