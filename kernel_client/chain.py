"""On-chain reads against Kernel accounts, the EntryPoint and validator plugins."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol

from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from .errors import AccountReadError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

KERNEL_ACCOUNT_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "getDefaultValidator",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "name": "getExecution",
        "stateMutability": "view",
        "inputs": [{"name": "_selector", "type": "bytes4"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "validUntil", "type": "uint48"},
                    {"name": "validAfter", "type": "uint48"},
                    {"name": "executor", "type": "address"},
                    {"name": "validator", "type": "address"},
                ],
            }
        ],
    },
]

ENTRY_POINT_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "getNonce",
        "stateMutability": "view",
        "inputs": [
            {"name": "sender", "type": "address"},
            {"name": "key", "type": "uint192"},
        ],
        "outputs": [{"name": "nonce", "type": "uint256"}],
    }
]

PLUGIN_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "isInitialized",
        "stateMutability": "view",
        "inputs": [{"name": "smartAccount", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
    }
]


@dataclass(frozen=True)
class ExecutionDetail:
    """Executor/validator pair registered on the account for one selector."""

    valid_until: int
    valid_after: int
    executor: str
    validator: str


class AccountReader(Protocol):
    """Read-only view of the account state needed to pick a validator mode."""

    async def get_default_validator(self, account: str) -> str:  # pragma: no cover - protocol
        ...

    async def get_execution(self, account: str, selector: str) -> ExecutionDetail:  # pragma: no cover - protocol
        ...

    async def get_nonce(self, account: str, key: int = 0) -> int:  # pragma: no cover - protocol
        ...

    async def is_plugin_initialized(self, account: str, plugin: str) -> bool:  # pragma: no cover - protocol
        ...


_READ_ERRORS = (Web3Exception, ValueError, OSError, asyncio.TimeoutError)


class Web3AccountReader:
    """:class:`AccountReader` backed by an ``AsyncWeb3`` instance."""

    def __init__(self, web3: AsyncWeb3, *, entry_point: str) -> None:
        self._web3 = web3
        self._entry_point = AsyncWeb3.to_checksum_address(entry_point)

    @classmethod
    def from_rpc_url(cls, rpc_url: str, *, entry_point: str) -> "Web3AccountReader":
        return cls(AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url)), entry_point=entry_point)

    def _contract(self, address: str, abi: List[Dict[str, Any]]) -> Any:
        return self._web3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)

    async def get_default_validator(self, account: str) -> str:
        contract = self._contract(account, KERNEL_ACCOUNT_ABI)
        try:
            return await contract.functions.getDefaultValidator().call()
        except _READ_ERRORS as exc:
            raise AccountReadError(f"getDefaultValidator failed for {account}: {exc}") from exc

    async def get_execution(self, account: str, selector: str) -> ExecutionDetail:
        contract = self._contract(account, KERNEL_ACCOUNT_ABI)
        try:
            valid_until, valid_after, executor, validator = await contract.functions.getExecution(
                bytes.fromhex(selector[2:])
            ).call()
        except _READ_ERRORS as exc:
            raise AccountReadError(f"getExecution({selector}) failed for {account}: {exc}") from exc
        return ExecutionDetail(
            valid_until=valid_until,
            valid_after=valid_after,
            executor=executor,
            validator=validator,
        )

    async def get_nonce(self, account: str, key: int = 0) -> int:
        contract = self._contract(self._entry_point, ENTRY_POINT_ABI)
        try:
            return await contract.functions.getNonce(AsyncWeb3.to_checksum_address(account), key).call()
        except _READ_ERRORS as exc:
            raise AccountReadError(f"getNonce failed for {account}: {exc}") from exc

    async def is_plugin_initialized(self, account: str, plugin: str) -> bool:
        contract = self._contract(plugin, PLUGIN_ABI)
        try:
            return bool(await contract.functions.isInitialized(AsyncWeb3.to_checksum_address(account)).call())
        except _READ_ERRORS as exc:
            raise AccountReadError(f"isInitialized failed for plugin {plugin}: {exc}") from exc
