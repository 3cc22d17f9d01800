"""Lightweight JSON-RPC client for ERC-4337 bundlers."""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx

from ..errors import KernelClientError
from ..operation import int_from_quantity

_request_ids = itertools.count(1)


class BundlerError(KernelClientError):
    """Raised when the bundler RPC fails.

    ``rpc_message`` is the JSON-RPC error message when the bundler answered
    with a structured error; it is ``None`` for transport or HTTP failures.
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        rpc_message: Optional[str] = None,
        data: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.rpc_message = rpc_message
        self.data = data


@dataclass
class BundlerOptions:
    """Polling configuration when waiting for receipts."""

    poll_interval: float = 2.0
    timeout: float = 120.0


class Bundler(Protocol):
    """Fixed method set every bundler backend (and the failover wrapper) exposes."""

    url: str

    async def send_user_operation(self, user_op: Dict[str, Any]) -> str:  # pragma: no cover - protocol
        ...

    async def estimate_user_operation_gas(self, user_op: Dict[str, Any]) -> Dict[str, Any]:  # pragma: no cover - protocol
        ...

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[Dict[str, Any]]:  # pragma: no cover - protocol
        ...

    async def get_fee_data(self) -> Tuple[int, int]:  # pragma: no cover - protocol
        ...


class BundlerClient:
    """Minimal async JSON-RPC client for one bundler endpoint."""

    def __init__(
        self,
        url: str,
        *,
        entry_point: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self._entry_point = entry_point
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(_request_ids), "method": method, "params": params}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            raise BundlerError(f"Bundler request {method} failed: {exc}") from exc
        if response.status_code >= 400:
            raise BundlerError(
                f"Bundler responded with HTTP {response.status_code}",
                code=response.status_code,
            )
        data = response.json()
        if data.get("error") is not None:
            error = data["error"] or {}
            message = str(error.get("message") or "Bundler error")
            raise BundlerError(
                message,
                code=error.get("code"),
                rpc_message=message,
                data=error.get("data"),
            )
        return data.get("result")

    async def send_user_operation(self, user_op: Dict[str, Any]) -> str:
        """Submit a UserOperation to the bundler and return the resulting hash."""

        result = await self._rpc("eth_sendUserOperation", [user_op, self._entry_point])
        if not isinstance(result, str):
            raise BundlerError("Bundler returned an invalid userOp hash")
        return result

    async def estimate_user_operation_gas(self, user_op: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._rpc("eth_estimateUserOperationGas", [user_op, self._entry_point])
        if not isinstance(result, dict):
            raise BundlerError("Bundler returned an invalid gas estimate")
        return result

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[Dict[str, Any]]:
        """Return the on-chain receipt for the given user operation hash."""

        result = await self._rpc("eth_getUserOperationReceipt", [user_op_hash])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise BundlerError("Bundler returned an invalid receipt payload")
        return result

    async def get_fee_data(self) -> Tuple[int, int]:
        """Return ``(maxFeePerGas, maxPriorityFeePerGas)`` from the latest block."""

        priority = int_from_quantity(await self._rpc("eth_maxPriorityFeePerGas", []))
        block = await self._rpc("eth_getBlockByNumber", ["latest", False])
        if not isinstance(block, dict):
            raise BundlerError("Bundler returned an invalid block payload")
        base_fee = int_from_quantity(block.get("baseFeePerGas"))
        return base_fee + priority, priority


async def wait_for_receipt(
    bundler: Bundler,
    user_op_hash: str,
    *,
    options: Optional[BundlerOptions] = None,
) -> Optional[Dict[str, Any]]:
    """Poll the bundler until a receipt is available or timeout elapses."""

    opts = options or BundlerOptions()
    deadline = time.monotonic() + opts.timeout
    while True:
        receipt = await bundler.get_user_operation_receipt(user_op_hash)
        if receipt is not None:
            return receipt
        if time.monotonic() >= deadline:
            return None
        await asyncio.sleep(opts.poll_interval)
