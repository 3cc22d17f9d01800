"""Client for ERC-4337 paymaster sponsorship services."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import httpx

from ..errors import KernelClientError

# paymaster address + validUntil/validAfter words + 65-byte signature: worst-case sized
DUMMY_PAYMASTER_AND_DATA = (
    "0xfe7dbcab8aaee4eb67943c1e6be95b1d065985c6"
    "000000000000000000000000000000000000000000000000000001869aa31cf4"
    "0000000000000000000000000000000000000000000000000000000000000000"
    "7dfe2190f34af27b265bae608717cdc9368b471fc0c097ab7b4088f255b4961e"
    "57b039e7e571b15221081c5dce7bcb93459b27a3ab65d2f8a889f4a40b4022801b"
)


class PaymasterError(KernelClientError):
    """Raised when the paymaster rejects a sponsorship request."""

    def __init__(self, message: str, *, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class PaymasterClient:
    """Requests ``paymasterAndData`` for a fully estimated user operation."""

    def __init__(
        self,
        url: str,
        *,
        entry_point: str,
        api_key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        context: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._entry_point = entry_point
        self._api_key = api_key
        self._headers = headers or {}
        self._timeout = timeout
        self._base_context = context or {}
        self._transport = transport

    async def sponsor_user_operation(
        self,
        user_op: Dict[str, Any],
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload_context = {**self._base_context, **(context or {})}
        request_payload = {
            "userOperation": user_op,
            "entryPoint": self._entry_point,
            "context": payload_context,
        }
        headers = dict(self._headers)
        if self._api_key:
            headers.setdefault("Authorization", f"Bearer {self._api_key}")
        url = self._url.rstrip("/") + "/v1/sponsor"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=headers,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=request_payload)
        except httpx.HTTPError as exc:
            raise PaymasterError(f"Paymaster request failed: {exc}") from exc
        if response.status_code == 403:
            try:
                detail = response.json().get("detail")
            except json.JSONDecodeError:
                detail = "paymaster rejected request"
            raise PaymasterError(str(detail), code=403)
        if response.status_code >= 400:
            raise PaymasterError(f"Paymaster HTTP {response.status_code}", code=response.status_code)
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise PaymasterError("Invalid paymaster response") from exc
        if not isinstance(data, dict) or not isinstance(data.get("paymasterAndData"), str):
            raise PaymasterError("Paymaster returned an invalid sponsorship payload")
        return data
