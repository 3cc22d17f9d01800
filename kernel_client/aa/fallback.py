"""Sequential failover across several bundler endpoints."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from ..errors import ConfigurationError
from .bundler import Bundler

ErrorHook = Callable[[Exception, str], Awaitable[None]]


class FallbackBundlerClient:
    """Tries each backing bundler in order until one call succeeds.

    A backend that raises is logged, reported to ``on_error`` and skipped; the
    exception raised by the last backend propagates unchanged. Whatever a
    backend returns, ``None`` included, is treated as success.
    """

    def __init__(
        self,
        clients: Sequence[Bundler],
        *,
        on_error: Optional[ErrorHook] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not clients:
            raise ConfigurationError("FallbackBundlerClient needs at least one client")
        self._clients = list(clients)
        self._on_error = on_error
        self._logger = logger or logging.getLogger(__name__)

    @property
    def url(self) -> str:
        return self._clients[0].url

    async def _call(self, action: str, invoke: Callable[[Bundler], Awaitable[Any]]) -> Any:
        *fallbacks, last = self._clients
        for client in fallbacks:
            try:
                return await invoke(client)
            except Exception as exc:
                self._logger.warning(
                    "Action %s failed with client %s, trying next if available: %s",
                    action,
                    client.url,
                    exc,
                )
                if self._on_error is not None:
                    await self._on_error(exc, client.url)
        try:
            return await invoke(last)
        except Exception as exc:
            if self._on_error is not None:
                await self._on_error(exc, last.url)
            raise

    async def send_user_operation(self, user_op: Dict[str, Any]) -> str:
        return await self._call("send_user_operation", lambda client: client.send_user_operation(user_op))

    async def estimate_user_operation_gas(self, user_op: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            "estimate_user_operation_gas", lambda client: client.estimate_user_operation_gas(user_op)
        )

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[Dict[str, Any]]:
        return await self._call(
            "get_user_operation_receipt", lambda client: client.get_user_operation_receipt(user_op_hash)
        )

    async def get_fee_data(self) -> Tuple[int, int]:
        return await self._call("get_fee_data", lambda client: client.get_fee_data())
