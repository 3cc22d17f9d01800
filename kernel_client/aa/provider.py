"""Single-chain Kernel provider: builds, signs and submits user operations."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Dict, Optional, Tuple, Union

import httpx
from prometheus_client import CollectorRegistry, Counter, generate_latest

from ..config import ProviderConfig
from ..errors import AccountNotConnectedError, ValidatorNotConnectedError
from ..operation import (
    CallData,
    OperationKind,
    SendUserOperationResult,
    UserOperation,
    UserOperationOverrides,
    to_hex,
)
from ..validators.base import ENTRY_POINT_ADDRESS, KernelValidator
from .account import KernelAccount
from .bundler import Bundler, BundlerClient, BundlerError, BundlerOptions, wait_for_receipt
from .fallback import FallbackBundlerClient
from .paymaster import PaymasterClient
from .pipeline import Middleware, OperationPipeline
from .retry import RetryState, is_retryable, unwrap_error


class KernelProvider:
    """Coordinates the pipeline, the active validator and the bundler for one chain."""

    def __init__(
        self,
        *,
        chain_id: int,
        bundler: Bundler,
        entry_point: str = ENTRY_POINT_ADDRESS,
        account: Optional[KernelAccount] = None,
        paymaster: Optional[PaymasterClient] = None,
        paymaster_context: Optional[Dict[str, Any]] = None,
        custom_middleware: Optional[Middleware] = None,
        retry_policy: Optional[RetryState] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.chain_id = chain_id
        self.entry_point = entry_point
        self._bundler = bundler
        self._retry_policy = retry_policy or RetryState()
        self._logger = logger or logging.getLogger(__name__)
        self._pipeline = OperationPipeline(
            bundler=bundler,
            paymaster=paymaster,
            paymaster_context=paymaster_context,
            custom_middleware=custom_middleware,
        )
        self._metrics_registry = CollectorRegistry()
        self._submitted = Counter(
            "user_operations_submitted_total",
            "Count of user operations accepted by the bundler",
            registry=self._metrics_registry,
        )
        self._retries = Counter(
            "user_operation_retries_total",
            "Count of fee-escalated resubmissions",
            registry=self._metrics_registry,
        )
        self._failures = Counter(
            "user_operation_failures_total",
            "Count of user operations that were not accepted",
            labelnames=("reason",),
            registry=self._metrics_registry,
        )
        self.account: Optional[KernelAccount] = None
        if account is not None:
            self.connect(account)

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        *,
        account: Optional[KernelAccount] = None,
        custom_middleware: Optional[Middleware] = None,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "KernelProvider":
        clients = [
            BundlerClient(
                url,
                entry_point=config.entry_point,
                headers=config.bundler_headers,
                timeout=config.bundler_timeout,
                transport=transport,
            )
            for url in config.bundler_urls
        ]
        bundler: Bundler = clients[0] if len(clients) == 1 else FallbackBundlerClient(clients, logger=logger)
        paymaster: Optional[PaymasterClient] = None
        if config.paymaster_url:
            paymaster = PaymasterClient(
                config.paymaster_url,
                entry_point=config.entry_point,
                api_key=config.paymaster_api_key,
                transport=transport,
            )
        return cls(
            chain_id=config.chain_id,
            bundler=bundler,
            entry_point=config.entry_point,
            account=account,
            paymaster=paymaster,
            paymaster_context=config.paymaster_context,
            custom_middleware=custom_middleware,
            retry_policy=RetryState(
                max_retries=config.max_retries,
                interval=config.retry_interval_seconds,
            ),
            logger=logger,
        )

    @property
    def bundler(self) -> Bundler:
        return self._bundler

    def connect(self, account: KernelAccount) -> "KernelProvider":
        """Attach ``account`` and bind its validator to this chain."""

        self.account = account
        if account.validator is not None and account.validator.chain_id is None:
            account.validator.initialize(chain_id=self.chain_id, reader=account.reader)
        return self

    def get_account(self) -> KernelAccount:
        if self.account is None:
            raise AccountNotConnectedError()
        return self.account

    def _require_validator(self, account: KernelAccount) -> KernelValidator:
        if account.validator is None:
            raise ValidatorNotConnectedError()
        return account.validator.for_chain(chain_id=self.chain_id, reader=account.reader)

    def _call_log(self, account: KernelAccount) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(self._logger, {"chain_id": self.chain_id, "sender": account.address})

    async def prepare_user_operation(
        self,
        data: Union[CallData, UserOperation],
        overrides: Optional[UserOperationOverrides] = None,
        kind: OperationKind = OperationKind.CALL,
        *,
        account: Optional[KernelAccount] = None,
        validator: Optional[KernelValidator] = None,
    ) -> UserOperation:
        """Run the pipeline and return a complete, unsigned (placeholder-signed) draft.

        ``data`` may also be a partially filled :class:`UserOperation`; fields it
        already carries (a nonce, a pre-attached signature) are kept.
        """

        account = account or self.get_account()
        validator = validator or self._require_validator(account)
        if isinstance(data, UserOperation):
            draft = data.copy()
        else:
            draft = UserOperation(
                call_data=account.encode_call_data(data, kind),
                init_code=await account.get_init_code(),
            )
        if draft.sender is None:
            draft.sender = account.address
        if overrides is not None:
            if overrides.max_fee_per_gas is not None:
                draft.max_fee_per_gas = overrides.max_fee_per_gas
            if overrides.max_priority_fee_per_gas is not None:
                draft.max_priority_fee_per_gas = overrides.max_priority_fee_per_gas
        if draft.nonce is None:
            draft.nonce = await account.get_nonce()
        return await self._pipeline.run(draft, validator=validator, log=self._call_log(account))

    async def send_user_operation(
        self,
        data: CallData,
        overrides: Optional[UserOperationOverrides] = None,
        kind: OperationKind = OperationKind.CALL,
    ) -> SendUserOperationResult:
        """Build, sign and submit; resubmit with +13% fees while the bundler reports underpricing."""

        account = self.get_account()
        validator = self._require_validator(account)
        call_data = account.encode_call_data(data, kind)
        log = self._call_log(account)

        init_code = await account.get_init_code()
        nonce = await account.get_nonce()
        fees: Tuple[Optional[int], Optional[int]] = (
            overrides.max_fee_per_gas if overrides else None,
            overrides.max_priority_fee_per_gas if overrides else None,
        )
        state = dataclasses.replace(self._retry_policy, attempt=0)

        while True:
            draft = UserOperation(
                sender=account.address,
                nonce=nonce,
                init_code=init_code,
                call_data=call_data,
                max_fee_per_gas=fees[0],
                max_priority_fee_per_gas=fees[1],
            )
            request = await self._pipeline.run(draft, validator=validator, log=log)
            request.signature = to_hex(await validator.get_signature(request))
            try:
                user_op_hash = await self._bundler.send_user_operation(request.to_rpc())
            except BundlerError as exc:
                retryable = is_retryable(exc)
                if retryable and state.can_retry():
                    fees = state.escalate(request.max_fee_per_gas or 0, request.max_priority_fee_per_gas or 0)
                    self._retries.inc()
                    log.info(
                        "After %s seconds, resending user operation with increased gas fees: "
                        "maxFeePerGas=%s maxPriorityFeePerGas=%s (retry %s/%s)",
                        state.interval,
                        fees[0],
                        fees[1],
                        state.attempt,
                        state.max_retries,
                    )
                    await asyncio.sleep(state.interval)
                    continue
                self._failures.labels("retries_exhausted" if retryable else "rejected").inc()
                log.warning("Bundler rejected user operation: %s", exc)
                unwrapped = unwrap_error(exc)
                if unwrapped is exc:
                    raise
                raise unwrapped from exc
            self._submitted.inc()
            log.info("User operation %s accepted after %s retries", user_op_hash, state.attempt)
            return SendUserOperationResult(hash=user_op_hash, request=request)

    async def wait_for_user_operation_receipt(
        self,
        user_op_hash: str,
        *,
        options: Optional[BundlerOptions] = None,
    ) -> Optional[Dict[str, Any]]:
        return await wait_for_receipt(self._bundler, user_op_hash, options=options)

    def metrics(self) -> bytes:
        return generate_latest(self._metrics_registry)
