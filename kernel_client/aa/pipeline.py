"""Ordered enrichment stages that turn a draft into a signable user operation."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..errors import IncompleteOperationError
from ..operation import UserOperation
from ..validators.base import KernelValidator
from .bundler import Bundler
from .paymaster import DUMMY_PAYMASTER_AND_DATA, PaymasterClient

logger = logging.getLogger(__name__)

Middleware = Callable[[UserOperation], Awaitable[UserOperation]]
LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

_GAS_FIELDS = ("call_gas_limit", "verification_gas_limit", "pre_verification_gas")


class OperationPipeline:
    """Runs placeholder → fees → paymaster → gas → custom, strictly in sequence.

    Every stage receives the draft produced by the previous one and may change
    any field. Nothing is submitted here.
    """

    def __init__(
        self,
        *,
        bundler: Bundler,
        paymaster: Optional[PaymasterClient] = None,
        paymaster_context: Optional[Dict[str, Any]] = None,
        custom_middleware: Optional[Middleware] = None,
    ) -> None:
        self._bundler = bundler
        self._paymaster = paymaster
        self._paymaster_context = paymaster_context or {}
        self._custom_middleware = custom_middleware

    async def run(
        self,
        user_op: UserOperation,
        *,
        validator: KernelValidator,
        log: Optional[LoggerLike] = None,
    ) -> UserOperation:
        log = log or logger

        async def placeholders(draft: UserOperation) -> UserOperation:
            return await self.attach_placeholders(draft, validator)

        stages: tuple[tuple[str, Middleware], ...] = (
            ("placeholders", placeholders),
            ("fees", self.resolve_fees),
            ("paymaster", self.attach_paymaster_data),
            ("gas", self.estimate_gas),
            ("custom", self._custom_middleware or _no_op),
        )
        for name, stage in stages:
            user_op = await stage(user_op)
            log.debug("Pipeline stage %s complete", name)

        missing = user_op.missing_fields()
        if missing:
            raise IncompleteOperationError(missing, user_op.to_dict())
        return user_op

    async def attach_placeholders(self, user_op: UserOperation, validator: KernelValidator) -> UserOperation:
        if user_op.signature is None:
            user_op.signature = "0x" + (await validator.get_dummy_signature(user_op)).hex()
        if user_op.paymaster_and_data is None:
            user_op.paymaster_and_data = DUMMY_PAYMASTER_AND_DATA if self._paymaster else "0x"
        return user_op

    async def resolve_fees(self, user_op: UserOperation) -> UserOperation:
        if user_op.max_fee_per_gas is not None and user_op.max_priority_fee_per_gas is not None:
            return user_op
        max_fee, max_priority = await self._bundler.get_fee_data()
        if user_op.max_fee_per_gas is None:
            user_op.max_fee_per_gas = max_fee
        if user_op.max_priority_fee_per_gas is None:
            user_op.max_priority_fee_per_gas = max_priority
        return user_op

    async def attach_paymaster_data(self, user_op: UserOperation) -> UserOperation:
        if self._paymaster is None:
            return user_op
        sponsorship = await self._paymaster.sponsor_user_operation(
            user_op.to_rpc(),
            context=self._paymaster_context,
        )
        user_op.update_from_rpc(
            {
                key: sponsorship[key]
                for key in ("paymasterAndData", "callGasLimit", "verificationGasLimit", "preVerificationGas")
                if key in sponsorship
            }
        )
        return user_op

    async def estimate_gas(self, user_op: UserOperation) -> UserOperation:
        if all(getattr(user_op, name) is not None for name in _GAS_FIELDS):
            return user_op
        estimate = await self._bundler.estimate_user_operation_gas(user_op.to_rpc())
        user_op.update_from_rpc(
            {
                key: estimate[key]
                for key in ("callGasLimit", "verificationGasLimit", "preVerificationGas")
                if key in estimate
            }
        )
        return user_op


async def _no_op(user_op: UserOperation) -> UserOperation:
    return user_op
