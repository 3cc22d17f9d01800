"""Fee-escalation retry bookkeeping and bundler rejection classification."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ..config import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_INTERVAL_SECONDS
from ..errors import BundlerRejectedError, ConfigurationError
from .bundler import BundlerError

_REPLACEMENT_FEE_MESSAGE = "replacement op must increase maxFeePerGas and MaxPriorityFeePerGas"
_REPLACEMENT_UNDERPRICED = re.compile(r"replacement.*underpriced")
_FAILED_OP = re.compile(r"FailedOp\((.*)\)")


def bump_fee(value: int, numerator: int = 113, denominator: int = 100) -> int:
    """Integer fee escalation: ``floor(value * numerator / denominator)``."""

    return value * numerator // denominator


@dataclass
class RetryState:
    """Retry budget for one submit cycle; the nonce is never part of it."""

    max_retries: int = DEFAULT_MAX_RETRIES
    interval: float = DEFAULT_RETRY_INTERVAL_SECONDS
    fee_numerator: int = 113
    fee_denominator: int = 100
    attempt: int = 0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be non-negative")
        if self.interval < 0:
            raise ConfigurationError("retry interval must be non-negative")
        if self.fee_denominator <= 0 or self.fee_numerator < self.fee_denominator:
            raise ConfigurationError("fee multiplier must be at least 1")

    def can_retry(self) -> bool:
        return self.attempt < self.max_retries

    def escalate(self, max_fee_per_gas: int, max_priority_fee_per_gas: int) -> Tuple[int, int]:
        """Consume one retry and return the escalated fee pair."""

        self.attempt += 1
        return (
            bump_fee(max_fee_per_gas, self.fee_numerator, self.fee_denominator),
            bump_fee(max_priority_fee_per_gas, self.fee_numerator, self.fee_denominator),
        )


def rejection_message(error: BaseException) -> Optional[str]:
    """Message of the bundler's structured rejection, if the error carries one."""

    if isinstance(error, BundlerError):
        return error.rpc_message
    return None


def is_retryable(error: BaseException) -> bool:
    message = rejection_message(error)
    if message is None:
        return False
    return _REPLACEMENT_FEE_MESSAGE in message or _REPLACEMENT_UNDERPRICED.search(message) is not None


def unwrap_error(error: Exception) -> Exception:
    """Turn a bundler rejection into a descriptive :class:`BundlerRejectedError`.

    ``FailedOp(index, paymaster, reason)`` revert strings are split on commas
    to surface the paymaster and reason. Errors without a structured rejection
    are returned unchanged.
    """

    message = rejection_message(error)
    if message is None:
        return error
    reason = message
    paymaster: Optional[str] = None
    paymaster_info = ""
    if "FailedOp" in message:
        matched = _FAILED_OP.search(message)
        if matched is not None:
            parts = matched.group(1).split(",")
            if len(parts) >= 3:
                paymaster = parts[1].strip()
                reason = ",".join(parts[2:]).strip().strip('"')
                paymaster_info = f" (paymaster address: {paymaster})"
    return BundlerRejectedError(
        f"The bundler has failed to include UserOperation in a batch: {reason}{paymaster_info}",
        reason=reason,
        paymaster=paymaster,
    )
