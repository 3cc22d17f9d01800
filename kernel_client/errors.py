"""Error taxonomy shared by the single-chain and multi-chain clients."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional


class KernelClientError(RuntimeError):
    """Base class for every error raised by :mod:`kernel_client`."""


class ConfigurationError(KernelClientError):
    """Raised when required client configuration is missing or malformed."""


class PreconditionError(KernelClientError):
    """Raised before any network call when the request cannot be served."""


class AccountNotConnectedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("account not connected!")


class ValidatorNotConnectedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("validator not connected!")


class InvalidOperationKindError(PreconditionError):
    """Raised when the call shape cannot be combined with the operation kind."""

    def __init__(self, message: str = "delegate calls cannot be batched") -> None:
        super().__init__(message)


class IncompleteOperationError(PreconditionError):
    """Raised when the pipeline leaves required user operation fields unset."""

    def __init__(self, missing: list[str], dump: Dict[str, Any]) -> None:
        self.missing = list(missing)
        self.dump = dump
        super().__init__(
            "Request is missing parameters. All properties on UserOperation must be set. "
            f"missing: {', '.join(self.missing)} uo: {json.dumps(dump, indent=2, default=str)}"
        )


class ValidatorUninitializedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Validator uninitialized")


class ValidatorChainMismatchError(PreconditionError):
    def __init__(self, validator: str, bound_chain_id: int, chain_id: int) -> None:
        self.validator = validator
        self.bound_chain_id = bound_chain_id
        self.chain_id = chain_id
        super().__init__(
            f"validator {validator} is bound to chain {bound_chain_id} and cannot sign for chain {chain_id}"
        )


class MissingEnableSignatureError(PreconditionError):
    def __init__(self, validator: str) -> None:
        self.validator = validator
        super().__init__(f"enable mode reached for validator {validator} without an enable signature")


class MultiChainError(KernelClientError):
    """Raised when a multi-chain batch is aborted before any signature is produced."""

    def __init__(self, message: str, *, chain_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.chain_id = chain_id


class BatchShapeError(MultiChainError):
    """Raised for batches that are too small or whose clients and intents do not pair up."""


class ChainMismatchError(MultiChainError):
    def __init__(self, index: int, client_chain_id: Optional[int], intent_chain_id: int) -> None:
        super().__init__(
            f"Chain ID mismatch at index {index}: client.chainId ({client_chain_id}) "
            f"!== intent.chainId ({intent_chain_id})",
            chain_id=intent_chain_id,
        )
        self.index = index
        self.client_chain_id = client_chain_id


class AccountNotFoundError(MultiChainError):
    def __init__(self, index: int, chain_id: Optional[int] = None) -> None:
        super().__init__(f"no account resolved for operation at index {index}", chain_id=chain_id)
        self.index = index


class PluginStateInconsistentError(MultiChainError):
    def __init__(self, states: Dict[int, bool]) -> None:
        self.states = dict(states)
        enabled = sorted(chain for chain, flag in states.items() if flag)
        disabled = sorted(chain for chain, flag in states.items() if not flag)
        super().__init__(
            "Plugins must be either all enabled or all disabled across chains. "
            f"enabled on {enabled}, disabled on {disabled}"
        )


class MissingAuthoritySignatureError(MultiChainError):
    """Raised when the authority credential returns no signature for the Merkle root."""


class BundlerRejectedError(KernelClientError):
    """Bundler refused to include a user operation, with the parsed revert details."""

    def __init__(
        self,
        message: str,
        *,
        reason: Optional[str] = None,
        paymaster: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.paymaster = paymaster


class AccountReadError(KernelClientError):
    """Raised when an on-chain read against the account (or its plugins) fails."""
