"""Single-chain account abstraction client: build, sign and submit user operations."""

from .account import KernelAccount
from .bundler import BundlerClient, BundlerError, BundlerOptions
from .fallback import FallbackBundlerClient
from .paymaster import PaymasterClient, PaymasterError
from .pipeline import OperationPipeline
from .provider import KernelProvider
from .retry import RetryState, bump_fee, is_retryable, unwrap_error

__all__ = [
    "BundlerClient",
    "BundlerError",
    "BundlerOptions",
    "FallbackBundlerClient",
    "KernelAccount",
    "KernelProvider",
    "OperationPipeline",
    "PaymasterClient",
    "PaymasterError",
    "RetryState",
    "bump_fee",
    "is_retryable",
    "unwrap_error",
]
