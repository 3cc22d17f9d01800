"""Client for Kernel smart accounts on an ERC-4337 EntryPoint."""

from .aa import BundlerClient, FallbackBundlerClient, KernelAccount, KernelProvider, PaymasterClient
from .chain import AccountReader, Web3AccountReader
from .config import ProviderConfig, load_chain_configs, load_config
from .multichain import OperationIntent, PluginManager, prepare_and_sign_user_operations
from .operation import Call, OperationKind, UserOperation, UserOperationOverrides
from .validators import (
    ECDSAValidator,
    ERC165SessionKeyValidator,
    KillSwitchValidator,
    LocalAccountSigner,
    SocialRecoveryValidator,
)

__all__ = [
    "AccountReader",
    "BundlerClient",
    "Call",
    "ECDSAValidator",
    "ERC165SessionKeyValidator",
    "FallbackBundlerClient",
    "KernelAccount",
    "KernelProvider",
    "KillSwitchValidator",
    "LocalAccountSigner",
    "OperationIntent",
    "OperationKind",
    "PaymasterClient",
    "PluginManager",
    "ProviderConfig",
    "SocialRecoveryValidator",
    "UserOperation",
    "UserOperationOverrides",
    "Web3AccountReader",
    "load_chain_configs",
    "load_config",
    "prepare_and_sign_user_operations",
]
