"""Multi-chain batches approved by one authority signature."""

from .aggregator import OperationIntent, prepare_and_sign_user_operations
from .merkle import MerkleAggregate, hash_pair, verify_proof
from .plugins import Action, PluginManager

__all__ = [
    "Action",
    "MerkleAggregate",
    "OperationIntent",
    "PluginManager",
    "hash_pair",
    "prepare_and_sign_user_operations",
    "verify_proof",
]
