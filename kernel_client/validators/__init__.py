"""Kernel validator plugins and the signature codec they share."""

from typing import Dict, Type

from .base import ENTRY_POINT_ADDRESS, KernelValidator, Validator
from .codec import EnableFrame, ValidatorMode
from .ecdsa import ECDSAValidator
from .kill_switch import KillSwitchValidator
from .session_key import ERC165SessionKeyValidator
from .signers import LocalAccountSigner, Signer
from .social_recovery import SocialRecoveryValidator

VALIDATORS: Dict[str, Type[KernelValidator]] = {
    "ECDSA": ECDSAValidator,
    "KILL_SWITCH": KillSwitchValidator,
    "ERC165_SESSION_KEY": ERC165SessionKeyValidator,
    "SOCIAL_RECOVERY": SocialRecoveryValidator,
}

__all__ = [
    "ECDSAValidator",
    "ENTRY_POINT_ADDRESS",
    "ERC165SessionKeyValidator",
    "EnableFrame",
    "KernelValidator",
    "KillSwitchValidator",
    "LocalAccountSigner",
    "Signer",
    "SocialRecoveryValidator",
    "VALIDATORS",
    "Validator",
    "ValidatorMode",
]
