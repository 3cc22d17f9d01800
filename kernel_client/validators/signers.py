"""Signer interfaces used by validators and the multi-chain authority."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Protocol, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct, encode_typed_data
from web3 import Web3


class Signer(Protocol):
    """Credential authority capable of EIP-191 and EIP-712 signatures."""

    @property
    def address(self) -> str:  # pragma: no cover - protocol
        """Checksummed address recovered from this signer's signatures."""

    async def sign_message(self, message: bytes) -> bytes:  # pragma: no cover - protocol
        """Sign ``message`` as an EIP-191 personal message and return 65 bytes."""

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:  # pragma: no cover - protocol
        """Sign a full EIP-712 payload (``types``/``domain``/``primaryType``/``message``)."""


class LocalAccountSigner:
    """Signer backed by an in-process eth-account private key."""

    def __init__(self, private_key: Union[str, bytes]) -> None:
        self._account = Account.from_key(private_key)

    @classmethod
    def random(cls) -> "LocalAccountSigner":
        return cls(Account.create().key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_message(self, message: bytes) -> bytes:
        signed = self._account.sign_message(encode_defunct(primitive=message))
        # mimic async interface
        await asyncio.sleep(0)
        return bytes(signed.signature)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signed = self._account.sign_message(encode_typed_data(full_message=typed_data))
        await asyncio.sleep(0)
        return bytes(signed.signature)


def hash_signable(message: SignableMessage) -> bytes:
    return bytes(Web3.keccak(b"\x19" + message.version + message.header + message.body))


def hash_message(message: bytes) -> bytes:
    """EIP-191 digest of a raw byte message (viem ``hashMessage({raw})``)."""

    return hash_signable(encode_defunct(primitive=message))


def hash_typed_data(typed_data: Dict[str, Any]) -> bytes:
    """EIP-712 digest ``keccak(0x1901 || domainSeparator || structHash)``."""

    return hash_signable(encode_typed_data(full_message=typed_data))
