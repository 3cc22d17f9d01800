"""Prepare and sign one user operation per chain under a single authority signature.

Three flows are supported, picked per batch:

* the regular validator is enabled on every chain: each operation is signed
  directly by it;
* the regular validator is enabled on no chain: the sudo authority signs one
  Merkle root over every chain's ``ValidatorApproved`` digest, and each chain
  receives an enable frame carrying the root signature and its own proof;
* there is no regular validator: the sudo authority signs one Merkle root
  over the user operation hashes and each chain gets the root signature plus
  its proof as the final signature.

In the last flow the ABI-encoded ``(merkleData, signature)`` approval is
prefixed with the 4-byte ``SUDO`` mode tag, like every other signature this
client hands to a Kernel account. Verifiers expecting the bare approval
payload must strip those four bytes.

Validators shared between accounts are bound per chain, so each chain signs
its own ``chainId`` even when one credential serves the whole batch.

A batch where the regular validator is enabled on some chains only, or
where a plugin-state query fails, is rejected before anything is signed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..aa.account import KernelAccount
from ..aa.provider import KernelProvider
from ..errors import (
    AccountNotFoundError,
    BatchShapeError,
    ChainMismatchError,
    MissingAuthoritySignatureError,
    PluginStateInconsistentError,
    ValidatorNotConnectedError,
)
from ..operation import (
    CallData,
    OperationKind,
    UserOperation,
    UserOperationOverrides,
    to_hex,
    user_operation_hash,
)
from ..validators.codec import ValidatorMode, encode_merkle_approval, encode_mode_signature
from ..validators.signers import hash_message, hash_typed_data
from .merkle import MerkleAggregate
from .plugins import PluginManager

_EMPTY_DIGEST = b"\x00" * 32


@dataclass
class OperationIntent:
    """Call to run on ``chain_id``; ``account`` overrides the client's connected account."""

    chain_id: int
    data: CallData
    overrides: Optional[UserOperationOverrides] = None
    kind: OperationKind = OperationKind.CALL
    account: Optional[KernelAccount] = None


@dataclass
class _Entry:
    client: KernelProvider
    intent: OperationIntent
    account: KernelAccount
    plugins: PluginManager

    @property
    def chain_id(self) -> int:
        return self.intent.chain_id

    def draft(self, signature: bytes) -> UserOperation:
        return UserOperation(
            sender=self.account.address,
            init_code=self.account.init_code,
            call_data=self.account.encode_call_data(self.intent.data, self.intent.kind),
            signature=to_hex(signature),
        )

    async def prepare(self, signature: bytes) -> UserOperation:
        return await self.client.prepare_user_operation(
            self.draft(signature),
            self.intent.overrides,
            account=self.account,
            validator=self.plugins.active_validator,
        )


def _plugins_for(account: KernelAccount) -> PluginManager:
    if account.plugins is not None:
        return account.plugins
    if account.validator is None:
        raise ValidatorNotConnectedError()
    return PluginManager(sudo=account.validator)


def _resolve_entries(clients: Sequence[KernelProvider], intents: Sequence[OperationIntent]) -> List[_Entry]:
    if len(intents) < 2:
        raise BatchShapeError("multi-chain batches need at least two operations")
    if len(clients) != len(intents):
        raise BatchShapeError(
            f"got {len(clients)} clients for {len(intents)} operations; they must pair up one to one"
        )
    for index, (client, intent) in enumerate(zip(clients, intents)):
        if client.chain_id != intent.chain_id:
            raise ChainMismatchError(index, client.chain_id, intent.chain_id)

    entries = []
    for index, (client, intent) in enumerate(zip(clients, intents)):
        account = intent.account or client.account
        if account is None:
            raise AccountNotFoundError(index, chain_id=intent.chain_id)
        plugins = _plugins_for(account).for_chain(chain_id=intent.chain_id, reader=account.reader)
        entries.append(_Entry(client=client, intent=intent, account=account, plugins=plugins))
    return entries


async def _sign_root(plugins: PluginManager, root: bytes) -> bytes:
    signature = await plugins.sign_message(hash_message(root))
    if not signature:
        raise MissingAuthoritySignatureError("authority returned no signature for the merkle root")
    return signature


async def _enable_and_sign(entries: List[_Entry], log: logging.LoggerAdapter) -> List[UserOperation]:
    typed_data = await asyncio.gather(
        *(entry.plugins.get_plugins_enable_typed_data(entry.account.address) for entry in entries)
    )
    tree = MerkleAggregate.build([hash_typed_data(payload) for payload in typed_data])
    log.info("Signing enable approval root %s for %s chains", to_hex(tree.root), len(entries))
    root_signature = await _sign_root(entries[0].plugins, tree.root)

    enable_signatures = [
        encode_merkle_approval(tree.root, tree.proof(i), root_signature) for i in range(len(entries))
    ]
    enable_data = await asyncio.gather(*(entry.plugins.get_enable_data() for entry in entries))

    prepared = await asyncio.gather(
        *(
            entry.prepare(
                entry.plugins.encode_plugins_data(
                    enable_signature=enable_signatures[i],
                    user_op_signature=entry.plugins.get_stub_signature(),
                    enable_data=enable_data[i],
                )
            )
            for i, entry in enumerate(entries)
        )
    )
    signatures = await asyncio.gather(
        *(entry.plugins.sign_user_operation_with_active_validator(op) for entry, op in zip(entries, prepared))
    )
    for i, (entry, op) in enumerate(zip(entries, prepared)):
        op.signature = to_hex(
            entry.plugins.encode_plugins_data(
                enable_signature=enable_signatures[i],
                user_op_signature=signatures[i],
                enable_data=enable_data[i],
            )
        )
    return list(prepared)


async def _sign_directly(entries: List[_Entry]) -> List[UserOperation]:
    prepared = await asyncio.gather(
        *(
            entry.prepare(encode_mode_signature(ValidatorMode.PLUGIN, entry.plugins.get_stub_signature()))
            for entry in entries
        )
    )
    signatures = await asyncio.gather(
        *(entry.plugins.sign_user_operation_with_active_validator(op) for entry, op in zip(entries, prepared))
    )
    for op, signature in zip(prepared, signatures):
        op.signature = to_hex(encode_mode_signature(ValidatorMode.PLUGIN, signature))
    return list(prepared)


async def _sign_operation_root(entries: List[_Entry], log: logging.LoggerAdapter) -> List[UserOperation]:
    depth = (len(entries) - 1).bit_length()
    placeholder = encode_merkle_approval(
        _EMPTY_DIGEST,
        [_EMPTY_DIGEST] * depth,
        entries[0].plugins.get_stub_signature(),
    )
    prepared = await asyncio.gather(
        *(entry.prepare(encode_mode_signature(ValidatorMode.SUDO, placeholder)) for entry in entries)
    )
    hashes = [
        user_operation_hash(op, entry_point=entry.client.entry_point, chain_id=entry.chain_id)
        for entry, op in zip(entries, prepared)
    ]
    tree = MerkleAggregate.build(hashes)
    log.info("Signing user operation root %s for %s chains", to_hex(tree.root), len(entries))
    root_signature = await _sign_root(entries[0].plugins, tree.root)
    for i, op in enumerate(prepared):
        approval = encode_merkle_approval(tree.root, tree.proof(i), root_signature)
        op.signature = to_hex(encode_mode_signature(ValidatorMode.SUDO, approval))
    return list(prepared)


async def prepare_and_sign_user_operations(
    clients: Sequence[KernelProvider],
    intents: Sequence[OperationIntent],
    *,
    logger: Optional[logging.Logger] = None,
) -> List[UserOperation]:
    """Return one fully prepared and signed user operation per intent, in input order.

    Nothing is submitted. Every precondition (batch shape, chain pairing,
    account resolution, a consistent plugin state) is checked before the
    first signature is requested.
    """

    entries = _resolve_entries(clients, intents)
    log = logging.LoggerAdapter(
        logger or logging.getLogger(__name__),
        {"chain_ids": [entry.chain_id for entry in entries]},
    )

    if entries[0].plugins.regular is None:
        return await _sign_operation_root(entries, log)

    states = await asyncio.gather(
        *(entry.plugins.is_active(entry.account.address, entry.account.reader) for entry in entries)
    )
    if len(set(states)) > 1:
        raise PluginStateInconsistentError({entry.chain_id: state for entry, state in zip(entries, states)})
    if states[0]:
        log.info("Regular validator active on every chain; signing directly")
        return await _sign_directly(entries)
    log.info("Regular validator inactive on every chain; enabling with one approval")
    return await _enable_and_sign(entries, log)
