"""Sorted-pair keccak Merkle tree over per-chain commitments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

from web3 import Web3


def hash_pair(left: bytes, right: bytes) -> bytes:
    if right < left:
        left, right = right, left
    return bytes(Web3.keccak(left + right))


def verify_proof(leaf: bytes, proof: Sequence[bytes], root: bytes) -> bool:
    node = leaf
    for sibling in proof:
        node = hash_pair(node, sibling)
    return node == root


@dataclass(frozen=True)
class MerkleAggregate:
    """Merkle tree whose root only depends on the multiset of leaves.

    Leaves are sorted before the tree is built and every pair is hashed in
    sorted order; an unpaired node is carried up to the next level unchanged.
    ``leaves`` keeps the caller's order so proofs can be looked up by index.
    """

    leaves: List[bytes]
    layers: List[List[bytes]]
    positions: Dict[int, int]

    @classmethod
    def build(cls, leaves: Sequence[bytes]) -> "MerkleAggregate":
        if not leaves:
            raise ValueError("cannot build a merkle tree without leaves")
        for leaf in leaves:
            if len(leaf) != 32:
                raise ValueError("merkle leaves must be 32-byte digests")
        ordered = sorted(range(len(leaves)), key=lambda index: leaves[index])
        positions = {index: position for position, index in enumerate(ordered)}
        layer = [bytes(leaves[index]) for index in ordered]
        layers = [layer]
        while len(layer) > 1:
            layer = [
                hash_pair(layer[i], layer[i + 1]) if i + 1 < len(layer) else layer[i]
                for i in range(0, len(layer), 2)
            ]
            layers.append(layer)
        return cls(leaves=[bytes(leaf) for leaf in leaves], layers=layers, positions=positions)

    @property
    def root(self) -> bytes:
        return self.layers[-1][0]

    def proof(self, index: int) -> List[bytes]:
        """Sibling digests, leaf to root, for ``leaves[index]``."""

        position = self.positions[index]
        proof: List[bytes] = []
        for layer in self.layers[:-1]:
            sibling = position ^ 1
            if sibling < len(layer):
                proof.append(layer[sibling])
            position //= 2
        return proof

    def proofs(self) -> List[List[bytes]]:
        return [self.proof(index) for index in range(len(self.leaves))]
