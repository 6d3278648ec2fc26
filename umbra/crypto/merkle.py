"""
Binary Merkle tree over canonical transaction strings.

Leaves are hashed with SHA-256 and the tree is padded to a power of two by
duplicating the last leaf. Node values are lowercase hex digests; a parent is
sha256 of the two child hex strings concatenated.

Two combine rules exist:
- POSITIONAL: sha256(left || right). Default for new bundles.
- SORTED: the pair is sorted before hashing, so order does not matter.
  Kept so bundles created under the older rule still verify.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from umbra.crypto.hash import sha256_hex


class MerkleCombine(str, Enum):
    POSITIONAL = "positional"
    SORTED = "sorted"


# Root of a tree with no leaves
EMPTY_ROOT = sha256_hex("empty")


def is_power_of_two(n: int) -> bool:
    """Check if n is a power of 2."""
    return n > 0 and (n & (n - 1)) == 0


def hash_leaf(data: str) -> str:
    return sha256_hex(data)


def hash_pair(left: str, right: str, mode: MerkleCombine = MerkleCombine.POSITIONAL) -> str:
    """Hash two sibling nodes into their parent."""
    if mode == MerkleCombine.SORTED and right < left:
        left, right = right, left
    return sha256_hex(left + right)


@dataclass
class MerkleProof:
    """
    Merkle inclusion proof.

    indices[i] == 0 means path[i] sits on the left of the running hash,
    1 means it sits on the right.
    """
    leaf: str
    path: List[str]
    indices: List[int]
    root: str
    combine: MerkleCombine = MerkleCombine.POSITIONAL

    def compute_root(self) -> str:
        current = self.leaf
        for sibling, index in zip(self.path, self.indices):
            if index == 0:
                current = hash_pair(sibling, current, self.combine)
            else:
                current = hash_pair(current, sibling, self.combine)
        return current

    def verify(self) -> bool:
        """
        Recompute the root from the leaf and compare it with the recorded root.

        Returns:
            True if proof is valid
        """
        if len(self.path) != len(self.indices):
            return False
        if any(index not in (0, 1) for index in self.indices):
            return False
        return self.compute_root() == self.root

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leaf": self.leaf,
            "path": list(self.path),
            "indices": list(self.indices),
            "root": self.root,
            "combine": self.combine.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MerkleProof":
        return cls(
            leaf=data["leaf"],
            path=list(data["path"]),
            indices=[int(i) for i in data["indices"]],
            root=data["root"],
            combine=MerkleCombine(data.get("combine", MerkleCombine.POSITIONAL.value)),
        )


class MerkleTree:
    """
    Complete Merkle tree with proof generation.
    """

    def __init__(self, leaves: Sequence[str], combine: MerkleCombine = MerkleCombine.POSITIONAL):
        """
        Build a Merkle tree from canonical leaf strings.

        Args:
            leaves: Leaf data (hashed here, not by the caller)
            combine: Sibling combine rule
        """
        self.combine = MerkleCombine(combine)
        self._leaf_count = len(leaves)
        self._layers: List[List[str]] = []

        if not leaves:
            self._layers = [[]]
            self._root = EMPTY_ROOT
            return

        padded = list(leaves)
        while not is_power_of_two(len(padded)):
            padded.append(padded[-1])

        current = [hash_leaf(leaf) for leaf in padded]
        self._layers.append(current)

        while len(current) > 1:
            next_layer = []
            for i in range(0, len(current), 2):
                next_layer.append(hash_pair(current[i], current[i + 1], self.combine))
            self._layers.append(next_layer)
            current = next_layer

        self._root = current[0]

    @property
    def root(self) -> str:
        return self._root

    @property
    def layers(self) -> List[List[str]]:
        return [list(layer) for layer in self._layers]

    @property
    def leaf_count(self) -> int:
        """Return the original number of leaves (before padding)."""
        return self._leaf_count

    @property
    def height(self) -> int:
        return len(self._layers)

    def get_proof(self, index: int) -> Optional[MerkleProof]:
        """
        Generate a Merkle proof for the leaf at the given index.

        Args:
            index: Index of the leaf (0-based, in original list)

        Returns:
            MerkleProof if index is valid, None otherwise
        """
        if index < 0 or index >= self._leaf_count:
            return None

        path = []
        indices = []
        current_index = index

        for layer in self._layers[:-1]:
            if current_index % 2 == 1:
                path.append(layer[current_index - 1])
                indices.append(0)
            else:
                path.append(layer[current_index + 1])
                indices.append(1)
            current_index //= 2

        return MerkleProof(
            leaf=self._layers[0][index],
            path=path,
            indices=indices,
            root=self._root,
            combine=self.combine,
        )
