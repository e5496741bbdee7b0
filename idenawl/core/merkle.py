"""
Binary SHA-256 Merkle tree over a whitelist of addresses.

Tree shape:
- leaves are sha256(lowercase address) over the sorted, deduplicated set
- each level pairs adjacent nodes left-to-right and hashes their concatenation
- an odd node at the end of a level is carried up unchanged (never duplicated)
- the root of an empty set is the empty string

Proofs list one step per level where the target has a sibling; levels where
the target's node is carried up contribute no step.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from idenawl.core.address import dedupe_sorted

EMPTY_ROOT = ""


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def leaf_hash(address: str) -> bytes:
    return _sha256(address.lower().encode("utf-8"))


def hash_pair(left: bytes, right: bytes) -> bytes:
    return _sha256(left + right)


@dataclass(frozen=True)
class ProofStep:
    hash: str
    # True when the sibling sits to the left of the running hash.
    left: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"hash": self.hash, "left": self.left}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ProofStep":
        return cls(hash=str(d["hash"]), left=bool(d["left"]))


class MerkleTree:
    def __init__(self, addresses: Iterable[str]):
        self.addresses: List[str] = dedupe_sorted(addresses)
        self._index = {a: i for i, a in enumerate(self.addresses)}
        self.levels: List[List[bytes]] = []

        level = [leaf_hash(a) for a in self.addresses]
        if not level:
            return
        self.levels.append(level)
        while len(level) > 1:
            nxt: List[bytes] = []
            for i in range(0, len(level), 2):
                if i + 1 == len(level):
                    nxt.append(level[i])
                else:
                    nxt.append(hash_pair(level[i], level[i + 1]))
            self.levels.append(nxt)
            level = nxt

    @property
    def root(self) -> str:
        if not self.levels:
            return EMPTY_ROOT
        return self.levels[-1][0].hex()

    def __contains__(self, address: str) -> bool:
        return address.lower() in self._index

    def __len__(self) -> int:
        return len(self.addresses)

    def proof(self, address: str) -> Tuple[List[ProofStep], bool]:
        idx: Optional[int] = self._index.get(address.strip().lower())
        if idx is None:
            return [], False

        steps: List[ProofStep] = []
        pos = idx
        for level in self.levels[:-1]:
            if pos % 2 == 1:
                steps.append(ProofStep(hash=level[pos - 1].hex(), left=True))
            elif pos + 1 < len(level):
                steps.append(ProofStep(hash=level[pos + 1].hex(), left=False))
            # else: carried up unchanged, nothing to prove at this level
            pos //= 2
        return steps, True


def build_root(addresses: Iterable[str]) -> str:
    return MerkleTree(addresses).root


def build_proof(addresses: Iterable[str], target: str) -> Tuple[List[ProofStep], bool]:
    return MerkleTree(addresses).proof(target)


def verify_proof(address: str, proof: Sequence[ProofStep], root: str) -> bool:
    """Fold the proof into the leaf hash and compare with `root`. Never raises."""
    if not isinstance(address, str) or not isinstance(root, str):
        return False
    cur = leaf_hash(address)
    for step in proof:
        try:
            sibling = bytes.fromhex(step.hash)
        except (TypeError, ValueError):
            return False
        cur = hash_pair(sibling, cur) if step.left else hash_pair(cur, sibling)
    return cur.hex() == root.strip().lower()
