"""
Read side of the indexer.

Everything here is served from the in-memory current whitelist, the stored
snapshot rows and the per-epoch artifacts. Nothing waits for a build.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from idenawl.core.address import normalize_address
from idenawl.core.eligibility import (
    MIN_STAKE,
    Reason,
    eligibility_reason,
    is_eligible,
    next_epoch_hint,
    predict_next_epoch,
)
from idenawl.core.merkle import MerkleTree, ProofStep
from idenawl.errors import Inconsistent, NotFound
from idenawl.indexer.cache import CurrentWhitelist
from idenawl.sources.adapter import IdentityDataSource
from idenawl.store.artifacts import WhitelistArtifacts
from idenawl.store.snapshots import EpochRootInfo, SnapshotRecord, SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WhitelistView:
    epoch: int
    merkle_root: str
    addresses: Tuple[str, ...]


@dataclass(frozen=True)
class EligibilityCheck:
    address: str
    epoch: int
    eligible: bool
    reason: Reason
    record: Optional[SnapshotRecord] = None


@dataclass(frozen=True)
class ProofResult:
    address: str
    epoch: int
    merkle_root: str
    proof: List[ProofStep]


@dataclass(frozen=True)
class Prediction:
    address: str
    epoch: int
    eligible_now: bool
    state: str
    stake: Decimal
    hint: str
    prediction: str


class WhitelistService:
    def __init__(
        self,
        cache: CurrentWhitelist,
        store: SnapshotStore,
        artifacts: WhitelistArtifacts,
        sources: Optional[IdentityDataSource] = None,
        *,
        min_stake: Decimal = MIN_STAKE,
    ) -> None:
        self.cache = cache
        self.store = store
        self.artifacts = artifacts
        self.sources = sources
        self.min_stake = Decimal(min_stake)
        self._tree_lock = threading.Lock()
        self._tree: Optional[Tuple[int, str, MerkleTree]] = None

    # --- whitelists ---

    def current(self) -> WhitelistView:
        st = self.cache.get()
        if st is None:
            raise NotFound("no whitelist has been built yet")
        return WhitelistView(epoch=st.epoch, merkle_root=st.merkle_root, addresses=st.addresses)

    def for_epoch(self, epoch: int) -> WhitelistView:
        st = self.cache.get()
        if st is not None and st.epoch == int(epoch):
            return WhitelistView(epoch=st.epoch, merkle_root=st.merkle_root, addresses=st.addresses)
        art = self.artifacts.read(epoch)
        return WhitelistView(epoch=art.epoch, merkle_root=art.merkle_root, addresses=tuple(art.addresses))

    def _view(self, epoch: Optional[int]) -> WhitelistView:
        return self.current() if epoch is None else self.for_epoch(epoch)

    def merkle_root(self, epoch: Optional[int] = None) -> Tuple[int, str]:
        v = self._view(epoch)
        return v.epoch, v.merkle_root

    def _tree_for(self, view: WhitelistView) -> MerkleTree:
        with self._tree_lock:
            if self._tree is not None and self._tree[0] == view.epoch and self._tree[1] == view.merkle_root:
                return self._tree[2]
        tree = MerkleTree(view.addresses)
        if tree.root != view.merkle_root:
            raise Inconsistent(f"epoch {view.epoch}: address list does not reproduce the published root")
        with self._tree_lock:
            self._tree = (view.epoch, view.merkle_root, tree)
        return tree

    def merkle_proof(self, address: str, epoch: Optional[int] = None) -> ProofResult:
        addr = normalize_address(address)
        view = self._view(epoch)
        steps, found = self._tree_for(view).proof(addr)
        if not found:
            raise NotFound(f"{addr} is not in the whitelist for epoch {view.epoch}")
        return ProofResult(address=addr, epoch=view.epoch, merkle_root=view.merkle_root, proof=steps)

    def epochs(self, limit: int = 20) -> List[EpochRootInfo]:
        return self.store.list_epochs(limit=limit)

    # --- eligibility ---

    def _resolve_epoch(self, epoch: Optional[int]) -> int:
        if epoch is not None:
            return int(epoch)
        return self.current().epoch

    def _threshold(self, epoch: int) -> Decimal:
        st = self.cache.get()
        if st is not None and st.epoch == epoch:
            return st.threshold
        root = self.store.get_root(epoch)
        if root is None:
            raise NotFound(f"no whitelist for epoch {epoch}")
        return root.threshold

    def check(self, address: str, epoch: Optional[int] = None) -> EligibilityCheck:
        addr = normalize_address(address)
        e = self._resolve_epoch(epoch)
        threshold = self._threshold(e)
        rec = self.store.get(e, addr)
        if rec is None:
            return EligibilityCheck(address=addr, epoch=e, eligible=False, reason="not-in-snapshot")
        reason = eligibility_reason(
            rec.state, rec.stake, rec.penalized, rec.flip_reported, threshold, fixed_minimum=self.min_stake
        )
        return EligibilityCheck(address=addr, epoch=e, eligible=reason == "ok", reason=reason, record=rec)

    def evaluate_eligibility(self, address: str, epoch: Optional[int] = None) -> Tuple[bool, Reason]:
        c = self.check(address, epoch)
        return c.eligible, c.reason

    def predict(self, address: str) -> Prediction:
        """Compare the current snapshot with the identity's live state."""
        if self.sources is None:
            raise NotFound("live lookups are not configured")
        addr = normalize_address(address)
        view = self.current()
        threshold = self._threshold(view.epoch)

        rec = self.store.get(view.epoch, addr)
        eligible_now = rec is not None and is_eligible(
            rec.state, rec.stake, rec.penalized, rec.flip_reported, threshold, fixed_minimum=self.min_stake
        )

        try:
            state, stake = self.sources.fetch_live(addr)
        except NotFound:
            state, stake = "", Decimal(0)

        return Prediction(
            address=addr,
            epoch=view.epoch,
            eligible_now=eligible_now,
            state=state,
            stake=stake,
            hint=next_epoch_hint(state, stake, threshold, fixed_minimum=self.min_stake),
            prediction=predict_next_epoch(eligible_now, state, stake, threshold, fixed_minimum=self.min_stake),
        )
