from __future__ import annotations

import logging
import threading
import time
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from idenawl.core.eligibility import MIN_STAKE, is_eligible
from idenawl.core.merkle import build_root
from idenawl.errors import Inconsistent, NotFound, SourceUnavailable, WhitelistError
from idenawl.indexer.cache import CurrentWhitelist, WhitelistState
from idenawl.sources.adapter import IdentityDataSource, IdentityRecord
from idenawl.sources.discovery import AddressDiscovery
from idenawl.sources.roster import load_roster
from idenawl.store.artifacts import WhitelistArtifacts
from idenawl.store.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    READY = "ready"


class EpochOrchestrator:
    """
    Watches the network epoch and builds one whitelist per transition.

    Runs on a single background thread. A failed build leaves the served
    whitelist and the recorded current epoch untouched; the next cycle
    retries.
    """

    def __init__(
        self,
        sources: IdentityDataSource,
        discovery: Optional[AddressDiscovery],
        store: SnapshotStore,
        artifacts: WhitelistArtifacts,
        cache: CurrentWhitelist,
        *,
        min_stake: Decimal = MIN_STAKE,
        roster_file: Optional[Union[str, Path]] = None,
        poll_interval_s: float = 60.0,
    ) -> None:
        self.sources = sources
        self.discovery = discovery
        self.store = store
        self.artifacts = artifacts
        self.cache = cache
        self.min_stake = Decimal(min_stake)
        self.roster_file = roster_file
        self.poll_interval_s = float(poll_interval_s)

        self.state = OrchestratorState.IDLE
        self.last_error: Optional[str] = None
        self.last_check_ts: Optional[int] = None

        self._build_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # --- startup ---

    def initialize(self) -> Optional[WhitelistState]:
        """Serve the recorded current epoch, if any, before the first check."""
        epoch = self.store.get_current_epoch()
        if epoch is None:
            logger.info("no current epoch recorded yet")
            return None

        root = self.store.get_root(epoch)
        if root is None:
            raise Inconsistent(f"current epoch {epoch} has no stored root")

        try:
            art = self.artifacts.read(epoch)
            addresses = art.addresses
            if art.merkle_root != root.merkle_root:
                raise Inconsistent(f"epoch {epoch}: artifact root does not match stored root")
        except NotFound:
            logger.warning("epoch %d: artifact missing, rebuilding it from stored rows", epoch)
            addresses = self._eligible(self.store.records(epoch), root.threshold)
            if build_root(addresses) != root.merkle_root:
                raise Inconsistent(f"epoch {epoch}: stored rows do not reproduce the stored root")
            self.artifacts.write(epoch, addresses, root.merkle_root)

        state = self.cache.swap(
            WhitelistState(epoch=epoch, addresses=tuple(addresses), merkle_root=root.merkle_root, threshold=root.threshold)
        )
        self.state = OrchestratorState.READY
        logger.info("serving epoch %d (%d addresses)", epoch, len(addresses))
        return state

    # --- cycle ---

    def current_epoch(self) -> Optional[int]:
        st = self.cache.get()
        if st is not None:
            return st.epoch
        return self.store.get_current_epoch()

    def latest_epoch_info(self):
        return self.sources.epoch_info()

    def check_once(self) -> bool:
        """Build the new epoch if the network moved past ours. True when one was applied."""
        self.last_check_ts = int(time.time())
        try:
            info = self.latest_epoch_info()
            current = self.current_epoch()
            if current is not None and info.epoch <= current:
                return False
            if info.threshold is None:
                raise SourceUnavailable(f"no discrimination threshold reported for epoch {info.epoch}")
            logger.info("epoch transition %s -> %d", current, info.epoch)
            self.build(info.epoch, info.threshold)
        except WhitelistError as exc:
            self.last_error = f"{exc.code}: {exc.message}"
            logger.warning("epoch check failed: %s", self.last_error)
            return False
        except Exception as exc:
            self.last_error = f"error: {exc}"
            logger.exception("epoch check failed")
            return False
        self.last_error = None
        return True

    # --- build ---

    def _eligible(self, records, threshold: Decimal) -> List[str]:
        return sorted(
            r.address
            for r in records
            if is_eligible(r.state, r.stake, r.penalized, r.flip_reported, threshold, fixed_minimum=self.min_stake)
        )

    def _roster(self, epoch: int) -> List[str]:
        if self.roster_file:
            return load_roster(self.roster_file)
        try:
            return self.sources.epoch_roster(epoch)
        except WhitelistError as exc:
            logger.warning("epoch %d: primary roster unavailable: %s", epoch, exc)
            return []

    def build(self, epoch: int, threshold: Decimal) -> WhitelistState:
        """
        Build, persist and publish the whitelist for `epoch`.

        Rebuilding an epoch with the same inputs yields the same rows, root
        and artifact.
        """
        epoch = int(epoch)
        threshold = Decimal(threshold)
        with self._build_lock:
            self.state = OrchestratorState.BUILDING
            try:
                source, block = "primary", 0
                records: Dict[str, IdentityRecord] = {}

                roster = self._roster(epoch)
                if roster:
                    records = self.sources.fetch_batch(roster, epoch, allow_fallback=True)

                if not records:
                    if self.discovery is None:
                        raise SourceUnavailable(f"epoch {epoch}: no records and no discovery configured")
                    logger.warning("epoch %d: primary path produced nothing, scanning ceremony blocks", epoch)
                    found = self.discovery.discover_for_epoch(epoch)
                    records = self.sources.fetch_batch(found.addresses, epoch, secondary_only=True)
                    source, block = "secondary", found.marker_height

                if not records:
                    raise SourceUnavailable(f"epoch {epoch}: no identity records")

                eligible = self._eligible(records.values(), threshold)
                root = build_root(eligible)

                # The artifact goes first. Rows, root and marker commit together,
                # and the cache only moves once that commit has succeeded.
                self.artifacts.write(epoch, eligible, root)
                self.store.save_epoch(
                    epoch,
                    [records[a] for a in sorted(records)],
                    root,
                    threshold,
                    address_count=len(eligible),
                    source=source,
                    block=block,
                    current_epoch=epoch,
                )
                state = self.cache.swap(
                    WhitelistState(epoch=epoch, addresses=tuple(eligible), merkle_root=root, threshold=threshold)
                )
                logger.info(
                    "epoch %d: %d/%d eligible via %s, root %s",
                    epoch,
                    len(eligible),
                    len(records),
                    source,
                    root or "<empty>",
                )
                return state
            finally:
                self.state = OrchestratorState.READY if self.cache.get() is not None else OrchestratorState.IDLE

    # --- background loop ---

    def run_forever(self, interval_s: Optional[float] = None) -> None:
        interval = self.poll_interval_s if interval_s is None else float(interval_s)
        logger.info("orchestrator running (poll every %.0fs)", interval)
        while not self._stop.is_set():
            self.check_once()
            self._stop.wait(interval)
        logger.info("orchestrator stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="idenawl-orchestrator", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
