"""
One normalized identity record per address, whichever source answered.

Primary is the operator's node. The public API is the secondary source: it is
consulted per call only when the caller allows fallback, and then only within
the `FallbackQuota` budget. The degraded bulk path (`fetch_secondary`,
`secondary_only=True`) reads the public API directly.

Snapshot semantics: the whitelist for epoch E is judged on the validation
ceremony that opened E, which the public API files under epoch E-1.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from idenawl.core.address import dedupe_sorted, normalize_address
from idenawl.errors import NotFound, SourceUnavailable, WhitelistError
from idenawl.sources.node_rpc import NodeRpcClient
from idenawl.sources.public_api import PublicApiClient
from idenawl.sources.quota import FallbackQuota

logger = logging.getLogger(__name__)

FLIP_REPORTED_FLAG = "AtLeastOneFlipReported"
DEFAULT_CONCURRENCY = 5


@dataclass(frozen=True)
class IdentityRecord:
    address: str
    state: str
    stake: Decimal
    penalized: bool
    flip_reported: bool


@dataclass(frozen=True)
class EpochInfo:
    epoch: int
    threshold: Optional[Decimal]
    source: str


class IdentityDataSource:
    def __init__(
        self,
        node: Optional[NodeRpcClient],
        public: Optional[PublicApiClient],
        quota: Optional[FallbackQuota] = None,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self.node = node
        self.public = public
        self.quota = quota or FallbackQuota()
        self.concurrency = max(1, int(concurrency))

    # --- epoch ---

    def epoch_info(self) -> EpochInfo:
        """Latest network epoch and its Human threshold, primary first."""
        epoch: Optional[int] = None
        threshold: Optional[Decimal] = None
        source = "primary"
        if self.node is not None:
            try:
                ne = self.node.epoch()
                epoch, threshold = ne.epoch, ne.threshold
            except WhitelistError as exc:
                logger.warning("node epoch lookup failed: %s", exc)
            if epoch is not None and threshold is None:
                try:
                    threshold = self.node.global_state().threshold
                except WhitelistError as exc:
                    logger.warning("node global state lookup failed: %s", exc)

        if threshold is None and self.public is not None:
            try:
                last = self.public.epoch_last()
            except WhitelistError as exc:
                if epoch is None:
                    raise SourceUnavailable(f"no source reported the epoch: {exc}") from exc
                logger.warning("public epoch lookup failed: %s", exc)
            else:
                if epoch is None:
                    epoch, source = last.epoch, "secondary"
                if last.epoch == epoch:
                    threshold = last.threshold

        if epoch is None:
            raise SourceUnavailable("no source configured for epoch lookup")
        return EpochInfo(epoch=epoch, threshold=threshold, source=source)

    def epoch_roster(self, epoch: int) -> List[str]:
        """Addresses the primary lists for `epoch`; empty when it lists none."""
        if self.node is None:
            raise SourceUnavailable("primary source not configured")
        return dedupe_sorted(i.address for i in self.node.epoch_identities(epoch))

    # --- per address ---

    def fetch_primary(self, address: str) -> IdentityRecord:
        if self.node is None:
            raise SourceUnavailable("primary source not configured")
        ident = self.node.identity(address)
        flags = ident.last_validation_flags or []
        return IdentityRecord(
            address=address,
            state=ident.state,
            stake=ident.stake,
            penalized=ident.penalty is not None and ident.penalty > 0,
            flip_reported=FLIP_REPORTED_FLAG in flags,
        )

    def fetch_secondary(self, address: str, epoch: int) -> IdentityRecord:
        if self.public is None:
            raise SourceUnavailable("secondary source not configured")
        addr = normalize_address(address)
        ceremony = int(epoch) - 1
        summary = self.public.validation_summary(ceremony, addr)
        bad = self.public.bad_authors(ceremony)
        return IdentityRecord(
            address=addr,
            state=summary.state,
            stake=summary.stake,
            penalized=summary.penalized or not summary.approved,
            flip_reported=addr in bad,
        )

    def fetch(self, address: str, epoch: int, *, allow_fallback: bool = False) -> IdentityRecord:
        addr = normalize_address(address)
        try:
            return self.fetch_primary(addr)
        except WhitelistError as exc:
            if not allow_fallback or self.public is None:
                raise
            logger.debug("primary failed for %s (%s), trying fallback", addr, exc)
        self.quota.acquire(addr)
        return self.fetch_secondary(addr, epoch)

    def fetch_live(self, address: str) -> Tuple[str, Decimal]:
        """Current state and stake, for next-epoch predictions."""
        addr = normalize_address(address)
        if self.node is not None:
            try:
                ident = self.node.identity(addr)
                return ident.state, ident.stake
            except WhitelistError as exc:
                if self.public is None:
                    raise
                logger.debug("primary live lookup failed for %s (%s)", addr, exc)
        if self.public is None:
            raise SourceUnavailable("no source configured")
        self.quota.acquire(addr)
        ident = self.public.identity(addr)
        return ident.state, self.public.address_stake(addr).stake

    # --- batch ---

    def _fetch_one(self, address: str, epoch: int, allow_fallback: bool, secondary_only: bool) -> Optional[IdentityRecord]:
        try:
            if secondary_only:
                return self.fetch_secondary(address, epoch)
            return self.fetch(address, epoch, allow_fallback=allow_fallback)
        except NotFound as exc:
            logger.debug("skip %s: %s", address, exc)
        except WhitelistError as exc:
            logger.warning("skip %s: %s", address, exc)
        return None

    def fetch_batch(
        self,
        addresses: Iterable[str],
        epoch: int,
        *,
        allow_fallback: bool = True,
        secondary_only: bool = False,
    ) -> Dict[str, IdentityRecord]:
        """
        Fetch records for many addresses with at most `concurrency` requests in
        flight. Failures for one address are logged and omitted.
        """
        todo: List[str] = []
        for a in addresses:
            try:
                todo.append(normalize_address(a))
            except WhitelistError as exc:
                logger.warning("skip %r: %s", a, exc)
        todo = sorted(set(todo))
        if not todo:
            return {}

        with ThreadPoolExecutor(max_workers=min(self.concurrency, len(todo))) as pool:
            results = list(
                pool.map(lambda a: self._fetch_one(a, epoch, allow_fallback, secondary_only), todo)
            )
        out = {r.address: r for r in results if r is not None}
        logger.info("epoch %d: fetched %d/%d identities", epoch, len(out), len(todo))
        return out
