"""
Degraded-mode roster discovery from the validation ceremony blocks.

Every identity taking part in the short session publishes a transaction in the
first blocks after the `ShortSessionStarted` flag. Collecting the senders of
those blocks yields the ceremony participants without an identity index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from idenawl.errors import MarkerNotFound, NotFound, SourceUnavailable
from idenawl.sources.public_api import PublicApiClient

logger = logging.getLogger(__name__)

SHORT_SESSION_FLAG = "ShortSessionStarted"

MARKER_OFFSET = 15
MARKER_SEARCH_BLOCKS = 20
REQUIRED_TX_BLOCKS = 7
MAX_SCAN_BLOCKS = 200


@dataclass(frozen=True)
class DiscoveryResult:
    addresses: List[str]
    marker_height: int
    scanned_blocks: int = 0
    tx_blocks: List[int] = field(default_factory=list)


class AddressDiscovery:
    def __init__(
        self,
        public: PublicApiClient,
        *,
        marker_offset: int = MARKER_OFFSET,
        marker_search_blocks: int = MARKER_SEARCH_BLOCKS,
        required_tx_blocks: int = REQUIRED_TX_BLOCKS,
        max_scan_blocks: int = MAX_SCAN_BLOCKS,
    ) -> None:
        self.public = public
        self.marker_offset = int(marker_offset)
        self.marker_search_blocks = int(marker_search_blocks)
        self.required_tx_blocks = int(required_tx_blocks)
        self.max_scan_blocks = int(max_scan_blocks)

    def find_marker(self, first_block_height: int) -> int:
        start = int(first_block_height) + self.marker_offset
        for height in range(start, start + self.marker_search_blocks):
            try:
                block = self.public.block(height)
            except NotFound:
                continue
            if SHORT_SESSION_FLAG in (block.flags or []):
                logger.info("short session marker at block %d", height)
                return height
        raise MarkerNotFound(
            f"no {SHORT_SESSION_FLAG} flag in blocks {start}..{start + self.marker_search_blocks - 1}"
        )

    def discover(self, first_block_height: int) -> DiscoveryResult:
        marker = self.find_marker(first_block_height)

        senders: Set[str] = set()
        tx_blocks: List[int] = []
        scanned = 0
        height = marker
        while len(tx_blocks) < self.required_tx_blocks:
            if scanned >= self.max_scan_blocks:
                raise SourceUnavailable(
                    f"only {len(tx_blocks)}/{self.required_tx_blocks} blocks with transactions "
                    f"within {self.max_scan_blocks} blocks of marker {marker}"
                )
            try:
                found = self.public.block_senders(height)
            except NotFound:
                found = set()
            scanned += 1
            if found:
                tx_blocks.append(height)
                senders |= found
            height += 1

        logger.info(
            "discovered %d addresses from %d blocks (%d scanned) after marker %d",
            len(senders),
            len(tx_blocks),
            scanned,
            marker,
        )
        return DiscoveryResult(
            addresses=sorted(senders),
            marker_height=marker,
            scanned_blocks=scanned,
            tx_blocks=tx_blocks,
        )

    def discover_for_epoch(self, epoch: int, first_block_height: Optional[int] = None) -> DiscoveryResult:
        """Discover the participants of the ceremony that opened `epoch`."""
        if first_block_height is None:
            first_block_height = self.public.epoch(int(epoch) - 1).validation_first_block_height
        return self.discover(first_block_height)
