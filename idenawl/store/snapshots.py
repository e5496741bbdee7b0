from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from idenawl.errors import Inconsistent
from idenawl.store.models import EpochIdentitySnapshotDB, EpochRootDB, IndexerMetaDB

logger = logging.getLogger(__name__)

CURRENT_EPOCH_KEY = "current_epoch"


def canonical_amount(value: Decimal) -> str:
    """Stable text form: no exponent, no trailing zeros."""
    d = Decimal(value)
    if d == d.to_integral_value():
        return str(d.quantize(Decimal(1)))
    return format(d.normalize(), "f")


@dataclass(frozen=True)
class SnapshotRecord:
    epoch: int
    address: str
    state: str
    stake: Decimal
    penalized: bool
    flip_reported: bool


@dataclass(frozen=True)
class EpochRootInfo:
    epoch: int
    merkle_root: str
    threshold: Decimal
    address_count: int
    source: str
    block: int
    created_at: Optional[datetime]


def _record(row: EpochIdentitySnapshotDB) -> SnapshotRecord:
    return SnapshotRecord(
        epoch=row.epoch,
        address=row.address,
        state=row.state,
        stake=Decimal(row.stake),
        penalized=bool(row.penalized),
        flip_reported=bool(row.flip_reported),
    )


def _root(row: EpochRootDB) -> EpochRootInfo:
    return EpochRootInfo(
        epoch=row.epoch,
        merkle_root=row.merkle_root or "",
        threshold=Decimal(row.threshold),
        address_count=int(row.address_count or 0),
        source=row.source,
        block=int(row.block or 0),
        created_at=row.created_at,
    )


class SnapshotStore:
    """Per-epoch identity rows and the epoch's Merkle root, saved as one unit."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def save_epoch(
        self,
        epoch: int,
        records: Iterable,
        merkle_root: str,
        threshold: Decimal,
        *,
        address_count: int,
        source: str = "primary",
        block: int = 0,
        current_epoch: Optional[int] = None,
    ) -> int:
        """
        Replace everything stored for `epoch` in one transaction.

        `records` are objects with address/state/stake/penalized/flip_reported.
        When `current_epoch` is given the current-epoch marker is moved in the
        same transaction. Returns the number of identity rows written. On any
        error nothing is kept, the marker included.
        """
        epoch = int(epoch)
        written = 0
        with self._session_factory() as session:
            try:
                keep = set()
                for r in records:
                    session.merge(
                        EpochIdentitySnapshotDB(
                            epoch=epoch,
                            address=r.address,
                            state=r.state,
                            stake=canonical_amount(r.stake),
                            penalized=bool(r.penalized),
                            flip_reported=bool(r.flip_reported),
                        )
                    )
                    keep.add(r.address)
                    written += 1
                session.flush()

                stale = session.scalars(
                    select(EpochIdentitySnapshotDB).where(EpochIdentitySnapshotDB.epoch == epoch)
                ).all()
                for row in stale:
                    if row.address not in keep:
                        session.delete(row)

                session.merge(
                    EpochRootDB(
                        epoch=epoch,
                        merkle_root=merkle_root,
                        threshold=canonical_amount(threshold),
                        address_count=int(address_count),
                        source=source,
                        block=int(block),
                        created_at=datetime.utcnow(),
                    )
                )
                if current_epoch is not None:
                    session.merge(IndexerMetaDB(key=CURRENT_EPOCH_KEY, value=str(int(current_epoch))))
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("epoch %d: snapshot transaction rolled back", epoch)
                raise
        logger.info("epoch %d: stored %d identities, root %s", epoch, written, merkle_root or "<empty>")
        return written

    def get(self, epoch: int, address: str) -> Optional[SnapshotRecord]:
        with self._session_factory() as session:
            row = session.get(EpochIdentitySnapshotDB, (int(epoch), address))
            return _record(row) if row is not None else None

    def records(self, epoch: int) -> List[SnapshotRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(EpochIdentitySnapshotDB)
                .where(EpochIdentitySnapshotDB.epoch == int(epoch))
                .order_by(EpochIdentitySnapshotDB.address)
            ).all()
            return [_record(r) for r in rows]

    def get_root(self, epoch: int) -> Optional[EpochRootInfo]:
        with self._session_factory() as session:
            row = session.get(EpochRootDB, int(epoch))
            return _root(row) if row is not None else None

    def list_epochs(self, limit: int = 20) -> List[EpochRootInfo]:
        with self._session_factory() as session:
            rows = session.scalars(select(EpochRootDB).order_by(EpochRootDB.epoch.desc()).limit(int(limit))).all()
            return [_root(r) for r in rows]

    def get_current_epoch(self) -> Optional[int]:
        with self._session_factory() as session:
            row = session.get(IndexerMetaDB, CURRENT_EPOCH_KEY)
            if row is None:
                return None
            try:
                return int(row.value)
            except ValueError as exc:
                raise Inconsistent(f"stored current epoch is not a number: {row.value!r}") from exc
