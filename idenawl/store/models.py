from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from idenawl.store.database import Base


class EpochIdentitySnapshotDB(Base):
    """One identity as observed when the epoch's whitelist was built."""

    __tablename__ = "epoch_identity_snapshot"

    epoch = Column(Integer, primary_key=True)
    address = Column(String(42), primary_key=True)
    state = Column(String(32), nullable=False)
    stake = Column(String(80), nullable=False)  # canonical decimal string
    penalized = Column(Boolean, nullable=False, default=False)
    flip_reported = Column(Boolean, nullable=False, default=False)


class EpochRootDB(Base):
    __tablename__ = "epoch_merkle_roots"

    epoch = Column(Integer, primary_key=True)
    merkle_root = Column(String(64), nullable=False, default="")
    threshold = Column(String(80), nullable=False)
    address_count = Column(Integer, nullable=False, default=0)
    source = Column(String(16), nullable=False, default="primary")  # primary | secondary
    block = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class IndexerMetaDB(Base):
    __tablename__ = "indexer_meta"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=False)
