from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class WhitelistOut(BaseModel):
    schema: Literal["idenawl_whitelist_v1"] = "idenawl_whitelist_v1"

    epoch: int
    merkle_root: str
    count: int
    addresses: List[str] = Field(default_factory=list)


class MerkleRootOut(BaseModel):
    epoch: int
    merkle_root: str


class ProofStepOut(BaseModel):
    hash: str
    # Sibling is on the left of the running hash.
    left: bool


class MerkleProofOut(BaseModel):
    address: str
    epoch: int
    merkle_root: str
    proof: List[ProofStepOut] = Field(default_factory=list)


class IdentityOut(BaseModel):
    state: str
    stake: str
    penalized: bool
    flip_reported: bool


class EligibilityOut(BaseModel):
    address: str
    epoch: int
    eligible: bool
    reason: Literal["penalty", "flip", "not-in-snapshot", "below-threshold", "ok"]
    identity: Optional[IdentityOut] = None


class EpochOut(BaseModel):
    epoch: int
    merkle_root: str
    threshold: str
    address_count: int
    source: str
    block: int = 0
    created_at: Optional[int] = None


class PredictionOut(BaseModel):
    address: str
    epoch: int
    eligible_now: bool
    state: str
    stake: str
    hint: str
    prediction: str


class ErrorOut(BaseModel):
    error: str
    detail: str = ""
