"""Epoch eligibility snapshots and Merkle proofs for the Idena whitelist."""

__version__ = "0.1.0"
