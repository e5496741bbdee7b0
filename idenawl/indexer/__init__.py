"""Epoch whitelist indexer and read-API.

This package runs next to an Idena node and:
- watches for epoch transitions and builds one eligibility snapshot per epoch
- persists snapshot rows, the epoch Merkle root and a JSON artifact
- serves whitelists, roots, inclusion proofs and address checks over HTTP

Builds happen on one background thread; reads are served from an in-memory
copy of the current whitelist and never wait for a build.
"""
