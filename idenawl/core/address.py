"""
Address normalization shared by every component that touches an address.

Idena addresses use the Ethereum hex format. Internally we always carry the
lowercase `0x`-prefixed form so set membership, sorting and leaf hashing agree.
"""

from __future__ import annotations

from typing import Iterable, List

from eth_utils import is_hex_address

from idenawl.errors import InvalidAddress


def normalize_address(raw: object) -> str:
    if not isinstance(raw, str):
        raise InvalidAddress(f"address must be a string, got {type(raw).__name__}")
    addr = raw.strip().lower()
    if not addr.startswith("0x") or not is_hex_address(addr):
        raise InvalidAddress(f"invalid address: {raw!r}")
    return addr


def is_valid_address(raw: object) -> bool:
    try:
        normalize_address(raw)
    except InvalidAddress:
        return False
    return True


def dedupe_sorted(addresses: Iterable[str]) -> List[str]:
    """Normalize, deduplicate and sort ascending."""
    return sorted({normalize_address(a) for a in addresses})
