from types import SimpleNamespace

import pytest

from idenawl.errors import MarkerNotFound, NotFound, SourceUnavailable
from idenawl.sources.discovery import AddressDiscovery

from tests.fakes import addr


class FakeChain:
    def __init__(self, marker=None, txs=None, missing=(), first_block=1000):
        self.marker = marker
        self.txs = txs or {}
        self.missing = set(missing)
        self.first_block = first_block
        self.block_calls = []
        self.sender_calls = []

    def epoch(self, epoch):
        return SimpleNamespace(validation_first_block_height=self.first_block)

    def block(self, height):
        self.block_calls.append(height)
        if height in self.missing:
            raise NotFound(str(height))
        flags = ["ShortSessionStarted"] if height == self.marker else None
        return SimpleNamespace(height=height, flags=flags)

    def block_senders(self, height):
        self.sender_calls.append(height)
        return set(self.txs.get(height, ()))


def test_marker_search_starts_at_offset():
    chain = FakeChain(marker=1020)
    d = AddressDiscovery(chain)
    assert d.find_marker(1000) == 1020
    assert chain.block_calls[0] == 1015


def test_marker_missing_raises():
    chain = FakeChain(marker=None)
    d = AddressDiscovery(chain, marker_search_blocks=5)
    with pytest.raises(MarkerNotFound):
        d.find_marker(1000)
    assert chain.block_calls == [1015, 1016, 1017, 1018, 1019]


def test_marker_outside_window_is_not_found():
    chain = FakeChain(marker=1015 + 20)
    with pytest.raises(MarkerNotFound):
        AddressDiscovery(chain).find_marker(1000)


def test_counts_only_blocks_with_transactions():
    txs = {
        1020: [addr(1)],
        1022: [addr(2), addr(1)],
        1023: [addr(3)],
        1026: [addr(4)],
        1030: [addr(99)],
    }
    chain = FakeChain(marker=1020, txs=txs, missing=[1016])
    d = AddressDiscovery(chain, required_tx_blocks=4)

    res = d.discover(1000)
    assert res.marker_height == 1020
    assert res.tx_blocks == [1020, 1022, 1023, 1026]
    assert res.addresses == [addr(1), addr(2), addr(3), addr(4)]
    assert res.scanned_blocks == 7
    assert 1030 not in chain.sender_calls


def test_scan_is_bounded():
    chain = FakeChain(marker=1020, txs={1020: [addr(1)]})
    d = AddressDiscovery(chain, required_tx_blocks=3, max_scan_blocks=10)
    with pytest.raises(SourceUnavailable):
        d.discover(1000)
    assert len(chain.sender_calls) == 10


def test_discover_for_epoch_uses_previous_epoch_first_block():
    calls = []
    chain = FakeChain(marker=2017, txs={2017 + i: [addr(i)] for i in range(7)}, first_block=2000)
    orig = chain.epoch

    def epoch(e):
        calls.append(e)
        return orig(e)

    chain.epoch = epoch
    res = AddressDiscovery(chain).discover_for_epoch(161)
    assert calls == [160]
    assert res.marker_height == 2017
    assert len(res.addresses) == 7
