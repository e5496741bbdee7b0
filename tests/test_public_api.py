from decimal import Decimal

import pytest

import idenawl.sources.public_api as public_api_mod
from idenawl.errors import NotFound, SourceUnavailable
from idenawl.sources.public_api import PublicApiClient

from tests.fakes import _Resp, addr, ok


def test_epoch_last_parses_threshold(monkeypatch):
    def fake_get(url, *, params, timeout):
        assert url == "https://api.example/api/Epoch/Last"
        assert params == {"apikey": "k"}
        return ok({"epoch": 160, "validationTime": "2026-10-01T13:30:00Z", "discriminationStakeThreshold": "23456.78"})

    monkeypatch.setattr(public_api_mod.requests, "get", fake_get)
    last = PublicApiClient("https://api.example/", "k").epoch_last()
    assert last.epoch == 160
    assert last.threshold == Decimal("23456.78")


def test_missing_threshold_is_decode_failure(monkeypatch):
    monkeypatch.setattr(public_api_mod.requests, "get", lambda url, *, params, timeout: ok({"epoch": 160}))
    with pytest.raises(SourceUnavailable):
        PublicApiClient("https://api.example").epoch_last()


def test_404_and_empty_result_are_not_found(monkeypatch):
    monkeypatch.setattr(public_api_mod.requests, "get", lambda url, *, params, timeout: _Resp({}, status_code=404))
    with pytest.raises(NotFound):
        PublicApiClient("https://api.example").identity(addr(1))

    monkeypatch.setattr(public_api_mod.requests, "get", lambda url, *, params, timeout: ok(None))
    with pytest.raises(NotFound):
        PublicApiClient("https://api.example").address_stake(addr(1))


def test_block_senders_follows_continuation(monkeypatch):
    calls = []

    def fake_get(url, *, params, timeout):
        calls.append(params)
        assert url == "https://api.example/api/Block/500/Txs"
        if "continuationToken" not in params:
            return ok([{"hash": "0x1", "from": addr(10).upper().replace("0X", "0x")}, {"hash": "0x2", "from": addr(11)}], token="p2")
        assert params["continuationToken"] == "p2"
        return ok([{"hash": "0x3", "from": addr(10)}, {"hash": "0x4"}])

    monkeypatch.setattr(public_api_mod.requests, "get", fake_get)
    senders = PublicApiClient("https://api.example").block_senders(500)

    assert senders == {addr(10), addr(11)}
    assert len(calls) == 2
    assert all(p["limit"] == 100 for p in calls)


def test_bad_authors_cached_per_epoch(monkeypatch):
    calls = []

    def fake_get(url, *, params, timeout):
        calls.append(url)
        return ok([{"address": addr(3)}, {"author": addr(4)}])

    monkeypatch.setattr(public_api_mod.requests, "get", fake_get)
    c = PublicApiClient("https://api.example")

    assert c.bad_authors(159) == {addr(3), addr(4)}
    assert c.bad_authors(159) == {addr(3), addr(4)}
    assert len(calls) == 1
    c.bad_authors(158)
    assert len(calls) == 2


def test_validation_summary(monkeypatch):
    def fake_get(url, *, params, timeout):
        assert url.endswith(f"/api/Epoch/159/Identity/{addr(1)}/ValidationSummary")
        return ok({"state": "Verified", "stake": "15000", "approved": True, "penalized": False})

    monkeypatch.setattr(public_api_mod.requests, "get", fake_get)
    s = PublicApiClient("https://api.example").validation_summary(159, addr(1))
    assert s.state == "Verified"
    assert s.stake == Decimal("15000")
    assert s.approved is True
