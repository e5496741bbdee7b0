from decimal import Decimal
from typing import Any, Dict

import pytest
import requests

import idenawl.sources.node_rpc as node_rpc_mod
from idenawl.errors import NotFound, SourceUnavailable
from idenawl.sources.node_rpc import NodeRpcClient

from tests.fakes import _Resp, addr


def test_identity_decodes_numeric_strings_and_sends_key(monkeypatch):
    seen: Dict[str, Any] = {}

    def fake_post(url: str, *, json: Dict[str, Any], timeout: float):
        seen.update(url=url, body=json, timeout=timeout)
        return _Resp(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "result": {
                    "address": addr(1),
                    "state": "Human",
                    "stake": "25000.123456789012345678",
                    "penalty": "0",
                    "lastValidationFlags": ["AtLeastOneFlipReported"],
                },
            }
        )

    monkeypatch.setattr(node_rpc_mod.requests, "post", fake_post)

    c = NodeRpcClient("http://node:9009/", "secret", timeout_s=3.0)
    ident = c.identity(addr(1))

    assert seen["url"] == "http://node:9009"
    assert seen["timeout"] == pytest.approx(3.0)
    assert seen["body"] == {"jsonrpc": "2.0", "method": "dna_identity", "params": [addr(1)], "id": 1, "key": "secret"}
    assert ident.stake == Decimal("25000.123456789012345678")
    assert ident.penalty == Decimal(0)
    assert ident.last_validation_flags == ["AtLeastOneFlipReported"]


def test_missing_stake_is_a_decode_failure_not_zero(monkeypatch):
    def fake_post(url, *, json, timeout):
        return _Resp({"result": {"address": addr(1), "state": "Human"}})

    monkeypatch.setattr(node_rpc_mod.requests, "post", fake_post)
    with pytest.raises(SourceUnavailable):
        NodeRpcClient("http://node").identity(addr(1))


def test_rpc_error_and_transport_failures(monkeypatch):
    monkeypatch.setattr(
        node_rpc_mod.requests,
        "post",
        lambda url, *, json, timeout: _Resp({"error": {"code": -32000, "message": "boom"}}),
    )
    with pytest.raises(SourceUnavailable):
        NodeRpcClient("http://node").epoch()

    def timeout_post(url, *, json, timeout):
        raise requests.Timeout("slow")

    monkeypatch.setattr(node_rpc_mod.requests, "post", timeout_post)
    with pytest.raises(SourceUnavailable):
        NodeRpcClient("http://node").epoch()

    monkeypatch.setattr(node_rpc_mod.requests, "post", lambda url, *, json, timeout: _Resp({}, status_code=502))
    with pytest.raises(SourceUnavailable):
        NodeRpcClient("http://node").epoch()


def test_null_identity_is_not_found(monkeypatch):
    monkeypatch.setattr(node_rpc_mod.requests, "post", lambda url, *, json, timeout: _Resp({"result": None}))
    with pytest.raises(NotFound):
        NodeRpcClient("http://node").identity(addr(1))


def test_epoch_identities_and_optional_threshold(monkeypatch):
    def fake_post(url, *, json, timeout):
        if json["method"] == "dna_epoch":
            return _Resp({"result": {"epoch": 160, "nextValidation": "2026-01-01T00:00:00Z"}})
        assert json["params"] == [160, 0]
        return _Resp(
            {
                "result": [
                    {"address": addr(1), "state": "Human", "stake": "30000"},
                    {"address": addr(2), "state": "Newbie", "stake": 12000.5},
                ]
            }
        )

    monkeypatch.setattr(node_rpc_mod.requests, "post", fake_post)
    c = NodeRpcClient("http://node")

    ep = c.epoch()
    assert ep.epoch == 160
    assert ep.threshold is None

    ids = c.epoch_identities(160)
    assert [i.stake for i in ids] == [Decimal("30000"), Decimal("12000.5")]


def test_negative_stake_rejected(monkeypatch):
    monkeypatch.setattr(
        node_rpc_mod.requests,
        "post",
        lambda url, *, json, timeout: _Resp({"result": {"address": addr(1), "state": "Human", "stake": "-1"}}),
    )
    with pytest.raises(SourceUnavailable):
        NodeRpcClient("http://node").identity(addr(1))


def test_block_lookups(monkeypatch):
    def fake_post(url, *, json, timeout):
        if json["method"] == "bcn_lastBlock":
            return _Resp({"result": {"height": 5000, "hash": "0xabc"}})
        if json["params"] == [4999]:
            return _Resp({"result": {"height": 4999, "flags": ["ShortSessionStarted"], "transactions": ["0x1"]}})
        return _Resp({"result": None})

    monkeypatch.setattr(node_rpc_mod.requests, "post", fake_post)
    c = NodeRpcClient("http://node")
    assert c.last_block().height == 5000
    assert c.block(4999).flags == ["ShortSessionStarted"]
    assert c.block(1) is None


def test_global_state_threshold(monkeypatch):
    seen = []

    def fake_post(url, *, json, timeout):
        seen.append((json["method"], json["params"]))
        return _Resp({"result": {"discriminationStakeThreshold": "24517.123456789", "networkSize": 5000}})

    monkeypatch.setattr(node_rpc_mod.requests, "post", fake_post)
    gs = NodeRpcClient("http://node").global_state()
    assert seen == [("dna_globalState", [])]
    assert gs.threshold == Decimal("24517.123456789")


def test_global_state_without_threshold_is_a_decode_failure(monkeypatch):
    monkeypatch.setattr(node_rpc_mod.requests, "post", lambda url, *, json, timeout: _Resp({"result": {"networkSize": 5000}}))
    with pytest.raises(SourceUnavailable):
        NodeRpcClient("http://node").global_state()
