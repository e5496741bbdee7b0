from decimal import Decimal
from types import SimpleNamespace

from fastapi.testclient import TestClient

from idenawl.core.merkle import ProofStep, verify_proof
from idenawl.errors import RateLimited, SourceUnavailable
from idenawl.indexer.app import IndexerRuntime, create_app

from tests.fakes import addr, seeded_service


def _client(tmp_path, sources=None):
    svc = seeded_service(tmp_path, sources=sources)
    return TestClient(create_app(IndexerRuntime(service=svc, cors_origins=["*"])))


def test_healthz(tmp_path):
    r = _client(tmp_path).get("/healthz")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["epoch"] == 160


def test_whitelist_current_and_epoch(tmp_path):
    client = _client(tmp_path)
    r = client.get("/whitelist/current")
    assert r.status_code == 200
    body = r.json()
    assert body["epoch"] == 160
    assert body["count"] == 2
    assert body["addresses"] == [addr(1), addr(5)]

    r2 = client.get("/whitelist/epoch/159")
    assert r2.json()["addresses"] == [addr(1), addr(2)]

    r3 = client.get("/whitelist/epoch/1")
    assert r3.status_code == 404
    assert r3.json()["error"] == "not_found"


def test_check_endpoint(tmp_path):
    client = _client(tmp_path)
    r = client.get("/whitelist/check", params={"address": addr(4)})
    assert r.status_code == 200
    body = r.json()
    assert body["eligible"] is False
    assert body["reason"] == "flip"
    assert body["identity"]["stake"] == "30000"

    r2 = client.get("/whitelist/check", params={"address": addr(9), "epoch": 160})
    assert r2.json()["reason"] == "not-in-snapshot"
    assert r2.json()["identity"] is None

    r3 = client.get("/whitelist/check", params={"address": "bogus"})
    assert r3.status_code == 400
    assert r3.json()["error"] == "invalid_address"


def test_merkle_root_and_proof(tmp_path):
    client = _client(tmp_path)
    root = client.get("/merkle_root").json()["merkle_root"]

    r = client.get("/merkle_proof", params={"address": addr(5)})
    assert r.status_code == 200
    body = r.json()
    assert body["merkle_root"] == root
    steps = [ProofStep.from_dict(s) for s in body["proof"]]
    assert verify_proof(addr(5), steps, root)

    r2 = client.get("/merkle_proof", params={"address": addr(2)})
    assert r2.status_code == 404

    assert client.get("/merkle_root", params={"epoch": 159}).json()["epoch"] == 159


def test_epochs(tmp_path):
    r = _client(tmp_path).get("/epochs")
    assert r.status_code == 200
    rows = r.json()
    assert [e["epoch"] for e in rows] == [160, 159]
    assert rows[0]["threshold"] == "25000"
    assert rows[0]["address_count"] == 2


def test_prediction_and_error_mapping(tmp_path):
    def fetch_live(address):
        if address == addr(7):
            raise RateLimited("budget")
        if address == addr(8):
            raise SourceUnavailable("down")
        return "Verified", Decimal("12000")

    client = _client(tmp_path, sources=SimpleNamespace(fetch_live=fetch_live))

    r = client.get(f"/eligibility/{addr(5)}/prediction")
    assert r.status_code == 200
    assert r.json()["prediction"] == "eligible both epochs"
    assert r.json()["stake"] == "12000"

    assert client.get(f"/eligibility/{addr(7)}/prediction").status_code == 429
    r503 = client.get(f"/eligibility/{addr(8)}/prediction")
    assert r503.status_code == 503
    assert r503.json() == {"error": "source_unavailable", "detail": "down"}
