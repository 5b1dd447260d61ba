"""HTTP API tests; services are swapped for in-memory ones via dependency overrides."""

import pytest
from fastapi.testclient import TestClient

from app.compute.pipeline import get_path_service, get_scorer
from app.graph.models import AccountStats
from app.graph.store import InMemoryEdgeStore
from app.main import app
from app.trust.paths import TrustPathService
from app.trust.scorer import TrustScorer

from tests.conftest import A, B, C, D, E, FakeAttestations, attestation, edge


@pytest.fixture
def store():
    return InMemoryEdgeStore([edge(A, B, 0.9, "intuition"), edge(B, C, 0.6, "intuition"), edge(C, A, 0.4, "intuition")])


@pytest.fixture
def attestations():
    return FakeAttestations([attestation(1.0, i) for i in range(6)], AccountStats(6, 2000),
                            edges=[edge(D, E, 0.5, "intuition")])


@pytest.fixture
def client(store, attestations):
    scorer = TrustScorer(store, attestations)
    app.dependency_overrides[get_scorer] = lambda: scorer
    app.dependency_overrides[get_path_service] = lambda: TrustPathService(store)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestScoreEndpoint:

    def test_score(self, client):
        resp = client.get("/v1/trust/score", params={"address": A, "depth": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert body["query"] == {"target": A, "chain": "ethereum", "depth": 2}
        assert body["score"]["address"] == A
        assert 0 <= body["score"]["score"] <= 100
        assert body["score"]["confidence"] == 0.75
        assert body["score"]["factors"][0]["name"] == "Graph Trust (EigenTrust)"
        assert body["score"]["metadata"]["graph_depth"] == 2
        assert body["explanation"].startswith("Trust score for")

    def test_invalid_address(self, client):
        resp = client.get("/v1/trust/score", params={"address": "0x1234"})
        assert resp.status_code == 400
        assert "0x1234" in resp.json()["detail"]

    def test_depth_out_of_range(self, client):
        assert client.get("/v1/trust/score", params={"address": A, "depth": 9}).status_code == 422

    def test_request_headers(self, client):
        resp = client.get("/v1/trust/score", params={"address": A})
        assert len(resp.headers["X-Request-Id"]) == 8
        assert resp.headers["X-Response-Time"].endswith("ms")

    def test_caller_request_id_is_echoed(self, client):
        resp = client.get("/v1/graph/stats", headers={"X-Request-Id": "upstream-42"})
        assert resp.headers["X-Request-Id"] == "upstream-42"


class TestPathEndpoints:

    def test_path(self, client):
        resp = client.get("/v1/trust/path", params={"source": A, "target": C})
        assert resp.status_code == 200
        body = resp.json()
        assert body["max_hops"] == 5
        assert body["path"]["nodes"] == [A, B, C]
        assert body["path"]["hops"] == 2
        assert body["path"]["edges"][0]["from"] == A
        assert body["explanation"].startswith("Trust path found: 2 hop(s)")

    def test_no_path_is_not_an_error(self, client):
        resp = client.get("/v1/trust/path", params={"source": A, "target": C, "max_hops": 1})
        assert resp.status_code == 200
        assert resp.json()["path"] is None
        assert "within 1 hops" in resp.json()["explanation"]

    def test_same_address(self, client):
        resp = client.get("/v1/trust/path", params={"source": A, "target": A.upper().replace("0X", "0x")})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Both addresses are the same."

    def test_invalid_path_address(self, client):
        assert client.get("/v1/trust/path", params={"source": "alice", "target": A}).status_code == 400

    def test_connections(self, client):
        resp = client.get(f"/v1/trust/connections/{B}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["address"] == B
        assert body["trustors"] == [A]
        assert body["trustees"] == [C]

    def test_connections_invalid(self, client):
        assert client.get("/v1/trust/connections/0xzz").status_code == 400


class TestGraphEndpoints:

    def test_stats(self, client):
        assert client.get("/v1/graph/stats").json() == {"nodeCount": 3, "edgeCount": 3}

    def test_sync(self, client, store):
        resp = client.post("/v1/graph/sync", params={"batch_size": 50})
        assert resp.json() == {"edges": 1}
        assert store.get_stats() == {"nodeCount": 5, "edgeCount": 4}

    def test_sync_upstream_failure(self, client, attestations):
        attestations.fail = True
        resp = client.post("/v1/graph/sync")
        assert resp.status_code == 502
        assert "intuition unavailable" in resp.json()["detail"]

    def test_recompute(self, client, store):
        body = client.post("/v1/graph/recompute").json()
        assert body["nodes"] == 3
        assert body["stored"] is True
        assert store.get_node(A).eigentrust_score == pytest.approx(1 / 3, abs=1e-6)


def test_all_routes_registered():
    paths = {route.path for route in app.routes}
    assert {"/v1/trust/score", "/v1/trust/path", "/v1/trust/connections/{address}",
            "/v1/graph/stats", "/v1/graph/sync", "/v1/graph/recompute", "/health"} <= paths


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["service"] == "trust-graph"
    assert {s["name"] for s in body["sources"]} == {"graph", "attestations", "onchain"}
