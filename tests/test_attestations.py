"""Tests for the attestation source: GraphQL client, triple conversion and factor tables."""

import asyncio
import json

import httpx
import pytest

from app.compute.attestations import (
    SEMANTIC_SOURCE,
    SOURCE,
    IntuitionClient,
    attestation_factors,
    resolve_address,
    score_attestation_count,
    score_stake_weight,
    triple_to_attestation,
    triples_to_edges,
)
from app.compute.errors import CollaboratorUnavailable
from app.graph.models import AccountStats

from tests.conftest import A, B, C, attestation

API_URL = "https://graph.example/v1/graphql"


def _triple(n=0, creator=C, subject=A, obj=B, pro=3, con=1, ts="2024-05-01T12:00:00Z"):
    return {
        "id": str(n),
        "subject": {"id": "s", "label": "alice", "type": "Account", "wallet_id": subject},
        "predicate": {"id": "p", "label": "trusts"},
        "object": {"id": "o", "label": "bob", "type": "Account", "wallet_id": obj},
        "creator": {"id": creator, "label": "carol"},
        "vault": {"total_shares": "10", "current_share_price": "1", "position_count": pro},
        "counter_vault": {"total_shares": "2", "current_share_price": "1", "position_count": con},
        "block_timestamp": ts,
    }


def _run_client(handler, call):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await call(IntuitionClient(API_URL, "secret", client=http))
    return asyncio.run(go())


class TestTriplesToEdges:

    def test_three_edges_per_triple(self):
        edges = triples_to_edges([_triple(pro=3, con=1)])
        by_pair = {(e.from_addr, e.to_addr): e for e in edges}
        assert by_pair[(C, A)].weight == pytest.approx(0.5)
        assert by_pair[(C, B)].weight == pytest.approx(0.25)
        assert by_pair[(A, B)].weight == pytest.approx(0.15)
        assert by_pair[(C, A)].source == SOURCE
        assert by_pair[(A, B)].source == SEMANTIC_SOURCE
        assert by_pair[(C, A)].timestamp == 1714564800000

    def test_no_positions_defaults_to_half(self):
        edges = triples_to_edges([_triple(pro=0, con=0)])
        assert edges[0].weight == 0.5

    def test_majority_against_is_negative(self):
        edges = triples_to_edges([_triple(pro=1, con=3)])
        assert edges[0].weight == pytest.approx(-0.5)

    def test_self_edges_skipped(self):
        edges = triples_to_edges([_triple(creator=A, subject=A, obj=B)])
        assert {(e.from_addr, e.to_addr) for e in edges} == {(A, B)}

    def test_non_address_atoms_skipped(self):
        triple = _triple()
        triple["subject"] = {"id": "s", "label": "DeFi", "type": "Thing"}
        triple["object"] = {"id": "o", "label": "safe", "type": "Thing"}
        assert triples_to_edges([triple]) == []

    def test_address_label_resolves(self):
        assert resolve_address({"label": "0x" + "AB" * 20}) == "0x" + "ab" * 20
        assert resolve_address({"label": "vitalik.eth"}) is None
        assert resolve_address(None) is None


class TestTripleToAttestation:

    def test_sentiment_and_labels(self):
        att = triple_to_attestation(_triple(pro=1, con=3))
        assert att.value == pytest.approx(-0.5)
        assert att.subject == "alice"
        assert att.predicate == "trusts"
        assert att.chain == "base"

    def test_no_positions_is_neutral(self):
        assert triple_to_attestation(_triple(pro=0, con=0)).value == 0.0


class TestIntuitionClient:

    def test_fetch_all_edges_stops_on_short_page(self):
        offsets = []

        def handler(request):
            body = json.loads(request.content)
            offsets.append(body["variables"]["offset"])
            assert request.headers["Authorization"] == "Bearer secret"
            page = [_triple(i) for i in range(2)] if body["variables"]["offset"] == 0 else [_triple(9)]
            return httpx.Response(200, json={"data": {"triples": page}})

        edges = _run_client(handler, lambda c: c.fetch_all_edges(batch_size=2, max_batches=10))
        assert offsets == [0, 2]
        assert len(edges) == 9

    def test_fetch_all_edges_respects_max_batches(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json={"data": {"triples": [_triple(0), _triple(1)]}})

        _run_client(handler, lambda c: c.fetch_all_edges(batch_size=2, max_batches=3))
        assert len(calls) == 3

    def test_graphql_error_raises(self):
        def handler(request):
            return httpx.Response(200, json={"errors": [{"message": "field not found"}]})

        with pytest.raises(CollaboratorUnavailable, match="field not found"):
            _run_client(handler, lambda c: c.fetch_trust_edges())

    def test_http_error_raises(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(CollaboratorUnavailable) as exc:
            _run_client(handler, lambda c: c.fetch_attestations_for_address(A))
        assert exc.value.source == SOURCE

    def test_attestations_query_lowercases_address(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content)["variables"])
            return httpx.Response(200, json={"data": {"triples": [_triple()]}})

        result = _run_client(handler, lambda c: c.fetch_attestations_for_address("0x" + "AB" * 20, 50))
        assert seen == {"address": "0x" + "ab" * 20, "limit": 50}
        assert len(result) == 1

    def test_account_stats(self):
        def handler(request):
            account = {"id": A, "label": "alice",
                       "atom": {"id": "1", "vault": {"total_shares": "250000", "position_count": 7}}}
            return httpx.Response(200, json={"data": {"account": account}})

        stats = _run_client(handler, lambda c: c.get_account_stats(A))
        assert stats == AccountStats(attestation_count=7, total_staked=250000.0)

    def test_missing_account(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"account": None}})

        assert _run_client(handler, lambda c: c.get_account_stats(A)) is None


class TestFactors:

    @pytest.mark.parametrize("count,score", [(0, 0), (1, 20), (5, 40), (10, 60), (20, 80), (50, 100)])
    def test_volume_table(self, count, score):
        assert score_attestation_count(count) == score

    @pytest.mark.parametrize("shares,score", [(0, 0), (100, 20), (1e3, 40), (1e4, 60), (1e5, 80), (1e6, 100)])
    def test_stake_table(self, shares, score):
        assert score_stake_weight(shares) == score

    def test_no_data_no_factors(self):
        assert attestation_factors([], None) == []

    def test_stats_without_attestations(self):
        factors = attestation_factors([], AccountStats())
        assert [f.name for f in factors] == ["Attestation Volume"]
        assert factors[0].score == 0

    def test_sentiment_percentage(self):
        atts = [attestation(1.0, 0), attestation(0.5, 1), attestation(-1.0, 2), attestation(0.0, 3)]
        factors = {f.name: f for f in attestation_factors(atts, AccountStats(total_staked=150))}
        assert factors["Attestation Volume"].score == 20
        assert factors["Attestation Sentiment"].score == 50
        assert factors["Attestation Sentiment"].description == "2 positive, 1 negative attestations"
        assert factors["Stake Weight"].score == 20
        assert factors["Stake Weight"].weight == 0.1
