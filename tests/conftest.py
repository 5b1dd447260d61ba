"""
Shared fixtures: well-formed addresses, fake collaborators and an
in-memory graph. No Neo4j, Redis or network is needed.
"""
from typing import Dict, List, Optional

import pytest

from app.compute.errors import CollaboratorUnavailable
from app.graph.models import AccountStats, AttestationData, EntityType, OnChainActivity, TrustEdge
from app.graph.store import InMemoryEdgeStore


def addr(n: int) -> str:
    """Deterministic lowercase address: addr(1) -> 0x000...0001."""
    return "0x" + format(n, "040x")


A, B, C, D, E, F = (addr(i) for i in range(1, 7))


def edge(src: str, dst: str, weight: float = 1.0, source: str = "test") -> TrustEdge:
    return TrustEdge(src, dst, weight, source, 0)


class FakeAttestations:
    def __init__(self, attestations: Optional[List[AttestationData]] = None,
                 stats: Optional[AccountStats] = None,
                 edges: Optional[List[TrustEdge]] = None,
                 fail: bool = False):
        self.attestations = attestations or []
        self.stats = stats
        self.edges = edges or []
        self.fail = fail
        self.calls = 0

    async def fetch_attestations_for_address(self, address, limit=100):
        self.calls += 1
        if self.fail:
            raise CollaboratorUnavailable("intuition", "connection refused")
        return self.attestations

    async def get_account_stats(self, address):
        if self.fail:
            raise CollaboratorUnavailable("intuition", "connection refused")
        return self.stats

    async def fetch_all_edges(self, batch_size=1000, max_batches=10):
        if self.fail:
            raise CollaboratorUnavailable("intuition", "connection refused")
        return self.edges


class FakeActivity:
    def __init__(self, activities: Optional[List[OnChainActivity]] = None,
                 entity_type: EntityType = EntityType.WALLET,
                 fail: bool = False):
        self.activities = activities or []
        self.entity_type = entity_type
        self.fail = fail

    async def analyze(self, address):
        if self.fail:
            raise CollaboratorUnavailable("ethereum", "timeout")
        return self.activities

    async def detect_entity_type(self, address, chain="ethereum"):
        return self.entity_type


class FakeCache:
    """Dict-backed stand-in with the ScoreCache interface."""

    def __init__(self):
        self.data: Dict[tuple, dict] = {}
        self.sets = 0
        self.invalidated = 0

    def get(self, address, chain, depth):
        return self.data.get((address, chain, depth))

    def set(self, address, chain, depth, data, failed=False):
        self.sets += 1
        self.data[(address, chain, depth)] = data
        return True

    def acquire_lock(self, address, chain, depth):
        return True

    def release_lock(self, address, chain, depth):
        pass

    def invalidate_all(self):
        self.invalidated += 1
        count = len(self.data)
        self.data.clear()
        return count


def attestation(value: float, n: int = 0) -> AttestationData:
    return AttestationData(
        id=str(n), subject=A, predicate="trusts", object=B,
        creator=C, value=value, timestamp=0,
    )


@pytest.fixture
def star_store():
    """Three trustors point at D; D points back at A."""
    return InMemoryEdgeStore([edge(A, D), edge(B, D), edge(C, D), edge(D, A)])


@pytest.fixture
def rich_activity():
    return FakeActivity([
        OnChainActivity(address=A, chain="ethereum", transaction_count=1200,
                        unique_interactions=840, age=800,
                        first_transaction="2022-01-01T00:00:00Z",
                        last_transaction="2024-06-01T00:00:00Z"),
        OnChainActivity(address=A, chain="base", transaction_count=40,
                        unique_interactions=28, age=200,
                        first_transaction="2023-03-01T00:00:00Z",
                        last_transaction="2024-07-01T00:00:00Z"),
    ])
