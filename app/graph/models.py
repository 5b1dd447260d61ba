"""
Trust Graph — Domain Model

Plain dataclasses shared by the solver, the graph queries, the edge stores
and the score aggregator.

    (:Address {address, eigenTrustScore, isPreTrusted})
        -[:TRUSTS {weight, source, timestamp}]->
    (:Address)

Edges are upserted on (from, to, source); a newer observation replaces the
older one, nothing is deleted implicitly.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional, Any


class TrustLevel(str, Enum):
    UNKNOWN    = "unknown"
    SUSPICIOUS = "suspicious"
    LOW        = "low"
    MODERATE   = "moderate"
    HIGH       = "high"
    VERY_HIGH  = "very_high"


class EntityType(str, Enum):
    WALLET   = "wallet"
    AGENT    = "agent"
    CONTRACT = "contract"
    UNKNOWN  = "unknown"


@dataclass(frozen=True)
class TrustEdge:
    """A directed trust assertion `from_addr -> to_addr`. Negative weight means distrust."""
    from_addr: str
    to_addr: str
    weight: float
    source: str = "unknown"
    timestamp: int = 0

    @property
    def key(self) -> tuple:
        return (self.from_addr, self.to_addr, self.source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_addr,
            "to": self.to_addr,
            "weight": self.weight,
            "source": self.source,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def from_record(record: dict) -> "TrustEdge":
        return TrustEdge(
            from_addr=record.get("from", ""),
            to_addr=record.get("to", ""),
            weight=float(record.get("weight") or 0.0),
            source=record.get("source") or "unknown",
            timestamp=int(record.get("timestamp") or 0),
        )


@dataclass
class TrustNode:
    address: str
    eigentrust_score: float = 0.0
    direct_trustors: int = 0
    direct_trustees: int = 0
    is_pre_trusted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PropagationResult:
    scores: Dict[str, float]
    iterations: int
    converged: bool


@dataclass(frozen=True)
class GraphPath:
    """
    Ordered nodes plus the edges joining them.
    total_weight is the arithmetic mean of the edge weights along the path.
    """
    nodes: List[str]
    edges: List[TrustEdge]
    total_weight: float
    hops: int

    def __post_init__(self):
        if len(self.edges) != len(self.nodes) - 1 or self.hops != len(self.edges):
            raise ValueError("path edges must join consecutive nodes")

    @staticmethod
    def from_edges(edges: List[TrustEdge]) -> "GraphPath":
        if not edges:
            raise ValueError("a path needs at least one edge")
        nodes = [edges[0].from_addr] + [e.to_addr for e in edges]
        total = sum(e.weight for e in edges) / len(edges)
        return GraphPath(nodes=nodes, edges=list(edges), total_weight=total, hops=len(edges))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": list(self.nodes),
            "edges": [e.to_dict() for e in self.edges],
            "total_weight": self.total_weight,
            "hops": self.hops,
        }


@dataclass
class GraphNeighborhood:
    center: str
    nodes: List[TrustNode] = field(default_factory=list)
    edges: List[TrustEdge] = field(default_factory=list)
    depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "center": self.center,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "depth": self.depth,
        }


@dataclass(frozen=True)
class TrustFactor:
    name: str
    score: float        # 0-100
    weight: float       # 0-1, factors need not sum to 1
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── External collaborator payloads ─────────────────

@dataclass(frozen=True)
class AttestationData:
    id: str
    subject: str
    predicate: str
    object: str
    creator: str
    value: float        # sentiment in [-1, 1]
    timestamp: int
    chain: str = "base"


@dataclass(frozen=True)
class AccountStats:
    attestation_count: int = 0
    total_staked: float = 0.0


@dataclass(frozen=True)
class OnChainActivity:
    address: str
    chain: str
    transaction_count: int = 0
    unique_interactions: int = 0
    contracts_deployed: int = 0
    total_value_transferred: int = 0
    first_transaction: str = "unknown"
    last_transaction: str = "unknown"
    age: int = 0        # days


# ── Score records ──────────────────────────────────

@dataclass
class TrustMetadata:
    chain: str
    entity_type: EntityType = EntityType.UNKNOWN
    first_seen: Optional[str] = None
    last_active: Optional[str] = None
    total_transactions: Optional[int] = None
    attestation_count: Optional[int] = None
    graph_depth: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["entity_type"] = self.entity_type.value
        return data


@dataclass
class TrustScore:
    address: str
    score: int
    confidence: float
    level: TrustLevel
    factors: List[TrustFactor]
    metadata: TrustMetadata
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "score": self.score,
            "confidence": self.confidence,
            "level": self.level.value,
            "factors": [f.to_dict() for f in self.factors],
            "metadata": self.metadata.to_dict(),
            "timestamp": self.timestamp,
        }


@dataclass
class TrustQuery:
    target: str
    chain: str = "ethereum"
    depth: int = 3


@dataclass
class TrustResponse:
    query: TrustQuery
    score: TrustScore
    explanation: str
    paths: Optional[List[GraphPath]] = None
    neighborhood: Optional[GraphNeighborhood] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "query": asdict(self.query),
            "score": self.score.to_dict(),
            "explanation": self.explanation,
        }
        if self.paths is not None:
            data["paths"] = [p.to_dict() for p in self.paths]
        if self.neighborhood is not None:
            data["neighborhood"] = self.neighborhood.to_dict()
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TrustResponse":
        """Rebuild a response from its cached dict form."""
        q = data.get("query", {})
        s = data.get("score", {})
        m = s.get("metadata", {})
        metadata = TrustMetadata(
            chain=m.get("chain", "unknown"),
            entity_type=EntityType(m.get("entity_type", "unknown")),
            first_seen=m.get("first_seen"),
            last_active=m.get("last_active"),
            total_transactions=m.get("total_transactions"),
            attestation_count=m.get("attestation_count"),
            graph_depth=m.get("graph_depth"),
        )
        score = TrustScore(
            address=s.get("address", ""),
            score=int(s.get("score", 0)),
            confidence=float(s.get("confidence", 0.0)),
            level=TrustLevel(s.get("level", "unknown")),
            factors=[TrustFactor(**f) for f in s.get("factors", [])],
            metadata=metadata,
            timestamp=int(s.get("timestamp", 0)),
        )
        return TrustResponse(
            query=TrustQuery(**q),
            score=score,
            explanation=data.get("explanation", ""),
        )
