"""
Trust Graph — Edge Stores

The persisted directed weighted multigraph behind the engine. Two
implementations of one contract:

    InMemoryEdgeStore   process-local snapshot (tests, CLI dry runs)
    Neo4jEdgeStore      (:Address)-[:TRUSTS]->(:Address) in Neo4j

Both lowercase addresses before lookup and upsert edges on
(from, to, source): a newer edge replaces the older one with the same key.
Neither deletes edges implicitly.

Dependencies: neo4j >= 5.17.0
"""
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

import structlog

from app.graph.models import TrustEdge, TrustNode, GraphPath, GraphNeighborhood
from app.graph.queries import TrustGraph

logger = structlog.get_logger()


def _normalized(edge: TrustEdge) -> TrustEdge:
    return TrustEdge(
        from_addr=edge.from_addr.lower(),
        to_addr=edge.to_addr.lower(),
        weight=edge.weight,
        source=edge.source,
        timestamp=edge.timestamp,
    )


class EdgeStore(ABC):

    @abstractmethod
    def get_all_edges(self) -> List[TrustEdge]:
        ...

    @abstractmethod
    def get_neighborhood(self, address: str, depth: int = 2) -> GraphNeighborhood:
        ...

    @abstractmethod
    def find_trust_path(self, from_addr: str, to_addr: str, max_hops: int = 5) -> Optional[GraphPath]:
        ...

    @abstractmethod
    def get_direct_connections(self, address: str) -> Dict[str, List[str]]:
        ...

    @abstractmethod
    def upsert_edges_batch(self, edges: Iterable[TrustEdge]) -> int:
        ...

    @abstractmethod
    def store_scores(self, scores: Dict[str, float]) -> int:
        ...

    @abstractmethod
    def mark_pre_trusted(self, addresses: Iterable[str]) -> int:
        ...

    @abstractmethod
    def get_stats(self) -> Dict[str, int]:
        ...

    def upsert_edge(self, edge: TrustEdge) -> int:
        return self.upsert_edges_batch([edge])

    def close(self):
        pass


# =============================================
# IN-MEMORY
# =============================================

class InMemoryEdgeStore(EdgeStore):
    """
    Dict-backed store. Queries run over a TrustGraph built from a copy of
    the current edges, so readers never observe a half-applied batch.
    """

    def __init__(self, edges: Iterable[TrustEdge] = (), pre_trusted: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._edges: Dict[tuple, TrustEdge] = {}
        self._scores: Dict[str, float] = {}
        self._pre_trusted: Set[str] = {a.lower() for a in pre_trusted}
        self.upsert_edges_batch(edges)

    def _snapshot(self) -> TrustGraph:
        with self._lock:
            return TrustGraph(list(self._edges.values()), dict(self._scores), set(self._pre_trusted))

    def get_all_edges(self) -> List[TrustEdge]:
        with self._lock:
            return list(self._edges.values())

    def get_neighborhood(self, address: str, depth: int = 2) -> GraphNeighborhood:
        return self._snapshot().get_neighborhood(address.lower(), depth)

    def find_trust_path(self, from_addr: str, to_addr: str, max_hops: int = 5) -> Optional[GraphPath]:
        return self._snapshot().find_path(from_addr.lower(), to_addr.lower(), max_hops)

    def get_direct_connections(self, address: str) -> Dict[str, List[str]]:
        return self._snapshot().get_direct_connections(address.lower())

    def upsert_edges_batch(self, edges: Iterable[TrustEdge]) -> int:
        count = 0
        with self._lock:
            for edge in edges:
                edge = _normalized(edge)
                self._edges.pop(edge.key, None)
                self._edges[edge.key] = edge
                count += 1
        return count

    def store_scores(self, scores: Dict[str, float]) -> int:
        with self._lock:
            known = {a for key in self._edges for a in key[:2]}
            stored = {a: s for a, s in scores.items() if a in known}
            self._scores.update(stored)
        return len(stored)

    def get_node(self, address: str) -> Optional[TrustNode]:
        graph = self._snapshot()
        address = address.lower()
        if address not in graph:
            return None
        return graph.node_info(address)

    def mark_pre_trusted(self, addresses: Iterable[str]) -> int:
        with self._lock:
            self._pre_trusted = {a.lower() for a in addresses}
            return len(self._pre_trusted)

    def get_stats(self) -> Dict[str, int]:
        graph = self._snapshot()
        return {"nodeCount": len(graph.nodes), "edgeCount": len(graph.edges)}


# =============================================
# NEO4J
# =============================================

class Neo4jEdgeStore(EdgeStore):
    """
    Cypher-backed store. Sessions come from app.db.neo4j so every query
    shares the process-wide driver.
    """

    def __init__(self, session_factory=None):
        if session_factory is None:
            from app.db.neo4j import get_session
            session_factory = get_session
        self._session = session_factory

    def get_all_edges(self) -> List[TrustEdge]:
        with self._session() as session:
            result = session.run("""
                MATCH (a:Address)-[r:TRUSTS]->(b:Address)
                RETURN a.address AS from, b.address AS to, r.weight AS weight,
                       r.source AS source, r.timestamp AS timestamp
            """)
            return [TrustEdge.from_record(dict(record)) for record in result]

    def get_neighborhood(self, address: str, depth: int = 2) -> GraphNeighborhood:
        addr = address.lower()
        depth = max(int(depth), 0)
        with self._session() as session:
            # Variable-length bounds cannot be parameters; depth is an int.
            nodes_result = session.run(f"""
                MATCH (center:Address {{address: $address}})
                MATCH (center)-[:TRUSTS*0..{depth}]->(n:Address)
                WITH DISTINCT n
                OPTIONAL MATCH (t:Address)-[:TRUSTS]->(n)
                WITH n, count(DISTINCT t) AS trustors
                OPTIONAL MATCH (n)-[:TRUSTS]->(e:Address)
                RETURN n.address AS address,
                       coalesce(n.eigenTrustScore, 0.0) AS score,
                       coalesce(n.isPreTrusted, false) AS pre_trusted,
                       trustors,
                       count(DISTINCT e) AS trustees
            """, address=addr)
            nodes = [
                TrustNode(
                    address=r["address"],
                    eigentrust_score=r["score"],
                    direct_trustors=r["trustors"],
                    direct_trustees=r["trustees"],
                    is_pre_trusted=r["pre_trusted"],
                )
                for r in nodes_result
            ]
            if not nodes:
                return GraphNeighborhood(center=addr, nodes=[], edges=[], depth=depth)

            addresses = [n.address for n in nodes]
            edges_result = session.run("""
                MATCH (a:Address)-[r:TRUSTS]->(b:Address)
                WHERE a.address IN $addresses AND b.address IN $addresses
                RETURN a.address AS from, b.address AS to, r.weight AS weight,
                       r.source AS source, r.timestamp AS timestamp
            """, addresses=addresses)
            edges = [TrustEdge.from_record(dict(record)) for record in edges_result]

        return GraphNeighborhood(center=addr, nodes=nodes, edges=edges, depth=depth)

    def find_trust_path(self, from_addr: str, to_addr: str, max_hops: int = 5) -> Optional[GraphPath]:
        max_hops = int(max_hops)
        if max_hops < 1:
            return None
        with self._session() as session:
            record = session.run(f"""
                MATCH path = shortestPath(
                    (a:Address {{address: $from}})-[:TRUSTS*1..{max_hops}]->(b:Address {{address: $to}})
                )
                RETURN [n IN nodes(path) | n.address] AS nodes,
                       [r IN relationships(path) |
                            {{weight: r.weight, source: r.source, timestamp: r.timestamp}}] AS edges
            """, {"from": from_addr.lower(), "to": to_addr.lower()}).single()

        if record is None:
            return None

        node_addrs = record["nodes"]
        edges = [
            TrustEdge(
                from_addr=node_addrs[i],
                to_addr=node_addrs[i + 1],
                weight=float(e.get("weight") or 0.0),
                source=e.get("source") or "unknown",
                timestamp=int(e.get("timestamp") or 0),
            )
            for i, e in enumerate(record["edges"])
        ]
        return GraphPath.from_edges(edges)

    def get_direct_connections(self, address: str) -> Dict[str, List[str]]:
        addr = address.lower()
        with self._session() as session:
            trustors = session.run("""
                MATCH (a:Address)-[:TRUSTS]->(target:Address {address: $address})
                WHERE a <> target
                RETURN DISTINCT a.address AS address
            """, address=addr)
            trustor_list = [r["address"] for r in trustors]
            trustees = session.run("""
                MATCH (target:Address {address: $address})-[:TRUSTS]->(b:Address)
                WHERE b <> target
                RETURN DISTINCT b.address AS address
            """, address=addr)
            trustee_list = [r["address"] for r in trustees]
        return {"trustors": trustor_list, "trustees": trustee_list}

    def upsert_edges_batch(self, edges: Iterable[TrustEdge]) -> int:
        rows = [_normalized(e).to_dict() for e in edges]
        if not rows:
            return 0
        with self._session() as session:
            session.run("""
                UNWIND $edges AS e
                MERGE (a:Address {address: e.from})
                MERGE (b:Address {address: e.to})
                MERGE (a)-[r:TRUSTS {source: e.source}]->(b)
                SET r.weight = e.weight, r.timestamp = e.timestamp, r.updatedAt = timestamp()
            """, edges=rows)
        logger.info("edges_upserted", count=len(rows))
        return len(rows)

    def store_scores(self, scores: Dict[str, float]) -> int:
        entries = [{"address": a, "score": s} for a, s in scores.items()]
        if not entries:
            return 0
        with self._session() as session:
            record = session.run("""
                UNWIND $entries AS entry
                MATCH (n:Address {address: entry.address})
                SET n.eigenTrustScore = entry.score, n.scoredAt = $scored_at
                RETURN count(n) AS stored
            """, entries=entries, scored_at=int(time.time() * 1000)).single()
        return record["stored"] if record else 0

    def mark_pre_trusted(self, addresses: Iterable[str]) -> int:
        addrs = [a.lower() for a in addresses]
        with self._session() as session:
            session.run("MATCH (n:Address) WHERE n.isPreTrusted = true SET n.isPreTrusted = false")
            record = session.run("""
                UNWIND $addresses AS addr
                MATCH (n:Address {address: addr})
                SET n.isPreTrusted = true
                RETURN count(n) AS marked
            """, addresses=addrs).single()
        return record["marked"] if record else 0

    def get_stats(self) -> Dict[str, int]:
        with self._session() as session:
            record = session.run("""
                CALL { MATCH (n:Address) RETURN count(n) AS nodes }
                CALL { MATCH ()-[r:TRUSTS]->() RETURN count(r) AS edges }
                RETURN nodes, edges
            """).single()
        return {"nodeCount": record["nodes"], "edgeCount": record["edges"]}
