"""
Trust Graph — Snapshot Queries

A read-only view over one edge snapshot answering the graph-query
contract that the solver and the score aggregator depend on:

    find_path(from, to, max_hops)   fewest-hop directed path, or None
    get_direct_connections(addr)    trustors (in) and trustees (out)
    get_neighborhood(center, depth) induced subgraph within `depth` hops

Path selection is deterministic: breadth-first search expands each node's
successors strongest edge first (ties by address), and the first path to
reach the target wins. Between two adjacent nodes the strongest edge
represents the pair. Traversal follows edge direction only and ignores
weight sign; this is a structural query, not a trust-weighted one.
"""
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from app.graph.models import TrustEdge, TrustNode, GraphPath, GraphNeighborhood


class TrustGraph:

    def __init__(
        self,
        edges: Iterable[TrustEdge],
        scores: Optional[Dict[str, float]] = None,
        pre_trusted: Optional[Set[str]] = None,
    ):
        self.edges: List[TrustEdge] = list(edges)
        self._scores = scores or {}
        self._pre_trusted = pre_trusted or set()

        self._out: Dict[str, List[TrustEdge]] = {}
        self._in: Dict[str, List[TrustEdge]] = {}
        for edge in self.edges:
            self._out.setdefault(edge.from_addr, []).append(edge)
            self._in.setdefault(edge.to_addr, []).append(edge)

    @property
    def nodes(self) -> Set[str]:
        return set(self._out) | set(self._in)

    def __contains__(self, address: str) -> bool:
        return address in self._out or address in self._in

    # ── Shortest path ─────────────────────────────

    def find_path(self, from_addr: str, to_addr: str, max_hops: int = 5) -> Optional[GraphPath]:
        """
        Fewest-hop directed path from `from_addr` to `to_addr` using at most
        `max_hops` edges. Returns None when no such path exists.
        """
        if from_addr == to_addr:
            raise ValueError("path endpoints must differ")
        if max_hops < 1 or from_addr not in self._out or to_addr not in self._in:
            return None

        via: Dict[str, TrustEdge] = {}
        visited = {from_addr}
        frontier = deque([(from_addr, 0)])

        while frontier:
            node, hops = frontier.popleft()
            if hops >= max_hops:
                continue
            for edge in self._successors(node):
                nxt = edge.to_addr
                if nxt in visited:
                    continue
                visited.add(nxt)
                via[nxt] = edge
                if nxt == to_addr:
                    return GraphPath.from_edges(self._unwind(via, from_addr, to_addr))
                frontier.append((nxt, hops + 1))

        return None

    def _successors(self, node: str) -> List[TrustEdge]:
        strongest: Dict[str, TrustEdge] = {}
        for edge in self._out.get(node, []):
            if edge.to_addr == node:
                continue
            best = strongest.get(edge.to_addr)
            if best is None or (edge.weight, edge.source) > (best.weight, best.source):
                strongest[edge.to_addr] = edge
        return sorted(strongest.values(), key=lambda e: (-e.weight, e.to_addr))

    @staticmethod
    def _unwind(via: Dict[str, TrustEdge], start: str, end: str) -> List[TrustEdge]:
        path = []
        node = end
        while node != start:
            edge = via[node]
            path.append(edge)
            node = edge.from_addr
        path.reverse()
        return path

    # ── Direct connections ────────────────────────

    def get_direct_connections(self, address: str) -> Dict[str, List[str]]:
        """Who points at `address` and whom it points at, deduplicated in edge order."""
        trustors = _unique(e.from_addr for e in self._in.get(address, []) if e.from_addr != address)
        trustees = _unique(e.to_addr for e in self._out.get(address, []) if e.to_addr != address)
        return {"trustors": trustors, "trustees": trustees}

    # ── Neighborhood ──────────────────────────────

    def get_neighborhood(self, center: str, depth: int = 2) -> GraphNeighborhood:
        """
        Nodes reachable from `center` within `depth` directed hops (center
        included) and every edge with both endpoints in that set, so the
        solver sees reciprocal and cross edges, not just the traversal tree.
        """
        if center not in self:
            return GraphNeighborhood(center=center, nodes=[], edges=[], depth=depth)

        reached = [center]
        seen = {center}
        frontier = [center]
        for _ in range(max(depth, 0)):
            nxt_frontier = []
            for node in frontier:
                for edge in self._out.get(node, []):
                    if edge.to_addr not in seen:
                        seen.add(edge.to_addr)
                        reached.append(edge.to_addr)
                        nxt_frontier.append(edge.to_addr)
            if not nxt_frontier:
                break
            frontier = nxt_frontier

        edges = [e for e in self.edges if e.from_addr in seen and e.to_addr in seen]
        nodes = [self.node_info(addr) for addr in reached]
        return GraphNeighborhood(center=center, nodes=nodes, edges=edges, depth=depth)

    def node_info(self, address: str) -> TrustNode:
        conns = self.get_direct_connections(address)
        return TrustNode(
            address=address,
            eigentrust_score=self._scores.get(address, 0.0),
            direct_trustors=len(conns["trustors"]),
            direct_trustees=len(conns["trustees"]),
            is_pre_trusted=address in self._pre_trusted,
        )


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out
