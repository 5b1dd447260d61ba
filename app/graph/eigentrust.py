"""
Trust Graph — EigenTrust Propagation Solver

Computes global trust values by power iteration over a row-stochastic
transition matrix built from the trust graph (Kamvar, Schlosser &
Garcia-Molina, 2003):

    t(0)   = p
    t(k+1) = (1 - a) * p + a * C^T * t(k)

    C  row-normalized trust matrix (negative weights clamped to 0,
       self-loops dropped, dangling rows replaced by 1/|N|)
    p  pre-trust distribution (uniform when no anchors are given)
    a  decay factor

Iteration stops when the L1 distance between consecutive iterates drops
below the convergence threshold, or after max_iterations.

The matrix is never materialized: each row is kept as an adjacency dict
plus its sum, so a step costs O(edges + nodes). Dangling rows are folded
into a single scalar per step.
"""
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

import structlog

from app.graph.models import TrustEdge, PropagationResult

logger = structlog.get_logger()


@dataclass(frozen=True)
class SolverConfig:
    """
    decay_factor           weight of the network opinion vs. the pre-trust baseline
    convergence_threshold  L1 distance between iterates that counts as converged
    max_iterations         hard stop; the result is then flagged converged=False
    """
    decay_factor: float = 0.85
    convergence_threshold: float = 1e-4
    max_iterations: int = 50

    def __post_init__(self):
        if not 0.0 <= self.decay_factor <= 1.0:
            raise ValueError(f"decay_factor must be in [0, 1], got {self.decay_factor}")
        if self.convergence_threshold <= 0:
            raise ValueError("convergence_threshold must be positive")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")


class EigenTrustEngine:
    """
    Stateless solver. One engine may serve concurrent callers as long as
    each call passes its own edge snapshot.
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()

    def compute(
        self,
        edges: Iterable[TrustEdge],
        pre_trusted: Optional[Set[str]] = None,
    ) -> PropagationResult:
        """
        Compute global trust for every node appearing in `edges`.

        Returns an empty, converged result for an empty graph. Never raises
        for odd weights; non-convergence is reported, not raised.
        """
        edges = list(edges)
        nodes, index = _index_nodes(edges)
        n = len(nodes)

        if n == 0:
            return PropagationResult(scores={}, iterations=0, converged=True)

        rows, row_sums = _build_rows(edges, index, n)
        dangling = [i for i in range(n) if row_sums[i] == 0.0]
        p = _pre_trust_vector(nodes, index, pre_trusted or set())

        a = self.config.decay_factor
        uniform = 1.0 / n
        t = list(p)
        iterations = 0
        converged = False

        while iterations < self.config.max_iterations:
            dangling_mass = sum(t[i] for i in dangling) * uniform
            flow = [dangling_mass] * n
            for i, row in enumerate(rows):
                if not row:
                    continue
                share = t[i] / row_sums[i]
                if share == 0.0:
                    continue
                for j, w in row.items():
                    flow[j] += w * share

            t_new = [(1.0 - a) * p[j] + a * flow[j] for j in range(n)]
            diff = sum(abs(t_new[j] - t[j]) for j in range(n))

            t = t_new
            iterations += 1

            if diff < self.config.convergence_threshold:
                converged = True
                break

        if not converged:
            logger.warning("eigentrust_not_converged",
                           nodes=n, edges=len(edges), iterations=iterations)
        else:
            logger.debug("eigentrust_converged", nodes=n, iterations=iterations)

        return PropagationResult(
            scores={nodes[i]: t[i] for i in range(n)},
            iterations=iterations,
            converged=converged,
        )

    @staticmethod
    def score_for(result: PropagationResult, node_id: str) -> float:
        """Trust value for a node, 0.0 when the node is not in the result."""
        if node_id in result.scores:
            return result.scores[node_id]
        return result.scores.get(node_id.lower(), 0.0)

    @staticmethod
    def top_n(result: PropagationResult, n: int) -> List[Tuple[str, float]]:
        """Highest scores first; equal scores are ordered by node id."""
        if n <= 0:
            return []
        ranked = sorted(result.scores.items(), key=lambda kv: (-kv[1], kv[0]))
        return ranked[:n]


# ── Matrix construction ────────────────────────────

def _index_nodes(edges: List[TrustEdge]) -> Tuple[List[str], Dict[str, int]]:
    """Nodes in order of first appearance."""
    index: Dict[str, int] = {}
    nodes: List[str] = []
    for edge in edges:
        for addr in (edge.from_addr, edge.to_addr):
            if addr not in index:
                index[addr] = len(nodes)
                nodes.append(addr)
    return nodes, index


def _build_rows(
    edges: List[TrustEdge],
    index: Dict[str, int],
    n: int,
) -> Tuple[List[Dict[int, float]], List[float]]:
    # Later edges for the same (i, j) pair overwrite earlier ones.
    rows: List[Dict[int, float]] = [{} for _ in range(n)]
    for edge in edges:
        i = index[edge.from_addr]
        j = index[edge.to_addr]
        if i == j:
            continue
        weight = float(edge.weight)
        if math.isfinite(weight) and weight > 0.0:
            rows[i][j] = weight
        else:
            rows[i].pop(j, None)

    row_sums = [sum(row.values()) for row in rows]
    return rows, row_sums


def _pre_trust_vector(nodes: List[str], index: Dict[str, int], pre_trusted: Set[str]) -> List[float]:
    n = len(nodes)
    anchors = [index[addr] for addr in pre_trusted if addr in index]
    if not anchors:
        return [1.0 / n] * n
    p = [0.0] * n
    mass = 1.0 / len(anchors)
    for i in anchors:
        p[i] = mass
    return p
