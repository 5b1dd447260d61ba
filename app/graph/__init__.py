"""
Trust Graph Engine — propagation solver, graph queries and edge stores.
"""
from app.graph.models import (
    TrustEdge,
    TrustNode,
    PropagationResult,
    GraphPath,
    GraphNeighborhood,
    TrustFactor,
)
from app.graph.eigentrust import EigenTrustEngine, SolverConfig
from app.graph.queries import TrustGraph
