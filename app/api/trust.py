"""
Trust Graph — HTTP API

Public endpoints:
    GET  /v1/trust/score                   - Aggregated trust score for an address
    GET  /v1/trust/path                    - Fewest-hop trust path between two addresses
    GET  /v1/trust/connections/{address}   - Direct trustors and trustees
    GET  /v1/graph/stats                   - Node and edge counts

Maintenance endpoints:
    POST /v1/graph/sync                    - Pull attestation edges into the graph
    POST /v1/graph/recompute               - Full-graph EigenTrust, persisted onto nodes

Invalid addresses and same-address path queries answer 400 with the reason.
A missing path is not an error: 200 with `path: null` and an explanation.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
import structlog

from app.compute.errors import CollaboratorUnavailable
from app.compute.pipeline import get_path_service, get_scorer
from app.config import get_settings
from app.trust.helpers import TrustInputError, require_address
from app.trust.paths import TrustPathService
from app.trust.scorer import TrustScorer

logger = structlog.get_logger()


# =============================================
# RESPONSE MODELS
# =============================================

class PathResponse(BaseModel):
    source: str
    target: str
    max_hops: int
    path: Optional[Dict[str, Any]] = None
    explanation: str


class ConnectionsResponse(BaseModel):
    address: str
    trustors: List[str]
    trustees: List[str]
    explanation: str


class GraphStatsResponse(BaseModel):
    nodeCount: int
    edgeCount: int


class SyncResponse(BaseModel):
    edges: int


class RecomputeResponse(BaseModel):
    nodes: int
    iterations: int
    converged: bool
    stored: bool


def _bad_request(e: TrustInputError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


# =============================================
# TRUST ENDPOINTS
# =============================================

trust_router = APIRouter(prefix="/v1/trust", tags=["trust"])


@trust_router.get("/score")
async def trust_score(
    address: str = Query(..., description="EVM address, 0x followed by 40 hex characters"),
    chain: str = Query("ethereum", description="Chain used for entity type detection"),
    depth: Optional[int] = Query(None, ge=1, le=6, description="Neighborhood depth for the graph factor"),
    force_refresh: bool = Query(False, description="Bypass the score cache"),
    scorer: TrustScorer = Depends(get_scorer),
) -> Dict[str, Any]:
    """
    Aggregated trust score: neighborhood EigenTrust, attestations and
    on-chain activity combined into one 0-100 score with a confidence.
    """
    try:
        require_address(address)
    except TrustInputError as e:
        raise _bad_request(e)

    depth = depth or get_settings().DEFAULT_GRAPH_DEPTH
    response = await scorer.score(address, chain=chain, depth=depth, force_refresh=force_refresh)

    logger.info("trust_score",
                address=response.score.address,
                score=response.score.score,
                level=response.score.level.value,
                confidence=response.score.confidence)
    return response.to_dict()


@trust_router.get("/path", response_model=PathResponse)
async def trust_path(
    source: str = Query(..., description="Address the trust path starts from"),
    target: str = Query(..., description="Address the trust path ends at"),
    max_hops: Optional[int] = Query(None, ge=1, le=10),
    paths: TrustPathService = Depends(get_path_service),
):
    hops = max_hops or paths.default_max_hops
    try:
        result = await paths.find_path(source, target, hops)
    except TrustInputError as e:
        raise _bad_request(e)

    path = result["path"]
    return PathResponse(
        source=source.lower(),
        target=target.lower(),
        max_hops=hops,
        path=None if path is None else path.to_dict(),
        explanation=result["explanation"],
    )


@trust_router.get("/connections/{address}", response_model=ConnectionsResponse)
async def trust_connections(
    address: str,
    paths: TrustPathService = Depends(get_path_service),
):
    try:
        result = await paths.get_connections(address)
    except TrustInputError as e:
        raise _bad_request(e)
    return ConnectionsResponse(address=address.lower(), **result)


# =============================================
# GRAPH ENDPOINTS
# =============================================

graph_router = APIRouter(prefix="/v1/graph", tags=["graph"])


@graph_router.get("/stats", response_model=GraphStatsResponse)
async def graph_stats(scorer: TrustScorer = Depends(get_scorer)):
    return GraphStatsResponse(**await scorer.get_graph_stats())


@graph_router.post("/sync", response_model=SyncResponse)
async def graph_sync(
    batch_size: int = Query(1000, ge=1, le=5000),
    scorer: TrustScorer = Depends(get_scorer),
):
    try:
        result = await scorer.sync_trust_graph(batch_size)
    except CollaboratorUnavailable as e:
        logger.warning("graph_sync_failed", source=e.source, error=e.detail)
        raise HTTPException(status_code=502, detail=str(e))
    return SyncResponse(**result)


@graph_router.post("/recompute", response_model=RecomputeResponse)
async def graph_recompute(scorer: TrustScorer = Depends(get_scorer)):
    return RecomputeResponse(**await scorer.recompute_global_scores())
