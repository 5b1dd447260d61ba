"""
Compute — Pipeline Wiring

Every request and job reaches the graph through these lazily built
singletons:

    Settings → EdgeStore (Neo4j) ─┐
             → IntuitionClient  ──┼→ TrustScorer
             → OnChainAnalyzer  ──┤
             → ScoreCache (Redis)─┘
                      EdgeStore  ──→ TrustPathService

Nothing connects at import time. The Neo4j driver opens on the first
session, Redis on the first cache lookup.
"""
from typing import Optional

import structlog

from app.compute.attestations import IntuitionClient
from app.compute.cache import ScoreCache
from app.compute.onchain import OnChainAnalyzer
from app.config import get_settings
from app.graph.eigentrust import EigenTrustEngine
from app.graph.store import EdgeStore, Neo4jEdgeStore
from app.trust.paths import TrustPathService
from app.trust.scorer import TrustScorer

logger = structlog.get_logger()

# Singleton instances (initialized on first use)
_store: Optional[EdgeStore] = None
_attestations: Optional[IntuitionClient] = None
_activity: Optional[OnChainAnalyzer] = None
_cache: Optional[ScoreCache] = None
_scorer: Optional[TrustScorer] = None
_paths: Optional[TrustPathService] = None


def get_store() -> EdgeStore:
    global _store
    if _store is None:
        _store = Neo4jEdgeStore()
    return _store


def get_attestation_source() -> IntuitionClient:
    global _attestations
    if _attestations is None:
        s = get_settings()
        _attestations = IntuitionClient(s.INTUITION_API_URL, s.INTUITION_API_KEY)
    return _attestations


def get_activity_source() -> OnChainAnalyzer:
    global _activity
    if _activity is None:
        _activity = OnChainAnalyzer(get_settings().RPC_URLS)
    return _activity


def get_cache() -> ScoreCache:
    global _cache
    if _cache is None:
        s = get_settings()
        _cache = ScoreCache(s.REDIS_URL, ttl=s.CACHE_TTL_SCORE)
    return _cache


def get_scorer() -> TrustScorer:
    global _scorer
    if _scorer is None:
        s = get_settings()
        _scorer = TrustScorer(
            store=get_store(),
            attestations=get_attestation_source(),
            activity=get_activity_source(),
            engine=EigenTrustEngine(s.solver_config()),
            cache=get_cache(),
            pre_trusted=s.PRE_TRUSTED_ADDRESSES,
            sync_max_batches=s.SYNC_MAX_BATCHES,
        )
        logger.info("scorer_ready", chains=get_activity_source().chains,
                    pre_trusted=len(s.PRE_TRUSTED_ADDRESSES))
    return _scorer


def get_path_service() -> TrustPathService:
    global _paths
    if _paths is None:
        _paths = TrustPathService(get_store(), default_max_hops=get_settings().DEFAULT_MAX_HOPS)
    return _paths


def shutdown():
    """Release pooled connections; the next getter call rebuilds them."""
    global _store, _attestations, _activity, _cache, _scorer, _paths
    if _cache is not None:
        _cache.close()
    if _store is not None:
        _store.close()
    _store = _attestations = _activity = _cache = _scorer = _paths = None
