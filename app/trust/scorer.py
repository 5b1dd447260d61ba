"""
Trust Layer — Score Aggregator

Combines three independent data source categories into one TrustScore:

    graph          EigenTrust over the target's neighborhood (local, cheap,
                   not comparable across neighborhoods)
    attestations   knowledge-graph claims about the address
    on-chain       behavioral activity across configured EVM chains

    Request → Cache Check → [Fan-out: graph | attestations | on-chain | entity]
            → Weighted Average → Level → Confidence → Cache → Response

Every source can fail independently. A failed or circuit-broken source
contributes zero factors and lowers the confidence; it never aborts the
score.

The authoritative global scores come from a separate, explicitly triggered
full-graph solve (`recompute_global_scores`) persisted back onto nodes.
"""
import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from app.compute.attestations import attestation_factors
from app.compute.circuit import CircuitBreaker, default_breakers
from app.compute.onchain import activity_to_factors
from app.graph.eigentrust import EigenTrustEngine
from app.graph.models import (
    EntityType,
    OnChainActivity,
    TrustFactor,
    TrustLevel,
    TrustMetadata,
    TrustQuery,
    TrustResponse,
    TrustScore,
)
from app.graph.store import EdgeStore
from app.trust.explain import explain_score
from app.trust.helpers import (
    InvalidAddressError,
    confidence_for_sources,
    normalize_score,
    require_address,
    score_to_level,
    weighted_average,
)

logger = structlog.get_logger()

GRAPH_FACTOR = "Graph Trust (EigenTrust)"
GRAPH_FACTOR_WEIGHT = 0.35
MIN_NORMALIZATION_CEILING = 0.001


def _now_ms() -> int:
    return int(time.time() * 1000)


def error_response(query: TrustQuery, message: str) -> TrustResponse:
    score = TrustScore(
        address=query.target,
        score=0,
        confidence=0.0,
        level=TrustLevel.UNKNOWN,
        factors=[],
        metadata=TrustMetadata(chain=query.chain or "unknown", entity_type=EntityType.UNKNOWN),
        timestamp=_now_ms(),
    )
    return TrustResponse(query=query, score=score, explanation=f"Error: {message}")


class TrustScorer:
    """
    Collaborators are injected:
        store         EdgeStore (blocking; called through worker threads)
        attestations  async source with fetch_attestations_for_address,
                      get_account_stats and fetch_all_edges
        activity      async source with analyze and detect_entity_type
        cache         optional ScoreCache
    """

    def __init__(
        self,
        store: EdgeStore,
        attestations=None,
        activity=None,
        engine: Optional[EigenTrustEngine] = None,
        cache=None,
        pre_trusted: Iterable[str] = (),
        breakers: Optional[Dict[str, CircuitBreaker]] = None,
        sync_max_batches: int = 10,
    ):
        self.store = store
        self.attestations = attestations
        self.activity = activity
        self.engine = engine or EigenTrustEngine()
        self.cache = cache
        self.pre_trusted = frozenset(a.lower() for a in pre_trusted)
        self.breakers = breakers if breakers is not None else default_breakers()
        self.sync_max_batches = sync_max_batches

    # =============================================
    # ON-DEMAND SCORE
    # =============================================

    async def score(
        self,
        target: str,
        chain: str = "ethereum",
        depth: int = 3,
        force_refresh: bool = False,
    ) -> TrustResponse:
        chain = chain or "ethereum"
        query = TrustQuery(target=target, chain=chain, depth=depth)
        try:
            address = require_address(target)
        except InvalidAddressError:
            logger.info("score_rejected", target=target)
            return error_response(query, "Invalid address format")

        if self.cache is not None and not force_refresh:
            cached = self.cache.get(address, chain, depth)
            if cached:
                logger.debug("score_from_cache", address=address, chain=chain)
                return TrustResponse.from_dict(cached)

        locked = self.cache.acquire_lock(address, chain, depth) if self.cache is not None else True
        if not locked:
            await asyncio.sleep(1.5)
            cached = self.cache.get(address, chain, depth)
            if cached:
                return TrustResponse.from_dict(cached)

        try:
            response = await self._aggregate(query, address, chain, depth)
            if self.cache is not None:
                self.cache.set(address, chain, depth, response.to_dict(),
                               failed=not response.score.factors)
            return response
        finally:
            if self.cache is not None and locked:
                self.cache.release_lock(address, chain, depth)

    async def _aggregate(self, query: TrustQuery, address: str, chain: str, depth: int) -> TrustResponse:
        start = time.time()
        logger.info("score_started", address=address, chain=chain, depth=depth)

        (graph, _), (attested, attestation_count), (behavioral, activities), entity_type = (
            await asyncio.gather(
                self._guarded("graph", self._graph_factors, address, depth),
                self._guarded("attestations", self._attestation_factors, address),
                self._guarded("onchain", self._activity_factors, address),
                self._entity_type(address, chain),
            )
        )

        factors: List[TrustFactor] = [*graph, *attested, *behavioral]
        final = weighted_average(factors) if factors else 0
        sources = sum(1 for group in (graph, attested, behavioral) if group)

        metadata = TrustMetadata(
            chain=chain,
            entity_type=entity_type,
            attestation_count=attestation_count if attested else None,
            graph_depth=depth,
        )
        if activities:
            metadata.total_transactions = sum(a.transaction_count for a in activities)
            seen = [a.first_transaction for a in activities if a.first_transaction != "unknown"]
            active = [a.last_transaction for a in activities if a.last_transaction != "unknown"]
            metadata.first_seen = min(seen) if seen else None
            metadata.last_active = max(active) if active else None

        score = TrustScore(
            address=address,
            score=final,
            confidence=confidence_for_sources(sources),
            level=score_to_level(final),
            factors=factors,
            metadata=metadata,
            timestamp=_now_ms(),
        )

        logger.info("score_completed", address=address, score=final, level=score.level.value,
                    sources=sources, duration_ms=round((time.time() - start) * 1000))
        return TrustResponse(query=query, score=score, explanation=explain_score(score))

    async def _guarded(self, source: str, fn, *args) -> Tuple[List[TrustFactor], Any]:
        """Run one source; a failure or an open circuit yields no factors."""
        breaker = self.breakers.get(source)
        if breaker is not None and not breaker.can_execute():
            logger.debug("score_source_skipped", source=source, reason="circuit_open")
            return [], None
        try:
            result = await fn(*args)
        except Exception as e:
            if breaker is not None:
                breaker.record_failure()
            logger.warning("score_source_failed", source=source, error=str(e))
            return [], None
        if breaker is not None:
            breaker.record_success()
        return result

    async def _graph_factors(self, address: str, depth: int) -> Tuple[List[TrustFactor], None]:
        neighborhood = await asyncio.to_thread(self.store.get_neighborhood, address, depth)
        if not neighborhood.edges:
            return [], None

        result = await asyncio.to_thread(self.engine.compute, neighborhood.edges)
        raw = self.engine.score_for(result, address)
        ceiling = max(max(result.scores.values()), MIN_NORMALIZATION_CEILING)
        connections = await asyncio.to_thread(self.store.get_direct_connections, address)

        factor = TrustFactor(
            name=GRAPH_FACTOR,
            score=normalize_score(raw, 0.0, ceiling),
            weight=GRAPH_FACTOR_WEIGHT,
            description=(
                f"Score from {len(neighborhood.nodes)} nodes, "
                f"{len(connections['trustors'])} trustors, {len(connections['trustees'])} trustees"
            ),
        )
        return [factor], None

    async def _attestation_factors(self, address: str) -> Tuple[List[TrustFactor], int]:
        if self.attestations is None:
            return [], 0
        attestations, stats = await asyncio.gather(
            self.attestations.fetch_attestations_for_address(address, 100),
            self.attestations.get_account_stats(address),
        )
        return attestation_factors(attestations, stats), len(attestations)

    async def _activity_factors(self, address: str) -> Tuple[List[TrustFactor], List[OnChainActivity]]:
        if self.activity is None:
            return [], []
        activities = await self.activity.analyze(address)
        return activity_to_factors(activities), activities

    async def _entity_type(self, address: str, chain: str) -> EntityType:
        if self.activity is None:
            return EntityType.UNKNOWN
        try:
            return await self.activity.detect_entity_type(address, chain)
        except Exception as e:
            logger.debug("entity_type_failed", address=address, chain=chain, error=str(e))
            return EntityType.UNKNOWN

    # =============================================
    # GLOBAL MAINTENANCE
    # =============================================

    async def recompute_global_scores(self) -> Dict[str, Any]:
        """
        Solve over every stored edge with the configured pre-trusted anchors
        and write the vector back onto the nodes. The write is best effort:
        `stored` reports whether it succeeded.
        """
        edges = await asyncio.to_thread(self.store.get_all_edges)
        result = await asyncio.to_thread(self.engine.compute, edges, set(self.pre_trusted))

        stored = True
        try:
            await asyncio.to_thread(self.store.store_scores, result.scores)
        except Exception as e:
            stored = False
            logger.warning("global_scores_store_failed", error=str(e))
        try:
            await asyncio.to_thread(self.store.mark_pre_trusted, self.pre_trusted)
        except Exception as e:
            logger.warning("pre_trusted_flags_failed", error=str(e))

        if self.cache is not None:
            self.cache.invalidate_all()

        logger.info("global_scores_recomputed", nodes=len(result.scores), edges=len(edges),
                    iterations=result.iterations, converged=result.converged, stored=stored)
        return {
            "nodes": len(result.scores),
            "iterations": result.iterations,
            "converged": result.converged,
            "stored": stored,
        }

    async def sync_trust_graph(self, batch_size: int = 1000) -> Dict[str, int]:
        """Pull attestation edges into the store. Source failures propagate."""
        if self.attestations is None:
            raise RuntimeError("no attestation source configured")
        edges = await self.attestations.fetch_all_edges(batch_size, self.sync_max_batches)
        if edges:
            await asyncio.to_thread(self.store.upsert_edges_batch, edges)
        logger.info("trust_graph_synced", edges=len(edges), batch_size=batch_size)
        return {"edges": len(edges)}

    async def get_graph_stats(self) -> Dict[str, int]:
        return await asyncio.to_thread(self.store.get_stats)

    def breaker_status(self) -> List[Dict[str, Any]]:
        return [b.status() for b in self.breakers.values()]
