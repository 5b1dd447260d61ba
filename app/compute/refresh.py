"""
Compute — Graph Maintenance Jobs
Keeps the trust graph and its global scores fresh.

Jobs:
    1. Graph sync:  pull attestation triples and upsert them as TRUSTS edges
    2. Recompute:   full-graph EigenTrust, scores written back onto nodes
    3. Stats:       node and edge counts

Run manually:
    python -m app.compute.refresh sync [batch_size]
    python -m app.compute.refresh recompute
    python -m app.compute.refresh stats
"""
import asyncio
import sys
import time
from typing import Any, Dict

import structlog

from app.compute.pipeline import get_scorer, shutdown
from app.config import get_settings
from app.db.neo4j import close as close_db, init_schema

logger = structlog.get_logger()

USAGE = "Usage: python -m app.compute.refresh [sync [batch_size]|recompute|stats]"


# ── Graph Sync ────────────────────────────────────

async def sync_graph(batch_size: int = 0) -> Dict[str, int]:
    batch_size = batch_size or get_settings().SYNC_BATCH_SIZE
    logger.info("graph_sync_starting", batch_size=batch_size)
    start = time.time()

    result = await get_scorer().sync_trust_graph(batch_size)

    elapsed = round(time.time() - start, 1)
    logger.info("graph_sync_complete", edges=result["edges"], elapsed_seconds=elapsed)
    print(f"Graph sync complete: {result['edges']:,} edges upserted in {elapsed}s")
    return result


# ── Global Recompute ──────────────────────────────

async def recompute_scores() -> Dict[str, Any]:
    start = time.time()
    result = await get_scorer().recompute_global_scores()

    elapsed = round(time.time() - start, 1)
    print(
        f"Recomputed {result['nodes']:,} nodes in {result['iterations']} iterations "
        f"(converged: {result['converged']}, stored: {result['stored']}) in {elapsed}s"
    )
    return result


# ── Stats ─────────────────────────────────────────

async def graph_stats() -> Dict[str, int]:
    stats = await get_scorer().get_graph_stats()
    print(f"Nodes: {stats['nodeCount']:,}  Edges: {stats['edgeCount']:,}")
    return stats


# ── CLI Entry Point ───────────────────────────────

async def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE)
        return 1

    cmd = argv[0]
    try:
        if cmd == "sync":
            init_schema()
            await sync_graph(int(argv[1]) if len(argv) > 1 else 0)
        elif cmd == "recompute":
            await recompute_scores()
        elif cmd == "stats":
            await graph_stats()
        else:
            print(f"Unknown command: {cmd}")
            print(USAGE)
            return 1
    finally:
        shutdown()
        close_db()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
