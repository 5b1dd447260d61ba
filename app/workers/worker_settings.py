"""
Trust Graph — Worker Settings

arq worker that keeps the graph current without a request in flight:
    1. sync_trust_graph        hourly, pulls attestation edges
    2. recompute_global_scores 15 minutes past each hour, full-graph EigenTrust

Start with:
    arq app.workers.worker_settings.WorkerSettings
"""
from arq import cron
from arq.connections import RedisSettings
import structlog

from app.compute.pipeline import get_scorer, shutdown
from app.config import settings
from app.db.neo4j import close as close_db, init_schema

logger = structlog.get_logger()

REDIS_SETTINGS = RedisSettings.from_dsn(settings.REDIS_URL)


async def sync_trust_graph(ctx):
    return await get_scorer().sync_trust_graph(settings.SYNC_BATCH_SIZE)


async def recompute_global_scores(ctx):
    return await get_scorer().recompute_global_scores()


async def startup(ctx):
    init_schema()
    logger.info("worker_started", pre_trusted=len(settings.PRE_TRUSTED_ADDRESSES))


async def shutdown_worker(ctx):
    shutdown()
    close_db()
    logger.info("worker_stopped")


class WorkerSettings:
    functions = [sync_trust_graph, recompute_global_scores]

    cron_jobs = [
        cron(sync_trust_graph, minute=0, unique=True),
        cron(recompute_global_scores, minute=15, unique=True),
    ]

    on_startup = startup
    on_shutdown = shutdown_worker
    redis_settings = REDIS_SETTINGS
    max_jobs = 2
    job_timeout = 900  # full recomputation on a large graph
