"""
Trust Graph Service
EigenTrust reputation for blockchain addresses.

Start with:
    uvicorn app.main:app --host 0.0.0.0 --port 8000
"""
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from app.api.trust import graph_router, trust_router
from app.compute.pipeline import get_scorer
from app.trust.scorer import TrustScorer

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)
logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("service_starting", version=VERSION)

    # Graph schema; the service still starts without Neo4j and degrades per request.
    try:
        from app.db.neo4j import init_schema
        init_schema()
    except Exception as e:
        logger.warning("neo4j_init_failed", error=str(e))

    yield

    from app.compute.pipeline import shutdown as pipeline_shutdown
    from app.db.neo4j import close
    pipeline_shutdown()
    close()
    logger.info("service_stopped")


app = FastAPI(
    title="Trust Graph Service",
    description=(
        "EigenTrust-based reputation for blockchain addresses: trust scores, "
        "trust paths and graph maintenance."
    ),
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    # Callers may pass their own id to correlate logs across services.
    request_id = request.headers.get("X-Request-Id", "")[:64] or str(uuid.uuid4())[:8]
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 2)
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms}ms"
    if request.url.path != "/health":
        logger.info("request_completed",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms)
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception",
                 path=request.url.path,
                 error=str(exc),
                 type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "Something went wrong.",
            "request_id": getattr(request.state, "request_id", "unknown"),
        },
    )


# === Routers ===

app.include_router(trust_router)
app.include_router(graph_router)


# === Core endpoints ===

@app.get("/health")
async def health(scorer: TrustScorer = Depends(get_scorer)):
    return {
        "status": "healthy",
        "service": "trust-graph",
        "version": VERSION,
        "sources": scorer.breaker_status(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
