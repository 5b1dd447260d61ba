"""
Trust Graph Service — Configuration

All settings load from environment variables with safe defaults for development.
In production, set TRUST_ENV=production to enforce required values.
"""
import os
from functools import lru_cache
from typing import Dict, FrozenSet

from dotenv import load_dotenv

from app.graph.eigentrust import SolverConfig

load_dotenv()


def _csv(value: str) -> FrozenSet[str]:
    return frozenset(v.strip().lower() for v in value.split(",") if v.strip())


class Settings:
    def __init__(self):
        self.ENVIRONMENT = os.getenv("TRUST_ENV", "development")

        # === Graph database ===
        self.NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
        self.NEO4J_USER = os.getenv("NEO4J_USER", "neo4j")
        self.NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD", "")
        if self.is_production and not self.NEO4J_PASSWORD:
            raise RuntimeError("NEO4J_PASSWORD must be set in production. Add it to .env")

        # === Cache / worker queue ===
        self.REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.CACHE_TTL_SCORE = int(os.getenv("CACHE_TTL_SCORE", "3600"))

        # === Attestation source (knowledge graph) ===
        self.INTUITION_API_URL = os.getenv("INTUITION_API_URL", "https://api.intuition.systems/v1/graphql")
        self.INTUITION_API_KEY = os.getenv("INTUITION_API_KEY", "")

        # === Activity source (EVM RPC); a chain is enabled when its URL is set ===
        self.RPC_URLS: Dict[str, str] = {
            chain: url
            for chain, url in (
                ("ethereum", os.getenv("ETH_RPC_URL", "")),
                ("base", os.getenv("BASE_RPC_URL", "")),
                ("warden", os.getenv("WARDEN_RPC_URL", "")),
            )
            if url
        }

        # === EigenTrust ===
        self.EIGENTRUST_DECAY_FACTOR = float(os.getenv("EIGENTRUST_DECAY_FACTOR", "0.85"))
        self.EIGENTRUST_CONVERGENCE_THRESHOLD = float(os.getenv("EIGENTRUST_CONVERGENCE_THRESHOLD", "0.0001"))
        self.EIGENTRUST_MAX_ITERATIONS = int(os.getenv("EIGENTRUST_MAX_ITERATIONS", "50"))
        self.PRE_TRUSTED_ADDRESSES = _csv(os.getenv("PRE_TRUSTED_ADDRESSES", ""))

        # === Query defaults ===
        self.DEFAULT_GRAPH_DEPTH = int(os.getenv("DEFAULT_GRAPH_DEPTH", "3"))
        self.DEFAULT_MAX_HOPS = int(os.getenv("DEFAULT_MAX_HOPS", "5"))
        self.SYNC_BATCH_SIZE = int(os.getenv("SYNC_BATCH_SIZE", "1000"))
        self.SYNC_MAX_BATCHES = int(os.getenv("SYNC_MAX_BATCHES", "10"))

        # === Application ===
        self.TRUST_HOST = os.getenv("TRUST_HOST", "0.0.0.0")
        self.TRUST_PORT = int(os.getenv("TRUST_PORT", "8000"))

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def solver_config(self) -> SolverConfig:
        return SolverConfig(
            decay_factor=self.EIGENTRUST_DECAY_FACTOR,
            convergence_threshold=self.EIGENTRUST_CONVERGENCE_THRESHOLD,
            max_iterations=self.EIGENTRUST_MAX_ITERATIONS,
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
