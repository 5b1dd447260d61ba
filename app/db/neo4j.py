"""
Trust Graph Database Layer

Neo4j connection management and schema initialization.

Schema:
    (:Address {address, eigenTrustScore, isPreTrusted, scoredAt, updatedAt})
    (:Address)-[:TRUSTS {source, weight, timestamp, updatedAt}]->(:Address)
"""
from contextlib import contextmanager

from neo4j import GraphDatabase
import structlog

from app.config import settings

logger = structlog.get_logger()

_driver = None


def get_driver():
    """Get or create Neo4j driver (singleton)."""
    global _driver
    if _driver is None:
        _driver = GraphDatabase.driver(
            settings.NEO4J_URI,
            auth=(settings.NEO4J_USER, settings.NEO4J_PASSWORD),
        )
        logger.info("neo4j_connected", uri=settings.NEO4J_URI)
    return _driver


@contextmanager
def get_session():
    """Get a Neo4j session (context manager)."""
    driver = get_driver()
    session = driver.session()
    try:
        yield session
    finally:
        session.close()


def init_schema():
    """Create the address constraint and the edge-provenance index."""
    statements = [
        "CREATE CONSTRAINT address_unique IF NOT EXISTS FOR (n:Address) REQUIRE n.address IS UNIQUE",
        "CREATE INDEX trust_edge_source IF NOT EXISTS FOR ()-[r:TRUSTS]-() ON (r.source)",
        "CREATE INDEX address_score IF NOT EXISTS FOR (n:Address) ON (n.eigenTrustScore)",
    ]

    with get_session() as session:
        for query in statements:
            try:
                session.run(query)
            except Exception as e:
                logger.warning("schema_init_warning", query=query[:60], error=str(e))

    logger.info("schema_initialized", statements=len(statements))


def close():
    """Close the Neo4j driver."""
    global _driver
    if _driver:
        _driver.close()
        _driver = None
        logger.info("neo4j_disconnected")
