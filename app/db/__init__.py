"""
Trust Graph — Database Package
Re-exports for convenience.
"""
from app.db.neo4j import get_driver, get_session, init_schema, close
