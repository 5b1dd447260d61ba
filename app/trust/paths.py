"""
Trust Layer — Path Service
Answers "how is A connected to B?" against the edge store, with text.
"""
import asyncio
from typing import Any, Dict, Optional

import structlog

from app.graph.store import EdgeStore
from app.trust.explain import explain_connections, explain_no_path, explain_path
from app.trust.helpers import SameAddressError, require_address, shorten_address

logger = structlog.get_logger()


class TrustPathService:

    def __init__(self, store: EdgeStore, default_max_hops: int = 5):
        self.store = store
        self.default_max_hops = default_max_hops

    async def find_path(self, from_addr: str, to_addr: str, max_hops: Optional[int] = None) -> Dict[str, Any]:
        """
        Fewest-hop trust path with an explanation. `path` is None when the
        addresses are not connected within `max_hops`.

        Raises InvalidAddressError or SameAddressError before touching the store.
        """
        source = require_address(from_addr)
        target = require_address(to_addr)
        if source == target:
            raise SameAddressError(source)
        hops = self.default_max_hops if max_hops is None else max_hops

        logger.info("path_lookup", source=shorten_address(source), target=shorten_address(target), max_hops=hops)
        path = await asyncio.to_thread(self.store.find_trust_path, source, target, hops)

        if path is None:
            return {"path": None, "explanation": explain_no_path(source, target, hops)}
        return {"path": path, "explanation": explain_path(path)}

    async def get_connections(self, address: str) -> Dict[str, Any]:
        addr = require_address(address)
        connections = await asyncio.to_thread(self.store.get_direct_connections, addr)
        return {**connections, "explanation": explain_connections(addr, connections)}
