"""
Compute — On-Chain Activity Source
Behavioral trust signals from EVM JSON-RPC endpoints.

Per configured chain:
    eth_getTransactionCount   nonce, the activity gate (0 = never sent)
    eth_getBalance            current balance
    eth_getBlockByNumber      "now" and the first-activity timestamp
    eth_getCode               contract vs. wallet

First activity is located by binary search over block height for the
earliest block where the nonce is positive, capped at 15 probes. Chains
are analyzed concurrently; a failing chain is logged and skipped.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog

from app.compute.errors import CollaboratorUnavailable
from app.graph.models import EntityType, OnChainActivity, TrustFactor

logger = structlog.get_logger()

_TIMEOUT = httpx.Timeout(10.0, connect=5.0)
_SEARCH_STEPS = 15


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class OnChainAnalyzer:

    def __init__(self, rpc_urls: Dict[str, str], client: Optional[httpx.AsyncClient] = None):
        self.rpc_urls = {chain: url for chain, url in rpc_urls.items() if url}
        self._client = client
        self._ids = 0
        logger.info("onchain_analyzer_init", chains=list(self.rpc_urls))

    @property
    def chains(self) -> List[str]:
        return list(self.rpc_urls)

    async def _rpc(self, chain: str, method: str, params: list) -> Any:
        self._ids += 1
        payload = {"jsonrpc": "2.0", "id": self._ids, "method": method, "params": params}
        url = self.rpc_urls[chain]
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
                    resp = await client.post(url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CollaboratorUnavailable(chain, f"{method}: {e}") from e

        if body.get("error"):
            raise CollaboratorUnavailable(chain, f"{method}: {body['error'].get('message', 'rpc error')}")
        return body.get("result")

    async def _nonce(self, chain: str, address: str, block: Any = "latest") -> int:
        tag = hex(block) if isinstance(block, int) else block
        return int(await self._rpc(chain, "eth_getTransactionCount", [address, tag]), 16)

    async def _block_timestamp(self, chain: str, block: Any = "latest") -> int:
        tag = hex(block) if isinstance(block, int) else block
        result = await self._rpc(chain, "eth_getBlockByNumber", [tag, False])
        if not result:
            raise CollaboratorUnavailable(chain, f"block {tag} not available")
        return int(result["timestamp"], 16)

    # ── Activity ─────────────────────────────────

    async def analyze(self, address: str) -> List[OnChainActivity]:
        """Activity on every configured chain where the address has sent a transaction."""
        address = address.lower()
        chains = self.chains
        results = await asyncio.gather(
            *(self._analyze_chain(address, chain) for chain in chains),
            return_exceptions=True,
        )

        activities = []
        for chain, result in zip(chains, results):
            if isinstance(result, Exception):
                logger.warning("onchain_analysis_failed", address=address, chain=chain, error=str(result))
            elif result is not None:
                activities.append(result)
        return activities

    async def _analyze_chain(self, address: str, chain: str) -> Optional[OnChainActivity]:
        tx_count = await self._nonce(chain, address)
        if tx_count == 0:
            return None

        balance = int(await self._rpc(chain, "eth_getBalance", [address, "latest"]), 16)
        now = await self._block_timestamp(chain)
        first_seen = await self.estimate_first_activity(chain, address)
        age = (now - first_seen) // 86400 if first_seen else 0

        return OnChainActivity(
            address=address,
            chain=chain,
            transaction_count=tx_count,
            # Without a trace API the counterparty count is estimated from the nonce.
            unique_interactions=min(tx_count, int(tx_count * 0.7)),
            contracts_deployed=0,
            total_value_transferred=balance,
            first_transaction=_iso(first_seen) if first_seen else "unknown",
            last_transaction=_iso(now),
            age=max(age, 0),
        )

    async def estimate_first_activity(self, chain: str, address: str) -> Optional[int]:
        """Timestamp of the earliest block at which the nonce is positive, or None."""
        try:
            current = int(await self._rpc(chain, "eth_blockNumber", []), 16)
            low, high = 0, current
            first_active = current

            for _ in range(_SEARCH_STEPS):
                if low >= high:
                    break
                mid = (low + high) // 2
                try:
                    nonce = await self._nonce(chain, address, mid)
                except CollaboratorUnavailable:
                    # Pruned nodes cannot answer for old blocks.
                    low = mid + 1
                    continue
                if nonce > 0:
                    first_active = mid
                    high = mid
                else:
                    low = mid + 1

            return await self._block_timestamp(chain, first_active)
        except CollaboratorUnavailable as e:
            logger.debug("first_activity_unknown", chain=chain, address=address, error=str(e))
            return None

    async def detect_entity_type(self, address: str, chain: str = "ethereum") -> EntityType:
        if chain not in self.rpc_urls:
            return EntityType.UNKNOWN
        try:
            code = await self._rpc(chain, "eth_getCode", [address.lower(), "latest"])
        except CollaboratorUnavailable as e:
            logger.debug("entity_type_unknown", chain=chain, address=address, error=str(e))
            return EntityType.UNKNOWN
        if code and code != "0x":
            return EntityType.CONTRACT
        return EntityType.WALLET


# =============================================
# FACTORS
# =============================================

def score_age(days: int) -> int:
    if days >= 730:
        return 100
    if days >= 365:
        return 80
    if days >= 180:
        return 60
    if days >= 30:
        return 30
    if days >= 7:
        return 15
    return 0


def score_tx_count(count: int) -> int:
    if count >= 1000:
        return 100
    if count >= 500:
        return 85
    if count >= 100:
        return 70
    if count >= 50:
        return 55
    if count >= 10:
        return 35
    if count >= 1:
        return 15
    return 0


def score_diversity(unique_addresses: int) -> int:
    if unique_addresses >= 500:
        return 100
    if unique_addresses >= 200:
        return 85
    if unique_addresses >= 50:
        return 65
    if unique_addresses >= 20:
        return 45
    if unique_addresses >= 5:
        return 25
    return 0


def score_chain_presence(chain_count: int) -> int:
    if chain_count >= 3:
        return 100
    if chain_count >= 2:
        return 60
    if chain_count >= 1:
        return 30
    return 0


def score_deployments(count: int) -> int:
    if count >= 10:
        return 100
    if count >= 5:
        return 80
    if count >= 2:
        return 60
    if count >= 1:
        return 40
    return 0


def activity_to_factors(activities: List[OnChainActivity]) -> List[TrustFactor]:
    """Aggregate per-chain activity into behavioral factors; empty when nothing is active."""
    if not activities:
        return []

    total_tx = sum(a.transaction_count for a in activities)
    total_interactions = sum(a.unique_interactions for a in activities)
    total_deployed = sum(a.contracts_deployed for a in activities)
    max_age = max(a.age for a in activities)
    chains_active = len(activities)

    factors = [
        TrustFactor("Account Age", score_age(max_age), 0.25,
                    f"{max_age} days old across {chains_active} chain(s)"),
        TrustFactor("Transaction Volume", score_tx_count(total_tx), 0.2,
                    f"{total_tx} total transactions"),
        TrustFactor("Interaction Diversity", score_diversity(total_interactions), 0.2,
                    f"{total_interactions} unique addresses interacted with"),
        TrustFactor("Multi-Chain Presence", score_chain_presence(chains_active), 0.15,
                    f"Active on {chains_active} chain(s)"),
    ]
    if total_deployed > 0:
        factors.append(TrustFactor("Builder Activity", score_deployments(total_deployed), 0.2,
                                   f"Deployed {total_deployed} contract(s)"))
    return factors
