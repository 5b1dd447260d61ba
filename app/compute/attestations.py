"""
Compute — Attestation Source
Reads the Intuition knowledge graph over GraphQL.

Intuition models claims as:
    Atoms     individual entities (wallets, concepts, labels)
    Triples   subject-predicate-object claims between atoms
    Vaults    stakes for (vault) and against (counter_vault) a triple

Two consumers:
    - graph sync: triples become TRUSTS edges (creator -> subject, ...)
    - scoring:    triples about an address become AttestationData,
                  summarized into attestation TrustFactors
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog

from app.compute.errors import CollaboratorUnavailable
from app.graph.models import AccountStats, AttestationData, TrustEdge, TrustFactor
from app.trust.helpers import round_half_up

logger = structlog.get_logger()

_TIMEOUT = httpx.Timeout(15.0, connect=5.0)
_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

SOURCE = "intuition"
SEMANTIC_SOURCE = "intuition-semantic"

_TRIPLE_FIELDS = """
      id
      subject { id label type wallet_id }
      predicate { id label }
      object { id label type wallet_id }
      creator { id label }
      vault { total_shares current_share_price position_count }
      counter_vault { total_shares current_share_price position_count }
      block_timestamp
"""

QUERY_TRIPLES = """
  query GetTriples($limit: Int!, $offset: Int!) {
    triples(limit: $limit, offset: $offset, order_by: { block_timestamp: desc }) {%s}
  }
""" % _TRIPLE_FIELDS

QUERY_TRIPLES_FOR_ADDRESS = """
  query GetTriplesForAddress($address: String!, $limit: Int!) {
    triples(
      limit: $limit
      where: {
        _or: [
          { subject: { wallet_id: { _eq: $address } } }
          { object: { wallet_id: { _eq: $address } } }
          { creator: { id: { _eq: $address } } }
        ]
      }
      order_by: { block_timestamp: desc }
    ) {%s}
  }
""" % _TRIPLE_FIELDS

QUERY_ACCOUNT_STATS = """
  query GetAccountStats($address: String!) {
    account(id: $address) {
      id
      label
      atom { id vault { total_shares position_count } }
    }
  }
"""


class IntuitionClient:
    """
    Thin async GraphQL client. Transport and GraphQL errors surface as
    CollaboratorUnavailable; the caller decides how to degrade.
    """

    def __init__(self, api_url: str, api_key: str = "", client: Optional[httpx.AsyncClient] = None):
        self.api_url = api_url
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._client = client

    async def _request(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"query": query, "variables": variables}
        try:
            if self._client is not None:
                resp = await self._client.post(self.api_url, json=payload, headers=self._headers)
            else:
                async with httpx.AsyncClient(timeout=_TIMEOUT) as client:
                    resp = await client.post(self.api_url, json=payload, headers=self._headers)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CollaboratorUnavailable(SOURCE, str(e)) from e

        if body.get("errors"):
            message = body["errors"][0].get("message", "graphql error")
            raise CollaboratorUnavailable(SOURCE, message)
        return body.get("data") or {}

    # ── Graph sync ───────────────────────────────

    async def fetch_trust_edges(self, limit: int = 1000, offset: int = 0) -> List[TrustEdge]:
        data = await self._request(QUERY_TRIPLES, {"limit": limit, "offset": offset})
        return triples_to_edges(data.get("triples") or [])

    async def fetch_edges_for_address(self, address: str, limit: int = 100) -> List[TrustEdge]:
        data = await self._request(QUERY_TRIPLES_FOR_ADDRESS, {"address": address.lower(), "limit": limit})
        return triples_to_edges(data.get("triples") or [])

    async def fetch_all_edges(self, batch_size: int = 1000, max_batches: int = 10) -> List[TrustEdge]:
        """Page through triples until a short page or `max_batches` pages."""
        all_edges: List[TrustEdge] = []
        for batch in range(max_batches):
            data = await self._request(QUERY_TRIPLES, {"limit": batch_size, "offset": batch * batch_size})
            triples = data.get("triples") or []
            all_edges.extend(triples_to_edges(triples))
            logger.info("attestation_batch_fetched",
                        batch=batch + 1, triples=len(triples), total_edges=len(all_edges))
            if len(triples) < batch_size:
                break
        return all_edges

    # ── Scoring ──────────────────────────────────

    async def fetch_attestations_for_address(self, address: str, limit: int = 100) -> List[AttestationData]:
        data = await self._request(QUERY_TRIPLES_FOR_ADDRESS, {"address": address.lower(), "limit": limit})
        return [triple_to_attestation(t) for t in data.get("triples") or []]

    async def get_account_stats(self, address: str) -> Optional[AccountStats]:
        data = await self._request(QUERY_ACCOUNT_STATS, {"address": address.lower()})
        account = data.get("account")
        if not account:
            return None
        vault = (account.get("atom") or {}).get("vault")
        if not vault:
            return AccountStats()
        return AccountStats(
            attestation_count=int(vault.get("position_count") or 0),
            total_staked=_to_float(vault.get("total_shares")),
        )


# =============================================
# CONVERSION
# =============================================

def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _timestamp_ms(value: Optional[str]) -> int:
    if not value:
        return 0
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return 0


def resolve_address(atom: Optional[Dict[str, Any]]) -> Optional[str]:
    """Wallet address of an atom: its wallet_id, or a label that is itself an address."""
    if not atom:
        return None
    if atom.get("wallet_id"):
        return atom["wallet_id"].lower()
    label = atom.get("label")
    if label and _ADDRESS_RE.match(label):
        return label.lower()
    return None


def _position_counts(triple: Dict[str, Any]) -> tuple:
    for_count = (triple.get("vault") or {}).get("position_count") or 0
    against_count = (triple.get("counter_vault") or {}).get("position_count") or 0
    return for_count, against_count


def triple_weight(triple: Dict[str, Any]) -> float:
    """(for - against) / (for + against), or 0.5 when nobody has staked."""
    for_count, against_count = _position_counts(triple)
    total = for_count + against_count
    if total == 0:
        return 0.5
    return (for_count - against_count) / total


def triple_value(triple: Dict[str, Any]) -> float:
    """Sentiment in [-1, 1]; 0 when nobody has staked."""
    for_count, against_count = _position_counts(triple)
    total = for_count + against_count
    if total == 0:
        return 0.0
    return (for_count - against_count) / total


def triples_to_edges(triples: List[Dict[str, Any]]) -> List[TrustEdge]:
    """
    creator -> subject   full weight
    creator -> object    half weight (indirect reference)
    subject -> object    0.3 weight, tagged as a semantic link
    """
    edges: List[TrustEdge] = []
    for triple in triples:
        creator = ((triple.get("creator") or {}).get("id") or "").lower()
        subject = resolve_address(triple.get("subject"))
        obj = resolve_address(triple.get("object"))
        if not subject and not obj:
            continue

        weight = triple_weight(triple)
        ts = _timestamp_ms(triple.get("block_timestamp"))

        if creator and subject and creator != subject:
            edges.append(TrustEdge(creator, subject, weight, SOURCE, ts))
        if creator and obj and creator != obj:
            edges.append(TrustEdge(creator, obj, weight * 0.5, SOURCE, ts))
        if subject and obj and subject != obj:
            edges.append(TrustEdge(subject, obj, weight * 0.3, SEMANTIC_SOURCE, ts))
    return edges


def triple_to_attestation(triple: Dict[str, Any]) -> AttestationData:
    def _label(atom):
        atom = atom or {}
        return atom.get("label") or atom.get("id") or ""

    return AttestationData(
        id=str(triple.get("id", "")),
        subject=_label(triple.get("subject")),
        predicate=_label(triple.get("predicate")),
        object=_label(triple.get("object")),
        creator=(triple.get("creator") or {}).get("id", ""),
        value=triple_value(triple),
        timestamp=_timestamp_ms(triple.get("block_timestamp")),
        chain="base",
    )


# =============================================
# FACTORS
# =============================================

def score_attestation_count(count: int) -> int:
    if count >= 50:
        return 100
    if count >= 20:
        return 80
    if count >= 10:
        return 60
    if count >= 5:
        return 40
    if count >= 1:
        return 20
    return 0


def score_stake_weight(total_shares: float) -> int:
    if total_shares >= 1_000_000:
        return 100
    if total_shares >= 100_000:
        return 80
    if total_shares >= 10_000:
        return 60
    if total_shares >= 1_000:
        return 40
    if total_shares >= 100:
        return 20
    return 0


def attestation_factors(
    attestations: List[AttestationData],
    stats: Optional[AccountStats],
) -> List[TrustFactor]:
    """Volume, sentiment and stake factors; none at all when there is no data."""
    if not attestations and stats is None:
        return []

    count = len(attestations)
    factors = [
        TrustFactor(
            name="Attestation Volume",
            score=score_attestation_count(count),
            weight=0.15,
            description=f"{count} attestations found",
        )
    ]

    if count > 0:
        positive = sum(1 for a in attestations if a.value > 0)
        negative = sum(1 for a in attestations if a.value < 0)
        factors.append(TrustFactor(
            name="Attestation Sentiment",
            score=round_half_up(positive / count * 100),
            weight=0.15,
            description=f"{positive} positive, {negative} negative attestations",
        ))

    if stats is not None and stats.total_staked > 0:
        factors.append(TrustFactor(
            name="Stake Weight",
            score=score_stake_weight(stats.total_staked),
            weight=0.1,
            description=f"{stats.total_staked:g} total shares staked",
        ))

    return factors
