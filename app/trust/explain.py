"""
Trust Layer — Explanations

Human-facing text for scores, paths and connections. Downstream consumers
(chat front-ends, text generation) read these; nothing here feeds back
into the engine. The strength thresholds are presentation choices only.
"""
from typing import Dict, List

from app.graph.models import GraphPath, TrustEdge, TrustLevel, TrustScore
from app.trust.helpers import shorten_address

STRONG_EDGE = 0.7
MODERATE_EDGE = 0.4


def edge_strength(weight: float) -> str:
    if weight >= STRONG_EDGE:
        return "strong"
    if weight >= MODERATE_EDGE:
        return "moderate"
    return "weak"


def path_strength(path: GraphPath) -> str:
    if path.hops <= 2 and path.total_weight >= 0.6:
        return "strong"
    if path.hops <= 3:
        return "moderate"
    return "long"


_PATH_SUMMARY = {
    "strong": "This is a strong, short trust path.",
    "moderate": "This is a moderate trust path with a few intermediaries.",
    "long": "This is a long trust path. The connection is indirect and may carry less weight.",
}


def _describe_edge(position: int, edge: TrustEdge) -> str:
    return (
        f"  {position}. {shorten_address(edge.from_addr)} "
        f"--[{edge_strength(edge.weight)} trust ({edge.weight:.2f}), via {edge.source}]--> "
        f"{shorten_address(edge.to_addr)}"
    )


def explain_path(path: GraphPath) -> str:
    lines = [
        f"Trust path found: {path.hops} hop(s), average weight: {path.total_weight:.3f}",
        "",
    ]
    lines.extend(_describe_edge(i + 1, edge) for i, edge in enumerate(path.edges))
    lines.append("")
    lines.append(_PATH_SUMMARY[path_strength(path)])
    return "\n".join(lines)


def explain_no_path(from_addr: str, to_addr: str, max_hops: int) -> str:
    return (
        f"No trust path found between {shorten_address(from_addr)} and "
        f"{shorten_address(to_addr)} within {max_hops} hops. "
        "These addresses may not be connected in the trust graph."
    )


def explain_connections(address: str, connections: Dict[str, List[str]]) -> str:
    return "\n".join([
        f"Direct trust connections for {shorten_address(address)}:",
        f"- {len(connections['trustors'])} address(es) trust this address",
        f"- This address trusts {len(connections['trustees'])} address(es)",
    ])


def _level_label(level: TrustLevel) -> str:
    return level.value.replace("_", " ")


def explain_score(score: TrustScore) -> str:
    coverage = "multiple" if score.confidence >= 0.75 else "limited"
    lines = [
        f"Trust score for {score.address}: {score.score}/100 ({_level_label(score.level)})",
        f"Confidence: {round(score.confidence * 100)}%, based on {len(score.factors)} "
        f"factors across {coverage} data sources.",
    ]

    if score.factors:
        lines.append("\nKey factors:")
        for factor in sorted(score.factors, key=lambda f: f.weight, reverse=True):
            lines.append(f"- {factor.name}: {factor.score:g}/100 ({factor.description})")

    if score.score >= 70:
        lines.append("\nThis address shows strong trust signals across the analyzed data sources.")
    elif score.score >= 50:
        lines.append("\nThis address shows moderate trust. Some positive signals but limited "
                     "history or mixed attestations.")
    elif score.score >= 30:
        lines.append("\nThis address has low trust signals. Limited on-chain history or few "
                     "positive attestations.")
    else:
        lines.append("\nInsufficient data to establish trust, or concerning signals detected. "
                     "Exercise caution.")

    return "\n".join(lines)


_LEVEL_MARKERS = {
    TrustLevel.UNKNOWN: "?",
    TrustLevel.SUSPICIOUS: "!!",
    TrustLevel.LOW: "!",
    TrustLevel.MODERATE: "[~]",
    TrustLevel.HIGH: "[+]",
    TrustLevel.VERY_HIGH: "[++]",
}


def format_trust_score(score: TrustScore) -> str:
    """Compact block used as context for text generation."""
    meta = score.metadata
    lines = [
        f"{_LEVEL_MARKERS[score.level]} Trust Score: {score.score}/100 ({_level_label(score.level)})",
        f"Confidence: {round(score.confidence * 100)}%",
        f"Entity: {meta.entity_type.value} on {meta.chain}",
    ]

    if score.factors:
        lines.extend(["", "Factors:"])
        for factor in score.factors:
            lines.append(f"  - {factor.name}: {factor.score:g}/100 ({factor.description})")

    if meta.attestation_count:
        lines.append(f"\nAttestations: {meta.attestation_count}")
    if meta.total_transactions:
        lines.append(f"Transactions: {meta.total_transactions}")

    return "\n".join(lines)
