"""
Trust Layer — Helpers
Address handling and score arithmetic shared by the scorer, the path
service and the API.
"""
import math
import re
from typing import Iterable, Optional

from app.graph.models import TrustLevel, TrustFactor

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_ADDRESS_IN_TEXT_RE = re.compile(r"0x[a-fA-F0-9]{40}")


class TrustInputError(ValueError):
    pass


class InvalidAddressError(TrustInputError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Invalid address format: {address!r}. Expected 0x followed by 40 hex characters.")


class SameAddressError(TrustInputError):
    def __init__(self, address: str):
        self.address = address
        super().__init__("Both addresses are the same.")


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and bool(_ADDRESS_RE.match(address))


def normalize_address(address: str) -> str:
    return address.strip().lower()


def require_address(address: str) -> str:
    """Validate and lowercase an address, raising InvalidAddressError."""
    if address is None or not is_valid_address(address.strip()):
        raise InvalidAddressError(address)
    return normalize_address(address)


def shorten_address(address: str) -> str:
    """0x742d35cc6634c0532925a3b844bc454e4438f44e -> 0x742d...f44e"""
    if not is_valid_address(address):
        return address
    return f"{address[:6]}...{address[-4:]}"


def extract_address(text: str) -> Optional[str]:
    """First 0x address found in free text, if any."""
    match = _ADDRESS_IN_TEXT_RE.search(text or "")
    return match.group(0) if match else None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_score(raw: float, lo: float = 0.0, hi: float = 1.0) -> int:
    """Clamp `raw` into [lo, hi] and rescale to an integer 0-100."""
    if hi <= lo:
        return 0
    clamped = max(lo, min(hi, raw))
    return round_half_up((clamped - lo) / (hi - lo) * 100)


def score_to_level(score: float) -> TrustLevel:
    if score >= 85:
        return TrustLevel.VERY_HIGH
    if score >= 70:
        return TrustLevel.HIGH
    if score >= 50:
        return TrustLevel.MODERATE
    if score >= 30:
        return TrustLevel.LOW
    if score >= 10:
        return TrustLevel.SUSPICIOUS
    return TrustLevel.UNKNOWN


def weighted_average(factors: Iterable[TrustFactor]) -> int:
    """sum(score * weight) / sum(weight), rounded; 0 when there is no weight."""
    factors = list(factors)
    total_weight = sum(f.weight for f in factors)
    if total_weight == 0:
        return 0
    return round_half_up(sum(f.score * f.weight for f in factors) / total_weight)


def confidence_for_sources(source_count: int) -> float:
    """Confidence grows with the number of data source categories that contributed."""
    if source_count >= 3:
        return 0.95
    if source_count == 2:
        return 0.75
    if source_count == 1:
        return 0.5
    return 0.1
