"""
Compute — Circuit Breakers

One breaker per data source the aggregator fans out to. After `threshold`
consecutive failures the circuit opens and the source is skipped for
`recovery_timeout` seconds; a score computed meanwhile simply has fewer
factors and a lower confidence.
"""
import time
from typing import Any, Dict

import structlog

logger = structlog.get_logger()


class CircuitBreaker:

    def __init__(self, name: str, threshold: int = 3, recovery_timeout: int = 60):
        self.name = name
        self.threshold = threshold
        self.recovery_timeout = recovery_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "closed"  # closed = healthy, open = failing, half-open = testing

    def can_execute(self) -> bool:
        if self.state == "closed":
            return True
        if self.state == "open":
            if time.time() - self.last_failure_time > self.recovery_timeout:
                self.state = "half-open"
                return True
            return False
        # half-open: allow one test request
        return True

    def record_success(self):
        self.failures = 0
        self.state = "closed"

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.state == "half-open" or self.failures >= self.threshold:
            if self.state != "open":
                logger.warning("circuit_breaker_opened", source=self.name, failures=self.failures)
            self.state = "open"

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state,
            "failures": self.failures,
            "threshold": self.threshold,
        }


def default_breakers() -> Dict[str, CircuitBreaker]:
    return {
        "graph": CircuitBreaker("graph", threshold=3, recovery_timeout=30),
        "attestations": CircuitBreaker("attestations", threshold=3, recovery_timeout=60),
        "onchain": CircuitBreaker("onchain", threshold=5, recovery_timeout=120),
    }
