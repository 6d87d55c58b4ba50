"""Optimization suggestions derived from learned patterns and server stats."""

from dataclasses import dataclass
from typing import Any


CACHE_MIN_FREQUENCY = 50
CACHE_MIN_AVG_DURATION_MS = 1000.0
ROUTING_MAX_SUCCESS_RATE = 0.7
SERVER_MAX_ERROR_RATE = 0.1
SERVER_MAX_AVG_RESPONSE_MS = 3000.0


@dataclass(frozen=True)
class OptimizationSuggestion:
    type: str  # cache | routing | server | performance
    reason: str
    expected_improvement: str
    pattern: str | None = None
    server: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "pattern": self.pattern,
            "server": self.server,
            "reason": self.reason,
            "expected_improvement": self.expected_improvement,
        }
