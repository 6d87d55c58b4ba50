"""Usage-driven learning over routed interactions.

Architectural role:
    Records every executed interaction, aggregates per-pattern and per-server
    statistics, and turns them into routing hints and optimization
    suggestions. State is owned by one `LearningSystem` instance; there is no
    module-level store.

Pattern signature:
    `action`, sorted entity types, then the relative timeframe token. Empty
    parts are dropped and the rest joined with `:` (e.g.
    `query:work_order:today`).

Statistics:
    - Pattern frequency, running-average duration and running-average success
      (validation outcome). Frequency only decreases through the sweep.
    - Per-server totals, running-average response time and
      `error_rate = 1 - successful / total`.
    - Per-server, per-pattern count and success rate.

Persistence:
    - Interaction history is a ring buffer of `max_history_size` entries.
    - A snapshot (last `snapshot_tail` interactions, patterns, server stats,
      `saved_at`) is flushed every `flush_every` records and after feedback.
      Flushes run in a worker thread via `asyncio.to_thread`.
    - `load()` restores the last snapshot at start-up.

Concurrency:
    One `threading.RLock` guards the buffer, patterns and server maps.
    Snapshots are built under the lock and written outside it.

Failure handling:
    Snapshot write failures are logged and do not fail the recording call.
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from routewise.core.settings import LearningSettings
from routewise.core.types import (
    Feedback,
    Intent,
    Interaction,
    QueryPattern,
    utcnow,
)
from routewise.learning.snapshot_store import JsonFileSnapshotStore, SnapshotStore
from routewise.learning.suggestions import (
    CACHE_MIN_AVG_DURATION_MS,
    CACHE_MIN_FREQUENCY,
    ROUTING_MAX_SUCCESS_RATE,
    SERVER_MAX_AVG_RESPONSE_MS,
    SERVER_MAX_ERROR_RATE,
    OptimizationSuggestion,
)


logger = logging.getLogger(__name__)


FREQUENCY_WEIGHT = 0.7
RECENCY_WEIGHT = 0.3


def pattern_signature(intent: Intent) -> str:
    parts = [intent.action.value]
    parts.extend(sorted(e.type for e in intent.entities))
    parts.append(intent.timeframe.relative if intent.timeframe and intent.timeframe.relative else "")
    return ":".join(p for p in parts if p)


# =========================================================
# SERVER PERFORMANCE
# =========================================================

@dataclass
class PatternPerformance:
    count: int = 0
    success_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "success_rate": self.success_rate}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PatternPerformance":
        return cls(count=int(data.get("count", 0)), success_rate=float(data.get("success_rate", 0.0)))


@dataclass
class ServerPerformance:
    total_requests: int = 0
    successful_requests: int = 0
    avg_response_time: float = 0.0
    error_rate: float = 0.0
    patterns: dict[str, PatternPerformance] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "avg_response_time": self.avg_response_time,
            "error_rate": self.error_rate,
            "patterns": {k: v.to_dict() for k, v in self.patterns.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerPerformance":
        return cls(
            total_requests=int(data.get("total_requests", 0)),
            successful_requests=int(data.get("successful_requests", 0)),
            avg_response_time=float(data.get("avg_response_time", 0.0)),
            error_rate=float(data.get("error_rate", 0.0)),
            patterns={
                k: PatternPerformance.from_dict(v)
                for k, v in (data.get("patterns") or {}).items()
            },
        )


# =========================================================
# LEARNING SYSTEM
# =========================================================

class LearningSystem:
    """Interaction history, pattern statistics and routing predictions.

    Args:
        settings: History size, flush cadence and sweep thresholds.
        store: Snapshot persistence. Defaults to a JSON file under
            `settings.data_path`.
        clock: Time source for timestamps and sweeps.
    """

    def __init__(
        self,
        settings: LearningSettings | None = None,
        store: SnapshotStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or LearningSettings()
        self.store = store if store is not None else JsonFileSnapshotStore(self.settings.data_path)
        self.clock = clock

        self._lock = threading.RLock()
        self._interactions: deque[Interaction] = deque(maxlen=self.settings.max_history_size)
        self._patterns: dict[str, QueryPattern] = {}
        self._servers: dict[str, ServerPerformance] = {}
        self._since_flush = 0
        self.last_suggestions: list[OptimizationSuggestion] = []

    # -----------------------------------------------------
    # READ ACCESS
    # -----------------------------------------------------

    @property
    def interactions(self) -> list[Interaction]:
        with self._lock:
            return list(self._interactions)

    def get_pattern(self, signature: str) -> QueryPattern | None:
        with self._lock:
            return self._patterns.get(signature)

    def get_patterns(self) -> list[QueryPattern]:
        with self._lock:
            return list(self._patterns.values())

    def get_server_performance(self, server: str) -> ServerPerformance | None:
        with self._lock:
            return self._servers.get(server)

    # -----------------------------------------------------
    # RECORDING
    # -----------------------------------------------------

    async def record_interaction(self, interaction: Interaction) -> str:
        """
        Record one executed interaction.

        Returns:
            The interaction id (`"{epoch_ms}-{query}"`) used for feedback.
        """
        with self._lock:
            interaction.timestamp = self.clock()
            self._interactions.append(interaction)

            signature = pattern_signature(interaction.intent)
            success = 1.0 if interaction.validation.is_valid else 0.0
            self._update_pattern(signature, interaction, success)
            self._update_server(signature, interaction, success)

            self._since_flush += 1
            should_flush = self._since_flush >= self.settings.flush_every
            if should_flush:
                self._since_flush = 0

        if should_flush:
            await self.flush()

        return interaction.interaction_id

    def _update_pattern(self, signature: str, interaction: Interaction, success: float) -> None:
        pattern = self._patterns.get(signature)
        if pattern is None:
            pattern = QueryPattern(signature=signature, query=interaction.query)
            self._patterns[signature] = pattern

        pattern.frequency += 1
        n = pattern.frequency
        pattern.avg_duration = (pattern.avg_duration * (n - 1) + interaction.duration) / n
        pattern.success_rate = (pattern.success_rate * (n - 1) + success) / n
        pattern.last_used = interaction.timestamp

    def _update_server(self, signature: str, interaction: Interaction, success: float) -> None:
        perf = self._servers.setdefault(interaction.routing.server, ServerPerformance())

        perf.total_requests += 1
        if success:
            perf.successful_requests += 1
        n = perf.total_requests
        perf.avg_response_time = (perf.avg_response_time * (n - 1) + interaction.duration) / n
        perf.error_rate = 1.0 - perf.successful_requests / n

        stats = perf.patterns.setdefault(signature, PatternPerformance())
        stats.count += 1
        stats.success_rate = (stats.success_rate * (stats.count - 1) + success) / stats.count

    async def record_feedback(self, interaction_id: str, feedback: Feedback) -> bool:
        """
        Attach feedback to a recorded interaction.

        When the feedback is negative and names a `correct_server`, that
        server's successful/total counters are incremented and the routed
        server's error rate is nudged up by `feedback_error_increment`.

        Returns:
            `False` when no interaction matches `interaction_id`.
        """
        with self._lock:
            interaction = next(
                (i for i in reversed(self._interactions) if i.interaction_id == interaction_id),
                None,
            )
            if interaction is None:
                return False

            interaction.feedback = feedback

            if not feedback.helpful and feedback.correct_server:
                self._adjust_server_preference(interaction, feedback.correct_server)

        await self.flush()
        return True

    def _adjust_server_preference(self, interaction: Interaction, preferred: str) -> None:
        current = interaction.routing.server
        logger.info(
            "Learning: user prefers %s over %s for %s",
            preferred,
            current,
            pattern_signature(interaction.intent),
        )

        preferred_perf = self._servers.setdefault(preferred, ServerPerformance())
        preferred_perf.successful_requests += 1
        preferred_perf.total_requests += 1

        current_perf = self._servers.setdefault(current, ServerPerformance())
        current_perf.error_rate = min(
            current_perf.error_rate + self.settings.feedback_error_increment, 1.0
        )

    # -----------------------------------------------------
    # PREDICTION & ANALYSIS
    # -----------------------------------------------------

    def predict_best_server(self, intent: Intent) -> str | None:
        signature = pattern_signature(intent)
        with self._lock:
            pattern = self._patterns.get(signature)
            if pattern is None or pattern.success_rate <= self.settings.prediction_min_success:
                return None

            best_server, best_rate = None, -1.0
            for server, perf in self._servers.items():
                stats = perf.patterns.get(signature)
                if stats is None or stats.count <= 0:
                    continue
                if stats.success_rate > best_rate:
                    best_server, best_rate = server, stats.success_rate
            return best_server

    def get_frequent_patterns(self, limit: int = 10, now: datetime | None = None) -> list[QueryPattern]:
        """Return patterns ranked by `frequency * 0.7 + recency * 0.3`.

        Recency is `1 / (1 + seconds since last use)`.
        """
        now = now or self.clock()
        with self._lock:
            patterns = list(self._patterns.values())

        def score(pattern: QueryPattern) -> float:
            age = max(0.0, (now - pattern.last_used).total_seconds())
            return pattern.frequency * FREQUENCY_WEIGHT + (1.0 / (1.0 + age)) * RECENCY_WEIGHT

        patterns.sort(key=score, reverse=True)
        return patterns[:max(0, limit)]

    def get_optimization_suggestions(self) -> list[OptimizationSuggestion]:
        suggestions: list[OptimizationSuggestion] = []

        with self._lock:
            for signature, pattern in self._patterns.items():
                if pattern.frequency > CACHE_MIN_FREQUENCY and pattern.avg_duration > CACHE_MIN_AVG_DURATION_MS:
                    suggestions.append(OptimizationSuggestion(
                        type="cache",
                        pattern=signature,
                        reason=f'Pattern "{pattern.query}" is frequent and slow',
                        expected_improvement="50% faster response time",
                    ))
                if pattern.success_rate < ROUTING_MAX_SUCCESS_RATE:
                    suggestions.append(OptimizationSuggestion(
                        type="routing",
                        pattern=signature,
                        reason=f'Pattern "{pattern.query}" has low success rate',
                        expected_improvement="Higher success rate",
                    ))

            for server, perf in self._servers.items():
                if perf.error_rate > SERVER_MAX_ERROR_RATE:
                    suggestions.append(OptimizationSuggestion(
                        type="server",
                        server=server,
                        reason=f"Server {server} has high error rate ({perf.error_rate * 100:.1f}%)",
                        expected_improvement="Better reliability",
                    ))
                if perf.avg_response_time > SERVER_MAX_AVG_RESPONSE_MS:
                    suggestions.append(OptimizationSuggestion(
                        type="performance",
                        server=server,
                        reason=f"Server {server} is slow ({perf.avg_response_time:.0f}ms average)",
                        expected_improvement="Faster response times",
                    ))

        return suggestions

    def sweep(self, now: datetime | None = None) -> list[str]:
        """
        Regenerate suggestions and prune stale, infrequent patterns.

        A pattern is pruned when it has not been used for
        `pattern_max_age_days` and its frequency is below
        `pattern_min_frequency`.

        Returns:
            Signatures removed by this sweep.
        """
        now = now or self.clock()
        self.last_suggestions = self.get_optimization_suggestions()
        if self.last_suggestions:
            logger.info("Found %d optimization opportunities", len(self.last_suggestions))

        cutoff = now - timedelta(days=self.settings.pattern_max_age_days)
        with self._lock:
            pruned = [
                signature for signature, pattern in self._patterns.items()
                if pattern.last_used < cutoff and pattern.frequency < self.settings.pattern_min_frequency
            ]
            for signature in pruned:
                del self._patterns[signature]

        if pruned:
            logger.info("Pruned %d stale patterns", len(pruned))
        return pruned

    # -----------------------------------------------------
    # PERSISTENCE
    # -----------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            tail = list(self._interactions)[-self.settings.snapshot_tail:]
            return {
                "interactions": [i.to_dict() for i in tail],
                "patterns": {k: p.to_dict() for k, p in self._patterns.items()},
                "server_metrics": {k: s.to_dict() for k, s in self._servers.items()},
                "saved_at": self.clock().isoformat(),
            }

    def save(self) -> bool:
        """Write a snapshot synchronously. Returns `False` on failure."""
        snapshot = self.snapshot()
        try:
            self.store.save(snapshot)
        except Exception:
            logger.exception("Failed to save learning data")
            return False
        logger.debug("Learning data saved")
        return True

    async def flush(self) -> bool:
        return await asyncio.to_thread(self.save)

    def load(self) -> bool:
        """Restore state from the store. Returns `False` when nothing was loaded."""
        data = self.store.load()
        if not data:
            return False

        try:
            interactions = [Interaction.from_dict(i) for i in data.get("interactions") or []]
            patterns = {
                k: QueryPattern.from_dict({**v, "signature": v.get("signature", k)})
                for k, v in (data.get("patterns") or {}).items()
            }
            servers = {
                k: ServerPerformance.from_dict(v)
                for k, v in (data.get("server_metrics") or {}).items()
            }
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.exception("Discarding malformed learning snapshot")
            return False

        with self._lock:
            self._interactions.clear()
            self._interactions.extend(interactions)
            self._patterns = patterns
            self._servers = servers

        logger.info("Loaded %d interactions and %d patterns", len(interactions), len(patterns))
        return True
