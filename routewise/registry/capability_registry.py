"""In-memory capability registry for backend servers.

Architectural role:
    Source of truth for which servers exist, what they declare, and how they
    have performed. The router reads candidate sets and rankings from here, and
    the orchestrator writes execution metrics back.

Indices:
    - domain -> server names
    - entity type -> server names
    - operation -> server names
    The three indices always equal the union of the registered capabilities'
    declared values. Empty keys are dropped on unregister.

Candidate lookup:
    1. Union of entity, operation and domain index hits for an intent.
    2. Kept in registration order and filtered to `active` status.
    3. Empty result falls back to trigram fuzzy search (see `fuzzy_index`).

Concurrency:
    One `threading.RLock` guards the registrations, indices and fuzzy index.
    Listeners are notified after the lock is released.

Failure handling:
    Unknown names are a no-op for unregister/update/health calls. A failing
    listener is logged and skipped.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from routewise.core.settings import RegistrySettings, ScoringWeights
from routewise.core.types import (
    Entity,
    Intent,
    ServerCapability,
    ServerMetrics,
    ServerRegistration,
    ServerStatus,
    utcnow,
)
from routewise.registry.fuzzy_index import FuzzyServerIndex


logger = logging.getLogger(__name__)


RegistryListener = Callable[[str, dict[str, Any]], None]


class CapabilityRegistry:
    """Server registrations with domain/entity/operation lookup indices."""

    def __init__(
        self,
        settings: RegistrySettings | None = None,
        weights: ScoringWeights | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or RegistrySettings()
        self.weights = weights or ScoringWeights()
        self.clock = clock

        self._lock = threading.RLock()
        self._servers: dict[str, ServerRegistration] = {}
        self._domain_index: dict[str, set[str]] = {}
        self._entity_index: dict[str, set[str]] = {}
        self._operation_index: dict[str, set[str]] = {}
        self._fuzzy = FuzzyServerIndex()
        self._listeners: list[RegistryListener] = []

    # =====================================================
    # OBSERVERS
    # =====================================================

    def add_listener(self, listener: RegistryListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: RegistryListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Registry listener failed for event %s", event)

    # =====================================================
    # REGISTRATION
    # =====================================================

    def register(self, name: str, capability: ServerCapability) -> ServerRegistration:
        """
        Register or replace a server.

        Re-registering a name first removes its previous capability from every
        index, then indexes the new one. Status resets to `active`, metrics
        reset to zero.
        """
        if not name or not str(name).strip():
            raise ValueError("Server name must be non-empty")

        with self._lock:
            if name in self._servers:
                self._remove_from_indices(name, self._servers[name].capability)

            registration = ServerRegistration(
                name=name,
                capability=capability,
                status=ServerStatus.ACTIVE,
                last_health_check=self.clock(),
                metrics=ServerMetrics(),
            )
            self._servers[name] = registration
            self._add_to_indices(name, capability)
            self._fuzzy.rebuild(list(self._servers.values()))

        logger.info("Registered server %s (protocol=%s)", name, capability.protocol)
        self._notify("server:registered", {"name": name, "capability": capability})
        return registration

    def unregister(self, name: str) -> bool:
        with self._lock:
            registration = self._servers.pop(name, None)
            if registration is None:
                return False
            self._remove_from_indices(name, registration.capability)
            self._fuzzy.rebuild(list(self._servers.values()))

        logger.info("Unregistered server %s", name)
        self._notify("server:unregistered", {"name": name})
        return True

    def _add_to_indices(self, name: str, capability: ServerCapability) -> None:
        for index, keys in self._index_pairs(capability):
            for key in keys:
                index.setdefault(key, set()).add(name)

    def _remove_from_indices(self, name: str, capability: ServerCapability) -> None:
        for index, keys in self._index_pairs(capability):
            for key in keys:
                names = index.get(key)
                if names is None:
                    continue
                names.discard(name)
                if not names:
                    del index[key]

    def _index_pairs(self, capability: ServerCapability):
        return (
            (self._domain_index, capability.domains),
            (self._entity_index, capability.entities),
            (self._operation_index, capability.operations),
        )

    # =====================================================
    # LOOKUPS
    # =====================================================

    def get_server(self, name: str) -> ServerRegistration | None:
        with self._lock:
            return self._servers.get(name)

    def get_all_servers(self) -> list[ServerRegistration]:
        with self._lock:
            return list(self._servers.values())

    def _active_in_order(self, names: Iterable[str]) -> list[ServerRegistration]:
        wanted = set(names)
        return [
            reg for reg_name, reg in self._servers.items()
            if reg_name in wanted and reg.is_active
        ]

    def find_servers_by_domain(self, domain: str) -> list[ServerRegistration]:
        with self._lock:
            return self._active_in_order(self._domain_index.get(domain, ()))

    def find_servers_by_entity(self, entity_type: str) -> list[ServerRegistration]:
        with self._lock:
            return self._active_in_order(self._entity_index.get(entity_type, ()))

    def find_servers_by_operation(self, operation: str) -> list[ServerRegistration]:
        with self._lock:
            return self._active_in_order(self._operation_index.get(operation, ()))

    def can_handle_entities(self, name: str, entities: list[Entity]) -> bool:
        registration = self.get_server(name)
        if registration is None:
            return False
        return all(e.type in registration.capability.entities for e in entities)

    def can_perform_operation(self, name: str, operation: str) -> bool:
        registration = self.get_server(name)
        if registration is None:
            return False
        return operation in registration.capability.operations

    def index_snapshot(self) -> dict[str, dict[str, list[str]]]:
        """Return a sorted copy of the three lookup indices."""
        with self._lock:
            return {
                "domains": {k: sorted(v) for k, v in self._domain_index.items()},
                "entities": {k: sorted(v) for k, v in self._entity_index.items()},
                "operations": {k: sorted(v) for k, v in self._operation_index.items()},
            }

    def find_servers_for_intent(self, intent: Intent) -> list[ServerRegistration]:
        """
        Resolve candidate servers for an intent.

        Returns:
            Active registrations hit by any entity type, the action, or the
            context domain, in registration order. When none match, the fuzzy
            fallback result (best match first).
        """
        with self._lock:
            candidates: set[str] = set()

            for entity in intent.entities:
                candidates.update(self._entity_index.get(entity.type, ()))

            candidates.update(self._operation_index.get(intent.action.value, ()))

            domain = intent.domain
            if domain:
                candidates.update(self._domain_index.get(domain, ()))

            registrations = self._active_in_order(candidates)
            if registrations:
                return registrations

            return self._fuzzy_find(intent)

    def _fuzzy_find(self, intent: Intent) -> list[ServerRegistration]:
        terms = [intent.action.value]
        terms.extend(e.type for e in intent.entities)
        terms.extend(e.value for e in intent.entities if e.value)
        query = " ".join(terms)

        matches = []
        for name, distance in self._fuzzy.search(query):
            if distance >= self.settings.fuzzy_threshold:
                continue
            registration = self._servers.get(name)
            if registration is not None and registration.is_active:
                matches.append(registration)

        logger.debug("Fuzzy lookup query=%r matched=%s", query, [r.name for r in matches])
        return matches

    # =====================================================
    # RANKING
    # =====================================================

    def score_server(self, registration: ServerRegistration, intent: Intent) -> float:
        w = self.weights
        cap = registration.capability
        score = 0.0

        supported = sum(1 for e in intent.entities if e.type in cap.entities)
        score += w.rank_entity_match * supported

        if intent.action.value in cap.operations:
            score += w.rank_operation_match

        domain = intent.domain
        if domain and domain in cap.domains:
            score += w.rank_domain_match

        score -= w.rank_error_penalty * registration.metrics.error_rate
        score -= w.rank_latency_penalty * (registration.metrics.avg_response_time / 1000.0)
        return score

    def rank_servers_by_relevance(
        self,
        candidates: list[ServerRegistration],
        intent: Intent,
    ) -> list[ServerRegistration]:
        """Stable sort of `candidates` by descending relevance score."""
        with self._lock:
            scored = [(self.score_server(reg, intent), reg) for reg in candidates]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [reg for _, reg in scored]

    # =====================================================
    # METRICS & HEALTH
    # =====================================================

    def update_metrics(self, name: str, request_time_ms: float, success: bool) -> None:
        """Fold one execution into the server's running averages."""
        with self._lock:
            registration = self._servers.get(name)
            if registration is None:
                return

            metrics = registration.metrics
            metrics.total_requests += 1
            n = metrics.total_requests
            metrics.avg_response_time = (
                metrics.avg_response_time * (n - 1) + float(request_time_ms)
            ) / n
            metrics.error_rate = (
                metrics.error_rate * (n - 1) + (0.0 if success else 1.0)
            ) / n
            snapshot = metrics.to_dict()

        self._notify("metrics:updated", {"name": name, "metrics": snapshot})

    def mark_healthy(self, name: str) -> None:
        with self._lock:
            registration = self._servers.get(name)
            if registration is None:
                return
            registration.status = ServerStatus.ACTIVE
            registration.last_health_check = self.clock()

    def mark_unhealthy(self, name: str, error: str | None = None) -> None:
        with self._lock:
            registration = self._servers.get(name)
            if registration is None:
                return
            registration.status = ServerStatus.ERROR

        logger.warning("Server %s marked unhealthy: %s", name, error)
        self._notify("server:unhealthy", {"name": name, "error": error})

    def sweep_health(self, now: datetime | None = None) -> list[str]:
        """
        Mark active servers inactive when their last health check is stale.

        Returns:
            Names transitioned to `inactive` by this sweep.
        """
        now = now or self.clock()
        stale_after = timedelta(seconds=self.settings.health_stale_seconds)
        stale: list[str] = []

        with self._lock:
            for name, registration in self._servers.items():
                if not registration.is_active:
                    continue
                if now - registration.last_health_check > stale_after:
                    registration.status = ServerStatus.INACTIVE
                    stale.append(name)

        for name in stale:
            logger.warning("Server %s marked inactive after missed health checks", name)
        return stale
