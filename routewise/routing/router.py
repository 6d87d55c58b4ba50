"""Semantic router: turns an `Intent` into a `RoutingDecision`.

Routing flow:
1. Canonical cache key lookup. A hit whose server is still active is reused;
   a hit naming a server that is no longer active is evicted.
2. Candidate lookup through the capability registry.
3. Relevance ranking, then eligibility filtering: a server must declare an
   operation matching the action (or one of its synonyms) and, when the intent
   has subject entities, support at least one of their types.
4. Top eligible server is primary; the next two become alternates.
5. Decision inserted into the FIFO cache.

Cached decisions carry only the parameters derived from the cache key fields.
Every call, cache hit included, returns a copy whose `params` are rebuilt from
the current intent, so request payloads never leak between requests and
callers may mutate the returned params freely.

Tool selection:
- Action synonyms are tried in order against the server's declared
  operations. The first hit is composed as `"{operation}_{entity_type}"`
  using the first entity, or the bare operation when the intent has none.
- No hit falls back to the server's first declared operation, then `query`.

Failure handling:
- No candidates or no eligible candidate raises `RoutingError`.
- Any unexpected exception during ranking, tool selection or parameter
  building is re-raised as `RoutingError` carrying the intent and cause.
"""

import logging
from dataclasses import replace
from typing import Any

from routewise.core.errors import RoutingError
from routewise.core.settings import DEBUG, RouterSettings, ScoringWeights
from routewise.core.types import Intent, RoutingDecision, ServerRegistration, clamp01
from routewise.registry.capability_registry import CapabilityRegistry
from routewise.routing.cache import DecisionCache


logger = logging.getLogger(__name__)


OPERATION_SYNONYMS = {
    "query": ["list", "get", "find", "search", "query"],
    "create": ["create", "add", "insert", "post"],
    "update": ["update", "modify", "patch", "put"],
    "delete": ["delete", "remove", "destroy"],
    "sync": ["sync", "synchronize", "replicate"],
    "analyze": ["analyze", "aggregate", "report"],
}

MAX_ALTERNATES = 2


def operation_synonyms(action: str) -> list[str]:
    return OPERATION_SYNONYMS.get(action, [action])


class SemanticRouter:
    """Chooses server, tool and parameters for parsed intents.

    Args:
        registry: Capability registry providing candidates and ranking.
        settings: Cache capacity and fast-response threshold.
        weights: Routing confidence constants.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        settings: RouterSettings | None = None,
        weights: ScoringWeights | None = None,
    ):
        self.registry = registry
        self.settings = settings or RouterSettings()
        self.weights = weights or ScoringWeights()
        self.cache = DecisionCache(self.settings.cache_size)

    # =====================================================
    # ROUTE
    # =====================================================

    def route(self, intent: Intent) -> RoutingDecision:
        key = self.cache_key(intent)

        cached = self.cache.get(key)
        if cached is not None:
            registration = self.registry.get_server(cached.server)
            if registration is not None and registration.is_active:
                if DEBUG:
                    logger.debug("[ROUTER DEBUG] cache hit key=%s server=%s", key, cached.server)
                return self._for_request(cached, intent)
            logger.info("Evicting cached decision for inactive server %s", cached.server)
            self.cache.discard(key)

        candidates = self.registry.find_servers_for_intent(intent)
        if not candidates:
            raise RoutingError("no candidates", intent=intent)

        try:
            ranked = self.registry.rank_servers_by_relevance(candidates, intent)
            eligible = [reg for reg in ranked if self.is_eligible(reg, intent)]

            if not eligible:
                raise RoutingError(
                    "no eligible candidate",
                    intent=intent,
                    details={"candidates": [reg.name for reg in ranked]},
                )

            params = self.intent_parameters(intent)
            primary = eligible[0]
            decision = self._decision_for(primary, intent, params)
            decision.alternates = [
                self._decision_for(reg, intent, params)
                for reg in eligible[1:1 + MAX_ALTERNATES]
            ]
            decision.reasoning = self.generate_reasoning(primary, intent)
        except RoutingError:
            raise
        except Exception as exc:
            logger.exception("Routing failed for action=%s", intent.action.value)
            raise RoutingError(
                f"Failed to route intent: {exc}", intent=intent, cause=exc
            ) from exc

        self.cache.put(key, decision)

        logger.info(
            "Routed to %s.%s with confidence %.3f",
            decision.server,
            decision.tool,
            decision.confidence,
        )
        if DEBUG:
            logger.debug(
                "[ROUTER DEBUG] ranked=%s eligible=%s",
                [r.name for r in ranked],
                [r.name for r in eligible],
            )
        return self._for_request(decision, intent)

    def _for_request(self, decision: RoutingDecision, intent: Intent) -> RoutingDecision:
        try:
            params = self.build_parameters(intent)
        except Exception as exc:
            logger.exception("Parameter building failed for action=%s", intent.action.value)
            raise RoutingError(
                f"Failed to route intent: {exc}", intent=intent, cause=exc
            ) from exc
        return replace(
            decision,
            params=params,
            alternates=[replace(alt, params=dict(params)) for alt in decision.alternates],
        )

    def _decision_for(
        self,
        registration: ServerRegistration,
        intent: Intent,
        params: dict[str, Any],
    ) -> RoutingDecision:
        return RoutingDecision(
            server=registration.name,
            tool=self.select_tool(registration, intent),
            params=dict(params),
            protocol=registration.capability.protocol,
            confidence=self.calculate_confidence(registration, intent),
        )

    # =====================================================
    # ELIGIBILITY / TOOL / PARAMS
    # =====================================================

    def is_eligible(self, registration: ServerRegistration, intent: Intent) -> bool:
        cap = registration.capability
        if not any(op in cap.operations for op in operation_synonyms(intent.action.value)):
            return False

        subjects = [e.type for e in intent.entities if e.role == "subject"]
        if subjects and not any(t in cap.entities for t in subjects):
            return False

        return True

    def select_tool(self, registration: ServerRegistration, intent: Intent) -> str:
        operations = registration.capability.operations

        for op in operation_synonyms(intent.action.value):
            if op in operations:
                if intent.entities:
                    return f"{op}_{intent.entities[0].type}"
                return op

        return operations[0] if operations else "query"

    def build_parameters(self, intent: Intent) -> dict[str, Any]:
        """
        Flatten an intent into one parameter map.

        Merge order (later keys overwrite earlier ones):
        1. `context["payload"]` when it is a dict.
        2. Filters as `field -> value`.
        3. Entities with role `filter` as `type -> value`.
        4. Timeframe `startDate`/`endDate` ISO strings and `timeframe` token.
        5. `aggregation`.
        """
        params: dict[str, Any] = {}

        payload = intent.context.get("payload") if intent.context else None
        if isinstance(payload, dict):
            params.update(payload)

        params.update(self.intent_parameters(intent))
        return params

    def intent_parameters(self, intent: Intent) -> dict[str, Any]:
        """Parameters derived from the parsed intent alone, without payload."""
        params: dict[str, Any] = {}

        for f in intent.filters:
            params[f.field] = f.value

        for entity in intent.entities:
            if entity.role == "filter":
                params[entity.type] = entity.value

        timeframe = intent.timeframe
        if timeframe is not None:
            if timeframe.start is not None:
                params["startDate"] = timeframe.start.isoformat()
            if timeframe.end is not None:
                params["endDate"] = timeframe.end.isoformat()
            if timeframe.relative:
                params["timeframe"] = timeframe.relative

        if intent.aggregation is not None:
            params["aggregation"] = intent.aggregation.value

        return params

    # =====================================================
    # SCORING / EXPLANATION
    # =====================================================

    def calculate_confidence(self, registration: ServerRegistration, intent: Intent) -> float:
        w = self.weights
        cap = registration.capability

        supported = sum(1 for e in intent.entities if e.type in cap.entities)
        confidence = w.routing_base
        confidence += w.routing_entity_coverage * (supported / max(1, len(intent.entities)))

        if intent.action.value in cap.operations:
            confidence += w.routing_operation_support

        confidence += w.routing_health * (1.0 - registration.metrics.error_rate)
        return clamp01(min(confidence, 1.0))

    def generate_reasoning(self, registration: ServerRegistration, intent: Intent) -> str:
        cap = registration.capability
        reasons = []

        supported = [e.type for e in intent.entities if e.type in cap.entities]
        if supported:
            reasons.append(f"Supports entities: {', '.join(dict.fromkeys(supported))}")

        if intent.action.value in cap.operations:
            reasons.append(f"Can perform {intent.action.value} operations")

        domain = intent.domain
        if domain and domain in cap.domains:
            reasons.append(f"Specializes in {domain}")

        if registration.metrics.avg_response_time < self.settings.fast_response_ms:
            reasons.append("Fast response time")

        return "; ".join(reasons)

    # =====================================================
    # CACHE
    # =====================================================

    @staticmethod
    def cache_key(intent: Intent) -> str:
        entity_pairs = sorted(f"{e.type}:{e.value}" for e in intent.entities)
        filter_triples = sorted(
            f"{f.field}:{getattr(f.operator, 'value', f.operator)}:{f.value}"
            for f in intent.filters
        )
        return "|".join([intent.action.value, *entity_pairs, *filter_triples])

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Routing cache cleared")

    def statistics(self) -> dict[str, Any]:
        keys = self.cache.keys()
        return {"cache_size": len(keys), "cached_routes": keys}
