"""Core request orchestration for parsing, routing, validation and learning.

Architectural role:
    Provides the main execution pipeline used by API/CLI layers to turn one
    free-text request into a routed, validated and (optionally) executed
    operation. `RoutewiseEngine` owns one instance of every component; nothing
    is shared through module globals.

Control-flow model:
    1. Parse text into an `Intent`.
    2. Ask the learning system for a learned server preference (reasoning
       hint only; it never overrides the router).
    3. Route the intent to a `RoutingDecision`.
    4. Pre-validate. An invalid operation returns `success=False` with the
       intent, routing and validation attached.
    5. Execute through the configured `ExecutionEngine`. Without one the call
       is a dry run and stops here.
    6. Feed execution time/outcome into registry metrics, post-validate the
       result, record the interaction for learning.

Timeouts:
    Every stage runs under `Settings.stage_timeout_seconds`. Expiry raises
    `StageTimeoutError` internally and surfaces as a failed `QueryResult`.

Error handling strategy:
    `query()` never raises. Parser, routing, validation and execution failures
    are logged and returned as `success=False` with the error string and the
    partial intent/routing computed so far.

Side effects:
    - Registry metrics updates after execution.
    - Learning history/pattern updates and periodic snapshot writes.
    - Background health and pattern sweeps between `start()` and `stop()`.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Protocol

from routewise.core.errors import StageTimeoutError
from routewise.core.settings import Settings
from routewise.core.types import (
    Feedback,
    Intent,
    Interaction,
    QueryResult,
    RoutingDecision,
    ServerCapability,
    ServerRegistration,
    ValidationResult,
    clamp01,
)
from routewise.learning.learning_system import LearningSystem
from routewise.learning.snapshot_store import SnapshotStore
from routewise.learning.suggestions import OptimizationSuggestion
from routewise.learning.sweeper import PatternSweeper
from routewise.nlp.intent_parser import IntentParser, RuleBasedIntentParser
from routewise.nlp.suggestions import generate_explanation, generate_suggestions
from routewise.registry.capability_registry import CapabilityRegistry
from routewise.registry.catalog import register_default_catalog
from routewise.registry.health import HealthMonitor
from routewise.routing.router import SemanticRouter
from routewise.validation.engine import ValidationEngine


logger = logging.getLogger(__name__)


class ExecutionEngine(Protocol):
    """Minimal async interface for performing a routed backend call."""

    async def execute(self, protocol: str, server: str, tool: str, params: dict[str, Any]) -> Any:
        """Run `tool` on `server` over `protocol` and return the backend result."""
        ...


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


class RoutewiseEngine:
    """Pipeline owner: parser, registry, router, validation and learning.

    Args:
        settings: Aggregate configuration. Defaults read the environment.
        executor: Backend caller. `None` runs every query as a dry run.
        parser: Intent parser. Defaults to `RuleBasedIntentParser`.
        snapshot_store: Learning persistence override.
        load_default_catalog: Override `settings.registry.load_default_catalog`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        executor: ExecutionEngine | None = None,
        parser: IntentParser | None = None,
        snapshot_store: SnapshotStore | None = None,
        load_default_catalog: bool | None = None,
    ):
        self.settings = settings or Settings()
        self.executor = executor

        self.parser = parser or RuleBasedIntentParser(weights=self.settings.weights)
        self.registry = CapabilityRegistry(self.settings.registry, self.settings.weights)
        self.router = SemanticRouter(self.registry, self.settings.router, self.settings.weights)
        self.validation = ValidationEngine(self.settings.validation)
        self.learning = LearningSystem(self.settings.learning, store=snapshot_store)

        self.health_monitor = HealthMonitor(self.registry)
        self.pattern_sweeper = PatternSweeper(self.learning)

        if load_default_catalog is None:
            load_default_catalog = self.settings.registry.load_default_catalog
        if load_default_catalog:
            register_default_catalog(self.registry)

    # =====================================================
    # LIFECYCLE
    # =====================================================

    async def start(self) -> None:
        """Load the learning snapshot and start background sweeps."""
        await asyncio.to_thread(self.learning.load)
        self.health_monitor.start()
        self.pattern_sweeper.start()
        logger.info("Routewise engine started with %d servers", len(self.registry.get_all_servers()))

    async def stop(self) -> None:
        """Cancel background sweeps and write a final snapshot."""
        await self.health_monitor.stop()
        await self.pattern_sweeper.stop()
        await self.learning.flush()
        logger.info("Routewise engine stopped")

    # =====================================================
    # SERVERS
    # =====================================================

    def register_server(self, name: str, capability: ServerCapability) -> ServerRegistration:
        return self.registry.register(name, capability)

    def unregister_server(self, name: str) -> bool:
        return self.registry.unregister(name)

    def list_servers(self) -> list[ServerRegistration]:
        return self.registry.get_all_servers()

    # =====================================================
    # QUERY PIPELINE
    # =====================================================

    async def _stage(self, name: str, awaitable: Awaitable[Any]) -> Any:
        timeout = self.settings.stage_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise StageTimeoutError(name, timeout) from exc

    def calculate_confidence(
        self,
        intent: Intent,
        routing: RoutingDecision,
        validation: ValidationResult,
    ) -> float:
        w = self.settings.weights
        confidence = w.result_base
        confidence += w.result_intent * intent.confidence
        confidence += w.result_routing * routing.confidence
        if validation.is_valid:
            confidence += w.result_valid
        return clamp01(min(confidence, 1.0))

    async def query(self, text: str, context: dict[str, Any] | None = None) -> QueryResult:
        """
        Run one request through the pipeline.

        Args:
            text: Free-text request.
            context: Caller data (`domain`, `current_user`, `payload`, ...).

        Returns:
            `QueryResult`; failures are reported through `success=False`.
        """
        context = dict(context or {})
        start = time.perf_counter()

        intent: Intent | None = None
        routing: RoutingDecision | None = None
        validation: ValidationResult | None = None

        try:
            intent = await self._stage("parse", asyncio.to_thread(self.parser.parse, text, context))

            predicted = self.learning.predict_best_server(intent)

            routing = await self._stage("route", asyncio.to_thread(self.router.route, intent))
            if predicted and predicted != routing.server:
                hint = f"Learned preference: {predicted}"
                routing = replace(
                    routing,
                    reasoning=f"{routing.reasoning}; {hint}" if routing.reasoning else hint,
                )

            validation = await self._stage(
                "validate", self.validation.validate_operation(routing, intent, context)
            )
            if not validation.is_valid:
                return self._finish(QueryResult(
                    success=False,
                    intent=intent,
                    routing=routing,
                    validation=validation,
                    confidence=self.calculate_confidence(intent, routing, validation),
                    duration=_elapsed_ms(start),
                    error=f"Validation failed: {'; '.join(validation.errors)}",
                ))

            if self.executor is None:
                logger.info("Dry run: %s.%s not executed", routing.server, routing.tool)
                return self._finish(QueryResult(
                    success=True,
                    intent=intent,
                    routing=routing,
                    validation=validation,
                    confidence=self.calculate_confidence(intent, routing, validation),
                    duration=_elapsed_ms(start),
                ))

            data = await self._execute(routing)

            result_validation = await self._stage(
                "post_validate", self.validation.validate_result(data, intent)
            )
            duration = _elapsed_ms(start)

            interaction_id = await self.learning.record_interaction(Interaction(
                query=text,
                intent=intent,
                routing=routing,
                result=data,
                duration=duration,
                validation=result_validation,
            ))

            return self._finish(QueryResult(
                success=True,
                intent=intent,
                routing=routing,
                validation=result_validation,
                data=data,
                confidence=self.calculate_confidence(intent, routing, result_validation),
                duration=duration,
                interaction_id=interaction_id,
            ))

        except Exception as exc:
            logger.exception("Query failed: %r", text)
            return self._finish(QueryResult(
                success=False,
                intent=intent,
                routing=routing,
                validation=validation,
                duration=_elapsed_ms(start),
                error=str(exc),
            ))

    async def _execute(self, routing: RoutingDecision) -> Any:
        exec_start = time.perf_counter()
        try:
            data = await self._stage(
                "execute",
                self.executor.execute(routing.protocol, routing.server, routing.tool, routing.params),
            )
        except Exception:
            self.registry.update_metrics(routing.server, _elapsed_ms(exec_start), success=False)
            raise

        self.registry.update_metrics(routing.server, _elapsed_ms(exec_start), success=True)
        self.registry.mark_healthy(routing.server)
        return data

    @staticmethod
    def _finish(result: QueryResult) -> QueryResult:
        result.explanation = generate_explanation(result)
        return result

    # =====================================================
    # ASSISTANCE
    # =====================================================

    def get_suggestions(self, partial: str, limit: int = 5) -> list[str]:
        patterns = self.learning.get_frequent_patterns(limit=max(limit, 10))
        return generate_suggestions(partial, patterns, limit)

    async def record_feedback(self, interaction_id: str, feedback: Feedback) -> bool:
        return await self.learning.record_feedback(interaction_id, feedback)

    def explain(self, result: QueryResult) -> str:
        return generate_explanation(result)

    def get_optimization_suggestions(self) -> list[OptimizationSuggestion]:
        return self.learning.get_optimization_suggestions()
