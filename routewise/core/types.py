"""Shared data contracts for the routing pipeline.

Architectural role:
    Defines the structural types passed between pipeline stages:
    - `Intent` (parser output, router input).
    - `ServerCapability` / `ServerRegistration` (registry state).
    - `RoutingDecision` (router output, validation/execution input).
    - `ValidationResult` (validation output, learning input).
    - `QueryPattern` / `Interaction` / `Feedback` (learning state).
    - `QueryResult` (orchestrator output).

Serialization:
    Every type exposes `to_dict()` returning JSON-safe primitives with ISO-8601
    timestamps. Types persisted in learning snapshots also expose `from_dict()`.

Determinism:
    The dataclasses are purely structural. Determinism depends on the components
    that populate them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class IntentAction(str, Enum):
    QUERY = "query"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SYNC = "sync"
    ANALYZE = "analyze"
    COMPARE = "compare"
    SUMMARIZE = "summarize"
    VALIDATE = "validate"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class AggregationType(str, Enum):
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    GROUP_BY = "group_by"


class ServerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


PROTOCOLS = ("mcp", "rest", "soap", "graphql", "websocket", "lambda")


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def clamp01(value: float) -> float:
    """Clamp a score into the closed unit interval."""
    return max(0.0, min(1.0, float(value)))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


# =========================================================
# INTENT
# =========================================================

@dataclass
class Entity:
    """One extracted entity mention.

    Attributes:
        type: Entity type label (`work_order`, `unit`, `location`, ...).
        value: Captured surface value, or the matched keyword itself.
        role: `subject`, `object` or `filter`.
        confidence: Extraction confidence in `[0, 1]`.
    """

    type: str
    value: str = ""
    role: str = "subject"
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp01(self.confidence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "value": self.value,
            "role": self.role,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entity":
        return cls(
            type=str(data.get("type", "")),
            value=str(data.get("value", "")),
            role=str(data.get("role", "subject")),
            confidence=float(data.get("confidence", 0.0)),
        )


@dataclass
class Filter:
    field: str
    operator: FilterOperator
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "operator": _enum_value(self.operator),
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Filter":
        return cls(
            field=str(data.get("field", "")),
            operator=FilterOperator(data.get("operator", "equals")),
            value=data.get("value"),
        )


@dataclass
class TimeRange:
    start: datetime | None = None
    end: datetime | None = None
    relative: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": _iso(self.start),
            "end": _iso(self.end),
            "relative": self.relative,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeRange":
        return cls(
            start=_parse_iso(data.get("start")),
            end=_parse_iso(data.get("end")),
            relative=data.get("relative"),
        )


@dataclass
class Intent:
    """Structured parse of one free-text request.

    Built fresh per query by the intent parser and persisted only inside an
    `Interaction`. `context` carries caller-supplied data such as `domain`,
    `current_user` and `payload`.
    """

    action: IntentAction
    entities: list[Entity] = field(default_factory=list)
    filters: list[Filter] = field(default_factory=list)
    timeframe: TimeRange | None = None
    aggregation: AggregationType | None = None
    confidence: float = 0.0
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.action = IntentAction(self.action)
        self.confidence = clamp01(self.confidence)
        if self.context is None:
            self.context = {}

    @property
    def domain(self) -> str | None:
        return self.context.get("domain") if self.context else None

    @property
    def entity_types(self) -> list[str]:
        return [e.type for e in self.entities]

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "entities": [e.to_dict() for e in self.entities],
            "filters": [f.to_dict() for f in self.filters],
            "timeframe": self.timeframe.to_dict() if self.timeframe else None,
            "aggregation": _enum_value(self.aggregation),
            "confidence": self.confidence,
            "context": _json_safe(self.context),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Intent":
        timeframe = data.get("timeframe")
        aggregation = data.get("aggregation")
        return cls(
            action=IntentAction(data.get("action", "query")),
            entities=[Entity.from_dict(e) for e in data.get("entities") or []],
            filters=[Filter.from_dict(f) for f in data.get("filters") or []],
            timeframe=TimeRange.from_dict(timeframe) if timeframe else None,
            aggregation=AggregationType(aggregation) if aggregation else None,
            confidence=float(data.get("confidence", 0.0)),
            context=dict(data.get("context") or {}),
        )


# =========================================================
# REGISTRY
# =========================================================

@dataclass(frozen=True)
class RateLimit:
    requests: int
    window_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {"requests": self.requests, "window_ms": self.window_ms}


@dataclass(frozen=True)
class ServerCapability:
    """Capabilities a backend declares at registration time.

    Immutable until the server is re-registered. `domains`, `entities` and
    `operations` feed the registry's three lookup indices.
    """

    protocol: str
    domains: tuple[str, ...] = ()
    entities: tuple[str, ...] = ()
    operations: tuple[str, ...] = ()
    description: str = ""
    rate_limit: RateLimit | None = None
    package: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        if self.protocol not in PROTOCOLS:
            raise ValueError(f"Unsupported protocol: {self.protocol!r}")
        # Lists are accepted from callers and frozen here.
        object.__setattr__(self, "domains", tuple(self.domains))
        object.__setattr__(self, "entities", tuple(self.entities))
        object.__setattr__(self, "operations", tuple(self.operations))

    def to_dict(self) -> dict[str, Any]:
        return {
            "protocol": self.protocol,
            "domains": list(self.domains),
            "entities": list(self.entities),
            "operations": list(self.operations),
            "description": self.description,
            "rate_limit": self.rate_limit.to_dict() if self.rate_limit else None,
            "package": self.package,
            "url": self.url,
        }


@dataclass
class ServerMetrics:
    total_requests: int = 0
    avg_response_time: float = 0.0
    error_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "avg_response_time": self.avg_response_time,
            "error_rate": self.error_rate,
        }


@dataclass
class ServerRegistration:
    name: str
    capability: ServerCapability
    status: ServerStatus = ServerStatus.ACTIVE
    last_health_check: datetime = field(default_factory=utcnow)
    metrics: ServerMetrics = field(default_factory=ServerMetrics)

    @property
    def is_active(self) -> bool:
        return self.status == ServerStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "capability": self.capability.to_dict(),
            "status": self.status.value,
            "last_health_check": _iso(self.last_health_check),
            "metrics": self.metrics.to_dict(),
        }


# =========================================================
# ROUTING / VALIDATION
# =========================================================

@dataclass
class RoutingDecision:
    """Chosen backend, operation and parameters for an intent.

    Attributes:
        server: Name of an `active` registration at decision time.
        tool: Operation name, usually `"{operation}_{entity_type}"`.
        params: Flat parameter map built from the intent.
        protocol: Protocol of the chosen server.
        confidence: Routing confidence in `[0, 1]`.
        alternates: Up to two runner-up decisions (no nested alternates).
        reasoning: Human-readable join of the contributing match facts.
    """

    server: str
    tool: str
    params: dict[str, Any] = field(default_factory=dict)
    protocol: str = "mcp"
    confidence: float = 0.0
    alternates: list["RoutingDecision"] = field(default_factory=list)
    reasoning: str = ""

    def __post_init__(self) -> None:
        self.confidence = clamp01(self.confidence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "server": self.server,
            "tool": self.tool,
            "params": _json_safe(self.params),
            "protocol": self.protocol,
            "confidence": self.confidence,
            "alternates": [a.to_dict() for a in self.alternates],
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoutingDecision":
        return cls(
            server=str(data.get("server", "")),
            tool=str(data.get("tool", "")),
            params=dict(data.get("params") or {}),
            protocol=str(data.get("protocol", "mcp")),
            confidence=float(data.get("confidence", 0.0)),
            alternates=[cls.from_dict(a) for a in data.get("alternates") or []],
            reasoning=str(data.get("reasoning", "")),
        )


@dataclass
class ValidationResult:
    """Outcome of a validation pass. Returned as data, never raised."""

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def merge(self, other: "ValidationResult") -> None:
        """Fold another result's findings into this one."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.suggestions.extend(other.suggestions)
        self.is_valid = not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
            "metadata": _json_safe(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationResult":
        return cls(
            is_valid=bool(data.get("is_valid", True)),
            errors=list(data.get("errors") or []),
            warnings=list(data.get("warnings") or []),
            suggestions=list(data.get("suggestions") or []),
            metadata=dict(data.get("metadata") or {}),
        )


# =========================================================
# LEARNING
# =========================================================

@dataclass
class QueryPattern:
    """Aggregated statistics for one recurring intent signature."""

    signature: str
    query: str = ""
    frequency: int = 0
    avg_duration: float = 0.0
    success_rate: float = 0.0
    last_used: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "query": self.query,
            "frequency": self.frequency,
            "avg_duration": self.avg_duration,
            "success_rate": self.success_rate,
            "last_used": _iso(self.last_used),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryPattern":
        return cls(
            signature=str(data.get("signature", "")),
            query=str(data.get("query", "")),
            frequency=int(data.get("frequency", 0)),
            avg_duration=float(data.get("avg_duration", 0.0)),
            success_rate=float(data.get("success_rate", 0.0)),
            last_used=_parse_iso(data.get("last_used")) or utcnow(),
        )


@dataclass
class Feedback:
    helpful: bool
    rating: int | None = None
    comment: str | None = None
    correct_server: str | None = None
    correct_action: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "helpful": self.helpful,
            "rating": self.rating,
            "comment": self.comment,
            "correct_server": self.correct_server,
            "correct_action": self.correct_action,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Feedback":
        return cls(
            helpful=bool(data.get("helpful", False)),
            rating=data.get("rating"),
            comment=data.get("comment"),
            correct_server=data.get("correct_server"),
            correct_action=data.get("correct_action"),
        )


def interaction_key(timestamp: datetime, query: str) -> str:
    """Build the feedback lookup key `"{epoch_ms}-{query}"`."""
    return f"{int(timestamp.timestamp() * 1000)}-{query}"


@dataclass
class Interaction:
    query: str
    intent: Intent
    routing: RoutingDecision
    result: Any = None
    duration: float = 0.0
    validation: ValidationResult = field(default_factory=ValidationResult)
    timestamp: datetime | None = None
    feedback: Feedback | None = None

    @property
    def interaction_id(self) -> str | None:
        if self.timestamp is None:
            return None
        return interaction_key(self.timestamp, self.query)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.interaction_id,
            "query": self.query,
            "intent": self.intent.to_dict(),
            "routing": self.routing.to_dict(),
            "result": _json_safe(self.result),
            "duration": self.duration,
            "validation": self.validation.to_dict(),
            "timestamp": _iso(self.timestamp),
            "feedback": self.feedback.to_dict() if self.feedback else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Interaction":
        feedback = data.get("feedback")
        return cls(
            query=str(data.get("query", "")),
            intent=Intent.from_dict(data.get("intent") or {}),
            routing=RoutingDecision.from_dict(data.get("routing") or {}),
            result=data.get("result"),
            duration=float(data.get("duration", 0.0)),
            validation=ValidationResult.from_dict(data.get("validation") or {}),
            timestamp=_parse_iso(data.get("timestamp")),
            feedback=Feedback.from_dict(feedback) if feedback else None,
        )


@dataclass
class QueryResult:
    """Top-level outcome of `RoutewiseEngine.query`."""

    success: bool
    intent: Intent | None = None
    routing: RoutingDecision | None = None
    validation: ValidationResult | None = None
    data: Any = None
    confidence: float = 0.0
    duration: float = 0.0
    error: str | None = None
    interaction_id: str | None = None
    explanation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "intent": self.intent.to_dict() if self.intent else None,
            "routing": self.routing.to_dict() if self.routing else None,
            "validation": self.validation.to_dict() if self.validation else None,
            "data": _json_safe(self.data),
            "confidence": self.confidence,
            "duration": self.duration,
            "error": self.error,
            "interaction_id": self.interaction_id,
            "explanation": self.explanation,
        }


def _json_safe(value: Any) -> Any:
    """Recursively convert datetimes, enums and dataclasses into JSON primitives."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return value
