"""Runtime configuration for the routing pipeline.

Architectural role:
    Centralizes tunables for the parser, registry, router, validation engine,
    learning system and orchestrator. Components receive these objects through
    their constructors; nothing reads the environment after construction.

Resolution:
    Values are read from the process environment (after `load_dotenv()`) when
    this module is imported. Tests and embedding applications override fields by
    constructing the dataclasses explicitly.

Determinism:
    Deterministic for a fixed process environment.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Diagnostics switch shared by router/engine debug logging.
DEBUG = os.getenv("DEBUG") == "true"


@dataclass(frozen=True)
class ScoringWeights:
    """Linear-blend constants for every confidence and ranking score.

    Intent confidence:
        base + action_matched + entity_mean * mean(entity confidence)
        + filter_present, capped at 1.0.

    Registry ranking:
        entity_match * supported entities + operation_match
        + domain_match - error_penalty * error_rate
        - latency_penalty * avg_response_time_seconds.

    Routing confidence:
        base + entity_coverage * supported fraction + operation_support
        + health * (1 - error_rate), capped at 1.0.

    Result confidence:
        base + intent * intent confidence + routing * routing confidence
        + valid (when validation passed), capped at 1.0.
    """

    intent_base: float = 0.5
    intent_action_matched: float = 0.2
    intent_entity_mean: float = 0.2
    intent_filter_present: float = 0.1

    rank_entity_match: float = 3.0
    rank_operation_match: float = 5.0
    rank_domain_match: float = 4.0
    rank_error_penalty: float = 2.0
    rank_latency_penalty: float = 0.5

    routing_base: float = 0.5
    routing_entity_coverage: float = 0.2
    routing_operation_support: float = 0.2
    routing_health: float = 0.1

    result_base: float = 0.5
    result_intent: float = 0.3
    result_routing: float = 0.3
    result_valid: float = 0.4


@dataclass(frozen=True)
class RegistrySettings:
    fuzzy_threshold: float = float(os.getenv("ROUTEWISE_FUZZY_THRESHOLD", "0.4"))
    health_interval_seconds: float = float(os.getenv("ROUTEWISE_HEALTH_INTERVAL_SECONDS", "60"))
    health_stale_seconds: float = float(os.getenv("ROUTEWISE_HEALTH_STALE_SECONDS", "300"))
    load_default_catalog: bool = _env_bool("ROUTEWISE_DEFAULT_CATALOG", "true")


@dataclass(frozen=True)
class RouterSettings:
    cache_size: int = int(os.getenv("ROUTEWISE_ROUTER_CACHE_SIZE", "1000"))
    fast_response_ms: float = 1000.0


@dataclass(frozen=True)
class ValidationSettings:
    max_param_chars: int = int(os.getenv("ROUTEWISE_MAX_PARAM_CHARS", "100000"))


@dataclass(frozen=True)
class LearningSettings:
    data_path: str = os.getenv("ROUTEWISE_DATA_PATH", os.path.join("data", "learning"))
    max_history_size: int = int(os.getenv("ROUTEWISE_MAX_HISTORY", "1000"))
    flush_every: int = int(os.getenv("ROUTEWISE_FLUSH_EVERY", "10"))
    snapshot_tail: int = 100
    sweep_interval_seconds: float = float(os.getenv("ROUTEWISE_SWEEP_INTERVAL_SECONDS", "300"))
    pattern_max_age_days: float = float(os.getenv("ROUTEWISE_PATTERN_MAX_AGE_DAYS", "7"))
    pattern_min_frequency: int = int(os.getenv("ROUTEWISE_PATTERN_MIN_FREQUENCY", "5"))
    prediction_min_success: float = 0.8
    feedback_error_increment: float = 0.1


@dataclass(frozen=True)
class Settings:
    """Aggregate configuration handed to `RoutewiseEngine`."""

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    registry: RegistrySettings = field(default_factory=RegistrySettings)
    router: RouterSettings = field(default_factory=RouterSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    learning: LearningSettings = field(default_factory=LearningSettings)
    stage_timeout_seconds: float = float(os.getenv("ROUTEWISE_STAGE_TIMEOUT_SECONDS", "10"))
