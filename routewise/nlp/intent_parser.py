"""Intent parser producing `Intent` objects for the routing pipeline.

Intent classification logic:
- Action: ordered keyword categories with fixed precedence
  (query > create > update > delete > sync > analyze > compare), then the
  bag-of-words classifier, then `query`.
- Entities: property-management dictionaries (confidence 0.8) plus generic
  place/person (0.7) and number (0.6) extraction.
- Filters: priority, status and comparison patterns, independent and
  non-exclusive.
- Timeframe: relative keyword table, then explicit date parsing.
- Aggregation: keyword table, first match wins.

Interaction with routing:
- `IntentParser` is the protocol consumed by `routewise.core.engine`. A
  statistical parser can replace `RuleBasedIntentParser` without touching the
  registry, router or validation contracts.

Determinism:
- Deterministic for identical input, context and clock.

Failure handling:
- Empty, blank or non-string input raises `NLPError`.
- Unexpected extraction failures are wrapped in `NLPError`.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Protocol

from routewise.core.errors import NLPError
from routewise.core.settings import ScoringWeights
from routewise.core.types import (
    AggregationType,
    Entity,
    Filter,
    FilterOperator,
    Intent,
    IntentAction,
    TimeRange,
    clamp01,
    utcnow,
)
from routewise.nlp.action_classifier import BagOfWordsClassifier
from routewise.nlp.timeframe import extract_timeframe
from routewise.nlp.vocabulary import (
    ACTION_PATTERNS,
    AGGREGATION_PATTERNS,
    COMPARISON_PATTERNS,
    ENTITY_CONFIDENCE,
    ENTITY_PATTERNS,
    ENTITY_VALUE_MAX_TOKENS,
    MONTH_AND_DAY_NAMES,
    NUMBER_CONFIDENCE,
    NUMBER_PATTERN,
    PERSON_CONFIDENCE,
    PERSON_PATTERNS,
    PLACE_CONFIDENCE,
    PLACE_PATTERN,
    PRIORITY_PATTERNS,
    STATUS_PATTERNS,
    STOP_WORDS,
    is_keyword,
    normalize,
    tokenize,
)


logger = logging.getLogger(__name__)


class IntentParser(Protocol):
    """Minimal interface required by the orchestrator."""

    def parse(self, text: str, context: dict[str, Any] | None = None) -> Intent:
        """Parse free text into a structured `Intent`."""
        ...


class RuleBasedIntentParser:
    """Deterministic keyword/regex intent parser.

    Args:
        weights: Confidence blend constants.
        clock: Callable returning the anchor time for relative timeframes.
        classifier: Fallback action classifier.
    """

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        clock: Callable[[], datetime] = utcnow,
        classifier: BagOfWordsClassifier | None = None,
    ):
        self.weights = weights or ScoringWeights()
        self.clock = clock
        self.classifier = classifier or BagOfWordsClassifier()

    def parse(self, text: str, context: dict[str, Any] | None = None) -> Intent:
        """
        Parse a free-text request into an `Intent`.

        Parsing rules:
        1. Reject empty input before any extraction.
        2. Normalize, tokenize, then extract each component independently.
        3. Blend confidence from action/entity/filter evidence.

        Edge cases:
        - Punctuation-only input normalizes to nothing and is rejected.
        - `context` is attached unchanged (copied) to the intent.
        """
        if not isinstance(text, str) or not text.strip():
            raise NLPError("Query text is empty", {"query": text})

        normalized = normalize(text)
        if not normalized:
            raise NLPError("Query text contains no words", {"query": text})

        try:
            tokens = tokenize(normalized)
            action, action_matched = self.extract_action(normalized, tokens)
            entities = self.extract_entities(normalized, text)
            filters = self.extract_filters(normalized)
            timeframe = self.extract_timeframe(normalized, text)
            aggregation = self.extract_aggregation(normalized)
        except Exception as exc:
            logger.exception("Failed to parse intent for query=%r", text)
            raise NLPError(f"Failed to parse query: {exc}", {"query": text}) from exc

        intent = Intent(
            action=action,
            entities=entities,
            filters=filters,
            timeframe=timeframe,
            aggregation=aggregation,
            confidence=self.calculate_confidence(action_matched, entities, filters),
            context=dict(context or {}),
        )

        logger.debug(
            "parsed_intent query=%r action=%s entities=%d filters=%d confidence=%.3f",
            text,
            intent.action.value,
            len(intent.entities),
            len(intent.filters),
            intent.confidence,
        )
        return intent

    # -----------------------------------------------------
    # ACTION
    # -----------------------------------------------------

    def extract_action(self, normalized: str, tokens: list[str]) -> tuple[IntentAction, bool]:
        """Return `(action, matched)`; `matched` is False only for the default."""
        for action, pattern in ACTION_PATTERNS.items():
            if pattern.search(normalized):
                return IntentAction(action), True

        label = self.classifier.classify(tokens)
        if label is not None:
            return IntentAction(label), True

        return IntentAction.QUERY, False

    # -----------------------------------------------------
    # ENTITIES
    # -----------------------------------------------------

    def extract_entities(self, normalized: str, original: str) -> list[Entity]:
        """
        Extract dictionary entities, then generic place/person/number entities.

        Dictionary entities are ordered by position in the text; the first one
        is the primary entity used for tool naming.
        """
        positioned: list[tuple[int, Entity]] = []

        for entity_type, pattern in ENTITY_PATTERNS.items():
            for match in pattern.finditer(normalized):
                value = _capture_value(normalized, match.end()) or match.group(0)
                positioned.append((
                    match.start(),
                    Entity(
                        type=entity_type,
                        value=value,
                        role="subject",
                        confidence=ENTITY_CONFIDENCE,
                    ),
                ))

        positioned.sort(key=lambda item: item[0])
        entities = [entity for _, entity in positioned]

        for match in PLACE_PATTERN.finditer(original):
            place = _strip_calendar_words(match.group(1))
            if place:
                entities.append(
                    Entity(type="location", value=place, role="filter", confidence=PLACE_CONFIDENCE)
                )

        seen_people: set[str] = set()
        for pattern in PERSON_PATTERNS:
            for match in pattern.finditer(original):
                person = match.group(1).strip()
                if person and person not in seen_people:
                    seen_people.add(person)
                    entities.append(
                        Entity(type="person", value=person, role="filter", confidence=PERSON_CONFIDENCE)
                    )

        for match in NUMBER_PATTERN.finditer(normalized):
            entities.append(
                Entity(type="number", value=match.group(0), role="filter", confidence=NUMBER_CONFIDENCE)
            )

        return entities

    # -----------------------------------------------------
    # FILTERS
    # -----------------------------------------------------

    def extract_filters(self, normalized: str) -> list[Filter]:
        filters: list[Filter] = []

        for priority, pattern in PRIORITY_PATTERNS.items():
            if pattern.search(normalized):
                filters.append(Filter("priority", FilterOperator.EQUALS, priority))

        for status, pattern in STATUS_PATTERNS.items():
            if pattern.search(normalized):
                filters.append(Filter("status", FilterOperator.EQUALS, status))

        for pattern, operator in COMPARISON_PATTERNS:
            match = pattern.search(normalized)
            if match:
                filters.append(Filter("value", FilterOperator(operator), match.group(1).strip()))

        return filters

    # -----------------------------------------------------
    # TIMEFRAME / AGGREGATION
    # -----------------------------------------------------

    def extract_timeframe(self, normalized: str, original: str) -> TimeRange | None:
        lowered = " ".join(original.lower().split())
        return extract_timeframe(normalized, lowered, self.clock())

    def extract_aggregation(self, normalized: str) -> AggregationType | None:
        for aggregation, pattern in AGGREGATION_PATTERNS.items():
            if pattern.search(normalized):
                return AggregationType(aggregation)
        return None

    # -----------------------------------------------------
    # CONFIDENCE
    # -----------------------------------------------------

    def calculate_confidence(
        self,
        action_matched: bool,
        entities: list[Entity],
        filters: list[Filter],
    ) -> float:
        w = self.weights
        confidence = w.intent_base

        if action_matched:
            confidence += w.intent_action_matched

        if entities:
            mean_entity = sum(e.confidence for e in entities) / len(entities)
            confidence += w.intent_entity_mean * mean_entity

        if filters:
            confidence += w.intent_filter_present

        return clamp01(min(confidence, 1.0))


def _capture_value(normalized: str, offset: int) -> str:
    """Capture up to `ENTITY_VALUE_MAX_TOKENS` descriptive tokens after a keyword."""
    captured: list[str] = []
    for token in normalized[offset:].split():
        if token in STOP_WORDS or is_keyword(token):
            break
        captured.append(token)
        if len(captured) >= ENTITY_VALUE_MAX_TOKENS:
            break
    return " ".join(captured)


def _strip_calendar_words(text: str) -> str:
    """Drop a capture that is only a month or weekday name."""
    words = text.split()
    if words and all(w.lower() in MONTH_AND_DAY_NAMES for w in words):
        return ""
    return text.strip()
