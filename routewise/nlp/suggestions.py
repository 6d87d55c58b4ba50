"""Query completion suggestions and human-readable explanations.

Suggestion logic:
- Built-in property-management queries containing the partial text
  (case-insensitive substring), followed by learned pattern queries that
  contain it.
- Deduplicated with first-seen order preserved, truncated to `limit`.

Explanation logic:
- `describe_intent` renders action, entities, filters and timeframe.
- `generate_explanation` adds routing target, validation errors and duration.

Determinism:
- Fully deterministic for identical inputs.
"""

from typing import Iterable

from routewise.core.types import Intent, QueryPattern, QueryResult


COMMON_QUERIES = [
    "Show all emergency work orders",
    "List vacant units in",
    "Get maintenance requests for",
    "Show tenant information for unit",
    "Display lease renewals this month",
    "Find overdue work orders",
    "Show vendor performance report",
    "List properties with upcoming inspections",
]


def generate_suggestions(
    partial: str,
    patterns: Iterable[QueryPattern] = (),
    limit: int = 5,
) -> list[str]:
    """Return up to `limit` completions for a partial query.

    Args:
        partial: Text typed so far. Empty text matches everything.
        patterns: Learned patterns, typically most frequent first.
        limit: Maximum number of suggestions.

    Returns:
        Ordered, deduplicated suggestion strings.
    """
    if limit <= 0:
        return []

    needle = (partial or "").strip().lower()

    candidates = [q for q in COMMON_QUERIES if needle in q.lower()]
    candidates.extend(
        p.query for p in patterns
        if p.query and needle in p.query.lower()
    )

    seen: set[str] = set()
    suggestions: list[str] = []
    for candidate in candidates:
        if candidate in seen:
            continue
        seen.add(candidate)
        suggestions.append(candidate)
        if len(suggestions) >= limit:
            break

    return suggestions


def describe_intent(intent: Intent) -> str:
    parts = [intent.action.value]

    if intent.entities:
        parts.append(", ".join(f'{e.type} "{e.value}"' for e in intent.entities))

    if intent.filters:
        rendered = ", ".join(
            f"{f.field} {getattr(f.operator, 'value', f.operator)} {f.value}"
            for f in intent.filters
        )
        parts.append(f"with filters: {rendered}")

    if intent.timeframe:
        if intent.timeframe.relative:
            parts.append(f"for {intent.timeframe.relative}")
        elif intent.timeframe.start and intent.timeframe.end:
            parts.append(
                f"between {intent.timeframe.start.date().isoformat()} "
                f"and {intent.timeframe.end.date().isoformat()}"
            )

    if intent.aggregation:
        parts.append(f"aggregated by {intent.aggregation.value}")

    return " ".join(parts)


def generate_explanation(result: QueryResult) -> str:
    """Render a `QueryResult` as a short paragraph for end users."""
    sentences = []

    if result.intent is not None:
        sentences.append(f"I understood your request as: {describe_intent(result.intent)}.")
    elif result.error:
        sentences.append(f"I could not process your request: {result.error}.")

    if result.routing is not None:
        sentences.append(
            f"I routed this to {result.routing.server} using the "
            f"{result.routing.protocol} protocol."
        )

    if result.validation is not None and not result.validation.is_valid:
        sentences.append(
            "Note: There were some validation issues: "
            f"{', '.join(result.validation.errors)}."
        )

    if result.duration:
        sentences.append(f"The query took {result.duration:.0f}ms to complete.")

    return " ".join(sentences)
