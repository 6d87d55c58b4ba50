"""Keyword and regex vocabulary for rule-based intent extraction.

Parsing rules:
- Action categories are matched in fixed precedence order
  (query > create > update > delete > sync > analyze > compare).
- Entity, priority, status and timeframe dictionaries are matched
  independently; dictionary order is significant.
- All patterns run against normalized text unless noted otherwise.

Normalization steps:
- Lowercasing.
- Punctuation replaced by spaces (underscores are kept as word characters).
- Whitespace collapse.

Determinism:
- Fully deterministic; vocabularies are static module constants.
"""

import re


# =========================================================
# ACTIONS (ordered by precedence)
# =========================================================

ACTION_PATTERNS = {
    "query": re.compile(r"\b(show|list|get|find|search|display|view)\b"),
    "create": re.compile(r"\b(create|add|new|generate|make)\b"),
    "update": re.compile(r"\b(update|modify|change|edit|revise)\b"),
    "delete": re.compile(r"\b(delete|remove|cancel|void)\b"),
    "sync": re.compile(r"\b(sync|synchronize|align|match)\b"),
    "analyze": re.compile(r"\b(analyze|examine|investigate|review)\b"),
    "compare": re.compile(r"\b(compare|contrast|diff|versus)\b"),
}


# Seed documents for the bag-of-words fallback classifier.
CLASSIFIER_SEED_DOCUMENTS = [
    ("show list get find display", "query"),
    ("what is are the show me", "query"),
    ("create add new make generate", "create"),
    ("add a new create another", "create"),
    ("update modify change edit revise", "update"),
    ("change the update this modify", "update"),
    ("delete remove cancel void", "delete"),
    ("remove the delete this cancel", "delete"),
    ("sync synchronize align match", "sync"),
    ("sync the data synchronize systems", "sync"),
    ("analyze examine investigate review", "analyze"),
    ("analyze the data review performance", "analyze"),
]


# =========================================================
# DOMAIN ENTITIES (property management)
# =========================================================

ENTITY_PATTERNS = {
    "portfolio": re.compile(r"\b(portfolios?|property groups?|collections?)\b"),
    "building": re.compile(r"\b(buildings?|property|properties|complex(?:es)?|towers?)\b"),
    "unit": re.compile(r"\b(units?|apartments?|suites?|rooms?)\b"),
    "tenant": re.compile(r"\b(tenants?|residents?|occupants?|lessees?)\b"),
    "work_order": re.compile(
        r"\b(work[ _]orders?|maintenance requests?|repairs?|tickets?)\b"
    ),
    "lease": re.compile(r"\b(leases?|rental agreements?|contracts?)\b"),
    "vendor": re.compile(
        r"\b(vendors?|contractors?|service providers?|technicians?)\b"
    ),
}

ENTITY_CONFIDENCE = 0.8
PLACE_CONFIDENCE = 0.7
PERSON_CONFIDENCE = 0.7
NUMBER_CONFIDENCE = 0.6

# Maximum number of tokens captured after an entity keyword.
ENTITY_VALUE_MAX_TOKENS = 3


# =========================================================
# GENERIC EXTRACTION (runs on original casing)
# =========================================================

MONTH_AND_DAY_NAMES = {
    "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept",
    "oct", "nov", "dec",
    "monday", "tuesday", "wednesday", "thursday", "friday",
    "saturday", "sunday",
}

PLACE_PATTERN = re.compile(
    r"\b(?:[Ii]n|[Aa]t|[Nn]ear)\s+([A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*)"
)

PERSON_PATTERNS = [
    re.compile(r"\b(?:Mr|Mrs|Ms|Miss|Dr)\.?\s+([A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)?)"),
    re.compile(
        r"\b(?:[Tt]enant|[Vv]endor|[Cc]ontact|[Tt]echnician|[Rr]esident)\s+"
        r"([A-Z][a-z][\w'-]*(?:\s+[A-Z][a-z][\w'-]*)?)"
    ),
]

NUMBER_PATTERN = re.compile(r"\b\d+(?:\.\d+)?\b")


# =========================================================
# FILTERS
# =========================================================

PRIORITY_PATTERNS = {
    "emergency": re.compile(r"\b(emergency|urgent|critical|immediate)\b"),
    "high": re.compile(r"\b(high priority|important|asap)\b"),
    "medium": re.compile(r"\b(medium priority|normal|standard)\b"),
    "low": re.compile(r"\b(low priority|when possible|non urgent)\b"),
}

STATUS_PATTERNS = {
    "pending": re.compile(r"\b(pending|waiting|queued)\b"),
    "in_progress": re.compile(r"\b(in progress|working|active)\b"),
    "completed": re.compile(r"\b(completed|done|finished|closed)\b"),
    "overdue": re.compile(r"\b(overdue|late|past due)\b"),
}

COMPARISON_PATTERNS = [
    (re.compile(r"greater than (\d+)"), "greater_than"),
    (re.compile(r"less than (\d+)"), "less_than"),
    (re.compile(r"equals? (\d+)"), "equals"),
    (re.compile(r"contains? (.+)"), "contains"),
]


# =========================================================
# TIMEFRAMES
# =========================================================

RELATIVE_TIMEFRAME_PATTERNS = {
    "today": re.compile(r"\b(today|current day)\b"),
    "yesterday": re.compile(r"\b(yesterday|previous day)\b"),
    "last_week": re.compile(r"\b(last week|past week|previous week)\b"),
    "this_week": re.compile(r"\b(this week|current week)\b"),
    "last_month": re.compile(r"\b(last month|past month|previous month)\b"),
    "this_month": re.compile(r"\b(this month|current month)\b"),
}

# Explicit ranges run on lowercased text with punctuation intact so that
# ISO dates survive.
_DATE_TERMINATOR = r"(?=\s+(?:for|in|at|with|and|where|by)\b|[?!.,;]?\s*$)"
DATE_RANGE_PATTERN = re.compile(
    r"\bfrom\s+(.+?)\s+(?:to|until|through)\s+(.+?)" + _DATE_TERMINATOR
)
SPECIFIC_DATE_PATTERN = re.compile(r"\bon\s+(.+?)" + _DATE_TERMINATOR)


# =========================================================
# AGGREGATION
# =========================================================

AGGREGATION_PATTERNS = {
    "count": re.compile(r"\b(how many|count|number of)\b"),
    "sum": re.compile(r"\b(total|sum)\b"),
    "average": re.compile(r"\b(average|mean|avg)\b"),
    "min": re.compile(r"\b(minimum|lowest|smallest)\b"),
    "max": re.compile(r"\b(maximum|highest|largest)\b"),
    "group_by": re.compile(r"\b(group by|grouped by|per)\b"),
}


# =========================================================
# VALUE CAPTURE STOP WORDS
# =========================================================

STOP_WORDS = {
    "a", "an", "the", "and", "or", "of", "in", "at", "on", "for", "with",
    "from", "to", "by", "that", "which", "who", "is", "are", "was", "were",
    "this", "these", "those", "last", "next", "past", "previous", "current",
    "all", "any", "each", "every", "my", "our", "me", "it", "as", "than",
    "where", "when", "not", "no", "have", "has", "had", "need", "needs",
    "about", "into", "over", "under", "between", "per",
}


_KEYWORD_PATTERNS = (
    list(ACTION_PATTERNS.values())
    + list(ENTITY_PATTERNS.values())
    + list(PRIORITY_PATTERNS.values())
    + list(STATUS_PATTERNS.values())
)


def is_keyword(token: str) -> bool:
    """Return whether a single token carries action/entity/priority/status meaning.

    Keywords terminate entity value capture.
    """
    return any(p.fullmatch(token) for p in _KEYWORD_PATTERNS)


# =========================================================
# HELPERS
# =========================================================

def normalize(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    text = str(text).lower()
    text = re.sub(r"[^\w\s]", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def tokenize(text: str) -> list[str]:
    """Tokenize normalized text into word tokens."""
    return re.findall(r"\b\w+\b", text.lower())
