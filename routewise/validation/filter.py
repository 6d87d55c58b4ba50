"""Rule-based lexical input filter for routed parameters.

Purpose:
    Provide a deterministic pre-execution check that rejects parameter values
    carrying database control keywords and flags oversized payloads.

Validation model:
    - Rule-based only (regex matching), no classifier/model inference.
    - Every string value is scanned, including strings nested in dicts and
      lists.
    - Output is a list of findings consumed by `ValidationEngine`.

Blocking behavior:
    - Injection findings are errors and make the operation invalid.
    - Oversized payloads are warnings only.

Determinism:
    For the same parameters and pattern list, output is deterministic.

Bypass risk:
    Keyword matching can be bypassed by encoding or obfuscation. Backends still
    need parameterized queries.
"""

import json
import re
from typing import Any, Iterator


INJECTION_PATTERNS = [
    re.compile(r"\bDROP\b", re.IGNORECASE),
    re.compile(r"\bDELETE\b", re.IGNORECASE),
    re.compile(r"\bUNION\b", re.IGNORECASE),
    re.compile(r"\bSELECT\b.*\bFROM\b", re.IGNORECASE | re.DOTALL),
    re.compile(r"\bINSERT\s+INTO\b", re.IGNORECASE),
    re.compile(r"--"),
    re.compile(r";\s*(?:DROP|DELETE|UPDATE|INSERT|ALTER|TRUNCATE|EXEC)\b", re.IGNORECASE),
]

INJECTION_ERROR = "Potentially malicious input detected"
OVERSIZED_WARNING = "Large parameter size may affect performance"


def _string_values(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _string_values(item)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            yield from _string_values(item)


def contains_injection(text: str) -> bool:
    """Return whether one string matches any injection keyword pattern."""
    if not text:
        return False
    return any(p.search(text) for p in INJECTION_PATTERNS)


def scan_parameters(params: dict[str, Any] | None, max_chars: int) -> tuple[list[str], list[str]]:
    """Scan routed parameters.

    Args:
        params: Parameter map from the routing decision.
        max_chars: Serialized size above which a warning is emitted.

    Returns:
        `(errors, warnings)`. At most one injection error is reported per scan.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not params:
        return errors, warnings

    if any(contains_injection(v) for v in _string_values(params)):
        errors.append(INJECTION_ERROR)

    serialized = json.dumps(params, default=str, ensure_ascii=False)
    if len(serialized) > max_chars:
        warnings.append(OVERSIZED_WARNING)

    return errors, warnings
