"""NLP utilities for intent extraction and query assistance.

Module scope:
- Rule-based intent parsing (`intent_parser`).
- Keyword and regex vocabularies (`vocabulary`).
- Bag-of-words action fallback (`action_classifier`).
- Relative and explicit timeframe parsing (`timeframe`).
- Completion suggestions and result explanations (`suggestions`).

Determinism profile:
- Fully deterministic rule logic; relative timeframes depend on the injected
  clock.
"""
