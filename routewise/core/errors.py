"""Typed failures raised by the routing pipeline.

Failure model:
    - `NLPError`: intent parsing failed on malformed or empty input.
    - `RoutingError`: no eligible candidate, or an internal failure during
      ranking/tool selection. Carries the intent and the original cause.
    - `StageTimeoutError`: a pipeline stage exceeded its timeout budget.

Validation findings are never raised; they are returned as
`ValidationResult` data.
"""

from __future__ import annotations

from typing import Any


class RoutewiseError(Exception):
    """Base error carrying a stable machine-readable `code`."""

    code = "ROUTEWISE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NLPError(RoutewiseError):
    code = "NLP_ERROR"


class RoutingError(RoutewiseError):
    code = "ROUTING_ERROR"

    def __init__(
        self,
        message: str,
        intent: Any = None,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.intent = intent
        self.cause = cause


class StageTimeoutError(RoutewiseError):
    code = "STAGE_TIMEOUT"

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(
            f"Stage '{stage}' exceeded its {timeout:g}s budget",
            {"stage": stage, "timeout": timeout},
        )
        self.stage = stage
        self.timeout = timeout
