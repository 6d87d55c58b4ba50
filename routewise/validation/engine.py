"""Pre- and post-execution validation for routed operations.

Architectural role:
    Sits between routing and execution. `validate_operation` decides whether a
    routing decision may run; `validate_result` checks what the backend
    returned before the interaction is recorded.

Evaluation order (`validate_operation`):
    1. Required fields by action, plus the lexical input filter.
    2. Permission policy, only when `context["current_user"]` is present.
    3. Business rules for `"*:action"` then `"server:action"`.
    4. The server's custom validator, if one is registered.

Failure handling:
    - Findings are returned as `ValidationResult` data, never raised.
    - A business rule whose predicate raises counts as failed.
    - A custom validator that raises contributes no findings; the pass
      continues.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from routewise.core.settings import ValidationSettings
from routewise.core.types import Intent, RoutingDecision, ValidationResult, utcnow
from routewise.validation.domain_checks import (
    check_property_management_data,
    is_property_management_data,
)
from routewise.validation.filter import scan_parameters
from routewise.validation.policy import check_permissions
from routewise.validation.rules import DEFAULT_RULES, WILDCARD, BusinessRule


logger = logging.getLogger(__name__)


CustomValidator = Callable[
    [dict[str, Any]],
    Union[ValidationResult, Awaitable[ValidationResult]],
]


def _has_identifier(data: Any) -> bool:
    return isinstance(data, dict) and bool(data.get("id") or data.get("_id"))


class ValidationEngine:
    """Business-rule and safety validation around execution.

    Args:
        settings: Parameter size limit.
        load_defaults: Register the built-in property-management rules.
    """

    def __init__(self, settings: ValidationSettings | None = None, load_defaults: bool = True):
        self.settings = settings or ValidationSettings()
        self._rules: dict[str, list[BusinessRule]] = {}
        self._validators: dict[str, CustomValidator] = {}

        if load_defaults:
            for server, action, rule in DEFAULT_RULES:
                self.add_rule(server, action, rule)

    # =====================================================
    # RULE MANAGEMENT
    # =====================================================

    def add_rule(self, server: str, action: str, rule: BusinessRule) -> None:
        self._rules.setdefault(f"{server}:{action}", []).append(rule)

    def register_validator(self, server: str, validator: CustomValidator) -> None:
        self._validators[server] = validator
        logger.info("Registered custom validator for %s", server)

    def get_rules(self, server: str, action: str) -> list[BusinessRule]:
        """Return wildcard rules first, then server-specific rules."""
        general = self._rules.get(f"{WILDCARD}:{action}", [])
        specific = self._rules.get(f"{server}:{action}", []) if server != WILDCARD else []
        return [*general, *specific]

    # =====================================================
    # PRE-EXECUTION
    # =====================================================

    async def validate_operation(
        self,
        routing: RoutingDecision,
        intent: Intent,
        context: dict[str, Any] | None = None,
    ) -> ValidationResult:
        context = context or {}
        action = intent.action.value
        params = routing.params or {}
        result = ValidationResult()

        # (a) required fields
        if action == "create" and not params:
            result.errors.append("Create operation requires data")
        elif action in ("update", "delete") and not _has_identifier(params):
            result.errors.append(f"{action.capitalize()} operation requires an ID")

        errors, warnings = scan_parameters(params, self.settings.max_param_chars)
        result.errors.extend(errors)
        result.warnings.extend(warnings)

        # (b) permissions
        user = context.get("current_user")
        if user:
            result.errors.extend(check_permissions(user, action, routing.server))

        # (c) business rules
        rules = self.get_rules(routing.server, action)
        for rule in rules:
            if self._rule_passes(rule, params):
                continue
            if rule.severity == "error":
                result.errors.append(rule.message)
            else:
                result.warnings.append(rule.message)

        # (d) custom validator
        custom = await self._run_custom_validator(routing.server, params)
        if custom is not None:
            result.merge(custom)

        result.is_valid = not result.errors
        result.metadata = {
            "validated_at": utcnow().isoformat(),
            "rules_applied": len(rules),
            "server": routing.server,
            "action": action,
        }

        if not result.is_valid:
            logger.info(
                "Validation failed for %s.%s: %s",
                routing.server,
                routing.tool,
                "; ".join(result.errors),
            )
        return result

    @staticmethod
    def _rule_passes(rule: BusinessRule, params: dict[str, Any]) -> bool:
        try:
            return bool(rule.condition(params))
        except Exception:
            logger.warning("Business rule %s raised; treating as failed", rule.id, exc_info=True)
            return False

    async def _run_custom_validator(
        self,
        server: str,
        params: dict[str, Any],
    ) -> ValidationResult | None:
        validator = self._validators.get(server)
        if validator is None:
            return None

        try:
            outcome = validator(params)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception:
            logger.exception("Custom validator for %s raised; ignoring its findings", server)
            return None

        if not isinstance(outcome, ValidationResult):
            logger.warning("Custom validator for %s returned %r; ignoring", server, type(outcome))
            return None
        return outcome

    # =====================================================
    # POST-EXECUTION
    # =====================================================

    async def validate_result(self, result: Any, intent: Intent) -> ValidationResult:
        action = intent.action.value
        outcome = ValidationResult()

        if action == "query" and isinstance(result, list):
            if not result:
                outcome.warnings.append("Query returned no results")
            for index, item in enumerate(result):
                if not _has_identifier(item):
                    outcome.warnings.append(f"Result item {index} missing identifier")

        if action in ("create", "update") and not _has_identifier(result):
            outcome.errors.append("Operation did not return a valid identifier")

        if is_property_management_data(result):
            errors, warnings = check_property_management_data(result)
            outcome.errors.extend(errors)
            outcome.warnings.extend(warnings)

        outcome.is_valid = not outcome.errors
        outcome.metadata = {
            "result_type": _result_type(result),
            "result_count": len(result) if isinstance(result, list) else (0 if result is None else 1),
        }
        return outcome


def _result_type(result: Any) -> str:
    if result is None:
        return "null"
    if isinstance(result, list):
        return "array"
    if isinstance(result, dict):
        return "object"
    return type(result).__name__
