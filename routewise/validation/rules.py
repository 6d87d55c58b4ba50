"""Business rule definitions and the default rule set."""

from dataclasses import dataclass
from typing import Any, Callable


WILDCARD = "*"

VALID_WORK_ORDER_PRIORITIES = ("emergency", "high", "medium", "low")


@dataclass(frozen=True)
class BusinessRule:
    """Boolean predicate over routed parameters.

    `condition(params)` returning falsy adds `message` to errors or warnings
    depending on `severity`.
    """

    id: str
    name: str
    condition: Callable[[dict[str, Any]], Any]
    message: str
    severity: str = "error"
    type: str = "business"

    def __post_init__(self) -> None:
        if self.severity not in ("error", "warning"):
            raise ValueError(f"Unsupported rule severity: {self.severity!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
        }


def _work_order(params: dict[str, Any]) -> Any:
    return params.get("work_order") or params.get("workOrder")


def _valid_work_order_priority(params: dict[str, Any]) -> bool:
    wo = _work_order(params)
    if not isinstance(wo, dict):
        return True
    priority = wo.get("priority")
    return not priority or priority in VALID_WORK_ORDER_PRIORITIES


DEFAULT_RULES = [
    (
        "propertyware",
        "create",
        BusinessRule(
            id="pw-portfolio-required",
            name="Portfolio required",
            condition=lambda p: p.get("portfolioId") or p.get("portfolio"),
            message="PropertyWare operations require a portfolio",
        ),
    ),
    (
        "servicefusion",
        "create",
        BusinessRule(
            id="sf-customer-required",
            name="Customer required",
            condition=lambda p: p.get("customerId") or p.get("customer"),
            message="ServiceFusion jobs require a customer",
        ),
    ),
    (
        WILDCARD,
        "create",
        BusinessRule(
            id="wo-priority-valid",
            name="Valid work order priority",
            condition=_valid_work_order_priority,
            message="Invalid work order priority",
        ),
    ),
]
