"""Structural checks for property-management payloads.

Detection:
    A payload is treated as property-management data when its JSON
    serialization mentions any known domain field name.

Checks (per dict, or per dict item of a list):
    - Completed work order requires `completedDate` (error).
    - Emergency work order should have a vendor (warning).
    - Lease end date must be after start date (error).
    - Lease rent must be positive (error).
    - Occupied unit should have a tenant (warning).
    - Vacant unit cannot have a tenant (error).

Failure handling:
    Unparseable lease dates skip the date check instead of failing.
"""

import json
from typing import Any

from dateutil import parser as date_parser


DOMAIN_FIELDS = (
    "portfolio", "building", "unit", "tenant",
    "lease", "work_order", "workorder", "vendor", "rent",
)


def is_property_management_data(data: Any) -> bool:
    if not data:
        return False
    text = json.dumps(data, default=str).lower()
    return any(field in text for field in DOMAIN_FIELDS)


def _parse(value: Any):
    try:
        return date_parser.parse(str(value))
    except (ValueError, OverflowError):
        return None


def _check_record(record: dict[str, Any], errors: list[str], warnings: list[str]) -> None:
    wo = record.get("work_order") or record.get("workOrder")
    if isinstance(wo, dict):
        if wo.get("priority") == "emergency" and not wo.get("vendor"):
            warnings.append("Emergency work order should have a vendor assigned")
        if wo.get("status") == "completed" and not wo.get("completedDate"):
            errors.append("Completed work order must have a completion date")

    lease = record.get("lease")
    if isinstance(lease, dict):
        start, end = lease.get("startDate"), lease.get("endDate")
        if start and end:
            start_dt, end_dt = _parse(start), _parse(end)
            if start_dt is not None and end_dt is not None:
                if (start_dt.tzinfo is None) != (end_dt.tzinfo is None):
                    start_dt = start_dt.replace(tzinfo=None)
                    end_dt = end_dt.replace(tzinfo=None)
                if end_dt <= start_dt:
                    errors.append("Lease end date must be after start date")

        rent = lease.get("rentAmount", lease.get("rent"))
        if rent is not None:
            try:
                if float(rent) <= 0:
                    errors.append("Rent amount must be positive")
            except (TypeError, ValueError):
                errors.append("Rent amount must be positive")

    unit = record.get("unit")
    if isinstance(unit, dict):
        tenant = unit.get("tenantId") or unit.get("tenant_id") or unit.get("tenant")
        if unit.get("status") == "occupied" and not tenant:
            warnings.append("Occupied unit should have a tenant")
        if unit.get("status") == "vacant" and tenant:
            errors.append("Vacant unit cannot have a tenant")


def check_property_management_data(data: Any) -> tuple[list[str], list[str]]:
    """Return `(errors, warnings)` from the structural checks."""
    errors: list[str] = []
    warnings: list[str] = []

    records = data if isinstance(data, list) else [data]
    for record in records:
        if isinstance(record, dict):
            _check_record(record, errors, warnings)

    return errors, warnings
