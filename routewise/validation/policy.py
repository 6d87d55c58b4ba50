"""Role and permission policy for routed operations.

Decision model:
    - Each action maps to a set of permissions; holding any one of them, or
      the `admin` role, satisfies the check.
    - Server-specific role restrictions apply on top and cannot be overridden
      by permissions.

Determinism:
    Deterministic for identical user, action and server.

Failure handling:
    Findings are returned as error strings; nothing is raised.
"""

from typing import Any


REQUIRED_PERMISSIONS = {
    "create": {"write", "admin"},
    "update": {"write", "admin"},
    "delete": {"admin"},
    "sync": {"admin"},
    "query": {"read", "write", "admin"},
}

DEFAULT_REQUIRED = {"admin"}

# server -> role -> error message
SERVER_ROLE_RESTRICTIONS = {
    "propertyware": {"tenant": "Tenants cannot access PropertyWare directly"},
}


def _user_field(user: Any, name: str, default=None):
    if isinstance(user, dict):
        return user.get(name, default)
    return getattr(user, name, default)


def required_permissions(action: str) -> set[str]:
    return REQUIRED_PERMISSIONS.get(action, DEFAULT_REQUIRED)


def check_permissions(user: Any, action: str, server: str) -> list[str]:
    """Return permission errors for `user` performing `action` on `server`."""
    errors: list[str] = []

    role = _user_field(user, "role")
    held = set(_user_field(user, "permissions", None) or ())

    if role != "admin" and not (held & required_permissions(action)):
        errors.append(f"User lacks permission for {action} operation")

    restriction = SERVER_ROLE_RESTRICTIONS.get(server, {}).get(role)
    if restriction:
        errors.append(restriction)

    return errors
