"""Default property-management server catalog."""

import logging

from routewise.core.types import ServerCapability
from routewise.registry.capability_registry import CapabilityRegistry


logger = logging.getLogger(__name__)


DEFAULT_SERVERS = {
    "propertyware": ServerCapability(
        protocol="soap",
        package="propertyware-adapter",
        domains=("property_management",),
        entities=("portfolio", "building", "unit", "work_order", "lease", "tenant"),
        operations=("query", "create", "update", "sync"),
        description="PropertyWare SOAP API for property management",
    ),
    "servicefusion": ServerCapability(
        protocol="rest",
        package="servicefusion-adapter",
        domains=("property_management", "maintenance"),
        entities=("customer", "job", "vendor", "invoice"),
        operations=("query", "create", "update", "dispatch"),
        description="ServiceFusion REST API for service management",
    ),
    "airtable": ServerCapability(
        protocol="mcp",
        package="@rashidazarang/airtable-mcp",
        domains=("property_management", "general"),
        entities=("record", "table", "base"),
        operations=("query", "create", "update", "delete"),
        description="Airtable MCP for flexible data management",
    ),
    "supabase": ServerCapability(
        protocol="mcp",
        package="@supabase/mcp-server",
        domains=("data_warehouse", "analytics"),
        entities=("table", "view", "function"),
        operations=("query", "insert", "update", "delete", "upsert"),
        description="Supabase data warehouse",
    ),
}


def register_default_catalog(registry: CapabilityRegistry) -> list[str]:
    for name, capability in DEFAULT_SERVERS.items():
        registry.register(name, capability)
    logger.info("Registered %d default servers", len(DEFAULT_SERVERS))
    return list(DEFAULT_SERVERS)
