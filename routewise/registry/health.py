"""Background health sweep for the capability registry."""

from routewise.core.periodic import PeriodicTask
from routewise.registry.capability_registry import CapabilityRegistry


class HealthMonitor(PeriodicTask):
    """Run `CapabilityRegistry.sweep_health` on a fixed interval."""

    def __init__(self, registry: CapabilityRegistry, interval: float | None = None):
        super().__init__(
            name="registry-health-monitor",
            interval=interval or registry.settings.health_interval_seconds,
            callback=registry.sweep_health,
        )
        self.registry = registry
