import asyncio
from datetime import timedelta

import pytest

from routewise.core.settings import RegistrySettings
from routewise.core.types import (
    Entity,
    Intent,
    IntentAction,
    ServerCapability,
    ServerStatus,
)
from routewise.registry.capability_registry import CapabilityRegistry
from routewise.registry.catalog import DEFAULT_SERVERS, register_default_catalog
from routewise.registry.fuzzy_index import FuzzyServerIndex, server_terms
from routewise.registry.health import HealthMonitor


def _capability(**kwargs):
    kwargs.setdefault("protocol", "rest")
    return ServerCapability(**kwargs)


@pytest.fixture
def registry(clock):
    return CapabilityRegistry(clock=clock)


def test_indices_track_register_and_unregister(registry):
    registry.register("a", _capability(domains=("maint",), entities=("job",), operations=("query",)))
    registry.register("b", _capability(entities=("job", "invoice"), operations=("create",)))

    snapshot = registry.index_snapshot()
    assert snapshot["entities"] == {"job": ["a", "b"], "invoice": ["b"]}
    assert snapshot["operations"] == {"query": ["a"], "create": ["b"]}
    assert snapshot["domains"] == {"maint": ["a"]}

    assert registry.unregister("b") is True
    snapshot = registry.index_snapshot()
    assert snapshot["entities"] == {"job": ["a"]}
    assert "create" not in snapshot["operations"]

    assert registry.unregister("b") is False


def test_reregister_replaces_capability(registry):
    registry.register("a", _capability(entities=("job",)))
    registry.update_metrics("a", 100, success=False)

    registration = registry.register("a", _capability(entities=("invoice",)))

    assert registry.index_snapshot()["entities"] == {"invoice": ["a"]}
    assert registration.metrics.total_requests == 0
    assert registration.status == ServerStatus.ACTIVE


def test_register_rejects_blank_name(registry):
    with pytest.raises(ValueError):
        registry.register("  ", _capability())


def test_unsupported_protocol_is_rejected():
    with pytest.raises(ValueError):
        ServerCapability(protocol="carrier-pigeon")


def test_candidates_are_union_in_registration_order(registry):
    registry.register("ops", _capability(operations=("create",)))
    registry.register("jobs", _capability(entities=("job",)))
    registry.register("other", _capability(entities=("invoice",)))

    intent = Intent(action=IntentAction.CREATE, entities=[Entity("job", "boiler")])
    assert [r.name for r in registry.find_servers_for_intent(intent)] == ["ops", "jobs"]


def test_candidates_include_context_domain(registry):
    registry.register("maint", _capability(domains=("maintenance",)))
    intent = Intent(action=IntentAction.QUERY, context={"domain": "maintenance"})
    assert [r.name for r in registry.find_servers_for_intent(intent)] == ["maint"]


def test_inactive_servers_are_never_candidates(registry):
    registry.register("a", _capability(entities=("job",)))
    registry.register("b", _capability(entities=("job",)))
    registry.mark_unhealthy("a", "connection refused")

    intent = Intent(action=IntentAction.QUERY, entities=[Entity("job")])
    assert [r.name for r in registry.find_servers_for_intent(intent)] == ["b"]
    assert [r.name for r in registry.find_servers_by_entity("job")] == ["b"]


def test_fuzzy_fallback_matches_near_terms(registry):
    registry.register("docs", _capability(
        entities=("document",), operations=("search",), description="Document archive",
    ))
    registry.register("billing", _capability(entities=("invoice",), operations=("charge",)))

    intent = Intent(action=IntentAction.QUERY, entities=[Entity("documents", "lease documents")])
    assert [r.name for r in registry.find_servers_for_intent(intent)] == ["docs"]


def test_fuzzy_fallback_respects_threshold(clock):
    strict = CapabilityRegistry(RegistrySettings(fuzzy_threshold=0.0), clock=clock)
    strict.register("docs", _capability(entities=("document",)))

    intent = Intent(action=IntentAction.QUERY, entities=[Entity("documents")])
    assert strict.find_servers_for_intent(intent) == []


def test_fuzzy_index_exact_term_has_zero_distance(registry):
    registry.register("docs", _capability(entities=("work_order",)))
    index = FuzzyServerIndex()
    index.rebuild(registry.get_all_servers())

    assert "order" in server_terms(registry.get_server("docs"))
    name, distance = index.search("order")[0]
    assert name == "docs"
    assert distance == pytest.approx(0.0, abs=1e-5)
    assert FuzzyServerIndex().search("order") == []


def test_ranking_prefers_operation_then_entities(registry):
    registry.register("entity_only", _capability(entities=("job", "invoice")))
    registry.register("op_only", _capability(operations=("query",)))
    registry.register("both", _capability(entities=("job",), operations=("query",)))

    intent = Intent(action=IntentAction.QUERY, entities=[Entity("job"), Entity("invoice")])
    candidates = registry.find_servers_for_intent(intent)
    ranked = registry.rank_servers_by_relevance(candidates, intent)

    assert [r.name for r in ranked] == ["both", "entity_only", "op_only"]
    assert [r.name for r in candidates] == ["entity_only", "op_only", "both"]


def test_ranking_penalizes_errors_and_latency(registry):
    registry.register("flaky", _capability(operations=("query",)))
    registry.register("steady", _capability(operations=("query",)))
    registry.update_metrics("flaky", 4000, success=False)

    intent = Intent(action=IntentAction.QUERY)
    ranked = registry.rank_servers_by_relevance(registry.get_all_servers(), intent)

    assert [r.name for r in ranked] == ["steady", "flaky"]
    assert registry.score_server(ranked[1], intent) == pytest.approx(5.0 - 2.0 - 2.0)


def test_ranking_is_stable_for_ties(registry):
    for name in ("first", "second", "third"):
        registry.register(name, _capability(operations=("query",)))

    intent = Intent(action=IntentAction.QUERY)
    ranked = registry.rank_servers_by_relevance(registry.get_all_servers(), intent)
    assert [r.name for r in ranked] == ["first", "second", "third"]


def test_update_metrics_keeps_running_averages(registry):
    registry.register("a", _capability())
    registry.update_metrics("a", 100, success=True)
    registry.update_metrics("a", 300, success=False)
    registry.update_metrics("ghost", 10, success=True)

    metrics = registry.get_server("a").metrics
    assert metrics.total_requests == 2
    assert metrics.avg_response_time == pytest.approx(200.0)
    assert metrics.error_rate == pytest.approx(0.5)


def test_capability_checks(registry):
    registry.register("a", _capability(entities=("job", "invoice"), operations=("query",)))

    assert registry.can_handle_entities("a", [Entity("job"), Entity("invoice")])
    assert not registry.can_handle_entities("a", [Entity("job"), Entity("lease")])
    assert registry.can_perform_operation("a", "query")
    assert not registry.can_perform_operation("a", "delete")
    assert not registry.can_perform_operation("missing", "query")


def test_listeners_receive_events_and_failures_are_isolated(registry):
    events = []

    def broken(event, payload):
        raise RuntimeError("listener bug")

    registry.add_listener(broken)
    registry.add_listener(lambda event, payload: events.append((event, payload.get("name"))))

    registry.register("a", _capability())
    registry.update_metrics("a", 10, success=True)
    registry.mark_unhealthy("a", "timeout")
    registry.unregister("a")

    assert events == [
        ("server:registered", "a"),
        ("metrics:updated", "a"),
        ("server:unhealthy", "a"),
        ("server:unregistered", "a"),
    ]


def test_removed_listener_stops_receiving_events(registry):
    events = []

    def listener(event, payload):
        events.append(event)

    registry.add_listener(listener)
    registry.register("a", _capability())
    registry.remove_listener(listener)
    registry.remove_listener(listener)
    registry.unregister("a")

    assert events == ["server:registered"]


def test_sweep_marks_stale_servers_inactive(registry, clock):
    registry.register("old", _capability())
    clock.advance(minutes=4)
    registry.register("fresh", _capability())
    registry.register("broken", _capability())
    registry.mark_unhealthy("broken")

    clock.advance(minutes=2)
    assert registry.sweep_health() == ["old"]
    assert registry.get_server("old").status == ServerStatus.INACTIVE
    assert registry.get_server("fresh").status == ServerStatus.ACTIVE
    assert registry.get_server("broken").status == ServerStatus.ERROR

    registry.mark_healthy("old")
    assert registry.get_server("old").status == ServerStatus.ACTIVE
    assert registry.get_server("old").last_health_check == clock.now


def test_sweep_uses_explicit_now(registry, clock):
    registry.register("a", _capability())
    assert registry.sweep_health(now=clock.now + timedelta(seconds=299)) == []
    assert registry.sweep_health(now=clock.now + timedelta(seconds=301)) == ["a"]


def test_default_catalog(registry):
    names = register_default_catalog(registry)

    assert names == list(DEFAULT_SERVERS)
    assert [r.name for r in registry.find_servers_by_entity("work_order")] == ["propertyware"]
    assert [r.name for r in registry.find_servers_by_operation("delete")] == ["airtable", "supabase"]


@pytest.mark.asyncio
async def test_health_monitor_runs_sweep_in_background(registry, clock):
    registry.register("a", _capability())
    clock.advance(hours=1)

    monitor = HealthMonitor(registry, interval=0.01)
    monitor.start()
    try:
        for _ in range(100):
            if registry.get_server("a").status == ServerStatus.INACTIVE:
                break
            await asyncio.sleep(0.01)
    finally:
        await monitor.stop()

    assert registry.get_server("a").status == ServerStatus.INACTIVE
    assert monitor.running is False
