import pytest

from routewise.core.errors import RoutingError
from routewise.core.settings import RouterSettings
from routewise.core.types import (
    AggregationType,
    Entity,
    Filter,
    FilterOperator,
    Intent,
    IntentAction,
    ServerCapability,
    TimeRange,
)
from routewise.registry.capability_registry import CapabilityRegistry
from routewise.routing.cache import DecisionCache
from routewise.routing.router import SemanticRouter


@pytest.fixture
def registry(clock):
    registry = CapabilityRegistry(clock=clock)
    registry.register("A", ServerCapability(
        protocol="mcp", entities=("work_order",), operations=("query", "create"),
    ))
    registry.register("B", ServerCapability(
        protocol="rest", entities=("job",), operations=("query",),
    ))
    return registry


@pytest.fixture
def router(registry):
    return SemanticRouter(registry)


def _work_order_intent(action=IntentAction.CREATE, value="boiler", **kwargs):
    return Intent(action=action, entities=[Entity("work_order", value)], **kwargs)


def test_routes_to_server_supporting_entity_and_operation(router):
    decision = router.route(_work_order_intent())

    assert decision.server == "A"
    assert decision.tool == "create_work_order"
    assert decision.protocol == "mcp"
    assert decision.confidence == pytest.approx(1.0)
    assert decision.alternates == []
    assert "Supports entities: work_order" in decision.reasoning
    assert "Can perform create operations" in decision.reasoning
    assert "Fast response time" in decision.reasoning


def test_no_eligible_candidate_raises(router):
    intent = Intent(action=IntentAction.CREATE, entities=[Entity("job", "plumbing")])

    with pytest.raises(RoutingError) as excinfo:
        router.route(intent)

    assert excinfo.value.intent is intent
    assert "no eligible candidate" in str(excinfo.value)


def test_no_candidates_raises(router):
    intent = Intent(action=IntentAction.SYNC, entities=[Entity("zzqx")])
    with pytest.raises(RoutingError, match="no candidates"):
        router.route(intent)


def test_tool_uses_operation_synonyms(clock):
    registry = CapabilityRegistry(clock=clock)
    registry.register("warehouse", ServerCapability(
        protocol="mcp", entities=("table",), operations=("insert", "list"),
    ))
    router = SemanticRouter(registry)

    created = router.route(Intent(action=IntentAction.CREATE, entities=[Entity("table", "units")]))
    listed = router.route(Intent(action=IntentAction.QUERY, entities=[Entity("table", "units")]))

    assert created.tool == "insert_table"
    assert listed.tool == "list_table"


def test_tool_without_entities_is_bare_operation(router):
    decision = router.route(Intent(action=IntentAction.QUERY))
    assert decision.tool == "query"
    assert decision.server == "A"
    assert [a.server for a in decision.alternates] == ["B"]


def test_alternates_are_capped_at_two(clock):
    registry = CapabilityRegistry(clock=clock)
    for name in ("s1", "s2", "s3", "s4"):
        registry.register(name, ServerCapability(protocol="rest", operations=("query",)))
    router = SemanticRouter(registry)

    decision = router.route(Intent(action=IntentAction.QUERY))

    assert decision.server == "s1"
    assert [a.server for a in decision.alternates] == ["s2", "s3"]
    assert all(a.alternates == [] for a in decision.alternates)


def test_cached_decision_is_returned_without_ranking(router, registry, monkeypatch):
    intent = _work_order_intent()
    first = router.route(intent)

    def fail(*args, **kwargs):
        raise AssertionError("ranking should not run on a cache hit")

    monkeypatch.setattr(registry, "rank_servers_by_relevance", fail)
    second = router.route(_work_order_intent())
    assert second == first
    assert second is not first


def test_cached_decision_does_not_carry_payload(router):
    first = router.route(_work_order_intent(context={"payload": {"id": "wo-1"}}))
    first.params["status"] = "done"

    second = router.route(_work_order_intent(context={"payload": {"id": "wo-2"}}))
    bare = router.route(_work_order_intent())

    assert first.params == {"id": "wo-1", "status": "done"}
    assert second.params == {"id": "wo-2"}
    assert bare.params == {}
    assert router.cache.get(router.cache_key(_work_order_intent())).params == {}


def test_cache_evicts_oldest_entry(registry):
    router = SemanticRouter(registry, RouterSettings(cache_size=2))
    keys = []
    for value in ("a", "b", "c"):
        intent = _work_order_intent(value=value)
        keys.append(router.cache_key(intent))
        router.route(intent)

    assert router.statistics() == {"cache_size": 2, "cached_routes": keys[1:]}


def test_cache_hit_for_inactive_server_is_recomputed(router, registry):
    intent = _work_order_intent(action=IntentAction.QUERY)
    router.route(intent)

    registry.mark_unhealthy("A", "down")

    with pytest.raises(RoutingError):
        router.route(intent)
    assert router.cache_key(intent) not in router.cache


def test_unexpected_failure_is_wrapped(router, registry, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("ranking crashed")

    monkeypatch.setattr(registry, "rank_servers_by_relevance", explode)
    intent = _work_order_intent()

    with pytest.raises(RoutingError) as excinfo:
        router.route(intent)

    assert isinstance(excinfo.value.cause, RuntimeError)
    assert excinfo.value.intent is intent


def test_cache_key_is_order_independent(router):
    first = Intent(
        action=IntentAction.QUERY,
        entities=[Entity("unit", "5"), Entity("work_order", "leak")],
        filters=[Filter("status", FilterOperator.EQUALS, "open"), Filter("priority", FilterOperator.EQUALS, "high")],
    )
    second = Intent(
        action=IntentAction.QUERY,
        entities=[Entity("work_order", "leak"), Entity("unit", "5")],
        filters=[Filter("priority", FilterOperator.EQUALS, "high"), Filter("status", FilterOperator.EQUALS, "open")],
    )
    assert router.cache_key(first) == router.cache_key(second)
    assert router.cache_key(first) != router.cache_key(_work_order_intent(action=IntentAction.QUERY))


def test_build_parameters_merge_order(router, clock):
    intent = Intent(
        action=IntentAction.QUERY,
        entities=[
            Entity("work_order", "leak"),
            Entity("location", "Austin", role="filter"),
        ],
        filters=[Filter("priority", FilterOperator.EQUALS, "emergency")],
        timeframe=TimeRange(clock.now, clock.now, "today"),
        aggregation=AggregationType.COUNT,
        context={"payload": {"id": "wo-1", "priority": "low"}},
    )

    params = router.build_parameters(intent)

    assert params == {
        "id": "wo-1",
        "priority": "emergency",
        "location": "Austin",
        "startDate": clock.now.isoformat(),
        "endDate": clock.now.isoformat(),
        "timeframe": "today",
        "aggregation": "count",
    }


def test_clear_cache(router):
    router.route(_work_order_intent())
    router.clear_cache()
    assert router.statistics()["cache_size"] == 0


def test_decision_cache_rejects_non_positive_capacity():
    with pytest.raises(ValueError):
        DecisionCache(0)


def test_decision_cache_overwrite_keeps_position():
    cache = DecisionCache(2)
    cache.put("a", object())
    cache.put("b", object())
    replacement = object()
    cache.put("a", replacement)
    cache.put("c", object())

    assert cache.keys() == ["b", "c"]
    assert "a" not in cache
