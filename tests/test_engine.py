import pytest

from routewise.core.settings import LearningSettings, Settings
from routewise.core.types import Feedback, IntentAction, ServerCapability


EMERGENCY_QUERY = "Show all emergency work orders"


@pytest.mark.asyncio
async def test_dry_run_routes_without_executing(make_engine):
    engine = make_engine()

    result = await engine.query(EMERGENCY_QUERY)

    assert result.success is True
    assert result.error is None
    assert result.intent.action == IntentAction.QUERY
    assert result.routing.server == "propertyware"
    assert result.routing.tool == "query_work_order"
    assert result.routing.params == {"priority": "emergency"}
    assert result.validation.is_valid
    assert result.data is None
    assert result.interaction_id is None
    assert result.confidence == pytest.approx(1.0)
    assert engine.learning.interactions == []
    assert "I routed this to propertyware using the soap protocol." in result.explanation


@pytest.mark.asyncio
async def test_executed_query_updates_metrics_and_learning(make_engine, static_executor):
    executor = static_executor(result=[{"id": 1, "work_order": {"priority": "emergency", "vendor": "Acme"}}])
    engine = make_engine(executor=executor)

    result = await engine.query(EMERGENCY_QUERY)

    assert result.success is True
    assert result.data == executor.result
    assert result.validation.is_valid
    assert executor.calls == [("soap", "propertyware", "query_work_order", {"priority": "emergency"})]

    metrics = engine.registry.get_server("propertyware").metrics
    assert metrics.total_requests == 1
    assert metrics.error_rate == 0.0

    assert result.interaction_id.endswith(f"-{EMERGENCY_QUERY}")
    assert [i.interaction_id for i in engine.learning.interactions] == [result.interaction_id]
    assert engine.learning.get_pattern("query:work_order").frequency == 1


@pytest.mark.asyncio
async def test_execution_failure_is_reported(make_engine, static_executor):
    engine = make_engine(executor=static_executor(error=RuntimeError("backend down")))

    result = await engine.query(EMERGENCY_QUERY)

    assert result.success is False
    assert result.error == "backend down"
    assert result.routing.server == "propertyware"
    assert engine.registry.get_server("propertyware").metrics.error_rate == 1.0
    assert engine.learning.interactions == []


@pytest.mark.asyncio
async def test_stage_timeout(make_engine, static_executor):
    settings = Settings(learning=LearningSettings(flush_every=10), stage_timeout_seconds=0.05)
    engine = make_engine(executor=static_executor(result=[], delay=1.0), settings=settings)

    result = await engine.query(EMERGENCY_QUERY)

    assert result.success is False
    assert "execute" in result.error


@pytest.mark.asyncio
async def test_validation_failure_stops_before_execution(make_engine, static_executor):
    executor = static_executor(result={"id": "wo-5"})
    engine = make_engine(executor=executor)

    result = await engine.query("update work order 5")

    assert result.success is False
    assert result.routing.server == "propertyware"
    assert result.validation.errors == ["Update operation requires an ID"]
    assert result.error == "Validation failed: Update operation requires an ID"
    assert executor.calls == []


@pytest.mark.asyncio
async def test_payload_supplies_identifier(make_engine):
    engine = make_engine()

    result = await engine.query(
        "update work order 5",
        {"payload": {"id": "wo-5", "status": "in progress"}},
    )

    assert result.success is True
    assert result.routing.tool == "update_work_order"
    assert result.routing.params["id"] == "wo-5"


@pytest.mark.asyncio
async def test_payload_is_not_replayed_from_routing_cache(make_engine, static_executor):
    executor = static_executor(result={"id": "wo"})
    engine = make_engine(executor=executor)

    for record_id in ("wo-1", "wo-2"):
        result = await engine.query(
            "update work order", {"payload": {"id": record_id, "status": "done"}}
        )
        assert result.success is True

    assert [call[3] for call in executor.calls] == [
        {"id": "wo-1", "status": "done"},
        {"id": "wo-2", "status": "done"},
    ]

    bare = await engine.query("update work order", {})
    assert bare.success is False
    assert bare.validation.errors == ["Update operation requires an ID"]
    assert len(executor.calls) == 2

@pytest.mark.asyncio
async def test_parse_failure(make_engine):
    engine = make_engine()

    result = await engine.query("   ")

    assert result.success is False
    assert result.intent is None
    assert result.error == "Query text is empty"
    assert result.explanation.startswith("I could not process your request")


@pytest.mark.asyncio
async def test_routing_failure_keeps_intent(make_engine):
    engine = make_engine()

    result = await engine.query("delete lease 7")

    assert result.success is False
    assert result.intent.action == IntentAction.DELETE
    assert result.routing is None
    assert "no eligible candidate" in result.error


@pytest.mark.asyncio
async def test_learned_preference_is_a_hint_only(make_engine, monkeypatch):
    engine = make_engine()
    monkeypatch.setattr(engine.learning, "predict_best_server", lambda intent: "airtable")

    result = await engine.query(EMERGENCY_QUERY)

    assert result.routing.server == "propertyware"
    assert result.routing.reasoning.endswith("Learned preference: airtable")
    cached = engine.router.cache.get(engine.router.cache_key(result.intent))
    assert "Learned preference" not in cached.reasoning


@pytest.mark.asyncio
async def test_suggestions_include_learned_queries(make_engine, static_executor):
    engine = make_engine(executor=static_executor(result=[{"id": 1}]))

    assert engine.get_suggestions("work orders") == [
        "Show all emergency work orders",
        "Find overdue work orders",
    ]

    await engine.query("show repairs for unit 12")
    assert engine.get_suggestions("repairs") == ["show repairs for unit 12"]


@pytest.mark.asyncio
async def test_feedback_round_trip(make_engine, static_executor):
    engine = make_engine(executor=static_executor(result=[{"id": 1}]))
    result = await engine.query(EMERGENCY_QUERY)

    assert await engine.record_feedback(result.interaction_id, Feedback(helpful=True, rating=5))
    assert not await engine.record_feedback("missing", Feedback(helpful=False))


@pytest.mark.asyncio
async def test_start_loads_snapshot_and_stop_flushes(make_engine, store):
    store.snapshot = {"patterns": {"query:unit": {"query": "list units", "frequency": 7}}}
    engine = make_engine()

    await engine.start()
    assert engine.health_monitor.running
    assert engine.pattern_sweeper.running
    assert engine.learning.get_pattern("query:unit").frequency == 7

    await engine.stop()
    assert not engine.health_monitor.running
    assert store.saves == 1
    assert store.snapshot["patterns"]["query:unit"]["frequency"] == 7


def test_server_management(make_engine):
    engine = make_engine(catalog=False)
    assert engine.list_servers() == []

    engine.register_server("docs", ServerCapability(protocol="rest", entities=("document",)))
    assert [s.name for s in engine.list_servers()] == ["docs"]
    assert engine.unregister_server("docs") is True
    assert engine.unregister_server("docs") is False
