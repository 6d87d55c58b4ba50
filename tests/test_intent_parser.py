from datetime import datetime, timezone

import pytest

from routewise.core.errors import NLPError
from routewise.core.types import AggregationType, FilterOperator, IntentAction
from routewise.nlp.action_classifier import BagOfWordsClassifier


@pytest.mark.parametrize("text", ["", "   ", "?!...", None, 42])
def test_rejects_empty_or_non_text_input(parser, text):
    with pytest.raises(NLPError):
        parser.parse(text)


def test_emergency_work_orders(parser):
    intent = parser.parse("Show all emergency work orders")

    assert intent.action == IntentAction.QUERY
    assert [(e.type, e.value, e.role) for e in intent.entities] == [
        ("work_order", "work orders", "subject"),
    ]
    assert len(intent.filters) == 1
    assert intent.filters[0].field == "priority"
    assert intent.filters[0].operator == FilterOperator.EQUALS
    assert intent.filters[0].value == "emergency"
    assert intent.timeframe is None
    assert intent.confidence == pytest.approx(0.96)


def test_query_keyword_wins_over_later_categories(parser):
    assert parser.parse("show and create a work order").action == IntentAction.QUERY
    assert parser.parse("add a repair for unit 5").action == IntentAction.CREATE
    assert parser.parse("cancel the lease").action == IntentAction.DELETE


def test_classifier_fallback_when_no_keyword_matches(parser):
    intent = parser.parse("the data systems")
    assert intent.action == IntentAction.SYNC
    assert intent.confidence == pytest.approx(0.7)


def test_unknown_words_default_to_query_without_action_bonus(parser):
    intent = parser.parse("hello there")
    assert intent.action == IntentAction.QUERY
    assert intent.entities == []
    assert intent.confidence == pytest.approx(0.5)


def test_entity_value_capture_stops_at_stop_words(parser):
    intent = parser.parse("create a new work order for unit 5")
    subjects = [(e.type, e.value) for e in intent.entities if e.role == "subject"]
    assert subjects == [("work_order", "work order"), ("unit", "5")]
    assert ("number", "5") in [(e.type, e.value) for e in intent.entities]


def test_subject_entities_follow_text_order(parser):
    intent = parser.parse("List vacant units in Anderson Tower")
    subjects = [e.type for e in intent.entities if e.role == "subject"]
    assert subjects == ["unit", "building"]

    locations = [e for e in intent.entities if e.type == "location"]
    assert [e.value for e in locations] == ["Anderson Tower"]
    assert locations[0].role == "filter"
    assert locations[0].confidence == pytest.approx(0.7)


def test_person_and_place_extraction(parser):
    intent = parser.parse("Show leases for tenant John Smith in Austin")
    by_type = {e.type: e.value for e in intent.entities}

    assert by_type["person"] == "John Smith"
    assert by_type["location"] == "Austin"
    assert by_type["tenant"] == "john smith"
    assert by_type["lease"] == "leases"


def test_month_names_are_not_locations(parser):
    intent = parser.parse("Show work orders in March")
    assert "location" not in intent.entity_types


def test_status_and_priority_filters_are_independent(parser):
    intent = parser.parse("Show completed work orders with high priority")
    filters = {(f.field, f.value) for f in intent.filters}
    assert filters == {("priority", "high"), ("status", "completed")}


def test_comparison_filters(parser):
    intent = parser.parse("list units with rent greater than 1500")
    assert [(f.field, f.operator, f.value) for f in intent.filters] == [
        ("value", FilterOperator.GREATER_THAN, "1500"),
    ]

    intent = parser.parse("find tenants whose name contains smith")
    assert [(f.operator, f.value) for f in intent.filters] == [
        (FilterOperator.CONTAINS, "smith"),
    ]


def test_relative_timeframes_anchor_on_clock(parser):
    today = parser.parse("show work orders from today").timeframe
    assert today.relative == "today"
    assert today.start == datetime(2024, 3, 13, tzinfo=timezone.utc)
    assert today.end == datetime(2024, 3, 13, 23, 59, 59, 999999, tzinfo=timezone.utc)

    week = parser.parse("show repairs this week").timeframe
    assert week.relative == "this_week"
    assert week.start == datetime(2024, 3, 10, tzinfo=timezone.utc)

    month = parser.parse("show leases this month").timeframe
    assert month.start == datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_explicit_date_range(parser):
    timeframe = parser.parse("show work orders from 2024-01-01 to 2024-01-31").timeframe

    assert timeframe.relative is None
    assert timeframe.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert timeframe.end == datetime(2024, 1, 31, tzinfo=timezone.utc)


def test_single_day_spans_twenty_four_hours(parser):
    timeframe = parser.parse("show work orders on 2024-02-15").timeframe
    assert timeframe.start == datetime(2024, 2, 15, tzinfo=timezone.utc)
    assert timeframe.end == datetime(2024, 2, 16, tzinfo=timezone.utc)


def test_unparseable_date_yields_no_timeframe(parser):
    assert parser.parse("put repairs on hold").timeframe is None


def test_aggregation(parser):
    intent = parser.parse("how many work orders are overdue")
    assert intent.aggregation == AggregationType.COUNT
    assert ("status", "overdue") in [(f.field, f.value) for f in intent.filters]


def test_context_is_copied_onto_intent(parser):
    context = {"domain": "maintenance"}
    intent = parser.parse("show repairs", context)

    assert intent.domain == "maintenance"
    context["domain"] = "changed"
    assert intent.domain == "maintenance"


def test_parse_is_deterministic(parser):
    text = "Find overdue work orders near Austin this month"
    assert parser.parse(text).to_dict() == parser.parse(text).to_dict()


def test_classifier_ignores_unknown_tokens():
    classifier = BagOfWordsClassifier()
    assert classifier.classify(["zebra", "quantum"]) is None
    assert classifier.classify(["data", "systems"]) == "sync"


def test_classifier_trains_on_custom_documents():
    classifier = BagOfWordsClassifier([
        ("archive old records", "delete"),
        ("mirror the ledger", "sync"),
    ])
    assert classifier.labels == ["delete", "sync"]
    assert classifier.classify(["mirror", "records", "ledger"]) == "sync"
    assert classifier.classify([]) is None
