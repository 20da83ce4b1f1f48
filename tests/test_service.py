"""Tests for the end-to-end search pipeline with fake collaborators."""

import json

import pytest
from azure.core.exceptions import ServiceRequestError

from conftest import AREA_SIZE_REPLY, FakeCompletionClient, FakeSearchClient
from rules_search.answer_builder import AnswerExtractor
from rules_search.errors import (
    BudgetExceededError,
    InterpretationError,
    InterpretationErrorKind,
    InvalidQueryError,
    QueryNotUnderstoodError,
    StoreError,
    StoreErrorKind,
)
from rules_search.models import Analysis, SearchRequest
from rules_search.rule_store import RuleStore
from rules_search.service import apply_overrides

EXAMPLE_QUERY = "what is the area size for exterior advanced?"


class FakeQueryLog:
    def __init__(self):
        self.entries = []

    def record(self, entry):
        self.entries.append(entry)
        return True


def test_area_size_example(make_service):
    service = make_service(AREA_SIZE_REPLY)
    response = service.search(SearchRequest(query=EXAMPLE_QUERY))

    assert response["query"] == EXAMPLE_QUERY
    assert response["analysis"]["filters"] == {"level": "Advanced", "element": "Exterior"}
    assert response["analysis"]["searchTerms"] == "area size"
    assert [r["title"] for r in response["results"]] == ["Exterior Advanced Requirements"]
    assert response["results"][0]["measurements"] == {"min_area_sq_ft": 400, "max_area_sq_ft": 600}
    assert response["count"] == 1
    assert "fallback" not in response


def test_non_json_model_output_falls_back_to_keywords(make_service):
    service = make_service("I think you want the exterior advanced area rules!")
    response = service.search(SearchRequest(query=EXAMPLE_QUERY))

    assert response["fallback"] is True
    assert response["analysis"]["filters"] == {"level": "Advanced", "element": "Exterior"}
    assert response["analysis"]["searchTerms"] == "area size"
    assert response["count"] == 1


def test_fallback_without_anything_to_search_is_not_understood(make_service):
    service = make_service("not json")
    with pytest.raises(QueryNotUnderstoodError) as info:
        service.search(SearchRequest(query="what is the?"))
    assert info.value.status_code == 422
    assert info.value.kind == "malformed_model_output"


@pytest.mark.parametrize(
    "kind, status",
    [
        (InterpretationErrorKind.UPSTREAM_UNAVAILABLE, 502),
        (InterpretationErrorKind.TIMEOUT, 504),
    ],
)
def test_not_understood_status_follows_cause(make_service, kind, status):
    service = make_service(InterpretationError(kind, "model trouble"))
    with pytest.raises(QueryNotUnderstoodError) as info:
        service.search(SearchRequest(query="how is it?"))
    assert info.value.status_code == status


def test_model_timeout_with_usable_query_degrades(make_service):
    service = make_service(InterpretationError(InterpretationErrorKind.TIMEOUT, "slow"))
    response = service.search(SearchRequest(query="leash rules for master buried"))
    assert response["fallback"] is True
    assert [r["section"] for r in response["results"]] == ["5.6.1"]


def test_query_without_vocabulary_searches_unfiltered(make_service):
    reply = json.dumps({"searchTerms": "area size", "filters": {"level": "Novice", "element": None}})
    service = make_service(reply)
    response = service.search(SearchRequest(query="what are the search area size limits?"))

    assert response["analysis"]["filters"] == {}
    assert {r["section"] for r in response["results"]} == {"2.3.1", "3.4.2"}


def test_empty_query_is_rejected(make_service):
    service = make_service(AREA_SIZE_REPLY)
    with pytest.raises(InvalidQueryError):
        service.search(SearchRequest(query="   "))
    assert service.completion.prompts == []


def test_budget_exhaustion_propagates(make_service):
    service = make_service(BudgetExceededError("spent"))
    with pytest.raises(BudgetExceededError):
        service.search(SearchRequest(query=EXAMPLE_QUERY))


def test_store_unavailable_surfaces(make_service):
    store = RuleStore(FakeSearchClient([], error=ServiceRequestError("connection refused")))
    service = make_service(AREA_SIZE_REPLY, store=store)
    with pytest.raises(StoreError) as info:
        service.search(SearchRequest(query=EXAMPLE_QUERY))
    assert info.value.error_kind is StoreErrorKind.UNAVAILABLE
    assert info.value.status_code == 503


def test_explicit_overrides_replace_interpreted_filters(make_service):
    service = make_service(AREA_SIZE_REPLY)
    response = service.search(SearchRequest(query="area size for exterior advanced", level="novice", element="Interior"))
    assert response["analysis"]["filters"] == {"level": "Novice", "element": "Interior"}
    assert [r["section"] for r in response["results"]] == ["2.3.1"]


def test_unrecognized_override_is_ignored():
    analysis = Analysis(search_terms="hides", filters={"level": "Master"})
    updated = apply_overrides(analysis, SearchRequest(query="hides", level="Grandmaster"))
    assert updated.filters == {"level": "Master"}


def test_repeated_searches_are_identical(make_service):
    service = make_service(AREA_SIZE_REPLY)
    request = SearchRequest(query="what are the area size rules?")
    assert service.search(request) == service.search(request)


def test_answer_is_extracted_with_second_model_call(make_service):
    completion = FakeCompletionClient("Exterior Advanced is 400 to 600 square feet.")
    service = make_service(AREA_SIZE_REPLY, answer_extractor=AnswerExtractor(completion))
    response = service.search(SearchRequest(query=EXAMPLE_QUERY))
    assert response["answer"] == "Exterior Advanced is 400 to 600 square feet."


def test_answer_skipped_on_fallback(make_service):
    completion = FakeCompletionClient("should not be used")
    service = make_service("garbage", answer_extractor=AnswerExtractor(completion))
    response = service.search(SearchRequest(query=EXAMPLE_QUERY))
    assert "answer" not in response
    assert completion.prompts == []


def test_log_query_records_usage(make_service):
    service = make_service(AREA_SIZE_REPLY)
    service.query_log = FakeQueryLog()
    request = SearchRequest(query=EXAMPLE_QUERY, organizationCode="AKC", sportCode="scent-work")
    response = service.search(request)
    service.log_query(request, response)

    entry = service.query_log.entries[0]
    assert entry["query"] == EXAMPLE_QUERY
    assert entry["results_count"] == 1
    assert entry["answer_generated"] is False
    assert entry["organization_code"] == "AKC"
    assert entry["sport_code"] == "scent-work"


def test_response_echoes_query_as_sent(make_service):
    service = make_service(AREA_SIZE_REPLY)
    raw = "  " + EXAMPLE_QUERY + "\n"
    response = service.search(SearchRequest(query=raw))
    assert response["query"] == raw
    assert EXAMPLE_QUERY in service.completion.prompts[0]
    assert response["count"] == 1
