"""Tests for the response document."""

from rules_search.models import Analysis, Rule, SearchResult
from rules_search.response_builder import build_response


def _rules(n):
    return [Rule(id=f"r{i}", title=f"Rule {i}", measurements={"min_hides": i}) for i in range(n)]


def test_count_always_equals_results_length():
    analysis = Analysis(search_terms="hides")
    for n in (0, 1, 4):
        response = build_response("q", analysis, SearchResult(rules=_rules(n)))
        assert response["count"] == len(response["results"]) == n


def test_response_shape():
    analysis = Analysis(search_terms="area size", filters={"level": "Advanced"}, intent="size")
    response = build_response("area?", analysis, SearchResult(rules=_rules(1)))

    assert response["query"] == "area?"
    assert response["analysis"] == {"searchTerms": "area size", "filters": {"level": "Advanced"}, "intent": "size"}
    assert response["results"][0]["title"] == "Rule 0"
    assert response["results"][0]["measurements"] == {"min_hides": 0}
    assert "answer" not in response
    assert "fallback" not in response


def test_optional_answer_and_fallback_fields():
    response = build_response(
        "q", Analysis(), SearchResult(), answer="No relevant rules found to answer this question.", fallback=True
    )
    assert response["answer"].startswith("No relevant rules")
    assert response["fallback"] is True


def test_build_response_does_not_mutate_inputs():
    analysis = Analysis(search_terms="hides", filters={"element": "Buried"})
    result = SearchResult(rules=_rules(2))
    build_response("q", analysis, result)
    assert analysis.filters == {"element": "Buried"}
    assert result.count == 2
