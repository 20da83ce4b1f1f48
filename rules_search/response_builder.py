"""Assemble the caller-facing JSON document for one search."""

from typing import Any, Dict, Optional

from rules_search.models import Analysis, SearchResult


def build_response(
    query: str,
    analysis: Analysis,
    result: SearchResult,
    answer: Optional[str] = None,
    fallback: bool = False,
) -> Dict[str, Any]:
    """
    Combine the query, its analysis and the matched rules.

    ``count`` is always ``len(results)``. ``answer`` and ``fallback`` are only
    present when answer extraction ran or interpretation degraded.
    """
    results = [rule.to_payload() for rule in result.rules]
    response: Dict[str, Any] = {
        "query": query,
        "analysis": analysis.to_payload(),
        "results": results,
        "count": len(results),
    }
    if answer is not None:
        response["answer"] = answer
    if fallback:
        response["fallback"] = True
    return response
