"""
Azure Search payload builder module.

Converts an Analysis into an Azure AI Search query body: the full-text
search string, the OData filter and the field selection.
"""

import logging
from typing import Any, Dict, List, Optional

from rules_search.models import Analysis
from rules_search.query_parser import canonical_filter_value

logger = logging.getLogger(__name__)

# filter key -> index field
FILTER_FIELDS = {
    "level": "level",
    "element": "element",
}

SELECT_FIELDS: List[str] = [
    "id",
    "section",
    "title",
    "content",
    "level",
    "element",
    "category",
    "keywords",
    "measurements",
]

# score, then stable keys for ties
ORDER_BY: List[str] = ["search.score() desc", "section asc", "id asc"]


def quote_odata(value: str) -> str:
    """Quote a string literal for OData, doubling embedded single quotes."""
    return "'" + value.replace("'", "''") + "'"


def recognized_filters(filters: Dict[str, str]) -> Dict[str, str]:
    """
    Keep only filters whose key and value are in the recognized vocabulary.

    Unrecognized entries are dropped so they widen the search instead of
    failing it.
    """
    kept = {}
    for key, value in filters.items():
        canonical = canonical_filter_value(key, value)
        if canonical is None or key not in FILTER_FIELDS:
            logger.warning("Ignoring unrecognized filter %s=%r", key, value)
            continue
        kept[key] = canonical
    return kept


def build_filter_odata(
    filters: Dict[str, str],
    organization_code: Optional[str] = None,
    sport_code: Optional[str] = None,
    active_only: bool = True,
) -> Optional[str]:
    """
    Convert filters and rulebook scoping to an OData filter expression.

    Args:
        filters: {"level": "Advanced", "element": "Exterior"}
        organization_code: Restrict to one organization's rulebooks (e.g. "AKC")
        sport_code: Restrict to one sport (e.g. "scent-work")
        active_only: Only rules from the active rulebook version

    Returns:
        OData filter string like
        "rulebook_active eq true and level eq 'Advanced'" or None
    """
    clauses = []
    if active_only:
        clauses.append("rulebook_active eq true")
    if organization_code:
        clauses.append(f"organization_code eq {quote_odata(organization_code)}")
    if sport_code:
        clauses.append(f"sport_code eq {quote_odata(sport_code)}")

    for key, value in recognized_filters(filters).items():
        clauses.append(f"{FILTER_FIELDS[key]} eq {quote_odata(value)}")

    return " and ".join(clauses) if clauses else None


def build_search_payload(
    analysis: Analysis,
    top: int,
    organization_code: Optional[str] = None,
    sport_code: Optional[str] = None,
    include_terms: bool = True,
) -> Dict[str, Any]:
    """
    Build the Azure Search JSON payload for an Analysis.

    Args:
        analysis: Interpreted query
        top: Maximum number of rules to return
        include_terms: False builds the filters-only variant (search "*")

    Returns:
        Dictionary with search, searchMode, filter, select, orderby, top

    Note:
        This function only builds the body. The rule store turns it into
        SDK call parameters.
    """
    terms = analysis.search_terms.strip() if include_terms else ""
    payload: Dict[str, Any] = {
        "search": terms or "*",
        "searchMode": "all",
        "select": list(SELECT_FIELDS),
        "orderby": list(ORDER_BY),
        "top": top,
    }
    filter_str = build_filter_odata(analysis.filters, organization_code, sport_code)
    if filter_str:
        payload["filter"] = filter_str
    return payload
