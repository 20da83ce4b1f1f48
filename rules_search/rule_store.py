"""
Rule store access over Azure AI Search.

Runs the full-text search described by an Analysis against the rules index,
narrowed by the recognized filters, and converts index documents into Rule
models. Network failures surface as StoreError; they are never hidden behind
an empty result.
"""

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ServiceRequestTimeoutError,
    ServiceResponseTimeoutError,
)
from azure.search.documents import SearchClient

from rules_search.config import Settings
from rules_search.errors import ConfigurationError, StoreError, StoreErrorKind
from rules_search.models import Analysis, Rule, SearchResult
from rules_search.payload_builder import build_search_payload, recognized_filters

logger = logging.getLogger(__name__)


def create_search_client(settings: Settings) -> SearchClient:
    """
    Create the Azure Search client for the rules index.

    The SDK pools connections internally, so one client is shared by all
    requests. Timeouts bound every call and the pipeline retries at most
    ``search_retry_total`` times.
    """
    if not settings.search_endpoint or not settings.search_api_key:
        raise ConfigurationError("AZURE_SEARCH_ENDPOINT and AZURE_SEARCH_API_KEY must be configured")
    return SearchClient(
        endpoint=settings.search_endpoint,
        index_name=settings.search_index_name,
        credential=AzureKeyCredential(settings.search_api_key),
        connection_timeout=settings.search_connect_timeout_seconds,
        read_timeout=settings.search_timeout_seconds,
        retry_total=settings.search_retry_total,
    )


def _decode_measurements(raw: Any) -> Dict[str, Any]:
    # the index stores measurements as a JSON string
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring undecodable measurements value %r", raw)
        return {}
    return decoded if isinstance(decoded, dict) else {}


def document_to_rule(doc: Dict[str, Any]) -> Rule:
    """Convert one index document into a Rule."""
    categories = {
        key: doc[key]
        for key in ("level", "element", "category")
        if doc.get(key)
    }
    return Rule(
        id=str(doc.get("id", "")),
        section=doc.get("section") or "",
        title=doc.get("title") or "",
        content=doc.get("content") or "",
        categories=categories,
        keywords=list(doc.get("keywords") or []),
        measurements=_decode_measurements(doc.get("measurements")),
        score=float(doc.get("@search.score") or 0.0),
    )


def rank_rules(rules: Iterable[Rule]) -> List[Rule]:
    """Order by relevance, ties broken by section then id so identical inputs give identical output."""
    return sorted(rules, key=lambda rule: (-rule.score, rule.section, rule.id))


class RuleStore:
    """
    Full-text search over the rules index.

    Args:
        client: azure.search.documents.SearchClient (or a fake with the same
            ``search`` signature)
        default_limit: Rules returned when the caller gives no limit
        max_limit: Upper bound on any requested limit
    """

    def __init__(self, client: SearchClient, default_limit: int = 5, max_limit: int = 20):
        self.client = client
        self.default_limit = default_limit
        self.max_limit = max_limit

    def search(
        self,
        analysis: Analysis,
        limit: Optional[int] = None,
        organization_code: Optional[str] = None,
        sport_code: Optional[str] = None,
    ) -> SearchResult:
        """
        Search rules matching the analysis.

        If the terms plus filters match nothing and at least one filter is
        set, the search is repeated with the filters alone.

        Raises:
            StoreError: index unreachable (UNAVAILABLE) or too slow (TIMEOUT)
        """
        top = min(limit or self.default_limit, self.max_limit)
        payload = build_search_payload(analysis, top, organization_code, sport_code)
        rules = self._execute(payload)

        has_terms = payload["search"] != "*"
        if not rules and has_terms and recognized_filters(analysis.filters):
            logger.info("No results with search terms, retrying with filters only")
            fallback_payload = build_search_payload(
                analysis, top, organization_code, sport_code, include_terms=False
            )
            return SearchResult(rules=self._execute(fallback_payload), used_filter_fallback=True)

        return SearchResult(rules=rules)

    def _execute(self, payload: Dict[str, Any]) -> List[Rule]:
        start = time.time()
        try:
            results = self.client.search(
                search_text=payload["search"],
                filter=payload.get("filter"),
                select=payload["select"],
                order_by=payload["orderby"],
                top=payload["top"],
                search_mode=payload["searchMode"],
            )
            # the SDK pages lazily, so the request happens while iterating
            documents = [dict(item) for item in results]
        except (ServiceRequestTimeoutError, ServiceResponseTimeoutError) as exc:
            logger.error("Rule search timed out: %s", exc)
            raise StoreError(StoreErrorKind.TIMEOUT, "rule search timed out") from exc
        except HttpResponseError as exc:
            logger.error("Rule search failed with HTTP %s: %s", exc.status_code, exc.message)
            raise StoreError(StoreErrorKind.UNAVAILABLE, f"rule search failed with HTTP {exc.status_code}") from exc
        except AzureError as exc:
            logger.error("Rule store unreachable: %s", exc)
            raise StoreError(StoreErrorKind.UNAVAILABLE, "rule store unreachable") from exc

        rules = rank_rules(document_to_rule(doc) for doc in documents)
        logger.info(
            "Search %r filter=%r returned %d rules in %.2fms",
            payload["search"],
            payload.get("filter"),
            len(rules),
            (time.time() - start) * 1000,
        )
        return rules
