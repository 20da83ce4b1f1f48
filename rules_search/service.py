"""
Rules search orchestration.

Pipeline per request:
    query -> interpret (model, or rule-based fallback) -> explicit overrides
          -> rule store search -> optional answer -> response document

Nothing request-specific is stored on the service, so one instance serves
concurrent requests.
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

from rules_search.answer_builder import AnswerExtractor
from rules_search.budget import InvocationBudget
from rules_search.config import Settings
from rules_search.errors import (
    InterpretationError,
    InvalidQueryError,
    QueryNotUnderstoodError,
)
from rules_search.interpreter import QueryInterpreter
from rules_search.llm_client import AnthropicClient
from rules_search.models import Analysis, SearchRequest
from rules_search.query_log import QueryLogWriter, build_log_entry
from rules_search.query_parser import canonical_filter_value, parse_user_query
from rules_search.response_builder import build_response
from rules_search.rule_store import RuleStore, create_search_client

logger = logging.getLogger(__name__)


def apply_overrides(analysis: Analysis, request: SearchRequest) -> Analysis:
    """Apply explicit level/element from the request when they are recognized."""
    filters = dict(analysis.filters)
    for key in ("level", "element"):
        requested = getattr(request, key)
        if not requested:
            continue
        canonical = canonical_filter_value(key, requested)
        if canonical is None:
            logger.warning("Ignoring unrecognized %s override %r", key, requested)
            continue
        filters[key] = canonical
    return analysis.model_copy(update={"filters": filters})


class RulesSearchService:
    """
    Answers natural-language rules questions.

    Args:
        interpreter: QueryInterpreter
        store: RuleStore
        answer_extractor: Optional AnswerExtractor; None skips answers
        query_log: Optional QueryLogWriter; None disables usage logging
    """

    def __init__(
        self,
        interpreter: QueryInterpreter,
        store: RuleStore,
        answer_extractor: Optional[AnswerExtractor] = None,
        query_log: Optional[QueryLogWriter] = None,
        budget: Optional[InvocationBudget] = None,
    ):
        self.interpreter = interpreter
        self.store = store
        self.answer_extractor = answer_extractor
        self.query_log = query_log
        self.budget = budget

    def analyze(self, query: str) -> Tuple[Analysis, bool]:
        """
        Interpret the query, degrading to the rule-based parser.

        Returns:
            (analysis, fallback) where fallback is True if the model was not used

        Raises:
            QueryNotUnderstoodError: model failed and the fallback found
                neither terms nor filters
            BudgetExceededError: invocation budget exhausted
        """
        try:
            return self.interpreter.interpret(query), False
        except InterpretationError as exc:
            logger.warning("Interpretation failed (%s): %s; using keyword fallback", exc.kind, exc)
            analysis = parse_user_query(query)
            if not analysis.search_terms and not analysis.filters:
                raise QueryNotUnderstoodError(exc) from exc
            return analysis, True

    def search(self, request: SearchRequest) -> Dict[str, Any]:
        """
        Run the whole pipeline for one request.

        Raises:
            InvalidQueryError: empty or whitespace-only query
            QueryNotUnderstoodError, BudgetExceededError: interpretation stage
            StoreError: rule store unreachable or timed out
        """
        query = request.query.strip()
        if not query:
            raise InvalidQueryError("empty query")

        total_start = time.time()
        logger.info(
            "Analyzing query %r (org=%s sport=%s)", query, request.organization_code, request.sport_code
        )
        analysis, fallback = self.analyze(query)
        analysis = apply_overrides(analysis, request)

        result = self.store.search(
            analysis,
            limit=request.limit,
            organization_code=request.organization_code,
            sport_code=request.sport_code,
        )

        answer = None
        if self.answer_extractor is not None and not fallback:
            answer = self.answer_extractor.extract(query, result.rules)

        response = build_response(request.query, analysis, result, answer=answer, fallback=fallback)
        logger.info(
            "Query answered with %d rules in %.2fms (fallback=%s)",
            response["count"],
            (time.time() - total_start) * 1000,
            fallback,
        )
        return response

    def log_query(self, request: SearchRequest, response: Dict[str, Any]) -> None:
        """Write the usage record for a completed search, if logging is enabled."""
        if self.query_log is None:
            return
        entry = build_log_entry(
            query=response["query"],
            results_count=response["count"],
            answer_generated=bool(response.get("answer")) and response["count"] > 0,
            organization_code=request.organization_code,
            sport_code=request.sport_code,
            fallback=bool(response.get("fallback")),
        )
        self.query_log.record(entry)


def build_service(settings: Settings) -> RulesSearchService:
    """
    Wire the production collaborators from settings.

    Raises:
        ConfigurationError: model or search credentials are missing
    """
    budget = InvocationBudget(settings.llm_budget_max_calls, settings.llm_budget_window_seconds)
    completion_client = AnthropicClient.from_settings(settings, budget=budget)
    interpreter = QueryInterpreter(completion_client, max_tokens=settings.interpret_max_tokens)
    store = RuleStore(
        create_search_client(settings),
        default_limit=settings.default_result_limit,
        max_limit=settings.max_result_limit,
    )
    answer_extractor = None
    if settings.answer_extraction_enabled:
        answer_extractor = AnswerExtractor(completion_client, max_tokens=settings.answer_max_tokens)
    return RulesSearchService(
        interpreter,
        store,
        answer_extractor=answer_extractor,
        query_log=QueryLogWriter.from_settings(settings),
        budget=budget,
    )
