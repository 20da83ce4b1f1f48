"""
Query interpretation with a language model.

Flow: user query -> prompt -> model reply -> strict JSON validation ->
filters reconciled against the recognized vocabulary -> Analysis.

The model decides the topic (search terms) and disambiguates filters; the
rule-based parser keeps its filters grounded in what the user actually typed.
"""

import json
import logging
import re
import time
from typing import Dict, Optional

from pydantic import ValidationError

from rules_search.errors import InterpretationError, InterpretationErrorKind
from rules_search.models import Analysis, ModelAnalysis
from rules_search.query_parser import (
    FILTER_VOCABULARY,
    KNOWN_ELEMENTS,
    KNOWN_LEVELS,
    canonical_filter_value,
    extract_search_terms,
    find_mentions,
    normalize,
)

logger = logging.getLogger(__name__)

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

PROMPT_TEMPLATE = """You interpret questions about AKC Scent Work rules for a rules search index.

From the question, extract:
1. searchTerms: the specific topic asked about, in a few words (e.g. "area size", "time limit", "number of hides", "leash requirements"). Never generic phrases like "AKC rules".
2. filters.level: one of {levels}, only if the question mentions it, else null.
3. filters.element: one of {elements}, only if the question mentions it, else null.
4. intent: a short description of what the user wants to know.

Question: "{query}"

Reply with JSON only, no markdown, exactly in this shape:
{{"searchTerms": "...", "filters": {{"level": null, "element": null}}, "intent": "..."}}

Examples:
- "what is the area size for exterior advanced?" -> searchTerms "area size", level "Advanced", element "Exterior"
- "how many hides in master buried?" -> searchTerms "hides", level "Master", element "Buried"
- "time limit for novice" -> searchTerms "time limit", level "Novice", element null"""


def build_prompt(query: str) -> str:
    """Render the interpretation prompt for one query."""
    return PROMPT_TEMPLATE.format(
        query=query.replace('"', "'"),
        levels=", ".join(KNOWN_LEVELS),
        elements=", ".join(KNOWN_ELEMENTS),
    )


def parse_model_output(text: str) -> ModelAnalysis:
    """
    Parse the model reply into a ModelAnalysis, failing closed.

    The reply may wrap the JSON object in prose or markdown fences; the
    outermost {...} block is taken and validated against the strict schema.

    Raises:
        InterpretationError(MALFORMED_MODEL_OUTPUT): no JSON object, invalid
            JSON, or any schema deviation
    """
    match = JSON_OBJECT_RE.search(text or "")
    if not match:
        raise InterpretationError(
            InterpretationErrorKind.MALFORMED_MODEL_OUTPUT, "model reply contained no JSON object"
        )
    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise InterpretationError(
            InterpretationErrorKind.MALFORMED_MODEL_OUTPUT, f"model reply is not valid JSON: {exc.msg}"
        ) from exc
    if not isinstance(raw, dict):
        raise InterpretationError(
            InterpretationErrorKind.MALFORMED_MODEL_OUTPUT, "model reply is not a JSON object"
        )
    try:
        return ModelAnalysis.model_validate(raw)
    except ValidationError as exc:
        raise InterpretationError(
            InterpretationErrorKind.MALFORMED_MODEL_OUTPUT,
            f"model reply failed schema validation ({exc.error_count()} errors)",
        ) from exc


def reconcile_filters(query: str, proposed: Dict[str, Optional[str]]) -> Dict[str, str]:
    """
    Combine model-proposed filters with the vocabulary mentioned in the query.

    Per filter key:
      - the model's value is kept when it is recognized and the query mentions it
      - otherwise the first value the query mentions is used
      - otherwise the key is omitted

    Example:
        query "novice or master container?", model level "Master"
            -> {"level": "Master", "element": "Container"}
    """
    text_lower = normalize(query)
    filters = {}
    for key, aliases in FILTER_VOCABULARY.items():
        mentioned = find_mentions(text_lower, aliases)
        if not mentioned:
            if proposed.get(key):
                logger.info("Dropping ungrounded %s filter %r", key, proposed[key])
            continue
        candidate = canonical_filter_value(key, proposed.get(key))
        filters[key] = candidate if candidate in mentioned else mentioned[0]
    return filters


class QueryInterpreter:
    """
    Turn a natural-language query into an Analysis via the language model.

    Args:
        completion_client: object with ``complete(prompt, max_tokens) -> str``
            (AnthropicClient in production)
        max_tokens: Reply token cap for the interpretation call
    """

    def __init__(self, completion_client, max_tokens: int = 200):
        self.completion_client = completion_client
        self.max_tokens = max_tokens

    def interpret(self, query: str) -> Analysis:
        """
        Interpret one query.

        Raises:
            InterpretationError: model unreachable, slow or malformed reply
            BudgetExceededError: invocation budget exhausted
        """
        start = time.time()
        text = self.completion_client.complete(build_prompt(query), max_tokens=self.max_tokens)
        parsed = parse_model_output(text)

        search_terms = parsed.search_terms.strip() or extract_search_terms(query)
        analysis = Analysis(
            search_terms=search_terms,
            filters=reconcile_filters(query, parsed.filters.model_dump()),
            intent=(parsed.intent or "").strip(),
        )
        logger.info(
            "Interpreted query in %.2fms: terms=%r filters=%s",
            (time.time() - start) * 1000,
            analysis.search_terms,
            analysis.filters,
        )
        return analysis
