"""
Concise answer extraction from matched rules.

A second model call reads the matched rules and answers the question in a
sentence or two. Structured measurements are listed first and marked as the
only source for numbers.
"""

import logging
from typing import Dict, List

from rules_search.errors import RulesSearchError
from rules_search.models import Rule

logger = logging.getLogger(__name__)

NO_RULES_ANSWER = "No relevant rules found to answer this question."
EXTRACTION_FAILED_ANSWER = "Found relevant rules but couldn't extract a specific answer."

MEASUREMENT_LABELS: Dict[str, str] = {
    "min_area_sq_ft": "Min Area",
    "max_area_sq_ft": "Max Area",
    "time_limit_minutes": "Time Limit",
    "min_height_inches": "Min Height",
    "max_height_inches": "Max Height",
    "min_hides": "Min Hides",
    "max_hides": "Max Hides",
    "hides_known": "Hides Known to Handler",
    "num_containers": "Containers",
    "max_leash_length_feet": "Max Leash",
    "warning_seconds": "Warning Time",
}

MEASUREMENT_UNITS: Dict[str, str] = {
    "min_area_sq_ft": " sq ft",
    "max_area_sq_ft": " sq ft",
    "time_limit_minutes": " minutes",
    "min_height_inches": " inches",
    "max_height_inches": " inches",
    "max_leash_length_feet": " feet",
    "warning_seconds": " seconds",
}

ANSWER_PROMPT_TEMPLATE = """You are an AKC Scent Work rules expert. Answer the question concisely using only the rules below.

Question: "{query}"

Rules:
{context}

Instructions:
1. For any number (area size, time limit, number of hides, leash length), use ONLY the values under "AUTHORITATIVE MEASUREMENTS". Never take numbers from the full rule text.
2. Container or box counts in the rule text are not hide counts.
3. When measurements give a min and max, answer with the range, e.g. "1-4 hides".
4. Answer directly in 1-3 sentences.

Answer:"""


def format_measurement(key: str, value) -> str:
    """Format one measurement as a labelled line, e.g. "- Min Area: 400 sq ft"."""
    label = MEASUREMENT_LABELS.get(key, key)
    unit = MEASUREMENT_UNITS.get(key, "")
    return f"- {label}: {value}{unit}"


def build_rule_context(rules: List[Rule]) -> str:
    """Render matched rules for the answer prompt, measurements first."""
    blocks = []
    for idx, rule in enumerate(rules, start=1):
        lines = [f"Rule {idx}: {rule.title}"]
        if rule.measurements:
            lines.append("")
            lines.append("AUTHORITATIVE MEASUREMENTS (use ONLY these for numerical answers):")
            lines.extend(format_measurement(key, value) for key, value in rule.measurements.items())
        lines.append("")
        lines.append("Full rule text (descriptive only, do not take numbers from here):")
        lines.append(rule.content)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class AnswerExtractor:
    """Answer a question from matched rules with one model call."""

    def __init__(self, completion_client, max_tokens: int = 300):
        self.completion_client = completion_client
        self.max_tokens = max_tokens

    def extract(self, query: str, rules: List[Rule]) -> str:
        """
        Return a short answer, or a fixed message when no answer is possible.

        Never raises for model or budget failures: the rules themselves are
        still returned to the caller.
        """
        if not rules:
            return NO_RULES_ANSWER

        prompt = ANSWER_PROMPT_TEMPLATE.format(
            query=query.replace('"', "'"),
            context=build_rule_context(rules),
        )
        try:
            answer = self.completion_client.complete(prompt, max_tokens=self.max_tokens).strip()
        except RulesSearchError as exc:
            logger.warning("Answer extraction failed (%s): %s", exc.stage, exc)
            return EXTRACTION_FAILED_ANSWER
        return answer or EXTRACTION_FAILED_ANSWER
