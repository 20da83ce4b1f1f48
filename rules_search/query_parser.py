"""
Rule-based query parsing for the rules search service.

This module holds the fixed filter vocabulary (levels and elements) and the
deterministic helpers that recognize it in natural language. It is used to
ground and back-fill the language model's filters, and on its own as the
fallback analysis when the model cannot be used.
"""

import re
from typing import Dict, List, Optional

from rules_search.models import Analysis

# ============================================================
# Configuration: recognized filter vocabulary
# ============================================================

LEVEL_ALIASES = {
    "novice": "Novice",
    "advanced": "Advanced",
    "adv": "Advanced",
    "excellent": "Excellent",
    "master": "Master",
    "masters": "Master",
}

ELEMENT_ALIASES = {
    "container": "Container",
    "containers": "Container",
    "interior": "Interior",
    "interiors": "Interior",
    "exterior": "Exterior",
    "exteriors": "Exterior",
    "buried": "Buried",
}

# filter key -> alias table
FILTER_VOCABULARY = {
    "level": LEVEL_ALIASES,
    "element": ELEMENT_ALIASES,
}

KNOWN_LEVELS = ("Novice", "Advanced", "Excellent", "Master")
KNOWN_ELEMENTS = ("Container", "Interior", "Exterior", "Buried")

STOPWORDS_FOR_SEARCH = {
    "what", "whats", "what's", "is", "are", "the", "a", "an", "of", "for", "in",
    "on", "at", "to", "and", "or", "with", "how", "many", "much", "does", "do",
    "can", "there", "tell", "me", "show", "give", "about", "please", "rule",
    "rules", "akc", "scent", "work", "class", "level", "element", "i", "my",
    "dog", "which", "when", "where", "should", "be", "it",
}


def normalize(text: str) -> str:
    """Normalize text by lowercasing and removing extra whitespace."""
    return " ".join(text.lower().strip().split())


# ============================================================
# Detection helpers - identify vocabulary in the user query
# ============================================================

def find_mentions(text_lower: str, aliases: Dict[str, str]) -> List[str]:
    """
    Find every canonical value mentioned in the text, in order of first appearance.

    Matching is on whole words so that e.g. "adv" does not fire inside
    "advice". When two aliases overlap at the same position the longest wins.

    Examples:
        "novice vs master interior" with LEVEL_ALIASES -> ["Novice", "Master"]
        "masters buried" with LEVEL_ALIASES -> ["Master"]
    """
    hits = []
    for phrase, canonical in aliases.items():
        for match in re.finditer(r"\b" + re.escape(phrase) + r"\b", text_lower):
            hits.append((match.start(), -len(phrase), canonical))
    hits.sort()

    mentions = []
    for _, _, canonical in hits:
        if canonical not in mentions:
            mentions.append(canonical)
    return mentions


def detect_level(text_lower: str) -> Optional[str]:
    """
    Detect the competition level from user input.

    Returns:
        Canonical level (e.g. "Advanced") or None if no level is mentioned.
    """
    mentions = find_mentions(text_lower, LEVEL_ALIASES)
    return mentions[0] if mentions else None


def detect_element(text_lower: str) -> Optional[str]:
    """
    Detect the search element from user input.

    Returns:
        Canonical element (e.g. "Exterior") or None if no element is mentioned.
    """
    mentions = find_mentions(text_lower, ELEMENT_ALIASES)
    return mentions[0] if mentions else None


def detect_filters(user_input: str) -> Dict[str, str]:
    """Detect every recognized filter explicitly mentioned in the query."""
    text_lower = normalize(user_input)
    filters = {}
    level = detect_level(text_lower)
    if level:
        filters["level"] = level
    element = detect_element(text_lower)
    if element:
        filters["element"] = element
    return filters


def canonical_filter_value(key: str, value: Optional[str]) -> Optional[str]:
    """
    Map a filter value onto the recognized vocabulary.

    Returns:
        The canonical spelling, or None if the key or value is not recognized.

    Examples:
        ("level", "advanced") -> "Advanced"
        ("level", "Expert") -> None
        ("breed", "Sporting") -> None
    """
    aliases = FILTER_VOCABULARY.get(key)
    if not aliases or not value:
        return None
    return aliases.get(normalize(value))


def extract_search_terms(user_input: str) -> str:
    """
    Heuristic: remove stopwords and vocabulary words, keep the topic.

    Example:
        "what is the area size for exterior advanced?" -> "area size"
    """
    text_lower = normalize(user_input)
    tokens = re.findall(r"[a-z0-9][a-z0-9'\-]*", text_lower)
    vocabulary_words = set()
    for aliases in FILTER_VOCABULARY.values():
        vocabulary_words.update(aliases)

    filtered = []
    for tok in tokens:
        if tok in STOPWORDS_FOR_SEARCH:
            continue
        if tok in vocabulary_words:
            continue
        filtered.append(tok)
    return " ".join(filtered)


# ============================================================
# Main query parsing: user text -> Analysis
# ============================================================

def parse_user_query(user_input: str) -> Analysis:
    """
    Deterministic analysis of a query without a language model.

    The search terms are the query minus stopwords and vocabulary; the
    filters are exactly the vocabulary the query mentions (first mention wins
    per key).

    Example:
        "time limit for novice" ->
            Analysis(searchTerms="time limit", filters={"level": "Novice"})
    """
    return Analysis(
        search_terms=extract_search_terms(user_input),
        filters=detect_filters(user_input),
        intent="keyword search",
    )
