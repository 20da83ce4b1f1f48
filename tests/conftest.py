"""
Pytest fixtures for rules search tests.

Both external collaborators are replaced by in-process fakes: a scripted
completion client for the language model and an in-memory search client that
understands the ``eq`` clauses produced by payload_builder.
"""

import json
import re

import pytest

from rules_search.interpreter import QueryInterpreter
from rules_search.rule_store import RuleStore
from rules_search.service import RulesSearchService

CLAUSE_RE = re.compile(r"(\w+) eq (true|false|'(?:[^']|'')*')")


class FakeCompletionClient:
    """Returns scripted replies in order; the last reply repeats. Exceptions are raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def complete(self, prompt, max_tokens=200):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


def _matches_filter(doc, filter_expr):
    if not filter_expr:
        return True
    for field, literal in CLAUSE_RE.findall(filter_expr):
        if literal in ("true", "false"):
            expected = literal == "true"
        else:
            expected = literal[1:-1].replace("''", "'")
        if doc.get(field) != expected:
            return False
    return True


class FakeSearchClient:
    """In-memory stand-in for azure.search.documents.SearchClient."""

    def __init__(self, documents, error=None):
        self.documents = documents
        self.error = error
        self.calls = []

    def search(self, search_text, filter=None, select=None, order_by=None, top=50, search_mode="any", **kwargs):
        self.calls.append(
            {"search_text": search_text, "filter": filter, "order_by": order_by, "top": top, "search_mode": search_mode}
        )
        if self.error is not None:
            raise self.error

        hits = []
        terms = [] if search_text == "*" else search_text.lower().split()
        for doc in self.documents:
            if not _matches_filter(doc, filter):
                continue
            haystack = " ".join([doc["title"], doc["content"], " ".join(doc["keywords"])]).lower()
            found = [term for term in terms if term in haystack]
            if terms and search_mode == "all" and len(found) < len(terms):
                continue
            if terms and not found:
                continue
            hit = dict(doc)
            hit["@search.score"] = float(len(found)) if terms else 1.0
            hits.append(hit)
        if order_by:
            hits.sort(key=lambda h: (-h["@search.score"], h["section"], h["id"]))
        else:
            hits.sort(key=lambda h: -h["@search.score"])
        return iter(hits[:top])


def make_doc(doc_id, section, title, content, level, element, category, keywords, measurements):
    return {
        "id": doc_id,
        "section": section,
        "title": title,
        "content": content,
        "level": level,
        "element": element,
        "category": category,
        "keywords": keywords,
        "measurements": json.dumps(measurements),
        "organization_code": "AKC",
        "sport_code": "scent-work",
        "rulebook_active": True,
    }


RULE_DOCUMENTS = [
    make_doc(
        "r1", "2.3.1", "Novice Interior Search Area Size",
        "The search area for Novice Interior shall be a minimum of 120 square feet and a maximum "
        "of 600 square feet. The area may be divided into multiple rooms.",
        "Novice", "Interior", "Search Area",
        ["area size", "square feet", "novice", "interior"],
        {"min_area_sq_ft": 120, "max_area_sq_ft": 600},
    ),
    make_doc(
        "r2", "3.4.2", "Exterior Advanced Requirements",
        "The search area for Advanced Exterior shall be a minimum of 400 square feet and a maximum "
        "of 600 square feet. The area must include natural terrain.",
        "Advanced", "Exterior", "Search Area",
        ["area size", "exterior", "advanced", "terrain"],
        {"min_area_sq_ft": 400, "max_area_sq_ft": 600},
    ),
    make_doc(
        "r3", "2.5.1", "Novice Container Number of Hides",
        "Novice Container shall have a minimum of 1 hide and a maximum of 3 hides. The judge will "
        "announce the number of hides prior to the start of the search.",
        "Novice", "Container", "Hides",
        ["hides", "number", "container", "novice"],
        {"min_hides": 1, "max_hides": 3},
    ),
    make_doc(
        "r4", "4.2.3", "Excellent Interior Time Limit",
        "The time limit for Excellent Interior shall be 3 minutes. A 30-second warning will be given.",
        "Excellent", "Interior", "Time Limit",
        ["time limit", "excellent", "interior", "warning"],
        {"time_limit_minutes": 3, "warning_seconds": 30},
    ),
    make_doc(
        "r5", "5.6.1", "Master Buried Leash Requirements",
        "In Master Buried, dogs may be worked on or off leash. If on leash, it must be a standard "
        "6-foot leash. Retractable leashes are not permitted.",
        "Master", "Buried", "Equipment",
        ["leash", "master", "buried", "equipment"],
        {"max_leash_length_feet": 6},
    ),
]

AREA_SIZE_REPLY = json.dumps({
    "searchTerms": "area size",
    "filters": {"level": "Advanced", "element": "Exterior"},
    "intent": "find the search area size",
})


@pytest.fixture
def search_client():
    return FakeSearchClient([dict(doc) for doc in RULE_DOCUMENTS])


@pytest.fixture
def rule_store(search_client):
    return RuleStore(search_client, default_limit=5, max_limit=20)


@pytest.fixture
def make_service(rule_store):
    """Build a service whose model replies are scripted per test."""

    def _make(*replies, answer_extractor=None, store=None):
        completion = FakeCompletionClient(*replies)
        service = RulesSearchService(
            QueryInterpreter(completion),
            store or rule_store,
            answer_extractor=answer_extractor,
        )
        service.completion = completion
        return service

    return _make
