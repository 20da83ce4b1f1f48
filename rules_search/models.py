"""
Data models shared across the rules search pipeline.

Wire-facing names follow the JSON contract (camelCase such as ``searchTerms``);
Python attributes use snake_case.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class SearchRequest(BaseModel):
    """POST /search-rules body."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., max_length=1000, description="Natural-language question")
    limit: Optional[int] = Field(None, ge=1, le=50, description="Maximum rules to return")
    level: Optional[str] = Field(None, description="Explicit level filter override")
    element: Optional[str] = Field(None, description="Explicit element filter override")
    organization_code: Optional[str] = Field(None, alias="organizationCode", description="e.g. 'AKC'")
    sport_code: Optional[str] = Field(None, alias="sportCode", description="e.g. 'scent-work'")


class Analysis(BaseModel):
    """Search terms plus recognized filters extracted from one query."""

    model_config = ConfigDict(populate_by_name=True)

    search_terms: str = Field("", alias="searchTerms")
    filters: Dict[str, str] = Field(default_factory=dict)
    intent: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ModelFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Optional[StrictStr] = None
    element: Optional[StrictStr] = None


class ModelAnalysis(BaseModel):
    """Strict schema of the language model's JSON reply."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    search_terms: StrictStr = Field(..., alias="searchTerms")
    filters: ModelFilters = Field(default_factory=ModelFilters)
    intent: Optional[StrictStr] = None


class Rule(BaseModel):
    """One rulebook entry as stored in the rules index."""

    id: str
    section: str = ""
    title: str
    content: str = ""
    categories: Dict[str, str] = Field(default_factory=dict)
    keywords: List[str] = Field(default_factory=list)
    measurements: Dict[str, Any] = Field(default_factory=dict)
    score: float = Field(0.0, exclude=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump()


class SearchResult(BaseModel):
    rules: List[Rule] = Field(default_factory=list)
    used_filter_fallback: bool = False

    @property
    def count(self) -> int:
        return len(self.rules)
