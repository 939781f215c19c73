"""Search data models.

``SearchIndexItem`` is the compact record shipped to clients for lexical
search; ``SearchResult`` adds the per-query fields and is never persisted.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class SearchIndexItem(BaseModel):
    """One published content item in the lexical search index."""
    slug: str = Field(..., description="Public slug")
    title: str = Field(..., description="Title")
    excerpt: Optional[str] = Field(None, description="Excerpt, or a body prefix")
    published_at: str = Field(..., description="ISO-8601 publish timestamp")
    reading_time: Optional[int] = Field(None, description="Reading time in minutes")
    tags: List[str] = Field(default_factory=list, description="Tag names")


class SearchResult(SearchIndexItem):
    """A ranked match for one query."""
    score: Optional[float] = Field(None, description="Engine-specific relevance score")
    highlight: Optional[str] = Field(None, description="Snippet to display")


class SemanticSearchResult(BaseModel):
    """A nearest-neighbor match with its stored vector metadata."""
    id: str
    score: float
    status: str
    slug: str
    title: str
    excerpt: str = ""
    published_at: str = ""
    category_id: str = ""
