"""Content entities, row mapping, and the content store interface.

The content store is the system of record for posts; this package only reads
from it. Raw rows coming back from SQL drivers (``sqlite3.Row``,
``asyncpg.Record``) are converted here, at the store boundary, into validated
pydantic entities so the rest of the core never handles untyped rows.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field

from edgepress.search.models import SearchIndexItem, SearchResult

STATUS_PUBLISHED = "published"
STATUS_DRAFT = "draft"

# Body prefix used when a post has no excerpt.
EXCERPT_FALLBACK_LENGTH = 200
TAG_SEPARATOR = "|"


class Content(BaseModel):
    """A post as read from the content store, with tags flattened to names."""
    id: str
    title: str
    slug: str
    content_md: str = ""
    excerpt: Optional[str] = None
    status: str = STATUS_PUBLISHED
    published_at: Optional[str] = None
    updated_at: Optional[str] = None
    reading_time: Optional[int] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    category_slug: Optional[str] = None
    author_name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @property
    def is_published(self) -> bool:
        return self.status == STATUS_PUBLISHED


def to_iso(value: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with milliseconds and a ``Z`` suffix.

    A fixed width keeps string comparison chronological.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_iso(value)
    return str(value)


def _int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def split_tags(raw: Any) -> List[str]:
    """Flatten a ``GROUP_CONCAT``/``string_agg`` column (or a list) into tag names."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(tag) for tag in raw if tag]
    return [tag for tag in str(raw).split(TAG_SEPARATOR) if tag]


def content_from_row(row: Mapping[str, Any]) -> Content:
    """Map a posts row (joined with category and aggregated tags) to ``Content``."""
    data = dict(row)
    return Content(
        id=str(data["id"]),
        title=data.get("title") or "",
        slug=data["slug"],
        content_md=data.get("content_md") or "",
        excerpt=_text(data.get("excerpt")),
        status=data.get("status") or STATUS_PUBLISHED,
        published_at=_text(data.get("published_at")),
        updated_at=_text(data.get("updated_at")),
        reading_time=_int(data.get("reading_time")),
        category_id=_text(data.get("category_id")),
        category_name=_text(data.get("category_name")),
        category_slug=_text(data.get("category_slug")),
        author_name=_text(data.get("author_name")),
        tags=split_tags(data.get("tags")),
    )


def search_item_from_content(content: Content) -> SearchIndexItem:
    """Project content onto the lexical index shape, falling back to a body prefix."""
    excerpt = content.excerpt
    if excerpt is None:
        excerpt = content.content_md[:EXCERPT_FALLBACK_LENGTH]
    return SearchIndexItem(
        slug=content.slug,
        title=content.title,
        excerpt=excerpt,
        published_at=content.published_at or "",
        reading_time=content.reading_time,
        tags=list(content.tags),
    )


def search_item_from_row(row: Mapping[str, Any]) -> SearchIndexItem:
    return search_item_from_content(content_from_row(row))


def search_result_from_row(row: Mapping[str, Any]) -> SearchResult:
    """Map a full-text match row (``score``, ``highlight``, ``tags``) to ``SearchResult``."""
    data = dict(row)
    excerpt = _text(data.get("excerpt"))
    score = data.get("score")
    return SearchResult(
        slug=data["slug"],
        title=data.get("title") or "",
        excerpt=excerpt,
        published_at=_text(data.get("published_at")) or "",
        reading_time=_int(data.get("reading_time")),
        tags=split_tags(data.get("tags")),
        score=float(score) if score is not None else None,
        highlight=data.get("highlight") or excerpt,
    )


def build_match_expression(tokens: List[str]) -> str:
    """FTS5 match syntax: prefix wildcard per token, implicit AND between tokens."""
    return " ".join(f"{token}*" for token in tokens)


class ContentStore(ABC):
    """Read-only contract over the content system of record.

    Implementations must only return published, non-future content from the
    ``published`` queries, with tags flattened per content id.

    ``lower_rank_is_better`` documents the ranking convention of the store's
    full-text function. FTS5 ``bm25()`` is ascending (more negative is more
    relevant); PostgreSQL ``ts_rank_cd`` is descending.
    """

    lower_rank_is_better: bool = True

    async def initialize(self) -> None:
        """Open connections or create schema; optional."""
        return None

    @abstractmethod
    async def get_published_content(self, limit: int = 20, offset: int = 0) -> List[Content]:
        """Published content ordered by ``published_at`` descending."""
        pass

    @abstractmethod
    async def get_content_by_id(self, content_id: str) -> Optional[Content]:
        """Content by id regardless of status."""
        pass

    @abstractmethod
    async def get_content_by_slug(self, slug: str) -> Optional[Content]:
        """Published content by slug."""
        pass

    def match_expression(self, tokens: List[str]) -> str:
        """Translate normalized tokens into this store's full-text match syntax."""
        return build_match_expression(tokens)

    @abstractmethod
    async def full_text_search(self, match_expression: str, limit: int = 20) -> List[SearchResult]:
        """Run a full-text query; raises ``SearchBackendError`` on backend failure."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def close(self) -> None:
        return None


class ContentStoreError(Exception):
    """Content store unreachable or returned an unusable row."""
    pass
