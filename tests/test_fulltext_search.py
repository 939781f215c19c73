"""Tests for full-text search and the SQLite FTS5 store."""

import asyncio
import json
import sqlite3

import pytest

from edgepress.content.sqlite import SqliteContentStore
from edgepress.search.base import SearchBackendError
from edgepress.search.fulltext import (
    FullTextSearchEngine,
    build_match_expression,
    normalize_cached_query,
    normalize_tokens,
    sort_by_rank,
)
from edgepress.search.models import SearchResult


def _fts5_available() -> bool:
    try:
        sqlite3.connect(":memory:").execute("CREATE VIRTUAL TABLE t USING fts5(x)")
        return True
    except sqlite3.Error:
        return False


requires_fts5 = pytest.mark.skipif(not _fts5_available(), reason="SQLite built without FTS5")


def result(slug, score):
    return SearchResult(slug=slug, title=slug, published_at="2024-01-01T00:00:00.000Z", score=score)


def test_normalize_tokens():
    assert normalize_tokens('  "rust"  lang\'s ') == ["rust", "langs"]
    assert normalize_tokens('""') == []
    assert normalize_tokens("") == []


def test_build_match_expression():
    assert build_match_expression("rust async") == "rust* async*"
    assert build_match_expression('"') == ""


def test_normalize_cached_query():
    assert normalize_cached_query("  TypeScript ") == "typescript"
    assert len(normalize_cached_query("x" * 100)) == 64


def test_sort_by_rank_ascending_for_bm25():
    rows = [result("b", -1.0), result("a", -3.5), result("c", -2.0)]
    assert [r.slug for r in sort_by_rank(rows, lower_is_better=True)] == ["a", "c", "b"]


def test_sort_by_rank_descending_for_ts_rank():
    rows = [result("b", 0.1), result("a", 0.9), result("c", 0.5)]
    assert [r.slug for r in sort_by_rank(rows, lower_is_better=False)] == ["a", "c", "b"]


def test_sort_by_rank_is_stable_and_keeps_unscored_last():
    rows = [result("x", None), result("first", -1.0), result("second", -1.0)]
    assert [r.slug for r in sort_by_rank(rows, lower_is_better=True)] == ["first", "second", "x"]


@pytest.mark.asyncio
async def test_quote_only_query_never_reaches_backend(content_store):
    engine = FullTextSearchEngine(content_store)
    assert await engine.search('""') == []
    assert await engine.search("   ") == []
    assert content_store.full_text_calls == []


@pytest.mark.asyncio
async def test_search_ranks_most_relevant_first(content_store):
    engine = FullTextSearchEngine(content_store)

    results = await engine.search("types")

    # p1 mentions "types" twice, p2 once; future and draft posts are hidden
    assert [r.slug for r in results] == ["p1", "p2"]
    assert content_store.full_text_calls == [("types*", 20)]


@pytest.mark.asyncio
async def test_backend_errors_propagate(content_store):
    content_store.fail = True
    engine = FullTextSearchEngine(content_store)

    with pytest.raises(SearchBackendError):
        await engine.search("rust")


@pytest.mark.asyncio
async def test_timeout_becomes_backend_error(content_store):
    async def slow_search(match_expression, limit=20):
        await asyncio.sleep(5)
        return []

    content_store.full_text_search = slow_search
    engine = FullTextSearchEngine(content_store, timeout=0.05)

    with pytest.raises(SearchBackendError):
        await engine.search("rust")


@pytest.mark.asyncio
async def test_search_cached_uses_normalized_key(content_store, cache, kv_store):
    engine = FullTextSearchEngine(content_store, cache, ttl=120)

    first = await engine.search_cached("  TypeScript ", limit=10)
    second = await engine.search_cached("typescript", limit=10)

    assert [r.slug for r in first] == [r.slug for r in second]
    assert isinstance(second[0], SearchResult)
    assert len(content_store.full_text_calls) == 1
    assert kv_store.ttls["search:fts:10:typescript"] == 120


@pytest.mark.asyncio
async def test_search_cached_errors_are_not_cached(content_store, cache, kv_store):
    engine = FullTextSearchEngine(content_store, cache)
    content_store.fail = True

    with pytest.raises(SearchBackendError):
        await engine.search_cached("rust")
    assert not any(key.startswith("search:fts:") for key in kv_store.data)


async def seeded_sqlite_store() -> SqliteContentStore:
    store = SqliteContentStore(":memory:")
    await store.initialize()
    posts = [
        ("p1", "Async Rust", "async-rust", "Futures and async await in Rust. Rust rust rust.", None,
         "published", "2024-03-01T00:00:00.000Z"),
        ("p2", "Python Notes", "python-notes", "A short mention of Rust.", "Python excerpt",
         "published", "2024-02-01T00:00:00.000Z"),
        ("p3", "Rust Draft", "rust-draft", "Unfinished rust", None, "draft", None),
        ("p4", "Rust Tomorrow", "rust-tomorrow", "Scheduled rust", None,
         "published", "2999-01-01T00:00:00.000Z"),
    ]
    for post in posts:
        await store.execute(
            "INSERT INTO posts (id, title, slug, content_md, excerpt, status, published_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            post,
        )
    await store.execute("INSERT INTO tags (id, name, slug) VALUES ('t1', 'systems', 'systems')")
    await store.execute("INSERT INTO tags (id, name, slug) VALUES ('t2', 'async', 'async')")
    await store.execute("INSERT INTO post_tags (post_id, tag_id) VALUES ('p1', 't1')")
    await store.execute("INSERT INTO post_tags (post_id, tag_id) VALUES ('p1', 't2')")
    return store


@requires_fts5
@pytest.mark.asyncio
async def test_sqlite_full_text_search():
    store = await seeded_sqlite_store()
    engine = FullTextSearchEngine(store)

    results = await engine.search("rust")

    assert [r.slug for r in results] == ["async-rust", "python-notes"]
    assert results[0].score < results[1].score
    assert results[0].tags == ["async", "systems"]
    assert results[1].excerpt == "Python excerpt"
    await store.close()


@requires_fts5
@pytest.mark.asyncio
async def test_sqlite_prefix_and_and_semantics():
    store = await seeded_sqlite_store()
    engine = FullTextSearchEngine(store)

    assert [r.slug for r in await engine.search("fut")] == ["async-rust"]
    assert await engine.search("python futures") == []
    await store.close()


@requires_fts5
@pytest.mark.asyncio
async def test_sqlite_published_reads():
    store = await seeded_sqlite_store()

    listing = await store.get_published_content(limit=10)
    assert [c.slug for c in listing] == ["async-rust", "python-notes"]
    assert await store.get_content_by_slug("rust-draft") is None
    assert await store.get_content_by_slug("rust-tomorrow") is None
    assert (await store.get_content_by_id("p3")).status == "draft"
    assert await store.health_check() is True
    await store.close()


@pytest.mark.asyncio
async def test_search_cached_ignores_malformed_entry(content_store, cache, kv_store):
    kv_store.data["search:fts:20:types"] = json.dumps({"bad": True})
    engine = FullTextSearchEngine(content_store, cache)

    results = await engine.search_cached("types")

    assert [r.slug for r in results] == ["p1", "p2"]
    assert len(content_store.full_text_calls) == 1
