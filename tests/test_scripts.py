"""Tests for the maintenance scripts."""

import pytest

from edgepress.common.config import BaseConfig
from scripts.init_db import init_database
from scripts.reindex_all import reindex_content
from .conftest import FakeContentStore, make_content
from .test_fulltext_search import requires_fts5


@pytest.fixture
def many_posts():
    return FakeContentStore([
        make_content(f"p{i}", f"Post {i}", content_md="rust", published_at=f"2024-01-{i + 1:02d}T00:00:00.000Z")
        for i in range(7)
    ])


@pytest.mark.asyncio
async def test_reindex_pages_through_published_content(many_posts, semantic, vector_store):
    stats = await reindex_content(many_posts, semantic, batch_size=3)

    assert stats == {"indexed": 7, "failed": 0}
    assert many_posts.published_calls == [(3, 0), (3, 3), (3, 6)]
    assert await vector_store.count() == 7


@pytest.mark.asyncio
async def test_reindex_respects_limit(many_posts, semantic, vector_store):
    stats = await reindex_content(many_posts, semantic, batch_size=3, limit=4)

    assert stats["indexed"] == 4
    assert many_posts.published_calls == [(3, 0), (1, 3)]


@pytest.mark.asyncio
async def test_reindex_counts_failures(many_posts, semantic, embedding_provider):
    embedding_provider.fail = True

    stats = await reindex_content(many_posts, semantic, batch_size=10)

    assert stats == {"indexed": 0, "failed": 7}


@requires_fts5
@pytest.mark.asyncio
async def test_init_database_sqlite_only(tmp_path):
    config = BaseConfig(ep_content_backend="sqlite", ep_sqlite_path=str(tmp_path / "edgepress.db"))

    assert await init_database(config, skip_vectors=True) is True
    assert (tmp_path / "edgepress.db").exists()
