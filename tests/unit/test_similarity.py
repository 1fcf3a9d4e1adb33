from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from discovery.domain.services.similar_products_svc import SimilarityRetriever
from tests.conftest import make_product


pytestmark = pytest.mark.unit


@pytest.fixture
def retriever(product_repo, search_repo):
    product_repo.add(make_product("p7", name="Refurb Handset", price=320, sold=50, views=0))
    product_repo.add(make_product("p8", name="Dual Sim Handset", price=280, sold=50, views=100))
    product_repo.add(make_product("p9", name="Premium Handset", price=395, sold=500))
    return SimilarityRetriever(product_repo, search_repo, search_timeout_s=1, store_timeout_s=1)


@pytest.mark.asyncio
async def test_index_neighbours_exclude_source(retriever, search_repo):
    items = await retriever.similar("p1", limit=12)
    ids = [p.id for p in items]
    assert "p1" not in ids
    assert set(ids) == {"p2", "p3", "p5"}
    assert search_repo.mlt_calls == 1


@pytest.mark.asyncio
async def test_limit_is_respected(retriever):
    assert len(await retriever.similar("p1", limit=2)) == 2


@pytest.mark.asyncio
async def test_index_failure_uses_category_price_band(retriever, search_repo):
    search_repo.mlt_fail = True
    items = await retriever.similar("p1", limit=12)
    # 300 * [0.7, 1.3] = [210, 390]; most sold first, then most viewed
    assert [p.id for p in items] == ["p8", "p7"]


@pytest.mark.asyncio
async def test_empty_index_result_uses_price_band(retriever, search_repo):
    search_repo.mlt_empty = True
    items = await retriever.similar("p1")
    assert [p.id for p in items] == ["p8", "p7"]


@pytest.mark.asyncio
async def test_unknown_source_is_empty(retriever, search_repo):
    assert await retriever.similar("nope") == []
    assert search_repo.mlt_calls == 0


@pytest.mark.asyncio
async def test_store_failure_is_empty_not_an_error(retriever, search_repo, product_repo):
    search_repo.mlt_fail = True
    product_repo.fail.add("find_in_price_band")
    assert await retriever.similar("p1") == []


@pytest.mark.asyncio
async def test_cache_hit_skips_retrieval(product_repo, search_repo):
    cache = AsyncMock()
    cache.key = lambda pid, **params: f"sim:{pid}"
    cached = await SimilarityRetriever(product_repo, search_repo).similar("p1")
    cache.get.return_value = cached

    retriever = SimilarityRetriever(product_repo, search_repo, cache=cache)
    assert await retriever.similar("p1") == cached
    assert search_repo.mlt_calls == 1
    cache.set.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_errors_are_tolerated(product_repo, search_repo):
    cache = AsyncMock()
    cache.key = lambda pid, **params: f"sim:{pid}"
    cache.get.side_effect = RedisConnectionError("down")
    cache.set.side_effect = RedisConnectionError("down")

    items = await SimilarityRetriever(product_repo, search_repo, cache=cache).similar("p1")
    assert {p.id for p in items} == {"p2", "p3", "p5"}
