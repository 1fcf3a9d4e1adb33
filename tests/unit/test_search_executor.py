from unittest.mock import AsyncMock, MagicMock

import bson
import pytest

from discovery.core.errors import UpstreamUnavailable
from discovery.domain.repositories.product_search_repo import ProductSearchRepo
from discovery.domain.services.filter_compiler import compile_query
from discovery.domain.services.search_svc import SearchExecutor


pytestmark = pytest.mark.unit


@pytest.fixture
def executor(search_repo, product_repo):
    return SearchExecutor(search_repo, product_repo, search_timeout_s=1, store_timeout_s=1)


@pytest.mark.asyncio
async def test_free_text_with_filters_and_pagination(executor):
    page = await executor.execute(compile_query({"q": "phone", "category": "phones", "limit": "2"}))
    assert page.source == "index"
    assert page.total == 4
    assert len(page.items) == 2
    assert page.has_more is True
    assert all(p.category == "phones" for p in page.items)


@pytest.mark.asyncio
async def test_last_page_has_no_more(executor):
    page = await executor.execute(compile_query({"q": "phone", "category": "phones", "limit": "2", "page": "2"}))
    assert page.page == 2
    assert len(page.items) == 2
    assert page.has_more is False


@pytest.mark.asyncio
async def test_no_match_is_empty_not_an_error(executor):
    page = await executor.execute(compile_query({"q": "refrigerator"}))
    assert page.items == [] and page.total == 0 and page.has_more is False


@pytest.mark.asyncio
async def test_listing_defaults_to_popularity(executor):
    page = await executor.execute(compile_query({"category": "phones"}))
    assert [p.id for p in page.items] == ["p3", "p2", "p1", "p5"]


@pytest.mark.asyncio
async def test_listing_survives_one_index_failure(executor, search_repo, product_repo):
    search_repo.fail_times = 1
    page = await executor.execute(compile_query({"sort": "price_asc"}))
    assert page.source == "index"
    assert search_repo.search_calls == 2
    assert "find_summaries" not in product_repo.calls


@pytest.mark.asyncio
async def test_listing_falls_back_to_store_after_retry(executor, search_repo, product_repo):
    search_repo.fail_times = 2
    page = await executor.execute(compile_query({"category": "phones", "max_price": "500", "sort": "price_asc"}))
    assert page.source == "store"
    assert search_repo.search_calls == 2
    assert [p.id for p in page.items] == ["p3", "p1", "p2"]
    assert page.total == 3


@pytest.mark.asyncio
async def test_free_text_never_falls_back(executor, search_repo, product_repo):
    search_repo.fail_times = 5
    with pytest.raises(UpstreamUnavailable) as exc:
        await executor.execute(compile_query({"q": "phone"}))
    assert exc.value.retryable
    assert search_repo.search_calls == 1
    assert "find_summaries" not in product_repo.calls


@pytest.mark.asyncio
async def test_store_failure_after_fallback_is_upstream_unavailable(executor, search_repo, product_repo):
    search_repo.fail_times = 2
    product_repo.fail.add("find_summaries")
    with pytest.raises(UpstreamUnavailable):
        await executor.execute(compile_query({}))


class _BsonEncodingCollection:
    """Collection stand-in that encodes pipelines to BSON like the driver does."""

    def __init__(self):
        self.pipelines = []

    def aggregate(self, pipeline):
        bson.encode({"pipeline": pipeline})
        self.pipelines.append(pipeline)
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[])
        return cursor


@pytest.mark.asyncio
async def test_huge_page_is_an_empty_page_not_a_crash(product_repo):
    col = _BsonEncodingCollection()
    db = MagicMock()
    db.__getitem__.return_value = col
    executor = SearchExecutor(ProductSearchRepo(db, "products_search"), product_repo)

    page = await executor.execute(compile_query({"page": "1e17", "limit": "100"}))
    assert page.items == [] and page.source == "index" and page.has_more is False
    skip = next(stage["$skip"] for stage in col.pipelines[0] if "$skip" in stage)
    assert skip <= 2**63 - 1
