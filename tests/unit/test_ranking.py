import pytest

from discovery.domain.models.query_plan import SortKey
from discovery.domain.services.ranking import resolve_sort


pytestmark = pytest.mark.unit


def _pairs(keys):
    return [(k.field, k.direction) for k in keys]


def test_text_defaults_to_relevance():
    assert _pairs(resolve_sort(has_text=True)) == [("relevance", "desc"), ("product_id", "asc")]


def test_listing_defaults_to_popularity():
    assert _pairs(resolve_sort(has_text=False)) == [("views", "desc"), ("sold", "desc"), ("product_id", "asc")]


@pytest.mark.parametrize(
    "preset,expected",
    [
        ("price_asc", [("price", "asc")]),
        ("price_desc", [("price", "desc")]),
        ("newest", [("created_at", "desc")]),
        ("rating", [("rating", "desc"), ("rating_count", "desc")]),
        ("best_selling", [("sold", "desc")]),
    ],
)
def test_presets(preset, expected):
    assert _pairs(resolve_sort(has_text=True, sort=preset)) == expected + [("product_id", "asc")]


def test_explicit_sort_overrides_relevance():
    keys = resolve_sort(has_text=True, sort_by="price", sort_order="asc")
    assert keys[0] == SortKey(field="price", direction="asc")


def test_bad_sort_order_defaults_to_desc():
    assert resolve_sort(has_text=False, sort_by="createdAt", sort_order="sideways")[0] == SortKey(
        field="created_at", direction="desc"
    )


def test_unknown_values_fall_back_to_default():
    assert _pairs(resolve_sort(has_text=False, sort="cheapest", sort_by="colour"))[0] == ("views", "desc")
    assert _pairs(resolve_sort(has_text=True, sort="cheapest"))[0] == ("relevance", "desc")


def test_relevance_without_text_means_popularity():
    assert _pairs(resolve_sort(has_text=False, sort="relevance"))[0] == ("views", "desc")


def test_tie_break_is_always_last_and_unique():
    keys = resolve_sort(has_text=False, sort="discount")
    assert keys[-1] == SortKey(field="product_id", direction="asc")
    assert sum(k.field == "product_id" for k in keys) == 1
