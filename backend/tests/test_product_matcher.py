import pytest

from grocery_optimizer.services.matching.product_matcher import (
    SCORE_CATEGORY,
    SCORE_EXACT,
    SCORE_SYNONYM,
    ProductMatcher,
    normalize,
    rank_search_results,
    score_candidate,
    search_products,
)
from grocery_optimizer.services.optimization.types import Product, ShoppingItem


class FakeCatalog:
    def __init__(self, products):
        self.products = list(products)
        self.searches = []

    def search_products_by_name(self, pattern, limit=None):
        self.searches.append(pattern)
        hits = [p for p in self.products if pattern.lower() in p.name.lower()]
        hits.sort(key=lambda p: (len(p.name), p.id))
        return hits[:limit] if limit else hits

    def get_products_by_category(self, category, limit=None):
        hits = [p for p in self.products if (p.category or "").lower() == category.lower()]
        return hits[:limit] if limit else hits


class FakePrices:
    def __init__(self, min_prices=None):
        self.min_prices = min_prices or {}

    def get_prices(self, product_ids, store_ids):
        return []

    def get_min_price_across_stores(self, product_ids):
        return {pid: self.min_prices[pid] for pid in product_ids if pid in self.min_prices}


def _matcher(products, min_prices=None):
    return ProductMatcher(FakeCatalog(products), FakePrices(min_prices))


def test_normalize():
    assert normalize("  Whole   MILK ") == "whole milk"
    assert normalize("") == ""


def test_score_tiers():
    assert score_candidate("Whole Milk", "whole milk") == SCORE_EXACT
    assert score_candidate("spaghetti sauce", "Marinara Sauce") == SCORE_SYNONYM
    assert score_candidate("milk", "Whole Milk") == pytest.approx(850)
    assert score_candidate("organic milk", "Whole Milk") == pytest.approx(650)
    assert score_candidate("milk", "Milkshake") == pytest.approx(300 + (1 - 5 / 9) * 100)
    assert score_candidate("fresh bananas", "Bananasplit") == pytest.approx(250)
    assert score_candidate("xyzzy", "Whole Milk") == 0


@pytest.mark.parametrize("ids", [(1, 2), (2, 1)])
def test_exact_match_beats_everything(ids):
    products = [
        Product(id=ids[0], name="Whole Milk Organic Grassfed"),
        Product(id=ids[1], name="Whole Milk"),
        Product(id=3, name="Milk"),
    ]
    for ordering in (products, list(reversed(products))):
        product, score = _matcher(ordering).find_best_match("whole milk")
        assert product.name == "Whole Milk"
        assert score == SCORE_EXACT


def test_synonym_match():
    product, score = _matcher([Product(id=1, name="Marinara Sauce")]).find_best_match("Spaghetti Sauce")
    assert product.id == 1
    assert score == SCORE_SYNONYM


def test_tie_goes_to_cheapest_product():
    products = [Product(id=1, name="Whole Milk"), Product(id=2, name="Skim Milk")]
    product, _ = _matcher(products, {1: 3.49, 2: 2.99}).find_best_match("milk")
    assert product.id == 2


def test_tie_without_prices_goes_to_lowest_id():
    products = [Product(id=7, name="Skim Milk"), Product(id=4, name="Whole Milk")]
    product, _ = _matcher(products).find_best_match("milk")
    assert product.id == 4


def test_tie_prefers_priced_over_unpriced():
    products = [Product(id=1, name="Whole Milk"), Product(id=2, name="Skim Milk")]
    product, _ = _matcher(products, {2: 5.00}).find_best_match("milk")
    assert product.id == 2


def test_category_fallback_only_when_nothing_scored():
    products = [Product(id=1, name="Fage Total 0%", category="Dairy")]
    product, score = _matcher(products).find_best_match("greek yogurt")
    assert product.id == 1
    assert score == SCORE_CATEGORY


def test_category_fallback_not_used_when_name_matches():
    products = [
        Product(id=1, name="Fage Total 0%", category="Dairy"),
        Product(id=2, name="Greek Yogurt Cup", category="Dairy"),
    ]
    product, score = _matcher(products).find_best_match("greek yogurt")
    assert product.id == 2
    assert score > SCORE_CATEGORY


def test_searches_query_synonyms_and_words():
    catalog = FakeCatalog([Product(id=1, name="Tomato Sauce")])
    ProductMatcher(catalog, FakePrices()).find_best_match("pasta sauce")
    assert catalog.searches[0] == "pasta sauce"
    assert "tomato sauce" in catalog.searches
    assert "pasta" in catalog.searches
    assert "sauce" in catalog.searches


def test_match_products_partitions_items():
    products = [Product(id=1, name="Whole Milk"), Product(id=2, name="Spaghetti")]
    items = [
        ShoppingItem(raw_query="spaghetti", quantity=2),
        ShoppingItem(raw_query="xyzzy"),
        ShoppingItem(raw_query="whole milk"),
    ]
    result = _matcher(products).match_products(items)
    assert len(result.matched) + len(result.unmatched) == len(items)
    assert [m.product.id for m in result.matched] == [2, 1]
    assert result.matched[0].quantity == 2
    assert [u.raw_query for u in result.unmatched] == ["xyzzy"]


def test_matching_is_repeatable():
    products = [Product(id=i, name=name) for i, name in enumerate(["Skim Milk", "Whole Milk", "Oat Milk"], 1)]
    matcher = _matcher(products, {1: 2.5, 2: 2.5, 3: 2.5})
    first = matcher.find_best_match("milk")
    assert all(matcher.find_best_match("milk") == first for _ in range(5))


def test_blank_query_is_unmatched():
    assert _matcher([Product(id=1, name="Milk")]).find_best_match("   ") is None


def test_rank_search_results():
    products = [
        Product(id=3, name="Whole Milk"),
        Product(id=1, name="Milk Chocolate"),
        Product(id=2, name="Milk"),
        Product(id=4, name="Oat Milk"),
    ]
    assert [p.id for p in rank_search_results("milk", products)] == [2, 4, 3, 1]


def test_search_products_filters_category_and_limit():
    catalog = FakeCatalog([
        Product(id=1, name="Spaghetti Squash", category="Produce"),
        Product(id=2, name="Spaghetti", category="Pasta"),
        Product(id=3, name="Spaghetti Rings", category="Pasta"),
    ])
    assert [p.id for p in search_products(catalog, " SPAGHETTI ")] == [2, 3, 1]
    assert [p.id for p in search_products(catalog, "spaghetti", category="produce")] == [1]
    assert [p.id for p in search_products(catalog, "spaghetti", limit=1)] == [2]
    assert search_products(catalog, "  ") == []
