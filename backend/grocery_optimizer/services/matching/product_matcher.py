"""
Resolve free-text shopping list entries to catalog products.

Every candidate is scored by a layered heuristic and the highest score wins:
    1000  exact name
     900  exact name of a synonym rewrite of the query
 800-900  every query word is a whole word of the name (more specific queries score higher)
 600-700  some query words are whole words of the name
 300-400  substring either way, closer lengths score higher
 200-300  query words longer than 2 chars found anywhere in the name
     100  category keyword fallback, only when nothing else scored
Ties go to the lowest in-stock price across stores, then to the lowest product id.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from grocery_optimizer.logging import get_logger
from grocery_optimizer.services.matching.lexicon import categories_for_query, expand_synonyms
from grocery_optimizer.services.optimization.collaborators import PriceStore, ProductCatalog
from grocery_optimizer.services.optimization.types import MatchedItem, Product, ShoppingItem

logger = get_logger(__name__)

SCORE_EXACT = 1000.0
SCORE_SYNONYM = 900.0
SCORE_ALL_WORDS = 800.0
SCORE_SOME_WORDS = 600.0
SCORE_SUBSTRING = 300.0
SCORE_PARTIAL = 200.0
SCORE_CATEGORY = 100.0

MIN_SEARCH_WORD_LEN = 3
DEFAULT_SEARCH_LIMIT = 100

_WORD_RE = re.compile(r"[\w%]+")


def normalize(text: str) -> str:
    return " ".join((text or "").lower().split())


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text)


def _fuzzy_score(query: str, name: str) -> float:
    q_words = set(_words(query))
    n_words = set(_words(name))
    if q_words and n_words:
        common = q_words & n_words
        if common == q_words:
            return SCORE_ALL_WORDS + len(q_words) / len(n_words) * 100
        if common:
            return SCORE_SOME_WORDS + len(common) / len(q_words) * 100

    if query in name or name in query:
        length_diff = abs(len(name) - len(query))
        return SCORE_SUBSTRING + (1 - length_diff / max(len(name), len(query))) * 100

    significant = [w for w in _words(query) if len(w) > 2]
    hits = [w for w in significant if w in name]
    if hits:
        return SCORE_PARTIAL + len(hits) / len(significant) * 100
    return 0.0


def score_candidate(query: str, product_name: str, expansions: Optional[Sequence[str]] = None) -> float:
    """Score one product name against a query. 0 means no relation."""
    q = normalize(query)
    name = normalize(product_name)
    if not q or not name:
        return 0.0
    if name == q:
        return SCORE_EXACT
    if expansions is None:
        expansions = expand_synonyms(q)
    if name in expansions:
        return SCORE_SYNONYM
    return max(_fuzzy_score(variant, name) for variant in [q, *expansions])


@dataclass
class MatchResult:
    matched: List[MatchedItem] = field(default_factory=list)
    unmatched: List[ShoppingItem] = field(default_factory=list)


@dataclass
class _Candidate:
    product: Product
    score: float


class ProductMatcher:
    def __init__(
        self,
        catalog: ProductCatalog,
        prices: PriceStore,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        self._catalog = catalog
        self._prices = prices
        self._search_limit = search_limit

    def match_products(self, items: Iterable[ShoppingItem]) -> MatchResult:
        """Every item ends up in exactly one of matched/unmatched, in input order."""
        result = MatchResult()
        for item in items:
            best = self.find_best_match(item.raw_query)
            if best is None:
                logger.info("match.unmatched query=%s", item.raw_query)
                result.unmatched.append(item)
                continue
            product, score = best
            logger.info(
                "match.matched query=%s product_id=%s name=%s score=%.1f",
                item.raw_query,
                product.id,
                product.name,
                score,
            )
            result.matched.append(
                MatchedItem(
                    raw_query=item.raw_query,
                    quantity=item.quantity,
                    product=product,
                    match_score=score,
                )
            )
        return result

    def find_best_match(self, raw_query: str) -> Optional[tuple[Product, float]]:
        query = normalize(raw_query)
        if not query:
            return None
        candidates = self._collect_candidates(query)
        positive = [c for c in candidates if c.score > 0]
        if not positive:
            return None
        top = max(c.score for c in positive)
        tied = [c for c in positive if c.score == top]
        if len(tied) > 1:
            tied = self._order_by_price(tied)
        winner = tied[0]
        return winner.product, winner.score

    def _collect_candidates(self, query: str) -> list[_Candidate]:
        expansions = expand_synonyms(query)
        by_id: dict[int, _Candidate] = {}

        def consider(products: Iterable[Product], floor: float = 0.0) -> None:
            for product in products:
                score = score_candidate(query, product.name, expansions) or floor
                seen = by_id.get(product.id)
                if seen is None or score > seen.score:
                    by_id[product.id] = _Candidate(product, score)

        patterns: list[str] = [query]
        words = [w for w in _words(query) if len(w) >= MIN_SEARCH_WORD_LEN]
        for pattern in [*expansions, *words]:
            if pattern not in patterns:
                patterns.append(pattern)
        for pattern in patterns:
            consider(self._catalog.search_products_by_name(pattern, limit=self._search_limit))

        if not any(c.score > 0 for c in by_id.values()):
            for category in categories_for_query(query):
                consider(
                    self._catalog.get_products_by_category(category, limit=self._search_limit),
                    floor=SCORE_CATEGORY,
                )
        return list(by_id.values())

    def _order_by_price(self, tied: list[_Candidate]) -> list[_Candidate]:
        min_prices = self._prices.get_min_price_across_stores([c.product.id for c in tied])

        def key(c: _Candidate) -> tuple:
            price = min_prices.get(c.product.id)
            # Unpriced products sort after priced ones
            return (price is None, price if price is not None else 0.0, c.product.id)

        return sorted(tied, key=key)


def rank_search_results(query: str, products: Iterable[Product]) -> list[Product]:
    """Autocomplete order: exact name first, then shorter (more specific) names, then id."""
    q = normalize(query)
    return sorted(products, key=lambda p: (normalize(p.name) != q, len(p.name), p.id))


def search_products(
    catalog: ProductCatalog,
    query: str,
    category: Optional[str] = None,
    limit: int = 10,
    fetch_limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[Product]:
    """Autocomplete lookup: name substring search, optional category, ranked and cut to limit."""
    q = normalize(query)
    if not q:
        return []
    products = catalog.search_products_by_name(q, limit=fetch_limit)
    if category:
        wanted = category.strip().lower()
        products = [p for p in products if (p.category or "").lower() == wanted]
    return rank_search_results(q, products)[:limit]
