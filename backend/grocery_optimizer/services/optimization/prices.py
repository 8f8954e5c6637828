from typing import Iterable, Optional

from grocery_optimizer.services.optimization.collaborators import PriceStore
from grocery_optimizer.services.optimization.types import PriceMap, PriceQuote


def get_prices_for_products(
    price_store: PriceStore, product_ids: Iterable[int], store_ids: Iterable[int]
) -> PriceMap:
    """(store_id, product_id) -> quote. Pairs without a price row are left out, never priced at zero."""
    product_ids = list(dict.fromkeys(product_ids))
    store_ids = list(dict.fromkeys(store_ids))
    if not product_ids or not store_ids:
        return {}
    return {
        (entry.store_id, entry.product_id): PriceQuote(price=entry.price, in_stock=entry.in_stock)
        for entry in price_store.get_prices(product_ids, store_ids)
    }


def in_stock_price(prices: PriceMap, store_id: int, product_id: int) -> Optional[float]:
    quote = prices.get((store_id, product_id))
    if quote is None or not quote.in_stock:
        return None
    return quote.price
