from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from grocery_optimizer.schemas.trip import ProductOut, ProductSearchResponse
from grocery_optimizer.services.matching.product_matcher import search_products
from grocery_optimizer.services.optimization.errors import InvalidRequest
from grocery_optimizer.storage import db
from grocery_optimizer.storage.repositories import SqlCatalog

router = APIRouter()

MIN_QUERY_LEN = 2
DEFAULT_LIMIT = 10
MAX_LIMIT = 50


@router.get("/products/search", response_model=ProductSearchResponse)
def search(q: str = "", category: Optional[str] = None, limit: int = DEFAULT_LIMIT):
    """Name search for autocomplete. Exact matches first, then shorter names."""
    if len(q.strip()) < MIN_QUERY_LEN:
        e = InvalidRequest(f"q must be at least {MIN_QUERY_LEN} characters", field="q")
        return JSONResponse(e.to_payload(), status_code=e.status_code)
    limit = max(1, min(limit, MAX_LIMIT))

    with db.get_session() as session:
        products = search_products(SqlCatalog(session), q, category=category, limit=limit)
    return ProductSearchResponse(
        products=[
            ProductOut(
                id=p.id,
                name=p.name,
                brand=p.brand,
                category=p.category,
                size_value=p.size_value,
                size_unit=p.size_unit,
            )
            for p in products
        ]
    )
