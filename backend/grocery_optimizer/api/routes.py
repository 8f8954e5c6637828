from fastapi import APIRouter

from grocery_optimizer.api.health import router as health_router
from grocery_optimizer.api.products import router as products_router
from grocery_optimizer.api.stores import router as stores_router
from grocery_optimizer.api.trips import router as trips_router

router = APIRouter(prefix="/api")
router.include_router(health_router)
router.include_router(trips_router)
router.include_router(stores_router)
router.include_router(products_router)
