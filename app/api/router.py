from fastapi import APIRouter
from app.api.auth import router as auth_router
from app.api.categories import router as categories_router
from app.api.products import router as products_router
from app.api.orders import router as orders_router
from app.api.sessions import router as sessions_router
from app.api.webhook import router as webhook_router

router = APIRouter()
router.include_router(auth_router)
# categories before products so /api/products/categories is not read as a product id
router.include_router(categories_router)
router.include_router(products_router)
router.include_router(orders_router)
router.include_router(sessions_router)
router.include_router(webhook_router)
