from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.items import router as items_router
from backend.app.api.v1.endpoints.suppliers import router as suppliers_router
from backend.app.api.v1.endpoints.stock import router as stock_router
from backend.app.api.v1.endpoints.stock_movements import router as stock_movements_router
from backend.app.api.v1.endpoints.sales_orders import router as sales_orders_router
from backend.app.api.v1.endpoints.stock_requirements import router as stock_requirements_router
from backend.app.api.v1.endpoints.purchase_requisitions import router as purchase_requisitions_router
from backend.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(items_router, tags=["items"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(stock_router, tags=["stock"])
router.include_router(stock_movements_router, tags=["stock_movements"])
router.include_router(sales_orders_router, tags=["sales_orders"])
router.include_router(stock_requirements_router, tags=["stock_requirements"])
router.include_router(purchase_requisitions_router, tags=["purchase_requisitions"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
