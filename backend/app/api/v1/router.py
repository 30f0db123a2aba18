from fastapi import APIRouter

from backend.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from backend.app.api.v1.endpoints.suppliers import router as suppliers_router
from backend.app.api.v1.endpoints.raw_materials import router as raw_materials_router
from backend.app.api.v1.endpoints.stock_movements import router as stock_movements_router

router = APIRouter()
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(raw_materials_router, tags=["raw_materials"])
router.include_router(stock_movements_router, tags=["stock_movements"])
