from fastapi import APIRouter

from backend.app.api.v1.endpoints import (
    audit,
    auth,
    defects,
    dispatches,
    employees,
    inventory,
    orders,
    rebalancing,
    stores,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(employees.router, prefix="/employees", tags=["employees"])
api_router.include_router(stores.router, prefix="/stores", tags=["stores"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(defects.router, prefix="/defects", tags=["defects"])
api_router.include_router(dispatches.router, prefix="/dispatches", tags=["dispatches"])
api_router.include_router(rebalancing.router, prefix="/rebalancing", tags=["rebalancing"])
api_router.include_router(audit.router, prefix="/audit-logs", tags=["audit"])
