from fastapi import APIRouter

from orderflow.api.v1.endpoints import (
    orders,
    admin,
    jobs,
)


api_router = APIRouter(prefix="/api/v1")

# ==================== Production Orders & Approval Workflow ====================
api_router.include_router(
    orders.router,
    tags=["Production Orders"]
)

# ==================== Administration ====================
api_router.include_router(
    admin.router,
    tags=["Admin"]
)

# ==================== Scheduled Jobs ====================
api_router.include_router(
    jobs.router,
    tags=["Jobs"]
)
