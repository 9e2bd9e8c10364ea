from fastapi import APIRouter

from app.depot.core.config import settings
from app.depot.routers.ops import metrics_router
from app.depot.routers.ops import router as ops_router
from app.depot.routers.transfers import router as transfers_router

api_router = APIRouter()
api_router.include_router(ops_router, tags=["ops"])
api_router.include_router(transfers_router, tags=["transfers"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
