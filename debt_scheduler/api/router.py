from fastapi import APIRouter

from debt_scheduler.api.v1 import health

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
