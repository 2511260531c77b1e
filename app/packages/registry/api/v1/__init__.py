"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from app.packages.registry.api.v1.endpoints import batches, objects, organizations

api_router = APIRouter()
api_router.include_router(organizations.router)
api_router.include_router(organizations.datasets_router)
api_router.include_router(objects.router)
api_router.include_router(batches.router)
