from fastapi import APIRouter

from app.api.routes.app_version import app_version_router, chunk_upload_router
from app.api.routes.common import health_router
from app.api.routes.meter import bulk_cmo_router

api_router = APIRouter()

# 每个元素都是一个包含 router, prefix, 和 tags 的字典
# chunk 路由先注册，/app-version/chunk/... 不会被 /app-version/{version_id} 抢先匹配
routers_to_include = [
    # app version routers
    {"router": chunk_upload_router.router, "prefix": "/app-version/chunk", "tags": ["app-version-chunk"]},
    {"router": app_version_router.router, "prefix": "/app-version", "tags": ["app-version"]},

    # cmo routers
    {"router": bulk_cmo_router.router, "prefix": "/cmo", "tags": ["cmo"]},

    # common routers
    {"router": health_router.router, "prefix": "", "tags": ["health"]},
]

for route_config in routers_to_include:
    api_router.include_router(**route_config)
