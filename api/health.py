"""
Health check API endpoints
健康检查API接口
"""

import time

from fastapi import APIRouter, Depends

from dispatch_core import __version__
from dispatch_core.services import RouterServices

from .dependencies import get_services


def create_health_router() -> APIRouter:
    """创建健康检查相关的API路由"""

    router = APIRouter(tags=["health"])

    @router.get("/")
    async def root():
        """根路径健康检查"""
        return {
            "message": "Smart Dispatch Router",
            "version": __version__,
            "status": "running",
        }

    @router.get("/health")
    async def health_check(services: RouterServices = Depends(get_services)):
        """系统健康检查：有可用档案的提供商数量"""
        profiles = await services.store.list_profiles()
        available = await services.store.get_available_providers()
        return {
            "status": "healthy" if available else "degraded",
            "version": __version__,
            "timestamp": int(time.time()),
            "providers": len(services.registry.get_all_providers()),
            "profiles": len(profiles),
            "available_providers": available,
            "stats_enabled": services.stats is not None,
        }

    return router
