"""
Admin API endpoints
管理API接口：认证档案、冷却重置、路由预演、统计、日志与配置重载
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from dispatch_core.auth.models import Credential
from dispatch_core.exceptions import ConfigurationException
from dispatch_core.services import RouterServices
from dispatch_core.utils.auth import verify_admin_token
from dispatch_core.utils.logger import get_recent_logs

from .chat import ChatCompletionRequest, build_routing_request
from .dependencies import get_services

logger = logging.getLogger(__name__)


# --- Request Models ---


class ProfileUpsertRequest(BaseModel):
    """新增或更新档案"""

    provider: str
    credential: Credential
    label: Optional[str] = None


def create_admin_router() -> APIRouter:
    """创建管理相关的API路由"""

    router = APIRouter(
        prefix="/admin",
        tags=["admin"],
        dependencies=[Depends(verify_admin_token)],
    )

    # --- 认证档案 ---

    @router.get("/profiles")
    async def list_profiles(
        provider: Optional[str] = None, services: RouterServices = Depends(get_services)
    ):
        profiles = await services.store.list_profiles(provider)
        return {
            "total": len(profiles),
            "profiles": [p.to_public_dict() for p in profiles],
        }

    @router.post("/profiles")
    async def upsert_profile(body: ProfileUpsertRequest, services: RouterServices = Depends(get_services)):
        if services.registry.get_provider(body.provider) is None:
            raise HTTPException(status_code=400, detail=f"Unknown provider: {body.provider}")
        profile_id = await services.store.upsert_profile(body.provider, body.credential, body.label)
        profile = await services.store.get_profile(profile_id)
        return {"status": "success", "profile": profile.to_public_dict()}

    @router.delete("/profiles/{profile_id}")
    async def remove_profile(profile_id: str, services: RouterServices = Depends(get_services)):
        if not await services.store.remove_profile(profile_id):
            raise HTTPException(status_code=404, detail=f"Profile not found: {profile_id}")
        return {"status": "success", "profile_id": profile_id}

    @router.post("/profiles/{profile_id}/clear-cooldown")
    async def clear_profile_cooldown(profile_id: str, services: RouterServices = Depends(get_services)):
        if not await services.store.clear_profile_cooldown(profile_id):
            raise HTTPException(status_code=404, detail=f"Profile not found: {profile_id}")
        return {"status": "success", "profile_id": profile_id}

    @router.post("/cooldowns/reset")
    async def reset_cooldowns(services: RouterServices = Depends(get_services)):
        """把所有冷却中或带错误标记的档案恢复为 ACTIVE"""
        count = await services.store.reset_all_cooldowns()
        return {"status": "success", "reset": count}

    # --- 路由预演 ---

    @router.post("/route")
    async def dry_run_route(body: ChatCompletionRequest, services: RouterServices = Depends(get_services)):
        """只做分类和选路，不调用上游"""
        decision = services.router.route(build_routing_request(body))
        return {
            "decision": decision.to_dict(),
            "routes": [str(r) for r in decision.routes],
        }

    # --- 统计 ---

    @router.get("/stats")
    async def get_stats(
        limit: int = Query(50, ge=1, le=1000), services: RouterServices = Depends(get_services)
    ):
        if services.stats is None:
            raise HTTPException(status_code=404, detail="Request statistics are disabled")
        return {"requests": await services.stats.get_stats(limit)}

    @router.get("/stats/summary")
    async def get_stats_summary(services: RouterServices = Depends(get_services)):
        if services.stats is None:
            raise HTTPException(status_code=404, detail="Request statistics are disabled")
        return await services.stats.get_stats_summary()

    # --- 日志 ---

    @router.get("/logs")
    async def get_logs(
        limit: int = Query(100, ge=1, le=1000),
        level: Optional[str] = Query(None),
    ):
        logs = get_recent_logs(limit, level)
        return {"total": len(logs), "logs": logs}

    # --- 配置 ---

    @router.post("/config/reload")
    async def reload_config(services: RouterServices = Depends(get_services)):
        """重新加载配置；校验失败时保留旧配置"""
        try:
            services.reload()
        except ConfigurationException as e:
            logger.error(f"Config reload rejected: {e}")
            raise HTTPException(status_code=400, detail=e.to_dict())
        return {
            "status": "success",
            "providers": len(services.registry.get_all_providers()),
            "models": len(services.registry.list_models()),
        }

    return router
