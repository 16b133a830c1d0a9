"""
Models API endpoints
模型列表API接口
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dispatch_core.routing.types import Tier
from dispatch_core.services import RouterServices

from .dependencies import get_services

# --- Response Models ---


class ModelInfo(BaseModel):
    model_config = {"protected_namespaces": ()}

    id: str
    object: str = "model"
    created: int
    owned_by: str
    name: Optional[str] = None
    context_length: Optional[int] = None
    available: bool = True
    tiers: list[str] = []


class ModelsResponse(BaseModel):
    object: str = "list"
    data: list[ModelInfo]


def create_models_router() -> APIRouter:
    """创建模型相关的API路由"""

    router = APIRouter(prefix="/v1", tags=["models"])

    @router.get("/models", response_model=ModelsResponse)
    async def list_models(services: RouterServices = Depends(get_services)):
        """列出注册表中的模型；auto 代表智能路由"""
        created = int(time.time())
        registry = services.registry
        routing_config = services.router.config
        available = set(await services.store.get_available_providers())

        tiers_by_route: dict[str, list[str]] = {}
        for tier in Tier.ordered():
            for route in routing_config.tier_models.get(tier, []):
                tiers_by_route.setdefault(str(route), []).append(tier.value)

        data = [
            ModelInfo(
                id="auto",
                created=created,
                owned_by="smart-dispatch-router",
                name="Automatic tier routing",
            )
        ]
        for model in registry.list_models():
            qualified = f"{model.provider}/{model.id}"
            data.append(
                ModelInfo(
                    id=qualified,
                    created=created,
                    owned_by=model.provider,
                    name=model.display_name,
                    context_length=model.context_length,
                    available=model.provider in available,
                    tiers=tiers_by_route.get(qualified, []),
                )
            )
        return ModelsResponse(data=data)

    return router
