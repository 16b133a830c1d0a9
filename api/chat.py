"""
Chat completions API endpoint
OpenAI 兼容的聊天接口：分类、选路并调度到上游
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from dispatch_core.routing.types import RoutingRequest
from dispatch_core.services import RouterServices

from .dependencies import get_services

logger = logging.getLogger(__name__)

PROFILE_HEADER = "X-Smart-Router-Profile"


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str
    content: Any = None


class ChatCompletionRequest(BaseModel):
    """聊天请求，未声明的字段原样透传给上游"""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model: Optional[str] = "auto"
    messages: list[ChatMessage] = Field(default_factory=list)
    stream: bool = False
    profile: Optional[str] = None
    profile_id: Optional[str] = None


def _content_text(content: Any) -> str:
    """消息内容可能是字符串或多段内容列表，只取文本部分"""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "\n".join(parts)
    return str(content)


def build_routing_request(
    body: ChatCompletionRequest, profile_header: Optional[str] = None
) -> RoutingRequest:
    prompt = "\n".join(
        text for text in (_content_text(m.content) for m in body.messages) if text
    )
    payload = body.model_dump(exclude_none=True)
    return RoutingRequest(
        prompt=prompt,
        message_count=max(1, len(body.messages)),
        model=body.model,
        profile_id=profile_header or body.profile_id or body.profile,
        payload=payload,
    )


def create_chat_router() -> APIRouter:
    """创建聊天相关的API路由"""

    router = APIRouter(prefix="/v1", tags=["chat"])

    @router.post("/chat/completions")
    async def chat_completions(
        body: ChatCompletionRequest,
        x_smart_router_profile: Optional[str] = Header(None, alias=PROFILE_HEADER),
        services: RouterServices = Depends(get_services),
    ):
        if not body.messages:
            raise HTTPException(status_code=400, detail="messages must not be empty")
        if body.stream:
            logger.info("Streaming requested, responding with a single non-streamed completion")

        routing_request = build_routing_request(body, x_smart_router_profile)
        result = await services.dispatcher.dispatch(routing_request)

        content = result.response.body
        if isinstance(content, dict):
            content = dict(content)
            content["_routing"] = result.routing_metadata()
        else:
            content = {"response": content, "_routing": result.routing_metadata()}

        return JSONResponse(
            content=content,
            headers={
                "X-Router-Request-Id": result.request_id,
                "X-Router-Provider": result.route.provider,
                "X-Router-Model": result.route.model,
                "X-Router-Tier": result.decision.scoring.tier.value,
            },
        )

    return router
