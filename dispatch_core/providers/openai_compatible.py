"""
OpenAI 兼容接口传输层
"""

import logging
import time
from typing import Any, Optional

import httpx

from ..auth.cooldown import FailureClassifier
from ..auth.models import Profile
from ..exceptions import FailureReason, ProviderCallError
from ..registry import ModelRegistry
from ..routing.types import RoutingRequest
from .base import ProviderResponse, ProviderTransport

logger = logging.getLogger(__name__)

# 只在路由器内部使用的请求字段，不转发给上游
ROUTER_ONLY_FIELDS = ("profile", "profile_id", "stream")

ERROR_BODY_PREVIEW = 300


class OpenAICompatibleTransport(ProviderTransport):
    """向 {base_url}/chat/completions 发送请求，使用档案凭证做 Bearer 认证"""

    def __init__(
        self,
        registry: ModelRegistry,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self.registry = registry
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout
            or httpx.Timeout(connect=10.0, read=300.0, write=30.0, pool=10.0),
            limits=httpx.Limits(
                max_keepalive_connections=20, max_connections=100, keepalive_expiry=30.0
            ),
        )

    def build_payload(self, model: str, request: RoutingRequest) -> dict[str, Any]:
        payload = {k: v for k, v in request.payload.items() if k not in ROUTER_ONLY_FIELDS}
        payload["model"] = model
        payload["stream"] = False
        if "messages" not in payload:
            payload["messages"] = [{"role": "user", "content": request.prompt}]
        return payload

    async def invoke(
        self,
        provider: str,
        profile: Profile,
        model: str,
        request: RoutingRequest,
    ) -> ProviderResponse:
        info = self.registry.get_provider(provider)
        if info is None:
            raise ProviderCallError(
                FailureReason.UNKNOWN,
                f"Provider '{provider}' is not registered",
                provider=provider,
            )

        url = f"{info.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {profile.credential.bearer_token()}",
            "Content-Type": "application/json",
            **info.extra_headers,
        }

        start = time.time()
        try:
            response = await self._client.post(
                url, json=self.build_payload(model, request), headers=headers
            )
        except httpx.TimeoutException as e:
            raise ProviderCallError(
                FailureReason.TIMEOUT,
                f"Upstream timeout: {e}",
                retryable=True,
                provider=provider,
                cause=e,
            )
        except httpx.HTTPError as e:
            raise ProviderCallError(
                FailureReason.CONNECTION,
                f"Connection error: {e}",
                retryable=True,
                provider=provider,
                cause=e,
            )
        latency_ms = (time.time() - start) * 1000

        if response.status_code >= 400:
            body = response.text
            reason, retryable, retry_after = FailureClassifier.classify_http(
                response.status_code, body, dict(response.headers)
            )
            logger.info(
                f"UPSTREAM ERROR: {provider}/{model} HTTP {response.status_code} -> {reason.value}"
            )
            raise ProviderCallError(
                reason,
                f"HTTP {response.status_code}: {body[:ERROR_BODY_PREVIEW]}",
                retryable=retryable,
                status_code=response.status_code,
                retry_after=retry_after,
                provider=provider,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderCallError(
                FailureReason.SERVER_ERROR,
                "Upstream returned a non-JSON body",
                retryable=True,
                status_code=response.status_code,
                provider=provider,
                cause=e,
            )

        return ProviderResponse(
            body=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            latency_ms=latency_ms,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
