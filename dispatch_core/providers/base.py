"""
上游传输层基础接口
调度器只通过 invoke() 调用上游，失败统一抛出 ProviderCallError
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..auth.models import Profile
from ..routing.types import RoutingRequest


@dataclass
class ProviderResponse:
    """上游成功响应"""

    body: dict[str, Any]
    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    latency_ms: Optional[float] = None


class ProviderTransport(ABC):
    """上游传输接口"""

    @abstractmethod
    async def invoke(
        self,
        provider: str,
        profile: Profile,
        model: str,
        request: RoutingRequest,
    ) -> ProviderResponse:
        """
        调用上游

        Raises:
            ProviderCallError: 带有失败原因、是否可重试和建议等待时间
        """

    async def close(self) -> None:
        """释放连接等资源"""
