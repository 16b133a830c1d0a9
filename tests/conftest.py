"""测试公共工具：可控时钟、假传输层"""

import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dispatch_core.exceptions import ProviderCallError  # noqa: E402
from dispatch_core.providers.base import ProviderResponse, ProviderTransport  # noqa: E402


class FakeClock:
    """手动推进的时钟"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport(ProviderTransport):
    """
    按 (provider, model) 或 profile_id 预设的结果回放

    behaviors 中的值可以是 ProviderResponse、异常实例，或它们组成的列表（按调用顺序消费）
    """

    def __init__(self, default: Optional[Callable] = None):
        self.calls: list[tuple[str, str, str]] = []
        self.by_route: dict[tuple[str, str], list] = {}
        self.by_profile: dict[str, list] = {}
        self.default = default

    def on_route(self, provider: str, model: str, *outcomes) -> "FakeTransport":
        self.by_route.setdefault((provider, model), []).extend(outcomes)
        return self

    def on_profile(self, profile_id: str, *outcomes) -> "FakeTransport":
        self.by_profile.setdefault(profile_id, []).extend(outcomes)
        return self

    async def invoke(self, provider, profile, model, request):
        self.calls.append((provider, model, profile.id))
        queue = self.by_profile.get(profile.id) or self.by_route.get((provider, model))
        if queue:
            outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        elif self.default is not None:
            outcome = self.default(provider, profile, model, request)
        else:
            outcome = ok_response(provider, model)

        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return await outcome()
        return outcome


def ok_response(provider: str = "openai", model: str = "gpt-4.1") -> ProviderResponse:
    return ProviderResponse(
        body={
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "model": model,
            "choices": [{"index": 0, "message": {"role": "assistant", "content": f"hi from {provider}"}}],
        },
        status_code=200,
    )


def call_error(reason, retryable=False, retry_after=None, provider="openai") -> ProviderCallError:
    return ProviderCallError(
        reason,
        f"upstream failed: {reason.value}",
        retryable=retryable,
        retry_after=retry_after,
        provider=provider,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_transport():
    return FakeTransport()
