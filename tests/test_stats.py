"""请求统计测试"""

import sys
from pathlib import Path

import pytest

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from conftest import call_error
from dispatch_core.auth import AuthProfileStore, FailureReason
from dispatch_core.exceptions import ChainExhaustedError
from dispatch_core.handlers import Dispatcher
from dispatch_core.registry import ModelRegistry
from dispatch_core.routing import RoutingRequest, TierRouter, get_default_config
from dispatch_core.storage import Database, RequestStats, StatsRecorder


@pytest.fixture
async def recorder():
    database = Database("sqlite+aiosqlite:///:memory:")
    await database.init()
    yield StatsRecorder(database, recent_limit=10)
    await database.close()


class TestStatsRecorder:
    """统计存储测试"""

    @pytest.mark.asyncio
    async def test_empty_summary(self, recorder):
        summary = await recorder.get_stats_summary()
        assert summary["total_requests"] == 0
        assert summary["success_rate"] == 0.0
        assert summary["average_latency_ms"] is None

    @pytest.mark.asyncio
    async def test_summary_counts(self, recorder):
        await recorder.record_request(
            RequestStats(request_id="r1", status="success", tier="SIMPLE", provider="google",
                         latency_ms=100.0, attempts=[{"outcome": "success"}])
        )
        await recorder.record_request(
            RequestStats(request_id="r2", status="success", tier="COMPLEX", provider="openai",
                         fallback_used=True, latency_ms=300.0)
        )
        await recorder.record_request(
            RequestStats(request_id="r3", status="exhausted", tier="COMPLEX",
                         error_code="E1207", latency_ms=5.0)
        )

        summary = await recorder.get_stats_summary()
        assert summary["total_requests"] == 3
        assert summary["successful_requests"] == 2
        assert summary["failed_requests"] == 1
        assert summary["average_latency_ms"] == pytest.approx(200.0)
        assert summary["fallback_requests"] == 1
        assert summary["by_provider"] == {"google": 1, "openai": 1}
        assert summary["by_tier"] == {"SIMPLE": 1, "COMPLEX": 2}

    @pytest.mark.asyncio
    async def test_recent_requests_newest_first(self, recorder):
        for i in range(15):
            await recorder.record_request(RequestStats(request_id=f"r{i}", status="success"))

        recent = await recorder.get_stats()
        assert len(recent) == 10
        assert recent[0]["request_id"] == "r14"

    @pytest.mark.asyncio
    async def test_dispatcher_records_outcomes(self, recorder, clock, fake_transport):
        store = AuthProfileStore(clock=clock)
        dispatcher = Dispatcher(
            TierRouter(get_default_config(), ModelRegistry.default()),
            store,
            fake_transport,
            stats=recorder,
        )
        g1 = await store.upsert_profile("google", "AIza-google-key-0001")

        await dispatcher.dispatch(RoutingRequest(prompt="hello"))
        fake_transport.on_profile(g1, call_error(FailureReason.AUTH, provider="google"))
        with pytest.raises(ChainExhaustedError):
            await dispatcher.dispatch(RoutingRequest(prompt="hello"))

        recent = await recorder.get_stats()
        assert [r["status"] for r in recent] == ["exhausted", "success"]
        assert recent[0]["attempt_count"] == len(recent[0]["attempts"])
        assert recent[1]["profile_id"] == g1
