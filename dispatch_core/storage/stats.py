"""
请求统计
调度器每完成一个请求记录一条；统计是旁路，不影响路由正确性
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import func, select

from .database import Database
from .models import RequestLog

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 100


@dataclass
class RequestStats:
    """一个已完成请求的统计信息"""

    request_id: str
    status: str  # success, exhausted
    tier: Optional[str] = None
    total_score: Optional[float] = None
    confidence: Optional[float] = None
    requested_model: Optional[str] = None
    routing_reason: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    profile_id: Optional[str] = None
    fallback_used: bool = False
    error_code: Optional[str] = None
    latency_ms: Optional[float] = None
    attempts: list[dict[str, Any]] = field(default_factory=list)


class StatsRecorder:
    """基于 SQLAlchemy 的请求统计存储"""

    def __init__(self, database: Database, recent_limit: int = DEFAULT_RECENT_LIMIT):
        self.database = database
        self.recent_limit = recent_limit

    async def record_request(self, stats: RequestStats) -> None:
        async with self.database.session() as session:
            session.add(
                RequestLog(
                    request_id=stats.request_id,
                    tier=stats.tier,
                    total_score=stats.total_score,
                    confidence=stats.confidence,
                    requested_model=stats.requested_model,
                    routing_reason=stats.routing_reason,
                    provider=stats.provider,
                    model=stats.model,
                    profile_id=stats.profile_id,
                    fallback_used=stats.fallback_used,
                    status=stats.status,
                    error_code=stats.error_code,
                    latency_ms=stats.latency_ms,
                    attempt_count=len(stats.attempts),
                    attempts=stats.attempts,
                )
            )

    async def get_stats(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        """最近的请求记录，新的在前"""
        limit = limit or self.recent_limit
        async with self.database.session() as session:
            result = await session.execute(
                select(RequestLog).order_by(RequestLog.id.desc()).limit(limit)
            )
            return [row.to_dict() for row in result.scalars().all()]

    async def get_stats_summary(self) -> dict[str, Any]:
        """总量、成功率、平均延迟，以及按提供商和层级的分布"""
        async with self.database.session() as session:
            total = (await session.execute(select(func.count(RequestLog.id)))).scalar() or 0
            successes = (
                await session.execute(
                    select(func.count(RequestLog.id)).where(RequestLog.status == "success")
                )
            ).scalar() or 0
            avg_latency = (
                await session.execute(
                    select(func.avg(RequestLog.latency_ms)).where(RequestLog.status == "success")
                )
            ).scalar()

            by_provider_rows = await session.execute(
                select(RequestLog.provider, func.count(RequestLog.id))
                .where(RequestLog.provider.is_not(None))
                .group_by(RequestLog.provider)
            )
            by_tier_rows = await session.execute(
                select(RequestLog.tier, func.count(RequestLog.id))
                .where(RequestLog.tier.is_not(None))
                .group_by(RequestLog.tier)
            )
            fallbacks = (
                await session.execute(
                    select(func.count(RequestLog.id)).where(RequestLog.fallback_used.is_(True))
                )
            ).scalar() or 0

        return {
            "total_requests": total,
            "successful_requests": successes,
            "failed_requests": total - successes,
            "success_rate": round(successes / total, 4) if total else 0.0,
            "average_latency_ms": round(avg_latency, 2) if avg_latency is not None else None,
            "fallback_requests": fallbacks,
            "by_provider": {provider: count for provider, count in by_provider_rows.all()},
            "by_tier": {tier: count for tier, count in by_tier_rows.all()},
        }
