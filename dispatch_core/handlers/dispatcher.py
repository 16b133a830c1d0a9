"""
请求调度器
分类 -> 选路 -> 为每条路由挑选认证档案 -> 调用上游；
失败时按策略重试、冷却并沿回退链前进，全部耗尽时返回带完整尝试历史的错误
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..auth.cooldown import FailureScope
from ..auth.models import Profile
from ..auth.store import AuthProfileStore
from ..config_models import DispatchSettings, RotationPolicy
from ..exceptions import (
    ChainExhaustedError,
    ErrorCode,
    FailureReason,
    ProfileException,
    ProviderCallError,
)
from ..providers.base import ProviderResponse, ProviderTransport
from ..routing.router import TierRouter
from ..routing.types import ModelRoute, RoutingDecision, RoutingRequest
from ..storage.stats import RequestStats, StatsRecorder

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    NO_ELIGIBLE_PROFILE = "no_eligible_profile"
    RETRY = "retry"
    FAILED = "failed"


@dataclass
class AttemptRecord:
    """一次尝试或跳过"""

    route: ModelRoute
    profile_id: Optional[str]
    outcome: AttemptOutcome
    reason: Optional[str] = None
    latency_ms: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.route.provider,
            "model": self.route.model,
            "profile_id": self.profile_id,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "latency_ms": round(self.latency_ms, 1) if self.latency_ms is not None else None,
        }


@dataclass
class DispatchResult:
    """调度成功的结果"""

    request_id: str
    response: ProviderResponse
    decision: RoutingDecision
    route: ModelRoute
    profile_id: str
    attempts: list[AttemptRecord] = field(default_factory=list)
    latency_ms: float = 0.0

    @property
    def fallback_used(self) -> bool:
        return self.route != self.decision.primary

    def routing_metadata(self) -> dict[str, Any]:
        """附加在响应中的 _routing 信息"""
        scoring = self.decision.scoring
        return {
            "request_id": self.request_id,
            "tier": scoring.tier.value,
            "score": scoring.total_score,
            "confidence": round(scoring.confidence, 3),
            "provider": self.route.provider,
            "model": self.route.model,
            "profile_id": self.profile_id,
            "fallback_used": self.fallback_used,
            "attempts": len(self.attempts),
            "reason": self.decision.reason,
        }


class _Step(Enum):
    """单个档案尝试结束后的去向"""

    DONE = "done"
    NEXT_PROFILE = "next_profile"
    NEXT_ROUTE = "next_route"


@dataclass
class _DispatchContext:
    request_id: str
    request: RoutingRequest
    timeout: float
    attempts: list[AttemptRecord] = field(default_factory=list)
    tried: dict[ModelRoute, set] = field(default_factory=dict)
    dead_routes: set = field(default_factory=set)
    response: Optional[ProviderResponse] = None
    route: Optional[ModelRoute] = None
    profile_id: Optional[str] = None


class Dispatcher:
    """调度器，持有注入的路由器、档案存储、传输层和统计"""

    def __init__(
        self,
        router: TierRouter,
        store: AuthProfileStore,
        transport: ProviderTransport,
        settings: Optional[DispatchSettings] = None,
        stats: Optional[StatsRecorder] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.router = router
        self.store = store
        self.transport = transport
        self.settings = settings or DispatchSettings()
        self.stats = stats
        self._sleep = sleep

    async def dispatch(
        self, request: RoutingRequest, timeout: Optional[float] = None
    ) -> DispatchResult:
        """
        调度一个请求

        Args:
            request: 路由请求
            timeout: 单次上游调用超时（秒），默认取配置

        Returns:
            DispatchResult

        Raises:
            ChainExhaustedError: 所有路由和档案均已耗尽
            RoutingException: 显式指定的模型未知
            ProfileException: 强制指定的档案不存在或与提供商不匹配
        """
        start = time.time()
        ctx = _DispatchContext(
            request_id=uuid.uuid4().hex[:12],
            request=request,
            timeout=timeout if timeout is not None else self.settings.attempt_timeout_seconds,
        )

        decision = self.router.route(request)
        logger.info(
            f"DISPATCH: [{ctx.request_id}] {decision.scoring.tier.value} -> {decision.primary}, "
            f"{len(decision.fallback_chain)} fallbacks"
        )

        if request.profile_id:
            await self._dispatch_forced(ctx, decision, request.profile_id)
        elif self.settings.rotation_policy == RotationPolicy.ONE_PER_ROUTE:
            await self._dispatch_one_per_route(ctx, decision)
        else:
            await self._dispatch_exhaust_then_advance(ctx, decision)

        latency_ms = (time.time() - start) * 1000

        if ctx.response is not None:
            result = DispatchResult(
                request_id=ctx.request_id,
                response=ctx.response,
                decision=decision,
                route=ctx.route,
                profile_id=ctx.profile_id,
                attempts=ctx.attempts,
                latency_ms=latency_ms,
            )
            if result.fallback_used:
                logger.info(f"FAILOVER: [{ctx.request_id}] served by {result.route} instead of {decision.primary}")
            await self._record(ctx, decision, latency_ms, success=True)
            return result

        retry_after = await self.store.seconds_until_available(decision.routes)
        logger.error(
            f"EXHAUSTED: [{ctx.request_id}] all routes failed after {len(ctx.attempts)} attempts"
            + (f", earliest recovery in {retry_after:.0f}s" if retry_after else "")
        )
        await self._record(ctx, decision, latency_ms, success=False)
        raise ChainExhaustedError(ctx.attempts, decision, retry_after)

    # ------------------------------------------------------------------
    # 轮换策略
    # ------------------------------------------------------------------

    async def _dispatch_exhaust_then_advance(
        self, ctx: _DispatchContext, decision: RoutingDecision
    ) -> None:
        for route in decision.routes:
            await self._try_route(ctx, route)
            if ctx.response is not None:
                return

    async def _dispatch_one_per_route(
        self, ctx: _DispatchContext, decision: RoutingDecision
    ) -> None:
        while True:
            attempted = False
            for route in decision.routes:
                if route in ctx.dead_routes:
                    continue
                if await self._try_route(ctx, route, max_profiles=1):
                    attempted = True
                if ctx.response is not None:
                    return
            if not attempted:
                return

    async def _dispatch_forced(
        self, ctx: _DispatchContext, decision: RoutingDecision, profile_id: str
    ) -> None:
        """强制档案只在主路由上尝试，不做可用性过滤"""
        route = decision.primary
        profile = await self.store.acquire_profile(profile_id)
        if profile is None:
            raise ProfileException(
                ErrorCode.PROFILE_NOT_FOUND,
                f"Profile not found: {profile_id}",
                profile_id=profile_id,
            )
        if profile.provider != route.provider:
            await self.store.release_profile(profile_id)
            raise ProfileException(
                ErrorCode.PROFILE_PROVIDER_MISMATCH,
                f"Profile {profile_id} belongs to {profile.provider}, "
                f"but target provider is {route.provider}",
                profile_id=profile_id,
                provider=route.provider,
            )
        await self._attempt_profile(ctx, route, profile)

    # ------------------------------------------------------------------
    # 单条路由 / 单个档案
    # ------------------------------------------------------------------

    async def _try_route(
        self, ctx: _DispatchContext, route: ModelRoute, max_profiles: Optional[int] = None
    ) -> int:
        """
        在一条路由上依次尝试可用档案

        Returns:
            实际尝试过的档案数
        """
        tried = ctx.tried.setdefault(route, set())
        used = 0
        while max_profiles is None or used < max_profiles:
            profile = await self.store.pick_next_profile(route.provider, route.model, exclude=tried)
            if profile is None:
                ctx.attempts.append(
                    AttemptRecord(route, None, AttemptOutcome.NO_ELIGIBLE_PROFILE)
                )
                logger.info(f"⏭️ SKIP: [{ctx.request_id}] no eligible profile for {route}")
                ctx.dead_routes.add(route)
                return used

            tried.add(profile.id)
            used += 1
            step = await self._attempt_profile(ctx, route, profile)
            if step == _Step.DONE:
                return used
            if step == _Step.NEXT_ROUTE:
                ctx.dead_routes.add(route)
                return used
        return used

    async def _attempt_profile(
        self, ctx: _DispatchContext, route: ModelRoute, profile: Profile
    ) -> _Step:
        """
        用一个已预留的档案调用上游，可重试错误在同一档案上有限次重试

        预留在任何退出路径上都会被结算；被取消或遇到意外异常时直接释放
        """
        settled = False
        try:
            retries = 0
            while True:
                attempt_num = len(ctx.attempts) + 1
                logger.info(
                    f"ATTEMPT #{attempt_num}: [{ctx.request_id}] {route} with profile '{profile.id}'"
                )
                started = time.time()
                try:
                    response = await asyncio.wait_for(
                        self.transport.invoke(route.provider, profile, route.model, ctx.request),
                        timeout=ctx.timeout,
                    )
                except asyncio.TimeoutError:
                    error = ProviderCallError(
                        FailureReason.TIMEOUT,
                        f"Attempt timed out after {ctx.timeout}s",
                        retryable=True,
                        provider=route.provider,
                    )
                except ProviderCallError as e:
                    error = e
                else:
                    latency_ms = (time.time() - started) * 1000
                    ctx.attempts.append(
                        AttemptRecord(route, profile.id, AttemptOutcome.SUCCESS, latency_ms=latency_ms)
                    )
                    settled = True
                    await asyncio.shield(self.store.mark_profile_used(profile.id, route.model))
                    ctx.response = response
                    ctx.route = route
                    ctx.profile_id = profile.id
                    logger.info(f"✅ SUCCESS: [{ctx.request_id}] {route} in {latency_ms:.0f}ms")
                    return _Step.DONE

                latency_ms = (time.time() - started) * 1000

                if error.retryable and retries < self.settings.max_retries_per_profile:
                    retries += 1
                    ctx.attempts.append(
                        AttemptRecord(
                            route, profile.id, AttemptOutcome.RETRY, error.reason.value, latency_ms
                        )
                    )
                    logger.warning(
                        f"ATTEMPT #{attempt_num}: [{ctx.request_id}] {error.reason.value}, "
                        f"retry {retries}/{self.settings.max_retries_per_profile} on same profile"
                    )
                    if self.settings.retry_backoff_seconds > 0:
                        await self._sleep(self.settings.retry_backoff_seconds * (2 ** (retries - 1)))
                    continue

                ctx.attempts.append(
                    AttemptRecord(route, profile.id, AttemptOutcome.FAILED, error.reason.value, latency_ms)
                )
                logger.warning(f"ATTEMPT #{attempt_num}: [{ctx.request_id}] failed: {error.message}")

                if error.reason == FailureReason.FORMAT:
                    # 请求本身的问题，与凭证无关
                    settled = True
                    await asyncio.shield(self.store.release_profile(profile.id))
                    return _Step.NEXT_ROUTE

                # 可重试错误用尽重试次数后按全局失败处理
                scope = FailureScope.PROVIDER if error.retryable else None
                settled = True
                await asyncio.shield(
                    self.store.mark_profile_failure(
                        profile.id,
                        error.reason,
                        scope=scope,
                        model=route.model,
                        cooldown_seconds=error.retry_after,
                    )
                )
                return _Step.NEXT_PROFILE
        finally:
            if not settled:
                logger.warning(f"ATTEMPT: [{ctx.request_id}] released '{profile.id}' without a result")
                await asyncio.shield(self.store.release_profile(profile.id))

    # ------------------------------------------------------------------
    # 统计
    # ------------------------------------------------------------------

    async def _record(
        self, ctx: _DispatchContext, decision: RoutingDecision, latency_ms: float, success: bool
    ) -> None:
        if self.stats is None:
            return
        scoring = decision.scoring
        stats = RequestStats(
            request_id=ctx.request_id,
            status="success" if success else "exhausted",
            tier=scoring.tier.value,
            total_score=scoring.total_score,
            confidence=scoring.confidence,
            requested_model=ctx.request.model,
            routing_reason=decision.reason,
            provider=ctx.route.provider if ctx.route else None,
            model=ctx.route.model if ctx.route else None,
            profile_id=ctx.profile_id,
            fallback_used=bool(ctx.route and ctx.route != decision.primary),
            error_code=None if success else ErrorCode.CHAIN_EXHAUSTED.value,
            latency_ms=latency_ms,
            attempts=[a.to_dict() for a in ctx.attempts],
        )
        try:
            await self.stats.record_request(stats)
        except Exception as e:
            logger.error(f"STATS: [{ctx.request_id}] failed to record request: {e}")
