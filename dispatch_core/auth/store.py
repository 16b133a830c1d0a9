"""
认证档案存储
进程内唯一的共享可变状态。所有读-改-写都在同一把 asyncio.Lock 内完成，
冷却状态在每次读取时惰性刷新，持久化为写穿透：锁内取快照，锁外写盘
"""

import asyncio
import logging
import math
import os
import time
from typing import TYPE_CHECKING, Callable, Iterable, Mapping, Optional, Union

from ..exceptions import BaseRouterException
from .cooldown import CooldownPolicy, FailureScope
from .models import (
    ApiKeyCredential,
    FailureReason,
    OAuthCredential,
    Profile,
    TokenCredential,
    build_profile_id,
)
from .persistence import StorePersistence

if TYPE_CHECKING:
    from ..registry import ModelRegistry
    from ..routing.types import ModelRoute

logger = logging.getLogger(__name__)

CredentialLike = Union[ApiKeyCredential, OAuthCredential, TokenCredential, str]

RATE_WINDOW_SECONDS = 60.0


class AuthProfileStore:
    """认证档案存储"""

    def __init__(
        self,
        persistence: Optional[StorePersistence] = None,
        policy: Optional[CooldownPolicy] = None,
        clock: Callable[[], float] = time.time,
        requests_per_minute: Optional[Mapping[str, int]] = None,
    ):
        self.persistence = persistence
        self.policy = policy or CooldownPolicy()
        self._clock = clock
        self._requests_per_minute = dict(requests_per_minute or {})

        self._profiles: dict[str, Profile] = {}
        self._lock = asyncio.Lock()
        # 选中但尚未回报结果的档案：最近一次预留时间、在途请求数
        self._reserved_at: dict[str, float] = {}
        self._in_flight: dict[str, int] = {}
        self._generation = 0

    # ------------------------------------------------------------------
    # 加载 / 持久化
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """从持久化层加载全部档案，返回数量"""
        if self.persistence is None:
            return 0
        profiles = await self.persistence.load()
        async with self._lock:
            self._profiles = {p.id: p for p in profiles}
            self._reserved_at.clear()
            self._in_flight.clear()
            return len(self._profiles)

    async def save(self) -> None:
        async with self._lock:
            snapshot = self._take_snapshot()
        await self._persist(snapshot)

    def _take_snapshot(self) -> tuple[list[dict], int]:
        """必须在锁内调用"""
        self._generation += 1
        data = [p.model_dump(mode="json") for p in self._profiles.values()]
        return data, self._generation

    async def _persist(self, snapshot: Optional[tuple[list[dict], int]]) -> None:
        if self.persistence is None or snapshot is None:
            return
        data, generation = snapshot
        try:
            await self.persistence.save(data, generation)
        except BaseRouterException as e:
            # 内存状态仍然有效，下一次写入会带上最新状态
            logger.error(f"AUTH STORE: persist failed: {e}")

    def set_requests_per_minute(self, limits: Mapping[str, int]) -> None:
        self._requests_per_minute = dict(limits)

    # ------------------------------------------------------------------
    # 选择与预留
    # ------------------------------------------------------------------

    def _now(self) -> float:
        return self._clock()

    def _within_rate_window(self, profile: Profile, now: float) -> bool:
        limit = self._requests_per_minute.get(profile.provider)
        if not limit:
            return True
        usage = profile.usage
        if usage.window_start is None or now - usage.window_start >= RATE_WINDOW_SECONDS:
            return True
        return usage.window_count < limit

    def _recency(self, profile: Profile) -> float:
        last_used = profile.usage.last_used
        reserved = self._reserved_at.get(profile.id)
        candidates = [t for t in (last_used, reserved) if t is not None]
        return max(candidates) if candidates else -math.inf

    def _reserve(self, profile: Profile, now: float) -> None:
        """预留档案；每次预留都计入每分钟请求窗口，无论调用结果如何"""
        self._reserved_at[profile.id] = now
        self._in_flight[profile.id] = self._in_flight.get(profile.id, 0) + 1

        usage = profile.usage
        if usage.window_start is None or now - usage.window_start >= RATE_WINDOW_SECONDS:
            usage.window_start = now
            usage.window_count = 1
        else:
            usage.window_count += 1

    def _release(self, profile_id: str) -> None:
        count = self._in_flight.get(profile_id, 0) - 1
        if count > 0:
            self._in_flight[profile_id] = count
        else:
            self._in_flight.pop(profile_id, None)

    async def pick_next_profile(
        self,
        provider: str,
        model: Optional[str] = None,
        exclude: Iterable[str] = (),
    ) -> Optional[Profile]:
        """
        为提供商/模型选择下一个可用档案并预留

        排除全局冷却、该模型仍在冷却、超过每分钟请求上限以及 exclude 中的档案，
        在剩余档案中选择最久未使用的（从未使用的最优先，ID 作为平局裁决）

        Returns:
            档案副本；没有可用档案时返回 None
        """
        excluded = set(exclude)
        async with self._lock:
            now = self._now()
            eligible = []
            for profile in self._profiles.values():
                if profile.provider != provider:
                    continue
                profile.usage.refresh(now)
                if profile.id in excluded:
                    continue
                if profile.usage.is_provider_cooling(now):
                    continue
                if profile.usage.is_model_cooling(model, now):
                    continue
                if not self._within_rate_window(profile, now):
                    continue
                eligible.append(profile)

            if not eligible:
                logger.debug(f"AUTH STORE: no eligible profile for {provider}/{model}")
                return None

            chosen = min(eligible, key=lambda p: (self._recency(p), p.id))
            self._reserve(chosen, now)
            return chosen.model_copy(deep=True)

    async def acquire_profile(self, profile_id: str) -> Optional[Profile]:
        """按 ID 预留档案，不做可用性过滤（用于强制指定档案）"""
        async with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return None
            now = self._now()
            profile.usage.refresh(now)
            self._reserve(profile, now)
            return profile.model_copy(deep=True)

    async def release_profile(self, profile_id: str) -> None:
        """释放预留而不记录结果"""
        async with self._lock:
            self._release(profile_id)

    # ------------------------------------------------------------------
    # 结果回报
    # ------------------------------------------------------------------

    async def mark_profile_used(self, profile_id: str, model: Optional[str] = None) -> bool:
        """成功记账：请求数 +1，更新最近使用时间，错误计数清零；不直接改变状态"""
        async with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return False

            now = self._now()
            usage = profile.usage
            usage.request_count += 1
            usage.last_used = now
            usage.error_count = 0

            self._release(profile_id)
            usage.refresh(now)
            snapshot = self._take_snapshot()

        await self._persist(snapshot)
        return True

    async def mark_profile_failure(
        self,
        profile_id: str,
        reason: FailureReason,
        scope: Optional[FailureScope] = None,
        model: Optional[str] = None,
        cooldown_seconds: Optional[float] = None,
    ) -> Optional[float]:
        """
        记录失败并进入冷却

        Args:
            profile_id: 档案 ID
            reason: 失败原因
            scope: 全局或模型级；默认由冷却策略决定
            model: 失败的模型
            cooldown_seconds: 上游明确给出的等待时间

        Returns:
            冷却截止时间；档案不存在时返回 None
        """
        async with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return None

            now = self._now()
            usage = profile.usage
            usage.refresh(now)

            scope = scope or self.policy.scope_for(reason, model)
            if scope == FailureScope.MODEL and not model:
                scope = FailureScope.PROVIDER

            if scope == FailureScope.MODEL:
                duration = self.policy.duration_for(reason, 1, cooldown_seconds)
                until = now + duration
                usage.model_cooldowns[model] = until
            else:
                usage.error_count += 1
                duration = self.policy.duration_for(reason, usage.error_count, cooldown_seconds)
                until = now + duration
                if usage.cooldown_until is None or until > usage.cooldown_until:
                    usage.cooldown_until = until
                usage.failure_reason = reason

            usage.last_failure_at = now
            self._release(profile_id)
            usage.refresh(now)
            snapshot = self._take_snapshot()

        logger.warning(
            f"COOLDOWN: profile '{profile_id}' {scope.value}-wide for {duration:.0f}s "
            f"(reason: {reason.value}{', model: ' + model if model else ''})"
        )
        await self._persist(snapshot)
        return until

    # ------------------------------------------------------------------
    # 管理操作
    # ------------------------------------------------------------------

    async def clear_profile_cooldown(self, profile_id: str) -> bool:
        async with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return False
            profile.usage.clear()
            snapshot = self._take_snapshot()

        logger.info(f"AUTH STORE: cleared cooldown for '{profile_id}'")
        await self._persist(snapshot)
        return True

    async def reset_all_cooldowns(self) -> int:
        """把所有带冷却或错误标记的档案恢复为 ACTIVE，返回被重置的数量"""
        async with self._lock:
            now = self._now()
            count = 0
            for profile in self._profiles.values():
                profile.usage.refresh(now)
                if profile.usage.is_flagged():
                    profile.usage.clear()
                    count += 1
            snapshot = self._take_snapshot() if count else None

        if count:
            logger.info(f"AUTH STORE: reset cooldowns on {count} profiles")
        await self._persist(snapshot)
        return count

    async def upsert_profile(
        self,
        provider: str,
        credential: CredentialLike,
        label: Optional[str] = None,
    ) -> str:
        """新增或更新档案；ID 由凭证决定，已存在的档案保留使用统计"""
        if isinstance(credential, str):
            credential = ApiKeyCredential(key=credential)
        profile_id = build_profile_id(provider, credential)

        async with self._lock:
            existing = self._profiles.get(profile_id)
            if existing is not None:
                existing.credential = credential
                if label is not None:
                    existing.label = label
            else:
                self._profiles[profile_id] = Profile(
                    id=profile_id,
                    provider=provider,
                    credential=credential,
                    label=label,
                    created_at=self._now(),
                )
            snapshot = self._take_snapshot()

        logger.info(
            f"AUTH STORE: {'updated' if existing is not None else 'added'} profile '{profile_id}'"
        )
        await self._persist(snapshot)
        return profile_id

    async def remove_profile(self, profile_id: str) -> bool:
        async with self._lock:
            if self._profiles.pop(profile_id, None) is None:
                return False
            self._reserved_at.pop(profile_id, None)
            self._in_flight.pop(profile_id, None)
            snapshot = self._take_snapshot()

        logger.info(f"AUTH STORE: removed profile '{profile_id}'")
        await self._persist(snapshot)
        return True

    async def import_env_profiles(
        self,
        registry: "ModelRegistry",
        environ: Optional[Mapping[str, str]] = None,
    ) -> list[str]:
        """把环境变量中的 API Key 导入为 label='env' 的档案，与其他档案共享冷却记账"""
        environ = os.environ if environ is None else environ
        imported = []
        for provider_id in registry.get_all_providers():
            provider = registry.get_provider(provider_id)
            if provider is None or not provider.env_key:
                continue
            key = (environ.get(provider.env_key) or "").strip()
            if key:
                imported.append(await self.upsert_profile(provider_id, key, label="env"))
        if imported:
            logger.info(f"AUTH STORE: imported {len(imported)} profiles from environment")
        return imported

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        async with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                return None
            profile.usage.refresh(self._now())
            return profile.model_copy(deep=True)

    async def list_profiles(self, provider: Optional[str] = None) -> list[Profile]:
        async with self._lock:
            now = self._now()
            result = []
            for profile in self._profiles.values():
                if provider and profile.provider != provider:
                    continue
                profile.usage.refresh(now)
                result.append(profile.model_copy(deep=True))
        return sorted(result, key=lambda p: (p.provider, p.id))

    async def get_available_providers(self) -> list[str]:
        """至少有一个档案不在全局冷却中的提供商"""
        async with self._lock:
            now = self._now()
            providers = set()
            for profile in self._profiles.values():
                profile.usage.refresh(now)
                if not profile.usage.is_provider_cooling(now):
                    providers.add(profile.provider)
        return sorted(providers)

    async def seconds_until_available(self, routes: Iterable["ModelRoute"]) -> Optional[float]:
        """
        给定路由中最早恢复可用的档案还需等待的秒数

        Returns:
            等待秒数；没有相关档案或已有档案可用时返回 None
        """
        routes = list(routes)
        async with self._lock:
            now = self._now()
            waits = []
            for route in routes:
                for profile in self._profiles.values():
                    if profile.provider != route.provider:
                        continue
                    wait = profile.usage.seconds_until_usable(route.model, now)
                    if not self._within_rate_window(profile, now):
                        window_end = (profile.usage.window_start or now) + RATE_WINDOW_SECONDS
                        wait = max(wait, window_end - now)
                    waits.append(wait)

        if not waits:
            return None
        earliest = min(waits)
        return earliest if earliest > 0 else None

    def in_flight(self, profile_id: str) -> int:
        return self._in_flight.get(profile_id, 0)

    def __len__(self) -> int:
        return len(self._profiles)
