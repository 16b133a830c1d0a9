"""
认证档案数据模型
一个认证档案 = 一个提供商的一份凭证 + 使用统计/冷却状态
"""

import hashlib
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..exceptions.error_codes import FailureReason

FINGERPRINT_LENGTH = 12


def mask_secret(secret: str) -> str:
    """脱敏显示密钥"""
    if not secret:
        return ""
    if len(secret) <= 10:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"


class ApiKeyCredential(BaseModel):
    type: Literal["api_key"] = "api_key"
    key: str

    def secret_material(self) -> str:
        return self.key

    def bearer_token(self) -> str:
        return self.key

    def masked(self) -> dict[str, Any]:
        return {"type": self.type, "key": mask_secret(self.key)}


class OAuthCredential(BaseModel):
    """OAuth 令牌；登录流程不在本项目范围内，这里只保存结果"""

    type: Literal["oauth"] = "oauth"
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None
    account_id: Optional[str] = None

    def secret_material(self) -> str:
        # access_token 会刷新，优先使用稳定的账号标识
        return self.account_id or self.refresh_token or self.access_token

    def bearer_token(self) -> str:
        return self.access_token

    def masked(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "access_token": mask_secret(self.access_token),
            "account_id": self.account_id,
            "expires_at": self.expires_at,
        }


class TokenCredential(BaseModel):
    type: Literal["token"] = "token"
    token: str

    def secret_material(self) -> str:
        return self.token

    def bearer_token(self) -> str:
        return self.token

    def masked(self) -> dict[str, Any]:
        return {"type": self.type, "token": mask_secret(self.token)}


Credential = Annotated[
    Union[ApiKeyCredential, OAuthCredential, TokenCredential],
    Field(discriminator="type"),
]


def credential_fingerprint(credential: Union[ApiKeyCredential, OAuthCredential, TokenCredential]) -> str:
    digest = hashlib.sha256(credential.secret_material().encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def build_profile_id(
    provider: str, credential: Union[ApiKeyCredential, OAuthCredential, TokenCredential]
) -> str:
    """同一凭证总是得到同一个 ID：'<provider>:<fingerprint>'"""
    return f"{provider}:{credential_fingerprint(credential)}"


class ProfileState(str, Enum):
    ACTIVE = "ACTIVE"
    COOLDOWN = "COOLDOWN"


class UsageStats(BaseModel):
    """使用统计与冷却状态，时间均为 epoch 秒"""

    state: ProfileState = ProfileState.ACTIVE
    cooldown_until: Optional[float] = None
    failure_reason: Optional[FailureReason] = None
    error_count: int = 0
    model_cooldowns: dict[str, float] = Field(default_factory=dict)
    last_used: Optional[float] = None
    request_count: int = 0
    last_failure_at: Optional[float] = None
    # 每分钟请求窗口
    window_start: Optional[float] = None
    window_count: int = 0

    def refresh(self, now: float) -> bool:
        """
        惰性过期：清理已过期的冷却并重新计算状态

        Returns:
            状态是否发生变化
        """
        changed = False

        expired = [model for model, until in self.model_cooldowns.items() if until <= now]
        for model in expired:
            del self.model_cooldowns[model]
            changed = True

        if self.cooldown_until is not None and self.cooldown_until <= now:
            self.cooldown_until = None
            self.failure_reason = None
            changed = True

        state = ProfileState.COOLDOWN if self.has_live_cooldown(now) else ProfileState.ACTIVE
        if state != self.state:
            self.state = state
            changed = True

        return changed

    def has_live_cooldown(self, now: float) -> bool:
        if self.is_provider_cooling(now):
            return True
        return any(until > now for until in self.model_cooldowns.values())

    def is_provider_cooling(self, now: float) -> bool:
        return self.cooldown_until is not None and self.cooldown_until > now

    def is_model_cooling(self, model: Optional[str], now: float) -> bool:
        if not model:
            return False
        until = self.model_cooldowns.get(model)
        return until is not None and until > now

    def seconds_until_usable(self, model: Optional[str], now: float) -> float:
        """对指定模型恢复可用还需要的秒数，0 表示现在可用"""
        remaining = 0.0
        if self.cooldown_until is not None:
            remaining = max(remaining, self.cooldown_until - now)
        if model and model in self.model_cooldowns:
            remaining = max(remaining, self.model_cooldowns[model] - now)
        return max(0.0, remaining)

    def is_flagged(self) -> bool:
        """是否带有任何冷却或错误标记"""
        return (
            self.state != ProfileState.ACTIVE
            or self.cooldown_until is not None
            or self.failure_reason is not None
            or self.error_count > 0
            or bool(self.model_cooldowns)
        )

    def clear(self) -> None:
        self.state = ProfileState.ACTIVE
        self.cooldown_until = None
        self.failure_reason = None
        self.error_count = 0
        self.model_cooldowns = {}


class Profile(BaseModel):
    """认证档案"""

    id: str
    provider: str
    credential: Credential
    label: Optional[str] = None
    created_at: Optional[float] = None
    usage: UsageStats = Field(default_factory=UsageStats)

    def to_public_dict(self) -> dict[str, Any]:
        """不含明文凭证的视图，供管理接口使用"""
        return {
            "id": self.id,
            "provider": self.provider,
            "label": self.label,
            "created_at": self.created_at,
            "credential": self.credential.masked(),
            "usage": self.usage.model_dump(mode="json"),
        }


__all__ = [
    "ApiKeyCredential",
    "Credential",
    "FailureReason",
    "OAuthCredential",
    "Profile",
    "ProfileState",
    "TokenCredential",
    "UsageStats",
    "build_profile_id",
    "credential_fingerprint",
    "mask_secret",
]
