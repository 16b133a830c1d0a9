"""
Pydantic models for configuration validation.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .auth.cooldown import CooldownPolicy


class ModelConfig(BaseModel):
    id: str
    context_length: Optional[int] = None
    display_name: Optional[str] = None


class ProviderConfig(BaseModel):
    base_url: str
    env_key: Optional[str] = None
    requests_per_minute: Optional[int] = None
    extra_headers: dict[str, str] = Field(default_factory=dict)
    models: list[ModelConfig] = Field(default_factory=list)


class RouteConfig(BaseModel):
    model_config = {"protected_namespaces": ()}

    model: str
    provider: str


class TierBoundaryConfig(BaseModel):
    min: float
    max: Optional[float] = None  # None 表示无上界


class DimensionConfig(BaseModel):
    id: str
    kind: str = "keywords"  # keywords, patterns, length, turns
    keywords: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    thresholds: list[int] = Field(default_factory=list)
    max_score: Optional[float] = None
    weight: Optional[float] = None


class RoutingSection(BaseModel):
    """未填写的项使用内置默认值"""

    tier_boundaries: dict[str, TierBoundaryConfig] = Field(default_factory=dict)
    tier_models: dict[str, list[RouteConfig]] = Field(default_factory=dict)
    weights: dict[str, float] = Field(default_factory=dict)
    fallback_order: Optional[list[str]] = None
    cross_tier_fallback: bool = True
    dimensions: Optional[list[DimensionConfig]] = None
    confidence_margin_scale: float = 2.0


class RotationPolicy(str, Enum):
    EXHAUST_THEN_ADVANCE = "exhaust_then_advance"  # 用尽当前路由的所有档案再前进
    ONE_PER_ROUTE = "one_per_route"  # 每条路由每轮只试一个档案，轮询回来


class DispatchSettings(BaseModel):
    attempt_timeout_seconds: float = 60.0
    max_retries_per_profile: int = 1
    retry_backoff_seconds: float = 0.5
    rotation_policy: RotationPolicy = RotationPolicy.EXHAUST_THEN_ADVANCE


class StoreSettings(BaseModel):
    path: str = "data/auth_profiles.json"
    import_env_keys: bool = True


class StatsSettings(BaseModel):
    enabled: bool = True
    database_url: str = "sqlite+aiosqlite:///./data/smart_dispatch.db"
    recent_limit: int = 100


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "text"  # text or json
    log_file: Optional[str] = "logs/smart-dispatch-router.log"
    max_file_size: int = 50 * 1024 * 1024
    backup_count: int = 5


class Server(BaseModel):
    host: str = "0.0.0.0"
    port: int = 7601
    debug: bool = False
    cors_origins: list[str] = ["*"]


class AdminAuth(BaseModel):
    """管理API独立认证配置"""

    enabled: bool = True
    admin_token: Optional[str] = None


class Auth(BaseModel):
    admin: AdminAuth = Field(default_factory=AdminAuth)


class System(BaseModel):
    name: str = "Smart Dispatch Router"
    version: str = "0.1.0"


class Config(BaseModel):
    system: System = Field(default_factory=System)
    server: Server = Field(default_factory=Server)
    auth: Auth = Field(default_factory=Auth)
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    routing: RoutingSection = Field(default_factory=RoutingSection)
    cooldown: CooldownPolicy = Field(default_factory=CooldownPolicy)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    stats: StatsSettings = Field(default_factory=StatsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
