"""注册表与服务装配测试"""

import sys
from pathlib import Path

import pytest
import yaml

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from conftest import FakeTransport
from dispatch_core.config_models import RotationPolicy
from dispatch_core.exceptions import ConfigurationException
from dispatch_core.registry import ModelInfo, ModelRegistry, ProviderInfo
from dispatch_core.services import build_services
from dispatch_core.yaml_config import YAMLConfigLoader


class TestModelRegistry:
    """模型注册表"""

    def test_provider_prefixed_lookup(self):
        registry = ModelRegistry.default()
        assert registry.find_model("openai/gpt-4.1").provider == "openai"
        assert registry.find_model("nvidia/moonshotai/kimi-k2.5").provider == "nvidia"

    def test_slash_in_model_id(self):
        registry = ModelRegistry.default()
        assert registry.find_model("moonshotai/kimi-k2.5").provider == "nvidia"
        assert registry.find_model("anthropic/claude-sonnet-4.5").provider == "openrouter"

    def test_missing_model(self):
        registry = ModelRegistry.default()
        assert registry.find_model("") is None
        assert registry.find_model("openai/ghost") is None

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            ModelRegistry([ProviderInfo("a", "http://a")], [ModelInfo("m", "b")])


def _write_config(tmp_path, dispatch=None):
    path = tmp_path / "router_config.yaml"
    path.write_text(
        yaml.safe_dump({
            "store": {"path": str(tmp_path / "profiles.json"), "import_env_keys": True},
            "stats": {"enabled": False},
            "dispatch": dispatch or {},
        }),
        encoding="utf-8",
    )
    return path


class TestBuildServices:
    """服务装配与重载"""

    @pytest.mark.asyncio
    async def test_env_keys_imported(self, tmp_path):
        loader = YAMLConfigLoader(str(_write_config(tmp_path)), use_env=False)
        services = await build_services(
            loader, transport=FakeTransport(), environ={"OPENAI_API_KEY": "sk-env-openai-key"}
        )
        try:
            profiles = await services.store.list_profiles("openai")
            assert [p.label for p in profiles] == ["env"]
            assert services.stats is None
        finally:
            await services.close()

    @pytest.mark.asyncio
    async def test_reload_applies_dispatch_settings(self, tmp_path):
        path = _write_config(tmp_path)
        services = await build_services(
            YAMLConfigLoader(str(path), use_env=False), transport=FakeTransport(), environ={}
        )
        try:
            _write_config(tmp_path, {"rotation_policy": "one_per_route"})
            services.reload()
            assert services.dispatcher.settings.rotation_policy == RotationPolicy.ONE_PER_ROUTE
        finally:
            await services.close()

    @pytest.mark.asyncio
    async def test_rejected_reload_keeps_router_config(self, tmp_path):
        path = _write_config(tmp_path)
        services = await build_services(
            YAMLConfigLoader(str(path), use_env=False), transport=FakeTransport(), environ={}
        )
        try:
            previous = services.router.config
            path.write_text("routing:\n  tier_models:\n    SIMPLE: []\n", encoding="utf-8")
            with pytest.raises(ConfigurationException):
                services.reload()
            assert services.router.config is previous
        finally:
            await services.close()
