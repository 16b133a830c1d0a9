"""配置系统测试"""
import sys
from pathlib import Path

import pytest
import yaml

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dispatch_core.config_models import RotationPolicy
from dispatch_core.exceptions import ConfigurationException, ErrorCode
from dispatch_core.routing import RoutingRequest, Tier, TierRouter, get_default_config
from dispatch_core.yaml_config import YAMLConfigLoader


def _write(tmp_path, data):
    path = tmp_path / "router_config.yaml"
    if isinstance(data, str):
        path.write_text(data, encoding="utf-8")
    else:
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return str(path)


def _load(tmp_path, data):
    return YAMLConfigLoader(_write(tmp_path, data), use_env=False)


class TestYAMLConfigLoader:
    """YAML 配置加载测试"""

    def test_missing_file_uses_defaults(self, tmp_path):
        loader = YAMLConfigLoader(str(tmp_path / "absent.yaml"), use_env=False)
        defaults = get_default_config()
        assert loader.routing_config.tier_boundaries == defaults.tier_boundaries
        assert loader.routing_config.tier_models == defaults.tier_models
        assert loader.config.dispatch.rotation_policy == RotationPolicy.EXHAUST_THEN_ADVANCE

    def test_shipped_example_config_is_valid(self):
        loader = YAMLConfigLoader(str(project_root / "config" / "router_config.yaml"), use_env=False)
        assert loader.routing_config.tier_models[Tier.REASONING][0].model == "o3"
        assert loader.get_requests_per_minute()["nvidia"] == 40

    def test_routing_overrides(self, tmp_path):
        loader = _load(tmp_path, {
            "routing": {
                "tier_boundaries": {
                    "SIMPLE": {"min": 0, "max": 30},
                    "MEDIUM": {"min": 30, "max": 70},
                    "COMPLEX": {"min": 70, "max": 100},
                    "REASONING": {"min": 100},
                },
                "tier_models": {"SIMPLE": [{"model": "gpt-4.1-mini", "provider": "openai"}]},
                "weights": {"conversation": 2.0},
                "cross_tier_fallback": False,
            },
            "dispatch": {"rotation_policy": "one_per_route"},
        })
        routing = loader.routing_config
        assert routing.tier_boundaries[Tier.COMPLEX].max == 100
        assert routing.tier_boundaries[Tier.REASONING].max == float("inf")
        assert routing.tier_models[Tier.SIMPLE][0].provider == "openai"
        assert routing.tier_models[Tier.MEDIUM] == get_default_config().tier_models[Tier.MEDIUM]
        assert routing.weight_for("conversation") == 2.0
        assert routing.cross_tier_fallback is False
        assert loader.config.dispatch.rotation_policy == RotationPolicy.ONE_PER_ROUTE

    def test_custom_dimension_drives_routing(self, tmp_path):
        loader = _load(tmp_path, {
            "routing": {
                "dimensions": [
                    {"id": "legal", "kind": "keywords", "keywords": ["contract", "liability"], "weight": 5},
                ],
            },
        })
        router = TierRouter(loader.routing_config, loader.registry)
        decision = router.route(RoutingRequest(prompt="review this contract for liability"))
        assert decision.scoring.total_score == pytest.approx(10.0)
        assert decision.scoring.tier == Tier.COMPLEX

    def test_custom_provider(self, tmp_path):
        loader = _load(tmp_path, {
            "providers": {
                "local": {
                    "base_url": "http://localhost:8000/v1",
                    "env_key": "LOCAL_API_KEY",
                    "models": [{"id": "qwen-7b"}],
                },
            },
            "routing": {"tier_models": {"SIMPLE": [{"model": "qwen-7b", "provider": "local"}]}},
        })
        assert loader.registry.get_provider("local").base_url == "http://localhost:8000/v1"
        assert loader.routing_config.tier_models[Tier.SIMPLE][0].provider == "local"

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationException) as exc_info:
            _load(tmp_path, "routing: [unclosed")
        assert exc_info.value.error_code == ErrorCode.CONFIG_PARSE_ERROR

    def test_boundary_gap_is_fatal(self, tmp_path):
        with pytest.raises(ConfigurationException) as exc_info:
            _load(tmp_path, {
                "routing": {
                    "tier_boundaries": {
                        "SIMPLE": {"min": 0, "max": 3},
                        "MEDIUM": {"min": 4, "max": 8},
                        "COMPLEX": {"min": 8, "max": 15},
                        "REASONING": {"min": 15},
                    },
                },
            })
        assert exc_info.value.error_code == ErrorCode.TIER_BOUNDARIES_INVALID

    def test_unknown_model_is_fatal(self, tmp_path):
        with pytest.raises(ConfigurationException) as exc_info:
            _load(tmp_path, {
                "routing": {"tier_models": {"SIMPLE": [{"model": "ghost", "provider": "openai"}]}},
            })
        assert exc_info.value.error_code == ErrorCode.UNKNOWN_CONFIG_IDENTIFIER

    def test_unknown_tier_name_is_fatal(self, tmp_path):
        with pytest.raises(ConfigurationException) as exc_info:
            _load(tmp_path, {
                "routing": {"tier_models": {"TRIVIAL": [{"model": "o3", "provider": "openai"}]}},
            })
        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_schema_violation_is_fatal(self, tmp_path):
        with pytest.raises(ConfigurationException) as exc_info:
            _load(tmp_path, {"dispatch": {"max_retries_per_profile": "many"}})
        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_invalid_pattern_is_fatal(self, tmp_path):
        with pytest.raises(ConfigurationException) as exc_info:
            _load(tmp_path, {
                "routing": {"dimensions": [{"id": "ids", "kind": "patterns", "patterns": ["[a-z"]}]},
            })
        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ADMIN_TOKEN", "from-env")
        monkeypatch.setenv("SMART_ROUTER_AUTH_STORE", str(tmp_path / "profiles.json"))
        loader = YAMLConfigLoader(_write(tmp_path, {"auth": {"admin": {"enabled": True}}}))
        assert loader.config.auth.admin.admin_token == "from-env"
        assert loader.config.store.path == str(tmp_path / "profiles.json")

    def test_failed_reload_keeps_previous_config(self, tmp_path):
        path = _write(tmp_path, {"dispatch": {"max_retries_per_profile": 3}})
        loader = YAMLConfigLoader(path, use_env=False)
        previous = loader.routing_config

        Path(path).write_text("routing:\n  tier_models:\n    SIMPLE: []\n", encoding="utf-8")
        with pytest.raises(ConfigurationException):
            loader.reload()

        assert loader.routing_config is previous
        assert loader.config.dispatch.max_retries_per_profile == 3


class TestErrorCodes:
    """错误码表"""

    def test_every_code_has_message(self):
        from dispatch_core.exceptions import get_error_message

        for code in ErrorCode:
            assert get_error_message(code, default="") != ""

    def test_codes_are_unique(self):
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))
