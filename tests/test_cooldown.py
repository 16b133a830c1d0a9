"""冷却策略与上游错误分类测试"""

import sys
from email.utils import format_datetime
from datetime import datetime, timezone
from pathlib import Path

import pytest

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dispatch_core.auth.cooldown import CooldownPolicy, FailureClassifier, FailureScope
from dispatch_core.exceptions import FailureReason

NOW = 1_750_000_000.0


class TestCooldownPolicy:
    """冷却策略测试"""

    def test_exponential_backoff_is_capped(self):
        policy = CooldownPolicy()
        assert policy.duration_for(FailureReason.SERVER_ERROR, 1) == 60
        assert policy.duration_for(FailureReason.SERVER_ERROR, 3) == 240
        assert policy.duration_for(FailureReason.SERVER_ERROR, 50) == policy.max_cooldown_seconds

    def test_retry_after_is_capped(self):
        policy = CooldownPolicy(max_cooldown_seconds=100)
        assert policy.duration_for(FailureReason.RATE_LIMIT, 1, retry_after=30) == 30
        assert policy.duration_for(FailureReason.RATE_LIMIT, 1, retry_after=5000) == 100

    def test_partial_base_table_falls_back_to_defaults(self):
        policy = CooldownPolicy.model_validate({"base_seconds": {"auth": 10}})
        assert policy.base_for(FailureReason.AUTH) == 10
        assert policy.base_for(FailureReason.TIMEOUT) == 30

    def test_scope(self):
        policy = CooldownPolicy()
        assert policy.scope_for(FailureReason.RATE_LIMIT, "gpt-4.1") == FailureScope.MODEL
        assert policy.scope_for(FailureReason.RATE_LIMIT, None) == FailureScope.PROVIDER
        assert policy.scope_for(FailureReason.AUTH, "gpt-4.1") == FailureScope.PROVIDER


class TestFailureClassifier:
    """上游错误分类测试"""

    @pytest.mark.parametrize(
        "status, reason, retryable",
        [
            (401, FailureReason.AUTH, False),
            (403, FailureReason.AUTH, False),
            (402, FailureReason.BILLING, False),
            (404, FailureReason.MODEL_NOT_FOUND, False),
            (429, FailureReason.RATE_LIMIT, False),
            (400, FailureReason.FORMAT, False),
            (500, FailureReason.SERVER_ERROR, True),
            (503, FailureReason.SERVER_ERROR, True),
            (504, FailureReason.TIMEOUT, True),
            (418, FailureReason.UNKNOWN, False),
        ],
    )
    def test_status_codes(self, status, reason, retryable):
        got_reason, got_retryable, _ = FailureClassifier.classify_http(status, now=NOW)
        assert got_reason == reason
        assert got_retryable is retryable

    def test_body_marker_refines_bad_request(self):
        reason, _, _ = FailureClassifier.classify_http(
            400, '{"error": {"code": "model_not_found"}}', now=NOW
        )
        assert reason == FailureReason.MODEL_NOT_FOUND

    def test_billing_marker_in_body(self):
        reason, retryable, _ = FailureClassifier.classify_http(
            400, '{"error": {"code": "insufficient_quota"}}', now=NOW
        )
        assert reason == FailureReason.BILLING
        assert retryable is False

    def test_retry_after_seconds_header(self):
        reason, _, wait = FailureClassifier.classify_http(429, "", {"Retry-After": "12"}, now=NOW)
        assert reason == FailureReason.RATE_LIMIT
        assert wait == 12

    def test_retry_after_http_date(self):
        when = datetime.fromtimestamp(NOW + 90, tz=timezone.utc)
        _, _, wait = FailureClassifier.classify_http(
            429, "", {"retry-after": format_datetime(when, usegmt=True)}, now=NOW
        )
        assert wait == pytest.approx(90, abs=1)

    def test_epoch_reset_header(self):
        _, _, wait = FailureClassifier.classify_http(
            429, "", {"x-ratelimit-reset": str(int(NOW + 45))}, now=NOW
        )
        assert wait == pytest.approx(45)

    def test_relative_reset_header(self):
        _, _, wait = FailureClassifier.classify_http(
            429, "", {"x-ratelimit-reset-requests": "7s"}, now=NOW
        )
        assert wait == 7

    def test_wait_parsed_from_message(self):
        reason, _, wait = FailureClassifier.classify_http(
            429, "Rate limit reached. Please retry after 30 seconds.", now=NOW
        )
        assert reason == FailureReason.RATE_LIMIT
        assert wait == 30
