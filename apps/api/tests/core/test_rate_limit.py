"""
Unit tests for the rate limiter (in-memory path).
"""

from unittest.mock import patch
from uuid import uuid4

import pytest

from scholarship_aid.core import rate_limit
from scholarship_aid.core.rate_limit import RateLimitExceeded, enforce_rate_limit


@pytest.fixture(autouse=True)
def no_redis():
    rate_limit._memory_store.clear()
    with patch("scholarship_aid.core.rate_limit.redis_module.redis_client", None):
        yield
    rate_limit._memory_store.clear()


class TestEnforceRateLimit:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        user_id = uuid4()
        for _ in range(3):
            await enforce_rate_limit("payments:bulk-process", user_id, 3, 60)

        with pytest.raises(RateLimitExceeded) as exc_info:
            await enforce_rate_limit("payments:bulk-process", user_id, 3, 60)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "60"

    @pytest.mark.asyncio
    async def test_limits_are_per_user_and_action(self):
        user_id = uuid4()
        await enforce_rate_limit("payments:process-approved", user_id, 1, 60)

        await enforce_rate_limit("payments:process-approved", uuid4(), 1, 60)
        await enforce_rate_limit("payments:from-applications", user_id, 1, 60)
