import pytest

from mdrip_gateway.core.ratelimit import gate


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Every test starts with empty rate-limit windows and the configured budgets"""
    original = {scope: limiter.max_requests for scope, limiter in gate.limiters.items()}
    gate.reset()

    yield

    for scope, limiter in gate.limiters.items():
        limiter.max_requests = original[scope]
    gate.reset()


@pytest.fixture
def limit_scope():
    """Shrink the budget of one scope: limit_scope("api", 2)"""
    def _limit(scope: str, max_requests: int):
        gate.limiters[scope].max_requests = max_requests
    return _limit
