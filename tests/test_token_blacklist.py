import time

import pytest
import redis

from salonhub import token_blacklist


class UnreachableRedis:
    def ping(self):
        raise redis.ConnectionError("Error 111 connecting to 127.0.0.1:1. Connection refused.")


@pytest.fixture
def unreachable_redis(monkeypatch):
    calls = []

    def from_url(url, **kwargs):
        calls.append(url)
        return UnreachableRedis()

    monkeypatch.setattr(token_blacklist, "REDIS_URL", "redis://127.0.0.1:1/0")
    monkeypatch.setattr(token_blacklist, "redis_client", None)
    monkeypatch.setattr(token_blacklist, "redis_retry_after", 0.0)
    monkeypatch.setattr(token_blacklist.redis, "from_url", from_url)
    return calls


def test_unreachable_redis_is_not_retried_per_request(unreachable_redis):
    for _ in range(3):
        assert token_blacklist.is_token_blacklisted("some-token") is False

    assert len(unreachable_redis) == 1


def test_logout_still_blacklists_in_memory_when_redis_is_down(unreachable_redis):
    token_blacklist.blacklist_token("logged-out", int(time.time()) + 300)

    assert token_blacklist.is_token_blacklisted("logged-out") is True
    assert len(unreachable_redis) == 1


def test_reconnects_after_retry_interval(unreachable_redis, monkeypatch):
    token_blacklist.is_token_blacklisted("some-token")
    monkeypatch.setattr(token_blacklist, "redis_retry_after", time.time() - 1)

    token_blacklist.is_token_blacklisted("some-token")

    assert len(unreachable_redis) == 2
