"""Tests for the in-memory and Redis-backed sliding window rate limiters."""

from __future__ import annotations

import time

import fakeredis
import pytest

from app.config import Settings
from app.security.rate_limiter import InMemoryRateLimiter, RedisRateLimiter, build_rate_limiter


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def test_in_memory_limiter_counts_keys_independently():
    limiter = InMemoryRateLimiter(max_requests=2, window_seconds=60)
    assert limiter.allow("contactMail:1.2.3.4")
    assert limiter.allow("contactMail:1.2.3.4")
    assert not limiter.allow("contactMail:1.2.3.4")
    assert limiter.allow("contactMail:5.6.7.8")


def test_in_memory_limiter_expires_entries():
    limiter = InMemoryRateLimiter(max_requests=1, window_seconds=1)
    assert limiter.allow("createUser:client")
    assert not limiter.allow("createUser:client")
    time.sleep(1.1)
    assert limiter.allow("createUser:client")


def test_redis_limiter_blocks_excess(redis_client):
    limiter = RedisRateLimiter(redis_client, max_requests=2, window_seconds=1, key_prefix="test")
    key = "subscribeToNewsletter:client"
    assert limiter.allow(key)
    assert limiter.allow(key)
    assert not limiter.allow(key)
    # refused hits are not recorded
    assert redis_client.zcard(f"test:{key}") == 2


def test_redis_limiter_expires_entries(redis_client):
    limiter = RedisRateLimiter(redis_client, max_requests=1, window_seconds=1, key_prefix="test")
    key = "contactMail:client"
    assert limiter.allow(key)
    assert not limiter.allow(key)
    time.sleep(1.1)
    assert limiter.allow(key)


def test_build_rate_limiter_falls_back_to_memory_without_redis():
    limiter = build_rate_limiter(Settings(rate_limit_backend="redis", redis_url=""))
    assert isinstance(limiter, InMemoryRateLimiter)
