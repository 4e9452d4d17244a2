from unittest.mock import AsyncMock, MagicMock

import fnmatch
import pytest

from shared.clients.cache.CacheClientManager import CacheClientManager
from shared.clients.cache.redis.CacheClientRedis import CacheClientRedis
from tests.conftest import COURSE_A, COURSE_B


@pytest.fixture(autouse=True)
def redis_env(monkeypatch):
    monkeypatch.setenv("CACHE_REDIS_BASE_URL", "redis://cache.test:6379/0")
    monkeypatch.delenv("CACHE_REDIS_KEY_PATTERNS", raising=False)
    monkeypatch.delenv("CACHE_REDIS_SCAN_COUNT", raising=False)


def fake_redis(keys: set[str]) -> AsyncMock:
    redis = AsyncMock()

    def scan_iter(match, count):
        async def iterate():
            for key in sorted(keys):
                if fnmatch.fnmatchcase(key, match):
                    yield key
        return iterate()

    async def unlink(*names):
        removed = [n for n in names if n in keys]
        keys.difference_update(removed)
        return len(removed)

    redis.scan_iter = MagicMock(side_effect=scan_iter)
    redis.unlink = AsyncMock(side_effect=unlink)
    redis.ping = AsyncMock(return_value=True)
    return redis


def test_manager_loads_configured_engine(helper_config, monkeypatch):
    monkeypatch.setenv("CACHE_ENGINE", "redis")
    assert isinstance(CacheClientManager(helper_config=helper_config).get_client(), CacheClientRedis)


def test_default_course_key_patterns(helper_config):
    client = CacheClientRedis(helper_config=helper_config)
    assert client.get_course_key_patterns(COURSE_A) == [
        f"rag_context:{COURSE_A}:*",
        f"course:{COURSE_A}:*",
        f"generation:lock:{COURSE_A}",
    ]


def test_key_patterns_are_configurable(helper_config, monkeypatch):
    monkeypatch.setenv("CACHE_REDIS_KEY_PATTERNS", "[summary:{course_id}:*]")
    client = CacheClientRedis(helper_config=helper_config)
    assert client.get_course_key_patterns(COURSE_A) == [f"summary:{COURSE_A}:*"]


async def test_delete_course_keys_scans_and_unlinks(helper_config):
    keys = {
        f"rag_context:{COURSE_A}:q1",
        f"rag_context:{COURSE_A}:q2",
        f"course:{COURSE_A}:progress",
        f"generation:lock:{COURSE_A}",
        f"course:{COURSE_B}:progress",
    }
    redis = fake_redis(keys)
    client = CacheClientRedis(helper_config=helper_config)
    await client.boot(redis=redis)

    assert await client.do_delete_course_keys(COURSE_A) == 4
    assert keys == {f"course:{COURSE_B}:progress"}
    redis.keys.assert_not_called()


async def test_unlink_is_batched_by_scan_count(helper_config, monkeypatch):
    monkeypatch.setenv("CACHE_REDIS_SCAN_COUNT", "2")
    keys = {f"rag_context:{COURSE_A}:{i}" for i in range(5)}
    redis = fake_redis(keys)
    client = CacheClientRedis(helper_config=helper_config)
    await client.boot(redis=redis)

    assert await client.do_delete_by_pattern(f"rag_context:{COURSE_A}:*") == 5
    assert [len(call.args) for call in redis.unlink.await_args_list] == [2, 2, 1]


async def test_healthcheck_and_close(helper_config):
    redis = fake_redis(set())
    client = CacheClientRedis(helper_config=helper_config)
    await client.boot(redis=redis)

    assert await client.do_healthcheck() is True
    await client.close()
    redis.aclose.assert_awaited_once()
    with pytest.raises(RuntimeError):
        await client.do_delete_by_pattern("*")
