from redis import asyncio as aioredis

from shared.helper.HelperConfig import HelperConfig
from shared.clients.cache.CacheClientInterface import CacheClientInterface
from shared.models.config import EnvConfig

DEFAULT_KEY_PATTERNS = [
    "rag_context:{course_id}:*",
    "course:{course_id}:*",
    "generation:lock:{course_id}",
]


class CacheClientRedis(CacheClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._key_patterns = self.get_config_val("KEY_PATTERNS", default=DEFAULT_KEY_PATTERNS, val_type="list")
        self._scan_count = int(self.get_config_val("SCAN_COUNT", default=500, val_type="number"))
        self._redis: aioredis.Redis | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Redis"

    def get_course_key_patterns(self, course_id: str) -> list[str]:
        return [pattern.format(course_id=course_id) for pattern in self._key_patterns]

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="KEY_PATTERNS", val_type="list", default=DEFAULT_KEY_PATTERNS),
            EnvConfig(env_key="SCAN_COUNT", val_type="number", default=500),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        # credentials travel in the redis:// URL
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self, redis: aioredis.Redis | None = None) -> None:
        """Open the Redis connection pool.

        Args:
            redis (aioredis.Redis | None): Optional pre-built client (used by tests).
        """
        self._redis = redis or aioredis.from_url(
            self._base_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.timeout,
        )

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _require_client(self) -> aioredis.Redis:
        if self._redis is None:
            raise RuntimeError("Redis client not initialised. Call boot() before making requests.")
        return self._redis

    async def do_healthcheck(self) -> bool:
        return bool(await self._require_client().ping())

    async def do_delete_by_pattern(self, pattern: str) -> int:
        redis = self._require_client()
        deleted = 0
        batch: list[str] = []
        async for key in redis.scan_iter(match=pattern, count=self._scan_count):
            batch.append(key)
            if len(batch) >= self._scan_count:
                deleted += await redis.unlink(*batch)
                batch = []
        if batch:
            deleted += await redis.unlink(*batch)
        self.logging.debug("Deleted %d Redis keys matching '%s'", deleted, pattern)
        return deleted
