import redis
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, CHAT_LOCK_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#compare-and-delete in one Lua call, nothing can run between GET and DEL
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived per-conversation locks in Redis.
    SET NX EX to take the lock, Lua compare-and-delete to drop it, the TTL
    frees locks of workers that died mid-turn.
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(user_id: int) -> str:
        return f"chat:{user_id}:lock"

    @redis_retry()
    def acquire_conversation_lock(self, user_id: int, token: str, ttl: int = CHAT_LOCK_TTL_SECONDS) -> bool:
        key = self._key(user_id)
        logger.info(f"Acquire lock {key}")
        #SET chat:1:lock "<token>" NX EX 120
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True,
                ex=ttl,
            )
        )

    @redis_retry()
    def release_conversation_lock(self, user_id: int, token: str) -> bool:
        key = self._key(user_id)
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
