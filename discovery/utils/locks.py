# discovery/utils/locks.py
from __future__ import annotations
from typing import Optional
from redis.asyncio import Redis
import uuid, asyncio

# Delete the key only if we still own it (token match).
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

class RedisLock:
    """
    Simple, single-instance lock using SET NX EX.
    Serializes work on one key (e.g., a user/product favorite pair) across workers.
    """
    def __init__(self, redis: Redis, key: str, ttl: int = 10):
        self.redis = redis
        self.key = f"lock:{key}"
        self.ttl = ttl
        self._token: Optional[str] = None

    async def acquire(self) -> bool:
        token = uuid.uuid4().hex
        ok = await self.redis.set(self.key, token, nx=True, ex=self.ttl)
        if ok:
            self._token = token
            return True
        return False

    async def acquire_wait(self, timeout: float = 3) -> bool:
        """Try to acquire, polling every 50ms until `timeout` seconds have passed."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if await self.acquire():
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.05)

    async def release(self) -> None:
        if self._token is None:
            return
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
