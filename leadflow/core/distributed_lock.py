"""
Distributed lock on Redis.

Keeps two runners (scheduler, cron, manual call) from executing the same
pass for the same channel at the same time.

Usage:
    async with DistributedLock("dispatch:email"):
        await run_pass()
"""
import asyncio
import logging
import uuid
from typing import Optional

from leadflow.services.redis import redis_client

logger = logging.getLogger(__name__)


class LockNotAcquiredError(Exception):
    """Raised when the lock is held by someone else."""
    pass


class DistributedLock:
    """
    Redis lock (SET NX + token checked release).

    Attributes:
        key: Locked resource name
        timeout: Lock TTL in seconds, so a crashed holder cannot block forever
        token: Unique token of this holder
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        timeout: int = 300,
        blocking: bool = False,
        blocking_timeout: int = 30,
    ):
        self.key = f"lock:{key}"
        self.timeout = timeout
        self.blocking = blocking
        self.blocking_timeout = blocking_timeout
        self.token = str(uuid.uuid4())
        self._acquired = False

    @property
    def acquired(self) -> bool:
        return self._acquired

    async def acquire(self) -> bool:
        """
        Try to take the lock.

        Returns:
            True if acquired
        """
        if not self.blocking:
            return await self._try_acquire()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.blocking_timeout
        while loop.time() < deadline:
            if await self._try_acquire():
                return True
            await asyncio.sleep(0.1)
        return False

    async def _try_acquire(self) -> bool:
        try:
            result = await redis_client.set(self.key, self.token, nx=True, ex=self.timeout)
            self._acquired = bool(result)
            if self._acquired:
                logger.debug(f"[DistributedLock] Acquired: {self.key}")
            return self._acquired
        except Exception as e:
            logger.error(f"[DistributedLock] Error acquiring {self.key}: {e}")
            return False

    async def release(self) -> bool:
        """
        Release the lock if this holder still owns it.

        Returns:
            True if released, False if it had expired or changed owner
        """
        if not self._acquired:
            return True

        try:
            result = await redis_client.eval(self.RELEASE_SCRIPT, 1, self.key, self.token)
            released = result == 1
            if not released:
                logger.warning(f"[DistributedLock] Lock expired before release: {self.key}")
            return released
        except Exception as e:
            logger.error(f"[DistributedLock] Error releasing {self.key}: {e}")
            return False
        finally:
            self._acquired = False

    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquiredError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()
        return False


def pass_lock(pass_name: str, channel: str, timeout: Optional[int] = None) -> DistributedLock:
    """Lock guarding one pass type for one channel."""
    return DistributedLock(f"leadflow:{pass_name}:{channel}", timeout=timeout or 300)
