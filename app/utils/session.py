import redis.asyncio as redis
from typing import Optional, Dict, Union
import json
from datetime import timedelta
import logging
from app.core.config import Settings, settings
from app.core.session import MemorySessionStore

logger = logging.getLogger(__name__)

class RedisSessionStore:
    def __init__(self, redis_url: str, prefix: str, expire_hours: int):
        self.redis = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True
        )
        self.prefix = prefix
        self.expire_time = timedelta(hours=expire_hours)

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}session:{session_id}"

    async def create_session(self, session_id: str, data: Dict) -> None:
        try:
            await self.redis.setex(
                self._key(session_id),
                int(self.expire_time.total_seconds()),
                json.dumps(data)
            )
        except Exception as e:
            logger.error(f"Failed to create session: {str(e)}")
            raise

    async def get_session(self, session_id: str) -> Optional[Dict]:
        try:
            key = self._key(session_id)
            data = await self.redis.get(key)
            if data:
                # refresh expiry on every access
                await self.redis.expire(
                    key,
                    int(self.expire_time.total_seconds())
                )
                return json.loads(data)
            return None
        except Exception as e:
            logger.error(f"Failed to read session: {str(e)}")
            raise

    async def delete_session(self, session_id: str) -> None:
        try:
            await self.redis.delete(self._key(session_id))
        except Exception as e:
            logger.error(f"Failed to delete session: {str(e)}")
            raise

    async def cleanup(self) -> None:
        await self.redis.close()

SessionStore = Union[MemorySessionStore, RedisSessionStore]

def build_session_store(config: Settings) -> SessionStore:
    if config.SESSION_BACKEND == "redis":
        logger.info(f"Using redis session store at {config.REDIS_URL}")
        return RedisSessionStore(config.REDIS_URL, config.REDIS_PREFIX, config.SESSION_EXPIRE_HOURS)
    return MemorySessionStore(config.SESSION_EXPIRE_HOURS)

session_store: SessionStore = build_session_store(settings)
