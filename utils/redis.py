# redis.py
import logging
import redis
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()
REDIS_HOST = os.getenv('REDIS_HOST', '127.0.0.1')
REDIS_PORT = int(os.getenv('REDIS_PORT', '6379'))
REDIS_DB = int(os.getenv('REDIS_DB', '0'))
REDIS_PW = os.getenv('REDIS_PASS') or None

logger = logging.getLogger("bingo.redis")


## Singleton RedisClient class
class RedisClient:
    _instance: Optional['RedisClient'] = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, host: str = REDIS_HOST, port: int = REDIS_PORT, db: int = REDIS_DB):
        if not hasattr(self, 'client'):
            try:
                self.client = redis.Redis(host=host, port=port, db=db, password=REDIS_PW)
            except Exception as e:
                logger.error(f"Error connecting to Redis: {e}")
                self.client = None

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """Set a key with an expiry only if it does not exist. Returns True when the key was written."""
        if self.client is None:
            return False
        try:
            return bool(self.client.set(key, value, nx=True, ex=ttl))
        except redis.RedisError as e:
            logger.warning(f"Error setting key '{key}': {e}")
            return False

    def exists(self, key: str) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.exists(key))
        except redis.RedisError as e:
            logger.warning(f"Error checking existence of key '{key}': {e}")
            return False
