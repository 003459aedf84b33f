"""
计数存储客户端模块：
- 封装“按键原子自增”这一能力，读改写完全在 Redis 内部完成（INCR）。
- 客户端在启动时创建一次，内部连接池在所有请求间复用，可并发安全地使用。
- 不做任何自动重试；传输层失败立即以 StoreError(Unavailable) 的形式返回给调用方。
"""

import logging
from typing import Protocol, Tuple
from urllib.parse import urlsplit

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..core.config import RedisSettings
from ..core.errors import ConfigError, StoreError, StoreErrorKind
from ..utils.sanitizer import sanitize_address

logger = logging.getLogger(__name__)

DEFAULT_REDIS_PORT = 6379


class CounterStore(Protocol):
    """计数存储需要提供的能力：对一个键做原子自增并返回新值。"""

    async def increment(self, key: str) -> int:
        ...

    async def close(self) -> None:
        ...


def split_address(address: str) -> Tuple[str, int]:
    """把 "host:port" 或 redis:// URL 拆分为 (host, port)，缺省端口为 6379。"""
    if "://" in address:
        parts = urlsplit(address)
        return parts.hostname or "localhost", parts.port or DEFAULT_REDIS_PORT
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, DEFAULT_REDIS_PORT
    try:
        return host.strip("[]") or "localhost", int(port)
    except ValueError:
        raise ConfigError(f"invalid redis address: {address!r}") from None


def create_redis_client(settings: RedisSettings) -> redis.Redis:
    """按配置创建 Redis 客户端（带连接池，禁用重试）。"""
    no_retry = Retry(NoBackoff(), 0)
    url = settings["url"]
    if "://" in url:
        return redis.Redis.from_url(
            url,
            password=settings["password"] or None,
            db=settings["db"],
            retry=no_retry,
        )
    host, port = split_address(url)
    return redis.Redis(
        host=host,
        port=port,
        password=settings["password"] or None,
        db=settings["db"],
        retry=no_retry,
    )


class RedisCounterStore:
    """基于 redis-py asyncio 客户端的 CounterStore 实现。"""

    def __init__(self, client: redis.Redis, address: str = ""):
        self.client = client
        self.address = address

    @classmethod
    def from_settings(cls, settings: RedisSettings) -> "RedisCounterStore":
        return cls(create_redis_client(settings), settings["url"])

    async def increment(self, key: str) -> int:
        try:
            return int(await self.client.incr(key))
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            logger.warning(f"[Store] Redis at {sanitize_address(self.address)} is unavailable: {e}")
            raise StoreError(StoreErrorKind.UNAVAILABLE, str(e) or "redis unavailable", cause=e) from e
        except RedisError as e:
            logger.warning(f"[Store] INCR {key} failed: {e}")
            raise StoreError(StoreErrorKind.OPERATION_FAILED, str(e), cause=e) from e

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("[Store] Redis connection pool closed.")
