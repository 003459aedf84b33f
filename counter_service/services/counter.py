"""
计数处理服务模块：
- 串联 参数校验 -> 键派生 -> 原子自增 三个步骤。
- 校验失败时不触碰存储；每个通过校验的请求恰好发起一次自增。
- 本身不持有任何跨请求的可变状态，可被并发请求安全共享。
"""

import logging
from typing import Optional, Union

from prometheus_client import CollectorRegistry, Counter

from ..core.errors import StoreError, ValidationError
from ..core.keys import KeyNamer
from ..core.validation import validate
from .store import CounterStore

logger = logging.getLogger(__name__)


def build_increment_counter(registry: CollectorRegistry) -> Counter:
    return Counter(
        name="counter_increments_total",
        documentation="Counter requests by outcome.",
        labelnames=["outcome"],
        registry=registry,
    )


class CounterService:

    def __init__(self, key_namer: KeyNamer, store: CounterStore, increments: Optional[Counter] = None):
        self.key_namer = key_namer
        self.store = store
        self.increments = increments

    def _observe(self, outcome: str):
        if self.increments is not None:
            self.increments.labels(outcome=outcome).inc()

    async def handle(self, *raw_sources: Union[str, bytes]) -> int:
        """
        处理一次计数请求，返回自增后的新值。

        Raises:
            ValidationError: 参数无法解析或标签不合法（此时不会访问存储）。
            StoreError: 存储不可达或自增失败。
        """
        try:
            request = validate(*raw_sources)
        except ValidationError:
            self._observe("invalid")
            raise

        key = self.key_namer.derive_key(request.label)
        try:
            value = await self.store.increment(key)
        except StoreError:
            self._observe("store_error")
            raise

        self._observe("ok")
        logger.debug(f"Incremented {key} to {value}")
        return value
