"""
健康检查服务模块：
- HealthRegistry 维护存活（liveness）与就绪（readiness）两组检查，
  并把每次检查结果写入 Prometheus 指标 counter_healthcheck_status。
- AsyncCheck 在后台按固定间隔执行耗时的检查（例如 TCP 拨号），
  请求到来时只读取缓存的上一次结果，不会阻塞请求处理。
- 内置检查：HTTP 主服务状态检查、Redis TCP 可达性检查。
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from prometheus_client import CollectorRegistry, Gauge

from ..core.types import HealthCheck, SERVICE_NAME
from .state_tracker import StatusTracker
from .store import split_address

logger = logging.getLogger(__name__)

HEALTHY = "OK"
NO_RESULT_YET = "no result yet"


class HealthCheckFailed(Exception):
    """健康检查未通过，异常信息即原因。"""


class AsyncCheck:
    """
    把一个检查函数包装为后台异步执行的检查。

    后台任务启动后立即执行一次，之后每隔 interval 秒执行一次；
    被调用时只报告最近一次的结果。在第一次结果产生之前报告 "no result yet"。
    """

    def __init__(self, check: HealthCheck, interval: float, name: str = "async"):
        self._check = check
        self.interval = interval
        self.name = name
        self._last_error: Optional[str] = NO_RESULT_YET
        self._task: Optional[asyncio.Task] = None

    async def __call__(self):
        error = self._last_error
        if error is not None:
            raise HealthCheckFailed(error)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    async def run_once(self):
        """执行一次被包装的检查并缓存结果。"""
        try:
            await self._check()
            error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or e.__class__.__name__

        if error != self._last_error:
            if error is None:
                logger.info(f"[Health] Check '{self.name}' is now healthy.")
            else:
                logger.warning(f"[Health] Check '{self.name}' failing: {error}")
        self._last_error = error

    async def _loop(self):
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    def start(self):
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"[Health] Background check '{self.name}' started. Interval: {self.interval}s")

    async def stop(self):
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info(f"[Health] Background check '{self.name}' stopped.")


def http_status_check(tracker: StatusTracker) -> HealthCheck:
    """主 HTTP 服务处于 running 状态时才算就绪。"""
    async def check():
        if not tracker.is_running():
            raise HealthCheckFailed(f"HTTP server is {tracker.status}")
    return check


def tcp_dial_check(address: str, timeout: float) -> HealthCheck:
    """在 timeout 秒内能与 address 建立 TCP 连接才算健康。"""
    host, port = split_address(address)

    async def check():
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except asyncio.TimeoutError:
            raise HealthCheckFailed(f"dial tcp {host}:{port}: timed out after {timeout}s") from None
        except OSError as e:
            raise HealthCheckFailed(f"dial tcp {host}:{port}: {e}") from e
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
    return check


class HealthRegistry:
    """存活 / 就绪检查的注册表，并将结果导出为 Prometheus 指标。"""

    def __init__(self, registry: CollectorRegistry, namespace: str = SERVICE_NAME):
        self._liveness: Dict[str, HealthCheck] = {}
        self._readiness: Dict[str, HealthCheck] = {}
        self._status_gauge = Gauge(
            name="status",
            documentation="Current check status (0 indicates success, 1 indicates failure)",
            labelnames=["check"],
            namespace=namespace,
            subsystem="healthcheck",
            registry=registry,
        )

    def add_liveness_check(self, name: str, check: HealthCheck):
        self._liveness[name] = check

    def add_readiness_check(self, name: str, check: HealthCheck):
        self._readiness[name] = check

    async def _run_check(self, name: str, check: HealthCheck) -> str:
        try:
            await check()
            result = HEALTHY
        except Exception as e:
            result = str(e) or e.__class__.__name__
        self._status_gauge.labels(check=name).set(0 if result == HEALTHY else 1)
        return result

    async def _evaluate(self, checks: Dict[str, HealthCheck]) -> Tuple[bool, Dict[str, str]]:
        names = list(checks)
        results = await asyncio.gather(*(self._run_check(name, checks[name]) for name in names))
        report = dict(zip(names, results))
        return all(r == HEALTHY for r in results), report

    async def live(self) -> Tuple[bool, Dict[str, str]]:
        """只执行存活检查；没有注册任何检查时视为存活。"""
        return await self._evaluate(self._liveness)

    async def ready(self) -> Tuple[bool, Dict[str, str]]:
        """就绪检查同时包含存活检查。"""
        return await self._evaluate({**self._liveness, **self._readiness})
