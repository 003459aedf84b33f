"""
生命周期协调模块：
- build_services：按配置显式构造所有服务实例（存储客户端、指标注册表、健康检查等）。
- LifecycleCoordinator：负责启动顺序与优雅关闭。

启动顺序：管理服务（尽力而为，失败只记录日志）-> 后台 Redis 可达性检查 ->
绑定主监听端口 -> 开始服务 -> 状态切换为 running。

关闭顺序：收到 SIGINT/SIGTERM -> 状态切换为 shutting down（就绪检查立即失败）->
主服务停止接受新连接，在宽限期内等待在途请求完成，超时后强制关闭剩余连接 ->
停止管理服务与后台任务，关闭 Redis 连接池。关闭流程自身出错视为致命错误。
"""

import asyncio
import contextlib
import logging
import signal
import socket
from dataclasses import dataclass
from typing import Optional

import uvicorn
from prometheus_client import CollectorRegistry, PlatformCollector, ProcessCollector

from ..app import create_admin_app, create_app
from ..core.config import SettingsDict
from ..core.errors import FatalShutdownError, FatalStartupError
from ..core.keys import KeyNamer
from ..core.types import AboutInfo, ServerStatus, SERVICE_NAME
from .counter import CounterService, build_increment_counter
from .health_checker import AsyncCheck, HealthRegistry, http_status_check, tcp_dial_check
from .state_tracker import StatusTracker, SystemStateTracker
from .store import CounterStore, RedisCounterStore

logger = logging.getLogger(__name__)

STARTUP_POLL_INTERVAL_SEC = 0.05
# 宽限期结束后 uvicorn 会取消剩余连接任务，这里再多等一小段时间让取消生效
FORCE_CLOSE_MARGIN_SEC = 5.0
ADMIN_STOP_TIMEOUT_SEC = 5.0
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class ServiceContainer:
    """进程内所有共享服务实例的集合，由 build_services 在启动时创建一次。"""
    settings: SettingsDict
    status_tracker: StatusTracker
    system_tracker: SystemStateTracker
    metrics_registry: CollectorRegistry
    health_registry: HealthRegistry
    redis_check: AsyncCheck
    store: CounterStore
    counter_service: CounterService
    about_info: AboutInfo


def build_services(settings: SettingsDict, store: Optional[CounterStore] = None) -> ServiceContainer:
    """
    按配置构造所有服务。

    Args:
        settings: 已加载的配置。
        store: (可选) 计数存储实现；默认按配置创建 Redis 客户端。
    """
    redis_settings = settings["redis"]

    metrics_registry = CollectorRegistry()
    ProcessCollector(registry=metrics_registry)
    PlatformCollector(registry=metrics_registry)

    if store is None:
        store = RedisCounterStore.from_settings(redis_settings)

    status_tracker = StatusTracker()
    health_registry = HealthRegistry(metrics_registry)
    health_registry.add_readiness_check("http", http_status_check(status_tracker))
    redis_check = AsyncCheck(
        tcp_dial_check(redis_settings["url"], redis_settings["healthy_connect_timeout"]),
        redis_settings["health_check_interval"],
        name="redis",
    )
    health_registry.add_readiness_check("redis", redis_check)

    counter_service = CounterService(
        KeyNamer(redis_settings["prefix"]),
        store,
        build_increment_counter(metrics_registry),
    )

    return ServiceContainer(
        settings=settings,
        status_tracker=status_tracker,
        system_tracker=SystemStateTracker(),
        metrics_registry=metrics_registry,
        health_registry=health_registry,
        redis_check=redis_check,
        store=store,
        counter_service=counter_service,
        about_info=AboutInfo(name=SERVICE_NAME, version=settings["version"], hostname=socket.gethostname()),
    )


def bind_socket(host: str, port: int) -> socket.socket:
    """绑定 TCP 端口并返回套接字；失败时抛出 FatalStartupError。"""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise FatalStartupError(f"failed to bind {host}:{port}: {e}") from e
    sock.set_inheritable(True)
    return sock


class _ManagedServer(uvicorn.Server):
    """信号由 LifecycleCoordinator 统一处理，uvicorn 自身不再安装信号处理器。"""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class LifecycleCoordinator:
    """负责启动顺序与优雅关闭；是 ServerStatus 的唯一写入者。"""

    def __init__(self, services: ServiceContainer, install_signal_handlers: bool = True):
        self.services = services
        self.settings = services.settings
        self.install_signal_handlers = install_signal_handlers

        self.primary_server: Optional[_ManagedServer] = None
        self.admin_server: Optional[_ManagedServer] = None
        self.primary_port: Optional[int] = None
        self.admin_port: Optional[int] = None

        self._primary_task: Optional[asyncio.Task] = None
        self._admin_task: Optional[asyncio.Task] = None
        self._stop_requested = asyncio.Event()
        self._signals_installed = False
        self._released = False

    @property
    def status(self) -> ServerStatus:
        return self.services.status_tracker.status

    # ---------- 信号 ----------

    def request_shutdown(self):
        """请求优雅关闭（信号处理器与测试都通过它触发）。"""
        if not self._stop_requested.is_set():
            logger.info("Shutdown requested.")
            self._stop_requested.set()

    def _install_signals(self):
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Windows 事件循环不支持 add_signal_handler
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.request_shutdown))
        self._signals_installed = True

    def _remove_signals(self):
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._signals_installed = False

    # ---------- 启动 ----------

    def _make_server(self, app) -> _ManagedServer:
        config = uvicorn.Config(
            app,
            log_config=None,
            lifespan="off",
            timeout_graceful_shutdown=self.settings["graceful_shutdown_timeout"],
        )
        return _ManagedServer(config)

    async def _serve_admin(self, sock: socket.socket):
        try:
            await self.admin_server.serve(sockets=[sock])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Admin server stopped with error: {e}", exc_info=True)

    async def _start_admin(self):
        """启动管理服务；任何失败都只记录日志，不阻塞主服务。"""
        host = self.settings["server"]["host"]
        port = self.settings["server"]["admin_port"]
        try:
            sock = bind_socket(host, port)
        except FatalStartupError as e:
            logger.error(f"Admin server unavailable: {e}")
            return

        self.admin_port = sock.getsockname()[1]
        s = self.services
        self.admin_server = self._make_server(create_admin_app(s.health_registry, s.metrics_registry, s.about_info))
        logger.info(f"Starting admin server on {host}:{self.admin_port}")
        self._admin_task = asyncio.create_task(self._serve_admin(sock))

    async def _wait_started(self, server: _ManagedServer, task: asyncio.Task):
        while not server.started:
            if task.done():
                error = None if task.cancelled() else task.exception()
                raise FatalStartupError(f"HTTP server failed to start: {error or 'stopped before startup'}")
            await asyncio.sleep(STARTUP_POLL_INTERVAL_SEC)

    async def start(self):
        """执行启动序列，完成后状态为 running。"""
        s = self.services
        if self.install_signal_handlers:
            self._install_signals()

        await self._start_admin()
        s.redis_check.start()

        host = self.settings["server"]["host"]
        sock = bind_socket(host, self.settings["server"]["port"])
        self.primary_port = sock.getsockname()[1]

        logger.info(f"Starting HTTP on {host}:{self.primary_port}")
        self.primary_server = self._make_server(create_app(s.counter_service, s.system_tracker))
        self._primary_task = asyncio.create_task(self.primary_server.serve(sockets=[sock]))
        await self._wait_started(self.primary_server, self._primary_task)

        s.status_tracker.advance(ServerStatus.RUNNING)
        logger.info("Ready to serve requests")

    # ---------- 关闭 ----------

    async def _stop_admin(self):
        if self.admin_server is None or self._admin_task is None:
            return
        self.admin_server.should_exit = True
        try:
            await asyncio.wait_for(self._admin_task, ADMIN_STOP_TIMEOUT_SEC)
        except asyncio.TimeoutError:
            logger.warning("Admin server did not stop in time; abandoning it.")

    async def _release_resources(self):
        if self._released:
            return
        self._released = True
        await self._stop_admin()
        await self.services.redis_check.stop()
        await self.services.store.close()
        self._remove_signals()

    async def shutdown(self):
        """
        优雅关闭主服务。

        Raises:
            FatalShutdownError: 关闭流程出错，或强制关闭后主服务仍未退出。
        """
        s = self.services
        s.status_tracker.advance(ServerStatus.SHUTTING_DOWN)
        grace = self.settings["graceful_shutdown_timeout"]
        logger.info(
            f"Shutting down... ({s.system_tracker.active_requests_count} request(s) in flight, "
            f"grace period {grace}s)"
        )

        try:
            if self.primary_server is not None and self._primary_task is not None:
                self.primary_server.should_exit = True
                try:
                    await asyncio.wait_for(self._primary_task, grace + FORCE_CLOSE_MARGIN_SEC)
                except asyncio.TimeoutError:
                    raise FatalShutdownError(f"graceful shutdown did not complete within {grace}s") from None
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    raise FatalShutdownError(f"graceful shutdown failed: {e}") from e
        finally:
            await self._release_resources()

        logger.info("Graceful shutdown complete.")

    # ---------- 主流程 ----------

    async def run(self):
        """启动服务，等待关闭请求，然后优雅关闭。"""
        try:
            await self.start()
        except BaseException:
            await self._release_resources()
            raise

        stop_waiter = asyncio.create_task(self._stop_requested.wait())
        done, _ = await asyncio.wait({stop_waiter, self._primary_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop_waiter not in done:
            stop_waiter.cancel()
            logger.error("HTTP server stopped unexpectedly.")
        await self.shutdown()
