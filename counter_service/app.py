"""
应用装配模块：
- create_app：主服务（计数端点），挂载请求 ID 与活动请求统计中间件。
- create_admin_app：管理服务（指标、健康检查、版本信息）。
- 所有依赖都由调用方显式构造后注入 app.state，不使用模块级全局对象。
"""

from fastapi import FastAPI
from prometheus_client import CollectorRegistry
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.errors import CounterServiceError
from .core.middleware import (
    LISTENER_ADMIN,
    LISTENER_PRIMARY,
    ListenerTagMiddleware,
    RequestIdMiddleware,
    StateTrackingMiddleware,
)
from .core.types import AboutInfo
from .api.routes import admin, counter
from .api.exception_handlers import counter_error_handler, generic_exception_handler, http_error_handler
from .services.counter import CounterService
from .services.health_checker import HealthRegistry
from .services.state_tracker import SystemStateTracker

def create_app(counter_service: CounterService, system_tracker: SystemStateTracker) -> FastAPI:
    """
    创建并返回主服务的 FastAPI 应用实例。
    """
    app = FastAPI(
        title="Counter",
        description="Increments and returns named counters stored in Redis.",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.counter_service = counter_service
    app.state.system_tracker = system_tracker

    # 中间件按添加顺序的逆序执行：监听端口标记最外层，其次是请求 ID
    app.add_middleware(StateTrackingMiddleware, tracker=system_tracker)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(ListenerTagMiddleware, listener=LISTENER_PRIMARY)

    app.include_router(counter.router)

    # 注册全局异常处理器
    app.add_exception_handler(CounterServiceError, counter_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app

def create_admin_app(
    health_registry: HealthRegistry,
    metrics_registry: CollectorRegistry,
    about_info: AboutInfo,
) -> FastAPI:
    """
    创建并返回管理服务的 FastAPI 应用实例。
    """
    app = FastAPI(
        title="Counter Admin",
        version=about_info.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.health_registry = health_registry
    app.state.metrics_registry = metrics_registry
    app.state.about_info = about_info

    app.add_middleware(ListenerTagMiddleware, listener=LISTENER_ADMIN)

    app.include_router(admin.router)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
