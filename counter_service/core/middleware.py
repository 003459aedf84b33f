"""
中间件模块。

定义了用于 FastAPI 应用的中间件，例如添加请求 ID 以便进行日志追踪、
标记请求来自哪个监听端口（主服务或管理服务）、统计主服务上正在处理的请求数量。
"""

import uuid
from contextvars import ContextVar
from typing import Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send
from ..services.state_tracker import SystemStateTracker

# 使用 ContextVar 来在整个请求处理链路中安全地传递请求 ID
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

LISTENER_PRIMARY = "primary"
LISTENER_ADMIN = "admin"

# 当前请求所属的监听端口，供日志过滤器区分主服务与管理服务的访问日志
listener_var: ContextVar[str] = ContextVar("listener", default="-")


class ListenerTagMiddleware:
    """
    纯 ASGI 中间件：在整个请求周期内（包括 uvicorn 写访问日志时）标记监听端口名称。
    """
    def __init__(self, app: ASGIApp, listener: str):
        self.app = app
        self.listener = listener

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        token = listener_var.set(self.listener)
        try:
            await self.app(scope, receive, send)
        finally:
            listener_var.reset(token)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    一个为每个进入的请求添加唯一 ID 的中间件。

    如果客户端已经带了 X-Request-ID 则沿用，否则生成一个新的 ID。
    """
    async def dispatch(
        self, request: Request, call_next
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        # 不在此处 reset：响应随后才发送，uvicorn 的访问日志仍需读取这个 ID。
        # 每个请求运行在独立的 task 中，值不会泄漏到其他请求。
        request_id_var.set(request_id)
        response = await call_next(request)

        # 在响应头中也包含这个 ID，方便客户端进行关联
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

class StateTrackingMiddleware(BaseHTTPMiddleware):
    """
    追踪主服务上活动请求数量的中间件。

    关闭时生命周期协调器据此记录还有多少请求在排空。
    """
    def __init__(self, app: ASGIApp, tracker: SystemStateTracker):
        super().__init__(app)
        self.tracker = tracker

    async def dispatch(self, request: Request, call_next) -> Response:
        self.tracker.increment()
        try:
            response = await call_next(request)
        finally:
            self.tracker.decrement()
        return response
