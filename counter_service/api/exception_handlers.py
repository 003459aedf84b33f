"""
全局异常处理模块：
- 校验错误与存储错误统一渲染为 400 + {"error": "..."}。
- 404/405 等路由错误保留原状态码，响应体同样使用 {"error": "..."}。
- 捕获所有未处理的异常，记录详细信息，并返回一个标准的 500 错误。
"""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.errors import CounterServiceError, StoreError, ValidationError

logger = logging.getLogger(__name__)

async def counter_error_handler(request: Request, exc: CounterServiceError):
    """
    把请求级别的业务错误渲染为客户端错误。

    存储失败同样返回 400，这是与既有客户端保持兼容的约定。
    """
    if isinstance(exc, StoreError):
        logger.warning(f"Store error ({exc.kind}) for {request.method} {request.url.path}: {exc.message}")
    elif isinstance(exc, ValidationError):
        logger.info(f"Rejected request ({exc.kind}): {exc.message}")
    return JSONResponse(status_code=400, content={"error": exc.message})

async def generic_exception_handler(request: Request, exc: Exception):
    """
    捕获所有未处理的异常，记录详细信息，并返回一个标准的 500 错误。
    """
    logger.error(
        f"Unhandled exception for request: {request.method} {request.url}",
        exc_info=exc,
        extra={
            "client": request.client,
        }
    )
    return JSONResponse(
        status_code=500,
        content={"error": "internal server error"},
    )

async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """
    路由层面的错误（未知路径 404、不支持的方法 405）同样渲染为 {"error": "..."}。
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )
