"""
日志配置模块：
- 使用 dictConfig 配置应用日志与 uvicorn 日志。
- 主服务与管理服务共用 uvicorn.access 这一个 logger，每条记录都会带上
  listener（primary / admin）与 request_id，两类流量在日志中可以区分。
- 管理端口上的访问日志（探活、指标抓取）只在 DEBUG 级别输出。
"""

import logging
from typing import Any, Dict

from .middleware import LISTENER_ADMIN, listener_var, request_id_var

LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class RequestContextFilter(logging.Filter):
    """把当前请求的 request_id 与 listener 注入日志记录；请求之外为 "-"。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.listener = listener_var.get()
        return True


class AdminAccessFilter(logging.Filter):
    """丢弃来自管理端口的访问日志，除非 verbose 为真。"""

    def __init__(self, verbose: bool = False):
        super().__init__()
        self.verbose = verbose

    def filter(self, record: logging.LogRecord) -> bool:
        if self.verbose:
            return True
        return listener_var.get() != LISTENER_ADMIN


def get_logging_config(log_level: str) -> Dict[str, Any]:
    """
    生成日志配置字典。

    Args:
        log_level: 日志级别名称，大小写不敏感（如 "info"、"DEBUG"）。
    """
    level = log_level.upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {
                "()": RequestContextFilter,
            },
            "admin_access": {
                "()": AdminAccessFilter,
                "verbose": level == "DEBUG",
            },
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(listener)s] [%(request_id)s] - %(message)s",
                "datefmt": LOG_DATEFMT,
            },
            "access": {
                "format": "%(asctime)s - access - [%(listener)s] [%(request_id)s] - %(message)s",
                "datefmt": LOG_DATEFMT,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["request_context"],
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "filters": ["request_context", "admin_access"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "counter_service": {
                "handlers": ["default"],
                "level": level,
                "propagate": False,
            },
            # uvicorn 根 logger 不挂 handler，由下面两个子 logger 输出
            "uvicorn": {
                "handlers": [],
                "level": level,
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["default"],
                "level": level,
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": ["access"],
                "level": level,
                "propagate": False,
            },
        },
    }
