"""
错误类型模块：
- 定义计数服务内部使用的异常层次。
- 校验错误与存储错误在 API 边界被渲染为 400 JSON 响应。
- 启动与关闭错误是致命的，由命令行入口记录后退出进程。
"""

from typing import Optional


class CounterServiceError(Exception):
    """计数服务所有业务异常的基类。"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationKind:
    """请求校验失败的类别。"""
    MALFORMED = "malformed"
    INVALID_LABEL = "invalid_label"


class ValidationError(CounterServiceError):
    """入站参数无法解析或标签不合法。"""

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


class StoreErrorKind:
    """存储调用失败的类别。"""
    UNAVAILABLE = "unavailable"
    OPERATION_FAILED = "operation_failed"


class StoreError(CounterServiceError):
    """远端存储不可达，或拒绝了自增操作。"""

    def __init__(self, kind: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause


class FatalStartupError(CounterServiceError):
    """启动阶段的致命错误（监听端口绑定失败、配置解析失败等）。"""


class ConfigError(FatalStartupError):
    """配置项无法解析。"""


class FatalShutdownError(CounterServiceError):
    """优雅关闭流程返回了错误。"""
